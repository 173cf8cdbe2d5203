"""
SubjectStore: immutable container for two-arm time-to-event data.

Holds one record per subject (id, follow-up time, event indicator, arm).
Validates inputs at construction time; all downstream code trusts clean
data. The columns are read-only numpy arrays; derived cohorts (landmark
windows, per-arm subsets) are new stores, never in-place edits.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from hazardtrend.core.exceptions import ValidationError
from hazardtrend.core.validation import (
    check_array,
    check_binary,
    check_consistent_length,
    check_finite,
    check_1d,
    check_min_samples,
    check_positive,
)

if TYPE_CHECKING:
    import pandas as pd


@dataclass(frozen=True)
class Subject:
    """One subject's record.

    Parameters
    ----------
    id : Any
        Subject identifier.
    time : float
        Follow-up duration, strictly positive.
    event : bool
        True if the event was observed, False if censored.
    arm : int
        0 = control, 1 = treatment.
    """

    id: Any
    time: float
    event: bool
    arm: int


def _readonly(array: NDArray) -> NDArray:
    array.setflags(write=False)
    return array


@dataclass(frozen=True, eq=False)
class SubjectStore:
    """Immutable subject-level survival data.

    Construct via the factory classmethods, not directly.

    Attributes
    ----------
    ids : NDArray
        (n,) subject identifiers.
    time : NDArray
        (n,) follow-up time, all > 0.
    event : NDArray
        (n,) float64 event indicator, 1.0 = event, 0.0 = censored.
    arm : NDArray
        (n,) float64 arm indicator, 1.0 = treatment, 0.0 = control.
    """

    ids: NDArray
    time: NDArray
    event: NDArray
    arm: NDArray

    @classmethod
    def from_arrays(cls, time, event, arm, ids=None) -> SubjectStore:
        """Create and validate a store from column arrays.

        Parameters
        ----------
        time : array-like
            Follow-up time. Must be strictly positive.
        event : array-like
            Event indicator (0/1 or bool).
        arm : array-like
            Arm indicator (0/1).
        ids : array-like or None
            Subject identifiers; defaults to 0..n-1.

        Returns
        -------
        SubjectStore

        Raises
        ------
        ValidationError
            If any field is missing, time is non-positive, or event/arm
            are not 0/1.
        DimensionError
            If the columns differ in length or are not 1D.
        """
        time = check_array(time, "time")
        event = check_array(event, "event")
        arm = check_array(arm, "arm")

        for array, name in ((time, "time"), (event, "event"), (arm, "arm")):
            check_1d(array, name)

        check_consistent_length(time, event, arm, names=("time", "event", "arm"))
        check_min_samples(time, 1, "time")

        for array, name in ((time, "time"), (event, "event"), (arm, "arm")):
            check_finite(array, name)

        check_positive(time, "time")
        check_binary(event, "event")
        check_binary(arm, "arm")

        n = len(time)
        if ids is None:
            ids_arr = np.arange(n)
        else:
            ids_arr = np.asarray(ids).ravel()
            if len(ids_arr) != n:
                raise ValidationError(
                    f"ids must have {n} elements to match time, "
                    f"got {len(ids_arr)}"
                )

        return cls(
            ids=_readonly(ids_arr.copy()),
            time=_readonly(time.astype(np.float64, copy=True)),
            event=_readonly(event.astype(np.float64, copy=True)),
            arm=_readonly(arm.astype(np.float64, copy=True)),
        )

    @classmethod
    def from_records(cls, records: Iterable[Subject | Mapping[str, Any]]) -> SubjectStore:
        """Create a store from Subject objects or dict-like rows.

        Mapping rows use the keys ``time``, ``event`` (or ``status``),
        ``arm`` and optionally ``id``. A missing key is treated as a
        missing value and rejected. Records without an id are numbered by
        their position; supplied ids are kept.
        """
        return cls._from_records(records, first_id=0)

    @classmethod
    def _from_records(cls, records, first_id: int) -> SubjectStore:
        ids, times, events, arms = [], [], [], []

        for i, record in enumerate(records):
            if isinstance(record, Subject):
                ids.append(first_id + i if record.id is None else record.id)
                times.append(record.time)
                events.append(record.event)
                arms.append(record.arm)
                continue

            if not isinstance(record, Mapping):
                raise ValidationError(
                    f"record {i}: expected Subject or mapping, "
                    f"got {type(record).__name__}"
                )
            event = record.get("event", record.get("status"))
            record_id = record.get("id")
            ids.append(first_id + i if record_id is None else record_id)
            times.append(record.get("time"))
            events.append(event)
            arms.append(record.get("arm"))

        return cls.from_arrays(
            np.array(times, dtype=object),
            np.array(events, dtype=object),
            np.array(arms, dtype=object),
            ids=ids,
        )

    @classmethod
    def from_dataframe(
        cls,
        df: 'pd.DataFrame',
        *,
        time_col: str = "time",
        event_col: str | None = None,
        arm_col: str = "arm",
        id_col: str | None = "id",
    ) -> SubjectStore:
        """Create a store from a pandas DataFrame.

        Parameters
        ----------
        df : pandas.DataFrame
            Input table.
        time_col, arm_col : str
            Column names for follow-up time and arm.
        event_col : str or None
            Event column. None picks ``event``, falling back to ``status``.
        id_col : str or None
            Identifier column; ignored if absent from the frame.
        """
        if event_col is None:
            event_col = "event" if "event" in df.columns else "status"

        missing = [c for c in (time_col, event_col, arm_col) if c not in df.columns]
        if missing:
            raise ValidationError(
                f"DataFrame is missing required columns {missing}; "
                f"available: {list(df.columns)}"
            )

        ids = None
        if id_col is not None and id_col in df.columns:
            ids = df[id_col].to_numpy()

        return cls.from_arrays(
            df[time_col].to_numpy(dtype=np.float64, na_value=np.nan),
            df[event_col].to_numpy(dtype=np.float64, na_value=np.nan),
            df[arm_col].to_numpy(dtype=np.float64, na_value=np.nan),
            ids=ids,
        )

    # -- Derived stores --

    def append(self, records: Iterable[Subject | Mapping[str, Any]]) -> SubjectStore:
        """Return a new store with extra records appended.

        The original store is left untouched. Appended records without an
        id continue the numbering after the largest integer id.
        """
        extra = SubjectStore._from_records(records, first_id=self._next_id())
        return SubjectStore.from_arrays(
            np.concatenate([self.time, extra.time]),
            np.concatenate([self.event, extra.event]),
            np.concatenate([self.arm, extra.arm]),
            ids=np.concatenate([self.ids, extra.ids]),
        )

    def _next_id(self) -> int:
        if np.issubdtype(self.ids.dtype, np.integer):
            return int(np.max(self.ids)) + 1
        return self.n

    def subset(self, mask) -> SubjectStore:
        """Return a new store holding the rows selected by a boolean mask."""
        mask = np.asarray(mask, dtype=bool)
        if mask.shape != self.time.shape:
            raise ValidationError(
                f"mask must have shape {self.time.shape}, got {mask.shape}"
            )
        return SubjectStore.from_arrays(
            self.time[mask], self.event[mask], self.arm[mask],
            ids=self.ids[mask],
        )

    def by_arm(self, arm: int) -> SubjectStore:
        """Subjects of one arm."""
        if arm not in (0, 1):
            raise ValidationError(f"arm must be 0 or 1, got {arm}")
        return self.subset(self.arm == arm)

    # -- Accessors --

    def __len__(self) -> int:
        return len(self.time)

    def __iter__(self) -> Iterator[Subject]:
        for i in range(len(self.time)):
            yield Subject(
                id=self.ids[i].item() if hasattr(self.ids[i], "item") else self.ids[i],
                time=float(self.time[i]),
                event=bool(self.event[i]),
                arm=int(self.arm[i]),
            )

    @property
    def n(self) -> int:
        """Number of subjects."""
        return len(self.time)

    @property
    def n_observations(self) -> int:
        return len(self.time)

    @property
    def n_events(self) -> int:
        """Number of observed events."""
        return int(np.sum(self.event))

    @property
    def X(self) -> NDArray:
        """(n, 1) covariate matrix holding the arm indicator."""
        return self.arm.reshape(-1, 1)

    @property
    def metadata(self) -> dict[str, Any]:
        return {
            'n_observations': self.n,
            'n_events': self.n_events,
            'n_censored': self.n - self.n_events,
            'n_treatment': int(np.sum(self.arm)),
            'max_time': float(np.max(self.time)),
        }

    def __repr__(self) -> str:
        return f"SubjectStore(n={self.n}, events={self.n_events})"
