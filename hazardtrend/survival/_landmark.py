"""
Landmark and window transforms of a SubjectStore.

A window (start, stop] keeps subjects still under observation after
`start`, re-originates their clock at `start`, and administratively
censors at `stop`:

    keep      time > start
    time'   = min(time, stop) - start
    event'  = event and time < stop

The two landmark cohorts of a landmark L are the windows

    early = (0, L]     everyone, censored at L
    late  = (L, ∞)     survivors past L, clock restarted at L

A subject with time == L is therefore censored in the early cohort and
excluded from the late one: they did not survive *past* the landmark.
All transforms return new stores; the input is never modified.
"""

from __future__ import annotations

import numpy as np

from hazardtrend.core.exceptions import DegenerateCohortError, ValidationError
from hazardtrend.survival.design import SubjectStore


def window_cohort(
    data: SubjectStore,
    start: float,
    stop: float | None = None,
) -> SubjectStore:
    """Subjects at risk in the window (start, stop], clock reset to start.

    Parameters
    ----------
    data : SubjectStore
        Source cohort.
    start : float
        Window start (>= 0). Only subjects with time > start are kept.
    stop : float or None
        Window end (> start). None leaves the window open.

    Raises
    ------
    DegenerateCohortError
        If nobody is at risk after `start`.
    """
    if not np.isfinite(start) or start < 0:
        raise ValidationError(f"window start must be finite and >= 0, got {start}")
    if stop is not None and not stop > start:
        raise ValidationError(
            f"window stop must exceed start, got start={start}, stop={stop}"
        )

    keep = data.time > start
    if not np.any(keep):
        raise DegenerateCohortError(
            f"no subjects remain at risk after time {start:g} "
            f"(maximum follow-up {np.max(data.time):g})",
            start=start,
            stop=stop,
        )

    time = data.time[keep]
    event = data.event[keep]
    if stop is not None:
        event = np.where(time < stop, event, 0.0)
        time = np.minimum(time, stop)

    return SubjectStore.from_arrays(
        time - start, event, data.arm[keep], ids=data.ids[keep],
    )


def early_cohort(data: SubjectStore, landmark: float) -> SubjectStore:
    """Everyone, administratively censored at the landmark."""
    _check_landmark(landmark)
    return window_cohort(data, 0.0, landmark)


def late_cohort(data: SubjectStore, landmark: float) -> SubjectStore:
    """Survivors past the landmark with time re-originated at it."""
    _check_landmark(landmark)
    return window_cohort(data, landmark, None)


def _check_landmark(landmark: float) -> None:
    if not np.isfinite(landmark) or landmark <= 0:
        raise ValidationError(
            f"landmark must be a finite positive time, got {landmark}"
        )
