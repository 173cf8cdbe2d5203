"""
Restricted cubic spline basis on log time.

Royston-Parmar form: with knots k_min < k_1 < ... < k_K < k_max on
x = log(t), the df = K + 1 basis functions are

    z_1(x)     = x
    z_{j+1}(x) = (x - k_j)_+^3 - λ_j (x - k_min)_+^3 - (1 - λ_j)(x - k_max)_+^3
    λ_j        = (k_max - k_j) / (k_max - k_min)

The cubic and quadratic terms cancel beyond the boundary knots, so the
spline is linear outside [k_min, k_max] (a natural spline). The raw
columns are centred and orthonormalised on the event rows, as stpm2 does;
the centring vector and transform are stored so that predictions at new
times use exactly the fitted basis.

References:
    Royston, P., & Parmar, M. K. B. (2002). Flexible parametric
        proportional-hazards and proportional-odds models for censored
        survival data. Statistics in Medicine, 21(15), 2175-2197.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from hazardtrend.core.exceptions import ValidationError


@dataclass(frozen=True, eq=False)
class SplineBasis:
    """Fitted restricted cubic spline basis.

    Attributes
    ----------
    knots : NDArray
        All knots on the log-time scale, boundaries included, ascending.
    center : NDArray
        (df,) column means of the raw basis on the event rows.
    transform : NDArray
        (df, df) matrix mapping centred raw columns to orthonormal ones.
    """

    knots: NDArray
    center: NDArray
    transform: NDArray

    @classmethod
    def from_log_times(
        cls,
        log_event_times: NDArray,
        df: int,
        interior_knots: NDArray | None = None,
    ) -> SplineBasis:
        """Build a basis with knots placed on the event log-times.

        Parameters
        ----------
        log_event_times : NDArray
            log of observed event times.
        df : int
            Number of basis functions. Ignored when interior_knots is given
            (df becomes len(interior_knots) + 1).
        interior_knots : NDArray or None
            Interior knots on the log-time scale. Default: centiles
            100 j / df, j = 1..df-1, of the event log-times.
        """
        lo, hi = float(np.min(log_event_times)), float(np.max(log_event_times))
        if not hi > lo:
            raise ValidationError(
                "spline basis needs events at two or more distinct times"
            )

        if interior_knots is None:
            if df < 1:
                raise ValidationError(f"df must be >= 1, got {df}")
            probs = np.arange(1, df) / df
            interior = np.quantile(log_event_times, probs)
        else:
            interior = np.sort(np.asarray(interior_knots, dtype=np.float64))
            if np.any(interior <= lo) or np.any(interior >= hi):
                raise ValidationError(
                    f"interior knots must lie strictly inside the event "
                    f"time range [{np.exp(lo):.4g}, {np.exp(hi):.4g}]"
                )

        knots = np.concatenate([[lo], interior, [hi]])
        if np.any(np.diff(knots) <= 0):
            raise ValidationError(
                f"spline knots are not distinct (log-time knots {knots}); "
                f"reduce df or supply knots"
            )

        if len(log_event_times) <= len(knots) - 1:
            raise ValidationError(
                f"{len(log_event_times)} events cannot support a spline "
                f"with {len(knots) - 1} basis functions"
            )

        raw = _rcs(log_event_times, knots)
        center = raw.mean(axis=0)
        _, R = np.linalg.qr(raw - center)
        diag = np.abs(np.diag(R))
        if np.any(diag < 1e-10 * max(1.0, diag.max())):
            raise ValidationError(
                "spline basis is rank-deficient on the event times; reduce df"
            )
        transform = np.linalg.inv(R) * np.sqrt(len(log_event_times))

        return cls(knots=knots, center=center, transform=transform)

    @property
    def n_basis(self) -> int:
        return len(self.knots) - 1

    @property
    def interior_knots(self) -> NDArray:
        return self.knots[1:-1]

    def evaluate(self, log_t: NDArray) -> NDArray:
        """(len(log_t), df) orthonormalised basis at log_t."""
        raw = _rcs(np.atleast_1d(log_t), self.knots)
        return (raw - self.center) @ self.transform

    def derivative(self, log_t: NDArray) -> NDArray:
        """(len(log_t), df) derivative of the basis w.r.t. log t."""
        raw = _rcs_derivative(np.atleast_1d(log_t), self.knots)
        return raw @ self.transform


def _lambdas(knots: NDArray) -> NDArray:
    k_min, k_max = knots[0], knots[-1]
    return (k_max - knots[1:-1]) / (k_max - k_min)


def _rcs(x: NDArray, knots: NDArray) -> NDArray:
    """Raw restricted cubic spline columns."""
    k_min, k_max = knots[0], knots[-1]
    cols = [x]
    for k_j, lam in zip(knots[1:-1], _lambdas(knots)):
        cols.append(
            np.maximum(x - k_j, 0.0) ** 3
            - lam * np.maximum(x - k_min, 0.0) ** 3
            - (1.0 - lam) * np.maximum(x - k_max, 0.0) ** 3
        )
    return np.column_stack(cols)


def _rcs_derivative(x: NDArray, knots: NDArray) -> NDArray:
    """d/dx of the raw restricted cubic spline columns."""
    k_min, k_max = knots[0], knots[-1]
    cols = [np.ones_like(x)]
    for k_j, lam in zip(knots[1:-1], _lambdas(knots)):
        cols.append(
            3.0 * np.maximum(x - k_j, 0.0) ** 2
            - 3.0 * lam * np.maximum(x - k_min, 0.0) ** 2
            - 3.0 * (1.0 - lam) * np.maximum(x - k_max, 0.0) ** 2
        )
    return np.column_stack(cols)
