"""
Parameter payloads and configuration for the survival models.

Each payload dataclass is a frozen container carried inside a Result[P]
envelope. Configs are the frozen settings a backend's fit(data, config)
reads; the public functions in solvers.py build them from keyword
arguments.
"""

from __future__ import annotations

from dataclasses import dataclass

from numpy.typing import NDArray

from hazardtrend.survival._splines import SplineBasis


VALID_TIES = ("breslow", "efron")
VALID_METHODS = ("newton", "bfgs")
VALID_TRANSFORMS = ("rank", "km", "identity", "log")
VALID_ZPH_METHODS = ("scaled", "score")


# ── Configs ──────────────────────────────────────────────────────────


@dataclass(frozen=True)
class CoxConfig:
    """Settings for a Cox partial-likelihood fit."""

    ties: str = "breslow"
    tol: float = 1e-8
    max_iter: int = 30
    method: str = "newton"


@dataclass(frozen=True)
class FPMConfig:
    """Settings for a flexible parametric (Royston-Parmar) fit.

    df and tvc_df count spline basis functions; tvc_df=0 drops the
    time-varying treatment term (proportional hazards). Knots, when
    given, are on the time scale and replace the centile defaults.
    """

    df: int = 3
    tvc_df: int = 1
    knots: tuple[float, ...] | None = None
    tvc_knots: tuple[float, ...] | None = None
    penalty: float = 0.0
    tol: float = 1e-8
    max_iter: int = 100
    method: str = "newton"


# ── Payloads ─────────────────────────────────────────────────────────


@dataclass(frozen=True)
class KMParams:
    """Kaplan-Meier survival curve parameters.

    Matches the output of R's survival::survfit().
    """

    time: NDArray                # (m,) unique event times
    survival: NDArray            # (m,) S(t) at each event time
    n_risk: NDArray              # (m,) number at risk just before each time
    n_events: NDArray            # (m,) events at each time
    n_censored: NDArray          # (m,) censored in [previous time, this time)
    variance: NDArray            # (m,) Greenwood variance of S(t)
    se: NDArray                  # (m,) sqrt(variance)
    ci_lower: NDArray            # (m,) lower CI for S(t)
    ci_upper: NDArray            # (m,) upper CI for S(t)
    conf_level: float
    conf_type: str               # "log" (default), "plain", "log-log"
    n_observations: int
    n_events_total: int


@dataclass(frozen=True)
class CoxParams:
    """Cox proportional hazards model parameters.

    Only the estimate and its covariance are stored; hazard ratios,
    intervals and Wald tests are derived from them on access.
    """

    coefficients: NDArray        # (p,) log hazard ratios
    covariance: NDArray          # (p, p) inverse observed information
    loglik: tuple[float, float]  # (null log-lik, model log-lik)
    score: NDArray               # (p,) score at the estimate (~0)
    concordance: float           # Harrell's C-statistic
    n_events: int
    n_observations: int
    n_iter: int
    converged: bool
    ties: str


@dataclass(frozen=True)
class ZPHParams:
    """Proportional-hazards test based on Schoenfeld residuals.

    Mirrors R's survival::cox.zph().
    """

    statistics: NDArray          # (p,) chi-square per covariate
    df: NDArray                  # (p,) degrees of freedom per covariate
    p_values: NDArray            # (p,)
    global_statistic: float
    global_df: int
    global_p_value: float
    event_times: NDArray         # (d,) one per event, ascending
    transformed_times: NDArray   # (d,) g(t) used in the test
    residuals: NDArray           # (d, p) x_i - xbar(t_i)
    scaled_residuals: NDArray    # (d, p) n_events * V @ residual
    coefficients: NDArray        # (p,) Cox estimate the residuals use
    transform: str
    method: str


@dataclass(frozen=True)
class FPMParams:
    """Flexible parametric survival model parameters.

    log H(t | x) = gamma_0 + s(log t; gamma) + x * (beta + s_tvc(log t; delta))

    ``coefficients`` concatenates [gamma_0, gamma..., beta, delta...] in
    that order; the named fields are views of the same numbers.
    """

    baseline_basis: SplineBasis
    tvc_basis: SplineBasis | None
    coefficients: NDArray            # (q,)
    baseline_coefficients: NDArray   # (1 + df,) intercept then spline terms
    treatment_coefficient: float     # beta
    time_varying_coefficients: NDArray  # (tvc_df,)
    covariance: NDArray              # (q, q)
    loglik: float
    penalty: float
    time_range: tuple[float, float]  # (min, max) observed follow-up time
    n_events: int
    n_observations: int
    n_iter: int
    converged: bool
    n_halvings: int = 0
