"""
Kaplan-Meier product-limit estimator.

Matches R's survival::survfit(Surv(time, event) ~ 1):
- Product-limit survival estimate: S(t) = ∏(1 - d_j / n_j)
- Greenwood variance: Var(S(t)) = S(t)^2 * Σ(d_j / (n_j * (n_j - d_j)))
- Confidence intervals via log, plain, or log-log transformation

Tied event times form one step: every event at t_j shares the risk set
n_j. Subjects censored at t_j are still at risk at t_j and leave the risk
set afterwards. When n_j == d_j the Greenwood term is taken as 0 so the
variance stays finite (R reports NaN there).

References:
    Kaplan, E. L., & Meier, P. (1958). Nonparametric estimation from
        incomplete observations. JASA, 53(282), 457-481.
    R Core Team. survival::survfit.formula
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from hazardtrend.survival._common import KMParams


def kaplan_meier_fit(
    time: NDArray,
    event: NDArray,
    conf_level: float = 0.95,
    conf_type: str = "log",
) -> KMParams:
    """Compute Kaplan-Meier survival curve.

    Parameters
    ----------
    time : NDArray
        (n,) time to event or censoring.
    event : NDArray
        (n,) event indicator (1=event, 0=censored).
    conf_level : float
        Confidence level for CI (e.g. 0.95).
    conf_type : str
        CI type: "log" (default, matches R), "plain", "log-log".

    Returns
    -------
    KMParams
    """
    n_total = len(time)
    n_events_total = int(np.sum(event))

    unique_event_times = np.unique(time[event == 1])
    m = len(unique_event_times)

    if m == 0:
        empty = np.array([], dtype=np.float64)
        return KMParams(
            time=empty, survival=empty, n_risk=empty, n_events=empty,
            n_censored=empty, variance=empty, se=empty,
            ci_lower=empty, ci_upper=empty,
            conf_level=conf_level, conf_type=conf_type,
            n_observations=n_total, n_events_total=0,
        )

    t_sorted = np.sort(time)

    # n_j = #{time >= t_j}
    n_risk = (n_total - np.searchsorted(t_sorted, unique_event_times, side="left")).astype(np.float64)

    # d_j = events exactly at t_j
    event_sorted = np.sort(time[event == 1])
    n_events = (
        np.searchsorted(event_sorted, unique_event_times, side="right")
        - np.searchsorted(event_sorted, unique_event_times, side="left")
    ).astype(np.float64)

    # Censored in [t_{j-1}, t_j): left the risk set between the two steps
    cens_sorted = np.sort(time[event == 0])
    cens_before = np.searchsorted(cens_sorted, unique_event_times, side="left")
    n_censored = np.diff(np.concatenate([[0], cens_before])).astype(np.float64)

    survival = np.cumprod(1.0 - n_events / n_risk)

    denom = n_risk * (n_risk - n_events)
    denom = np.where(denom > 0, denom, np.inf)
    variance = survival ** 2 * np.cumsum(n_events / denom)
    se = np.sqrt(variance)

    z = stats.norm.ppf((1.0 + conf_level) / 2.0)
    ci_lower, ci_upper = _compute_ci(survival, se, z, conf_type)

    return KMParams(
        time=unique_event_times,
        survival=survival,
        n_risk=n_risk,
        n_events=n_events,
        n_censored=n_censored,
        variance=variance,
        se=se,
        ci_lower=ci_lower,
        ci_upper=ci_upper,
        conf_level=conf_level,
        conf_type=conf_type,
        n_observations=n_total,
        n_events_total=n_events_total,
    )


def step_lookup(
    knots: NDArray,
    values: NDArray,
    query: NDArray,
    before: float,
    *,
    left_continuous: bool = False,
) -> NDArray:
    """Evaluate a right-continuous step function.

    Returns the value at the last knot <= query, or ``before`` when the
    query precedes the first knot. With ``left_continuous=True`` the last
    knot strictly < query is used instead, i.e. the value just before t.
    """
    side = "left" if left_continuous else "right"
    idx = np.searchsorted(knots, query, side=side) - 1
    padded = np.concatenate([[before], values])
    return padded[idx + 1]


def _compute_ci(
    survival: NDArray,
    se: NDArray,
    z: float,
    conf_type: str,
) -> tuple[NDArray, NDArray]:
    """Compute CI for survival function.

    Returns
    -------
    (ci_lower, ci_upper) clipped to [0, 1]
    """
    if conf_type == "plain":
        ci_lower = survival - z * se
        ci_upper = survival + z * se

    elif conf_type == "log":
        # exp(log(S) ± z * se / S)
        with np.errstate(divide='ignore', invalid='ignore'):
            log_s = np.log(survival)
            se_log = se / survival
            ci_lower = np.exp(log_s - z * se_log)
            ci_upper = np.exp(log_s + z * se_log)

    elif conf_type == "log-log":
        # exp(-exp(log(-log(S)) ± z * se / (S * |log S|)))
        with np.errstate(divide='ignore', invalid='ignore'):
            log_s = np.log(survival)
            log_neg_log_s = np.log(-log_s)
            se_loglog = se / (survival * np.abs(log_s))
            ci_lower = np.exp(-np.exp(log_neg_log_s + z * se_loglog))
            ci_upper = np.exp(-np.exp(log_neg_log_s - z * se_loglog))
    else:
        raise ValueError(
            f"Unknown conf_type '{conf_type}'. "
            f"Choose from 'log', 'plain', 'log-log'."
        )

    ci_lower = np.clip(ci_lower, 0.0, 1.0)
    ci_upper = np.clip(ci_upper, 0.0, 1.0)

    # S=0 or S=1 edge cases
    ci_lower = np.where(np.isnan(ci_lower), 0.0, ci_lower)
    ci_upper = np.where(np.isnan(ci_upper), 1.0, ci_upper)

    return ci_lower, ci_upper
