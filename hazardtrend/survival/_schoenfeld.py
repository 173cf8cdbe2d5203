"""
Schoenfeld residuals and the proportional-hazards test.

For the i-th event (time t_i, covariate x_i) under the fitted β:

    r_i  = x_i - x̄(t_i)                  x̄ = exp(xβ)-weighted risk-set mean
    r*_i = n_events * V @ r_i             scaled residual, V = var(β̂)

If the hazard ratio drifts as β(t) = β + θ g(t), the scaled residuals
trend with g(t): E[r*_i] ≈ β(t_i) - β. Two tests of θ = 0:

"scaled" (Grambsch & Therneau 1994; cox.zph before survival 3.0)
    Regress r* on the centred transformed time g_c:
        T_k = (Σ g_c r*_k)^2 / (n_events * V_kk * Σ g_c^2)    ~ χ²(1)

"score" (cox.zph from survival 3.0)
    Exact score test for θ at θ = 0 with β held at β̂:
        u = Σ g_c r_i,  I = Σ g_c^2 V_i - (Σ g_c V_i) I_β^{-1} (Σ g_c V_i)
        T_k = u_k^2 / I_kk

The global statistic sums over covariates (one covariate here, so global
equals per-covariate).

Time transforms g: "rank" (ranks of event times), "km" (1 - KM(t-), R's
default), "identity", "log".

References:
    Grambsch, P. M., & Therneau, T. M. (1994). Proportional hazards tests
        and diagnostics based on weighted residuals. Biometrika, 81(3),
        515-526.
    R Core Team. survival::cox.zph
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from hazardtrend.survival._common import ZPHParams
from hazardtrend.survival._cox import RiskSets
from hazardtrend.survival._km import kaplan_meier_fit, step_lookup


def schoenfeld_residuals(
    time: NDArray,
    event: NDArray,
    X: NDArray,
    beta: NDArray,
    ties: str,
) -> tuple[NDArray, NDArray, NDArray]:
    """Unscaled Schoenfeld residuals, one row per event, by event time.

    With Efron ties, x̄ for tied events is the average of the Efron-adjusted
    means of the tied group, as in R.

    Returns
    -------
    (event_times, residuals, variances)
        event_times : (d,)
        residuals : (d, p)
        variances : (d, p, p) risk-set covariance of x at each event
    """
    risk_sets = RiskSets(time, event, X)
    _, _, mean, second = risk_sets.moments(beta, ties)

    if ties == "efron":
        g = risk_sets.group
        counts = risk_sets.d[g][:, None]
        group_mean = np.zeros((len(risk_sets.d), mean.shape[1]))
        np.add.at(group_mean, g, mean)
        mean = group_mean[g] / counts

    residuals = risk_sets.X[risk_sets.event_index] - mean
    return risk_sets.event_times, residuals, second


def transform_times(
    event_times: NDArray,
    time: NDArray,
    event: NDArray,
    transform: str,
) -> NDArray:
    """Apply the cox.zph time transform to the event times."""
    if transform == "rank":
        return stats.rankdata(event_times)
    if transform == "identity":
        return event_times.astype(np.float64)
    if transform == "log":
        return np.log(event_times)
    if transform == "km":
        km = kaplan_meier_fit(time, event)
        surv_before = step_lookup(
            km.time, km.survival, event_times, 1.0, left_continuous=True,
        )
        return 1.0 - surv_before
    raise ValueError(
        f"Unknown transform '{transform}'. "
        f"Choose from 'rank', 'km', 'identity', 'log'."
    )


def zph_test(
    time: NDArray,
    event: NDArray,
    X: NDArray,
    beta: NDArray,
    covariance: NDArray,
    ties: str,
    transform: str = "rank",
    method: str = "scaled",
) -> ZPHParams:
    """Test proportional hazards for a fitted Cox model.

    Parameters
    ----------
    time, event, X : NDArray
        The data the Cox model was fitted on.
    beta : NDArray
        (p,) fitted coefficients.
    covariance : NDArray
        (p, p) fitted covariance of beta.
    ties : str
        Ties method the model was fitted with.
    transform : str
        Time transform: "rank", "km", "identity", "log".
    method : str
        "scaled" (regression on scaled residuals) or "score".

    Returns
    -------
    ZPHParams
    """
    event_times, residuals, variances = schoenfeld_residuals(
        time, event, X, beta, ties,
    )
    n_events = len(event_times)

    scaled = n_events * residuals @ covariance

    g = transform_times(event_times, time, event, transform)
    g_c = g - np.mean(g)
    ss_g = float(np.sum(g_c ** 2))

    if ss_g == 0:
        # All events at one time: no time trend can be estimated.
        statistics = np.full(len(beta), np.nan)
    elif method == "score":
        u = g_c @ residuals
        info_beta = np.sum(variances, axis=0)
        cross = np.tensordot(g_c, variances, axes=1)
        info_theta = np.tensordot(g_c ** 2, variances, axes=1)
        info_theta = info_theta - cross @ np.linalg.solve(info_beta, cross)
        statistics = u ** 2 / np.diag(info_theta)
    else:
        slope_num = g_c @ scaled
        statistics = slope_num ** 2 / (n_events * np.diag(covariance) * ss_g)

    df = np.ones(len(beta), dtype=int)
    p_values = stats.chi2.sf(statistics, df)

    global_statistic = float(np.sum(statistics))
    global_df = int(np.sum(df))

    return ZPHParams(
        statistics=statistics,
        df=df,
        p_values=p_values,
        global_statistic=global_statistic,
        global_df=global_df,
        global_p_value=float(stats.chi2.sf(global_statistic, global_df)),
        event_times=event_times,
        transformed_times=g,
        residuals=residuals,
        scaled_residuals=scaled,
        coefficients=np.asarray(beta, dtype=np.float64),
        transform=transform,
        method=method,
    )
