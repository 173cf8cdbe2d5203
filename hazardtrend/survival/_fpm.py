"""
Flexible parametric (Royston-Parmar) survival model with a time-varying
treatment effect.

Model on the log cumulative hazard scale, u = log t, x = arm:

    η(t, x) = γ_0 + B(u) γ + x (β + C(u) δ)
    H(t | x) = exp(η),   h(t | x) = exp(η) * (∂η/∂u) / t

B and C are restricted cubic spline bases (see _splines); C is absent
when tvc_df = 0, which gives the proportional-hazards model.

Full log-likelihood for right-censored data (d_i = event indicator):

    ℓ(θ) = Σ_i d_i (η_i + log s_i - u_i) - exp(η_i),   s_i = ∂η_i/∂u

With design rows X_i = [1, B_i, x_i, x_i C_i] and derivative rows
D_i = [0, B'_i, 0, x_i C'_i] (so η = Xθ, s = Dθ):

    ∇ℓ  = Xᵀ(d - e^η) + Σ_{events} D_i / s_i
    ∇²ℓ = -Xᵀ diag(e^η) X - Σ_{events} D_i D_iᵀ / s_i²

ℓ is concave on {θ : s_i > 0 at every event}, so damped Newton from a
feasible start converges; points with a non-positive hazard at an event
evaluate to -inf and are halved away. An optional ridge penalty
(λ/2)‖θ_spline‖² on the spline coefficients (γ, δ) stabilises fits with
many knots.

References:
    Royston, P., & Parmar, M. K. B. (2002). Statistics in Medicine,
        21(15), 2175-2197.
    Lambert, P. C., & Royston, P. (2009). Further development of flexible
        parametric models for survival analysis. Stata Journal, 9(2).
    Clements, M., & Liu, X.-R. rstpm2: Smooth Survival Models.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from hazardtrend.core.compute.linalg import invert_information
from hazardtrend.core.compute.optimization import newton_raphson, quasi_newton
from hazardtrend.core.exceptions import (
    InsufficientEventsError,
    NumericalError,
    OutOfRangeError,
    ValidationError,
)
from hazardtrend.survival._common import FPMConfig, FPMParams
from hazardtrend.survival._splines import SplineBasis


class FPMDesign:
    """Column layout of θ = [γ_0, γ (df), β, δ (tvc_df)]."""

    def __init__(self, baseline: SplineBasis, tvc: SplineBasis | None):
        self.baseline = baseline
        self.tvc = tvc
        self.n_baseline = baseline.n_basis
        self.n_tvc = tvc.n_basis if tvc is not None else 0

        self.beta_index = 1 + self.n_baseline
        self.gamma_slice = slice(1, 1 + self.n_baseline)
        self.delta_slice = slice(self.beta_index + 1, self.beta_index + 1 + self.n_tvc)

    @property
    def n_params(self) -> int:
        return 2 + self.n_baseline + self.n_tvc

    def penalty_mask(self) -> NDArray:
        mask = np.zeros(self.n_params)
        mask[self.gamma_slice] = 1.0
        mask[self.delta_slice] = 1.0
        return mask

    def matrices(self, log_t: NDArray, arm: NDArray) -> tuple[NDArray, NDArray]:
        """Design rows X and their u-derivatives D."""
        n = len(log_t)
        B = self.baseline.evaluate(log_t)
        dB = self.baseline.derivative(log_t)

        X_cols = [np.ones((n, 1)), B, arm[:, None]]
        D_cols = [np.zeros((n, 1)), dB, np.zeros((n, 1))]
        if self.tvc is not None:
            X_cols.append(arm[:, None] * self.tvc.evaluate(log_t))
            D_cols.append(arm[:, None] * self.tvc.derivative(log_t))
        return np.hstack(X_cols), np.hstack(D_cols)

    def exponential_start(self, rate: float) -> NDArray:
        """θ giving η = log(rate) + u, an exponential model with s = 1."""
        # raw column 0 of the baseline basis is u itself
        raw_to_basis = np.linalg.inv(self.baseline.transform)
        theta = np.zeros(self.n_params)
        theta[self.gamma_slice] = raw_to_basis[:, 0]
        theta[0] = np.log(rate) + self.baseline.center[0]
        return theta


class FPMLikelihood:
    """Penalised full log-likelihood with gradient and Hessian."""

    def __init__(
        self,
        X: NDArray,
        D: NDArray,
        log_t: NDArray,
        event: NDArray,
        penalty: float,
        penalty_mask: NDArray,
    ):
        self.X = X
        self.D_event = D[event == 1]
        self.log_t_event = log_t[event == 1]
        self.event = event
        self.penalty = penalty
        self.penalty_mask = penalty_mask

    def loglik(self, theta: NDArray) -> float:
        """Unpenalised log-likelihood (-inf outside the feasible region)."""
        s = self.D_event @ theta
        if np.any(s <= 0):
            return -np.inf
        eta = self.X @ theta
        with np.errstate(over='ignore'):
            cum_hazard = np.exp(eta)
        value = (
            np.sum(eta[self.event == 1] + np.log(s) - self.log_t_event)
            - np.sum(cum_hazard)
        )
        return float(value) if np.isfinite(value) else -np.inf

    def __call__(self, theta: NDArray):
        value = self.loglik(theta)
        q = len(theta)
        if not np.isfinite(value):
            return -np.inf, np.full(q, np.nan), np.full((q, q), np.nan)

        s = self.D_event @ theta
        cum_hazard = np.exp(self.X @ theta)

        grad = self.X.T @ (self.event - cum_hazard) + self.D_event.T @ (1.0 / s)
        hess = (
            -(self.X * cum_hazard[:, None]).T @ self.X
            - (self.D_event / s[:, None] ** 2).T @ self.D_event
        )

        if self.penalty > 0:
            value -= 0.5 * self.penalty * float(np.sum(self.penalty_mask * theta ** 2))
            grad = grad - self.penalty * self.penalty_mask * theta
            hess = hess - self.penalty * np.diag(self.penalty_mask)

        return value, grad, hess


def fpm_fit(
    time: NDArray,
    event: NDArray,
    arm: NDArray,
    config: FPMConfig,
) -> FPMParams:
    """Fit the flexible parametric model by (penalised) maximum likelihood.

    Parameters
    ----------
    time : NDArray
        (n,) follow-up time, > 0.
    event : NDArray
        (n,) event indicator.
    arm : NDArray
        (n,) arm indicator.
    config : FPMConfig
        Spline flexibility, knots, penalty and optimizer settings.

    Returns
    -------
    FPMParams

    Raises
    ------
    InsufficientEventsError
        No events in the data.
    ValidationError
        Invalid df/knots for the observed event times.
    ConvergenceError
        Optimizer did not converge.
    """
    n = len(time)
    n_events = int(np.sum(event))
    if n_events == 0:
        raise InsufficientEventsError(
            f"flexible parametric model needs events; got 0 in {n} subjects",
            n_events=0,
            n_observations=n,
        )
    if config.tvc_df < 0:
        raise ValidationError(f"tvc_df must be >= 0, got {config.tvc_df}")
    if config.penalty < 0:
        raise ValidationError(f"penalty must be >= 0, got {config.penalty}")

    log_t = np.log(time)
    log_event = log_t[event == 1]

    baseline = SplineBasis.from_log_times(
        log_event, config.df, _log_knots(config.knots),
    )
    tvc = None
    if config.tvc_df > 0 or config.tvc_knots is not None:
        tvc = SplineBasis.from_log_times(
            log_event, config.tvc_df, _log_knots(config.tvc_knots),
        )

    design = FPMDesign(baseline, tvc)
    X, D = design.matrices(log_t, arm)
    likelihood = FPMLikelihood(
        X, D, log_t, event, config.penalty, design.penalty_mask(),
    )

    theta0 = design.exponential_start(n_events / float(np.sum(time)))

    if config.method == "bfgs":
        # BFGS stops on the gradient norm; config.tol is a Newton step threshold.
        opt = quasi_newton(likelihood, theta0, max_iter=max(config.max_iter, 500))
    else:
        opt = newton_raphson(
            likelihood, theta0, tol=config.tol, max_iter=config.max_iter,
        )

    covariance = invert_information(-opt.hessian, "flexible parametric information matrix")
    theta = opt.x

    return FPMParams(
        baseline_basis=baseline,
        tvc_basis=tvc,
        coefficients=theta,
        baseline_coefficients=theta[:design.beta_index].copy(),
        treatment_coefficient=float(theta[design.beta_index]),
        time_varying_coefficients=theta[design.delta_slice].copy(),
        covariance=covariance,
        loglik=likelihood.loglik(theta),
        penalty=config.penalty,
        time_range=(float(np.min(time)), float(np.max(time))),
        n_events=n_events,
        n_observations=n,
        n_iter=opt.n_iter,
        converged=True,
        n_halvings=opt.n_halvings,
    )


def _log_knots(knots) -> NDArray | None:
    if knots is None:
        return None
    knots = np.asarray(knots, dtype=np.float64)
    if np.any(knots <= 0):
        raise ValidationError(f"knots must be positive times, got {knots}")
    return np.log(knots)


# ── Prediction ───────────────────────────────────────────────────────


def check_prediction_times(times, time_range: tuple[float, float]) -> NDArray:
    """Validate query times against the fitted follow-up range."""
    times = np.atleast_1d(np.asarray(times, dtype=np.float64))
    if times.ndim != 1:
        raise ValidationError(f"times must be 1D, got shape {times.shape}")
    if not np.all(np.isfinite(times)) or np.any(times <= 0):
        raise ValidationError("times must be finite and strictly positive")

    lower, upper = time_range
    outside = (times < lower) | (times > upper)
    if np.any(outside):
        raise OutOfRangeError(
            f"predictions are defined on the observed follow-up range "
            f"[{lower:.6g}, {upper:.6g}]; {int(np.sum(outside))} query "
            f"time(s) fall outside",
            lower=lower,
            upper=upper,
            offending=tuple(times[outside].tolist()),
        )
    return times


def log_hr_gradient(
    params: FPMParams,
    times: NDArray,
    scale: str,
) -> tuple[NDArray, NDArray]:
    """Log hazard ratio (arm 1 vs 0) and its gradient w.r.t. θ.

    scale="coefficient": log HR(t) = β + C(u) δ
    scale="hazard":      log HR(t) = β + C(u) δ + log s_1(t) - log s_0(t)

    Returns
    -------
    (log_hr, gradient) of shapes (m,), (m, q)
    """
    design = FPMDesign(params.baseline_basis, params.tvc_basis)
    theta = params.coefficients
    log_t = np.log(times)
    m = len(times)

    grad = np.zeros((m, design.n_params))
    grad[:, design.beta_index] = 1.0
    if design.tvc is not None:
        grad[:, design.delta_slice] = design.tvc.evaluate(log_t)
    log_hr = grad @ theta

    if scale == "coefficient":
        return log_hr, grad
    if scale != "hazard":
        raise ValueError(
            f"Unknown scale '{scale}'. Choose from 'coefficient', 'hazard'."
        )

    _, D0 = design.matrices(log_t, np.zeros(m))
    _, D1 = design.matrices(log_t, np.ones(m))
    s0 = D0 @ theta
    s1 = D1 @ theta
    if np.any(s0 <= 0) or np.any(s1 <= 0):
        raise NumericalError(
            "fitted hazard is not positive at some query times; "
            "use scale='coefficient' or a less flexible spline"
        )

    log_hr = log_hr + np.log(s1) - np.log(s0)
    grad = grad + D1 / s1[:, None] - D0 / s0[:, None]
    return log_hr, grad


def predict_hazard_ratio(
    params: FPMParams,
    times,
    conf_level: float = 0.95,
    scale: str = "coefficient",
) -> tuple[NDArray, NDArray, NDArray, NDArray]:
    """HR(t) with delta-method confidence bands.

    Returns
    -------
    (times, estimate, lower, upper)
    """
    times = check_prediction_times(times, params.time_range)
    log_hr, grad = log_hr_gradient(params, times, scale)

    se = np.sqrt(np.einsum("ij,jk,ik->i", grad, params.covariance, grad))
    z = stats.norm.ppf((1.0 + conf_level) / 2.0)

    return (
        times,
        np.exp(log_hr),
        np.exp(log_hr - z * se),
        np.exp(log_hr + z * se),
    )


def predict_survival_hazard(
    params: FPMParams,
    times,
    arm: int,
) -> tuple[NDArray, NDArray, NDArray]:
    """Point predictions of S(t | arm) and h(t | arm).

    Returns
    -------
    (times, survival, hazard)
    """
    times = check_prediction_times(times, params.time_range)
    design = FPMDesign(params.baseline_basis, params.tvc_basis)
    log_t = np.log(times)
    X, D = design.matrices(log_t, np.full(len(times), float(arm)))

    eta = X @ params.coefficients
    s = D @ params.coefficients
    cum_hazard = np.exp(eta)
    return times, np.exp(-cum_hazard), cum_hazard * s / times
