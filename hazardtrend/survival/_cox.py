"""
Cox Proportional Hazards model via Newton-Raphson.

Implements Breslow's (default) and Efron's handling of tied event times.

Algorithm:
    Initialize β = 0
    For iteration 1..max_iter:
        Compute: partial log-likelihood L(β), score U(β), information I(β)
        β_new = β + I(β)^{-1} @ U(β)     (step capped at 5, halved on descent)
        Stop when max|β_new - β| < tol
    Exceeding max_iter raises ConvergenceError.

Breslow partial likelihood:
    L(β) = Σ_j [ Σ_{i ∈ D_j} x_i @ β - d_j log(Σ_{l ∈ R_j} exp(x_l @ β)) ]

Efron replaces the d_j identical denominators by
    Σ_{l ∈ R_j} exp(x_l β) - (s/d_j) Σ_{i ∈ D_j} exp(x_i β),  s = 0..d_j-1

    where D_j = set of events at time t_j, d_j = |D_j|,
          R_j = risk set at time t_j (time >= t_j).

Risk-set sums are reverse cumulative sums over subjects sorted by time,
so one likelihood evaluation is O(n p^2).

References:
    Cox, D. R. (1972). Regression models and life-tables. JRSS-B, 34(2), 187-220.
    Breslow, N. (1974). Covariance analysis of censored survival data.
        Biometrics, 30(1), 89-99.
    Efron, B. (1977). The efficiency of Cox's likelihood function for
        censored data. JASA, 72(359), 557-565.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from hazardtrend.core.compute.optimization import newton_raphson, quasi_newton
from hazardtrend.core.compute.linalg import invert_information
from hazardtrend.core.exceptions import InsufficientEventsError
from hazardtrend.survival._common import CoxConfig, CoxParams

# Per-iteration cap on max|Δβ|; keeps exp(x β) finite in early iterations.
MAX_STEP = 5.0


class RiskSets:
    """Risk-set bookkeeping for one dataset, independent of β.

    Subjects are sorted by time. For every distinct event time t_j the
    risk set is the tail of the sorted arrays starting at ``start[j]``.
    Every event subject is expanded into one (j, s) "slot" for the Efron
    correction; with Breslow ties all slots of a time share one
    denominator.
    """

    def __init__(self, time: NDArray, event: NDArray, X: NDArray):
        order = np.argsort(time, kind="stable")
        self.time = time[order]
        self.event = event[order]
        self.X = X[order]

        is_event = self.event == 1
        self.event_index = np.flatnonzero(is_event)
        self.unique_times = np.unique(self.time[is_event])
        self.start = np.searchsorted(self.time, self.unique_times, side="left")

        # Group of each event subject, and its rank s within that group
        self.group = np.searchsorted(self.unique_times, self.time[is_event])
        self.d = np.bincount(self.group, minlength=len(self.unique_times))
        first_in_group = np.concatenate([[0], np.cumsum(self.d)[:-1]])
        self.rank_in_group = np.arange(len(self.group)) - first_in_group[self.group]

    @property
    def n_events(self) -> int:
        return len(self.event_index)

    @property
    def event_times(self) -> NDArray:
        """(d,) event time per event subject, ascending."""
        return self.time[self.event_index]

    def moments(self, beta: NDArray, ties: str):
        """Per-slot weighted risk-set moments at β.

        Returns
        -------
        (eta_c, denom, mean, second)
            eta_c : (n,) centred linear predictor of sorted subjects
            denom : (d,) S0 (Efron-adjusted) per event slot
            mean : (d, p) risk-set weighted mean of x per slot
            second : (d, p, p) weighted covariance of x per slot
        """
        eta = self.X @ beta
        eta_c = eta - np.max(eta)
        w = np.exp(eta_c)

        wX = w[:, None] * self.X
        wXX = wX[:, :, None] * self.X[:, None, :]

        S0 = np.cumsum(w[::-1])[::-1][self.start]
        S1 = np.cumsum(wX[::-1], axis=0)[::-1][self.start]
        S2 = np.cumsum(wXX[::-1], axis=0)[::-1][self.start]

        g = self.group
        if ties == "efron":
            idx = self.event_index
            D0 = np.bincount(g, weights=w[idx], minlength=len(self.d))
            D1 = np.zeros_like(S1)
            np.add.at(D1, g, wX[idx])
            D2 = np.zeros_like(S2)
            np.add.at(D2, g, wXX[idx])
            frac = self.rank_in_group / self.d[g]
        else:
            D0 = np.zeros_like(S0)
            D1 = np.zeros_like(S1)
            D2 = np.zeros_like(S2)
            frac = np.zeros(len(g))

        denom = S0[g] - frac * D0[g]
        mean = (S1[g] - frac[:, None] * D1[g]) / denom[:, None]
        second = (
            (S2[g] - frac[:, None, None] * D2[g]) / denom[:, None, None]
            - mean[:, :, None] * mean[:, None, :]
        )
        return eta_c, denom, mean, second

    def loglik_score_hessian(self, beta: NDArray, ties: str):
        """Partial log-likelihood, score and Hessian (= -information)."""
        eta_c, denom, mean, second = self.moments(beta, ties)
        idx = self.event_index

        loglik = float(np.sum(eta_c[idx]) - np.sum(np.log(denom)))
        score = np.sum(self.X[idx], axis=0) - np.sum(mean, axis=0)
        information = np.sum(second, axis=0)
        return loglik, score, -information


def cox_fit(
    time: NDArray,
    event: NDArray,
    X: NDArray,
    config: CoxConfig,
) -> CoxParams:
    """Fit Cox proportional hazards model.

    Parameters
    ----------
    time : NDArray
        (n,) time to event or censoring.
    event : NDArray
        (n,) event indicator (1=event, 0=censored).
    X : NDArray
        (n, p) covariate matrix (NO intercept).
    config : CoxConfig
        Ties method, tolerance, iteration cap and optimizer.

    Returns
    -------
    CoxParams

    Raises
    ------
    InsufficientEventsError
        No events in the data.
    ConvergenceError
        Iteration cap exceeded (e.g. monotone likelihood / separation).
    SingularMatrixError
        Information matrix is singular (e.g. a covariate constant over
        every risk set).
    """
    n, p = X.shape
    n_events = int(np.sum(event))

    if n_events == 0:
        raise InsufficientEventsError(
            f"Cox model needs at least one event; got 0 events in {n} subjects",
            n_events=0,
            n_observations=n,
        )

    risk_sets = RiskSets(time, event, X)

    def objective(beta):
        return risk_sets.loglik_score_hessian(beta, config.ties)

    beta0 = np.zeros(p, dtype=np.float64)
    null_loglik = objective(beta0)[0]

    if config.method == "bfgs":
        # BFGS stops on the gradient norm; config.tol is a Newton step threshold.
        opt = quasi_newton(objective, beta0, max_iter=max(config.max_iter, 100))
    else:
        opt = newton_raphson(
            objective, beta0,
            tol=config.tol,
            max_iter=config.max_iter,
            max_step=MAX_STEP,
        )

    covariance = invert_information(-opt.hessian, "Cox information matrix")

    return CoxParams(
        coefficients=opt.x,
        covariance=covariance,
        loglik=(null_loglik, opt.value),
        score=opt.gradient,
        concordance=concordance(opt.x, time, event, X),
        n_events=n_events,
        n_observations=n,
        n_iter=opt.n_iter,
        converged=True,
        ties=config.ties,
    )


def concordance(
    beta: NDArray,
    time: NDArray,
    event: NDArray,
    X: NDArray,
) -> float:
    """Harrell's concordance statistic (C-statistic).

    C = P(risk_i > risk_j | T_i < T_j, event_i = 1), risk ties count 1/2.
    """
    eta = X @ beta
    cases = np.flatnonzero(event == 1)

    comparable = time[None, :] > time[cases, None]
    diff = eta[cases, None] - eta[None, :]

    concordant = np.sum(comparable & (diff > 0))
    tied_risk = np.sum(comparable & (diff == 0))
    total = np.sum(comparable)

    if total == 0:
        return 0.5
    return float((concordant + 0.5 * tied_risk) / total)
