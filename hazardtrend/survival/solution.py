"""
Solution wrappers for survival analysis results.

Each Solution wraps a Result[Params] and exposes user-friendly properties
with R-style summary() methods. Derived quantities (hazard ratios,
intervals, Wald tests) are computed from the stored estimate on access.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

import numpy as np
from numpy.typing import NDArray
from scipy import stats

from hazardtrend.core.result import Result
from hazardtrend.core.validation import check_probability
from hazardtrend.survival._common import CoxParams, FPMParams, KMParams, ZPHParams
from hazardtrend.survival._fpm import predict_hazard_ratio, predict_survival_hazard
from hazardtrend.survival._km import step_lookup


def _z(conf_level: float) -> float:
    check_probability(conf_level, "conf_level")
    return float(stats.norm.ppf((1.0 + conf_level) / 2.0))


class KMSolution:
    """Kaplan-Meier survival curve solution.

    Properties mirror R's survfit() output.
    """

    __slots__ = ('_result',)

    def __init__(self, _result: Result[KMParams]) -> None:
        self._result = _result

    # -- Properties delegating to KMParams --

    @property
    def time(self):
        """Unique event times."""
        return self._result.params.time

    @property
    def survival(self):
        """S(t) at each event time."""
        return self._result.params.survival

    @property
    def n_risk(self):
        """Number at risk just before each event time."""
        return self._result.params.n_risk

    @property
    def n_events(self):
        """Number of events at each event time."""
        return self._result.params.n_events

    @property
    def n_censored(self):
        """Number censored since the previous event time."""
        return self._result.params.n_censored

    @property
    def variance(self):
        """Greenwood variance of S(t)."""
        return self._result.params.variance

    @property
    def se(self):
        """Greenwood standard error of S(t)."""
        return self._result.params.se

    @property
    def ci_lower(self):
        return self._result.params.ci_lower

    @property
    def ci_upper(self):
        return self._result.params.ci_upper

    @property
    def conf_level(self) -> float:
        return self._result.params.conf_level

    @property
    def conf_type(self) -> str:
        return self._result.params.conf_type

    @property
    def n_observations(self) -> int:
        return self._result.params.n_observations

    @property
    def n_events_total(self) -> int:
        return self._result.params.n_events_total

    @property
    def median_survival(self) -> float | None:
        """Median survival time (smallest t where S(t) <= 0.5)."""
        if len(self.survival) == 0:
            return None
        idx = self.survival <= 0.5
        if not idx.any():
            return None
        return float(self.time[idx][0])

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def timing(self):
        return self._result.timing

    # -- Curve access --

    def points(self) -> list[tuple[float, float, int, int, float]]:
        """(time, survival, n_risk, n_events, variance) per event time."""
        return [
            (float(t), float(s), int(n), int(d), float(v))
            for t, s, n, d, v in zip(
                self.time, self.survival, self.n_risk,
                self.n_events, self.variance,
            )
        ]

    def evaluate(self, times) -> NDArray:
        """S(t) at arbitrary times (step lookup, 1.0 before the first event)."""
        times = np.asarray(times, dtype=np.float64)
        return step_lookup(self.time, self.survival, times, 1.0)

    def cumulative_incidence(self, times=None) -> NDArray:
        """1 - S(t); at the event times when ``times`` is None."""
        if times is None:
            return 1.0 - self.survival
        return 1.0 - self.evaluate(times)

    def cloglog(self) -> tuple[NDArray, NDArray]:
        """(log t, log(-log S(t))) for points with 0 < S(t) < 1.

        Parallel curves across arms are consistent with proportional
        hazards.
        """
        keep = (self.survival > 0) & (self.survival < 1)
        return np.log(self.time[keep]), np.log(-np.log(self.survival[keep]))

    def summary(self) -> str:
        """R-style summary of Kaplan-Meier fit."""
        lines = []
        lines.append("Call: kaplan_meier()")
        lines.append("")
        lines.append(
            f"  n={self.n_observations}, "
            f"events={self.n_events_total}"
        )
        lines.append("")

        median = self.median_survival
        median_str = f"{median:.4g}" if median is not None else "NA"
        lines.append(f"  median survival = {median_str}")
        lines.append("")

        ci_pct = int(round(self.conf_level * 100))
        lines.append(
            f"  {'time':>8s}  {'n.risk':>8s}  {'n.event':>8s}  "
            f"{'survival':>10s}  {'std.err':>10s}  "
            f"{f'lower {ci_pct}%':>10s}  {f'upper {ci_pct}%':>10s}"
        )

        m = len(self.time)
        show = min(m, 20)
        for i in range(show):
            lines.append(
                f"  {self.time[i]:8.4g}  {self.n_risk[i]:8.0f}  "
                f"{self.n_events[i]:8.0f}  "
                f"{self.survival[i]:10.6f}  {self.se[i]:10.6f}  "
                f"{self.ci_lower[i]:10.6f}  {self.ci_upper[i]:10.6f}"
            )
        if m > 20:
            lines.append(f"  ... ({m - 20} more rows)")

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"KMSolution(n={self.n_observations}, "
            f"events={self.n_events_total}, "
            f"median={self.median_survival})"
        )


class StratifiedKMSolution:
    """Kaplan-Meier curves per arm."""

    __slots__ = ('_strata',)

    def __init__(self, strata: dict[int, KMSolution]) -> None:
        self._strata = dict(strata)

    @property
    def strata(self) -> dict[int, KMSolution]:
        return dict(self._strata)

    @property
    def arms(self) -> tuple[int, ...]:
        return tuple(sorted(self._strata))

    def __getitem__(self, arm: int) -> KMSolution:
        if arm not in self._strata:
            raise KeyError(f"no stratum for arm {arm}; available: {self.arms}")
        return self._strata[arm]

    def __iter__(self) -> Iterator[int]:
        return iter(self.arms)

    def __len__(self) -> int:
        return len(self._strata)

    def evaluate(self, times) -> dict[int, NDArray]:
        """S(t) per arm at arbitrary times."""
        return {arm: km.evaluate(times) for arm, km in self._strata.items()}

    def cumulative_incidence(self, times=None) -> dict[int, NDArray]:
        return {arm: km.cumulative_incidence(times) for arm, km in self._strata.items()}

    def summary(self) -> str:
        blocks = []
        for arm in self.arms:
            blocks.append(f"arm={arm}")
            blocks.append(self._strata[arm].summary())
            blocks.append("")
        return "\n".join(blocks).rstrip()

    def __repr__(self) -> str:
        inner = ", ".join(
            f"{arm}: n={self._strata[arm].n_observations}" for arm in self.arms
        )
        return f"StratifiedKMSolution({inner})"


class CoxSolution:
    """Cox proportional hazards solution for the arm covariate.

    Properties mirror R's coxph() output.
    """

    __slots__ = ('_result',)

    def __init__(self, _result: Result[CoxParams]) -> None:
        self._result = _result

    @property
    def coefficients(self):
        return self._result.params.coefficients

    @property
    def coefficient(self) -> float:
        """log hazard ratio, treatment vs control."""
        return float(self._result.params.coefficients[0])

    @property
    def covariance(self):
        return self._result.params.covariance

    @property
    def variance(self) -> float:
        return float(self._result.params.covariance[0, 0])

    @property
    def standard_error(self) -> float:
        return float(np.sqrt(self.variance))

    @property
    def hazard_ratio(self) -> float:
        return float(np.exp(self.coefficient))

    def conf_int(self, conf_level: float = 0.95) -> tuple[float, float]:
        """Wald interval for the hazard ratio: exp(β ± z·SE)."""
        z = _z(conf_level)
        return (
            float(np.exp(self.coefficient - z * self.standard_error)),
            float(np.exp(self.coefficient + z * self.standard_error)),
        )

    @property
    def z_statistic(self) -> float:
        return self.coefficient / self.standard_error

    @property
    def p_value(self) -> float:
        """Two-sided Wald p-value."""
        return float(2.0 * stats.norm.sf(abs(self.z_statistic)))

    @property
    def loglik(self) -> tuple[float, float]:
        return self._result.params.loglik

    @property
    def log_likelihood(self) -> float:
        return self._result.params.loglik[1]

    def likelihood_ratio_test(self) -> tuple[float, int, float]:
        """(statistic, df, p-value) of the model vs β = 0."""
        statistic = 2.0 * (self.loglik[1] - self.loglik[0])
        df = len(self.coefficients)
        return float(statistic), df, float(stats.chi2.sf(statistic, df))

    @property
    def score(self):
        return self._result.params.score

    @property
    def concordance(self) -> float:
        return self._result.params.concordance

    @property
    def n_events(self) -> int:
        return self._result.params.n_events

    @property
    def n_observations(self) -> int:
        return self._result.params.n_observations

    @property
    def n_iter(self) -> int:
        return self._result.params.n_iter

    @property
    def converged(self) -> bool:
        return self._result.params.converged

    @property
    def ties(self) -> str:
        return self._result.params.ties

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def timing(self):
        return self._result.timing

    def summary(self, conf_level: float = 0.95) -> str:
        """R-style summary of Cox PH fit."""
        lower, upper = self.conf_int(conf_level)
        ci_pct = int(round(conf_level * 100))
        lines = []
        lines.append("Call: coxph()")
        lines.append("")
        lines.append(
            f"  n= {self.n_observations}, "
            f"number of events= {self.n_events}"
        )
        lines.append("")
        lines.append(
            f"  {'':>6s}  {'coef':>10s}  {'exp(coef)':>10s}  "
            f"{'se(coef)':>10s}  {'z':>10s}  {'Pr(>|z|)':>12s}"
        )
        lines.append(
            f"  {'arm':>6s}  {self.coefficient:10.6f}  "
            f"{self.hazard_ratio:10.6f}  "
            f"{self.standard_error:10.6f}  "
            f"{self.z_statistic:10.4f}  "
            f"{self.p_value:12.4g}"
        )
        lines.append("")
        lines.append(
            f"  exp(coef) {ci_pct}% CI: [{lower:.4f}, {upper:.4f}]"
        )
        lines.append(f"  Concordance= {self.concordance:.4f}")
        lr_stat, df, lr_p = self.likelihood_ratio_test()
        lines.append(
            f"  Likelihood ratio test= {lr_stat:.4f} on {df} df, p={lr_p:.4g}"
        )

        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"CoxSolution(n={self.n_observations}, "
            f"events={self.n_events}, "
            f"hr={self.hazard_ratio:.4f})"
        )


class ZPHSolution:
    """Proportional-hazards test solution.

    Properties mirror R's cox.zph() output. The p-value is reported as
    is; deciding what counts as a violation is left to the caller.
    """

    __slots__ = ('_result',)

    def __init__(self, _result: Result[ZPHParams]) -> None:
        self._result = _result

    @property
    def test_statistic(self) -> float:
        """Global chi-square statistic."""
        return self._result.params.global_statistic

    @property
    def df(self) -> int:
        return self._result.params.global_df

    @property
    def p_value(self) -> float:
        return self._result.params.global_p_value

    @property
    def statistics(self):
        """Per-covariate chi-square statistics."""
        return self._result.params.statistics

    @property
    def p_values(self):
        return self._result.params.p_values

    @property
    def event_times(self):
        return self._result.params.event_times

    @property
    def transformed_times(self):
        return self._result.params.transformed_times

    @property
    def residuals(self) -> NDArray:
        """Unscaled Schoenfeld residuals for arm, one per event."""
        return self._result.params.residuals[:, 0]

    @property
    def scaled_residuals(self) -> NDArray:
        return self._result.params.scaled_residuals[:, 0]

    @property
    def coefficient_path(self) -> NDArray:
        """β + scaled residual: pointwise estimates of β(t), as R plots."""
        return self._result.params.coefficients[0] + self.scaled_residuals

    @property
    def residual_series(self) -> list[tuple[float, float]]:
        """(event_time, scaled residual) pairs in event-time order."""
        return [
            (float(t), float(r))
            for t, r in zip(self.event_times, self.scaled_residuals)
        ]

    @property
    def transform(self) -> str:
        return self._result.params.transform

    @property
    def method(self) -> str:
        return self._result.params.method

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def timing(self):
        return self._result.timing

    def summary(self) -> str:
        """R-style cox.zph table."""
        lines = []
        lines.append(f"Call: cox_zph(transform='{self.transform}')")
        lines.append("")
        lines.append(f"  {'':>8s}  {'chisq':>10s}  {'df':>4s}  {'p':>10s}")
        lines.append(
            f"  {'arm':>8s}  {self.statistics[0]:10.4f}  "
            f"{int(self._result.params.df[0]):4d}  {self.p_values[0]:10.4g}"
        )
        lines.append(
            f"  {'GLOBAL':>8s}  {self.test_statistic:10.4f}  "
            f"{self.df:4d}  {self.p_value:10.4g}"
        )
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"ZPHSolution(chisq={self.test_statistic:.4f}, "
            f"df={self.df}, p={self.p_value:.4g})"
        )


@dataclass(frozen=True, eq=False)
class HRCurve:
    """Hazard ratio over time with pointwise confidence bands."""

    time: NDArray
    estimate: NDArray
    lower: NDArray
    upper: NDArray
    conf_level: float
    scale: str

    def rows(self) -> list[tuple[float, float, float, float]]:
        """(time, estimate, lower, upper) per query time."""
        return [
            (float(t), float(e), float(lo), float(hi))
            for t, e, lo, hi in zip(self.time, self.estimate, self.lower, self.upper)
        ]

    def __len__(self) -> int:
        return len(self.time)

    def __iter__(self):
        return iter(self.rows())


class FPMSolution:
    """Flexible parametric survival model solution.

    Properties mirror rstpm2's stpm2() fit with a tvc term for arm.
    """

    __slots__ = ('_result',)

    def __init__(self, _result: Result[FPMParams]) -> None:
        self._result = _result

    @property
    def params(self) -> FPMParams:
        return self._result.params

    @property
    def coefficients(self):
        return self._result.params.coefficients

    @property
    def baseline_coefficients(self):
        return self._result.params.baseline_coefficients

    @property
    def treatment_coefficient(self) -> float:
        return self._result.params.treatment_coefficient

    @property
    def time_varying_coefficients(self):
        return self._result.params.time_varying_coefficients

    @property
    def covariance(self):
        return self._result.params.covariance

    @property
    def standard_errors(self) -> NDArray:
        return np.sqrt(np.diag(self.covariance))

    @property
    def knots(self) -> NDArray:
        """Baseline spline knots on the time scale, boundaries included."""
        return np.exp(self._result.params.baseline_basis.knots)

    @property
    def tvc_knots(self) -> NDArray | None:
        basis = self._result.params.tvc_basis
        return None if basis is None else np.exp(basis.knots)

    @property
    def has_tvc(self) -> bool:
        return self._result.params.tvc_basis is not None

    @property
    def loglik(self) -> float:
        return self._result.params.loglik

    @property
    def n_params(self) -> int:
        return len(self.coefficients)

    @property
    def aic(self) -> float:
        return -2.0 * self.loglik + 2.0 * self.n_params

    @property
    def bic(self) -> float:
        return -2.0 * self.loglik + np.log(self.n_events) * self.n_params

    @property
    def time_range(self) -> tuple[float, float]:
        return self._result.params.time_range

    @property
    def n_events(self) -> int:
        return self._result.params.n_events

    @property
    def n_observations(self) -> int:
        return self._result.params.n_observations

    @property
    def n_iter(self) -> int:
        return self._result.params.n_iter

    @property
    def converged(self) -> bool:
        return self._result.params.converged

    @property
    def backend_name(self) -> str:
        return self._result.backend_name

    @property
    def timing(self):
        return self._result.timing

    @property
    def warnings(self) -> tuple[str, ...]:
        return self._result.warnings

    # -- Predictions --

    def hazard_ratio(
        self,
        times,
        conf_level: float = 0.95,
        scale: str = "coefficient",
    ) -> HRCurve:
        """HR(t), treatment vs control, with delta-method bands.

        Parameters
        ----------
        times : array-like
            Query times within the observed follow-up range.
        conf_level : float
            Confidence level of the pointwise bands.
        scale : str
            "coefficient": exp(β + s_tvc(log t)), the time-varying
            coefficient on the log cumulative hazard scale.
            "hazard": ratio of the two fitted hazards h(t|1)/h(t|0).

        Raises
        ------
        OutOfRangeError
            If a query time lies outside the observed follow-up range.
        """
        check_probability(conf_level, "conf_level")
        t, est, lower, upper = predict_hazard_ratio(
            self._result.params, times, conf_level, scale,
        )
        return HRCurve(
            time=t, estimate=est, lower=lower, upper=upper,
            conf_level=conf_level, scale=scale,
        )

    def hr_curve(
        self,
        n_points: int = 200,
        conf_level: float = 0.95,
        scale: str = "coefficient",
    ) -> HRCurve:
        """HR(t) on an evenly spaced grid over the observed follow-up."""
        lower, upper = self.time_range
        return self.hazard_ratio(
            np.linspace(lower, upper, n_points), conf_level, scale,
        )

    def survival(self, times, arm: int) -> NDArray:
        """Fitted S(t | arm)."""
        return predict_survival_hazard(self._result.params, times, arm)[1]

    def hazard(self, times, arm: int) -> NDArray:
        """Fitted h(t | arm)."""
        return predict_survival_hazard(self._result.params, times, arm)[2]

    def summary(self) -> str:
        """Coefficient table of the flexible parametric fit."""
        names = ["(Intercept)"]
        names += [f"rcs{j + 1}" for j in range(len(self.baseline_coefficients) - 1)]
        names += ["arm"]
        names += [f"arm:rcs{j + 1}" for j in range(len(self.time_varying_coefficients))]

        lines = []
        lines.append("Call: stpm2()")
        lines.append("")
        lines.append(
            f"  n= {self.n_observations}, number of events= {self.n_events}"
        )
        lines.append("")
        lines.append(f"  {'':>12s}  {'coef':>10s}  {'se(coef)':>10s}")
        for name, coef, se in zip(names, self.coefficients, self.standard_errors):
            lines.append(f"  {name:>12s}  {coef:10.6f}  {se:10.6f}")
        lines.append("")
        lines.append(
            f"  log-likelihood= {self.loglik:.4f}, AIC= {self.aic:.4f}, "
            f"BIC= {self.bic:.4f}"
        )
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"FPMSolution(n={self.n_observations}, events={self.n_events}, "
            f"df={len(self.baseline_coefficients) - 1}, "
            f"tvc_df={len(self.time_varying_coefficients)})"
        )


@dataclass(frozen=True, eq=False)
class WindowFit:
    """Cox fit on the subjects at risk in (start, stop]."""

    start: float
    stop: float | None
    fit: CoxSolution

    def row(self, conf_level: float = 0.95) -> tuple:
        lower, upper = self.fit.conf_int(conf_level)
        return (
            self.start, self.stop, self.fit.hazard_ratio, lower, upper,
            self.fit.n_observations, self.fit.n_events,
        )


@dataclass(frozen=True, eq=False)
class LandmarkPeriod:
    """Early and late Cox fits around one landmark."""

    landmark: float
    early: CoxSolution
    late: CoxSolution


class LandmarkSolution:
    """Landmark analysis: independent early/late hazard ratios per landmark."""

    __slots__ = ('_periods', '_conf_level')

    def __init__(
        self,
        periods: tuple[LandmarkPeriod, ...],
        conf_level: float = 0.95,
    ) -> None:
        self._periods = tuple(periods)
        self._conf_level = conf_level

    @property
    def periods(self) -> tuple[LandmarkPeriod, ...]:
        return self._periods

    @property
    def conf_level(self) -> float:
        return self._conf_level

    @property
    def landmarks(self) -> tuple[float, ...]:
        return tuple(p.landmark for p in self._periods)

    def __getitem__(self, landmark: float) -> LandmarkPeriod:
        for period in self._periods:
            if period.landmark == landmark:
                return period
        raise KeyError(f"no landmark {landmark}; available: {self.landmarks}")

    def __iter__(self) -> Iterator[LandmarkPeriod]:
        return iter(self._periods)

    def __len__(self) -> int:
        return len(self._periods)

    def to_rows(self, conf_level: float | None = None) -> list[tuple]:
        """(landmark, period, hr, lower, upper, n, events) per cohort."""
        if conf_level is None:
            conf_level = self._conf_level
        rows = []
        for period in self._periods:
            for label, fit in (("early", period.early), ("late", period.late)):
                lower, upper = fit.conf_int(conf_level)
                rows.append((
                    period.landmark, label, fit.hazard_ratio, lower, upper,
                    fit.n_observations, fit.n_events,
                ))
        return rows

    def summary(self, conf_level: float | None = None) -> str:
        if conf_level is None:
            conf_level = self._conf_level
        ci_pct = int(round(conf_level * 100))
        lines = ["Call: landmark_analysis()", ""]
        lines.append(
            f"  {'landmark':>9s}  {'period':>6s}  {'n':>6s}  {'events':>6s}  "
            f"{'HR':>8s}  {f'lower {ci_pct}%':>10s}  {f'upper {ci_pct}%':>10s}"
        )
        for landmark, label, hr, lower, upper, n, events in self.to_rows(conf_level):
            lines.append(
                f"  {landmark:9.4g}  {label:>6s}  {n:6d}  {events:6d}  "
                f"{hr:8.4f}  {lower:10.4f}  {upper:10.4f}"
            )
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"LandmarkSolution(landmarks={self.landmarks})"


class PiecewiseSolution:
    """Cox hazard ratios on consecutive follow-up windows."""

    __slots__ = ('_windows',)

    def __init__(self, windows: tuple[WindowFit, ...]) -> None:
        self._windows = tuple(windows)

    @property
    def windows(self) -> tuple[WindowFit, ...]:
        return self._windows

    def __iter__(self) -> Iterator[WindowFit]:
        return iter(self._windows)

    def __len__(self) -> int:
        return len(self._windows)

    def to_rows(self, conf_level: float = 0.95) -> list[tuple]:
        """(start, stop, hr, lower, upper, n, events) per window."""
        return [w.row(conf_level) for w in self._windows]

    def __repr__(self) -> str:
        bounds = ", ".join(
            f"({w.start:g}, {'inf' if w.stop is None else f'{w.stop:g}'}]"
            for w in self._windows
        )
        return f"PiecewiseSolution({bounds})"
