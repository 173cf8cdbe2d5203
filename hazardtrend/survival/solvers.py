"""
Public API for survival analysis.

    kaplan_meier(data) → KMSolution | StratifiedKMSolution
    coxph(data) → CoxSolution
    cox_zph(fit, data) → ZPHSolution
    stpm2(data) → FPMSolution
    landmark_analysis(data, landmarks) → LandmarkSolution
    piecewise_hazard_ratios(data, breaks) → PiecewiseSolution

Each function validates inputs, builds a config, dispatches to the
appropriate backend, and wraps the Result in a Solution.
"""

from __future__ import annotations

import concurrent.futures
import warnings
from typing import Literal, Sequence

import numpy as np

from hazardtrend.core.compute.timing import Timer
from hazardtrend.core.exceptions import ValidationError
from hazardtrend.core.result import Result
from hazardtrend.core.validation import check_probability
from hazardtrend.survival._common import (
    VALID_METHODS, VALID_TIES, VALID_TRANSFORMS, VALID_ZPH_METHODS,
    CoxConfig, FPMConfig,
)
from hazardtrend.survival._km import kaplan_meier_fit
from hazardtrend.survival._landmark import early_cohort, late_cohort, window_cohort
from hazardtrend.survival._schoenfeld import zph_test
from hazardtrend.survival.backends import select_backend
from hazardtrend.survival.design import SubjectStore
from hazardtrend.survival.solution import (
    CoxSolution, FPMSolution, KMSolution, LandmarkPeriod, LandmarkSolution,
    PiecewiseSolution, StratifiedKMSolution, WindowFit, ZPHSolution,
)


def _check_store(data) -> SubjectStore:
    if not isinstance(data, SubjectStore):
        raise TypeError(
            f"data must be a SubjectStore, got {type(data).__name__}; "
            f"build one with SubjectStore.from_arrays() or from_records()"
        )
    return data


def _check_choice(value: str, valid: tuple[str, ...], name: str) -> None:
    if value not in valid:
        options = ", ".join(f"'{v}'" for v in valid)
        raise ValueError(f"{name} must be one of {options}, got '{value}'")


def _check_both_arms(data: SubjectStore, caller: str) -> None:
    n_treated = int(np.sum(data.arm))
    if n_treated == 0 or n_treated == data.n:
        raise ValidationError(
            f"{caller} needs subjects in both arms; got {n_treated} treated "
            f"of {data.n}"
        )


def _check_iteration(tol: float, max_iter: int) -> None:
    if not tol > 0:
        raise ValueError(f"tol must be positive, got {tol}")
    if max_iter < 1:
        raise ValueError(f"max_iter must be >= 1, got {max_iter}")


def kaplan_meier(
    data: SubjectStore,
    *,
    by_arm: bool = False,
    conf_level: float = 0.95,
    conf_type: Literal["log", "plain", "log-log"] = "log",
) -> KMSolution | StratifiedKMSolution:
    """Kaplan-Meier survival curve estimation.

    Matches R's survival::survfit(Surv(time, event) ~ 1), or
    survfit(Surv(time, event) ~ arm) when by_arm=True.

    Parameters
    ----------
    data : SubjectStore
        Subjects to estimate over.
    by_arm : bool
        Estimate one curve per arm.
    conf_level : float
        Confidence level for CI (default 0.95).
    conf_type : str
        CI transformation: "log" (R default), "plain", "log-log".

    Returns
    -------
    KMSolution, or StratifiedKMSolution keyed by arm when by_arm=True
    """
    data = _check_store(data)
    check_probability(conf_level, "conf_level")
    _check_choice(conf_type, ("log", "plain", "log-log"), "conf_type")

    if by_arm:
        strata = {}
        for arm in (0, 1):
            if np.any(data.arm == arm):
                strata[arm] = _km_solution(data.by_arm(arm), conf_level, conf_type)
        return StratifiedKMSolution(strata)

    return _km_solution(data, conf_level, conf_type)


def _km_solution(data: SubjectStore, conf_level: float, conf_type: str) -> KMSolution:
    timer = Timer()
    timer.start()

    params = kaplan_meier_fit(
        data.time, data.event,
        conf_level=conf_level,
        conf_type=conf_type,
    )

    timer.stop()

    result = Result(
        params=params,
        info={"method": "Kaplan-Meier"},
        timing=timer.result(),
        backend_name="cpu_km",
        warnings=(),
    )

    return KMSolution(_result=result)


def coxph(
    data: SubjectStore,
    *,
    ties: Literal["breslow", "efron"] = "breslow",
    tol: float = 1e-8,
    max_iter: int = 30,
    method: Literal["newton", "bfgs"] = "newton",
) -> CoxSolution:
    """Cox proportional hazards model on the treatment arm.

    Matches R's survival::coxph(Surv(time, event) ~ arm, ties="breslow").

    Parameters
    ----------
    data : SubjectStore
        Subjects to fit; both arms must be present.
    ties : str
        Method for tied event times: "breslow" (default) or "efron".
    tol : float
        Newton convergence threshold on the full step max|delta beta|.
        The BFGS path stops on the gradient norm (gtol 1e-6) instead and
        does not use tol.
    max_iter : int
        Iteration cap; exceeding it raises ConvergenceError.
    method : str
        Optimizer: "newton" (Newton-Raphson, default) or "bfgs".

    Returns
    -------
    CoxSolution

    Raises
    ------
    InsufficientEventsError
        No events in the data.
    ConvergenceError
        The iteration cap was reached (e.g. monotone likelihood when all
        events fall in one arm).
    """
    data = _check_store(data)
    _check_choice(ties, VALID_TIES, "ties")
    _check_choice(method, VALID_METHODS, "method")
    _check_iteration(tol, max_iter)

    _check_both_arms(data, "coxph")

    config = CoxConfig(ties=ties, tol=tol, max_iter=max_iter, method=method)
    result = select_backend("cox", method).fit(data, config)
    return CoxSolution(_result=result)


def cox_zph(
    fit: CoxSolution,
    data: SubjectStore,
    *,
    transform: Literal["rank", "km", "identity", "log"] = "rank",
    method: Literal["scaled", "score"] = "scaled",
) -> ZPHSolution:
    """Test the proportional hazards assumption of a Cox fit.

    Matches R's survival::cox.zph(). With transform="km" and
    method="score" it reproduces cox.zph's defaults in survival >= 3.0.

    Parameters
    ----------
    fit : CoxSolution
        Model fitted on `data`.
    data : SubjectStore
        The subjects the model was fitted on.
    transform : str
        Time scale for the trend test: "rank" (default), "km",
        "identity", "log".
    method : str
        "scaled" regresses the scaled Schoenfeld residuals on transformed
        time; "score" is the exact score test.

    Returns
    -------
    ZPHSolution
    """
    data = _check_store(data)
    if not isinstance(fit, CoxSolution):
        raise TypeError(f"fit must be a CoxSolution, got {type(fit).__name__}")
    _check_choice(transform, VALID_TRANSFORMS, "transform")
    _check_choice(method, VALID_ZPH_METHODS, "method")

    if fit.n_observations != data.n or fit.n_events != data.n_events:
        raise ValidationError(
            f"fit was produced from {fit.n_observations} subjects with "
            f"{fit.n_events} events, data has {data.n} subjects with "
            f"{data.n_events} events"
        )

    timer = Timer()
    timer.start()

    with timer.section('residuals'):
        params = zph_test(
            data.time, data.event, data.X,
            beta=fit.coefficients,
            covariance=fit.covariance,
            ties=fit.ties,
            transform=transform,
            method=method,
        )

    timer.stop()

    warnings_list = []
    if np.any(np.isnan(params.statistics)):
        warnings_list.append(
            "All events share one time; no time trend can be tested"
        )

    result = Result(
        params=params,
        info={
            "method": "Schoenfeld residual test",
            "transform": transform,
            "test": method,
        },
        timing=timer.result(),
        backend_name="cpu_zph",
        warnings=tuple(warnings_list),
    )

    return ZPHSolution(_result=result)


def stpm2(
    data: SubjectStore,
    *,
    df: int = 3,
    tvc_df: int = 1,
    knots: Sequence[float] | None = None,
    tvc_knots: Sequence[float] | None = None,
    penalty: float = 0.0,
    tol: float = 1e-8,
    max_iter: int = 100,
    method: Literal["newton", "bfgs"] = "newton",
) -> FPMSolution:
    """Flexible parametric (Royston-Parmar) survival model.

    Matches rstpm2::stpm2(Surv(time, event) ~ arm, df=df,
    tvc=list(arm=tvc_df)). The log cumulative hazard is a restricted
    cubic spline in log time, and the treatment effect varies with time
    through a second spline.

    Parameters
    ----------
    data : SubjectStore
        Subjects to fit.
    df : int
        Number of baseline spline basis functions.
    tvc_df : int
        Number of time-varying treatment basis functions; 0 fits
        proportional hazards.
    knots, tvc_knots : sequence of float or None
        Interior knots on the time scale. Default: equally spaced
        centiles of the event times.
    penalty : float
        Ridge penalty on the spline coefficients (0 = unpenalised).
    tol : float
        Newton convergence threshold on the full step max|delta theta|.
        Not used by method="bfgs", which stops on the gradient norm
        (gtol 1e-6).
    max_iter : int
        Iteration cap; exceeding it raises ConvergenceError.
    method : str
        Optimizer: "newton" (default) or "bfgs".

    Returns
    -------
    FPMSolution
    """
    data = _check_store(data)
    _check_choice(method, VALID_METHODS, "method")
    _check_iteration(tol, max_iter)
    if df < 1:
        raise ValueError(f"df must be >= 1, got {df}")
    _check_both_arms(data, "stpm2")

    config = FPMConfig(
        df=df,
        tvc_df=tvc_df,
        knots=None if knots is None else tuple(float(k) for k in knots),
        tvc_knots=None if tvc_knots is None else tuple(float(k) for k in tvc_knots),
        penalty=penalty,
        tol=tol,
        max_iter=max_iter,
        method=method,
    )
    result = select_backend("fpm", method).fit(data, config)

    for message in result.warnings:
        warnings.warn(message, RuntimeWarning, stacklevel=2)

    return FPMSolution(_result=result)


def landmark_analysis(
    data: SubjectStore,
    landmarks: Sequence[float],
    *,
    ties: Literal["breslow", "efron"] = "breslow",
    tol: float = 1e-8,
    max_iter: int = 30,
    conf_level: float = 0.95,
    max_workers: int | None = None,
) -> LandmarkSolution:
    """Separate hazard ratios before and after each landmark time.

    For a landmark L the early cohort is everyone censored at L and the
    late cohort is the survivors past L with their clock restarted at L.
    A subject with time == L is censored in the early cohort and
    excluded from the late one.

    Parameters
    ----------
    data : SubjectStore
        Full trial cohort.
    landmarks : sequence of float
        Landmark times, each > 0.
    ties, tol, max_iter
        Passed to coxph for every cohort.
    conf_level : float
        Confidence level for the reported intervals.
    max_workers : int or None
        Fit landmarks on a thread pool of this size. None or 1 fits
        them in order on the calling thread.

    Returns
    -------
    LandmarkSolution

    Raises
    ------
    DegenerateCohortError
        A landmark leaves no subject at risk in the late cohort.
    """
    data = _check_store(data)
    check_probability(conf_level, "conf_level")
    landmarks = [float(L) for L in np.atleast_1d(np.asarray(landmarks, dtype=np.float64))]
    if len(landmarks) == 0:
        raise ValidationError("landmarks must contain at least one time")
    if max_workers is not None and max_workers < 1:
        raise ValueError(f"max_workers must be >= 1, got {max_workers}")

    def fit_landmark(landmark: float) -> LandmarkPeriod:
        early = coxph(
            early_cohort(data, landmark),
            ties=ties, tol=tol, max_iter=max_iter,
        )
        late = coxph(
            late_cohort(data, landmark),
            ties=ties, tol=tol, max_iter=max_iter,
        )
        return LandmarkPeriod(landmark=landmark, early=early, late=late)

    if max_workers is None or max_workers == 1 or len(landmarks) == 1:
        periods = [fit_landmark(L) for L in landmarks]
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as ex:
            periods = list(ex.map(fit_landmark, landmarks))

    return LandmarkSolution(tuple(periods), conf_level=conf_level)


def piecewise_hazard_ratios(
    data: SubjectStore,
    breaks: Sequence[float],
    *,
    ties: Literal["breslow", "efron"] = "breslow",
    tol: float = 1e-8,
    max_iter: int = 30,
) -> PiecewiseSolution:
    """Cox hazard ratios on consecutive follow-up windows.

    Breaks b_1 < ... < b_k split follow-up into (0, b_1], (b_1, b_2],
    ..., (b_k, inf). Each window is fitted on the subjects still at risk
    at its start, with time re-originated there.

    Parameters
    ----------
    data : SubjectStore
        Full trial cohort.
    breaks : sequence of float
        Strictly increasing positive window boundaries.
    ties, tol, max_iter
        Passed to coxph for every window.

    Returns
    -------
    PiecewiseSolution
    """
    data = _check_store(data)
    breaks = np.atleast_1d(np.asarray(breaks, dtype=np.float64))
    if len(breaks) == 0:
        raise ValidationError("breaks must contain at least one time")
    if not np.all(np.isfinite(breaks)) or np.any(breaks <= 0):
        raise ValidationError("breaks must be finite and strictly positive")
    if np.any(np.diff(breaks) <= 0):
        raise ValidationError(f"breaks must be strictly increasing, got {breaks}")

    starts = [0.0] + breaks.tolist()
    stops = breaks.tolist() + [None]

    windows = []
    for start, stop in zip(starts, stops):
        fit = coxph(
            window_cohort(data, start, stop),
            ties=ties, tol=tol, max_iter=max_iter,
        )
        windows.append(WindowFit(start=start, stop=stop, fit=fit))

    return PiecewiseSolution(tuple(windows))
