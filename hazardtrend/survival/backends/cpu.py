"""
CPU backends for the survival likelihood fits.

Each backend satisfies the core Backend protocol, fit(data, config) ->
Result[P]. The optimizer is chosen by config.method ("newton" or "bfgs");
the backend name records which strategy produced a result.
"""

from __future__ import annotations

from hazardtrend.core.compute.timing import Timer
from hazardtrend.core.protocols import Backend
from hazardtrend.core.result import Result
from hazardtrend.survival._common import CoxConfig, CoxParams, FPMConfig, FPMParams
from hazardtrend.survival._cox import cox_fit
from hazardtrend.survival._fpm import fpm_fit
from hazardtrend.survival.design import SubjectStore

# Events per estimated parameter below which a time-varying fit is flagged.
MIN_EVENTS_PER_PARAMETER = 10

# Step halvings across a Newton fit above which the fit is flagged.
MAX_QUIET_HALVINGS = 10


class CoxBackend:
    """Cox partial likelihood on the arm covariate."""

    def __init__(self, method: str = "newton"):
        self._method = method

    @property
    def name(self) -> str:
        return f"cpu_{self._method}_cox"

    def fit(self, data: SubjectStore, config: CoxConfig) -> Result[CoxParams]:
        timer = Timer()
        timer.start()

        with timer.section('optimization'):
            params = cox_fit(data.time, data.event, data.X, config)

        timer.stop()

        return Result(
            params=params,
            info={
                "method": "Cox PH",
                "ties": config.ties,
                "optimizer": config.method,
                "n_iter": params.n_iter,
                "converged": params.converged,
            },
            timing=timer.result(),
            backend_name=self.name,
            warnings=(),
        )


class FPMBackend:
    """Royston-Parmar full likelihood with a time-varying arm effect."""

    def __init__(self, method: str = "newton"):
        self._method = method

    @property
    def name(self) -> str:
        return f"cpu_{self._method}_fpm"

    def fit(self, data: SubjectStore, config: FPMConfig) -> Result[FPMParams]:
        timer = Timer()
        timer.start()
        warnings_list = []

        with timer.section('optimization'):
            params = fpm_fit(data.time, data.event, data.arm, config)

        n_params = len(params.coefficients)
        if params.n_events < MIN_EVENTS_PER_PARAMETER * n_params:
            warnings_list.append(
                f"Only {params.n_events} events for {n_params} parameters; "
                f"the time-varying hazard ratio may be poorly determined"
            )
        if params.n_halvings > MAX_QUIET_HALVINGS:
            warnings_list.append(
                f"Newton steps were halved {params.n_halvings} times; "
                f"the likelihood surface is flat or the hazard nearly zero "
                f"somewhere in follow-up"
            )

        timer.stop()

        return Result(
            params=params,
            info={
                "method": "Flexible parametric (Royston-Parmar)",
                "df": config.df,
                "tvc_df": config.tvc_df,
                "penalty": config.penalty,
                "optimizer": config.method,
                "n_iter": params.n_iter,
                "converged": params.converged,
            },
            timing=timer.result(),
            backend_name=self.name,
            warnings=tuple(warnings_list),
        )


def select_backend(model: str, method: str) -> Backend:
    """Backend for a model ("cox" or "fpm") and optimizer strategy."""
    if method not in ("newton", "bfgs"):
        raise ValueError(f"method must be 'newton' or 'bfgs', got '{method}'")
    if model == "cox":
        return CoxBackend(method)
    if model == "fpm":
        return FPMBackend(method)
    raise ValueError(f"Unknown model '{model}'")


__all__ = ["CoxBackend", "FPMBackend", "select_backend"]
