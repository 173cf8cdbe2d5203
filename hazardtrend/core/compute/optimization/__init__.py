"""
Optimizers for the likelihood fits.

Both fitting engines (Cox partial likelihood, flexible parametric full
likelihood) expose the same objective signature:

    objective(x) -> (value, gradient, hessian)

where value is the log-likelihood to MAXIMISE and may be -inf when x lies
outside the model's domain (e.g. a negative hazard). Two interchangeable
strategies consume it:

    newton_raphson  damped Newton with step halving (default)
    quasi_newton    scipy BFGS on the gradient, Hessian evaluated once
                      at the optimum for the covariance

Both raise ConvergenceError rather than returning a half-converged point.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np
from numpy.typing import NDArray
from scipy.optimize import minimize

from hazardtrend.core.exceptions import (
    ConvergenceError,
    NumericalError,
    SingularMatrixError,
)

Objective = Callable[[NDArray], tuple[float, NDArray, NDArray]]


@dataclass(frozen=True)
class OptimizeResult:
    """Converged optimizer state."""

    x: NDArray
    value: float
    gradient: NDArray
    hessian: NDArray
    n_iter: int
    n_evals: int
    n_halvings: int
    final_change: float | None
    method: str


def newton_raphson(
    objective: Objective,
    x0: NDArray,
    *,
    tol: float = 1e-8,
    max_iter: int = 30,
    max_step: float | None = None,
    max_halving: int = 30,
) -> OptimizeResult:
    """Maximise an objective by Newton-Raphson with step halving.

    Iterates x <- x - H^{-1} g until the full Newton step satisfies
    max|dx| < tol. The test uses the step before capping and halving, so a
    step shrunk to stay inside the domain never counts as convergence.

    Parameters
    ----------
    objective : callable
        x -> (value, gradient, hessian).
    x0 : NDArray
        Starting point; must have a finite objective value.
    tol : float
        Convergence threshold on the max absolute full Newton step.
    max_iter : int
        Iteration cap. Exceeding it raises ConvergenceError.
    max_step : float or None
        Cap on max|dx| per iteration (prevents exp() overflow in early
        iterations of the Cox fit).
    max_halving : int
        Number of times a step may be halved while searching for a point
        that does not decrease the objective.

    Returns
    -------
    OptimizeResult

    Raises
    ------
    ConvergenceError
        Iteration cap hit, or no ascent step found.
    SingularMatrixError
        Hessian cannot be solved against.
    NumericalError
        Starting point outside the objective's domain.
    """
    x = np.asarray(x0, dtype=np.float64).copy()
    value, grad, hess = objective(x)
    n_evals = 1
    n_halvings = 0

    if not np.isfinite(value):
        raise NumericalError(
            f"Objective is not finite at the starting point (value={value})"
        )

    change = np.inf
    for iteration in range(1, max_iter + 1):
        try:
            step = np.linalg.solve(-hess, grad)
        except np.linalg.LinAlgError as e:
            raise SingularMatrixError(
                f"Hessian is singular at iteration {iteration}",
                matrix_name="hessian",
                expected_rank=len(x),
            ) from e

        change = float(np.max(np.abs(step))) if step.size else 0.0
        if max_step is not None and change > max_step:
            step = step * (max_step / change)

        floor = value - 1e-10 * (1.0 + abs(value))
        for _ in range(max_halving + 1):
            x_new = x + step
            value_new, grad_new, hess_new = objective(x_new)
            n_evals += 1
            if np.isfinite(value_new) and value_new >= floor:
                break
            step = step / 2.0
            n_halvings += 1
        else:
            raise ConvergenceError(
                f"No ascent step found after {max_halving} halvings "
                f"at iteration {iteration}",
                iterations=iteration,
                final_change=float(change),
                reason='no_ascent',
                threshold=tol,
            )

        x, value, grad, hess = x_new, value_new, grad_new, hess_new

        if change < tol:
            return OptimizeResult(
                x=x,
                value=float(value),
                gradient=grad,
                hessian=hess,
                n_iter=iteration,
                n_evals=n_evals,
                n_halvings=n_halvings,
                final_change=change,
                method='newton',
            )

    raise ConvergenceError(
        f"Newton-Raphson did not converge in {max_iter} iterations "
        f"(last max|delta| = {change:.3g}, tolerance {tol:.3g})",
        iterations=max_iter,
        final_change=change,
        reason='max_iterations',
        threshold=tol,
    )


def quasi_newton(
    objective: Objective,
    x0: NDArray,
    *,
    tol: float = 1e-6,
    max_iter: int = 200,
) -> OptimizeResult:
    """Maximise an objective with BFGS, then evaluate the exact Hessian.

    Only value and gradient drive the search; the Hessian is computed once
    at the optimum so that standard errors match the Newton path.

    Parameters
    ----------
    objective : callable
        x -> (value, gradient, hessian).
    x0 : NDArray
        Starting point.
    tol : float
        Gradient-norm tolerance passed to BFGS as gtol.
    max_iter : int
        Maximum BFGS iterations.

    Raises
    ------
    ConvergenceError
        If BFGS reports failure.
    """
    n_evals = 0

    def negated(x):
        nonlocal n_evals
        n_evals += 1
        value, grad, _ = objective(x)
        if not np.isfinite(value):
            return np.inf, np.zeros_like(x)
        return -value, -grad

    opt = minimize(
        negated,
        np.asarray(x0, dtype=np.float64),
        jac=True,
        method='BFGS',
        options={'maxiter': max_iter, 'gtol': tol, 'disp': False},
    )

    if not opt.success:
        raise ConvergenceError(
            f"BFGS did not converge: {opt.message}",
            iterations=int(getattr(opt, 'nit', 0)),
            reason=str(opt.message),
            threshold=tol,
        )

    value, grad, hess = objective(opt.x)
    return OptimizeResult(
        x=np.asarray(opt.x, dtype=np.float64),
        value=float(value),
        gradient=grad,
        hessian=hess,
        n_iter=int(opt.nit),
        n_evals=n_evals + 1,
        n_halvings=0,
        final_change=None,
        method='bfgs',
    )


__all__ = ["OptimizeResult", "newton_raphson", "quasi_newton"]
