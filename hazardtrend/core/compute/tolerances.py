"""
Tolerance tiers for numerical work.

Defines the precision expected from each fitting path:
- exact: closed-form or Newton-converged quantities (Cox beta, KM steps)
- iterative: quasi-Newton fits, which stop on a gradient criterion
- model: agreement between two different estimators of the same
  quantity (flexible parametric PH fit vs the Cox partial likelihood)

Used by the test suite to compare fits against reference values.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ToleranceTier:
    """Tolerance specification for numerical comparison."""
    rtol: float
    atol: float
    name: str
    description: str


EXACT = ToleranceTier(
    rtol=1e-8,
    atol=1e-10,
    name='exact',
    description='Newton-converged or closed-form quantities',
)

ITERATIVE = ToleranceTier(
    rtol=1e-4,
    atol=1e-6,
    name='iterative',
    description='quasi-Newton optimum, gradient-based stopping rule',
)

MODEL = ToleranceTier(
    rtol=5e-2,
    atol=1e-2,
    name='model',
    description='two estimators of the same hazard ratio',
)


def select_tolerance(backend_name: str) -> ToleranceTier:
    """Select the tolerance tier that matches a backend's stopping rule."""
    if 'bfgs' in backend_name:
        return ITERATIVE
    return EXACT
