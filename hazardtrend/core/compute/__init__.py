"""
Shared compute infrastructure for hazardtrend.

IMPORTANT: This is NOT where model-specific backends live. Those go in
survival/backends/. This module contains shared NUMERIC infrastructure.

Submodules:
    timing: Execution timing utilities
    tolerances: Precision tiers
    optimization: Newton-Raphson and quasi-Newton optimizers
"""

from hazardtrend.core.compute.timing import Timer, timed
from hazardtrend.core.compute.optimization import (
    OptimizeResult,
    newton_raphson,
    quasi_newton,
)

__all__ = [
    # Timing
    "Timer",
    "timed",
    # Optimization
    "OptimizeResult",
    "newton_raphson",
    "quasi_newton",
]
