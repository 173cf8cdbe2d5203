"""
Core infrastructure for hazardtrend.

Shared abstractions used by the survival modelling components.

Key components:
    protocols: DataSource, Backend protocols
    result: Generic Result[P] envelope
    exceptions: Exception hierarchy
    validation: Input validators
    compute: Timing, tolerances, optimizers
"""

from hazardtrend.core.protocols import DataSource, Backend
from hazardtrend.core.result import Result
from hazardtrend.core.exceptions import (
    HazardTrendError,
    ValidationError,
    DimensionError,
    InsufficientEventsError,
    OutOfRangeError,
    DegenerateCohortError,
    NumericalError,
    SingularMatrixError,
    NotPositiveDefiniteError,
    ConvergenceError,
)

__all__ = [
    # Protocols
    "DataSource",
    "Backend",
    # Result
    "Result",
    # Exceptions
    "HazardTrendError",
    "ValidationError",
    "DimensionError",
    "InsufficientEventsError",
    "OutOfRangeError",
    "DegenerateCohortError",
    "NumericalError",
    "SingularMatrixError",
    "NotPositiveDefiniteError",
    "ConvergenceError",
]
