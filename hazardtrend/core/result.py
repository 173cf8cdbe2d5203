"""
Generic result container for all hazardtrend computations.

Every fit (Kaplan-Meier, Cox, Schoenfeld test, flexible parametric model,
landmark refits) returns its domain payload inside this envelope, so
timing, warnings and provenance are handled the same way everywhere.

Design decisions:
    - Generic over parameter payload P for type safety
    - info dict for flexible metadata (converged, iterations, diagnostics)
    - timing is optional (don't burden unit tests)
    - Immutable (frozen=True) for reproducibility
"""

from dataclasses import dataclass, field
from typing import TypeVar, Generic, Any

import numpy as np
import scipy

P = TypeVar('P')  # Parameter payload type


def _default_provenance() -> dict[str, str]:
    """Library versions that produced a result."""
    from hazardtrend import __version__

    return {
        'hazardtrend_version': __version__,
        'numpy_version': np.__version__,
        'scipy_version': scipy.__version__,
    }


@dataclass(frozen=True)
class Result(Generic[P]):
    """
    Immutable result envelope for statistical computations.

    Type Parameters:
        P: The domain-specific parameter payload type

    Attributes:
        params: Domain-specific parameters (coefficients, curves, etc.)
        info: Structured metadata (method, convergence, diagnostics)
        timing: Execution timing breakdown, or None if not measured
        backend_name: Identifier of the backend that produced this result
        warnings: Non-fatal issues encountered during computation
        provenance: Library versions, generated automatically

    Examples:
        >>> Result(
        ...     params=CoxParams(...),
        ...     info={'method': 'Cox PH', 'n_iter': 4},
        ...     timing={'total_seconds': 0.01},
        ...     backend_name='cpu_newton'
        ... )
    """
    params: P
    info: dict[str, Any]
    timing: dict[str, float] | None
    backend_name: str
    warnings: tuple[str, ...] = field(default_factory=tuple)
    provenance: dict[str, str] = field(default_factory=_default_provenance)

    def has_warning(self, substring: str) -> bool:
        """Check if any warning contains the given substring."""
        return any(substring in w for w in self.warnings)
