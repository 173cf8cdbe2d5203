"""
Exception hierarchy for hazardtrend.

All exceptions inherit from HazardTrendError so callers can catch any
library-specific failure in one place. Fitting code never substitutes a
degenerate estimate (beta = 0, HR = 1) for a failed fit; it raises one of
these instead.

Design principles:
    - Exceptions carry diagnostic information as attributes
    - Error messages are actionable with actual vs expected values
    - Never catch and re-raise with less information
"""


class HazardTrendError(Exception):
    """Base exception for all hazardtrend errors."""
    pass


class ValidationError(HazardTrendError):
    """
    Input validation failed.

    Raised for malformed subject records: missing fields, non-positive
    follow-up time, event or arm codes outside {0, 1}.
    """
    pass


class DimensionError(ValidationError):
    """
    Array dimensions are incorrect or inconsistent.

    Raised when the time, event and arm columns have different lengths
    or an array has the wrong number of dimensions.
    """
    pass


class InsufficientEventsError(ValidationError):
    """
    A fit was requested on data without any observed event.

    The partial and full likelihoods are degenerate without events.

    Attributes:
        n_events: Number of events found (normally 0)
        n_observations: Number of subjects in the data that was fitted
    """

    def __init__(
        self,
        message: str,
        n_events: int = 0,
        n_observations: int | None = None,
    ):
        super().__init__(message)
        self.n_events = n_events
        self.n_observations = n_observations


class OutOfRangeError(ValidationError):
    """
    A prediction was requested outside the fitted time domain.

    Attributes:
        lower: Smallest time at which predictions are defined
        upper: Largest time at which predictions are defined
        offending: The query times that fell outside [lower, upper]
    """

    def __init__(
        self,
        message: str,
        lower: float | None = None,
        upper: float | None = None,
        offending: tuple[float, ...] = (),
    ):
        super().__init__(message)
        self.lower = lower
        self.upper = upper
        self.offending = offending


class DegenerateCohortError(ValidationError):
    """
    A landmark or window transform produced an empty cohort.

    Attributes:
        start: Window start (the landmark for a late cohort)
        stop: Window end, or None for an open window
    """

    def __init__(
        self,
        message: str,
        start: float | None = None,
        stop: float | None = None,
    ):
        super().__init__(message)
        self.start = start
        self.stop = stop


class NumericalError(HazardTrendError):
    """
    Numerical computation failed.

    Base class for errors arising from numerical issues during computation.
    """
    pass


class SingularMatrixError(NumericalError):
    """
    Matrix is singular or nearly singular.

    Raised when an information matrix must be inverted but is singular,
    e.g. a Cox fit where every event falls in one arm at every time.

    Attributes:
        matrix_name: Name/description of the problematic matrix
        condition_number: Estimated condition number, if available
        rank: Numerical rank, if computed
        expected_rank: Expected rank
    """

    def __init__(
        self,
        message: str,
        matrix_name: str | None = None,
        condition_number: float | None = None,
        rank: int | None = None,
        expected_rank: int | None = None
    ):
        super().__init__(message)
        self.matrix_name = matrix_name
        self.condition_number = condition_number
        self.rank = rank
        self.expected_rank = expected_rank


class NotPositiveDefiniteError(NumericalError):
    """
    Matrix is not positive definite.

    Raised when the observed information at the optimum is not positive
    definite, so no covariance matrix exists.

    Attributes:
        matrix_name: Name/description of the problematic matrix
        min_eigenvalue: Minimum eigenvalue, if computed
    """

    def __init__(
        self,
        message: str,
        matrix_name: str | None = None,
        min_eigenvalue: float | None = None
    ):
        super().__init__(message)
        self.matrix_name = matrix_name
        self.min_eigenvalue = min_eigenvalue


class ConvergenceError(HazardTrendError):
    """
    Iterative optimizer failed to converge.

    Raised when Newton-Raphson or the quasi-Newton fallback does not meet
    its tolerance within the iteration cap, or cannot find an ascent step.

    Attributes:
        iterations: Number of iterations completed
        final_change: Final max absolute parameter change
        reason: Why convergence failed ('max_iterations', 'no_ascent', ...)
        threshold: The convergence threshold that was not met
    """

    def __init__(
        self,
        message: str,
        iterations: int,
        final_change: float | None = None,
        reason: str | None = None,
        threshold: float | None = None
    ):
        super().__init__(message)
        self.iterations = iterations
        self.final_change = final_change
        self.reason = reason
        self.threshold = threshold
