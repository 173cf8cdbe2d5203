"""
Core protocols for hazardtrend.

These define structural interfaces that fitting strategies must satisfy.
We use Protocol (structural typing) rather than ABC (nominal typing) so an
alternative optimizer only has to provide the right methods.

Design Principles:
    - Minimal contracts: prescribe only what's truly universal
    - Stateless backends: all configuration arrives in a config object
    - Type-safe: use generics to preserve type information through pipelines
"""

from typing import Protocol, TypeVar, Any, runtime_checkable

P = TypeVar('P')  # Parameter payload type
D = TypeVar('D')  # Data container type
C = TypeVar('C', contravariant=True)  # Config type


@runtime_checkable
class DataSource(Protocol):
    """
    Minimal protocol for the data containers fitted by the package.

    SubjectStore implements it; the protocol exists so tooling can report
    on any container without knowing its columns.
    """

    @property
    def n_observations(self) -> int:
        """Number of subjects."""
        ...

    @property
    def metadata(self) -> dict[str, Any]:
        """
        Container metadata.

        Example:
            {'n_observations': 200, 'n_events': 120, 'n_censored': 80}
        """
        ...


@runtime_checkable
class Backend(Protocol[D, C, P]):
    """
    Protocol for fitting strategies: fit(data, config) -> Result[P].

    Each backend turns a data container plus a frozen config into a
    parameter payload. Backends raise instead of returning degenerate
    estimates, so a caller can substitute one optimizer for another
    without changing its error handling.

    Type Parameters:
        D: The data container this backend accepts
        C: The configuration dataclass it reads
        P: The parameter payload it produces
    """

    @property
    def name(self) -> str:
        """
        Backend identifier.

        Convention: '{device}_{algorithm}'
        Examples: 'cpu_newton', 'cpu_bfgs'
        """
        ...

    def fit(self, data: D, config: C) -> 'Result[P]':
        """
        Execute the fit.

        Raises
        ------
        ConvergenceError
            If the optimizer fails to converge.
        InsufficientEventsError
            If the data carry no events.
        NumericalError
            If the information matrix cannot be inverted.
        """
        ...
