"""
Tests for the Result[P] envelope.

Validates:
    - Generic payloads, frozen immutability
    - Default factories (warnings, provenance)
    - has_warning()
"""

from dataclasses import FrozenInstanceError, dataclass

import numpy as np
import pytest

import hazardtrend
from hazardtrend.core.result import Result, _default_provenance


@dataclass(frozen=True)
class FakeParams:
    """Minimal payload for testing."""
    value: float


def _result(**overrides):
    kwargs = dict(
        params=FakeParams(value=0.5),
        info={"method": "Cox PH", "n_iter": 4},
        timing={"total_seconds": 0.01, "optimization": 0.008},
        backend_name="cpu_newton_cox",
    )
    kwargs.update(overrides)
    return Result(**kwargs)


# ═══════════════════════════════════════════════════════════════════════
# Construction and defaults
# ═══════════════════════════════════════════════════════════════════════


class TestResultConstruction:

    def test_fields(self):
        result = _result()
        assert result.params.value == 0.5
        assert result.info["n_iter"] == 4
        assert result.timing["optimization"] == 0.008
        assert result.backend_name == "cpu_newton_cox"

    def test_timing_none(self):
        assert _result(timing=None).timing is None

    def test_warnings_default_empty(self):
        assert _result().warnings == ()

    def test_provenance_auto_generated(self):
        provenance = _result().provenance
        assert provenance["hazardtrend_version"] == hazardtrend.__version__
        assert provenance["numpy_version"] == np.__version__
        assert "scipy_version" in provenance

    def test_provenance_override(self):
        result = _result(provenance={"source": "replay"})
        assert result.provenance == {"source": "replay"}

    def test_default_provenance_independent_copies(self):
        first = _default_provenance()
        first["extra"] = "x"
        assert "extra" not in _default_provenance()


class TestImmutability:

    def test_cannot_set_params(self):
        result = _result()
        with pytest.raises(FrozenInstanceError):
            result.params = FakeParams(value=1.0)

    def test_cannot_set_warnings(self):
        result = _result()
        with pytest.raises(FrozenInstanceError):
            result.warnings = ("late",)


class TestHasWarning:

    def test_no_warnings(self):
        assert _result().has_warning("events") is False

    def test_substring_match(self):
        result = _result(warnings=("Only 12 events for 6 parameters",))
        assert result.has_warning("events for")
        assert not result.has_warning("singular")

    def test_multiple_warnings(self):
        result = _result(warnings=("first issue", "second issue"))
        assert result.has_warning("second")
