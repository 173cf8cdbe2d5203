"""
Tests for input validation utilities.

Validates the functions in core/validation.py used by SubjectStore and
the public survival functions.
"""

import numpy as np
import pytest

from hazardtrend.core.exceptions import DimensionError, ValidationError
from hazardtrend.core.validation import (
    check_1d,
    check_array,
    check_binary,
    check_consistent_length,
    check_finite,
    check_min_samples,
    check_positive,
    check_probability,
)


# ═══════════════════════════════════════════════════════════════════════
# check_array
# ═══════════════════════════════════════════════════════════════════════


class TestCheckArray:

    def test_list_to_float_array(self):
        result = check_array([1, 2, 3], "time")
        assert result.dtype == np.float64
        np.testing.assert_array_equal(result, [1.0, 2.0, 3.0])

    def test_bool_promoted_to_float(self):
        result = check_array([True, False, True], "event")
        np.testing.assert_array_equal(result, [1.0, 0.0, 1.0])

    def test_none_becomes_nan(self):
        """Missing fields surface as NaN for check_finite to report."""
        result = check_array(np.array([1.0, None, 3.0], dtype=object), "time")
        assert np.isnan(result[1])

    def test_rejects_mixed_types(self):
        with pytest.raises(ValidationError, match="object dtype"):
            check_array(np.array(["a", 1.0], dtype=object), "arm")

    def test_rejects_strings(self):
        with pytest.raises(ValidationError, match="non-numeric dtype"):
            check_array(["a", "b"], "arm")


# ═══════════════════════════════════════════════════════════════════════
# Element checks
# ═══════════════════════════════════════════════════════════════════════


class TestCheckFinite:

    def test_passes(self):
        check_finite(np.array([1.0, 2.0]), "time")

    def test_nan_reported_as_missing(self):
        with pytest.raises(ValidationError, match="1 NaN"):
            check_finite(np.array([1.0, np.nan]), "time")

    def test_inf(self):
        with pytest.raises(ValidationError, match="1 Inf"):
            check_finite(np.array([1.0, np.inf]), "time")


class TestCheckPositive:

    def test_passes(self):
        check_positive(np.array([0.1, 5.0]), "time")

    @pytest.mark.parametrize("bad", [0.0, -1.0])
    def test_rejects_non_positive(self, bad):
        with pytest.raises(ValidationError, match="strictly positive"):
            check_positive(np.array([1.0, bad]), "time")


class TestCheckBinary:

    def test_passes(self):
        check_binary(np.array([0.0, 1.0, 1.0]), "event")

    def test_all_zero_passes(self):
        check_binary(np.zeros(3), "event")

    def test_rejects_other_codes(self):
        with pytest.raises(ValidationError, match="only 0 and 1"):
            check_binary(np.array([0.0, 2.0]), "arm")


class TestCheckProbability:

    @pytest.mark.parametrize("value", [0.5, 0.95, 0.999])
    def test_passes(self, value):
        check_probability(value, "conf_level")

    @pytest.mark.parametrize("value", [0.0, 1.0, 95.0, -0.1])
    def test_rejects(self, value):
        with pytest.raises(ValidationError, match="conf_level"):
            check_probability(value, "conf_level")


# ═══════════════════════════════════════════════════════════════════════
# Shape checks
# ═══════════════════════════════════════════════════════════════════════


class TestShapeChecks:

    def test_check_1d_rejects_2d(self):
        with pytest.raises(DimensionError, match="expected 1D"):
            check_1d(np.ones((2, 2)), "time")

    def test_consistent_length(self):
        check_consistent_length(
            np.ones(3), np.ones(3), names=("time", "event"),
        )

    def test_inconsistent_length(self):
        with pytest.raises(DimensionError, match="time=3, event=2"):
            check_consistent_length(
                np.ones(3), np.ones(2), names=("time", "event"),
            )

    def test_names_must_match_arrays(self):
        with pytest.raises(ValueError):
            check_consistent_length(np.ones(3), names=("time", "event"))

    def test_min_samples(self):
        with pytest.raises(ValidationError, match="at least 1"):
            check_min_samples(np.array([]), 1, "time")
