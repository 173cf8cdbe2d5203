"""
Input validation utilities for hazardtrend.

These validators follow the "fail fast, fail loud" principle. They raise
immediately with clear error messages rather than silently correcting
or making assumptions about user intent.

Design principles:
    - No silent type coercion (except np.asarray on array-likes)
    - No default handling of edge cases
    - Clear, actionable error messages with actual values
    - Each function validates ONE thing
    - Parameter names included in all error messages
"""

import numpy as np
from numpy.typing import ArrayLike, NDArray
from typing import Any

from hazardtrend.core.exceptions import ValidationError, DimensionError


def check_array(
    array: ArrayLike,
    name: str,
) -> NDArray[np.floating[Any]]:
    """
    Validate and convert input to a float64 numpy array.

    Booleans are accepted (event indicators are often given as bool).
    None entries become NaN so that check_finite reports them as missing.

    Args:
        array: Input to validate
        name: Parameter name for error messages

    Returns:
        numpy.ndarray with floating dtype

    Raises:
        ValidationError: If input cannot be converted to numeric array
    """
    try:
        result = np.asarray(array)
    except (ValueError, TypeError) as e:
        raise ValidationError(f"{name}: cannot convert to array: {e}") from e

    if result.dtype == object:
        try:
            result = np.array(
                [np.nan if v is None else v for v in result.ravel()],
                dtype=np.float64,
            ).reshape(result.shape)
        except (ValueError, TypeError) as e:
            raise ValidationError(
                f"{name}: converted to object dtype, indicating mixed types "
                f"or non-numeric data"
            ) from e

    if result.dtype == np.bool_:
        result = result.astype(np.float64)

    if not np.issubdtype(result.dtype, np.number):
        raise ValidationError(
            f"{name}: non-numeric dtype {result.dtype}, expected numeric data"
        )

    if not np.issubdtype(result.dtype, np.floating):
        result = result.astype(np.float64)

    return result


def check_finite(array: NDArray[np.floating[Any]], name: str) -> None:
    """
    Verify array contains no NaN or Inf values.

    Missing values arrive here as NaN, so this is also the missing-field
    check for subject records.

    Raises:
        ValidationError: If array contains non-finite values
    """
    if not np.all(np.isfinite(array)):
        n_nan = int(np.sum(np.isnan(array)))
        n_inf = int(np.sum(np.isinf(array)))
        raise ValidationError(
            f"{name}: contains missing or non-finite values "
            f"({n_nan} NaN, {n_inf} Inf)"
        )


def check_ndim(array: NDArray[np.floating[Any]], ndim: int, name: str) -> None:
    """
    Verify array has exactly the specified number of dimensions.

    Raises:
        DimensionError: If array has wrong number of dimensions
    """
    if array.ndim != ndim:
        raise DimensionError(
            f"{name}: expected {ndim}D array, got {array.ndim}D with shape {array.shape}"
        )


def check_1d(array: NDArray[np.floating[Any]], name: str) -> None:
    """Verify array is 1-dimensional."""
    check_ndim(array, 1, name)


def check_consistent_length(
    *arrays: NDArray[np.floating[Any]],
    names: tuple[str, ...]
) -> None:
    """
    Verify all arrays have the same length (first dimension).

    Raises:
        ValueError: If number of names doesn't match number of arrays
        DimensionError: If arrays have inconsistent lengths
    """
    if len(arrays) != len(names):
        raise ValueError(
            f"Number of arrays ({len(arrays)}) must match number of names ({len(names)})"
        )

    if len(arrays) < 2:
        return

    lengths = [arr.shape[0] for arr in arrays]
    if len(set(lengths)) > 1:
        details = ", ".join(f"{name}={length}" for name, length in zip(names, lengths))
        raise DimensionError(f"Inconsistent lengths: {details}")


def check_min_samples(array: NDArray[np.floating[Any]], min_samples: int, name: str) -> None:
    """
    Verify array has at least the minimum number of samples.

    Raises:
        ValidationError: If array has fewer than min_samples
    """
    n = array.shape[0]
    if n < min_samples:
        raise ValidationError(
            f"{name}: requires at least {min_samples} samples, got {n}"
        )


def check_positive(array: NDArray[np.floating[Any]], name: str) -> None:
    """
    Verify every element is strictly positive.

    Follow-up time of zero is not a valid observation.

    Raises:
        ValidationError: If any element is <= 0
    """
    bad = np.flatnonzero(array <= 0)
    if len(bad) > 0:
        shown = bad[:5].tolist()
        raise ValidationError(
            f"{name}: must be strictly positive, got {len(bad)} non-positive "
            f"values (first at positions {shown})"
        )


def check_binary(array: NDArray[np.floating[Any]], name: str) -> None:
    """
    Verify array holds only 0 and 1.

    Raises:
        ValidationError: If any value is outside {0, 1}
    """
    unique = np.unique(array)
    if not np.all(np.isin(unique, [0.0, 1.0])):
        raise ValidationError(
            f"{name}: must contain only 0 and 1, got unique values: {unique}"
        )


def check_probability(value: float, name: str) -> None:
    """
    Verify a scalar lies strictly between 0 and 1 (e.g. a confidence level).

    Raises:
        ValidationError: If value is not in (0, 1)
    """
    if not 0.0 < value < 1.0:
        raise ValidationError(f"{name}: must be in (0, 1), got {value}")
