"""
Linear algebra kernels for hazardtrend.

Covariance matrices of both likelihood fits come from inverting the
observed information at the optimum. Errors are raised immediately with
clear messages; a covariance is never patched up.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy import linalg

from hazardtrend.core.exceptions import (
    NotPositiveDefiniteError,
    SingularMatrixError,
)


def invert_information(information: NDArray, name: str) -> NDArray:
    """Invert a symmetric observed information matrix via Cholesky.

    Parameters
    ----------
    information : NDArray
        (q, q) negative Hessian of the log-likelihood at the optimum.
    name : str
        Description used in error messages.

    Returns
    -------
    NDArray
        (q, q) covariance matrix.

    Raises
    ------
    SingularMatrixError
        If the matrix has (numerically) zero eigenvalues.
    NotPositiveDefiniteError
        If the matrix has negative eigenvalues.
    """
    information = 0.5 * (information + information.T)
    try:
        factor = linalg.cho_factor(information, lower=True)
    except linalg.LinAlgError as e:
        eigenvalues = np.linalg.eigvalsh(information)
        scale = max(1.0, float(np.max(np.abs(eigenvalues))))
        if np.min(np.abs(eigenvalues)) < 1e-12 * scale:
            raise SingularMatrixError(
                f"{name} is singular",
                matrix_name=name,
                rank=int(np.sum(np.abs(eigenvalues) > 1e-12 * scale)),
                expected_rank=information.shape[0],
            ) from e
        raise NotPositiveDefiniteError(
            f"{name} is not positive definite "
            f"(min eigenvalue {np.min(eigenvalues):.3g})",
            matrix_name=name,
            min_eigenvalue=float(np.min(eigenvalues)),
        ) from e

    identity = np.eye(information.shape[0])
    return linalg.cho_solve(factor, identity)
