"""Dense linear-algebra helpers for the BPMF sampler.

Thin wrappers around :mod:`numpy.linalg` that make the numerically sensitive
steps explicit. Cholesky factorization returns a :class:`CholeskyResult`
instead of raising, so callers decide on the fallback at the call site.
Matrix inversion has no fallback and raises ``numpy.linalg.LinAlgError``.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np

NOT_POSITIVE_DEFINITE = "not positive definite"
NOT_FINITE = "matrix has non-finite entries"


@dataclass(frozen=True)
class CholeskyResult:
    """Outcome of a Cholesky factorization.

    Attributes:
        factor: Lower-triangular factor ``L`` with ``L @ L.T == matrix``,
            or None if the factorization failed.
        reason: None on success, otherwise a short description of the failure.
    """

    factor: Optional[np.ndarray]
    reason: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.factor is not None


def cholesky(matrix: np.ndarray) -> CholeskyResult:
    """Compute the lower-triangular Cholesky factor of ``matrix``.

    Args:
        matrix: Square matrix expected to be symmetric positive-definite.

    Returns:
        CholeskyResult holding the factor, or the reason it does not exist.
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    if not np.all(np.isfinite(matrix)):
        return CholeskyResult(factor=None, reason=NOT_FINITE)

    try:
        factor = np.linalg.cholesky(matrix)
    except np.linalg.LinAlgError:
        return CholeskyResult(factor=None, reason=NOT_POSITIVE_DEFINITE)

    return CholeskyResult(factor=factor)


def inverse(matrix: np.ndarray) -> np.ndarray:
    """Invert a square matrix.

    Raises:
        numpy.linalg.LinAlgError: If the matrix is singular or the inverse
            contains non-finite values.
    """
    result = np.linalg.inv(np.asarray(matrix, dtype=np.float64))
    if not np.all(np.isfinite(result)):
        raise np.linalg.LinAlgError("Matrix inverse has non-finite entries")
    return result


def symmetrize(matrix: np.ndarray) -> np.ndarray:
    """Return ``(M + M.T) / 2`` to remove round-off asymmetry."""
    return (matrix + matrix.T) * 0.5


def column_mean(factors: np.ndarray) -> np.ndarray:
    """Column-wise mean of a factor matrix (one value per latent dimension)."""
    return np.mean(factors, axis=0)


def covariance(factors: np.ndarray) -> np.ndarray:
    """Sample covariance of the rows of ``factors``.

    Rows are observations and columns are latent dimensions, normalized by
    ``N - 1``. The result is always a ``K x K`` array, also when ``K == 1``.

    Raises:
        ValueError: If fewer than two rows are given.
    """
    factors = np.asarray(factors, dtype=np.float64)
    if factors.ndim != 2:
        raise ValueError(f"Expected a 2-D factor matrix, got {factors.ndim}-D")
    if factors.shape[0] < 2:
        raise ValueError(
            f"Covariance needs at least 2 rows, got {factors.shape[0]}"
        )
    return np.atleast_2d(np.cov(factors, rowvar=False))


def is_symmetric_positive_definite(
    matrix: np.ndarray, atol: float = 1e-8
) -> bool:
    """Check that ``matrix`` is square, symmetric and positive-definite."""
    matrix = np.asarray(matrix)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        return False
    if not np.allclose(matrix, matrix.T, atol=atol):
        return False
    return cholesky(matrix).ok
