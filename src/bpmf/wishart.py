"""Wishart sampler based on the Bartlett decomposition.

Draws a random positive-definite matrix from ``Wishart(scale, df)``. The
order of random draws (the full ``p x p`` normal block first, then one Gamma
draw per row) and the per-row degrees-of-freedom offset are fixed, so seeded
runs reproduce the same samples.
"""

import logging
from typing import Optional, Union

import numpy as np
from sklearn.utils import check_random_state

from src.bpmf.linalg import cholesky

# Configure module logger
logger = logging.getLogger(__name__)

RandomStateLike = Union[None, int, np.random.RandomState]


def sample_wishart(
    scale: np.ndarray,
    df: float,
    random_state: RandomStateLike = None,
) -> Optional[np.ndarray]:
    """Draw one sample from a Wishart distribution.

    Args:
        scale: Symmetric positive-definite ``p x p`` scale matrix.
        df: Degrees of freedom, at least ``p``.
        random_state: Seed or ``numpy.random.RandomState`` used for the
            Gaussian and Gamma draws.

    Returns:
        A symmetric positive-definite ``p x p`` sample, or None if ``scale``
        has no Cholesky factor (the distribution is undefined).

    Raises:
        ValueError: If ``scale`` is not square or ``df < p``.
    """
    scale = np.asarray(scale, dtype=np.float64)
    if scale.ndim != 2 or scale.shape[0] != scale.shape[1]:
        raise ValueError(f"Scale matrix must be square, got shape {scale.shape}")

    p = scale.shape[0]
    if df < p:
        raise ValueError(f"Degrees of freedom ({df}) must be at least {p}")

    chol = cholesky(scale)
    if not chol.ok:
        logger.debug(f"Wishart sample undefined: scale is {chol.reason}")
        return None
    A = chol.factor

    rng = check_random_state(random_state)
    z = rng.normal(0.0, 1.0, size=(p, p))
    y = np.array([rng.gamma((df - (i + 1)) / 2.0, 2.0) for i in range(p)])

    B = np.zeros((p, p))
    B[0, 0] = y[0]

    if p > 1:
        # rest of the diagonal
        for j in range(1, p):
            zz = z[:j, j]
            B[j, j] = y[j] + zz.dot(zz)

        # first row and column
        for j in range(1, p):
            B[0, j] = z[0, j] * np.sqrt(y[0])
            B[j, 0] = B[0, j]

    if p > 2:
        for j in range(2, p):
            for i in range(1, j):
                B[i, j] = z[i, j] * np.sqrt(y[i]) + z[:i, i].dot(z[:i, j])
                B[j, i] = B[i, j]

    return A.T.dot(B).dot(A)
