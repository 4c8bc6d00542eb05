"""Gaussian-Wishart hyperparameter sampling for one factor block.

Each block (users or items) has a mean vector and a precision matrix that
act as the prior of its latent factors. Once per iteration they are redrawn
from their Gaussian-Wishart posterior given the current factor matrix.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
from sklearn.utils import check_random_state

from src.bpmf.diagnostics import SamplerDiagnostics
from src.bpmf.linalg import cholesky, column_mean, covariance, inverse, symmetrize
from src.bpmf.wishart import RandomStateLike, sample_wishart

# Configure module logger
logger = logging.getLogger(__name__)

# Prior defaults
DEFAULT_B0 = 2.0


@dataclass(frozen=True, eq=False)
class GaussianWishartPrior:
    """Fixed prior constants of one block.

    Attributes:
        mu0: Prior mean of the block mean (length K).
        b0: Prior pseudo-count of the block mean.
        df: Wishart degrees of freedom, at least K.
        wishart_scale: Wishart scale matrix WI (K x K, symmetric PD).
    """

    mu0: np.ndarray
    b0: float
    df: float
    wishart_scale: np.ndarray = field(repr=False)

    @classmethod
    def default(cls, num_factors: int) -> "GaussianWishartPrior":
        """Zero mean, ``b0 = 2``, ``df = K`` and an identity scale matrix."""
        return cls(
            mu0=np.zeros(num_factors),
            b0=DEFAULT_B0,
            df=float(num_factors),
            wishart_scale=np.eye(num_factors),
        )

    @property
    def num_factors(self) -> int:
        return self.mu0.shape[0]

    def validate(self) -> None:
        """Check shapes and ranges.

        Raises:
            ValueError: If any constant is inconsistent with the others.
        """
        k = self.num_factors
        if self.wishart_scale.shape != (k, k):
            raise ValueError(
                f"wishart_scale must be {k}x{k}, got {self.wishart_scale.shape}"
            )
        if self.b0 <= 0:
            raise ValueError(f"b0 must be positive, got {self.b0}")
        if self.df < k:
            raise ValueError(f"df ({self.df}) must be at least num_factors ({k})")


@dataclass
class HyperParameters:
    """Mean vector and precision matrix of one factor block."""

    mean: np.ndarray
    precision: np.ndarray

    @classmethod
    def from_factors(cls, factors: np.ndarray) -> "HyperParameters":
        """Moment estimate: sample mean and inverse sample covariance."""
        return cls(
            mean=column_mean(factors),
            precision=symmetrize(inverse(covariance(factors))),
        )

    def copy(self) -> "HyperParameters":
        return HyperParameters(mean=self.mean.copy(), precision=self.precision.copy())


def posterior_wishart_scale(
    factors: np.ndarray, prior: GaussianWishartPrior
) -> np.ndarray:
    """Scale matrix of the Wishart posterior of the block precision.

    ``(WI^-1 + N * S_bar + N * b0 / (b0 + N) * (mu0 - x_bar)(mu0 - x_bar)^T)^-1``,
    symmetrized. A single row has no spread, so its ``S_bar`` is zero.
    """
    n, k = factors.shape
    x_bar = column_mean(factors)
    s_bar = covariance(factors) if n > 1 else np.zeros((k, k))

    diff = prior.mu0 - x_bar
    shrinkage = np.outer(diff, diff) * (n * prior.b0 / (prior.b0 + n))
    wi_post = inverse(inverse(prior.wishart_scale) + s_bar * n + shrinkage)
    return symmetrize(wi_post)


def sample_hyperparameters(
    factors: np.ndarray,
    prior: GaussianWishartPrior,
    current: HyperParameters,
    random_state: RandomStateLike = None,
    diagnostics: Optional[SamplerDiagnostics] = None,
    block: str = "user",
) -> HyperParameters:
    """Draw a new (mean, precision) pair from the Gaussian-Wishart posterior.

    If the Wishart draw is undefined the previous precision is kept, and if
    the covariance of the mean has no Cholesky factor the previous mean is
    kept. Neither case raises; both are counted in ``diagnostics``.

    Args:
        factors: Current ``N x K`` factor matrix of the block.
        prior: Prior constants of the block.
        current: Hyperparameters from the previous iteration (not modified).
        random_state: Seed or RandomState for the draws.
        diagnostics: Optional counters for the fallbacks.
        block: Block name used in log messages.

    Returns:
        Newly sampled hyperparameters.

    Raises:
        numpy.linalg.LinAlgError: If a required inversion is singular.
    """
    rng = check_random_state(random_state)
    n, k = factors.shape

    wi_post = posterior_wishart_scale(factors, prior)
    df_post = prior.df + n

    precision = current.precision
    sampled = sample_wishart(wi_post, df_post, random_state=rng)
    if sampled is not None:
        precision = symmetrize(sampled)
    else:
        logger.debug(f"Keeping previous {block} precision: Wishart sample undefined")
        if diagnostics is not None:
            diagnostics.record_wishart_fallback()

    x_bar = column_mean(factors)
    mu_temp = (prior.mu0 * prior.b0 + x_bar * n) / (prior.b0 + n)

    mean = current.mean
    lam = cholesky(inverse(precision * (prior.b0 + n)))
    if lam.ok:
        z = rng.normal(0.0, 1.0, size=k)
        mean = lam.factor.T.dot(z) + mu_temp
    else:
        logger.debug(f"Keeping previous {block} mean: covariance is {lam.reason}")
        if diagnostics is not None:
            diagnostics.record_mean_fallback()

    return HyperParameters(mean=mean, precision=precision)
