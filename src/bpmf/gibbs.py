"""Gibbs updates of the latent factor vectors of one block.

Given the opposite block and the current hyperparameters, every entity's
factor vector is redrawn from its Gaussian conditional posterior. A pass
over a block only reads the opposite block and only writes its own rows, one
row per entity, so the per-entity work can run on a thread pool.
"""

import logging
from typing import Optional, Tuple

import numpy as np
from joblib import Parallel, delayed
from scipy.sparse import csr_matrix
from sklearn.utils import check_random_state

from src.bpmf.diagnostics import SamplerDiagnostics
from src.bpmf.hyperparams import HyperParameters
from src.bpmf.linalg import cholesky, inverse
from src.bpmf.wishart import RandomStateLike

# Configure module logger
logger = logging.getLogger(__name__)

EMPTY_RATING_SET = "no observed ratings"


def posterior_covariance(
    opposite_rows: np.ndarray, hyper: HyperParameters, beta: float
) -> np.ndarray:
    """Covariance ``(alpha + beta * M^T M)^-1`` of one entity's posterior.

    Args:
        opposite_rows: ``|I| x K`` factors of the entities it is rated with.
        hyper: Hyperparameters of the entity's own block.
        beta: Observation-noise precision.
    """
    return inverse(hyper.precision + opposite_rows.T.dot(opposite_rows) * beta)


def sample_factor(
    opposite_rows: np.ndarray,
    residuals: np.ndarray,
    hyper: HyperParameters,
    beta: float,
    noise: np.ndarray,
) -> Tuple[Optional[np.ndarray], Optional[str]]:
    """Draw one factor vector from its conditional posterior.

    Args:
        opposite_rows: ``|I| x K`` factors of the opposite entities.
        residuals: Ratings minus the global mean, aligned with the rows.
        hyper: Hyperparameters of the entity's own block.
        beta: Observation-noise precision.
        noise: K standard-normal draws.

    Returns:
        ``(vector, None)`` on success, ``(None, reason)`` if the posterior
        covariance has no Cholesky factor.
    """
    covar = posterior_covariance(opposite_rows, hyper, beta)
    a = opposite_rows.T.dot(residuals) * beta
    b = hyper.precision.dot(hyper.mean)
    mean = covar.dot(a + b)

    lam = cholesky(covar)
    if not lam.ok:
        return None, lam.reason

    return lam.factor.T.dot(noise) + mean, None


def update_factors(
    ratings: csr_matrix,
    own: np.ndarray,
    opposite: np.ndarray,
    hyper: HyperParameters,
    beta: float,
    global_mean: float,
    random_state: RandomStateLike = None,
    diagnostics: Optional[SamplerDiagnostics] = None,
    n_jobs: int = 1,
    block: str = "user",
) -> int:
    """Run one Gibbs pass over every entity of a block, in place.

    Row ``e`` of ``ratings`` lists the ratings of entity ``e`` of ``own``
    against the entities of ``opposite``. Entities without ratings, and
    entities whose posterior covariance is not positive-definite, keep their
    current row.

    The standard-normal draws for the whole pass are taken up front, so the
    result is the same for any ``n_jobs``. With ``n_jobs != 1`` entities are
    processed on a joblib thread pool; ``opposite`` is never written during
    the pass and each worker writes only the row of its own entity.

    Args:
        ratings: CSR matrix of shape ``(len(own), len(opposite))``.
        own: Factor matrix of the block being updated (modified in place).
        opposite: Factor matrix of the other block (read only).
        hyper: Current hyperparameters of the block being updated.
        beta: Observation-noise precision.
        global_mean: Mean rating subtracted from every observation.
        random_state: Seed or RandomState for the normal draws.
        diagnostics: Optional counters for skipped entities and fallbacks.
        n_jobs: Number of worker threads (joblib semantics, -1 for all cores).
        block: Block name used in log messages.

    Returns:
        Number of entities whose factor vector was resampled.

    Raises:
        ValueError: If the shapes of the inputs do not line up.
        numpy.linalg.LinAlgError: If a posterior covariance is singular.
    """
    n_entities, k = own.shape
    if ratings.shape != (n_entities, opposite.shape[0]):
        raise ValueError(
            f"Ratings shape {ratings.shape} does not match factor shapes "
            f"{own.shape} and {opposite.shape}"
        )
    if opposite.shape[1] != k:
        raise ValueError(
            f"Factor dimensions differ: {k} vs {opposite.shape[1]}"
        )

    rng = check_random_state(random_state)
    noise = rng.normal(0.0, 1.0, size=(n_entities, k))

    indptr, indices, data = ratings.indptr, ratings.indices, ratings.data

    def _update(entity: int) -> Optional[str]:
        start, end = indptr[entity], indptr[entity + 1]
        if start == end:
            return EMPTY_RATING_SET

        cols = indices[start:end]
        residuals = data[start:end] - global_mean
        vector, reason = sample_factor(
            opposite[cols], residuals, hyper, beta, noise[entity]
        )
        if vector is None:
            logger.debug(f"Keeping {block} {entity} factors: covariance is {reason}")
            return reason

        own[entity] = vector
        return None

    if n_jobs == 1:
        outcomes = [_update(entity) for entity in range(n_entities)]
    else:
        outcomes = Parallel(n_jobs=n_jobs, prefer="threads")(
            delayed(_update)(entity) for entity in range(n_entities)
        )

    skipped = sum(1 for outcome in outcomes if outcome == EMPTY_RATING_SET)
    failed = sum(
        1 for outcome in outcomes if outcome is not None and outcome != EMPTY_RATING_SET
    )
    if diagnostics is not None:
        if skipped:
            diagnostics.record_empty_skipped(skipped)
        if failed:
            diagnostics.record_factor_fallback(failed)

    return n_entities - skipped - failed
