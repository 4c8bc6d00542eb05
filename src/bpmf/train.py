"""BPMF model training pipeline.

This module ties the pieces together: it loads rating data from CSV, trains
a Bayesian PMF model with a loss-plateau stopping rule, and saves the model
and ID mappings as artifacts for later inference.
"""

import logging
from typing import Dict, Hashable, Optional, Tuple

from src.bpmf.convergence import DEFAULT_TOLERANCE, AnyOf, LossPlateau, MaxIterations
from src.bpmf.exceptions import NumericalFailureError
from src.bpmf.model import (
    BPMF,
    BPMFConfig,
    DEFAULT_BETA,
    DEFAULT_MAX_ITERS,
    DEFAULT_NUM_FACTORS,
    DEFAULT_RANDOM_STATE,
)
from src.bpmf.utils import load_csv_to_matrix, save_model_artifacts

# Configure module logger
logger = logging.getLogger(__name__)


def train_bpmf_model(
    csv_path: str,
    output_dir: str = "models",
    num_factors: int = DEFAULT_NUM_FACTORS,
    max_iters: int = DEFAULT_MAX_ITERS,
    beta: float = DEFAULT_BETA,
    random_state: Optional[int] = DEFAULT_RANDOM_STATE,
    tolerance: float = DEFAULT_TOLERANCE,
    n_jobs: int = 1,
) -> Tuple[BPMF, Dict[Hashable, int], Dict[Hashable, int]]:
    """Train a BPMF model from rating data and save its artifacts.

    This is the main entry point for training. It orchestrates the complete
    pipeline: loading data, building the ratings matrix, running the Gibbs
    sampler, and saving artifacts.

    If sampling aborts on a numerical failure the model rolled back to its
    last completed iteration is still saved before the error is re-raised.

    Args:
        csv_path: Path to CSV file with columns: user_id, item_id, rating.
        output_dir: Directory where model artifacts will be saved.
        num_factors: Number of latent factors K (default: 10).
        max_iters: Maximum number of Gibbs iterations (default: 100).
        beta: Observation-noise precision (default: 2.0).
        random_state: Random seed for reproducibility (default: 42).
        tolerance: Stop when the loss changes by less than this between
            two iterations (default: 1e-5).
        n_jobs: Worker threads for the factor updates (default: 1).

    Returns:
        A tuple containing:
            - Trained BPMF model
            - Dictionary mapping user IDs to matrix indices
            - Dictionary mapping item IDs to matrix indices

    Raises:
        FileNotFoundError: If CSV file does not exist.
        ValueError: If data is invalid or training parameters are incorrect.
        NumericalFailureError: If sampling aborted (artifacts still saved).

    Example:
        >>> model, user_map, item_map = train_bpmf_model(
        ...     "data/fake_ratings.csv",
        ...     output_dir="models",
        ...     num_factors=5,
        ... )
        >>> print(f"Final loss: {model.history[-1].loss:.4f}")
    """
    logger.info("=" * 60)
    logger.info("Starting BPMF model training")
    logger.info("=" * 60)

    try:
        ratings, user_id_to_idx, item_id_to_idx = load_csv_to_matrix(csv_path)

        config = BPMFConfig(
            num_factors=num_factors,
            max_iters=max_iters,
            beta=beta,
            random_state=random_state,
            n_jobs=n_jobs,
        )
        convergence = AnyOf(LossPlateau(tolerance), MaxIterations(max_iters))
        model = BPMF(config, ratings, convergence=convergence)

        try:
            model.train()
        except NumericalFailureError as e:
            logger.warning(
                f"Saving model from iteration {e.last_completed_iteration} "
                "after numerical failure"
            )
            save_model_artifacts(model, user_id_to_idx, item_id_to_idx, output_dir)
            raise

        save_model_artifacts(model, user_id_to_idx, item_id_to_idx, output_dir)

        logger.info("=" * 60)
        logger.info("Training completed successfully!")
        logger.info("=" * 60)

        return model, user_id_to_idx, item_id_to_idx

    except Exception as e:
        logger.error(f"Training failed: {e}", exc_info=True)
        raise
