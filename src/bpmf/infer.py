"""Module for predicting ratings and recommending items.

Uses the saved BPMF factors to score user-item pairs.
"""

import logging
import time
from typing import Hashable, List, Tuple

import numpy as np

from src.bpmf.exceptions import ItemNotFoundError, UserNotFoundError
from src.bpmf.utils import load_model_artifacts

# Configure module logger
logger = logging.getLogger(__name__)

# Default parameters
DEFAULT_TOP_N = 5
DEFAULT_MODEL_DIR = "models"


def predict_rating(
    user_id: Hashable,
    item_id: Hashable,
    model_dir: str = DEFAULT_MODEL_DIR,
) -> float:
    """Predict the rating a user would give an item.

    Raises:
        ModelNotFoundError: If the model artifacts are missing.
        UserNotFoundError: If the user was not in the training data.
        ItemNotFoundError: If the item was not in the training data.
    """
    model, user_id_to_idx, item_id_to_idx = load_model_artifacts(model_dir)

    if user_id not in user_id_to_idx:
        raise UserNotFoundError(user_id)
    if item_id not in item_id_to_idx:
        raise ItemNotFoundError(item_id)

    prediction = model.predict(user_id_to_idx[user_id], item_id_to_idx[item_id])

    logger.debug(
        "Predicted rating",
        extra={"user_id": user_id, "item_id": item_id, "prediction": prediction},
    )
    return prediction


def recommend_items_for_user(
    user_id: Hashable,
    model_dir: str = DEFAULT_MODEL_DIR,
    top_n: int = DEFAULT_TOP_N,
    exclude_rated: bool = True,
) -> List[Tuple[Hashable, float]]:
    """Get the top N items for a user by predicted rating.

    Args:
        user_id: User to recommend for.
        model_dir: Directory with model files.
        top_n: Number of recommendations to return.
        exclude_rated: Skip items the user rated in the training data.

    Returns:
        List of ``(item_id, predicted_rating)`` pairs, best first.

    Raises:
        ModelNotFoundError: If the model artifacts are missing.
        UserNotFoundError: If the user was not in the training data.
    """
    start_time = time.time()

    model, user_id_to_idx, item_id_to_idx = load_model_artifacts(model_dir)

    if user_id not in user_id_to_idx:
        logger.warning("User not in training data", extra={"user_id": user_id})
        raise UserNotFoundError(user_id)

    user_idx = user_id_to_idx[user_id]
    scores = model.global_mean + model.Q.dot(model.P[user_idx])

    if exclude_rated:
        rated = model.train_matrix[user_idx].indices
        scores[rated] = -np.inf

    valid_indices = np.where(np.isfinite(scores))[0]
    if len(valid_indices) == 0:
        logger.warning("No unrated items available for recommendation")
        return []

    n_available = min(top_n, len(valid_indices))
    order = np.argsort(scores[valid_indices])[::-1][:n_available]
    top_indices = valid_indices[order]

    idx_to_item_id = {idx: iid for iid, idx in item_id_to_idx.items()}
    recommendations = [
        (idx_to_item_id[int(idx)], float(scores[idx])) for idx in top_indices
    ]

    logger.info(
        "Recommendations generated",
        extra={
            "user_id": user_id,
            "num_recommendations": len(recommendations),
            "total_time_ms": round((time.time() - start_time) * 1000, 2),
        },
    )

    return recommendations
