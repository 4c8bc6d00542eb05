"""Prediction error metrics on held-out ratings."""

from typing import Dict

import numpy as np
from scipy.sparse import coo_matrix, spmatrix


def rmse(predictions: np.ndarray, targets: np.ndarray) -> float:
    """Root mean squared error."""
    predictions = np.asarray(predictions, dtype=np.float64)
    targets = np.asarray(targets, dtype=np.float64)
    if predictions.shape != targets.shape:
        raise ValueError(
            f"Shape mismatch: {predictions.shape} vs {targets.shape}"
        )
    if predictions.size == 0:
        return float("nan")
    return float(np.sqrt(np.mean((predictions - targets) ** 2)))


def mae(predictions: np.ndarray, targets: np.ndarray) -> float:
    """Mean absolute error."""
    predictions = np.asarray(predictions, dtype=np.float64)
    targets = np.asarray(targets, dtype=np.float64)
    if predictions.shape != targets.shape:
        raise ValueError(
            f"Shape mismatch: {predictions.shape} vs {targets.shape}"
        )
    if predictions.size == 0:
        return float("nan")
    return float(np.mean(np.abs(predictions - targets)))


def evaluate(model, ratings: spmatrix) -> Dict[str, float]:
    """Score a trained model against the stored entries of ``ratings``.

    Args:
        model: Anything with ``predict_many(users, items)``.
        ratings: Sparse matrix of held-out ratings, same shape as training.

    Returns:
        Dictionary with ``rmse``, ``mae`` and the number of ratings ``n``.
    """
    entries = coo_matrix(ratings)
    mask = entries.data > 0
    users, items, targets = entries.row[mask], entries.col[mask], entries.data[mask]

    predictions = model.predict_many(users, items)
    return {
        "rmse": rmse(predictions, targets),
        "mae": mae(predictions, targets),
        "n": int(targets.size),
    }
