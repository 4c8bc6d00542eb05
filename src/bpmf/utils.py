"""Utility functions for the BPMF recommender.

This module provides helper functions for loading rating data, managing
model artifacts, and common operations used by the training and inference
entry points.
"""

import logging
from pathlib import Path
from typing import Dict, Hashable, Tuple

import joblib
import numpy as np
import pandas as pd
from scipy.sparse import csr_matrix

from src.bpmf.exceptions import ModelLoadError, ModelNotFoundError

# Configure module logger
logger = logging.getLogger(__name__)

# Model artifact filenames
MODEL_FILENAME = "bpmf_model.joblib"
USER_MAPPING_FILENAME = "user_id_mapping.joblib"
ITEM_MAPPING_FILENAME = "item_id_mapping.joblib"


def load_csv_to_matrix(
    csv_path: str,
    user_col: str = "user_id",
    item_col: str = "item_id",
    rating_col: str = "rating",
) -> Tuple[csr_matrix, Dict[Hashable, int], Dict[Hashable, int]]:
    """Load rating triples from CSV into a sparse user-item matrix.

    Rows of the matrix are users and columns are items. When a (user, item)
    pair appears more than once the last rating wins. Ratings that are zero
    or negative are dropped, since an absent entry already means "unobserved".

    Args:
        csv_path: Path to CSV file containing rating data.
        user_col: Name of the column containing user identifiers.
        item_col: Name of the column containing item identifiers.
        rating_col: Name of the column containing rating values.

    Returns:
        A tuple containing:
            - Sparse CSR matrix of shape (n_users, n_items) with ratings
            - Dictionary mapping user_id to matrix row index
            - Dictionary mapping item_id to matrix column index

    Raises:
        FileNotFoundError: If CSV file does not exist.
        ValueError: If CSV is missing required columns or has no usable ratings.

    Example:
        >>> matrix, user_map, item_map = load_csv_to_matrix("data/ratings.csv")
        >>> print(f"Matrix shape: {matrix.shape}")
    """
    csv_file = Path(csv_path)
    if not csv_file.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")

    logger.info(f"Loading CSV from {csv_path}")
    df = pd.read_csv(csv_path)

    # Validate required columns
    required_columns = {user_col, item_col, rating_col}
    if not required_columns.issubset(df.columns):
        missing = required_columns - set(df.columns)
        raise ValueError(f"CSV missing required columns: {missing}")

    if df.empty:
        raise ValueError("Cannot create matrix from empty CSV")

    logger.info(f"Loaded {len(df)} rating records")

    df = df.dropna(subset=[user_col, item_col, rating_col])
    df = df.drop_duplicates(subset=[user_col, item_col], keep="last")
    df = df[df[rating_col] > 0]

    if df.empty:
        raise ValueError("CSV contains no positive ratings (empty after filtering)")

    unique_users = sorted(df[user_col].unique())
    unique_items = sorted(df[item_col].unique())

    user_id_to_idx = {user_id: idx for idx, user_id in enumerate(unique_users)}
    item_id_to_idx = {item_id: idx for idx, item_id in enumerate(unique_items)}

    logger.info(f"Unique users: {len(unique_users)}")
    logger.info(f"Unique items: {len(unique_items)}")

    row_indices = df[user_col].map(user_id_to_idx).values
    col_indices = df[item_col].map(item_id_to_idx).values
    data = df[rating_col].values.astype(np.float64)

    n_users = len(unique_users)
    n_items = len(unique_items)

    ratings = csr_matrix(
        (data, (row_indices, col_indices)),
        shape=(n_users, n_items),
        dtype=np.float64,
    )

    logger.info(f"Matrix shape: {ratings.shape}")
    logger.info(f"Matrix density: {ratings.nnz / (n_users * n_items):.4%}")
    logger.info(f"Mean rating: {data.mean():.4f}")

    return ratings, user_id_to_idx, item_id_to_idx


def save_model_artifacts(
    model,
    user_id_to_idx: Dict[Hashable, int],
    item_id_to_idx: Dict[Hashable, int],
    output_dir: str,
) -> None:
    """Save a trained model and its ID mappings to disk.

    Creates the output directory if it doesn't exist.

    Args:
        model: Trained BPMF model to save.
        user_id_to_idx: Dictionary mapping user IDs to matrix row indices.
        item_id_to_idx: Dictionary mapping item IDs to matrix column indices.
        output_dir: Directory path where artifacts will be saved.

    Raises:
        OSError: If unable to create output directory or save files.
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    logger.info(f"Saving model artifacts to {output_dir}")

    model_path, user_mapping_path, item_mapping_path = get_model_paths(output_dir)

    joblib.dump(model, model_path)
    logger.info(f"Saved model to {model_path}")

    joblib.dump(user_id_to_idx, user_mapping_path)
    logger.info(f"Saved user mapping to {user_mapping_path}")

    joblib.dump(item_id_to_idx, item_mapping_path)
    logger.info(f"Saved item mapping to {item_mapping_path}")


def load_model_artifacts(model_dir: str):
    """Load a trained model and its ID mappings from disk.

    Args:
        model_dir: Directory path where artifacts are stored.

    Returns:
        A tuple containing:
            - Loaded BPMF model
            - Dictionary mapping user IDs to matrix row indices
            - Dictionary mapping item IDs to matrix column indices

    Raises:
        ModelNotFoundError: If the directory or any artifact file is missing.
        ModelLoadError: If an artifact exists but cannot be deserialized.
    """
    if not Path(model_dir).exists():
        raise ModelNotFoundError(model_dir)

    logger.info(f"Loading model artifacts from {model_dir}")

    paths = get_model_paths(model_dir)
    for path in paths:
        if not path.exists():
            raise ModelNotFoundError(str(path))

    try:
        model, user_id_to_idx, item_id_to_idx = (joblib.load(path) for path in paths)
    except Exception as e:
        raise ModelLoadError(model_dir, e) from e

    logger.info(
        f"Loaded model with {len(user_id_to_idx)} users "
        f"and {len(item_id_to_idx)} items"
    )

    return model, user_id_to_idx, item_id_to_idx


def get_model_paths(model_dir: str) -> Tuple[Path, Path, Path]:
    """Get file paths for model artifacts without loading them.

    Returns:
        Paths of the model file, the user mapping and the item mapping.
    """
    model_path = Path(model_dir)
    return (
        model_path / MODEL_FILENAME,
        model_path / USER_MAPPING_FILENAME,
        model_path / ITEM_MAPPING_FILENAME,
    )


def check_model_exists(model_dir: str) -> bool:
    """Check if all required model artifacts exist."""
    return all(path.exists() for path in get_model_paths(model_dir))
