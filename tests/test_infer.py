"""Tests for the inference module."""

import numpy as np
import pandas as pd
import pytest

from src.bpmf.exceptions import ItemNotFoundError, ModelNotFoundError, UserNotFoundError
from src.bpmf.infer import predict_rating, recommend_items_for_user
from src.bpmf.train import train_bpmf_model
from src.bpmf.utils import load_model_artifacts


@pytest.fixture
def trained_model(tmp_path):
    """Create a trained model for testing."""
    rng = np.random.RandomState(42)

    pairs = rng.choice(10 * 20, size=60, replace=False)
    users, items = np.divmod(pairs, 20)
    df = pd.DataFrame({
        "user_id": users + 1,
        "item_id": items + 1,
        "rating": rng.randint(1, 6, size=60),
    })
    csv_path = tmp_path / "test_ratings.csv"
    df.to_csv(csv_path, index=False)

    model_dir = tmp_path / "model"
    train_bpmf_model(
        csv_path=str(csv_path),
        output_dir=str(model_dir),
        num_factors=2,
        max_iters=3,
        random_state=42,
    )

    return model_dir, df


def test_predict_rating_matches_model(trained_model):
    model_dir, df = trained_model
    user_id, item_id = int(df.user_id.iloc[0]), int(df.item_id.iloc[0])

    rating = predict_rating(user_id, item_id, model_dir=str(model_dir))

    model, user_map, item_map = load_model_artifacts(str(model_dir))
    assert isinstance(rating, float)
    assert rating == pytest.approx(model.predict(user_map[user_id], item_map[item_id]))


def test_recommend_items_excludes_rated_items(trained_model):
    model_dir, df = trained_model
    user_id = int(df.user_id.iloc[0])
    rated = set(df.loc[df.user_id == user_id, "item_id"].astype(int))

    recommendations = recommend_items_for_user(
        user_id, model_dir=str(model_dir), top_n=5
    )

    assert 0 < len(recommendations) <= 5
    item_ids = [item_id for item_id, _ in recommendations]
    assert len(item_ids) == len(set(item_ids))
    assert not rated & set(item_ids)
    scores = [score for _, score in recommendations]
    assert scores == sorted(scores, reverse=True)


def test_recommend_items_can_include_rated_items(trained_model):
    model_dir, df = trained_model
    user_id = int(df.user_id.iloc[0])
    n_items = df.item_id.nunique()

    recommendations = recommend_items_for_user(
        user_id, model_dir=str(model_dir), top_n=1000, exclude_rated=False
    )

    assert len(recommendations) == n_items


def test_unknown_user_raises(trained_model):
    model_dir, _ = trained_model

    with pytest.raises(UserNotFoundError):
        recommend_items_for_user(999, model_dir=str(model_dir))
    with pytest.raises(UserNotFoundError):
        predict_rating(999, 1, model_dir=str(model_dir))


def test_unknown_item_raises(trained_model):
    model_dir, df = trained_model
    user_id = int(df.user_id.iloc[0])

    with pytest.raises(ItemNotFoundError):
        predict_rating(user_id, 999, model_dir=str(model_dir))


def test_missing_model_raises_model_not_found(tmp_path):
    with pytest.raises(ModelNotFoundError):
        predict_rating(1, 1, model_dir=str(tmp_path / "nonexistent_model"))
