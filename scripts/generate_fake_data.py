"""Generate fake rating data for testing and development.

This module creates synthetic explicit-feedback data for exercising the BPMF
recommender. Ratings come from a hidden low-rank model plus noise, so a
trained model has real structure to recover.

Example:
    Run the script directly to generate default data:
        $ python scripts/generate_fake_data.py

    Or import and use programmatically:
        from scripts.generate_fake_data import generate_fake_ratings
        df = generate_fake_ratings(num_users=100, num_items=200)
"""

from pathlib import Path
from typing import Optional

import numpy as np
import pandas as pd

# Default configuration constants
DEFAULT_NUM_USERS = 50
DEFAULT_NUM_ITEMS = 100
DEFAULT_NUM_RATINGS = 1000
DEFAULT_RANK = 3
DEFAULT_NOISE = 0.5
MIN_RATING = 1
MAX_RATING = 5


def generate_fake_ratings(
    num_users: int = DEFAULT_NUM_USERS,
    num_items: int = DEFAULT_NUM_ITEMS,
    num_ratings: int = DEFAULT_NUM_RATINGS,
    rank: int = DEFAULT_RANK,
    noise: float = DEFAULT_NOISE,
    seed: Optional[int] = 42,
) -> pd.DataFrame:
    """Generate synthetic 1-5 star ratings from a low-rank model.

    Args:
        num_users: Number of unique users to simulate. Must be positive.
        num_items: Number of unique items available. Must be positive.
        num_ratings: Number of distinct (user, item) pairs to rate. Must be
            positive and at most ``num_users * num_items``.
        rank: Dimensionality of the hidden user/item factors.
        noise: Standard deviation of the Gaussian noise added to each rating.
        seed: Random seed for reproducibility.

    Returns:
        A pandas DataFrame with the following columns:
            - user_id: Integer user identifier (1 to num_users)
            - item_id: Integer item identifier (1 to num_items)
            - rating: Integer rating between 1 and 5

    Raises:
        ValueError: If any numeric parameter is out of range.
    """
    if num_users <= 0 or num_items <= 0 or num_ratings <= 0 or rank <= 0:
        raise ValueError(
            "num_users, num_items, num_ratings and rank must be positive"
        )
    if num_ratings > num_users * num_items:
        raise ValueError(
            f"Cannot draw {num_ratings} distinct ratings from "
            f"{num_users}x{num_items} pairs"
        )

    rng = np.random.RandomState(seed)

    user_factors = rng.normal(0.0, 1.0, size=(num_users, rank))
    item_factors = rng.normal(0.0, 1.0, size=(num_items, rank))

    # Distinct (user, item) pairs
    pairs = rng.choice(num_users * num_items, size=num_ratings, replace=False)
    users, items = np.divmod(pairs, num_items)

    center = (MIN_RATING + MAX_RATING) / 2.0
    scores = np.einsum("ij,ij->i", user_factors[users], item_factors[items])
    scores = center + scores / np.sqrt(rank) + rng.normal(0.0, noise, size=num_ratings)
    ratings = np.clip(np.rint(scores), MIN_RATING, MAX_RATING).astype(int)

    df = pd.DataFrame({
        "user_id": users + 1,
        "item_id": items + 1,
        "rating": ratings,
    })
    df = df.sort_values(["user_id", "item_id"]).reset_index(drop=True)

    return df


def main() -> None:
    """Main entry point for the data generation script.

    Generates fake rating data with default parameters and saves it to
    data/fake_ratings.csv. Prints summary statistics upon completion.
    """
    print(f"Generating {DEFAULT_NUM_RATINGS} fake ratings...")
    print(f"Users: {DEFAULT_NUM_USERS}, Items: {DEFAULT_NUM_ITEMS}")

    try:
        df = generate_fake_ratings()
    except ValueError as e:
        print(f"Error generating data: {e}")
        return

    data_dir = Path(__file__).parent.parent / 'data'
    data_dir.mkdir(exist_ok=True)

    output_path = data_dir / 'fake_ratings.csv'
    df.to_csv(output_path, index=False)

    print(f"\nData generated successfully!")
    print(f"Saved to: {output_path}")
    print(f"\nData preview:")
    print(df.head(10))
    print(f"\nData summary:")
    print(f"  Total ratings: {len(df)}")
    print(f"  Unique users: {df['user_id'].nunique()}")
    print(f"  Unique items: {df['item_id'].nunique()}")
    print(f"  Mean rating: {df['rating'].mean():.3f}")
    print(f"  Rating counts: {df['rating'].value_counts().sort_index().to_dict()}")


if __name__ == '__main__':
    main()
