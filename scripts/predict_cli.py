"""CLI script for predicted ratings and item recommendations.

Useful for testing and evaluation. Prints the predicted rating for a
user-item pair, or the top N items for a user.
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.bpmf.exceptions import BPMFError
from src.bpmf.infer import predict_rating, recommend_items_for_user

# Setup logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s"
)
logger = logging.getLogger(__name__)


def main() -> None:
    """Main CLI function."""
    parser = argparse.ArgumentParser(
        description="Predict ratings with a trained BPMF model",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/predict_cli.py 42
  python scripts/predict_cli.py 42 --top-n 5
  python scripts/predict_cli.py 42 --item-id 7
  python scripts/predict_cli.py 42 --include-rated
        """
    )

    parser.add_argument(
        "user_id",
        type=int,
        help="User ID to predict for"
    )

    parser.add_argument(
        "--item-id",
        type=int,
        default=None,
        help="Predict the rating of this item instead of listing recommendations"
    )

    parser.add_argument(
        "--top-n",
        type=int,
        default=10,
        help="Number of recommendations to return (default: 10)"
    )

    parser.add_argument(
        "--include-rated",
        action="store_true",
        help="Also recommend items the user already rated"
    )

    parser.add_argument(
        "--model-dir",
        type=str,
        default="models",
        help="Directory containing model files (default: models)"
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.INFO)

    try:
        if args.item_id is not None:
            rating = predict_rating(args.user_id, args.item_id, model_dir=args.model_dir)
            print(f"\nPredicted rating of item {args.item_id} by user {args.user_id}: "
                  f"{rating:.3f}\n")
            return

        recommendations = recommend_items_for_user(
            user_id=args.user_id,
            model_dir=args.model_dir,
            top_n=args.top_n,
            exclude_rated=not args.include_rated,
        )
    except BPMFError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)

    print(f"\nRecommendations for user {args.user_id}:")
    for item_id, score in recommendations:
        print(f"  item {item_id}: {score:.3f}")
    print()


if __name__ == "__main__":
    main()
