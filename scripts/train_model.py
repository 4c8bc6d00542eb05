"""Command-line interface for training the BPMF model.

This script provides a CLI for training the Bayesian PMF recommender from
rating data stored in CSV format.

Example:
    Train a model with default settings:
        $ python scripts/train_model.py data/fake_ratings.csv

    Train with custom parameters:
        $ python scripts/train_model.py data/ratings.csv \\
            --output-dir models/production \\
            --num-factors 20 \\
            --max-iters 200
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.bpmf.convergence import DEFAULT_TOLERANCE
from src.bpmf.exceptions import NumericalFailureError
from src.bpmf.logging_config import setup_logging
from src.bpmf.model import (
    DEFAULT_BETA,
    DEFAULT_MAX_ITERS,
    DEFAULT_NUM_FACTORS,
    DEFAULT_RANDOM_STATE,
)
from src.bpmf.train import train_bpmf_model


def parse_arguments() -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Namespace object containing parsed arguments.
    """
    parser = argparse.ArgumentParser(
        description="Train a Bayesian PMF recommendation model from CSV ratings.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Train with default settings
  python scripts/train_model.py data/ratings.csv

  # Train with custom output directory and factors
  python scripts/train_model.py data/ratings.csv --output-dir models/prod --num-factors 20

  # Train with verbose JSON logging
  python scripts/train_model.py data/ratings.csv --verbose --json-logs
        """,
    )

    parser.add_argument(
        "csv_path",
        type=str,
        help="Path to CSV file containing rating data with columns: "
        "user_id, item_id, rating",
    )

    parser.add_argument(
        "--output-dir",
        type=str,
        default="models",
        help="Directory where model artifacts will be saved (default: models)",
    )

    parser.add_argument(
        "--num-factors",
        type=int,
        default=DEFAULT_NUM_FACTORS,
        help=f"Number of latent factors (default: {DEFAULT_NUM_FACTORS})",
    )

    parser.add_argument(
        "--max-iters",
        type=int,
        default=DEFAULT_MAX_ITERS,
        help=f"Maximum number of Gibbs iterations (default: {DEFAULT_MAX_ITERS})",
    )

    parser.add_argument(
        "--beta",
        type=float,
        default=DEFAULT_BETA,
        help=f"Observation-noise precision (default: {DEFAULT_BETA})",
    )

    parser.add_argument(
        "--tolerance",
        type=float,
        default=DEFAULT_TOLERANCE,
        help=f"Stop when the loss changes by less than this (default: {DEFAULT_TOLERANCE})",
    )

    parser.add_argument(
        "--random-state",
        type=int,
        default=DEFAULT_RANDOM_STATE,
        help=f"Random seed for reproducibility (default: {DEFAULT_RANDOM_STATE})",
    )

    parser.add_argument(
        "--n-jobs",
        type=int,
        default=1,
        help="Worker threads for factor updates, -1 for all cores (default: 1)",
    )

    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as JSON lines",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args()


def validate_csv_path(csv_path: str) -> None:
    """Validate that the CSV file exists and is readable.

    Raises:
        FileNotFoundError: If CSV file does not exist.
        ValueError: If path is not a file.
    """
    path = Path(csv_path)
    if not path.exists():
        raise FileNotFoundError(f"CSV file not found: {csv_path}")
    if not path.is_file():
        raise ValueError(f"Path is not a file: {csv_path}")


def main() -> int:
    """Main entry point for the training script.

    Returns:
        Exit code: 0 on success, 1 on error, 130 if interrupted.
    """
    try:
        args = parse_arguments()

        setup_logging(
            log_level="DEBUG" if args.verbose else "INFO",
            json_format=args.json_logs,
        )
        logger = logging.getLogger(__name__)

        logger.info(f"Validating CSV path: {args.csv_path}")
        validate_csv_path(args.csv_path)

        logger.info("=" * 70)
        logger.info("Training Configuration")
        logger.info("=" * 70)
        logger.info(f"CSV path:         {args.csv_path}")
        logger.info(f"Output directory: {args.output_dir}")
        logger.info(f"Latent factors:   {args.num_factors}")
        logger.info(f"Max iterations:   {args.max_iters}")
        logger.info(f"Beta:             {args.beta}")
        logger.info(f"Tolerance:        {args.tolerance}")
        logger.info(f"Random state:     {args.random_state}")
        logger.info(f"Worker threads:   {args.n_jobs}")
        logger.info("=" * 70)

        model, user_map, item_map = train_bpmf_model(
            csv_path=args.csv_path,
            output_dir=args.output_dir,
            num_factors=args.num_factors,
            max_iters=args.max_iters,
            beta=args.beta,
            random_state=args.random_state,
            tolerance=args.tolerance,
            n_jobs=args.n_jobs,
        )

        last = model.history[-1] if model.history else None

        logger.info("=" * 70)
        logger.info("Training Summary")
        logger.info("=" * 70)
        logger.info(f"Iterations run:   {model.last_completed_iteration}")
        logger.info(f"Number of users:  {len(user_map)}")
        logger.info(f"Number of items:  {len(item_map)}")
        if last is not None:
            logger.info(f"Final loss:       {last.loss:.6f}")
            logger.info(f"Train RMSE:       {last.train_rmse:.6f}")
        logger.info(f"Fallbacks:        {model.diagnostics.snapshot()}")
        logger.info(f"Model saved to:   {Path(args.output_dir).absolute()}")
        logger.info("=" * 70)

        logger.info("Training completed successfully!")
        return 0

    except FileNotFoundError as e:
        logging.error(f"File error: {e}")
        return 1
    except ValueError as e:
        logging.error(f"Validation error: {e}")
        return 1
    except NumericalFailureError as e:
        logging.error(f"Numerical failure: {e.message}")
        return 1
    except KeyboardInterrupt:
        logging.warning("Training interrupted by user")
        return 130
    except Exception as e:
        logging.error(f"Unexpected error: {e}", exc_info=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
