"""Custom exceptions for the BPMF recommender.

Defines specific exception types for better error handling and reporting.
Recoverable numerical conditions (a non positive-definite matrix during
sampling, an entity without ratings) are not exceptions: they are handled
where they occur and counted in :mod:`src.bpmf.diagnostics`.
"""

from typing import Any, Dict, Optional


class BPMFError(Exception):
    """Base exception for BPMF errors."""

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception.

        Args:
            message: Human-readable error message
            details: Additional error details for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class NumericalFailureError(BPMFError):
    """Raised when an iteration hits an arithmetic error with no fallback.

    The model that raised it has already been rolled back to the state of
    ``last_completed_iteration`` (0 means the initial factors).
    """

    def __init__(
        self,
        iteration: int,
        last_completed_iteration: int,
        error: Exception,
    ):
        message = (
            f"Training aborted at iteration {iteration}: {str(error)}. "
            f"Model kept from iteration {last_completed_iteration}."
        )
        super().__init__(
            message=message,
            details={
                "iteration": iteration,
                "last_completed_iteration": last_completed_iteration,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )
        self.iteration = iteration
        self.last_completed_iteration = last_completed_iteration
        self.error = error


class ModelNotFoundError(BPMFError):
    """Raised when model files cannot be found."""

    def __init__(self, model_path: str, details: Optional[Dict[str, Any]] = None):
        message = f"Model not found at '{model_path}'. Please train a model first."
        super().__init__(
            message=message,
            details=details or {"model_path": model_path},
        )


class ModelLoadError(BPMFError):
    """Raised when model fails to load."""

    def __init__(self, model_path: str, error: Exception):
        message = f"Failed to load model from '{model_path}': {str(error)}"
        super().__init__(
            message=message,
            details={
                "model_path": model_path,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )


class UserNotFoundError(BPMFError):
    """Raised when a user is not found in the training data."""

    def __init__(self, user_id: Any, details: Optional[Dict[str, Any]] = None):
        message = (
            f"User {user_id} not found in training data. "
            "Cannot predict ratings for this user."
        )
        super().__init__(
            message=message,
            details=details or {"user_id": user_id},
        )


class ItemNotFoundError(BPMFError):
    """Raised when an item is not found in the training data."""

    def __init__(self, item_id: Any, details: Optional[Dict[str, Any]] = None):
        message = (
            f"Item {item_id} not found in training data. "
            "Cannot predict ratings for this item."
        )
        super().__init__(
            message=message,
            details=details or {"item_id": item_id},
        )
