"""Stopping predicates for the training loop.

A predicate is any callable ``(iteration, loss) -> bool`` evaluated after each
completed iteration; returning True ends training. Predicates may keep their
own memory between calls.
"""

import logging
import math
from typing import Callable, Optional

# Configure module logger
logger = logging.getLogger(__name__)

ConvergencePredicate = Callable[[int, float], bool]

DEFAULT_TOLERANCE = 1e-5


def never_converge(iteration: int, loss: float) -> bool:
    """Default predicate: run until the iteration limit."""
    return False


class MaxIterations:
    """Stop once ``iteration`` reaches ``max_iters``."""

    def __init__(self, max_iters: int):
        if max_iters < 1:
            raise ValueError(f"max_iters must be positive, got {max_iters}")
        self.max_iters = max_iters

    def __call__(self, iteration: int, loss: float) -> bool:
        return iteration >= self.max_iters


class LossPlateau:
    """Stop when the loss changes by less than ``tolerance`` between iterations.

    The first call only records the loss.
    """

    def __init__(self, tolerance: float = DEFAULT_TOLERANCE):
        if tolerance < 0:
            raise ValueError(f"tolerance must be non-negative, got {tolerance}")
        self.tolerance = tolerance
        self.last_loss: Optional[float] = None

    def __call__(self, iteration: int, loss: float) -> bool:
        last_loss, self.last_loss = self.last_loss, loss
        if last_loss is None or not math.isfinite(last_loss):
            return False

        delta = last_loss - loss
        logger.debug(f"iter {iteration}: loss delta {delta:.6g}")
        return abs(delta) < self.tolerance

    def reset(self) -> None:
        self.last_loss = None


class AnyOf:
    """Stop when any of the wrapped predicates says so.

    Every predicate is called each time so that stateful ones stay current.
    """

    def __init__(self, *predicates: ConvergencePredicate):
        if not predicates:
            raise ValueError("AnyOf needs at least one predicate")
        self.predicates = predicates

    def __call__(self, iteration: int, loss: float) -> bool:
        results = [predicate(iteration, loss) for predicate in self.predicates]
        return any(results)

    def reset(self) -> None:
        for predicate in self.predicates:
            reset = getattr(predicate, "reset", None)
            if reset is not None:
                reset()
