"""Counters for the silent fallbacks taken during sampling.

Thread-safe so that parallel factor passes can record into the same object.
"""

import threading
from typing import Dict


class SamplerDiagnostics:
    """Thread-safe counters of degrade-and-continue events.

    - wishart_fallbacks: Wishart draw undefined, previous precision kept
    - mean_fallbacks: hyper-mean covariance not PD, previous mean kept
    - factor_fallbacks: factor posterior covariance not PD, row kept
    - empty_skipped: entity without ratings, row kept
    """

    _COUNTERS = (
        "wishart_fallbacks",
        "mean_fallbacks",
        "factor_fallbacks",
        "empty_skipped",
    )

    def __init__(self):
        """Initialize all counters to zero."""
        self._lock = threading.Lock()
        self._counts = {name: 0 for name in self._COUNTERS}

    def _increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counts[name] += amount

    def record_wishart_fallback(self) -> None:
        self._increment("wishart_fallbacks")

    def record_mean_fallback(self) -> None:
        self._increment("mean_fallbacks")

    def record_factor_fallback(self, amount: int = 1) -> None:
        self._increment("factor_fallbacks", amount)

    def record_empty_skipped(self, amount: int = 1) -> None:
        self._increment("empty_skipped", amount)

    def snapshot(self) -> Dict[str, int]:
        """Get current counts.

        Returns:
            Dictionary mapping counter name to its value.
        """
        with self._lock:
            return dict(self._counts)

    def reset(self) -> None:
        """Reset all counters to zero."""
        with self._lock:
            for name in self._counts:
                self._counts[name] = 0

    def restore(self, counts: Dict[str, int]) -> None:
        """Set the counters back to a previous :meth:`snapshot`."""
        with self._lock:
            for name in self._COUNTERS:
                self._counts[name] = counts[name]

    @property
    def wishart_fallbacks(self) -> int:
        return self.snapshot()["wishart_fallbacks"]

    @property
    def mean_fallbacks(self) -> int:
        return self.snapshot()["mean_fallbacks"]

    @property
    def factor_fallbacks(self) -> int:
        return self.snapshot()["factor_fallbacks"]

    @property
    def empty_skipped(self) -> int:
        return self.snapshot()["empty_skipped"]

    def __getstate__(self) -> Dict:
        return {"_counts": self.snapshot()}

    def __setstate__(self, state: Dict) -> None:
        self._lock = threading.Lock()
        self._counts = state["_counts"]
