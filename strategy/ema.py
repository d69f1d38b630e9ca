"""strategy/ema.py

Resource EMA Tracker.

Two exponential moving averages of the account's CPU utilization ratio:
- fast: decay 0.5, follows roughly the last 2 samples
- slow: decay 0.999, follows roughly the last 1000 samples

Both are seeded with the first observed sample (not zero) so the controller
does not start from a cold-start bias. Updates are convex blends, so samples
in [0, 1] keep both averages in [0, 1].
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional


FAST_DECAY = 0.5
SLOW_DECAY = 0.999


@dataclass(frozen=True)
class EmaPair:
    """Fast and slow utilization averages."""
    fast: float
    slow: float


def format_cpu_rate(rate: float) -> str:
    """Format a ratio as a truncated percentage with two decimals (0.95678 -> '95.67')."""
    return f"{int(rate * 10000) / 100:.2f}"


class ResourceEmaTracker:
    """Thread-safe fast/slow EMA pair.

    A tracker may be shared between workers (updates are serialized) or
    created per worker with independent state.
    """

    def __init__(self, fast_decay: float = FAST_DECAY, slow_decay: float = SLOW_DECAY):
        if not (0.0 <= fast_decay < 1.0 and 0.0 <= slow_decay < 1.0):
            raise ValueError(f"Decay factors must be in [0, 1), got fast={fast_decay}, slow={slow_decay}")
        self.fast_decay = fast_decay
        self.slow_decay = slow_decay
        self._pair: Optional[EmaPair] = None
        self._lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        return self._pair is not None

    @property
    def pair(self) -> Optional[EmaPair]:
        with self._lock:
            return self._pair

    def seed(self, sample: float) -> EmaPair:
        """Set both averages to ``sample``."""
        with self._lock:
            self._pair = EmaPair(fast=sample, slow=sample)
            return self._pair

    def update(self, sample: float) -> EmaPair:
        """Blend a new utilization sample into both averages.

        The first call seeds both averages with the sample.
        """
        with self._lock:
            if self._pair is None:
                self._pair = EmaPair(fast=sample, slow=sample)
            else:
                self._pair = EmaPair(
                    fast=self.fast_decay * self._pair.fast + (1.0 - self.fast_decay) * sample,
                    slow=self.slow_decay * self._pair.slow + (1.0 - self.slow_decay) * sample,
                )
            return self._pair
