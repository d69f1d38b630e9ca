"""strategy/state.py - Miner Controller State

Explicit state record shared by the controller, the dispatcher and the
donation module for one account. Replaces process-wide globals so several
miners (or worker threads) can run side by side.

All read-modify-write operations happen under one re-entrant lock.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple


@dataclass
class MinerState:
    """Mutable miner state.

    Attributes:
        batch_size: Current batch size N (owned by BatchSizeController).
        overuse_pending: One-shot backoff flag set on a CPU overuse rejection.
        overuse_epoch: Number of overuse rejections seen; a success only clears
            the flag if no rejection arrived while it was in flight.
        last_observed_balance: Mined-asset balance seen by the last donation check.
    """
    batch_size: int = 2
    overuse_pending: bool = False
    overuse_epoch: int = 0
    last_observed_balance: Decimal = Decimal("0.0000")
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False, compare=False)

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def mark_overuse(self) -> None:
        """Arm the one-shot backoff flag and start a new overuse epoch."""
        with self._lock:
            self.overuse_pending = True
            self.overuse_epoch += 1

    def clear_overuse(self, epoch: Optional[int] = None) -> None:
        """Disarm the backoff flag.

        Args:
            epoch: Epoch returned by begin_attempt(); the flag is left armed if
                a rejection arrived after that attempt began.
        """
        with self._lock:
            if epoch is None or epoch == self.overuse_epoch:
                self.overuse_pending = False

    def begin_attempt(self) -> Tuple[bool, int]:
        """Atomically consume the backoff flag and read the current epoch.

        Returns:
            (skip, epoch): skip is True if the flag was set (caller must skip
            this attempt).
        """
        with self._lock:
            pending = self.overuse_pending
            self.overuse_pending = False
            return pending, self.overuse_epoch

    def to_dict(self) -> Dict[str, Any]:
        """Convert to serializable dictionary."""
        with self._lock:
            return {
                "batch_size": self.batch_size,
                "overuse_pending": self.overuse_pending,
                "last_observed_balance": str(self.last_observed_balance),
            }
