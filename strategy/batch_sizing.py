"""strategy/batch_sizing.py

Batch-Size Controller.

Hysteresis controller that keeps the account's CPU utilization close to (but
below) saturation by resizing the action batch:

- fast EMA below EXPECT: double N (find the ceiling quickly)
- fast EMA above RED: halve N (back off hard)
- in between: step N by one when fast and slow diverge by more than 0.1%,
  otherwise leave it alone (dead zone)

Independently of the adjustment period, any observation above RED clamps N
to N_MIN immediately.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from strategy.ema import EmaPair, format_cpu_rate
from strategy.state import MinerState

logger = logging.getLogger(__name__)


N_MIN = 2
N_MAX = 256
CPU_RATE_EXPECTATION = 0.95  # keep CPU rate around 95%
CPU_RATE_RED = 0.99  # stop growing (and stop sending) above 99%
HYSTERESIS = 0.001  # relative fast/slow difference treated as noise


class SizingAction(str, Enum):
    DOUBLED = "doubled"
    HALVED = "halved"
    DECREMENTED = "decremented"
    INCREMENTED = "incremented"
    UNCHANGED = "unchanged"
    CLAMPED = "clamped"
    MANUAL = "manual"


@dataclass(frozen=True)
class SizingDecision:
    """Result of one controller evaluation."""
    action: SizingAction
    previous: int
    batch_size: int

    @property
    def changed(self) -> bool:
        return self.previous != self.batch_size


def next_batch_size(
    n: int,
    fast: float,
    slow: float,
    *,
    n_min: int = N_MIN,
    n_max: int = N_MAX,
    expectation: float = CPU_RATE_EXPECTATION,
    red: float = CPU_RATE_RED,
    hysteresis: float = HYSTERESIS,
) -> Tuple[int, SizingAction]:
    """Compute the next batch size from the EMA pair.

    Pure function; bounds are always respected.

    Returns:
        (new batch size, action taken)
    """
    if fast < expectation:
        return min(math.ceil(n * 2), n_max), SizingAction.DOUBLED

    if fast > red:
        return max(math.ceil(n / 2), n_min), SizingAction.HALVED

    # fast is within [expectation, red]; slow == 0 only before the first seed
    if slow <= 0 or abs(fast - slow) / slow <= hysteresis:
        return n, SizingAction.UNCHANGED

    if fast > slow:
        if n > n_min:
            return n - 1, SizingAction.DECREMENTED
        return n, SizingAction.UNCHANGED

    if n < n_max:
        return n + 1, SizingAction.INCREMENTED
    return n, SizingAction.UNCHANGED


class BatchSizeController:
    """Owns ``MinerState.batch_size``.

    Thread-safe: every evaluation is an atomic read-modify-write under the
    state lock. A positive ``manual_size`` pins N and disables adjustment.
    """

    def __init__(
        self,
        state: MinerState,
        *,
        n_min: int = N_MIN,
        n_max: int = N_MAX,
        expectation: float = CPU_RATE_EXPECTATION,
        red: float = CPU_RATE_RED,
        hysteresis: float = HYSTERESIS,
        manual_size: int = 0,
    ):
        if not 1 <= n_min <= n_max:
            raise ValueError(f"Invalid batch bounds: n_min={n_min}, n_max={n_max}")
        if not 0.0 < expectation <= red <= 1.0:
            raise ValueError(f"Invalid thresholds: expectation={expectation}, red={red}")
        if manual_size < 0:
            raise ValueError(f"manual_size must be >= 0, got {manual_size}")

        self.state = state
        self.n_min = n_min
        self.n_max = n_max
        self.expectation = expectation
        self.red = red
        self.hysteresis = hysteresis
        self.manual_size = manual_size

        with state.lock:
            if manual_size > 0:
                state.batch_size = manual_size
            else:
                state.batch_size = min(max(state.batch_size, n_min), n_max)

    @property
    def is_manual(self) -> bool:
        return self.manual_size > 0

    @property
    def batch_size(self) -> int:
        with self.state.lock:
            return self.state.batch_size

    def is_red(self, sample: Optional[float], pair: EmaPair) -> bool:
        """True if the sample or either average is above the red line."""
        values = [pair.fast, pair.slow]
        if sample is not None:
            values.append(sample)
        return any(v > self.red for v in values)

    def observe(self, sample: Optional[float], pair: EmaPair) -> SizingDecision:
        """Safety clamp evaluated on every cycle.

        Resets N to N_MIN when the account is about to run out of CPU.
        """
        with self.state.lock:
            previous = self.state.batch_size
            if self.is_manual or not self.is_red(sample, pair):
                return SizingDecision(SizingAction.UNCHANGED, previous, previous)
            self.state.batch_size = self.n_min

        if previous != self.n_min:
            logger.warning(f"[controller] CPU in red zone, clamped num_actions {previous} -> {self.n_min}")
        return SizingDecision(SizingAction.CLAMPED, previous, self.n_min)

    def adjust(self, pair: EmaPair, sample: Optional[float] = None) -> SizingDecision:
        """Periodic adjustment from the EMA pair.

        Args:
            pair: Current fast/slow averages.
            sample: Latest raw utilization, used for the red-line clamp.
        """
        with self.state.lock:
            previous = self.state.batch_size
            if self.is_manual:
                return SizingDecision(SizingAction.MANUAL, previous, previous)

            new_size, action = next_batch_size(
                previous,
                pair.fast,
                pair.slow,
                n_min=self.n_min,
                n_max=self.n_max,
                expectation=self.expectation,
                red=self.red,
                hysteresis=self.hysteresis,
            )
            if self.is_red(sample, pair) and new_size != self.n_min:
                new_size, action = self.n_min, SizingAction.CLAMPED
            self.state.batch_size = new_size

        logger.info(
            f"[controller] cpu_rate_ema_fast={format_cpu_rate(pair.fast)}%, "
            f"cpu_rate_ema_slow={format_cpu_rate(pair.slow)}%, "
            f"num_actions {previous} -> {new_size} ({action.value})"
        )
        return SizingDecision(action, previous, new_size)
