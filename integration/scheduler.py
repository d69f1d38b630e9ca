"""integration/scheduler.py

Periodic job scheduler with an injectable clock.

Replaces repeating timers with an explicit loop:
- Jobs run strictly sequentially on the calling thread (no overlap)
- Each job first fires one period after registration (interval semantics)
- Stop requests are honored only between jobs

Design goals:
- Deterministic: ManualClock simulates N ticks without wall-clock delay
- Failing jobs are logged and the loop continues
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)


class Clock(ABC):
    """Time source used by the scheduler and the worker pool."""

    @abstractmethod
    def now(self) -> float:
        """Current time in seconds (monotonic)."""
        ...

    @abstractmethod
    def sleep(self, seconds: float, stop_event: Optional[threading.Event] = None) -> None:
        """Wait ``seconds``, returning early when ``stop_event`` is set."""
        ...


class SystemClock(Clock):
    """Wall-clock implementation."""

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float, stop_event: Optional[threading.Event] = None) -> None:
        if seconds <= 0:
            return
        if stop_event is not None:
            stop_event.wait(seconds)
        else:
            time.sleep(seconds)


class ManualClock(Clock):
    """Simulated clock: sleeping advances time instantly."""

    def __init__(self, start: float = 0.0):
        self._now = start
        self._lock = threading.Lock()
        self.sleeps: List[float] = []

    def now(self) -> float:
        with self._lock:
            return self._now

    def sleep(self, seconds: float, stop_event: Optional[threading.Event] = None) -> None:
        with self._lock:
            self.sleeps.append(seconds)
            if seconds > 0:
                self._now += seconds

    def advance(self, seconds: float) -> None:
        with self._lock:
            self._now += seconds


@dataclass
class PeriodicJob:
    """A function run every ``period_sec`` seconds."""
    name: str
    period_sec: float
    func: Callable[[], Any]
    next_run: float = 0.0
    runs: int = 0
    failures: int = 0


class Scheduler:
    """Sequential periodic scheduler.

    Attributes:
        clock: Time source.
        stop_check: Callable returning True when the loop must stop.
        stop_event: Event used to wake up sleeps early on stop.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        stop_check: Optional[Callable[[], bool]] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        self.clock = clock or SystemClock()
        self.stop_check = stop_check
        self.stop_event = stop_event or threading.Event()
        self.jobs: List[PeriodicJob] = []
        self.ticks = 0

    def add_job(
        self,
        name: str,
        period_sec: float,
        func: Callable[[], Any],
        run_immediately: bool = False,
    ) -> PeriodicJob:
        """Register a periodic job.

        Raises:
            ValueError: If period_sec is not positive.
        """
        if period_sec <= 0:
            raise ValueError(f"period_sec must be positive, got {period_sec}")
        now = self.clock.now()
        job = PeriodicJob(
            name=name,
            period_sec=period_sec,
            func=func,
            next_run=now if run_immediately else now + period_sec,
        )
        self.jobs.append(job)
        logger.debug(f"[scheduler] Added job {name} every {period_sec}s")
        return job

    def should_stop(self) -> bool:
        if self.stop_event.is_set():
            return True
        if self.stop_check is not None and self.stop_check():
            self.stop_event.set()
            return True
        return False

    def request_stop(self) -> None:
        self.stop_event.set()

    def seconds_until_next(self) -> float:
        if not self.jobs:
            return 0.0
        next_run = min(job.next_run for job in self.jobs)
        return max(next_run - self.clock.now(), 0.0)

    def run_pending(self) -> List[str]:
        """Run every due job once, in registration order.

        Returns:
            Names of the jobs that ran.
        """
        ran = []
        for job in self.jobs:
            if self.should_stop():
                break
            now = self.clock.now()
            if job.next_run > now:
                continue

            job.runs += 1
            try:
                job.func()
            except Exception as e:
                job.failures += 1
                logger.exception(f"[scheduler] Job {job.name} failed: {e}")
            ran.append(job.name)

            # No burst catch-up after a slow job or a long pause
            job.next_run += job.period_sec
            if job.next_run <= self.clock.now():
                job.next_run = self.clock.now() + job.period_sec
        return ran

    def run(self, max_ticks: Optional[int] = None) -> int:
        """Run the loop until stopped.

        Args:
            max_ticks: Optional limit on ticks, a tick being one run_pending
                call that ran at least one job (for smoke tests).

        Returns:
            Number of ticks executed.
        """
        if not self.jobs:
            logger.warning("[scheduler] No jobs registered")
            return 0

        ticks = 0
        while not self.should_stop():
            if max_ticks is not None and ticks >= max_ticks:
                logger.info(f"[scheduler] Reached max ticks ({max_ticks})")
                break

            self.clock.sleep(self.seconds_until_next(), self.stop_event)
            if self.should_stop():
                break

            if self.run_pending():
                ticks += 1
                self.ticks += 1

        return ticks
