"""integration/worker_pool.py

Fixed-size pool of dispatch workers.

Each worker runs dispatch cycles against the same account and the same
shared MinerState; all synchronization lives in the shared objects (state
lock, EMA tracker lock). Workers only check for a stop (event or stop_check,
e.g. the stop flag file) between cycles, so a submission in flight always
completes.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, List, Optional

from integration.scheduler import Clock, SystemClock

logger = logging.getLogger(__name__)


class WorkerPool:
    """Runs ``cycle`` repeatedly on ``workers`` threads."""

    def __init__(
        self,
        cycle: Callable[[], Any],
        workers: int,
        period_sec: float,
        *,
        clock: Optional[Clock] = None,
        stop_event: Optional[threading.Event] = None,
        stop_check: Optional[Callable[[], bool]] = None,
        max_cycles_per_worker: Optional[int] = None,
    ):
        """
        Initialize WorkerPool.

        Args:
            cycle: One dispatch cycle; exceptions are logged and the worker continues
            workers: Number of worker threads
            period_sec: Pause between a worker's cycles
            clock: Time source (defaults to SystemClock)
            stop_event: Shared stop event
            stop_check: Polled between cycles; True sets the stop event
            max_cycles_per_worker: Optional cycle limit per worker (for tests)
        """
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        self._cycle = cycle
        self.workers = workers
        self.period_sec = period_sec
        self.clock = clock or SystemClock()
        self.stop_event = stop_event or threading.Event()
        self.stop_check = stop_check
        self.max_cycles_per_worker = max_cycles_per_worker

        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()
        self.cycles = 0
        self.errors = 0

    def start(self) -> None:
        """Start the worker threads."""
        if self._threads:
            return
        for i in range(self.workers):
            thread = threading.Thread(
                target=self._worker_loop,
                args=(i,),
                name=f"MinerWorker-{i}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()
        logger.info(f"[workers] Started {self.workers} dispatch workers")

    def _worker_loop(self, index: int) -> None:
        done = 0
        while not self.should_stop():
            if self.max_cycles_per_worker is not None and done >= self.max_cycles_per_worker:
                break
            try:
                self._cycle()
            except Exception as e:
                with self._lock:
                    self.errors += 1
                logger.exception(f"[workers] Worker {index} cycle failed: {e}")
            done += 1
            with self._lock:
                self.cycles += 1
            self.clock.sleep(self.period_sec, self.stop_event)
        logger.debug(f"[workers] Worker {index} exiting after {done} cycles")

    def should_stop(self) -> bool:
        if self.stop_event.is_set():
            return True
        if self.stop_check is not None and self.stop_check():
            self.stop_event.set()
            return True
        return False

    def stop(self) -> None:
        """Ask workers to exit after their current cycle."""
        self.stop_event.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for all workers.

        Returns:
            True if every worker exited.
        """
        for thread in self._threads:
            thread.join(timeout)
        alive = [t.name for t in self._threads if t.is_alive()]
        if alive:
            logger.warning(f"[workers] Still running after join: {alive}")
            return False
        self._threads = []
        return True

    @property
    def running(self) -> bool:
        return any(t.is_alive() for t in self._threads)
