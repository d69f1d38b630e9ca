"""integration/miner_runner.py

Miner Runner Loop.

Orchestrates continuous mining for one account:
- Startup: log balances, seed EMA and donation baseline, check minimum EOS balance
- Dispatch cycle (every second): CPU read -> EMA update -> red-line clamp -> batch
- Adjustment (every 30s): batch-size controller
- Donation (every 30s, optional): proportional side payment

Two scheduling models:
- workers == 1: every job on one sequential scheduler
- workers > 1: dispatch cycles on a WorkerPool sharing MinerState, adjustment
  and donation on the scheduler thread

Design goals:
- Recoverable failures are logged, the next tick retries
- Graceful stop at tick boundaries
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional

from config.runtime_schema import MinerConfig
from execution.dispatcher import BatchDispatcher
from execution.models import DispatchOutcome, OutcomeKind
from integration.scheduler import Clock, Scheduler, SystemClock
from integration.worker_pool import WorkerPool
from ledger.client import LedgerClient, LedgerError
from ledger.pool import EndpointSelector
from ledger.types import MINED_ASSET, PRIMARY_ASSET, BalanceSnapshot
from monitoring.exporters import export_run_metrics
from ops.kill_switch import StopSwitch
from strategy.batch_sizing import BatchSizeController, SizingDecision
from strategy.donation import DonationAction, DonationModule, DonationResult
from strategy.ema import ResourceEmaTracker, format_cpu_rate
from strategy.state import MinerState

logger = logging.getLogger(__name__)


class InsufficientFundsError(RuntimeError):
    """Primary asset balance too low to pay for mining actions."""

    def __init__(self, balance: BalanceSnapshot, minimum: Decimal):
        self.balance = balance
        self.minimum = minimum
        super().__init__(f"Insufficient funds to operate: {balance} < {minimum} {balance.asset}")


@dataclass
class MinerStats:
    """Session counters."""
    cycles: int = 0
    sent: int = 0
    skipped: int = 0
    duplicates: int = 0
    overuse: int = 0
    failures: int = 0
    red_zone_skips: int = 0
    actions_sent: int = 0
    adjustments: int = 0
    donations: int = 0
    mined_total: Decimal = Decimal("0.0000")
    donated_total: Decimal = Decimal("0.0000")
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def record_outcome(self, outcome: DispatchOutcome) -> None:
        with self._lock:
            self.cycles += 1
            if outcome.kind == OutcomeKind.SUCCESS:
                self.sent += 1
                self.actions_sent += outcome.size
            elif outcome.kind == OutcomeKind.SKIPPED:
                self.skipped += 1
            elif outcome.kind == OutcomeKind.DUPLICATE:
                self.duplicates += 1
            elif outcome.kind == OutcomeKind.OVERUSE:
                self.overuse += 1
            else:
                self.failures += 1
            mined = outcome.mined
            if mined is not None and mined > 0:
                self.mined_total += mined

    def record_red_zone(self) -> None:
        with self._lock:
            self.cycles += 1
            self.red_zone_skips += 1

    def record_failure(self) -> None:
        with self._lock:
            self.cycles += 1
            self.failures += 1

    def record_adjustment(self) -> None:
        with self._lock:
            self.adjustments += 1

    def record_donation(self, result: DonationResult) -> None:
        with self._lock:
            if result.action == DonationAction.DONATED:
                self.donations += 1
                self.donated_total += result.amount

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "cycles": self.cycles,
                "sent": self.sent,
                "skipped": self.skipped,
                "duplicates": self.duplicates,
                "overuse": self.overuse,
                "failures": self.failures,
                "red_zone_skips": self.red_zone_skips,
                "actions_sent": self.actions_sent,
                "adjustments": self.adjustments,
                "donations": self.donations,
                "mined_total": str(self.mined_total),
                "donated_total": str(self.donated_total),
            }


class MinerRunner:
    """Wires EMA tracker, controller, dispatcher and donation module for one account.

    Attributes:
        config: Validated miner configuration.
        client: Ledger client (injectable for tests).
        pool: Endpoint selector shared by all components.
        state: Shared controller state.
    """

    def __init__(
        self,
        config: MinerConfig,
        client: LedgerClient,
        pool: EndpointSelector,
        *,
        clock: Optional[Clock] = None,
        state: Optional[MinerState] = None,
        stop_switch: Optional[StopSwitch] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.account = config.account
        self.client = client
        self.pool = pool
        self.clock = clock or SystemClock()
        self.state = state or MinerState(batch_size=config.n_min)
        self.stop_switch = stop_switch or StopSwitch(flag_path=config.stop_flag_path)
        self.stats = MinerStats()

        self.ema = ResourceEmaTracker()
        self.controller = BatchSizeController(
            self.state,
            n_min=config.n_min,
            n_max=config.n_max,
            expectation=config.cpu_rate_expectation,
            red=config.cpu_rate_red,
            manual_size=config.batch_size,
        )
        self.dispatcher = BatchDispatcher(client, pool, self.state, rng=rng)
        self.donation: Optional[DonationModule] = None
        if config.donation_enabled:
            self.donation = DonationModule(
                client,
                pool,
                self.state,
                self.account,
                ratio=Decimal(str(config.donation_ratio)),
                min_donation=Decimal(str(config.min_donation)),
                deposit_threshold=Decimal(str(config.deposit_threshold)),
            )

        self.scheduler = Scheduler(
            clock=self.clock,
            stop_check=self._should_stop,
            stop_event=self.stop_switch.event,
        )
        self.worker_pool: Optional[WorkerPool] = None
        self._last_sample: Optional[float] = None

    def _should_stop(self) -> bool:
        if self.stop_switch.should_stop():
            return True
        # Worker mode: nothing left to coordinate once every worker has exited
        return self.worker_pool is not None and not self.worker_pool.running

    def startup(self) -> None:
        """One-time startup checks.

        Raises:
            InsufficientFundsError: After the cooldown, if the EOS balance is too low.
            LedgerError: If the initial queries fail.
        """
        eos = self.client.get_balance(self.account, PRIMARY_ASSET, endpoint=self.pool.select())
        logger.info(f"[miner] EOS balance: {eos}")

        eidos = self.client.get_balance(self.account, MINED_ASSET, endpoint=self.pool.select())
        logger.info(f"[miner] EIDOS balance: {eidos}")
        if self.donation is not None:
            self.donation.seed(eidos.amount)

        sample = self.client.get_resource_usage(self.account, endpoint=self.pool.select())
        self.ema.seed(sample)
        self._last_sample = sample
        logger.info(f"[miner] CPU rate: {format_cpu_rate(sample)}%")

        minimum = Decimal(str(self.config.min_primary_balance))
        if eos.amount < minimum:
            logger.error(
                f"[miner] Your EOS balance is too low, must be greater than {minimum} EOS, "
                f"please deposit more EOS to your account."
            )
            # Leave time to deposit before the caller re-checks
            self.clock.sleep(self.config.insufficient_funds_cooldown_sec, self.stop_switch.event)
            raise InsufficientFundsError(eos, minimum)

    def tick(self) -> Optional[DispatchOutcome]:
        """One dispatch cycle.

        Returns:
            The dispatch outcome, or None if nothing was attempted.
        """
        try:
            sample = self.client.get_resource_usage(self.account, endpoint=self.pool.select())
        except LedgerError as e:
            logger.error(f"[miner] CPU query failed: {e}")
            self.stats.record_failure()
            return None

        pair = self.ema.update(sample)
        self._last_sample = sample

        if self.controller.is_red(sample, pair):
            self.controller.observe(sample, pair)
            logger.warning("[miner] CPU is too busy, will not send out transaction this time.")
            self.stats.record_red_zone()
            return None

        outcome = self.dispatcher.run_cycle(self.controller.batch_size, self.account)
        self.stats.record_outcome(outcome)
        return outcome

    def adjust(self) -> Optional[SizingDecision]:
        """Periodic batch-size adjustment."""
        pair = self.ema.pair
        if pair is None:
            return None
        decision = self.controller.adjust(pair, self._last_sample)
        self.stats.record_adjustment()
        return decision

    def donate(self) -> Optional[DonationResult]:
        """Periodic donation check."""
        if self.donation is None:
            return None
        result = self.donation.check()
        self.stats.record_donation(result)
        return result

    def schedule(self) -> None:
        """Register the periodic jobs on the scheduler."""
        if self.config.workers <= 1:
            self.scheduler.add_job("dispatch", self.config.dispatch_period_sec, self.tick)
        if self.controller.is_manual:
            logger.info(f"[miner] Manual batch size {self.config.batch_size}, controller disabled")
        else:
            self.scheduler.add_job("adjust", self.config.adjust_period_sec, self.adjust)
        if self.donation is not None:
            self.scheduler.add_job("donate", self.config.donation_period_sec, self.donate)

    def run(self, max_ticks: Optional[int] = None, max_cycles_per_worker: Optional[int] = None) -> Dict[str, Any]:
        """Run startup checks and the mining loop until stopped.

        Args:
            max_ticks: Optional scheduler tick limit (for smoke tests).
            max_cycles_per_worker: Optional per-worker cycle limit (for smoke tests).

        Returns:
            Session stats.

        Raises:
            InsufficientFundsError: If the startup balance check fails.
        """
        self.startup()
        self.schedule()

        if self.config.workers > 1:
            self.worker_pool = WorkerPool(
                self.tick,
                self.config.workers,
                self.config.dispatch_period_sec,
                clock=self.clock,
                stop_event=self.stop_switch.event,
                stop_check=self.stop_switch.should_stop,
                max_cycles_per_worker=max_cycles_per_worker,
            )
            self.worker_pool.start()

        logger.info(f"[miner] Mining as {self.account} with {self.config.workers} worker(s)")
        try:
            if self.scheduler.jobs:
                self.scheduler.run(max_ticks=max_ticks)
            elif self.worker_pool is not None:
                self.worker_pool.join()
        finally:
            if self.worker_pool is not None:
                self.worker_pool.stop()
                self.worker_pool.join()
            self.finish()

        return self.stats.to_dict()

    def finish(self) -> None:
        """Log and export the session summary."""
        summary = self.stats.to_dict()
        summary["batch_size"] = self.controller.batch_size
        logger.info(f"[miner] Session summary: {summary}")
        if self.config.metrics_path:
            export_run_metrics({"account": self.account, **summary}, self.config.metrics_path)
