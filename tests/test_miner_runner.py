from __future__ import annotations

import csv
import random
from decimal import Decimal

import pytest

from conftest import FakeLedgerClient
from config.runtime_schema import MinerConfig
from execution.models import OutcomeKind
from integration.miner_runner import InsufficientFundsError, MinerRunner
from ledger.client import LedgerError
from ledger.types import MINED_ASSET, PRIMARY_ASSET, SubmitResult
from ops.kill_switch import StopSwitch


ACCOUNT = "miner1234512"


def _config(**kwargs) -> MinerConfig:
    kwargs.setdefault("account", ACCOUNT)
    return MinerConfig(**kwargs)


def _runner(client, pool, clock, **kwargs) -> MinerRunner:
    return MinerRunner(_config(**kwargs), client, pool, clock=clock, rng=random.Random(11))


def test_startup_seeds_ema_and_donation_baseline(pool, clock):
    client = FakeLedgerClient(usage=[0.4], balances={MINED_ASSET: ["12.5000"]})
    runner = _runner(client, pool, clock)

    runner.startup()

    assert runner.ema.pair.fast == 0.4
    assert runner.ema.pair.slow == 0.4
    assert runner.state.last_observed_balance == Decimal("12.5000")


def test_insufficient_funds_waits_then_raises(pool, clock):
    client = FakeLedgerClient(balances={PRIMARY_ASSET: ["0.0005"]})
    runner = _runner(client, pool, clock)

    with pytest.raises(InsufficientFundsError) as exc_info:
        runner.run()

    assert clock.sleeps == [60.0]
    assert exc_info.value.minimum == Decimal("0.001")
    assert client.submitted == []


def test_startup_query_failure_propagates(pool, clock):
    client = FakeLedgerClient()
    client.fail_balance = True

    with pytest.raises(LedgerError):
        _runner(client, pool, clock).startup()


def test_tick_sends_current_batch_size(pool, clock):
    client = FakeLedgerClient(usage=[0.5])
    runner = _runner(client, pool, clock)
    runner.startup()

    outcome = runner.tick()

    assert outcome.kind == OutcomeKind.SUCCESS
    assert len(client.submitted[-1]) == runner.controller.batch_size == 2


def test_red_zone_skips_dispatch_and_clamps(pool, clock):
    client = FakeLedgerClient(usage=[0.5, 0.995])
    runner = _runner(client, pool, clock)
    runner.startup()
    runner.state.batch_size = 64

    assert runner.tick() is None
    assert client.submitted == []
    assert runner.controller.batch_size == 2
    assert runner.stats.red_zone_skips == 1


def test_red_zone_skip_applies_with_manual_batch(pool, clock):
    client = FakeLedgerClient(usage=[0.5, 0.995])
    runner = _runner(client, pool, clock, batch_size=16)
    runner.startup()

    assert runner.tick() is None
    assert client.submitted == []
    assert runner.controller.batch_size == 16


def test_cpu_query_failure_is_recoverable(pool, clock):
    client = FakeLedgerClient()
    runner = _runner(client, pool, clock)
    runner.startup()
    client.fail_usage = True

    assert runner.tick() is None
    assert runner.stats.failures == 1

    client.fail_usage = False
    assert runner.tick().kind == OutcomeKind.SUCCESS


def test_overuse_skips_next_tick(pool, clock):
    client = FakeLedgerClient(
        submit_results=[SubmitResult.overuse(), SubmitResult.success({"transaction_id": "ok"})]
    )
    runner = _runner(client, pool, clock)
    runner.startup()

    kinds = [runner.tick().kind for _ in range(3)]

    assert kinds == [OutcomeKind.OVERUSE, OutcomeKind.SKIPPED, OutcomeKind.SUCCESS]
    assert len(client.submitted) == 2


def test_schedule_registers_jobs(pool, clock):
    runner = _runner(FakeLedgerClient(), pool, clock)
    runner.schedule()
    assert [job.name for job in runner.scheduler.jobs] == ["dispatch", "adjust", "donate"]


def test_manual_batch_and_no_donation_skip_jobs(pool, clock):
    runner = _runner(FakeLedgerClient(), pool, clock, batch_size=8, donation_enabled=False)
    runner.schedule()

    assert runner.donation is None
    assert [job.name for job in runner.scheduler.jobs] == ["dispatch"]


def test_run_loop_with_simulated_clock(pool, clock):
    client = FakeLedgerClient(usage=[0.5])
    runner = _runner(client, pool, clock)

    stats = runner.run(max_ticks=30)

    # adjustment and donation fire together with the 30th dispatch
    assert stats["cycles"] == 30
    assert stats["sent"] == 30
    assert stats["adjustments"] == 1
    assert runner.controller.batch_size == 4
    assert client.transfers == []


def test_donation_during_run(pool, clock):
    balances = ["100.0000"] * 61 + ["101.0000"]
    client = FakeLedgerClient(usage=[0.5], balances={MINED_ASSET: balances})
    runner = _runner(client, pool, clock)

    stats = runner.run(max_ticks=30)

    assert stats["donations"] == 1
    assert client.transfers[0]["amount"] == Decimal("0.0500")


def test_stop_before_run_exports_metrics(pool, clock, tmp_path):
    metrics = tmp_path / "metrics.csv"
    switch = StopSwitch()
    switch.request_stop("test")
    runner = MinerRunner(
        _config(metrics_path=str(metrics)),
        FakeLedgerClient(),
        pool,
        clock=clock,
        stop_switch=switch,
    )

    stats = runner.run()

    assert stats["cycles"] == 0
    with open(metrics, newline="") as f:
        rows = list(csv.DictReader(f))
    assert rows[0]["account"] == ACCOUNT
    assert rows[0]["batch_size"] == "2"


def test_workers_share_state(pool, clock):
    client = FakeLedgerClient(usage=[0.5])
    runner = _runner(client, pool, clock, workers=3, batch_size=4, donation_enabled=False)

    stats = runner.run(max_cycles_per_worker=5)

    assert stats["cycles"] == 15
    assert len(client.submitted) == 15
    assert all(len(batch) == 4 for batch in client.submitted)


def test_workers_with_controller_jobs_finish(pool, clock):
    client = FakeLedgerClient(usage=[0.5])
    runner = _runner(client, pool, clock, workers=2, donation_enabled=False)

    stats = runner.run(max_cycles_per_worker=4)

    assert stats["cycles"] == 8
    assert not runner.worker_pool.running


def test_one_overuse_skips_exactly_one_attempt_across_workers(pool, clock):
    client = FakeLedgerClient(
        usage=[0.5],
        submit_results=[SubmitResult.overuse(), SubmitResult.success({"transaction_id": "ok"})],
    )
    runner = _runner(client, pool, clock, workers=4, batch_size=2, donation_enabled=False)

    stats = runner.run(max_cycles_per_worker=10)

    assert stats["cycles"] == 40
    assert stats["overuse"] == 1
    assert stats["skipped"] == 1
    assert len(client.submitted) == 39


def test_stop_flag_ends_worker_only_mode(pool, clock, tmp_path):
    flag = tmp_path / "stop.flag"
    flag.write_text("maintenance", encoding="utf-8")
    client = FakeLedgerClient(usage=[0.5])
    runner = _runner(
        client, pool, clock,
        workers=2, batch_size=4, donation_enabled=False, stop_flag_path=str(flag),
    )

    stats = runner.run(max_cycles_per_worker=1000)

    assert stats["cycles"] == 0
    assert client.submitted == []
    assert runner.stop_switch.reason == "maintenance"


def test_stop_flag_created_mid_run_stops_workers(pool, clock, tmp_path):
    flag = tmp_path / "stop.flag"

    class FlaggingClient(FakeLedgerClient):
        def submit_batch(self, operations, *, endpoint=None):
            result = super().submit_batch(operations, endpoint=endpoint)
            if len(self.submitted) >= 5:
                flag.write_text("enough", encoding="utf-8")
            return result

    client = FlaggingClient(usage=[0.5])
    runner = _runner(
        client, pool, clock,
        workers=2, batch_size=4, donation_enabled=False, stop_flag_path=str(flag),
    )

    stats = runner.run(max_cycles_per_worker=1000)

    # each worker finishes at most the cycle it was in
    assert 5 <= stats["cycles"] <= 6
