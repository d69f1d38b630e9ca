from __future__ import annotations

import random
import threading
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

import pytest

from integration.scheduler import ManualClock
from ledger.client import LedgerClient, LedgerError
from ledger.pool import EndpointPool
from ledger.types import BalanceSnapshot, Endpoint, MINED_ASSET, PRIMARY_ASSET, SubmitResult
from strategy.state import MinerState


class FakeLedgerClient(LedgerClient):
    """Scripted ledger: each queue pops one value per call and repeats its last value."""

    def __init__(
        self,
        usage: Optional[List[float]] = None,
        balances: Optional[Dict[str, List[Decimal]]] = None,
        submit_results: Optional[List[SubmitResult]] = None,
        transfer_results: Optional[List[SubmitResult]] = None,
    ):
        self.usage = list(usage or [0.5])
        self.balances = {
            PRIMARY_ASSET: [Decimal("10.0000")],
            MINED_ASSET: [Decimal("100.0000")],
        }
        for asset, values in (balances or {}).items():
            self.balances[asset] = [Decimal(str(v)) for v in values]
        self.submit_results = list(submit_results or [SubmitResult.success({"transaction_id": "abc"})])
        self.transfer_results = list(transfer_results or [SubmitResult.success({"transaction_id": "def"})])

        self.submitted: List[Sequence[dict]] = []
        self.transfers: List[dict] = []
        self.calls: List[str] = []
        self.endpoints: List[Optional[Endpoint]] = []
        self.fail_usage = False
        self.fail_balance = False
        self._lock = threading.Lock()

    @staticmethod
    def _next(queue: list):
        if len(queue) > 1:
            return queue.pop(0)
        return queue[0]

    def get_resource_usage(self, account, *, endpoint=None):
        with self._lock:
            self.calls.append("usage")
            self.endpoints.append(endpoint)
            if self.fail_usage:
                raise LedgerError("usage unavailable", endpoint)
            return self._next(self.usage)

    def get_balance(self, account, asset, *, endpoint=None):
        with self._lock:
            self.calls.append(f"balance:{asset}")
            self.endpoints.append(endpoint)
            if self.fail_balance:
                raise LedgerError("balance unavailable", endpoint)
            return BalanceSnapshot(asset=asset, amount=self._next(self.balances[asset]))

    def submit_batch(self, operations, *, endpoint=None):
        with self._lock:
            self.calls.append("submit")
            self.endpoints.append(endpoint)
            self.submitted.append(list(operations))
            return self._next(self.submit_results)

    def transfer(self, from_account, to_account, amount, memo="", *, asset=MINED_ASSET, endpoint=None):
        with self._lock:
            self.calls.append("transfer")
            self.endpoints.append(endpoint)
            self.transfers.append({
                "from": from_account,
                "to": to_account,
                "amount": amount,
                "memo": memo,
                "asset": asset,
            })
            return self._next(self.transfer_results)


@pytest.fixture
def fake_client() -> FakeLedgerClient:
    return FakeLedgerClient()


@pytest.fixture
def pool() -> EndpointPool:
    return EndpointPool(["https://a.example", "https://b.example"], rng=random.Random(7))


@pytest.fixture
def state() -> MinerState:
    return MinerState(batch_size=2)


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()
