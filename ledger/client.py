"""
ledger/client.py

LedgerClient: the capability the miner core consumes from the chain.

Queries raise LedgerError on transport or protocol failures. Transaction
pushes never raise: they return a classified SubmitResult.
"""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Optional, Sequence

from .types import BalanceSnapshot, Endpoint, MINED_ASSET, Operation, SubmitResult


class LedgerError(Exception):
    """Raised when a ledger query cannot be completed."""

    def __init__(self, message: str, endpoint: Optional[Endpoint] = None, body: Any = None):
        self.endpoint = endpoint
        self.body = body
        super().__init__(f"{message} (endpoint={endpoint})" if endpoint else message)


class LedgerClient(ABC):
    """Abstract ledger access used by the dispatcher, donation module and runner.

    Every method accepts an optional endpoint; implementations choose one from
    their own pool when it is omitted.
    """

    @abstractmethod
    def get_resource_usage(self, account: str, *, endpoint: Optional[Endpoint] = None) -> float:
        """Return the account's CPU utilization ratio in [0, 1].

        Raises:
            LedgerError: If the account cannot be queried.
        """
        ...

    @abstractmethod
    def get_balance(
        self,
        account: str,
        asset: str,
        *,
        endpoint: Optional[Endpoint] = None,
    ) -> BalanceSnapshot:
        """Return the account's balance of ``asset``.

        Raises:
            LedgerError: If the balance cannot be queried.
        """
        ...

    @abstractmethod
    def submit_batch(
        self,
        operations: Sequence[Operation],
        *,
        endpoint: Optional[Endpoint] = None,
    ) -> SubmitResult:
        """Push the operations as one atomic transaction."""
        ...

    @abstractmethod
    def transfer(
        self,
        from_account: str,
        to_account: str,
        amount: Decimal,
        memo: str = "",
        *,
        asset: str = MINED_ASSET,
        endpoint: Optional[Endpoint] = None,
    ) -> SubmitResult:
        """Transfer ``amount`` of ``asset`` between accounts."""
        ...
