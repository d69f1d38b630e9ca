"""strategy/donation.py

Proportional Donation Module.

Forwards a fixed fraction of newly mined balance to a fixed recipient:

    delta = current_balance - last_observed_balance

Rules:
- delta above the deposit threshold is an external deposit, not mined yield: skip.
- delta * ratio not above the minimum donation is negligible: skip (discarded).
- otherwise transfer round_half_up(delta * ratio, 4 digits) and refresh the
  baseline from a fresh balance query (never by local subtraction).

The baseline is refreshed after every check, so yields below the precision
floor are discarded rather than accumulated.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Optional

from ledger.client import LedgerClient
from ledger.pool import EndpointSelector
from ledger.types import MINED_ASSET, ResultStatus, SubmitResult, quantize_amount
from strategy.state import MinerState

logger = logging.getLogger(__name__)


DONATION_RECIPIENT = "thinkmachine"
DONATION_RATIO = Decimal("0.05")  # 5%
MIN_DONATION = Decimal("0.0001")
# It's impossible to mine this much between two checks, so it must be a deposit
DEPOSIT_THRESHOLD = Decimal("50")


class DonationAction(str, Enum):
    DONATED = "donated"
    DEPOSIT_SKIPPED = "deposit_skipped"
    NEGLIGIBLE = "negligible"
    TRANSFER_FAILED = "transfer_failed"
    QUERY_FAILED = "query_failed"


@dataclass(frozen=True)
class DonationResult:
    """Outcome of one donation check."""
    action: DonationAction
    delta: Decimal = Decimal("0.0000")
    amount: Decimal = Decimal("0.0000")
    submit: Optional[SubmitResult] = None
    error: str = ""


class DonationModule:
    """Delta-based proportional side payment.

    Checks are serialized; concurrent callers wait for the running check.
    """

    def __init__(
        self,
        client: LedgerClient,
        pool: EndpointSelector,
        state: MinerState,
        account: str,
        *,
        recipient: str = DONATION_RECIPIENT,
        ratio: Decimal = DONATION_RATIO,
        min_donation: Decimal = MIN_DONATION,
        deposit_threshold: Decimal = DEPOSIT_THRESHOLD,
        asset: str = MINED_ASSET,
    ):
        self.client = client
        self.pool = pool
        self.state = state
        self.account = account
        self.recipient = recipient
        self.ratio = Decimal(str(ratio))
        self.min_donation = Decimal(str(min_donation))
        self.deposit_threshold = Decimal(str(deposit_threshold))
        self.asset = asset
        self._lock = threading.Lock()

        if not Decimal("0") < self.ratio <= Decimal("1"):
            raise ValueError(f"Donation ratio must be in (0, 1], got {self.ratio}")

    @property
    def memo(self) -> str:
        return f"donated from {self.account}"

    @property
    def last_observed_balance(self) -> Decimal:
        with self.state.lock:
            return self.state.last_observed_balance

    def _set_baseline(self, amount: Decimal) -> None:
        with self.state.lock:
            self.state.last_observed_balance = amount

    def _query_balance(self) -> Decimal:
        return self.client.get_balance(self.account, self.asset, endpoint=self.pool.select()).amount

    def seed(self, balance: Optional[Decimal] = None) -> Decimal:
        """Set the baseline, querying the ledger when no balance is given.

        Raises:
            LedgerError: If the balance query fails.
        """
        amount = quantize_amount(balance) if balance is not None else self._query_balance()
        self._set_baseline(amount)
        return amount

    def check(self) -> DonationResult:
        """Run one donation check. Never raises: failures come back as QUERY_FAILED or TRANSFER_FAILED."""
        with self._lock:
            return self._check()

    def _check(self) -> DonationResult:
        try:
            current = self._query_balance()
        except Exception as e:
            logger.error(f"[donation] Balance query failed: {e!r}")
            return DonationResult(DonationAction.QUERY_FAILED, error=repr(e))

        delta = current - self.last_observed_balance

        if delta > self.deposit_threshold:
            logger.info(f"[donation] Balance jumped by {delta} {self.asset}, treating as deposit")
            self._set_baseline(current)
            return DonationResult(DonationAction.DEPOSIT_SKIPPED, delta=delta)

        raw_amount = delta * self.ratio
        if raw_amount <= self.min_donation:
            self._set_baseline(current)
            return DonationResult(DonationAction.NEGLIGIBLE, delta=delta)

        amount = quantize_amount(raw_amount)
        try:
            submit = self.client.transfer(
                self.account,
                self.recipient,
                amount,
                self.memo,
                asset=self.asset,
                endpoint=self.pool.select(),
            )
        except Exception as e:
            submit = SubmitResult.error(repr(e))

        if submit.ok:
            logger.info(f"[donation] Donated {amount} {self.asset} to the author.")
        elif submit.status == ResultStatus.DUPLICATE:
            logger.debug(f"[donation] Duplicate donation transaction ignored: {submit.detail}")
        else:
            logger.error(f"[donation] Transfer of {amount} {self.asset} failed: {submit.detail}")

        # Fresh query: the donation itself and concurrently mined yield both move the balance
        try:
            self._set_baseline(self._query_balance())
        except Exception as e:
            logger.warning(f"[donation] Baseline refresh failed, keeping {current}: {e!r}")
            self._set_baseline(current)

        action = DonationAction.DONATED if submit.ok else DonationAction.TRANSFER_FAILED
        return DonationResult(action, delta=delta, amount=amount, submit=submit, error=submit.detail)
