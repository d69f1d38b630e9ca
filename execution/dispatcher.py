"""execution/dispatcher.py

Batch Dispatcher.

Builds a batch of N mining actions, pushes it through a randomly chosen
endpoint and classifies the result:

- success: clear the overuse flag
- duplicate transaction: benign (usually the same batch reaching the chain
  through two nodes), not logged as an error
- CPU overuse: arm the one-shot overuse flag so the next attempt is skipped
- anything else: reportable failure, not retried here (the next tick retries)

Design goals:
- Never raises: ledger and unexpected errors alike are coerced into FAILED
- Balance reads bracket the submission in run_cycle (before -> submit -> after)
"""

from __future__ import annotations

import logging
import random
from typing import Optional

from execution.actions import create_mining_actions
from execution.models import DispatchOutcome, OutcomeKind
from ledger.client import LedgerClient
from ledger.pool import EndpointSelector
from ledger.types import MINED_ASSET, ResultStatus
from strategy.state import MinerState

logger = logging.getLogger(__name__)


class BatchDispatcher:
    """Submits mining batches for one account.

    Thread-safe: the overuse flag is consumed atomically through MinerState,
    and a success already in flight when a rejection arrives leaves it armed,
    so with several workers exactly one attempt is skipped per rejection.
    """

    def __init__(
        self,
        client: LedgerClient,
        pool: EndpointSelector,
        state: MinerState,
        *,
        rng: Optional[random.Random] = None,
        asset: str = MINED_ASSET,
    ):
        """Initialize the dispatcher.

        Args:
            client: Ledger client used for pushes and balance reads.
            pool: Endpoint selector, one pick per remote call.
            state: Shared miner state (overuse flag).
            rng: Random source for action quantities.
            asset: Asset whose balance measures the cycle yield.
        """
        self.client = client
        self.pool = pool
        self.state = state
        self.asset = asset
        self._rng = rng or random.Random()

    def submit(self, size: int, account: str) -> DispatchOutcome:
        """Submit one batch of ``size`` actions, or skip it after an overuse rejection."""
        skip, epoch = self.state.begin_attempt()
        if skip:
            return self._skipped()
        return self._send(size, account, epoch)

    def run_cycle(self, size: int, account: str) -> DispatchOutcome:
        """Submit one batch bracketed by balance reads of the mined asset.

        A failed pre-read aborts the cycle before anything is sent.
        """
        skip, epoch = self.state.begin_attempt()
        if skip:
            return self._skipped()

        try:
            before = self.client.get_balance(account, self.asset, endpoint=self.pool.select()).amount
        except Exception as e:
            logger.error(f"[dispatch] Balance query failed, batch not sent: {e!r}")
            return DispatchOutcome(kind=OutcomeKind.FAILED, detail=repr(e))

        outcome = self._send(size, account, epoch)
        outcome.balance_before = before

        try:
            outcome.balance_after = self.client.get_balance(
                account, self.asset, endpoint=self.pool.select()
            ).amount
        except Exception as e:
            logger.warning(f"[dispatch] Post-submit balance query failed: {e!r}")
            return outcome

        mined = outcome.mined
        if mined is not None and mined > 0:
            logger.info(f"[dispatch] Mined {mined} {self.asset} !!!")
        return outcome

    def _skipped(self) -> DispatchOutcome:
        logger.info("[dispatch] Skipping batch after CPU overuse rejection")
        return DispatchOutcome(kind=OutcomeKind.SKIPPED)

    def _send(self, size: int, account: str, epoch: int) -> DispatchOutcome:
        endpoint = None
        try:
            actions = create_mining_actions(size, account, self._rng)
            endpoint = self.pool.select()
            result = self.client.submit_batch(actions, endpoint=endpoint)
        except Exception as e:
            logger.error(f"[dispatch] Unexpected error sending {size} actions: {e!r}")
            return DispatchOutcome(
                kind=OutcomeKind.FAILED,
                detail=repr(e),
                endpoint=str(endpoint or ""),
            )

        url = str(endpoint)
        if result.status == ResultStatus.SUCCESS:
            self.state.clear_overuse(epoch)
            logger.debug(f"[dispatch] Sent {size} actions via {url}: {result.transaction_id}")
            return DispatchOutcome(kind=OutcomeKind.SUCCESS, size=size, receipt=result.receipt, endpoint=url)

        if result.status == ResultStatus.DUPLICATE:
            logger.debug(f"[dispatch] Duplicate transaction ignored ({url})")
            return DispatchOutcome(kind=OutcomeKind.DUPLICATE, size=size, detail=result.detail, endpoint=url)

        if result.status == ResultStatus.OVERUSE:
            self.state.mark_overuse()
            logger.warning(f"[dispatch] CPU overuse rejection via {url}, next batch will be skipped")
            return DispatchOutcome(kind=OutcomeKind.OVERUSE, size=size, detail=result.detail, endpoint=url)

        logger.error(f"[dispatch] Batch of {size} actions failed via {url}: {result.detail}")
        return DispatchOutcome(kind=OutcomeKind.FAILED, size=size, detail=result.detail, endpoint=url)
