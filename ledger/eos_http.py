"""ledger/eos_http.py

LedgerClient implementation over the EOSIO chain HTTP API (nodeos ``/v1/chain``).

Flow for a transaction:
1. get_info: head block and chain id
2. get_block (head - blocks_behind): reference block for TaPoS
3. signer.sign: external signing of the unsigned transaction
4. push_transaction: submit and classify the node's answer

Design goals:
- Uses requests library (existing dependency)
- Queries raise LedgerError, pushes return classified SubmitResult
- Endpoint chosen per call from the pool unless given explicitly
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Optional, Sequence

import requests

from .actions import transfer_action
from .client import LedgerClient, LedgerError
from .pool import EndpointSelector
from .signing import KeyLoadError, NoOpSigner, TransactionSigner
from .types import (
    BalanceSnapshot,
    Endpoint,
    MINED_ASSET,
    MINED_TOKEN_CONTRACT,
    Operation,
    PRIMARY_ASSET,
    PRIMARY_TOKEN_CONTRACT,
    ResourceUsage,
    SubmitResult,
    parse_quantity,
)

logger = logging.getLogger(__name__)


# Token contract per asset symbol
TOKEN_CONTRACTS = {
    PRIMARY_ASSET: PRIMARY_TOKEN_CONTRACT,
    MINED_ASSET: MINED_TOKEN_CONTRACT,
}

# nodeos error names
DUPLICATE_ERROR_NAMES = frozenset({"tx_duplicate"})
OVERUSE_ERROR_NAMES = frozenset({"tx_cpu_usage_exceeded", "leeway_deadline_exception"})

DUPLICATE_MARKERS = ("duplicate transaction",)
OVERUSE_MARKERS = ("maximum billable cpu time", "billed cpu time")

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"


def classify_push_error(body: Any) -> SubmitResult:
    """Classify a failed push_transaction response.

    Args:
        body: Parsed JSON error body from nodeos, or a plain error string.

    Returns:
        SubmitResult with DUPLICATE, OVERUSE or ERROR status.
    """
    if not isinstance(body, dict):
        text = str(body)
        lowered = text.lower()
        if any(m in lowered for m in DUPLICATE_MARKERS):
            return SubmitResult.duplicate(text)
        if any(m in lowered for m in OVERUSE_MARKERS):
            return SubmitResult.overuse(text)
        return SubmitResult.error(text)

    error = body.get("error") or {}
    name = error.get("name", "")
    messages = [error.get("what", ""), body.get("message", "")]
    messages.extend(d.get("message", "") for d in error.get("details") or [] if isinstance(d, dict))
    detail = "; ".join(m for m in messages if m)
    lowered = detail.lower()

    if name in DUPLICATE_ERROR_NAMES or any(m in lowered for m in DUPLICATE_MARKERS):
        return SubmitResult.duplicate(detail or name)
    if name in OVERUSE_ERROR_NAMES or any(m in lowered for m in OVERUSE_MARKERS):
        return SubmitResult.overuse(detail or name)
    return SubmitResult.error(f"{name or 'rpc_error'}: {detail or json.dumps(body)}")


class EosHttpLedgerClient(LedgerClient):
    """Ledger client speaking the nodeos chain API.

    Signing is delegated to a TransactionSigner; without one every push
    returns an ERROR result.
    """

    def __init__(
        self,
        pool: EndpointSelector,
        *,
        signer: Optional[TransactionSigner] = None,
        timeout_sec: float = 10.0,
        blocks_behind: int = 3,
        expire_seconds: int = 300,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the client.

        Args:
            pool: Endpoint selector used when no endpoint is passed.
            signer: Transaction signer.
            timeout_sec: Per-request timeout in seconds.
            blocks_behind: Reference block distance behind head.
            expire_seconds: Transaction expiration relative to the reference block.
            session: Optional requests session (injectable for tests).
        """
        self.pool = pool
        self.signer = signer or NoOpSigner()
        self.timeout_sec = timeout_sec
        self.blocks_behind = blocks_behind
        self.expire_seconds = expire_seconds
        self._session = session or requests.Session()

    def _post(self, endpoint: Endpoint, path: str, data: Dict[str, Any]) -> Any:
        """POST to a chain API path and return the decoded body.

        Raises:
            LedgerError: On transport failure, non-2xx status or invalid JSON.
        """
        url = f"{endpoint.url}{path}"
        try:
            response = self._session.post(url, json=data, timeout=self.timeout_sec)
        except requests.exceptions.RequestException as e:
            raise LedgerError(f"Request to {path} failed: {e}", endpoint) from e

        try:
            body = response.json()
        except ValueError as e:
            raise LedgerError(f"Invalid JSON from {path}: {e}", endpoint) from e

        if response.status_code >= 400:
            raise LedgerError(f"HTTP {response.status_code} from {path}", endpoint, body=body)
        return body

    def _endpoint(self, endpoint: Optional[Endpoint]) -> Endpoint:
        return endpoint if endpoint is not None else self.pool.select()

    def get_account_cpu(self, account: str, *, endpoint: Optional[Endpoint] = None) -> ResourceUsage:
        """Return the raw CPU limit of an account."""
        endpoint = self._endpoint(endpoint)
        info = self._post(endpoint, "/v1/chain/get_account", {"account_name": account})
        try:
            cpu = info["cpu_limit"]
            return ResourceUsage(
                used=int(cpu["used"]),
                max=int(cpu["max"]),
                available=int(cpu.get("available", 0)),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise LedgerError(f"Malformed get_account response for {account}: {e}", endpoint) from e

    def get_resource_usage(self, account: str, *, endpoint: Optional[Endpoint] = None) -> float:
        return self.get_account_cpu(account, endpoint=endpoint).ratio

    def get_balance(
        self,
        account: str,
        asset: str,
        *,
        endpoint: Optional[Endpoint] = None,
    ) -> BalanceSnapshot:
        contract = TOKEN_CONTRACTS.get(asset)
        if contract is None:
            raise LedgerError(f"Unknown asset: {asset}")

        endpoint = self._endpoint(endpoint)
        balances = self._post(
            endpoint,
            "/v1/chain/get_currency_balance",
            {"code": contract, "account": account, "symbol": asset},
        )
        if not isinstance(balances, list):
            raise LedgerError(f"Malformed get_currency_balance response: {balances!r}", endpoint)
        if not balances:
            # Accounts without a token row report an empty list
            return BalanceSnapshot(asset=asset)
        try:
            return parse_quantity(balances[0])
        except (ValueError, ArithmeticError) as e:
            raise LedgerError(f"Malformed balance {balances[0]!r}: {e}", endpoint) from e

    def build_transaction(self, actions: Sequence[Operation], endpoint: Endpoint) -> Dict[str, Any]:
        """Build an unsigned transaction referencing a block ``blocks_behind`` head.

        Returns:
            Dict with ``chain_id`` and ``transaction``.
        """
        info = self._post(endpoint, "/v1/chain/get_info", {})
        ref_block_num = max(int(info["head_block_num"]) - self.blocks_behind, 1)
        block = self._post(endpoint, "/v1/chain/get_block", {"block_num_or_id": ref_block_num})

        block_time = datetime.fromisoformat(block["timestamp"])
        expiration = block_time + timedelta(seconds=self.expire_seconds)

        return {
            "chain_id": info["chain_id"],
            "transaction": {
                "expiration": expiration.strftime(TIMESTAMP_FORMAT),
                "ref_block_num": int(block["block_num"]) & 0xFFFF,
                "ref_block_prefix": int(block["ref_block_prefix"]),
                "max_net_usage_words": 0,
                "max_cpu_usage_ms": 0,
                "delay_sec": 0,
                "context_free_actions": [],
                "actions": list(actions),
                "transaction_extensions": [],
            },
        }

    def submit_batch(
        self,
        operations: Sequence[Operation],
        *,
        endpoint: Optional[Endpoint] = None,
    ) -> SubmitResult:
        endpoint = self._endpoint(endpoint)
        logger.debug(f"[ledger] Pushing {len(operations)} actions via {endpoint}")

        try:
            unsigned = self.build_transaction(operations, endpoint)
            signed = self.signer.sign(unsigned["transaction"], unsigned["chain_id"])
        except LedgerError as e:
            return SubmitResult.error(f"Transaction header failed: {e}")
        except (KeyError, TypeError, ValueError) as e:
            return SubmitResult.error(f"Malformed chain response from {endpoint}: {e}")
        except KeyLoadError as e:
            return SubmitResult.error(str(e))

        try:
            receipt = self._post(endpoint, "/v1/chain/push_transaction", signed)
        except LedgerError as e:
            return classify_push_error(e.body if e.body is not None else str(e))

        return SubmitResult.success(receipt)

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
        contract = TOKEN_CONTRACTS.get(asset)
        if contract is None:
            return SubmitResult.error(f"Unknown asset: {asset}")
        action = transfer_action(contract, from_account, to_account, amount, asset, memo)
        return self.submit_batch([action], endpoint=endpoint)
