from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List

import pytest
import requests

from ledger.client import LedgerError
from ledger.eos_http import EosHttpLedgerClient, classify_push_error
from ledger.pool import EndpointPool
from ledger.signing import TransactionSigner
from ledger.types import MINED_ASSET, PRIMARY_ASSET, ResultStatus


class FakeResponse:
    def __init__(self, status_code: int, body: Any):
        self.status_code = status_code
        self._body = body

    def json(self):
        if isinstance(self._body, Exception):
            raise self._body
        return self._body


class FakeSession:
    """Routes POSTs by chain API path."""

    def __init__(self, routes: Dict[str, FakeResponse]):
        self.routes = routes
        self.requests: List[Dict[str, Any]] = []

    def post(self, url, json=None, timeout=None):
        self.requests.append({"url": url, "json": json, "timeout": timeout})
        path = url[url.index("/v1/"):]
        route = self.routes[path]
        if isinstance(route, Exception):
            raise route
        return route


class RecordingSigner(TransactionSigner):
    def __init__(self):
        self.signed = []

    def sign(self, transaction, chain_id):
        self.signed.append((transaction, chain_id))
        return {
            "signatures": ["SIG_K1_test"],
            "compression": "none",
            "packed_context_free_data": "",
            "packed_trx": "00",
        }


CHAIN_ROUTES = {
    "/v1/chain/get_info": FakeResponse(200, {"head_block_num": 70003, "chain_id": "cafe"}),
    "/v1/chain/get_block": FakeResponse(200, {
        "block_num": 70000,
        "ref_block_prefix": 123456,
        "timestamp": "2024-05-01T12:00:00.500",
    }),
}


def _client(routes, signer=None) -> EosHttpLedgerClient:
    pool = EndpointPool(["https://node.example"])
    return EosHttpLedgerClient(pool, signer=signer, session=FakeSession(routes), timeout_sec=5.0)


def test_resource_usage_ratio():
    client = _client({
        "/v1/chain/get_account": FakeResponse(200, {"cpu_limit": {"used": 900, "max": 1000, "available": 100}}),
    })
    assert client.get_resource_usage("miner1234512") == pytest.approx(0.9)


def test_resource_usage_clamped_when_overdrawn():
    client = _client({
        "/v1/chain/get_account": FakeResponse(200, {"cpu_limit": {"used": 1500, "max": 1000}}),
    })
    assert client.get_resource_usage("miner1234512") == 1.0


def test_malformed_account_raises():
    client = _client({"/v1/chain/get_account": FakeResponse(200, {"net_limit": {}})})
    with pytest.raises(LedgerError):
        client.get_resource_usage("miner1234512")


def test_balance_parsed_and_requested_from_token_contract():
    client = _client({"/v1/chain/get_currency_balance": FakeResponse(200, ["12.3456 EIDOS"])})

    balance = client.get_balance("miner1234512", MINED_ASSET)

    assert balance.amount == Decimal("12.3456")
    assert balance.asset == MINED_ASSET
    request = client._session.requests[0]
    assert request["json"] == {"code": "eidosonecoin", "account": "miner1234512", "symbol": "EIDOS"}
    assert request["timeout"] == 5.0


def test_missing_balance_row_is_zero():
    client = _client({"/v1/chain/get_currency_balance": FakeResponse(200, [])})
    assert client.get_balance("miner1234512", PRIMARY_ASSET).amount == Decimal("0")


def test_transport_error_raises_ledger_error():
    client = _client({"/v1/chain/get_currency_balance": requests.exceptions.ConnectionError("refused")})
    with pytest.raises(LedgerError) as exc_info:
        client.get_balance("miner1234512", PRIMARY_ASSET)
    assert "node.example" in str(exc_info.value)


def test_submit_builds_tapos_header_and_pushes():
    signer = RecordingSigner()
    routes = dict(CHAIN_ROUTES)
    routes["/v1/chain/push_transaction"] = FakeResponse(202, {"transaction_id": "deadbeef"})
    client = _client(routes, signer=signer)

    result = client.submit_batch([{"account": "eosio.token", "name": "transfer"}])

    assert result.status == ResultStatus.SUCCESS
    assert result.transaction_id == "deadbeef"
    transaction, chain_id = signer.signed[0]
    assert chain_id == "cafe"
    assert transaction["ref_block_num"] == 70000 & 0xFFFF
    assert transaction["ref_block_prefix"] == 123456
    assert transaction["expiration"] == "2024-05-01T12:05:00"
    get_block = client._session.requests[1]
    assert get_block["json"] == {"block_num_or_id": 70000}


def test_submit_without_signer_is_an_error_result():
    client = _client(dict(CHAIN_ROUTES))

    result = client.submit_batch([{"account": "eosio.token", "name": "transfer"}])

    assert result.status == ResultStatus.ERROR
    assert "signer" in result.detail


@pytest.mark.parametrize(
    "body,status",
    [
        ({"error": {"name": "tx_duplicate", "what": "Duplicate transaction"}}, ResultStatus.DUPLICATE),
        ({"error": {"name": "tx_cpu_usage_exceeded", "what": "Transaction exceeded the current CPU usage limit"}},
         ResultStatus.OVERUSE),
        ({"error": {"name": "eosio_assert_message_exception",
                    "details": [{"message": "billed CPU time (412 us) is greater than the maximum"}]}},
         ResultStatus.OVERUSE),
        ({"error": {"name": "eosio_assert_message_exception", "what": "overdrawn balance"}}, ResultStatus.ERROR),
        ("Request failed: duplicate transaction 1234", ResultStatus.DUPLICATE),
        ("timeout", ResultStatus.ERROR),
    ],
)
def test_classify_push_error(body, status):
    assert classify_push_error(body).status == status


def test_rejected_push_is_classified():
    routes = dict(CHAIN_ROUTES)
    routes["/v1/chain/push_transaction"] = FakeResponse(
        500, {"code": 500, "error": {"name": "tx_cpu_usage_exceeded", "what": "cpu"}}
    )
    client = _client(routes, signer=RecordingSigner())

    result = client.transfer("miner1234512", "thinkmachine", Decimal("0.05"), "donated from miner1234512")

    assert result.status == ResultStatus.OVERUSE


def test_transfer_action_payload():
    signer = RecordingSigner()
    routes = dict(CHAIN_ROUTES)
    routes["/v1/chain/push_transaction"] = FakeResponse(202, {"transaction_id": "ok"})
    client = _client(routes, signer=signer)

    client.transfer("miner1234512", "thinkmachine", Decimal("0.05"), "donated from miner1234512")

    action = signer.signed[0][0]["actions"][0]
    assert action["account"] == "eidosonecoin"
    assert action["data"] == {
        "from": "miner1234512",
        "to": "thinkmachine",
        "quantity": "0.0500 EIDOS",
        "memo": "donated from miner1234512",
    }
