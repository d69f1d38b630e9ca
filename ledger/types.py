"""ledger/types.py

Data types shared between the ledger client, the dispatcher and the donation module.

Design goals:
- Decimal balances with fixed 4-digit precision (no float drift)
- Structured submit results instead of raised exceptions
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN, ROUND_HALF_UP
from enum import Enum
from typing import Any, Dict, Optional, Union


# Token precision on chain (4 fractional digits for EOS and EIDOS)
ASSET_PRECISION = Decimal("0.0001")

# Well-known assets and contracts
PRIMARY_ASSET = "EOS"
PRIMARY_TOKEN_CONTRACT = "eosio.token"
MINED_ASSET = "EIDOS"
MINED_TOKEN_CONTRACT = "eidosonecoin"

# A single ledger action as the chain API expects it (account/name/authorization/data)
Operation = Dict[str, Any]


def quantize_amount(value: Union[Decimal, float, int, str], rounding: str = ROUND_HALF_UP) -> Decimal:
    """Quantize an amount to the chain's 4-digit precision."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(ASSET_PRECISION, rounding=rounding)


def format_quantity(amount: Union[Decimal, float, int, str], asset: str) -> str:
    """Format an amount as a chain quantity string, e.g. ``0.0003 EOS``."""
    return f"{quantize_amount(amount)} {asset}"


def parse_quantity(quantity: str) -> BalanceSnapshot:
    """Parse a chain quantity string (``"12.3456 EIDOS"``) into a snapshot."""
    parts = quantity.strip().split()
    if len(parts) != 2:
        raise ValueError(f"Malformed quantity: {quantity!r}")
    amount, asset = parts
    return BalanceSnapshot(asset=asset, amount=quantize_amount(amount, rounding=ROUND_DOWN))


@dataclass(frozen=True)
class Endpoint:
    """Opaque handle to one redundant ledger API instance."""
    url: str

    def __str__(self) -> str:
        return self.url


@dataclass(frozen=True)
class BalanceSnapshot:
    """Balance of one asset at one point in time."""
    asset: str
    amount: Decimal = Decimal("0.0000")

    def __post_init__(self):
        object.__setattr__(self, "amount", quantize_amount(self.amount))

    def __str__(self) -> str:
        return f"{self.amount} {self.asset}"


class ResultStatus(str, Enum):
    """Classification of a submitted transaction."""
    SUCCESS = "success"
    DUPLICATE = "duplicate"
    OVERUSE = "overuse"
    ERROR = "error"


@dataclass(frozen=True)
class SubmitResult:
    """Outcome of a transaction pushed to the ledger.

    Attributes:
        status: Classified outcome.
        receipt: Chain response on success (transaction id, processed trace).
        detail: Human-readable failure detail for non-success outcomes.
    """
    status: ResultStatus
    receipt: Optional[Dict[str, Any]] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.status == ResultStatus.SUCCESS

    @property
    def transaction_id(self) -> Optional[str]:
        if self.receipt:
            return self.receipt.get("transaction_id")
        return None

    @classmethod
    def success(cls, receipt: Optional[Dict[str, Any]] = None) -> "SubmitResult":
        return cls(status=ResultStatus.SUCCESS, receipt=receipt or {})

    @classmethod
    def duplicate(cls, detail: str = "duplicate transaction") -> "SubmitResult":
        return cls(status=ResultStatus.DUPLICATE, detail=detail)

    @classmethod
    def overuse(cls, detail: str = "exceeded maximum billable CPU time") -> "SubmitResult":
        return cls(status=ResultStatus.OVERUSE, detail=detail)

    @classmethod
    def error(cls, detail: str) -> "SubmitResult":
        return cls(status=ResultStatus.ERROR, detail=detail)


@dataclass
class ResourceUsage:
    """Raw CPU limit reported for an account (microseconds)."""
    used: int
    max: int
    available: int = 0

    @property
    def ratio(self) -> float:
        """Utilization ratio clamped to [0, 1]."""
        if self.max <= 0:
            return 1.0
        return min(max(self.used / self.max, 0.0), 1.0)

