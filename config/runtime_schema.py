"""config/runtime_schema.py

Defines the configuration schema for the miner.
Implements manual validation to avoid Pydantic dependency.
"""

import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

from ledger.pool import DEFAULT_ENDPOINTS


# EOS account names: up to 12 chars of a-z, 1-5 and '.'
ACCOUNT_NAME_RE = re.compile(r"^[a-z1-5.]{1,12}$")


@dataclass(frozen=True)
class MinerConfig:
    """
    Miner configuration.

    batch_size == 0 selects the automatic controller; a positive value pins
    the batch size and disables adjustment.
    """
    # Identity
    account: str = ""
    private_key: str = field(default="", repr=False)
    signer_factory: str = ""  # "package.module:callable" building a TransactionSigner

    # Endpoints
    endpoints: Tuple[str, ...] = tuple(DEFAULT_ENDPOINTS)
    request_timeout_sec: float = 10.0

    # Batch sizing
    batch_size: int = 0
    n_min: int = 2
    n_max: int = 256
    cpu_rate_expectation: float = 0.95
    cpu_rate_red: float = 0.99

    # Scheduling (seconds)
    dispatch_period_sec: float = 1.0
    adjust_period_sec: float = 30.0
    donation_period_sec: float = 30.0
    workers: int = 1

    # Donation
    donation_enabled: bool = True
    donation_ratio: float = 0.05
    min_donation: float = 0.0001
    deposit_threshold: float = 50.0

    # Startup precondition
    min_primary_balance: float = 0.001
    insufficient_funds_cooldown_sec: float = 60.0

    # Ops
    stop_flag_path: str = ""
    metrics_path: str = ""

    def __post_init__(self):
        """Validate constraints manually since we don't have Pydantic."""
        if not ACCOUNT_NAME_RE.match(self.account):
            raise ValueError(f"account must be 1-12 chars of a-z, 1-5 and '.', got {self.account!r}")

        if isinstance(self.endpoints, str) or not isinstance(self.endpoints, (list, tuple)):
            raise ValueError("endpoints must be a list of URLs")
        object.__setattr__(self, "endpoints", tuple(str(e) for e in self.endpoints))
        if not self.endpoints:
            raise ValueError("endpoints must not be empty")

        self._validate_range("request_timeout_sec", self.request_timeout_sec, 0.1, 300)

        # Batch sizing
        self._validate_range("n_min", self.n_min, 1, None)
        self._validate_range("n_max", self.n_max, self.n_min, None)
        self._validate_range("batch_size", self.batch_size, 0, None)
        self._validate_range("cpu_rate_expectation", self.cpu_rate_expectation, 0.01, 1.0)
        self._validate_range("cpu_rate_red", self.cpu_rate_red, self.cpu_rate_expectation, 1.0)

        # Scheduling
        self._validate_range("dispatch_period_sec", self.dispatch_period_sec, 0.01, None)
        self._validate_range("adjust_period_sec", self.adjust_period_sec, 0.01, None)
        self._validate_range("donation_period_sec", self.donation_period_sec, 0.01, None)
        self._validate_range("workers", self.workers, 1, 64)

        # Donation
        if self.donation_enabled:
            self._validate_range("donation_ratio", self.donation_ratio, 0.0001, 1.0)
            self._validate_range("min_donation", self.min_donation, 0.0001, None)
            self._validate_range("deposit_threshold", self.deposit_threshold, 0.0, None)

        self._validate_range("min_primary_balance", self.min_primary_balance, 0.0, None)
        self._validate_range("insufficient_funds_cooldown_sec", self.insufficient_funds_cooldown_sec, 0.0, None)

    @property
    def auto_batch_size(self) -> bool:
        return self.batch_size == 0

    def _validate_range(self, name: str, value: Any, min_val: float, max_val: Optional[float] = None) -> None:
        if isinstance(value, bool):
            raise ValueError(f"{name} must be numeric, got {value}")
        try:
            val = float(value)
        except (TypeError, ValueError):
            raise ValueError(f"{name} must be numeric, got {value}")

        if val < min_val:
            raise ValueError(f"{name} {val} is below minimum {min_val}")
        if max_val is not None and val > max_val:
            raise ValueError(f"{name} {val} is above maximum {max_val}")


def config_fields() -> List[str]:
    """Names of all recognized configuration keys."""
    return list(MinerConfig.__dataclass_fields__.keys())
