"""ledger/signing.py

Credential handling boundary for the ledger client.

- Validates private keys (legacy WIF, base58check) without using them
- Loads a key from the environment
- Defines the TransactionSigner interface; actual signing lives outside this
  package and is plugged in through a ``module:callable`` factory path
"""

from __future__ import annotations

import importlib
import os
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict

import base58


PRIVATE_KEY_ENV = "EIDOS_MINER_PRIVATE_KEY"

# WIF payload: version byte 0x80 followed by the 32-byte secret
WIF_VERSION = 0x80
WIF_PAYLOAD_LEN = 33


class KeyLoadError(Exception):
    """Raised when key loading or validation fails."""
    pass


def is_valid_private_key(key: str) -> bool:
    """Check a legacy WIF private key (version byte + double-sha256 checksum)."""
    if not key:
        return False
    try:
        payload = base58.b58decode_check(key.strip())
    except ValueError:
        return False
    return len(payload) == WIF_PAYLOAD_LEN and payload[0] == WIF_VERSION


def load_private_key(value: str = "") -> str:
    """Return a validated private key from ``value`` or the environment.

    Raises:
        KeyLoadError: If no key is available or it is invalid.
    """
    key = (value or os.environ.get(PRIVATE_KEY_ENV, "")).strip()
    if not key:
        raise KeyLoadError(f"No private key given and {PRIVATE_KEY_ENV} is not set")
    if not is_valid_private_key(key):
        raise KeyLoadError("private_key is invalid!")
    return key


class TransactionSigner(ABC):
    """Turns an unsigned transaction into a ``push_transaction`` request body."""

    @abstractmethod
    def sign(self, transaction: Dict[str, Any], chain_id: str) -> Dict[str, Any]:
        """Sign a transaction.

        Args:
            transaction: Unsigned transaction (header fields and JSON actions).
            chain_id: Chain id from ``get_info``.

        Returns:
            Dict with ``signatures``, ``compression``, ``packed_context_free_data``
            and ``packed_trx``.
        """
        ...


class NoOpSigner(TransactionSigner):
    """Signer used when no signing backend is configured."""

    def sign(self, transaction: Dict[str, Any], chain_id: str) -> Dict[str, Any]:
        raise KeyLoadError("Transaction signer not configured")


def load_signer(factory_path: str, private_key: str) -> TransactionSigner:
    """Build a signer from a ``package.module:callable`` factory path.

    The factory is called with the private key and must return a
    TransactionSigner. An empty path yields NoOpSigner.

    Raises:
        KeyLoadError: If the factory cannot be imported or returns a non-signer.
    """
    if not factory_path:
        return NoOpSigner()

    module_name, _, attr = factory_path.partition(":")
    if not module_name or not attr:
        raise KeyLoadError(f"Signer factory must look like 'module:callable', got: {factory_path}")

    try:
        module = importlib.import_module(module_name)
        factory: Callable[[str], TransactionSigner] = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        raise KeyLoadError(f"Cannot load signer factory {factory_path}: {e}") from e

    signer = factory(private_key)
    if not isinstance(signer, TransactionSigner):
        raise KeyLoadError(f"Signer factory {factory_path} did not return a TransactionSigner")
    return signer
