"""
ledger package

Chain access for the miner: endpoint pool, HTTP client and shared types.
"""
from .client import LedgerClient, LedgerError
from .eos_http import EosHttpLedgerClient, classify_push_error
from .pool import DEFAULT_ENDPOINTS, EndpointPool, EndpointSelector
from .signing import KeyLoadError, NoOpSigner, TransactionSigner
from .types import BalanceSnapshot, Endpoint, ResultStatus, SubmitResult

__all__ = [
    'LedgerClient',
    'LedgerError',
    'EosHttpLedgerClient',
    'classify_push_error',
    'DEFAULT_ENDPOINTS',
    'EndpointPool',
    'EndpointSelector',
    'KeyLoadError',
    'NoOpSigner',
    'TransactionSigner',
    'BalanceSnapshot',
    'Endpoint',
    'ResultStatus',
    'SubmitResult',
]
