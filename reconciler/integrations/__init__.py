"""External integrations for the statement reconciliation system."""

from .errors import LedgerAPIError, LedgerError, normalize_ledger_error
from .ledger import LedgerAccess, SaveTransactionsResponse, MAX_BULK_CREATE_CHUNK
from .ledger_client import LedgerClient

__all__ = [
    "LedgerAPIError",
    "LedgerError",
    "normalize_ledger_error",
    "LedgerAccess",
    "SaveTransactionsResponse",
    "MAX_BULK_CREATE_CHUNK",
    "LedgerClient",
]
