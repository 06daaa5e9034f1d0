"""
Ledger access contract used by the executor and the service layer.
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional, Protocol

from ..models import AccountSnapshot, LedgerTransaction, TransactionDraft, TransactionUpdate

MAX_BULK_CREATE_CHUNK = 100


@dataclass
class SaveTransactionsResponse:
    """Transactions the ledger stored plus the import ids it rejected as duplicates."""
    transactions: List[LedgerTransaction] = field(default_factory=list)
    duplicate_import_ids: List[str] = field(default_factory=list)


class LedgerAccess(Protocol):
    """Async read/write access to one ledger."""

    async def get_account(self, budget_id: str, account_id: str) -> AccountSnapshot:
        ...

    async def get_account_details(self, budget_id: str, account_id: str) -> Dict[str, Any]:
        ...

    async def get_currency(self, budget_id: str) -> Optional[str]:
        ...

    async def list_transactions(
        self,
        budget_id: str,
        account_id: str,
        since_date: Optional[date] = None,
    ) -> List[LedgerTransaction]:
        ...

    async def create_transaction(
        self,
        budget_id: str,
        draft: TransactionDraft,
    ) -> SaveTransactionsResponse:
        ...

    async def create_transactions(
        self,
        budget_id: str,
        drafts: List[TransactionDraft],
    ) -> SaveTransactionsResponse:
        ...

    async def update_transactions(
        self,
        budget_id: str,
        updates: List[TransactionUpdate],
    ) -> List[LedgerTransaction]:
        ...
