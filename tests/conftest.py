"""
Shared fixtures: transaction factories and an in-memory ledger.
"""

from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import uuid4

import pytest

from reconciler.integrations.ledger import SaveTransactionsResponse
from reconciler.models import (
    AccountSnapshot,
    BankTransaction,
    ClearedStatus,
    LedgerTransaction,
    MatchingConfig,
    TransactionDraft,
    TransactionUpdate,
)

BUDGET_ID = "budget-1"
ACCOUNT_ID = "account-1"


def make_bank(
    amount,
    txn_date: date = date(2024, 1, 15),
    payee: str = "Coffee Shop",
    memo: Optional[str] = None,
    row: int = 0,
    id: Optional[str] = None,
) -> BankTransaction:
    return BankTransaction(
        date=txn_date,
        amount=Decimal(str(amount)),
        payee=payee,
        memo=memo,
        original_row=row,
        id=id or str(uuid4()),
    )


def make_ledger(
    id: str,
    amount: int,
    txn_date: date = date(2024, 1, 15),
    payee: Optional[str] = "Coffee Shop",
    cleared: ClearedStatus = ClearedStatus.UNCLEARED,
    import_id: Optional[str] = None,
) -> LedgerTransaction:
    return LedgerTransaction(
        id=id,
        date=txn_date,
        amount=amount,
        payee_name=payee,
        cleared=cleared,
        import_id=import_id,
        account_id=ACCOUNT_ID,
    )


class FakeLedger:
    """
    In-memory ledger with duplicate detection on import ids.

    Balances are derived from the stored transactions. Set bulk_error or
    single_error to make the corresponding write calls raise.
    """

    def __init__(
        self,
        transactions: Optional[List[LedgerTransaction]] = None,
        account_type: str = "checking",
        currency: Optional[str] = "USD",
    ):
        self.transactions: Dict[str, LedgerTransaction] = {
            t.id: t for t in (transactions or [])
        }
        self.account_type = account_type
        self.currency = currency
        self.bulk_error: Optional[Exception] = None
        self.single_error: Optional[Exception] = None
        self.update_error: Optional[Exception] = None
        self.calls: List[str] = []
        self.bulk_sizes: List[int] = []
        self._next_id = 1

    @property
    def write_calls(self) -> List[str]:
        return [c for c in self.calls if c.startswith(("create", "update"))]

    def snapshot(self) -> AccountSnapshot:
        cleared = sum(t.amount for t in self.transactions.values() if t.is_cleared)
        uncleared = sum(t.amount for t in self.transactions.values() if not t.is_cleared)
        return AccountSnapshot(
            balance=cleared + uncleared,
            cleared_balance=cleared,
            uncleared_balance=uncleared,
        )

    def _store(self, draft: TransactionDraft) -> LedgerTransaction:
        txn = LedgerTransaction(
            id=f"created-{self._next_id}",
            date=draft.date,
            amount=draft.amount,
            payee_name=draft.payee_name,
            cleared=draft.cleared,
            approved=draft.approved,
            memo=draft.memo,
            import_id=draft.import_id,
            account_id=draft.account_id,
        )
        self._next_id += 1
        self.transactions[txn.id] = txn
        return txn

    def _save(self, drafts: List[TransactionDraft]) -> SaveTransactionsResponse:
        existing = {t.import_id for t in self.transactions.values() if t.import_id}
        response = SaveTransactionsResponse()
        for draft in drafts:
            if draft.import_id and draft.import_id in existing:
                response.duplicate_import_ids.append(draft.import_id)
                continue
            response.transactions.append(self._store(draft))
        return response

    async def get_account(self, budget_id: str, account_id: str) -> AccountSnapshot:
        self.calls.append("get_account")
        return self.snapshot()

    async def get_account_details(self, budget_id: str, account_id: str) -> dict:
        self.calls.append("get_account_details")
        snapshot = self.snapshot()
        return {
            "id": account_id,
            "type": self.account_type,
            "balance": snapshot.balance,
            "cleared_balance": snapshot.cleared_balance,
            "uncleared_balance": snapshot.uncleared_balance,
        }

    async def get_currency(self, budget_id: str) -> Optional[str]:
        self.calls.append("get_currency")
        return self.currency

    async def list_transactions(self, budget_id: str, account_id: str, since_date=None):
        self.calls.append("list_transactions")
        return [
            t for t in self.transactions.values()
            if since_date is None or t.date >= since_date
        ]

    async def create_transaction(self, budget_id: str, draft: TransactionDraft):
        self.calls.append("create_transaction")
        if self.single_error is not None:
            raise self.single_error
        return self._save([draft])

    async def create_transactions(self, budget_id: str, drafts: List[TransactionDraft]):
        self.calls.append("create_transactions")
        self.bulk_sizes.append(len(drafts))
        if self.bulk_error is not None:
            raise self.bulk_error
        return self._save(drafts)

    async def update_transactions(self, budget_id: str, updates: List[TransactionUpdate]):
        self.calls.append("update_transactions")
        if self.update_error is not None:
            raise self.update_error
        updated = []
        for update in updates:
            txn = self.transactions[update.id]
            if update.cleared is not None:
                txn = replace(txn, cleared=update.cleared)
            if update.date is not None:
                txn = replace(txn, date=update.date)
            self.transactions[txn.id] = txn
            updated.append(txn)
        return updated


@pytest.fixture
def matching_config():
    return MatchingConfig(
        date_tolerance_days=5,
        amount_tolerance_cents=1,
        description_similarity_threshold=0.8,
        auto_match_threshold=90,
        suggestion_threshold=60,
    )


@pytest.fixture
def fake_ledger():
    return FakeLedger()


def days_before(base: date, days: int) -> date:
    return base - timedelta(days=days)
