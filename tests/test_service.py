"""
Tests for the Reconciliation Service.
"""

import pytest
from datetime import date
from decimal import Decimal

from conftest import ACCOUNT_ID, BUDGET_ID, FakeLedger, make_bank, make_ledger
from reconciler.config import Settings
from reconciler.models import AccountType, ClearedStatus, ExecutionActionType
from reconciler.reconciliation.service import (
    ExecutionFlags,
    ReconciliationService,
    TransactionFetcher,
)


@pytest.fixture
def settings():
    return Settings(_env_file=None, default_currency="EUR")


LIVE = ExecutionFlags(
    dry_run=False,
    auto_create_transactions=True,
    auto_update_cleared_status=True,
    auto_unclear_missing=True,
    auto_adjust_dates=False,
)


class TestTransactionFetcher:

    def test_window_start(self):
        bank = [
            make_bank("-1.00", txn_date=date(2024, 1, 15)),
            make_bank("-2.00", txn_date=date(2024, 1, 10)),
        ]
        assert TransactionFetcher.window_start(bank, 5) == date(2024, 1, 5)
        assert TransactionFetcher.window_start([], 5) is None

    @pytest.mark.asyncio
    async def test_fetch_excludes_older_transactions(self):
        ledger = FakeLedger([
            make_ledger("recent", -1000, txn_date=date(2024, 1, 12)),
            make_ledger("old", -1000, txn_date=date(2023, 12, 1)),
        ])
        fetcher = TransactionFetcher(ledger)

        fetched = await fetcher.fetch_for_statement(
            BUDGET_ID, ACCOUNT_ID, [make_bank("-1.00", txn_date=date(2024, 1, 15))], 5
        )

        assert [t.id for t in fetched] == ["recent"]


class TestReconciliationService:
    """Test suite for the account-level pipeline."""

    @pytest.mark.asyncio
    async def test_liability_account_inverts_bank_amounts(self, settings):
        ledger = FakeLedger(
            [make_ledger("l1", -25000, payee="Grocer")],
            account_type="creditCard",
        )
        service = ReconciliationService(ledger, settings=settings)

        outcome = await service.reconcile_account(
            BUDGET_ID, ACCOUNT_ID, [make_bank("25.00", payee="Grocer")], Decimal("0")
        )

        assert outcome.account_type == AccountType.CREDIT_CARD
        assert len(outcome.analysis.auto_matches) == 1
        assert outcome.execution is None

    @pytest.mark.asyncio
    async def test_explicit_inversion_flag_wins(self, settings):
        ledger = FakeLedger(
            [make_ledger("l1", -25000, payee="Grocer")],
            account_type="creditCard",
        )
        service = ReconciliationService(ledger, settings=settings)

        outcome = await service.reconcile_account(
            BUDGET_ID, ACCOUNT_ID, [make_bank("25.00", payee="Grocer")], Decimal("0"),
            invert_bank_amounts=False,
        )

        assert outcome.analysis.auto_matches == []

    @pytest.mark.asyncio
    async def test_currency_falls_back_to_settings(self, settings):
        ledger = FakeLedger(currency=None, account_type="somethingNew")
        service = ReconciliationService(ledger, settings=settings)

        outcome = await service.reconcile_account(
            BUDGET_ID, ACCOUNT_ID, [make_bank("-1.00")], Decimal("0")
        )

        assert outcome.currency == "EUR"
        assert outcome.account_type is None
        assert outcome.analysis.balance_info.currency == "EUR"

    @pytest.mark.asyncio
    async def test_analysis_only_has_recommendations(self, settings):
        service = ReconciliationService(FakeLedger(), settings=settings)

        outcome = await service.reconcile_account(
            BUDGET_ID, ACCOUNT_ID, [make_bank("22.22", payee="EvoCarShare")], Decimal("22.22")
        )

        data = outcome.to_dict()
        assert data["currency"] == "USD"
        assert data["account_type"] == "checking"
        assert "execution" not in data
        assert outcome.analysis.recommendations

    @pytest.mark.asyncio
    async def test_execute_creates_missing_transaction(self, settings):
        ledger = FakeLedger([
            make_ledger("payroll", 100000, txn_date=date(2024, 1, 1), payee="Payroll",
                        cleared=ClearedStatus.CLEARED),
        ])
        service = ReconciliationService(ledger, settings=settings)

        outcome = await service.reconcile_account(
            BUDGET_ID,
            ACCOUNT_ID,
            [make_bank("22.22", payee="EvoCarShare")],
            Decimal("122.22"),
            statement_date=date(2024, 1, 31),
            execute=True,
            flags=LIVE,
        )

        execution = outcome.execution
        assert execution.summary.transactions_created == 1
        assert execution.account_balance_before.cleared_balance == 100000
        assert execution.account_balance_after.cleared_balance == 122220
        assert execution.actions_taken[-1].type == ExecutionActionType.BALANCE_CHECKPOINT
        assert ledger.transactions["payroll"].cleared == ClearedStatus.CLEARED
        assert "execution" in outcome.to_dict()

    @pytest.mark.asyncio
    async def test_execute_defaults_to_dry_run(self, settings):
        ledger = FakeLedger()
        service = ReconciliationService(ledger, settings=settings)

        outcome = await service.reconcile_account(
            BUDGET_ID, ACCOUNT_ID, [make_bank("22.22", payee="EvoCarShare")], Decimal("22.22"),
            execute=True,
        )

        assert outcome.execution.summary.dry_run
        assert ledger.write_calls == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
