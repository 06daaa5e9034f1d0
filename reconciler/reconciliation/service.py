"""
Reconciliation Service - fetch, analyze and (optionally) execute for one account.

Pipeline:
1. Account details, currency and initial balances from the ledger
2. Ledger transactions in the statement window
3. Analysis (bank amounts inverted for liability accounts)
4. Execution, when requested
"""

from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional, Dict, Any

import structlog

from ..config import Settings, get_settings
from ..integrations.ledger import LedgerAccess
from ..models import (
    AccountSnapshot,
    AccountType,
    BankTransaction,
    ExecutionParams,
    ExecutionResult,
    LedgerTransaction,
    MatchingConfig,
    ReconciliationAnalysis,
)
from .analyzer import ReconciliationAnalyzer
from .executor import ReconciliationExecutor

logger = structlog.get_logger()


@dataclass(frozen=True)
class ExecutionFlags:
    """Which corrective writes a run may perform."""
    dry_run: bool
    auto_create_transactions: bool
    auto_update_cleared_status: bool
    auto_unclear_missing: bool
    auto_adjust_dates: bool

    @classmethod
    def from_settings(cls, settings: Settings) -> "ExecutionFlags":
        return cls(
            dry_run=settings.dry_run,
            auto_create_transactions=settings.auto_create_transactions,
            auto_update_cleared_status=settings.auto_update_cleared_status,
            auto_unclear_missing=settings.auto_unclear_missing,
            auto_adjust_dates=settings.auto_adjust_dates,
        )


@dataclass
class ReconciliationOutcome:
    """Analysis plus, when requested, the execution result."""
    analysis: ReconciliationAnalysis
    currency: str
    account_type: Optional[AccountType] = None
    execution: Optional[ExecutionResult] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "currency": self.currency,
            "account_type": self.account_type.value if self.account_type else None,
            "analysis": self.analysis.to_dict(),
        }
        if self.execution is not None:
            data["execution"] = self.execution.to_dict()
        return data


class TransactionFetcher:
    """Reads the ledger transactions relevant to a statement."""

    def __init__(self, ledger: LedgerAccess):
        self.ledger = ledger

    @staticmethod
    def window_start(
        bank_transactions: List[BankTransaction],
        date_tolerance_days: int,
    ) -> Optional[date]:
        """Earliest bank date minus the date tolerance."""
        if not bank_transactions:
            return None
        earliest = min(t.date for t in bank_transactions)
        return earliest - timedelta(days=max(0, date_tolerance_days))

    async def fetch_for_statement(
        self,
        budget_id: str,
        account_id: str,
        bank_transactions: List[BankTransaction],
        date_tolerance_days: int,
    ) -> List[LedgerTransaction]:
        since = self.window_start(bank_transactions, date_tolerance_days)
        return await self.ledger.list_transactions(budget_id, account_id, since_date=since)


def _account_type(details: Dict[str, Any]) -> Optional[AccountType]:
    try:
        return AccountType(details.get("type"))
    except ValueError:
        return None


class ReconciliationService:
    """
    Runs a reconciliation for one account against a ledger.
    """

    def __init__(
        self,
        ledger: LedgerAccess,
        fetcher: Optional[TransactionFetcher] = None,
        settings: Optional[Settings] = None,
    ):
        self.ledger = ledger
        self.fetcher = fetcher or TransactionFetcher(ledger)
        self.settings = settings or get_settings()

    async def reconcile_account(
        self,
        budget_id: str,
        account_id: str,
        bank_transactions: List[BankTransaction],
        statement_balance: Decimal,
        statement_date: Optional[date] = None,
        execute: bool = False,
        flags: Optional[ExecutionFlags] = None,
        config: Optional[MatchingConfig] = None,
        invert_bank_amounts: Optional[bool] = None,
    ) -> ReconciliationOutcome:
        """
        Analyze a statement and optionally apply corrective writes.

        Args:
            budget_id: Ledger budget id
            account_id: Ledger account id
            bank_transactions: Parsed statement lines
            statement_balance: Ending (cleared) balance on the statement
            statement_date: Statement end date, enables the as-of-date report
            execute: Run the executor after analysis
            flags: Execution flags (settings defaults when omitted)
            config: Matching parameters (settings defaults when omitted)
            invert_bank_amounts: Force sign inversion; defaults to the account type

        Returns:
            ReconciliationOutcome
        """
        config = config or MatchingConfig.from_settings(self.settings)
        flags = flags or ExecutionFlags.from_settings(self.settings)

        details = await self.ledger.get_account_details(budget_id, account_id)
        account_type = _account_type(details)
        currency = await self.ledger.get_currency(budget_id) or self.settings.default_currency
        initial_snapshot = AccountSnapshot.from_api(details)

        if invert_bank_amounts is None:
            invert_bank_amounts = bool(account_type and account_type.is_liability)

        ledger_transactions = await self.fetcher.fetch_for_statement(
            budget_id, account_id, bank_transactions, config.date_tolerance_days
        )

        logger.info(
            "Reconciling account",
            account_id=account_id,
            account_type=account_type.value if account_type else None,
            currency=currency,
            bank=len(bank_transactions),
            ledger=len(ledger_transactions),
            execute=execute,
        )

        analysis = ReconciliationAnalyzer(config).analyze(
            bank_transactions,
            ledger_transactions,
            statement_balance,
            currency=currency,
            account_id=account_id,
            budget_id=budget_id,
            invert_bank_amounts=invert_bank_amounts,
        )
        outcome = ReconciliationOutcome(
            analysis=analysis,
            currency=currency,
            account_type=account_type,
        )

        if not execute:
            return outcome

        params = ExecutionParams(
            budget_id=budget_id,
            account_id=account_id,
            dry_run=flags.dry_run,
            auto_create_transactions=flags.auto_create_transactions,
            auto_update_cleared_status=flags.auto_update_cleared_status,
            auto_unclear_missing=flags.auto_unclear_missing,
            auto_adjust_dates=flags.auto_adjust_dates,
            amount_tolerance_cents=config.amount_tolerance_cents,
            statement_balance=statement_balance,
            statement_date=statement_date,
        )
        outcome.execution = await ReconciliationExecutor(self.ledger).execute(
            analysis, params, initial_snapshot, currency=currency
        )
        return outcome
