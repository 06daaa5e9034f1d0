"""
Request models shared by the HTTP API and the tool registry.
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from .config import Settings
from .models import BankTransaction, ClearedStatus, LedgerTransaction, MatchingConfig
from .reconciliation.service import ExecutionFlags


class BankTransactionInput(BaseModel):
    date: date
    amount: Decimal
    payee: str = ""
    memo: Optional[str] = None

    def to_model(self, row: int = 0) -> BankTransaction:
        return BankTransaction(
            date=self.date,
            amount=self.amount,
            payee=self.payee,
            memo=self.memo,
            original_row=row,
        )


class LedgerTransactionInput(BaseModel):
    id: str
    date: date
    amount: int = Field(description="Amount in milliunits")
    payee_name: Optional[str] = None
    category_name: Optional[str] = None
    cleared: ClearedStatus = ClearedStatus.UNCLEARED
    approved: bool = True
    memo: Optional[str] = None
    import_id: Optional[str] = None

    def to_model(self) -> LedgerTransaction:
        return LedgerTransaction(**self.model_dump())


class MatchingOverrides(BaseModel):
    """Per-request overrides; unset fields fall back to settings."""
    date_tolerance_days: Optional[int] = Field(default=None, ge=0)
    amount_tolerance_cents: Optional[int] = Field(default=None, ge=0)
    description_similarity_threshold: Optional[float] = Field(default=None, ge=0, le=1)
    auto_match_threshold: Optional[int] = Field(default=None, ge=0, le=100)
    suggestion_threshold: Optional[int] = Field(default=None, ge=0, le=100)

    def resolve(self, settings: Settings) -> MatchingConfig:
        base = MatchingConfig.from_settings(settings)
        overrides = self.model_dump(exclude_none=True)
        return replace(base, **overrides)


class AnalyzeRequest(BaseModel):
    bank_transactions: List[BankTransactionInput]
    ledger_transactions: List[LedgerTransactionInput]
    statement_balance: Decimal
    currency: str = "USD"
    account_id: Optional[str] = None
    budget_id: Optional[str] = None
    invert_bank_amounts: bool = False
    matching: MatchingOverrides = Field(default_factory=MatchingOverrides)


class AccountRequest(BaseModel):
    budget_id: str
    account_id: str


class ReconcileRequest(BaseModel):
    budget_id: str
    account_id: str
    csv_data: Optional[str] = None
    bank_transactions: Optional[List[BankTransactionInput]] = None
    date_format: Optional[str] = None
    statement_balance: Decimal
    statement_date: Optional[date] = None
    execute: bool = False
    invert_bank_amounts: Optional[bool] = None

    dry_run: Optional[bool] = None
    auto_create_transactions: Optional[bool] = None
    auto_update_cleared_status: Optional[bool] = None
    auto_unclear_missing: Optional[bool] = None
    auto_adjust_dates: Optional[bool] = None

    matching: MatchingOverrides = Field(default_factory=MatchingOverrides)

    @model_validator(mode="after")
    def check_statement_source(self) -> "ReconcileRequest":
        if self.csv_data is None and self.bank_transactions is None:
            raise ValueError("Either csv_data or bank_transactions must be provided")
        return self

    def execution_flags(self, settings: Settings) -> ExecutionFlags:
        defaults = ExecutionFlags.from_settings(settings)

        def pick(value: Optional[bool], default: bool) -> bool:
            return default if value is None else value

        return ExecutionFlags(
            dry_run=pick(self.dry_run, defaults.dry_run),
            auto_create_transactions=pick(
                self.auto_create_transactions, defaults.auto_create_transactions
            ),
            auto_update_cleared_status=pick(
                self.auto_update_cleared_status, defaults.auto_update_cleared_status
            ),
            auto_unclear_missing=pick(self.auto_unclear_missing, defaults.auto_unclear_missing),
            auto_adjust_dates=pick(self.auto_adjust_dates, defaults.auto_adjust_dates),
        )
