"""Reconciliation configuration and result models."""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional, List, Dict, Any, Union
from uuid import uuid4

from ..utils.money import MoneyValue, tolerance_milli, balance_tolerance_milli
from .enums import (
    BalanceStatus,
    ExecutionActionType,
    InsightSeverity,
    InsightType,
    RecommendationPriority,
    RecommendationType,
)
from .transaction import (
    AccountSnapshot,
    BankTransaction,
    LedgerTransaction,
    TransactionMatch,
)

RECOMMENDATION_VERSION = "1.0"


@dataclass(frozen=True)
class MatchingConfig:
    """
    Matching parameters for one analysis run.
    Constructed once per invocation; every field is explicit.
    """
    date_tolerance_days: int
    amount_tolerance_cents: int
    description_similarity_threshold: float
    auto_match_threshold: int
    suggestion_threshold: int

    @property
    def amount_tolerance_milli(self) -> int:
        return tolerance_milli(self.amount_tolerance_cents)

    @property
    def balance_tolerance_milli(self) -> int:
        return balance_tolerance_milli(self.amount_tolerance_cents)

    @classmethod
    def from_settings(cls, settings) -> "MatchingConfig":
        return cls(
            date_tolerance_days=settings.date_tolerance_days,
            amount_tolerance_cents=settings.amount_tolerance_cents,
            description_similarity_threshold=settings.description_similarity_threshold,
            auto_match_threshold=settings.auto_match_threshold,
            suggestion_threshold=settings.suggestion_threshold,
        )


@dataclass(frozen=True)
class ExecutionParams:
    """Execution flags for one executor run."""
    budget_id: str
    account_id: str
    dry_run: bool
    auto_create_transactions: bool
    auto_update_cleared_status: bool
    auto_unclear_missing: bool
    auto_adjust_dates: bool
    amount_tolerance_cents: int
    statement_balance: Decimal
    statement_date: Optional[date]

    @property
    def balance_tolerance_milli(self) -> int:
        return tolerance_milli(self.amount_tolerance_cents)


@dataclass
class BalanceInfo:
    """Ledger balances against the statement (milliunits)."""
    current_cleared: int
    current_uncleared: int
    current_total: int
    target_statement: int
    discrepancy: int
    on_track: bool
    currency: str = "USD"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "current_cleared": MoneyValue.from_milli(self.current_cleared, self.currency).to_dict(),
            "current_uncleared": MoneyValue.from_milli(self.current_uncleared, self.currency).to_dict(),
            "current_total": MoneyValue.from_milli(self.current_total, self.currency).to_dict(),
            "target_statement": MoneyValue.from_milli(self.target_statement, self.currency).to_dict(),
            "discrepancy": MoneyValue.signed(self.discrepancy, self.currency).to_dict(),
            "on_track": self.on_track,
        }


@dataclass
class ReconciliationSummary:
    """Summary statistics of an analysis."""
    statement_date_range: str
    bank_transactions_count: int
    ledger_transactions_count: int
    auto_matched: int
    suggested_matches: int
    unmatched_bank: int
    unmatched_ledger: int
    current_cleared_balance: MoneyValue
    target_statement_balance: MoneyValue
    discrepancy: MoneyValue
    discrepancy_explanation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "statement_date_range": self.statement_date_range,
            "bank_transactions_count": self.bank_transactions_count,
            "ledger_transactions_count": self.ledger_transactions_count,
            "auto_matched": self.auto_matched,
            "suggested_matches": self.suggested_matches,
            "unmatched_bank": self.unmatched_bank,
            "unmatched_ledger": self.unmatched_ledger,
            "current_cleared_balance": self.current_cleared_balance.to_dict(),
            "target_statement_balance": self.target_statement_balance.to_dict(),
            "discrepancy": self.discrepancy.to_dict(),
            "discrepancy_explanation": self.discrepancy_explanation,
        }


@dataclass
class ReconciliationInsight:
    """A notable pattern found while analyzing the statement."""
    id: str
    type: InsightType
    severity: InsightSeverity
    title: str
    description: str
    evidence: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "evidence": dict(self.evidence),
        }


# Recommendation parameters, one dataclass per action type


@dataclass
class CreateTransactionParameters:
    account_id: str
    date: str
    amount: int
    payee_name: str
    cleared: str = "cleared"
    approved: bool = True
    memo: Optional[str] = None
    category_id: Optional[str] = None


@dataclass
class UpdateClearedParameters:
    transaction_id: str
    cleared: str


@dataclass
class ReviewDuplicateParameters:
    candidate_ids: List[str]
    bank_transaction: Dict[str, Any]
    suggested_match_id: Optional[str] = None


@dataclass
class ManualReviewParameters:
    issue_type: str
    related_transactions: List[Dict[str, Any]] = field(default_factory=list)


RecommendationParameters = Union[
    CreateTransactionParameters,
    UpdateClearedParameters,
    ReviewDuplicateParameters,
    ManualReviewParameters,
]


@dataclass
class ActionableRecommendation:
    """A prioritized, typed suggestion for the user or an automated caller."""
    action_type: RecommendationType
    priority: RecommendationPriority
    confidence: float
    message: str
    reason: str
    estimated_impact: MoneyValue
    account_id: str
    parameters: RecommendationParameters
    source_insight_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid4()))
    metadata: Dict[str, Any] = field(default_factory=lambda: {
        "version": RECOMMENDATION_VERSION,
        "created_at": datetime.now(timezone.utc).isoformat(),
    })

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "action_type": self.action_type.value,
            "priority": self.priority.value,
            "confidence": self.confidence,
            "message": self.message,
            "reason": self.reason,
            "estimated_impact": self.estimated_impact.to_dict(),
            "account_id": self.account_id,
            "source_insight_id": self.source_insight_id,
            "parameters": {k: v for k, v in vars(self.parameters).items() if v is not None},
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class ReconciliationAnalysis:
    """Immutable snapshot produced once per analyzer invocation."""
    summary: ReconciliationSummary
    auto_matches: List[TransactionMatch]
    suggested_matches: List[TransactionMatch]
    unmatched_bank: List[BankTransaction]
    unmatched_ledger: List[LedgerTransaction]
    balance_info: BalanceInfo
    next_steps: List[str]
    insights: List[ReconciliationInsight]
    recommendations: Optional[List[ActionableRecommendation]] = None
    success: bool = True
    phase: str = "analysis"

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "success": self.success,
            "phase": self.phase,
            "summary": self.summary.to_dict(),
            "auto_matches": [m.to_dict() for m in self.auto_matches],
            "suggested_matches": [m.to_dict() for m in self.suggested_matches],
            "unmatched_bank": [t.to_dict() for t in self.unmatched_bank],
            "unmatched_ledger": [t.to_dict() for t in self.unmatched_ledger],
            "balance_info": self.balance_info.to_dict(),
            "next_steps": list(self.next_steps),
            "insights": [i.to_dict() for i in self.insights],
        }
        if self.recommendations is not None:
            data["recommendations"] = [r.to_dict() for r in self.recommendations]
        return data


@dataclass
class ExecutionActionRecord:
    """One action taken (or simulated) by the executor."""
    type: ExecutionActionType
    reason: str
    transaction: Optional[Dict[str, Any]] = None
    correlation_key: Optional[str] = None
    bulk_chunk_index: Optional[int] = None
    duplicate: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": self.type.value,
            "transaction": self.transaction,
            "reason": self.reason,
        }
        if self.correlation_key is not None:
            data["correlation_key"] = self.correlation_key
        if self.bulk_chunk_index is not None:
            data["bulk_chunk_index"] = self.bulk_chunk_index
        if self.duplicate:
            data["duplicate"] = True
        return data


@dataclass
class ExecutionSummary:
    """Counts describing one executor run."""
    bank_transactions_count: int = 0
    ledger_transactions_count: int = 0
    matches_found: int = 0
    missing_in_ledger: int = 0
    missing_in_bank: int = 0
    transactions_created: int = 0
    transactions_updated: int = 0
    dates_adjusted: int = 0
    dry_run: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return dict(vars(self))


@dataclass
class BulkOperationDetails:
    """
    Counters for bulk creation.

    failed_transactions mirrors transaction_failures and is synced when the
    executor hands the result back.
    """
    chunks_processed: int = 0
    bulk_successes: int = 0
    sequential_fallbacks: int = 0
    duplicates_detected: int = 0
    failed_transactions: int = 0
    bulk_chunk_failures: int = 0
    transaction_failures: int = 0
    sequential_attempts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return dict(vars(self))


@dataclass
class LikelyCause:
    """Best-effort explanation for a balance discrepancy."""
    cause_type: str
    description: str
    confidence: float
    amount: MoneyValue
    suggested_resolution: str
    evidence: List[str] = field(default_factory=list)
    risk: str = "LOW"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cause_type": self.cause_type,
            "description": self.description,
            "confidence": self.confidence,
            "amount": self.amount.to_dict(),
            "suggested_resolution": self.suggested_resolution,
            "evidence": list(self.evidence),
            "risk": self.risk,
        }


@dataclass
class BalanceReconciliation:
    """As-of-date comparison of statement and ledger cleared balances."""
    status: BalanceStatus
    statement_date: date
    bank_statement_balance: MoneyValue
    ledger_calculated_balance: MoneyValue
    discrepancy: MoneyValue
    likely_causes: List[LikelyCause] = field(default_factory=list)
    balance_matches: bool = False

    @property
    def discrepancy_analysis(self) -> Optional[Dict[str, Any]]:
        if not self.likely_causes:
            return None
        return {
            "confidence_level": max(c.confidence for c in self.likely_causes),
            "likely_causes": [c.to_dict() for c in self.likely_causes],
            "risk_assessment": self.likely_causes[0].risk,
        }

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "status": self.status.value,
            "statement_date": self.statement_date.isoformat(),
            "precision_calculations": {
                "bank_statement_balance": self.bank_statement_balance.to_dict(),
                "ledger_calculated_balance": self.ledger_calculated_balance.to_dict(),
                "discrepancy": self.discrepancy.to_dict(),
            },
            "final_verification": {
                "balance_matches": self.balance_matches,
                "all_transactions_accounted": self.balance_matches,
                "audit_trail_complete": self.balance_matches,
                "reconciliation_complete": self.balance_matches,
            },
        }
        if self.discrepancy_analysis is not None:
            data["discrepancy_analysis"] = self.discrepancy_analysis
        return data


@dataclass
class ExecutionResult:
    """Everything the executor did, simulated or real."""
    summary: ExecutionSummary
    account_balance_before: AccountSnapshot
    account_balance_after: AccountSnapshot
    actions_taken: List[ExecutionActionRecord] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    balance_reconciliation: Optional[BalanceReconciliation] = None
    bulk_operation_details: Optional[BulkOperationDetails] = None

    def actions_of(self, action_type: ExecutionActionType) -> List[ExecutionActionRecord]:
        return [a for a in self.actions_taken if a.type == action_type]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "summary": self.summary.to_dict(),
            "account_balance": {
                "before": self.account_balance_before.to_dict(),
                "after": self.account_balance_after.to_dict(),
            },
            "actions_taken": [a.to_dict() for a in self.actions_taken],
            "recommendations": list(self.recommendations),
        }
        if self.balance_reconciliation is not None:
            data["balance_reconciliation"] = self.balance_reconciliation.to_dict()
        if self.bulk_operation_details is not None:
            data["bulk_operation_details"] = self.bulk_operation_details.to_dict()
        return data
