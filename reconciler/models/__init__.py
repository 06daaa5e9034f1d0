"""Data models for the statement reconciliation system."""

from .enums import (
    ClearedStatus,
    MatchConfidence,
    InsightType,
    InsightSeverity,
    RecommendationType,
    RecommendationPriority,
    ExecutionActionType,
    AlignmentState,
    BalanceStatus,
    AccountType,
)
from .transaction import (
    BankTransaction,
    LedgerTransaction,
    TransactionDraft,
    TransactionUpdate,
    AccountSnapshot,
    MatchCandidate,
    TransactionMatch,
)
from .reconciliation import (
    MatchingConfig,
    ExecutionParams,
    BalanceInfo,
    ReconciliationSummary,
    ReconciliationInsight,
    CreateTransactionParameters,
    UpdateClearedParameters,
    ReviewDuplicateParameters,
    ManualReviewParameters,
    ActionableRecommendation,
    ReconciliationAnalysis,
    ExecutionActionRecord,
    ExecutionSummary,
    BulkOperationDetails,
    LikelyCause,
    BalanceReconciliation,
    ExecutionResult,
)

__all__ = [
    # Enums
    "ClearedStatus",
    "MatchConfidence",
    "InsightType",
    "InsightSeverity",
    "RecommendationType",
    "RecommendationPriority",
    "ExecutionActionType",
    "AlignmentState",
    "BalanceStatus",
    "AccountType",
    # Transactions
    "BankTransaction",
    "LedgerTransaction",
    "TransactionDraft",
    "TransactionUpdate",
    "AccountSnapshot",
    "MatchCandidate",
    "TransactionMatch",
    # Reconciliation
    "MatchingConfig",
    "ExecutionParams",
    "BalanceInfo",
    "ReconciliationSummary",
    "ReconciliationInsight",
    "CreateTransactionParameters",
    "UpdateClearedParameters",
    "ReviewDuplicateParameters",
    "ManualReviewParameters",
    "ActionableRecommendation",
    "ReconciliationAnalysis",
    "ExecutionActionRecord",
    "ExecutionSummary",
    "BulkOperationDetails",
    "LikelyCause",
    "BalanceReconciliation",
    "ExecutionResult",
]
