"""Enumerations for the statement reconciliation system."""

from enum import Enum


class ClearedStatus(str, Enum):
    """
    Cleared state of a ledger transaction.

    UNCLEARED: Recorded in the ledger but not yet seen on a statement
    CLEARED: Confirmed against a bank statement
    RECONCILED: Locked by a previous reconciliation
    """
    UNCLEARED = "uncleared"
    CLEARED = "cleared"
    RECONCILED = "reconciled"


class MatchConfidence(str, Enum):
    """Confidence tier of a bank transaction match."""
    HIGH = "high"          # At or above the auto-match threshold
    MEDIUM = "medium"      # At or above the suggestion threshold
    LOW = "low"            # Candidates exist but score below suggestion
    NONE = "none"          # No candidate passed the amount/date gates


class InsightType(str, Enum):
    """Kind of reconciliation insight."""
    REPEAT_AMOUNT = "repeat_amount"
    NEAR_MATCH = "near_match"
    ANOMALY = "anomaly"
    COMBINATION_MATCH = "combination_match"


class InsightSeverity(str, Enum):
    """Severity of a reconciliation insight."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class RecommendationType(str, Enum):
    """Type of actionable recommendation."""
    CREATE_TRANSACTION = "create_transaction"
    UPDATE_CLEARED = "update_cleared"
    REVIEW_DUPLICATE = "review_duplicate"
    MANUAL_REVIEW = "manual_review"


class RecommendationPriority(str, Enum):
    """Priority of an actionable recommendation."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return {"high": 3, "medium": 2, "low": 1}[self.value]


class ExecutionActionType(str, Enum):
    """Type of action taken (or simulated) by the executor."""
    CREATE_TRANSACTION = "create_transaction"
    CREATE_TRANSACTION_FAILED = "create_transaction_failed"
    CREATE_TRANSACTION_DUPLICATE = "create_transaction_duplicate"
    BULK_CREATE_FALLBACK = "bulk_create_fallback"
    UPDATE_TRANSACTION = "update_transaction"
    UPDATE_TRANSACTION_FAILED = "update_transaction_failed"
    BALANCE_CHECKPOINT = "balance_checkpoint"


class AlignmentState(str, Enum):
    """
    Executor state over one newest-to-oldest pass.

    NOT_ALIGNED: Cleared delta still outside tolerance, phases keep running
    ALIGNED: Balance checkpoint reached, remaining phases are skipped
    """
    NOT_ALIGNED = "not_aligned"
    ALIGNED = "aligned"


class BalanceStatus(str, Enum):
    """Outcome of the as-of-date balance reconciliation."""
    PERFECTLY_RECONCILED = "PERFECTLY_RECONCILED"
    DISCREPANCY_FOUND = "DISCREPANCY_FOUND"


class AccountType(str, Enum):
    """Ledger account types relevant to sign handling."""
    CHECKING = "checking"
    SAVINGS = "savings"
    CASH = "cash"
    CREDIT_CARD = "creditCard"
    LINE_OF_CREDIT = "lineOfCredit"
    OTHER_ASSET = "otherAsset"
    OTHER_LIABILITY = "otherLiability"
    MORTGAGE = "mortgage"
    AUTO_LOAN = "autoLoan"
    STUDENT_LOAN = "studentLoan"
    PERSONAL_LOAN = "personalLoan"
    MEDICAL_DEBT = "medicalDebt"
    OTHER_DEBT = "otherDebt"

    @property
    def is_liability(self) -> bool:
        return self not in (
            AccountType.CHECKING,
            AccountType.SAVINGS,
            AccountType.CASH,
            AccountType.OTHER_ASSET,
        )
