"""Transaction models for the statement reconciliation system."""

from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Optional, List, Dict, Any
from uuid import uuid4

from ..utils.money import to_milli
from .enums import ClearedStatus, MatchConfidence


def _parse_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


@dataclass(frozen=True)
class BankTransaction:
    """
    Raw line item parsed from a bank statement.
    The id is synthetic and only meaningful within one analysis run.
    """
    date: date
    amount: Decimal
    payee: str
    memo: Optional[str] = None
    original_row: int = 0
    id: str = field(default_factory=lambda: str(uuid4()))

    @property
    def amount_milli(self) -> int:
        """Amount in milliunits."""
        return to_milli(self.amount)

    def inverted(self) -> "BankTransaction":
        """Same transaction with the sign of the amount flipped."""
        return replace(self, amount=-self.amount)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "amount": float(self.amount),
            "payee": self.payee,
            "memo": self.memo,
            "original_row": self.original_row,
        }


@dataclass(frozen=True)
class LedgerTransaction:
    """
    Transaction recorded in the ledger for the reconciled account.
    All monetary amounts are stored in MILLIUNITS (integer).
    """
    id: str
    date: date
    amount: int
    payee_name: Optional[str] = None
    category_name: Optional[str] = None
    cleared: ClearedStatus = ClearedStatus.UNCLEARED
    approved: bool = True
    memo: Optional[str] = None
    import_id: Optional[str] = None
    account_id: Optional[str] = None

    @property
    def is_cleared(self) -> bool:
        """Cleared and reconciled entries both count toward the cleared balance."""
        return self.cleared in (ClearedStatus.CLEARED, ClearedStatus.RECONCILED)

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "LedgerTransaction":
        """Build from a ledger API transaction payload."""
        return cls(
            id=str(data["id"]),
            date=_parse_date(data["date"]),
            amount=int(data["amount"]),
            payee_name=data.get("payee_name"),
            category_name=data.get("category_name"),
            cleared=ClearedStatus(data.get("cleared", ClearedStatus.UNCLEARED.value)),
            approved=bool(data.get("approved", True)),
            memo=data.get("memo"),
            import_id=data.get("import_id"),
            account_id=data.get("account_id"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "date": self.date.isoformat(),
            "amount": self.amount,
            "payee_name": self.payee_name,
            "category_name": self.category_name,
            "cleared": self.cleared.value,
            "approved": self.approved,
            "memo": self.memo,
            "import_id": self.import_id,
            "account_id": self.account_id,
        }


@dataclass(frozen=True)
class TransactionDraft:
    """A ledger entry the executor intends to create."""
    account_id: str
    date: date
    amount: int
    payee_name: Optional[str] = None
    memo: Optional[str] = None
    cleared: ClearedStatus = ClearedStatus.CLEARED
    approved: bool = True
    import_id: Optional[str] = None
    category_id: Optional[str] = None
    flag_color: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        """Ledger API request body for this draft."""
        payload: Dict[str, Any] = {
            "account_id": self.account_id,
            "date": self.date.isoformat(),
            "amount": self.amount,
            "cleared": self.cleared.value,
            "approved": self.approved,
        }
        if self.payee_name is not None:
            payload["payee_name"] = self.payee_name
        if self.memo is not None:
            payload["memo"] = self.memo
        if self.import_id is not None:
            payload["import_id"] = self.import_id
        if self.category_id is not None:
            payload["category_id"] = self.category_id
        if self.flag_color is not None:
            payload["flag_color"] = self.flag_color
        return payload


@dataclass(frozen=True)
class TransactionUpdate:
    """Minimal update payload: only the fields that change are set."""
    id: str
    cleared: Optional[ClearedStatus] = None
    date: Optional[date] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"id": self.id}
        if self.cleared is not None:
            payload["cleared"] = self.cleared.value
        if self.date is not None:
            payload["date"] = self.date.isoformat()
        return payload


@dataclass(frozen=True)
class AccountSnapshot:
    """Account balances (milliunits) at a point in time."""
    balance: int
    cleared_balance: int
    uncleared_balance: int

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "AccountSnapshot":
        return cls(
            balance=int(data.get("balance", 0)),
            cleared_balance=int(data.get("cleared_balance", 0)),
            uncleared_balance=int(data.get("uncleared_balance", 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "balance": self.balance,
            "cleared_balance": self.cleared_balance,
            "uncleared_balance": self.uncleared_balance,
        }


@dataclass
class MatchCandidate:
    """One ranked ledger possibility for a bank transaction."""
    ledger_transaction: LedgerTransaction
    confidence: int
    reasons: List[str] = field(default_factory=list)
    explanation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ledger_transaction": self.ledger_transaction.to_dict(),
            "confidence": self.confidence,
            "reasons": list(self.reasons),
            "explanation": self.explanation,
        }


@dataclass
class TransactionMatch:
    """
    Outcome of matching one bank transaction.

    ledger_transaction is set only for high/medium tier matches; combination
    matches carry their legs in candidates.
    """
    bank_transaction: BankTransaction
    confidence: MatchConfidence
    confidence_score: int
    match_reason: str
    candidates: List[MatchCandidate] = field(default_factory=list)
    ledger_transaction: Optional[LedgerTransaction] = None
    action_hint: Optional[str] = None
    recommendation: Optional[str] = None

    @property
    def top_candidate_score(self) -> int:
        return self.candidates[0].confidence if self.candidates else 0

    @property
    def is_combination(self) -> bool:
        return self.match_reason == "combination_match"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bank_transaction": self.bank_transaction.to_dict(),
            "ledger_transaction": (
                self.ledger_transaction.to_dict() if self.ledger_transaction else None
            ),
            "candidates": [c.to_dict() for c in self.candidates],
            "confidence": self.confidence.value,
            "confidence_score": self.confidence_score,
            "match_reason": self.match_reason,
            "action_hint": self.action_hint,
            "recommendation": self.recommendation,
        }
