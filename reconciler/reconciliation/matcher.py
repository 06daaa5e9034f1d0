"""
Pairwise Matcher - scores every (bank, ledger) pair.

Amount and date act as pass/fail gates; payee similarity supplies the partial
credit. Each bank transaction receives exactly one TransactionMatch, and a
ledger transaction is claimed by at most one high/medium match.
"""

from collections import Counter
from typing import List, Dict, Set, Tuple, Optional

import structlog

from ..models import (
    BankTransaction,
    LedgerTransaction,
    MatchCandidate,
    MatchConfidence,
    MatchingConfig,
    TransactionMatch,
)
from ..utils.payee import payee_similarity

logger = structlog.get_logger()

AMOUNT_POINTS = 40
DATE_POINTS = 30
PAYEE_POINTS = 30
MAX_CANDIDATES = 5


def confidence_tier(score: int, config: MatchingConfig) -> MatchConfidence:
    """Map a 0-100 score to its tier against the configured thresholds."""
    if score >= config.auto_match_threshold:
        return MatchConfidence.HIGH
    if score >= config.suggestion_threshold:
        return MatchConfidence.MEDIUM
    if score > 0:
        return MatchConfidence.LOW
    return MatchConfidence.NONE


class PairwiseMatcher:
    """
    Confidence-scored matching of bank transactions to ledger transactions.

    Score composition:
    - Amount within tolerance: fixed AMOUNT_POINTS (gate)
    - Date within tolerance: fixed DATE_POINTS (gate)
    - Payee similarity: up to PAYEE_POINTS (fuzzy)
    """

    def __init__(self, config: MatchingConfig):
        self.config = config
        self.amount_tolerance = config.amount_tolerance_milli
        self.date_tolerance = config.date_tolerance_days

    def match(
        self,
        bank_transactions: List[BankTransaction],
        ledger_transactions: List[LedgerTransaction],
    ) -> List[TransactionMatch]:
        """
        Match each bank transaction against the ledger.

        Args:
            bank_transactions: Parsed statement lines
            ledger_transactions: Ledger entries for the account

        Returns:
            One TransactionMatch per bank transaction, in input order
        """
        logger.info(
            "Starting pairwise matching",
            bank=len(bank_transactions),
            ledger=len(ledger_transactions),
        )

        candidate_sets = [
            self._gated_candidates(bank, ledger_transactions)
            for bank in bank_transactions
        ]

        # Strongest evidence claims ledger transactions first
        order = sorted(
            range(len(bank_transactions)),
            key=lambda i: -(candidate_sets[i][0].confidence if candidate_sets[i] else 0),
        )

        claimed: Set[str] = set()
        matches: Dict[int, TransactionMatch] = {}
        for index in order:
            matches[index] = self._assign(
                bank_transactions[index],
                candidate_sets[index],
                claimed,
            )

        result = [matches[i] for i in range(len(bank_transactions))]

        tiers = Counter(m.confidence.value for m in result)
        logger.info("Pairwise matching complete", **dict(tiers))

        return result

    def score_candidates(
        self,
        bank: BankTransaction,
        ledger_transactions: List[LedgerTransaction],
    ) -> List[MatchCandidate]:
        """The best MAX_CANDIDATES ledger transactions passing both gates."""
        return self._gated_candidates(bank, ledger_transactions)[:MAX_CANDIDATES]

    def _gated_candidates(
        self,
        bank: BankTransaction,
        ledger_transactions: List[LedgerTransaction],
    ) -> List[MatchCandidate]:
        """All ledger transactions passing both gates, best first."""
        bank_amount = bank.amount_milli
        scored: List[Tuple[int, int, str, MatchCandidate]] = []

        for ledger in ledger_transactions:
            amount_diff = abs(bank_amount - ledger.amount)
            if amount_diff > self.amount_tolerance:
                continue

            days_apart = abs((bank.date - ledger.date).days)
            if days_apart > self.date_tolerance:
                continue

            similarity = payee_similarity(bank.payee, ledger.payee_name)
            score = AMOUNT_POINTS + DATE_POINTS + round(PAYEE_POINTS * similarity)

            candidate = MatchCandidate(
                ledger_transaction=ledger,
                confidence=min(100, score),
                reasons=self._reasons(amount_diff, days_apart, similarity),
                explanation=self._explain(amount_diff, days_apart, similarity),
            )
            scored.append((-candidate.confidence, days_apart, ledger.id, candidate))

        scored.sort(key=lambda item: item[:3])
        return [item[3] for item in scored]

    def _assign(
        self,
        bank: BankTransaction,
        candidates: List[MatchCandidate],
        claimed: Set[str],
    ) -> TransactionMatch:
        if not candidates:
            return TransactionMatch(
                bank_transaction=bank,
                confidence=MatchConfidence.NONE,
                confidence_score=0,
                match_reason="no_candidates",
                candidates=[],
                action_hint="create_transaction",
                recommendation=(
                    f"No ledger transaction within {self.date_tolerance} days and "
                    f"amount tolerance; consider creating it"
                ),
            )

        chosen: Optional[MatchCandidate] = next(
            (c for c in candidates if c.ledger_transaction.id not in claimed),
            None,
        )
        if chosen is None:
            return TransactionMatch(
                bank_transaction=bank,
                confidence=MatchConfidence.NONE,
                confidence_score=0,
                match_reason="candidates_already_matched",
                candidates=candidates[:MAX_CANDIDATES],
                action_hint="review_duplicate",
                recommendation="Every candidate is already matched to another bank transaction",
            )

        tier = confidence_tier(chosen.confidence, self.config)
        match = TransactionMatch(
            bank_transaction=bank,
            confidence=tier,
            confidence_score=chosen.confidence,
            match_reason=", ".join(chosen.reasons),
            candidates=candidates[:MAX_CANDIDATES],
        )

        if tier in (MatchConfidence.HIGH, MatchConfidence.MEDIUM):
            claimed.add(chosen.ledger_transaction.id)
            match.ledger_transaction = chosen.ledger_transaction

        if tier == MatchConfidence.HIGH:
            match.action_hint = "clear_transaction"
        elif tier == MatchConfidence.MEDIUM:
            match.action_hint = "review_match"
            match.recommendation = f"Confirm match: {chosen.explanation}"
        else:
            match.match_reason = "low_confidence"
            match.action_hint = "review_or_create"
            match.recommendation = (
                f"Best candidate scored {chosen.confidence}; review it or create a new transaction"
            )

        return match

    def _reasons(self, amount_diff: int, days_apart: int, similarity: float) -> List[str]:
        reasons = ["exact_amount" if amount_diff == 0 else "amount_within_tolerance"]
        reasons.append("same_date" if days_apart == 0 else f"date_within_{days_apart}_days")
        if similarity >= self.config.description_similarity_threshold:
            reasons.append("payee_similar")
        return reasons

    @staticmethod
    def _explain(amount_diff: int, days_apart: int, similarity: float) -> str:
        parts = [
            "amount matches exactly" if amount_diff == 0
            else f"amount differs by {amount_diff / 1000:.2f}",
            "same date" if days_apart == 0 else f"{days_apart} day(s) apart",
            f"payee {round(similarity * 100)}% similar",
        ]
        return ", ".join(parts)
