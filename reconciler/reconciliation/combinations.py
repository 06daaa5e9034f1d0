"""
Combination Matcher - split and aggregated charges.

Finds 2- and 3-element subsets of unmatched ledger transactions whose sum
approximates one unmatched bank transaction. Combinations always land in the
medium tier: they need a human to confirm.
"""

from dataclasses import dataclass
from itertools import combinations
from typing import List, Dict, Set, Tuple

import structlog

from ..models import (
    BankTransaction,
    InsightSeverity,
    InsightType,
    LedgerTransaction,
    MatchCandidate,
    MatchConfidence,
    MatchingConfig,
    ReconciliationInsight,
    TransactionMatch,
)
from ..utils.money import CENTS_TO_MILLI, format_money

logger = structlog.get_logger()

PAIR_BASE_SCORE = 75
TRIPLE_BASE_SCORE = 70
MIN_SCORE = 65
MAX_SCORE = 80


@dataclass
class CombinationResult:
    """Result of the combination search."""
    matches: List[TransactionMatch]
    insights: List[ReconciliationInsight]


def _sign(value: int) -> int:
    return (value > 0) - (value < 0)


def combination_score(size: int, difference: int, tolerance: int) -> int:
    """
    Confidence for a combination of the given size.

    Nudged up when the difference sits well inside the tolerance and down
    when it brushes the boundary; always clamped to [65, 80].
    """
    score = PAIR_BASE_SCORE if size == 2 else TRIPLE_BASE_SCORE
    ratio = difference / max(tolerance, CENTS_TO_MILLI)
    if ratio <= 0.25:
        score += 5
    elif ratio <= 0.5:
        score += 3
    elif ratio >= 0.9:
        score -= 5
    return max(MIN_SCORE, min(MAX_SCORE, score))


class CombinationMatcher:
    """Searches same-sign 2/3-leg ledger subsets for each unmatched bank line."""

    def __init__(self, config: MatchingConfig):
        self.config = config
        self.amount_tolerance = config.amount_tolerance_milli
        self.date_tolerance = config.date_tolerance_days

    def find_combinations(
        self,
        unmatched_bank: List[BankTransaction],
        unmatched_ledger: List[LedgerTransaction],
        currency: str = "USD",
    ) -> CombinationResult:
        """
        Find combination matches for unmatched bank transactions.

        Args:
            unmatched_bank: Bank transactions without a high/medium match
            unmatched_ledger: Ledger transactions not claimed by any match
            currency: Currency code for descriptions

        Returns:
            CombinationResult with medium-tier matches and their insights
        """
        logger.info(
            "Starting combination search",
            bank=len(unmatched_bank),
            ledger=len(unmatched_ledger),
        )

        matches: List[TransactionMatch] = []
        insights: List[ReconciliationInsight] = []
        seen: Set[str] = set()
        used_ledger_ids: Set[str] = set()

        if len(unmatched_ledger) < 2:
            return CombinationResult(matches=matches, insights=insights)

        for bank in unmatched_bank:
            bank_amount = bank.amount_milli
            bank_sign = _sign(bank_amount)

            viable = [
                ledger for ledger in unmatched_ledger
                if ledger.id not in used_ledger_ids
                and (bank_sign == 0 or _sign(ledger.amount) == bank_sign)
                and abs((bank.date - ledger.date).days) <= self.date_tolerance
            ]
            if len(viable) < 2:
                continue

            ranked = self._rank_subsets(bank_amount, viable)

            emitted_sizes: Set[int] = set()
            for difference, subset in ranked:
                size = len(subset)
                if size in emitted_sizes:
                    continue
                if any(ledger.id in used_ledger_ids for ledger in subset):
                    continue

                signature = f"{bank.id}|{'+'.join(sorted(l.id for l in subset))}"
                if signature in seen:
                    continue

                seen.add(signature)
                emitted_sizes.add(size)
                used_ledger_ids.update(l.id for l in subset)

                score = combination_score(size, difference, self.amount_tolerance)
                matches.append(self._build_match(bank, subset, score, difference, currency))
                insights.append(self._build_insight(bank, subset, difference, currency))

        logger.info("Combination search complete", combinations=len(matches))

        return CombinationResult(matches=matches, insights=insights)

    def _rank_subsets(
        self,
        bank_amount: int,
        viable: List[LedgerTransaction],
    ) -> List[Tuple[int, Tuple[LedgerTransaction, ...]]]:
        """Viable subsets sorted by absolute difference, pairs before triples on ties."""
        bank_sign = _sign(bank_amount)
        ranked: List[Tuple[int, Tuple[LedgerTransaction, ...]]] = []

        sizes = (2, 3) if len(viable) >= 3 else (2,)
        for size in sizes:
            for subset in combinations(viable, size):
                total = sum(l.amount for l in subset)
                if bank_sign != 0 and _sign(total) != bank_sign:
                    continue
                difference = abs(total - bank_amount)
                if difference <= self.amount_tolerance:
                    ranked.append((difference, subset))

        ranked.sort(key=lambda item: (item[0], len(item[1])))
        return ranked

    def _build_match(
        self,
        bank: BankTransaction,
        subset: Tuple[LedgerTransaction, ...],
        score: int,
        difference: int,
        currency: str,
    ) -> TransactionMatch:
        total = sum(l.amount for l in subset)
        candidates = [
            MatchCandidate(
                ledger_transaction=ledger,
                confidence=max(60, score - 5),
                reasons=["combination_match", f"combination_size_{len(subset)}"],
                explanation=f"Part of a {len(subset)}-way combination totalling {format_money(total, currency)}",
            )
            for ledger in subset
        ]
        return TransactionMatch(
            bank_transaction=bank,
            confidence=MatchConfidence.MEDIUM,
            confidence_score=score,
            match_reason="combination_match",
            candidates=candidates,
            action_hint="review_combination",
            recommendation=(
                f"{len(subset)} ledger transactions total {format_money(total, currency)} "
                f"against bank {format_money(bank.amount_milli, currency)} "
                f"(difference {format_money(difference, currency)}); confirm they belong together"
            ),
        )

    @staticmethod
    def _build_insight(
        bank: BankTransaction,
        subset: Tuple[LedgerTransaction, ...],
        difference: int,
        currency: str,
    ) -> ReconciliationInsight:
        ids = [l.id for l in subset]
        return ReconciliationInsight(
            id=f"combination-{bank.id}-{'+'.join(sorted(ids))}",
            type=InsightType.COMBINATION_MATCH,
            severity=InsightSeverity.INFO,
            title=f"{len(subset)} ledger transactions may add up to one bank charge",
            description=(
                f"{bank.payee} on {bank.date.isoformat()} for "
                f"{format_money(bank.amount_milli, currency)} matches the sum of "
                f"{len(subset)} ledger transactions within {format_money(difference, currency)}"
            ),
            evidence={
                "bank_transaction_id": bank.id,
                "bank_amount": bank.amount_milli,
                "ledger_transaction_ids": ids,
                "ledger_amounts": [l.amount for l in subset],
                "combination_size": len(subset),
                "difference": difference,
            },
        )
