"""
Insight Detector - repeat amounts, near misses and balance anomalies.
"""

from collections import defaultdict
from typing import List, Dict

import structlog

from ..models import (
    BalanceInfo,
    BankTransaction,
    InsightSeverity,
    InsightType,
    MatchConfidence,
    MatchingConfig,
    ReconciliationInsight,
    TransactionMatch,
)
from ..utils.money import CENTS_TO_MILLI, MILLI_PER_UNIT, format_money

logger = structlog.get_logger()

MAX_INSIGHTS = 5
MAX_NEAR_MATCH_INSIGHTS = 3
NEAR_MATCH_MARGIN = 5
REPEAT_CRITICAL_OCCURRENCES = 4
# Sub-cent gaps sit inside the analyzer's on_track tolerance
BALANCE_GAP_MIN = CENTS_TO_MILLI
BALANCE_GAP_CRITICAL = 100 * MILLI_PER_UNIT
BULK_MISSING_MIN = 5
BULK_MISSING_CRITICAL = 10


def merge_insights(
    base: List[ReconciliationInsight],
    extra: List[ReconciliationInsight],
    limit: int = MAX_INSIGHTS,
) -> List[ReconciliationInsight]:
    """Concatenate, keep the first insight per id, cap at limit."""
    merged: List[ReconciliationInsight] = []
    seen = set()
    for insight in list(base) + list(extra):
        if insight.id in seen:
            continue
        seen.add(insight.id)
        merged.append(insight)
        if len(merged) >= limit:
            break
    return merged


class InsightDetector:
    """Runs the three detectors and merges their output."""

    def __init__(self, config: MatchingConfig, currency: str = "USD"):
        self.config = config
        self.currency = currency

    def detect(
        self,
        matches: List[TransactionMatch],
        unmatched_bank: List[BankTransaction],
        balance_info: BalanceInfo,
    ) -> List[ReconciliationInsight]:
        insights = (
            self.repeat_amount_insights(unmatched_bank)
            + self.near_match_insights(matches)
            + self.anomaly_insights(unmatched_bank, balance_info)
        )
        merged = merge_insights([], insights)
        logger.info("Insights detected", total=len(insights), kept=len(merged))
        return merged

    def repeat_amount_insights(
        self,
        unmatched_bank: List[BankTransaction],
    ) -> List[ReconciliationInsight]:
        """One insight for the largest group of identical unmatched amounts."""
        groups: Dict[int, List[BankTransaction]] = defaultdict(list)
        for txn in unmatched_bank:
            groups[txn.amount_milli].append(txn)

        repeated = [group for group in groups.values() if len(group) >= 2]
        if not repeated:
            return []

        group = max(repeated, key=len)
        amount = group[0].amount_milli
        occurrences = len(group)
        display = format_money(amount, self.currency)

        return [ReconciliationInsight(
            id=f"repeat-{amount}",
            type=InsightType.REPEAT_AMOUNT,
            severity=(
                InsightSeverity.CRITICAL
                if occurrences >= REPEAT_CRITICAL_OCCURRENCES
                else InsightSeverity.WARNING
            ),
            title=f"{occurrences} unmatched transactions of {display}",
            description=(
                f"The statement has {occurrences} unmatched transactions for {display}. "
                f"Check for duplicate or recurring charges missing from the ledger."
            ),
            evidence={
                "amount": amount,
                "occurrences": occurrences,
                "dates": [t.date.isoformat() for t in group],
                "csv_rows": [t.original_row for t in group],
            },
        )]

    def near_match_insights(
        self,
        matches: List[TransactionMatch],
    ) -> List[ReconciliationInsight]:
        """Matches below high tier whose best candidate is close to qualifying."""
        auto = self.config.auto_match_threshold
        suggestion = self.config.suggestion_threshold
        insights: List[ReconciliationInsight] = []
        claimed = {m.ledger_transaction.id for m in matches if m.ledger_transaction}

        for match in matches:
            if match.confidence == MatchConfidence.HIGH:
                continue

            # Never point at a ledger entry another bank transaction holds
            own = match.ledger_transaction.id if match.ledger_transaction else None
            top = next(
                (
                    c for c in match.candidates
                    if c.ledger_transaction.id == own or c.ledger_transaction.id not in claimed
                ),
                None,
            )
            if top is None:
                continue
            if match.confidence == MatchConfidence.MEDIUM:
                qualifies = top.confidence >= auto - NEAR_MATCH_MARGIN
            else:
                qualifies = top.confidence >= suggestion
            if not qualifies:
                continue

            bank = match.bank_transaction
            ledger = top.ledger_transaction
            insights.append(ReconciliationInsight(
                id=f"near-{bank.id}",
                type=InsightType.NEAR_MATCH,
                severity=InsightSeverity.WARNING if top.confidence >= auto else InsightSeverity.INFO,
                title=f"Possible match for {bank.payee}",
                description=(
                    f"{bank.payee} ({format_money(bank.amount_milli, self.currency)} on "
                    f"{bank.date.isoformat()}) looks like ledger entry "
                    f"{ledger.payee_name or ledger.id} with score {top.confidence}. Confirm manually."
                ),
                evidence={
                    "bank_transaction_id": bank.id,
                    "ledger_transaction_id": ledger.id,
                    "confidence": top.confidence,
                    "reasons": list(top.reasons),
                },
            ))
            if len(insights) >= MAX_NEAR_MATCH_INSIGHTS:
                break

        return insights

    def anomaly_insights(
        self,
        unmatched_bank: List[BankTransaction],
        balance_info: BalanceInfo,
    ) -> List[ReconciliationInsight]:
        insights: List[ReconciliationInsight] = []

        gap = abs(balance_info.discrepancy)
        if gap >= BALANCE_GAP_MIN:
            insights.append(ReconciliationInsight(
                id="balance-gap",
                type=InsightType.ANOMALY,
                severity=(
                    InsightSeverity.CRITICAL if gap >= BALANCE_GAP_CRITICAL
                    else InsightSeverity.WARNING
                ),
                title="Cleared balance does not match the statement",
                description=(
                    f"Cleared balance differs from the statement by "
                    f"{format_money(balance_info.discrepancy, self.currency)}."
                ),
                evidence={
                    "cleared_balance": balance_info.current_cleared,
                    "statement_balance": balance_info.target_statement,
                    "discrepancy": balance_info.discrepancy,
                },
            ))

        missing = len(unmatched_bank)
        if missing >= BULK_MISSING_MIN:
            insights.append(ReconciliationInsight(
                id="bulk-missing-bank",
                type=InsightType.ANOMALY,
                severity=(
                    InsightSeverity.CRITICAL if missing >= BULK_MISSING_CRITICAL
                    else InsightSeverity.WARNING
                ),
                title=f"{missing} bank transactions are missing from the ledger",
                description=(
                    "A large share of the statement has no ledger counterpart. "
                    "The statement may cover a period the ledger has not imported yet."
                ),
                evidence={
                    "unmatched_count": missing,
                    "sample_ids": [t.id for t in unmatched_bank[:5]],
                },
            ))

        return insights
