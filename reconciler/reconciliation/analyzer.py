"""
Reconciliation Analyzer - main analysis coordinator.

Runs the analysis pipeline for one account:
1. Optional sign inversion of bank amounts
2. Pairwise matching
3. Categorization into auto / suggested / unmatched
4. Combination matching over the residual sets
5. Balance calculation, summary and next steps
6. Insight detection
7. Recommendations (only when account and budget ids are supplied)
"""

from dataclasses import replace
from decimal import Decimal
from typing import List, Optional, Tuple

import structlog

from ..models import (
    BalanceInfo,
    BankTransaction,
    LedgerTransaction,
    MatchConfidence,
    MatchingConfig,
    ReconciliationAnalysis,
    ReconciliationSummary,
    TransactionMatch,
)
from ..utils.money import MoneyValue, to_milli
from .combinations import CombinationMatcher
from .insights import InsightDetector, merge_insights
from .matcher import PairwiseMatcher
from .recommendations import RecommendationContext, RecommendationEngine

logger = structlog.get_logger()


def categorize_matches(
    matches: List[TransactionMatch],
) -> Tuple[List[TransactionMatch], List[TransactionMatch], List[BankTransaction]]:
    """Split matches into (auto, suggested, unmatched bank) by tier."""
    auto, suggested, unmatched = [], [], []
    for match in matches:
        if match.confidence == MatchConfidence.HIGH:
            auto.append(match)
        elif match.confidence == MatchConfidence.MEDIUM:
            suggested.append(match)
        else:
            unmatched.append(match.bank_transaction)
    return auto, suggested, unmatched


def find_unmatched_ledger(
    ledger_transactions: List[LedgerTransaction],
    matches: List[TransactionMatch],
) -> List[LedgerTransaction]:
    """Ledger transactions not claimed by any match."""
    matched_ids = {m.ledger_transaction.id for m in matches if m.ledger_transaction is not None}
    return [t for t in ledger_transactions if t.id not in matched_ids]


def calculate_balances(
    ledger_transactions: List[LedgerTransaction],
    statement_balance: Decimal,
    tolerance: int,
    currency: str = "USD",
) -> BalanceInfo:
    """Cleared/uncleared sums and the discrepancy against the statement."""
    cleared = sum(t.amount for t in ledger_transactions if t.is_cleared)
    uncleared = sum(t.amount for t in ledger_transactions if not t.is_cleared)
    target = to_milli(statement_balance)
    discrepancy = cleared - target

    return BalanceInfo(
        current_cleared=cleared,
        current_uncleared=uncleared,
        current_total=cleared + uncleared,
        target_statement=target,
        discrepancy=discrepancy,
        on_track=abs(discrepancy) < tolerance,
        currency=currency,
    )


class ReconciliationAnalyzer:
    """
    Produces a ReconciliationAnalysis from parsed bank transactions and the
    ledger transactions of the same account.
    """

    def __init__(self, config: MatchingConfig):
        self.config = config
        self.matcher = PairwiseMatcher(config)
        self.combination_matcher = CombinationMatcher(config)
        self.recommendation_engine = RecommendationEngine()

    def analyze(
        self,
        bank_transactions: List[BankTransaction],
        ledger_transactions: List[LedgerTransaction],
        statement_balance: Decimal,
        currency: str = "USD",
        account_id: Optional[str] = None,
        budget_id: Optional[str] = None,
        invert_bank_amounts: bool = False,
    ) -> ReconciliationAnalysis:
        """
        Analyze a statement against the ledger.

        Args:
            bank_transactions: Parsed statement lines
            ledger_transactions: Ledger entries for the account
            statement_balance: Ending balance printed on the statement
            currency: Currency code for money values
            account_id: Ledger account id (enables recommendations with budget_id)
            budget_id: Ledger budget id (enables recommendations with account_id)
            invert_bank_amounts: Negate bank amounts (charges shown as positive)

        Returns:
            ReconciliationAnalysis snapshot
        """
        logger.info(
            "Starting analysis",
            bank=len(bank_transactions),
            ledger=len(ledger_transactions),
            invert_bank_amounts=invert_bank_amounts,
        )

        if invert_bank_amounts:
            bank_transactions = [t.inverted() for t in bank_transactions]

        matches = self.matcher.match(bank_transactions, ledger_transactions)
        auto_matches, suggested_matches, unmatched_bank = categorize_matches(matches)
        unmatched_ledger = find_unmatched_ledger(ledger_transactions, matches)

        combination_result = self.combination_matcher.find_combinations(
            unmatched_bank, unmatched_ledger, currency
        )
        suggested_matches = suggested_matches + combination_result.matches

        balance_info = calculate_balances(
            ledger_transactions,
            statement_balance,
            self.config.balance_tolerance_milli,
            currency,
        )

        summary = self._summarize(
            bank_transactions,
            ledger_transactions,
            auto_matches,
            suggested_matches,
            unmatched_bank,
            unmatched_ledger,
            balance_info,
        )

        detector = InsightDetector(self.config, currency)
        insights = merge_insights(
            detector.detect(matches, unmatched_bank, balance_info),
            combination_result.insights,
        )

        analysis = ReconciliationAnalysis(
            summary=summary,
            auto_matches=auto_matches,
            suggested_matches=suggested_matches,
            unmatched_bank=unmatched_bank,
            unmatched_ledger=unmatched_ledger,
            balance_info=balance_info,
            next_steps=self._next_steps(summary),
            insights=insights,
        )

        if account_id and budget_id:
            recommendations = self.recommendation_engine.generate(RecommendationContext(
                account_id=account_id,
                budget_id=budget_id,
                analysis=analysis,
                matching_config=self.config,
            ))
            analysis = replace(analysis, recommendations=recommendations)

        logger.info(
            "Analysis complete",
            auto_matched=summary.auto_matched,
            suggested=summary.suggested_matches,
            unmatched_bank=summary.unmatched_bank,
            unmatched_ledger=summary.unmatched_ledger,
            on_track=balance_info.on_track,
        )

        return analysis

    @staticmethod
    def _summarize(
        bank_transactions: List[BankTransaction],
        ledger_transactions: List[LedgerTransaction],
        auto_matches: List[TransactionMatch],
        suggested_matches: List[TransactionMatch],
        unmatched_bank: List[BankTransaction],
        unmatched_ledger: List[LedgerTransaction],
        balance_info: BalanceInfo,
    ) -> ReconciliationSummary:
        dates = sorted(t.date for t in bank_transactions)
        date_range = (
            f"{dates[0].isoformat()} to {dates[-1].isoformat()}" if dates else "Unknown"
        )

        if balance_info.on_track:
            explanation = "Cleared balance matches statement"
        else:
            needed = []
            if auto_matches:
                needed.append(f"clear {len(auto_matches)} transactions")
            if unmatched_bank:
                needed.append(f"add {len(unmatched_bank)} missing")
            if unmatched_ledger:
                needed.append(f"review {len(unmatched_ledger)} unmatched ledger transactions")
            explanation = f"Need to {', '.join(needed)}" if needed else "Manual review required"

        currency = balance_info.currency
        return ReconciliationSummary(
            statement_date_range=date_range,
            bank_transactions_count=len(bank_transactions),
            ledger_transactions_count=len(ledger_transactions),
            auto_matched=len(auto_matches),
            suggested_matches=len(suggested_matches),
            unmatched_bank=len(unmatched_bank),
            unmatched_ledger=len(unmatched_ledger),
            current_cleared_balance=MoneyValue.from_milli(balance_info.current_cleared, currency),
            target_statement_balance=MoneyValue.from_milli(balance_info.target_statement, currency),
            discrepancy=MoneyValue.signed(balance_info.discrepancy, currency),
            discrepancy_explanation=explanation,
        )

    @staticmethod
    def _next_steps(summary: ReconciliationSummary) -> List[str]:
        steps = []
        if summary.auto_matched:
            steps.append(f"Review {summary.auto_matched} auto-matched transactions for approval")
        if summary.suggested_matches:
            steps.append(
                f"Review {summary.suggested_matches} suggested matches and choose best match"
            )
        if summary.unmatched_bank:
            steps.append(
                f"Decide whether to add {summary.unmatched_bank} missing bank transactions to the ledger"
            )
        if summary.unmatched_ledger:
            steps.append(
                f"Decide what to do with {summary.unmatched_ledger} unmatched ledger "
                f"transactions (unclear/delete/ignore)"
            )
        if not steps:
            steps.append("All transactions matched! Review and approve to complete reconciliation")
        return steps
