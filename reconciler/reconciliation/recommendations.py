"""
Recommendation Engine - turns analysis output into typed, prioritized actions.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Dict, Any

import structlog

from ..models import (
    ActionableRecommendation,
    BankTransaction,
    ClearedStatus,
    CreateTransactionParameters,
    InsightSeverity,
    InsightType,
    LedgerTransaction,
    ManualReviewParameters,
    MatchConfidence,
    MatchingConfig,
    RecommendationPriority,
    RecommendationType,
    ReconciliationAnalysis,
    ReconciliationInsight,
    ReviewDuplicateParameters,
    TransactionMatch,
    UpdateClearedParameters,
)
from ..models.reconciliation import RECOMMENDATION_VERSION
from ..utils.money import MoneyValue

logger = structlog.get_logger()

# Confidence assigned to each recommendation kind
CREATE_EXACT_MATCH = 0.95
NEAR_MATCH_REVIEW = 0.7
REPEAT_AMOUNT = 0.75
ANOMALY_REVIEW = 0.5
UNMATCHED_BANK = 0.8
UPDATE_CLEARED = 0.6


@dataclass
class RecommendationContext:
    """Inputs for recommendation generation."""
    account_id: str
    budget_id: str
    analysis: ReconciliationAnalysis
    matching_config: MatchingConfig


class RecommendationEngine:
    """Generates actionable recommendations from an analysis."""

    def generate(self, context: RecommendationContext) -> List[ActionableRecommendation]:
        recommendations: List[ActionableRecommendation] = []
        analysis = context.analysis

        for insight in analysis.insights:
            recommendations.extend(self._from_insight(insight, context))

        for txn in analysis.unmatched_bank:
            recommendations.append(self._create_missing(txn, context))

        for match in analysis.suggested_matches:
            recommendations.append(self._from_suggested_match(match, context))

        for txn in analysis.unmatched_ledger:
            if txn.cleared == ClearedStatus.UNCLEARED:
                recommendations.append(self._update_cleared(txn, context))

        recommendations.sort(key=lambda r: (r.priority.rank, r.confidence), reverse=True)

        logger.info(
            "Recommendations generated",
            account_id=context.account_id,
            count=len(recommendations),
        )
        return recommendations

    # Insights

    def _from_insight(
        self,
        insight: ReconciliationInsight,
        context: RecommendationContext,
    ) -> List[ActionableRecommendation]:
        if insight.type == InsightType.NEAR_MATCH:
            return [self._insight_review(
                insight, context,
                priority=RecommendationPriority.MEDIUM,
                confidence=NEAR_MATCH_REVIEW,
                message=f"Review: {insight.title}",
                issue_type="complex_match",
            )]
        if insight.type == InsightType.REPEAT_AMOUNT:
            return [self._insight_review(
                insight, context,
                priority=RecommendationPriority.MEDIUM,
                confidence=REPEAT_AMOUNT,
                message=f"Review recurring pattern: {insight.title}",
                issue_type="complex_match",
            )]
        if insight.type == InsightType.ANOMALY:
            return [self._insight_review(
                insight, context,
                priority=RecommendationPriority.LOW,
                confidence=ANOMALY_REVIEW,
                message=f"Review: {insight.title}",
                issue_type=(
                    "large_discrepancy" if insight.severity == InsightSeverity.CRITICAL
                    else "unknown"
                ),
            )]
        # Combination insights are covered by their suggested matches
        return []

    def _insight_review(
        self,
        insight: ReconciliationInsight,
        context: RecommendationContext,
        priority: RecommendationPriority,
        confidence: float,
        message: str,
        issue_type: str,
    ) -> ActionableRecommendation:
        balance = context.analysis.balance_info
        return ActionableRecommendation(
            action_type=RecommendationType.MANUAL_REVIEW,
            priority=priority,
            confidence=confidence,
            message=message,
            reason=insight.description,
            estimated_impact=MoneyValue.from_milli(0, balance.currency),
            account_id=context.account_id,
            source_insight_id=insight.id,
            parameters=ManualReviewParameters(issue_type=issue_type),
            metadata=self._metadata(
                current_discrepancy=MoneyValue.signed(balance.discrepancy, balance.currency).to_dict(),
                insight_severity=insight.severity.value,
            ),
        )

    # Transactions

    def _create_missing(
        self,
        txn: BankTransaction,
        context: RecommendationContext,
    ) -> ActionableRecommendation:
        currency = context.analysis.balance_info.currency
        return ActionableRecommendation(
            action_type=RecommendationType.CREATE_TRANSACTION,
            priority=RecommendationPriority.MEDIUM,
            confidence=UNMATCHED_BANK,
            message=f"Create missing transaction: {txn.payee}",
            reason="Transaction appears on bank statement but not in the ledger",
            estimated_impact=MoneyValue.signed(txn.amount_milli, currency),
            account_id=context.account_id,
            parameters=self._create_parameters(txn, context.account_id),
        )

    def _from_suggested_match(
        self,
        match: TransactionMatch,
        context: RecommendationContext,
    ) -> ActionableRecommendation:
        bank = match.bank_transaction
        currency = context.analysis.balance_info.currency

        if match.ledger_transaction is not None and match.confidence != MatchConfidence.NONE:
            return ActionableRecommendation(
                action_type=RecommendationType.REVIEW_DUPLICATE,
                priority=RecommendationPriority.HIGH,
                confidence=max(0.0, min(1.0, match.confidence_score / 100)),
                message=f"Review possible match: {bank.payee}",
                reason=match.match_reason,
                estimated_impact=MoneyValue.from_milli(0, currency),
                account_id=context.account_id,
                parameters=ReviewDuplicateParameters(
                    candidate_ids=[match.ledger_transaction.id],
                    bank_transaction=bank.to_dict(),
                    suggested_match_id=match.ledger_transaction.id,
                ),
            )

        if match.is_combination or len(match.candidates) > 1:
            return self._combination_review(match, context)

        return ActionableRecommendation(
            action_type=RecommendationType.CREATE_TRANSACTION,
            priority=RecommendationPriority.HIGH,
            confidence=CREATE_EXACT_MATCH,
            message=f"Create transaction for {bank.payee}",
            reason="This transaction exactly matches your discrepancy",
            estimated_impact=MoneyValue.signed(bank.amount_milli, currency),
            account_id=context.account_id,
            parameters=self._create_parameters(bank, context.account_id),
        )

    def _combination_review(
        self,
        match: TransactionMatch,
        context: RecommendationContext,
    ) -> ActionableRecommendation:
        bank = match.bank_transaction
        currency = context.analysis.balance_info.currency
        candidate_total = sum(c.ledger_transaction.amount for c in match.candidates)

        related: List[Dict[str, Any]] = [
            {"source": "bank", "id": bank.id, "description": bank.payee},
        ]
        related.extend(
            {
                "source": "ledger",
                "id": c.ledger_transaction.id,
                "description": c.ledger_transaction.payee_name or "Unknown",
            }
            for c in match.candidates
        )

        return ActionableRecommendation(
            action_type=RecommendationType.MANUAL_REVIEW,
            priority=RecommendationPriority.MEDIUM,
            confidence=NEAR_MATCH_REVIEW,
            message=f"Review combination match: {bank.payee}",
            reason=match.recommendation or (
                "Multiple ledger transactions appear to match this bank transaction. "
                "Review before creating anything new."
            ),
            estimated_impact=MoneyValue.from_milli(0, currency),
            account_id=context.account_id,
            parameters=ManualReviewParameters(
                issue_type="complex_match",
                related_transactions=related,
            ),
            metadata=self._metadata(
                bank_transaction_amount=MoneyValue.signed(bank.amount_milli, currency).to_dict(),
                candidate_total_amount=MoneyValue.signed(candidate_total, currency).to_dict(),
                candidate_count=len(match.candidates),
            ),
        )

    def _update_cleared(
        self,
        txn: LedgerTransaction,
        context: RecommendationContext,
    ) -> ActionableRecommendation:
        return ActionableRecommendation(
            action_type=RecommendationType.UPDATE_CLEARED,
            priority=RecommendationPriority.LOW,
            confidence=UPDATE_CLEARED,
            message=f"Mark transaction as cleared: {txn.payee_name or 'Unknown'}",
            reason="Transaction exists in the ledger but is not yet cleared",
            estimated_impact=MoneyValue.from_milli(0, context.analysis.balance_info.currency),
            account_id=context.account_id,
            parameters=UpdateClearedParameters(
                transaction_id=txn.id,
                cleared=ClearedStatus.CLEARED.value,
            ),
        )

    @staticmethod
    def _create_parameters(txn: BankTransaction, account_id: str) -> CreateTransactionParameters:
        return CreateTransactionParameters(
            account_id=account_id,
            date=txn.date.isoformat(),
            amount=txn.amount_milli,
            payee_name=txn.payee,
            cleared=ClearedStatus.CLEARED.value,
            approved=True,
            memo=txn.memo or None,
        )

    @staticmethod
    def _metadata(**extra: Any) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "version": RECOMMENDATION_VERSION,
            "created_at": datetime.now(timezone.utc).isoformat(),
        }
        metadata.update(extra)
        return metadata
