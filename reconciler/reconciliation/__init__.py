"""Reconciliation engine components."""

from .matcher import PairwiseMatcher
from .combinations import CombinationMatcher
from .insights import InsightDetector
from .recommendations import RecommendationEngine, RecommendationContext
from .analyzer import ReconciliationAnalyzer
from .executor import ReconciliationExecutor
from .service import ReconciliationService, TransactionFetcher, ExecutionFlags

__all__ = [
    "PairwiseMatcher",
    "CombinationMatcher",
    "InsightDetector",
    "RecommendationEngine",
    "RecommendationContext",
    "ReconciliationAnalyzer",
    "ReconciliationExecutor",
    "ReconciliationService",
    "TransactionFetcher",
    "ExecutionFlags",
]
