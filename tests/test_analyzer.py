"""
Tests for the Reconciliation Analyzer.
"""

import pytest
from datetime import date
from decimal import Decimal

from conftest import make_bank, make_ledger
from reconciler.models import ClearedStatus, InsightType
from reconciler.reconciliation.analyzer import (
    ReconciliationAnalyzer,
    calculate_balances,
    find_unmatched_ledger,
)


@pytest.fixture
def analyzer(matching_config):
    return ReconciliationAnalyzer(matching_config)


class TestCalculateBalances:

    def test_discrepancy_identity(self):
        ledger = [
            make_ledger("l1", 100000, cleared=ClearedStatus.CLEARED),
            make_ledger("l2", -5000, cleared=ClearedStatus.RECONCILED),
            make_ledger("l3", -2000),
        ]

        info = calculate_balances(ledger, Decimal("95.00"), tolerance=10)

        assert info.current_cleared == 95000
        assert info.current_uncleared == -2000
        assert info.current_total == 93000
        assert info.discrepancy == info.current_cleared - info.target_statement
        assert info.on_track

    def test_on_track_is_strict(self):
        ledger = [make_ledger("l1", 100010, cleared=ClearedStatus.CLEARED)]
        assert not calculate_balances(ledger, Decimal("100.00"), tolerance=10).on_track
        assert calculate_balances(ledger, Decimal("100.005"), tolerance=10).on_track


class TestReconciliationAnalyzer:
    """Test suite for the analysis pipeline."""

    def test_categorizes_matches(self, analyzer):
        bank = [
            make_bank("-4.50", payee="Blue Bottle Coffee", id="auto"),
            make_bank("-10.00", payee="Whole Foods", id="suggested"),
            make_bank("22.22", payee="EvoCarShare", id="missing"),
        ]
        ledger = [
            make_ledger("l1", -4500, payee="Blue Bottle Coffee"),
            make_ledger("l2", -10000, payee="Chevron", txn_date=date(2024, 1, 14)),
            make_ledger("stale", -7000, payee="Old Gym", cleared=ClearedStatus.CLEARED,
                        txn_date=date(2024, 1, 2)),
        ]

        analysis = analyzer.analyze(bank, ledger, Decimal("0"))

        assert [m.bank_transaction.id for m in analysis.auto_matches] == ["auto"]
        assert [m.bank_transaction.id for m in analysis.suggested_matches] == ["suggested"]
        assert [t.id for t in analysis.unmatched_bank] == ["missing"]
        assert [t.id for t in analysis.unmatched_ledger] == ["stale"]
        assert analysis.summary.bank_transactions_count == 3
        assert analysis.summary.ledger_transactions_count == 3
        assert analysis.summary.statement_date_range == "2024-01-15 to 2024-01-15"
        assert analysis.recommendations is None
        assert analysis.success
        assert analysis.phase == "analysis"

    def test_combination_bank_stays_unmatched(self, analyzer):
        bank = [make_bank("-47.97", payee="Bundle", id="b1")]
        ledger = [
            make_ledger("l1", -15990, payee="A"),
            make_ledger("l2", -15990, payee="B"),
            make_ledger("l3", -15990, payee="C"),
        ]

        analysis = analyzer.analyze(bank, ledger, Decimal("0"))

        assert len(analysis.suggested_matches) == 1
        assert analysis.suggested_matches[0].match_reason == "combination_match"
        assert [t.id for t in analysis.unmatched_bank] == ["b1"]
        assert any(i.type == InsightType.COMBINATION_MATCH for i in analysis.insights)

    def test_invert_bank_amounts(self, analyzer):
        bank = [make_bank("25.00", payee="Grocer")]
        ledger = [make_ledger("l1", -25000, payee="Grocer")]

        assert analyzer.analyze(bank, ledger, Decimal("0")).auto_matches == []
        inverted = analyzer.analyze(bank, ledger, Decimal("0"), invert_bank_amounts=True)
        assert len(inverted.auto_matches) == 1
        assert inverted.auto_matches[0].bank_transaction.amount == Decimal("-25.00")

    def test_recommendations_need_both_ids(self, analyzer):
        bank = [make_bank("22.22", payee="EvoCarShare")]

        only_account = analyzer.analyze(bank, [], Decimal("22.22"), account_id="a")
        both = analyzer.analyze(bank, [], Decimal("22.22"), account_id="a", budget_id="b")

        assert only_account.recommendations is None
        assert both.recommendations

    def test_balanced_statement(self, analyzer):
        ledger = [make_ledger("l1", 50000, payee="Payroll", cleared=ClearedStatus.CLEARED)]
        bank = [make_bank("500.00", payee="Payroll")]

        analysis = analyzer.analyze(bank, ledger, Decimal("500.00"))

        assert analysis.balance_info.on_track
        assert analysis.summary.discrepancy_explanation == "Cleared balance matches statement"
        assert not any(i.id == "balance-gap" for i in analysis.insights)

    def test_unmatched_ledger_helper(self, analyzer):
        ledger = [make_ledger("l1", -1000), make_ledger("l2", -2000)]
        bank = [make_bank("-1.00")]
        matches = analyzer.matcher.match(bank, ledger)

        assert [t.id for t in find_unmatched_ledger(ledger, matches)] == ["l2"]

    def test_to_dict_shape(self, analyzer):
        analysis = analyzer.analyze([make_bank("-1.00")], [], Decimal("0"), account_id="a", budget_id="b")
        data = analysis.to_dict()

        assert set(data) >= {
            "success", "phase", "summary", "auto_matches", "suggested_matches",
            "unmatched_bank", "unmatched_ledger", "balance_info", "next_steps",
            "insights", "recommendations",
        }
        assert data["balance_info"]["discrepancy"]["value_milliunits"] == 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
