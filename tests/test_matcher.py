"""
Tests for the Pairwise Matcher.
"""

import pytest
from datetime import date, timedelta

from conftest import make_bank, make_ledger
from reconciler.models import MatchConfidence, MatchingConfig
from reconciler.reconciliation.matcher import PairwiseMatcher, confidence_tier


@pytest.fixture
def matcher(matching_config):
    return PairwiseMatcher(matching_config)


class TestConfidenceTier:

    def test_tiers(self, matching_config):
        assert confidence_tier(95, matching_config) == MatchConfidence.HIGH
        assert confidence_tier(90, matching_config) == MatchConfidence.HIGH
        assert confidence_tier(75, matching_config) == MatchConfidence.MEDIUM
        assert confidence_tier(59, matching_config) == MatchConfidence.LOW
        assert confidence_tier(0, matching_config) == MatchConfidence.NONE


class TestPairwiseMatcher:
    """Test suite for pairwise matching."""

    def test_exact_match_is_high(self, matcher):
        bank = [make_bank("-4.50", payee="Blue Bottle Coffee")]
        ledger = [make_ledger("l1", -4500, payee="Blue Bottle Coffee")]

        matches = matcher.match(bank, ledger)

        assert len(matches) == 1
        match = matches[0]
        assert match.confidence == MatchConfidence.HIGH
        assert match.confidence_score == 100
        assert match.ledger_transaction.id == "l1"
        assert "exact_amount" in match.match_reason
        assert "same_date" in match.match_reason

    def test_amount_outside_tolerance_is_not_a_candidate(self, matcher):
        bank = [make_bank("-4.50")]
        ledger = [make_ledger("l1", -4520)]

        match = matcher.match(bank, ledger)[0]

        assert match.confidence == MatchConfidence.NONE
        assert match.confidence_score == 0
        assert match.match_reason == "no_candidates"
        assert match.action_hint == "create_transaction"

    def test_amount_within_one_cent(self, matcher):
        bank = [make_bank("-4.50")]
        ledger = [make_ledger("l1", -4510)]

        match = matcher.match(bank, ledger)[0]

        assert match.confidence == MatchConfidence.HIGH
        assert "amount_within_tolerance" in match.candidates[0].reasons

    def test_date_outside_window(self, matcher):
        bank = [make_bank("-10.00", txn_date=date(2024, 1, 15))]
        ledger = [make_ledger("l1", -10000, txn_date=date(2024, 1, 15) - timedelta(days=6))]

        assert matcher.match(bank, ledger)[0].confidence == MatchConfidence.NONE

    def test_payee_mismatch_is_medium(self, matcher):
        bank = [make_bank("-10.00", payee="Whole Foods")]
        ledger = [make_ledger("l1", -10000, payee="Chevron", txn_date=date(2024, 1, 13))]

        match = matcher.match(bank, ledger)[0]

        assert match.confidence == MatchConfidence.MEDIUM
        assert match.ledger_transaction.id == "l1"
        assert match.action_hint == "review_match"
        assert "date_within_2_days" in match.candidates[0].reasons

    def test_low_tier_does_not_claim(self):
        config = MatchingConfig(
            date_tolerance_days=5,
            amount_tolerance_cents=1,
            description_similarity_threshold=0.8,
            auto_match_threshold=95,
            suggestion_threshold=90,
        )
        bank = [make_bank("-10.00", payee="Whole Foods")]
        ledger = [make_ledger("l1", -10000, payee="Chevron")]

        match = PairwiseMatcher(config).match(bank, ledger)[0]

        assert match.confidence == MatchConfidence.LOW
        assert match.ledger_transaction is None
        assert match.match_reason == "low_confidence"
        assert match.candidates

    def test_one_match_per_bank_and_no_double_claim(self, matcher):
        bank = [
            make_bank("-20.00", payee="Netflix", id="b1"),
            make_bank("-20.00", payee="Netflix", id="b2"),
        ]
        ledger = [make_ledger("l1", -20000, payee="Netflix")]

        matches = matcher.match(bank, ledger)

        assert [m.bank_transaction.id for m in matches] == ["b1", "b2"]
        claimed = [m.ledger_transaction.id for m in matches if m.ledger_transaction]
        assert claimed == ["l1"]
        loser = next(m for m in matches if m.ledger_transaction is None)
        assert loser.match_reason == "candidates_already_matched"
        assert loser.confidence == MatchConfidence.NONE

    def test_stronger_evidence_claims_first(self, matcher):
        bank = [
            make_bank("-20.00", payee="Gas Station", id="weak"),
            make_bank("-20.00", payee="Shell", id="strong"),
        ]
        ledger = [make_ledger("l1", -20000, payee="Shell Oil")]

        matches = {m.bank_transaction.id: m for m in matcher.match(bank, ledger)}

        assert matches["strong"].ledger_transaction.id == "l1"
        assert matches["weak"].ledger_transaction is None

    def test_candidates_sorted_and_capped(self, matcher):
        bank = make_bank("-5.00", payee="Cafe")
        ledger = [
            make_ledger(f"l{i}", -5000, payee="Cafe", txn_date=date(2024, 1, 15) - timedelta(days=i))
            for i in range(6)
        ]

        candidates = matcher.score_candidates(bank, ledger)

        assert len(candidates) == 5
        assert [c.ledger_transaction.id for c in candidates] == ["l0", "l1", "l2", "l3", "l4"]

    def test_repeated_identical_charges_all_match(self, matcher):
        bank = [make_bank("-5.00", payee="Coffee Shop", id=f"b{i}") for i in range(6)]
        ledger = [make_ledger(f"l{i}", -5000, payee="Coffee Shop") for i in range(6)]

        matches = matcher.match(bank, ledger)

        assert [m.confidence for m in matches] == [MatchConfidence.HIGH] * 6
        assert sorted(m.ledger_transaction.id for m in matches) == [f"l{i}" for i in range(6)]
        assert matches[5].ledger_transaction.id == "l5"
        assert all(len(m.candidates) == 5 for m in matches)

    def test_tier_consistent_with_score(self, matcher, matching_config):
        bank = [
            make_bank("-1.00", payee="A"),
            make_bank("-2.00", payee="Completely Different"),
            make_bank("-3.00", payee="C"),
        ]
        ledger = [
            make_ledger("l1", -1000, payee="A"),
            make_ledger("l2", -2000, payee="Other Store"),
        ]

        for match in matcher.match(bank, ledger):
            assert match.confidence == confidence_tier(match.confidence_score, matching_config)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
