"""
test_scoring.py — Tests for the seven criterion scorers in app/scoring.py

Covers: price tiers (under/over budget), delivery decay, payment-term
keyword matching, warranty comparison, completeness, other requirements,
and the neutral-80 / missing-field conventions.

Called by: pytest
Depends on: app/scoring.py
"""

import pytest

from app.scoring import (
    NEUTRAL_SCORE,
    WEIGHTS,
    round_half_up,
    score_completeness,
    score_delivery,
    score_other_requirements,
    score_payment_terms,
    score_price,
    score_requirements,
    score_warranty,
)


class TestRoundHalfUp:
    def test_half_rounds_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(3.5) == 4

    def test_negative_half_rounds_toward_positive(self):
        assert round_half_up(-2.5) == -2

    def test_below_half(self):
        assert round_half_up(71.49) == 71


class TestWeights:
    def test_weights_sum_to_one(self):
        assert sum(WEIGHTS.values()) == pytest.approx(1.0)

    def test_seven_criteria(self):
        assert len(WEIGHTS) == 7


class TestScorePrice:
    @pytest.mark.parametrize(
        "price,expected",
        [
            (9500, 100),   # 5% under
            (9000, 95),    # 10% under
            (8500, 85),    # 15% under
            (7500, 75),    # 25% under
            (6000, 60),    # 40% under
            (4000, 40),    # 60% under → 70 - 30
            (10000, 95),   # exactly on budget uses the over-budget curve
            (10500, 95),   # 5% over
            (11000, 85),   # 10% over
            (12000, 70),   # 20% over
            (13000, 50),   # 30% over
            (15000, 30),   # 50% over
            (20000, 10),   # 100% over → 40 - 30
        ],
    )
    def test_tiers(self, price, expected):
        assert score_price(price, 10000).score == expected

    def test_far_under_budget_floors_at_30(self):
        assert score_price(100, 10000).score == 30

    def test_far_over_budget_floors_at_0(self):
        assert score_price(100000, 10000).score == 0

    def test_missing_price_scores_zero(self):
        result = score_price(None, 10000)
        assert result.score == 0
        assert result.matches_budget is False
        assert result.reasoning == "Price not specified in proposal"

    def test_no_budget_is_neutral(self):
        result = score_price(9500, None)
        assert result.score == NEUTRAL_SCORE
        assert result.matches_budget is True

    def test_deviation_and_matches_budget(self):
        result = score_price(9000, 10000)
        assert result.deviation == -10.0
        assert result.matches_budget is True
        assert score_price(12000, 10000).matches_budget is False

    def test_reasoning_mentions_direction(self):
        assert "under" in score_price(9000, 10000).reasoning
        assert "over" in score_price(12000, 10000).reasoning


class TestScoreDelivery:
    def test_on_time(self):
        result = score_delivery(30, 30)
        assert result.score == 100
        assert result.meets_deadline is True
        assert result.days_difference == 0

    def test_early_loses_two_points_per_day(self):
        result = score_delivery(25, 30)
        assert result.score == 90
        assert result.reasoning == "Meets deadline (5 days early)"

    def test_very_early_floors_at_90(self):
        assert score_delivery(5, 30).score == 90

    @pytest.mark.parametrize(
        "proposed,expected",
        [(35, 75), (37, 75), (40, 60), (44, 60), (50, 40), (60, 40), (100, 23)],
    )
    def test_late_tiers(self, proposed, expected):
        result = score_delivery(proposed, 30)
        assert result.score == expected
        assert result.meets_deadline is False

    def test_late_reasoning(self):
        assert score_delivery(40, 30).reasoning == "Exceeds deadline by 10 days"

    def test_missing_beats_no_requirement(self):
        result = score_delivery(None, None)
        assert result.score == 0
        assert result.reasoning == "Delivery timeline not specified"

    def test_no_requirement_is_neutral(self):
        result = score_delivery(20, None)
        assert result.score == NEUTRAL_SCORE
        assert result.meets_deadline is True
        assert result.days_difference is None


class TestScorePaymentTerms:
    def test_keyword_overlap(self):
        result = score_payment_terms("Net 30 days", "Net 30")
        assert result.score == 100
        assert result.matches is True

    def test_no_keyword_overlap(self):
        assert score_payment_terms("50% deposit", "Net 30").score == 60

    def test_substring_fallback_when_no_keywords(self):
        assert score_payment_terms("Letter of credit at sight", "letter of credit").score == 100

    def test_missing(self):
        result = score_payment_terms(None, "Net 30")
        assert result.score == 50
        assert result.matches is False

    def test_no_requirement(self):
        assert score_payment_terms("Net 60", None).score == NEUTRAL_SCORE


class TestScoreWarranty:
    def test_exceeds(self):
        result = score_warranty("2 years", "1 year")
        assert result.score == 100
        assert result.meets_requirement is True

    def test_falls_short(self):
        result = score_warranty("1 year", "2 years")
        assert result.score == 50
        assert result.meets_requirement is False

    def test_units_are_not_converted(self):
        # 6 months vs 1 year compares 6 >= 1
        assert score_warranty("6 months", "1 year").score == 100

    def test_text_fallback(self):
        assert score_warranty("Lifetime", "lifetime coverage").score == 100
        assert score_warranty("Limited", "Comprehensive").score == 60

    def test_missing_and_neutral(self):
        assert score_warranty(None, "1 year").score == 50
        assert score_warranty("2 years", None).score == NEUTRAL_SCORE


class TestScoreCompleteness:
    def test_complete(self):
        result = score_completeness(0.9)
        assert result.score == 90
        assert result.reasoning == "Proposal is comprehensive and complete"

    def test_partial(self):
        assert score_completeness(0.75).reasoning.startswith("Proposal is reasonably complete")

    def test_incomplete(self):
        assert score_completeness(0.5).score == 50
        assert score_completeness(0.5).reasoning.startswith("Proposal is incomplete")

    def test_missing(self):
        assert score_completeness(None).score == 50

    def test_clamped(self):
        assert score_completeness(1.5).score == 100
        assert score_completeness(-0.2).score == 0


class TestScoreRequirements:
    def test_no_items_required(self):
        result = score_requirements([], None, None, None)
        assert result.score == 100
        assert result.items_total == 0

    def test_half_matched(self):
        items = [{"name": "Laptop", "quantity": 20}, {"name": "Docking Station"}]
        lines = [{"item": "Laptop", "price": 9000, "quantity": 20}]
        result = score_requirements(items, lines, None, None)
        assert result.items_matched == 1
        assert result.items_total == 2
        assert result.score == 50
        assert len(result.item_breakdown) == 2


class TestScoreOtherRequirements:
    def test_none_specified(self):
        assert score_other_requirements([], None, None).score == 100

    def test_keyword_found(self):
        result = score_other_requirements(
            ["On-site installation", "Recycling of old equipment"],
            "Price includes installation.",
            None,
        )
        assert result.matches == 1
        assert result.total == 2
        assert result.score == 50
        assert result.missing == ["Recycling of old equipment"]

    def test_short_words_ignored(self):
        # "ISO" is too short to count as a keyword
        result = score_other_requirements(["ISO 9001"], None, "We are ISO certified")
        assert result.score == 0
