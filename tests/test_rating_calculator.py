"""Tests for the overall rating calculator and completeness classifier."""

from decimal import Decimal

from scorecard.models.project import ProjectStatus
from scorecard.models.rating import Rating, RatingStatus
from scorecard.services.completeness import classify, is_complete
from scorecard.services.rating_calculator import calculate_overall, overall_drifted, round_half_up


def _rating(success=None, quality=None, communication=None, **kwargs) -> Rating:
    return Rating(
        rating_id="RAT-1",
        project_id="PRJ-1",
        success=success,
        quality=quality,
        communication=communication,
        **kwargs,
    )


# ─── round_half_up ────────────────────────────────────────────────────────────


class TestRoundHalfUp:
    def test_half_rounds_up(self):
        """4.45 → 4.5 (not banker's rounding, not the binary neighbour)."""
        assert round_half_up(4.45, 1) == Decimal("4.5")

    def test_two_places(self):
        assert round_half_up(Decimal("7.666"), 2) == Decimal("7.67")

    def test_integer_input(self):
        assert round_half_up(8, 1) == Decimal("8.0")


# ─── calculate_overall ────────────────────────────────────────────────────────


class TestCalculateOverall:
    def test_all_three_present(self):
        """(4, 5, 3) → 4.0."""
        assert calculate_overall(4, 5, 3) == 4.0

    def test_partial_uses_present_only(self):
        """(5, None, 3) → mean of present values, 4.0."""
        assert calculate_overall(5, None, 3) == 4.0

    def test_single_sub_rating(self):
        assert calculate_overall(None, 7, None) == 7.0

    def test_rounds_half_up(self):
        """(8, 9, 8) → 8.333 → 8.3; (9, 9, 8) → 8.666 → 8.7."""
        assert calculate_overall(8, 9, 8) == 8.3
        assert calculate_overall(9, 9, 8) == 8.7

    def test_exact_half(self):
        """(7, 8) → mean exactly 7.5, kept as 7.5."""
        assert calculate_overall(7, 8, None) == 7.5

    def test_nothing_present_is_none(self):
        assert calculate_overall(None, None, None) is None

    def test_supplied_used_when_no_sub_ratings(self):
        """Only the rater-supplied overall → that value, rounded."""
        assert calculate_overall(None, None, None, supplied=6.25) == 6.3

    def test_supplied_never_overrides_derivable(self):
        """Sub-ratings present → supplied overall ignored."""
        assert calculate_overall(4, 4, 4, supplied=9.0) == 4.0


class TestOverallDrifted:
    def test_equal_after_rounding_is_not_drift(self):
        assert overall_drifted(4, 4.0) is False
        assert overall_drifted(4.04, 4.0) is False

    def test_different_value_is_drift(self):
        assert overall_drifted(5.0, 4.0) is True

    def test_missing_stored_is_drift_when_calculable(self):
        assert overall_drifted(None, 4.0) is True

    def test_nothing_calculable_is_never_drift(self):
        assert overall_drifted(7.0, None) is False
        assert overall_drifted(None, None) is False


# ─── classify ─────────────────────────────────────────────────────────────────


class TestClassify:
    def test_no_rating_needs_review(self):
        assert classify(None) == RatingStatus.NEEDS_REVIEW

    def test_no_rating_needs_review_whatever_the_status(self):
        for status in ProjectStatus:
            assert classify(None, status) == RatingStatus.NEEDS_REVIEW

    def test_partial_is_incomplete(self):
        assert classify(_rating(8, None, 7)) == RatingStatus.INCOMPLETE

    def test_rating_with_no_sub_ratings_is_incomplete(self):
        """A rating row with only a supplied overall is still Incomplete."""
        assert classify(_rating(supplied_overall=8.0)) == RatingStatus.INCOMPLETE

    def test_all_three_complete(self):
        assert classify(_rating(8, 9, 7)) == RatingStatus.COMPLETE
        assert is_complete(_rating(8, 9, 7))

    def test_overall_property_matches_calculator(self):
        rating = _rating(8, 9, 8, supplied_overall=2.0)
        assert rating.overall == 8.3
        assert rating.present_count == 3
