"""Tests for vendor ranking."""

from scorecard.models.vendor_summary import VendorPerformanceSummary
from scorecard.services.recommendation import rank_vendors


def _summary(vendor_id, avg_overall=None, recommendation_rate=None, rated=0, tier="mid") -> VendorPerformanceSummary:
    return VendorPerformanceSummary(
        vendor_id=vendor_id,
        rated_projects=rated,
        avg_overall=avg_overall,
        recommendation_rate=recommendation_rate,
        performance_tier=tier,
    )


class TestRankVendors:
    def test_score_formula(self):
        """(9/10)*40 + 0.5*40 + (4/4)*20 → 76.0."""
        rankings = rank_vendors([_summary("VEN-1", 9.0, 0.5, rated=4)])
        assert rankings[0].score == 76.0
        assert rankings[0].rank == 1

    def test_best_first(self):
        rankings = rank_vendors(
            [
                _summary("VEN-1", 6.0, 0.5, rated=2),
                _summary("VEN-2", 9.0, 1.0, rated=2),
            ]
        )
        assert [r.vendor_id for r in rankings] == ["VEN-2", "VEN-1"]

    def test_unrated_last(self):
        rankings = rank_vendors([_summary("VEN-1", tier="unrated"), _summary("VEN-2", 3.0, 0.0, rated=1)])
        assert [r.vendor_id for r in rankings] == ["VEN-2", "VEN-1"]
        assert rankings[1].score is None

    def test_ties_break_on_natural_vendor_id(self):
        summaries = [_summary("VEN-10", 8.0, 1.0, rated=1), _summary("VEN-9", 8.0, 1.0, rated=1)]
        assert [r.vendor_id for r in rank_vendors(summaries)] == ["VEN-9", "VEN-10"]

    def test_limit(self):
        summaries = [_summary(f"VEN-{i}", float(i), 0.5, rated=1) for i in range(1, 6)]
        rankings = rank_vendors(summaries, limit=2)
        assert [r.vendor_id for r in rankings] == ["VEN-5", "VEN-4"]
