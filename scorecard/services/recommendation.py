"""Vendor ranking for new-work recommendations.

Pre-score (0-100):
    (avg_overall / 10) * 40 + recommendation_rate * 40 + (rated / max rated) * 20

Unrated vendors rank last; ties break on vendor id.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from ..constants import RANK_WEIGHT_OVERALL, RANK_WEIGHT_RECOMMENDATION, RANK_WEIGHT_VOLUME, RATING_SCALE_MAX
from ..models.vendor_summary import VendorPerformanceSummary
from ..utils.id_utils import natural_key
from .rating_calculator import round_half_up


@dataclass(frozen=True)
class VendorRanking:
    rank: int
    vendor_id: str
    score: Optional[float]
    performance_tier: str
    rated_projects: int


def _score(summary: VendorPerformanceSummary, max_rated: int) -> Optional[float]:
    if summary.avg_overall is None:
        return None
    score = Decimal(str(summary.avg_overall)) / Decimal(RATING_SCALE_MAX) * RANK_WEIGHT_OVERALL
    score += Decimal(str(summary.recommendation_rate or 0)) * RANK_WEIGHT_RECOMMENDATION
    if max_rated:
        score += Decimal(summary.rated_projects) / Decimal(max_rated) * RANK_WEIGHT_VOLUME
    return float(round_half_up(score, 2))


def rank_vendors(summaries: Iterable[VendorPerformanceSummary], limit: Optional[int] = None) -> list[VendorRanking]:
    """Rank vendors by pre-score, best first."""
    summaries = list(summaries)
    max_rated = max((s.rated_projects for s in summaries), default=0)
    scored = [(s, _score(s, max_rated)) for s in summaries]
    scored.sort(key=lambda pair: (pair[1] is None, -(pair[1] or 0), natural_key(pair[0].vendor_id)))
    if limit is not None:
        scored = scored[:limit]
    return [
        VendorRanking(
            rank=index,
            vendor_id=summary.vendor_id,
            score=score,
            performance_tier=summary.performance_tier,
            rated_projects=summary.rated_projects,
        )
        for index, (summary, score) in enumerate(scored, start=1)
    ]
