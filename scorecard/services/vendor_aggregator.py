"""
Vendor Aggregator - Folds a vendor's rated projects into a performance summary.

Counting rules:
- A project belongs to the vendor on the project record; ratings on projects
  with no vendor count for no one
- Orphaned ratings never count
- At most one rating per project (the duplicate-retention keeper)
- Every average and rate has its own denominator: only non-null values

All arithmetic is Decimal over inputs sorted by id, so the same population
always produces byte-identical summaries.
"""

import logging
from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Optional

from ..constants import AVERAGE_DECIMAL_PLACES, RATE_DECIMAL_PLACES
from ..models.project import Project, ProjectStatus
from ..models.rating import Rating
from ..models.vendor_summary import VendorPerformanceSummary
from ..utils.id_utils import natural_key
from .performance_tiers import TierConfig, get_tier_config
from .rating_calculator import round_half_up
from .reconciliation_engine import retention_order

logger = logging.getLogger(__name__)


def _average(values: list, places: int = AVERAGE_DECIMAL_PLACES) -> Optional[float]:
    """Mean of the non-null values, or None when there are none."""
    present = [Decimal(str(v)) for v in values if v is not None]
    if not present:
        return None
    return float(round_half_up(sum(present) / Decimal(len(present)), places))


def _rate(flags: list) -> Optional[float]:
    """Share of True among the non-null flags."""
    present = [flag for flag in flags if flag is not None]
    if not present:
        return None
    hits = Decimal(sum(1 for flag in present if flag))
    return float(round_half_up(hits / Decimal(len(present)), RATE_DECIMAL_PLACES))


class VendorAggregator:
    """
    Builds VendorPerformanceSummary records.

    Args:
        tier_config: Tier thresholds (defaults to scorecard/performance_tiers.yaml)
    """

    def __init__(self, tier_config: Optional[TierConfig] = None):
        self.tier_config = tier_config or get_tier_config()

    def summarize(
        self,
        vendor_id: str,
        projects: Iterable[Project],
        ratings: Iterable[Rating],
    ) -> VendorPerformanceSummary:
        """
        Summarize one vendor.

        Args:
            vendor_id: Vendor to summarize
            projects: Candidate projects (others' projects are ignored)
            ratings: Candidate ratings; those whose project is not among the
                vendor's projects (orphans included) are ignored

        Returns:
            VendorPerformanceSummary
        """
        vendor_projects = {p.project_id: p for p in projects if p.vendor_id == vendor_id}

        groups: dict[str, list[Rating]] = defaultdict(list)
        for rating in ratings:
            if rating.project_id in vendor_projects:
                groups[rating.project_id].append(rating)

        counted: list[tuple[Project, Rating]] = []
        for project_id in sorted(groups, key=natural_key):
            keeper = retention_order(groups[project_id])[0]
            counted.append((vendor_projects[project_id], keeper))

        avg_overall = _average([rating.overall for _, rating in counted])
        created = [p.created_at for p in vendor_projects.values() if p.created_at is not None]

        summary = VendorPerformanceSummary(
            vendor_id=vendor_id,
            total_projects=len(vendor_projects),
            completed_projects=sum(
                1 for p in vendor_projects.values() if p.status in (ProjectStatus.COMPLETED, ProjectStatus.ARCHIVED)
            ),
            rated_projects=len(counted),
            avg_success=_average([rating.success for _, rating in counted]),
            avg_quality=_average([rating.quality for _, rating in counted]),
            avg_communication=_average([rating.communication for _, rating in counted]),
            avg_overall=avg_overall,
            recommendation_rate=_rate([rating.recommend for _, rating in counted]),
            on_time_rate=_rate([_flag(rating.on_time, project.on_time) for project, rating in counted]),
            on_budget_rate=_rate([_flag(rating.on_budget, project.on_budget) for project, rating in counted]),
            last_project_date=max(created) if created else None,
            performance_tier=self.tier_config.tier_for(avg_overall),
        )
        logger.debug(
            f"Summarized {vendor_id}: {summary.rated_projects}/{summary.total_projects} rated, "
            f"avg_overall={summary.avg_overall}, tier={summary.performance_tier}"
        )
        return summary

    def summarize_all(self, projects: Iterable[Project], ratings: Iterable[Rating]) -> list[VendorPerformanceSummary]:
        """Summarize every vendor that has at least one project, sorted by vendor id."""
        projects = list(projects)
        ratings = list(ratings)
        vendor_ids = sorted({p.vendor_id for p in projects if p.vendor_id}, key=natural_key)
        return [self.summarize(vendor_id, projects, ratings) for vendor_id in vendor_ids]


def _flag(rating_flag: Optional[bool], project_flag: Optional[bool]) -> Optional[bool]:
    """Rating's own flag, falling back to the project's."""
    return rating_flag if rating_flag is not None else project_flag
