"""
Snapshot Loader - Reads one vendor partition from both storage shapes.

The paired tables (projects + ratings) are authoritative. Consolidated rows
fill the gaps: a consolidated project missing from the projects table, or a
consolidated rating for a project with no stored rating, enters the snapshot
marked unpersisted so the reconciliation pass backfills it. Once backfilled,
the paired copy shadows the consolidated one, so the next load sees nothing
left to fill.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..constants import UNASSIGNED_VENDOR
from ..errors import MalformedRecord
from ..models.project import Project
from ..models.rating import Rating
from ..utils.id_utils import natural_key
from .normalizer import RatingNormalizer

logger = logging.getLogger(__name__)


@dataclass
class Snapshot:
    """Canonical view of one vendor partition (or of everything, vendor_id=None)."""

    vendor_id: Optional[str]
    projects: dict[str, Project] = field(default_factory=dict)
    ratings: list[Rating] = field(default_factory=list)
    known_project_ids: set[str] = field(default_factory=set)
    unpersisted_project_ids: set[str] = field(default_factory=set)
    unpersisted_rating_ids: set[str] = field(default_factory=set)
    malformed: list[MalformedRecord] = field(default_factory=list)

    @property
    def unreadable_project_ids(self) -> set[str]:
        """Projects with at least one rating that could not be normalized."""
        return {e.details["project_id"] for e in self.malformed if e.details.get("project_id")}


def partition_key(vendor_id: Optional[str]) -> str:
    """Partition a project's vendor falls in (unassigned projects share one)."""
    return vendor_id or UNASSIGNED_VENDOR


class SnapshotLoader:
    """
    Loads snapshots through the repository contracts.

    Args:
        project_repo: Project source (get_all, get_ids)
        rating_repo: Rating source (get_all)
        consolidated_repo: Consolidated source (get_all, get_project_ids), optional
        normalizer: RatingNormalizer (defaults to the standard sentinel)
    """

    def __init__(self, project_repo, rating_repo, consolidated_repo=None, normalizer: Optional[RatingNormalizer] = None):
        self.project_repo = project_repo
        self.rating_repo = rating_repo
        self.consolidated_repo = consolidated_repo
        self.normalizer = normalizer or RatingNormalizer()

    def load(self, partition: Optional[str] = None) -> Snapshot:
        """
        Load a partition.

        Args:
            partition: Vendor id, UNASSIGNED_VENDOR for projects with no vendor,
                or None for every vendor

        Returns:
            Snapshot
        """
        snapshot = Snapshot(vendor_id=partition)

        # Paired shape
        projects = self.normalizer.normalize_projects(self._fetch(self.project_repo, partition))
        snapshot.malformed.extend(projects.malformed)
        for project in projects.records:
            snapshot.projects[project.project_id] = project

        stored = self.normalizer.normalize_ratings(self._fetch(self.rating_repo, partition))
        snapshot.malformed.extend(stored.malformed)

        paired_ids = set(self.project_repo.get_ids())
        snapshot.known_project_ids = set(paired_ids)
        if self.consolidated_repo is not None:
            snapshot.known_project_ids |= set(self.consolidated_repo.get_project_ids())

        consolidated_records = []
        if self.consolidated_repo is not None:
            consolidated = self.normalizer.normalize_consolidated_rows(
                self._fetch(self.consolidated_repo, partition)
            )
            snapshot.malformed.extend(consolidated.malformed)
            consolidated_records = consolidated.records

        # Consolidated projects missing from the projects table
        for record in consolidated_records:
            project = record.project
            if project.project_id not in paired_ids and project.project_id not in snapshot.projects:
                snapshot.projects[project.project_id] = project
                snapshot.unpersisted_project_ids.add(project.project_id)

        ratings = [r for r in stored.records if self._in_partition(r, partition, snapshot)]
        rated_projects = {r.project_id for r in ratings}

        # Consolidated ratings for projects with no stored rating
        if consolidated_records:
            gap_ratings: dict[str, Rating] = {}
            for record in consolidated_records:
                rating = record.rating
                if rating is None or rating.project_id in rated_projects:
                    continue
                if not self._in_partition(rating, partition, snapshot):
                    continue
                if rating.rating_id in gap_ratings:
                    logger.warning(f"Consolidated rating {rating.rating_id} appears more than once; keeping first")
                    continue
                gap_ratings[rating.rating_id] = rating
            ratings.extend(gap_ratings.values())
            snapshot.unpersisted_rating_ids = set(gap_ratings)

        snapshot.ratings = sorted(ratings, key=lambda r: natural_key(r.rating_id))

        logger.debug(
            f"Loaded snapshot {partition or 'all'}: {len(snapshot.projects)} projects, "
            f"{len(snapshot.ratings)} ratings, {len(snapshot.malformed)} malformed"
        )
        return snapshot

    def discover_partitions(self) -> list[str]:
        """List every partition with projects or orphaned ratings, sorted."""
        snapshot = self.load(None)
        partitions = {partition_key(p.vendor_id) for p in snapshot.projects.values()}
        for rating in snapshot.ratings:
            if rating.project_id not in snapshot.known_project_ids:
                partitions.add(partition_key(rating.vendor_id))
        return sorted(partitions, key=natural_key)

    @staticmethod
    def _fetch(repo, partition: Optional[str]) -> list[dict]:
        if partition is None:
            return repo.get_all()
        if partition == UNASSIGNED_VENDOR:
            return repo.get_all(unassigned=True)
        return repo.get_all(vendor_id=partition)

    @staticmethod
    def _in_partition(rating: Rating, partition: Optional[str], snapshot: Snapshot) -> bool:
        """A rating belongs to its project's partition; an orphan to its own vendor's."""
        if partition is None:
            return True
        if rating.project_id in snapshot.projects:
            return True
        if rating.project_id in snapshot.known_project_ids:
            return False
        return partition_key(rating.vendor_id) == partition
