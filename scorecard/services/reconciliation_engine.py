"""
Reconciliation Engine - Plans repairs that bring one vendor partition back to a consistent state.

Reads from:
- A Snapshot (canonical projects and ratings from both storage shapes)

Produces:
- ReconciliationPlan with every repair the runner should apply, and every
  defect it must only report

Planning is pure: nothing here touches storage, so planning the repaired
state a second time yields an empty plan.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from ..constants import DEFAULT_IMPORT_WINDOW_SECONDS
from ..errors import AmbiguousDuplicate, InconsistentState, MalformedRecord, OrphanedReference
from ..models.project import Project, ProjectStatus
from ..models.rating import Rating
from ..models.report import RelinkSuggestion
from ..utils.id_utils import loose_id, natural_key
from .lifecycle import expected_status
from .rating_calculator import overall_drifted
from .snapshot import Snapshot

logger = logging.getLogger(__name__)

# Ratings with no timestamp sort after every dated one
_UNDATED = datetime.max.replace(tzinfo=timezone.utc)


@dataclass
class DuplicateResolution:
    """One project's duplicate group: the keeper and the ratings to drop."""

    project_id: str
    kept_id: str
    deleted_ids: list[str] = field(default_factory=list)  # Persisted losers to delete
    skipped_ids: list[str] = field(default_factory=list)  # Unpersisted losers (never backfilled)
    batch_ids: list[str] = field(default_factory=list)  # Deleted losers from the first import batch


@dataclass
class StatusChange:
    """A project status write. kind is "transition" (forward) or "correction" (backward)."""

    project_id: str
    vendor_id: Optional[str]
    before: ProjectStatus
    after: ProjectStatus
    kind: str
    persisted: bool = True

    @property
    def is_correction(self) -> bool:
        return self.kind == "correction"


@dataclass
class OverallRewrite:
    """A stored overall that drifted from the calculated value."""

    rating_id: str
    project_id: str
    stored: Optional[float]
    calculated: float


@dataclass
class ReconciliationPlan:
    """Everything one pass over a vendor partition found and intends to change."""

    vendor_id: Optional[str]
    as_of: datetime
    orphans: list[OrphanedReference] = field(default_factory=list)
    relink_suggestions: list[RelinkSuggestion] = field(default_factory=list)
    resolutions: list[DuplicateResolution] = field(default_factory=list)
    ambiguous: list[AmbiguousDuplicate] = field(default_factory=list)
    status_changes: list[StatusChange] = field(default_factory=list)
    corrections: list[InconsistentState] = field(default_factory=list)
    overall_rewrites: list[OverallRewrite] = field(default_factory=list)
    backfill_projects: list[Project] = field(default_factory=list)
    backfill_ratings: list[Rating] = field(default_factory=list)
    malformed: list[MalformedRecord] = field(default_factory=list)
    # Post-repair view used for aggregation
    projects: dict[str, Project] = field(default_factory=dict)
    effective_ratings: dict[str, Rating] = field(default_factory=dict)

    @property
    def deleted_rating_ids(self) -> list[str]:
        return [rid for resolution in self.resolutions for rid in resolution.deleted_ids]

    @property
    def write_count(self) -> int:
        """Number of storage writes the plan implies."""
        status_writes = sum(1 for change in self.status_changes if change.persisted)
        return (
            len(self.deleted_rating_ids)
            + status_writes
            + len(self.overall_rewrites)
            + len(self.backfill_projects)
            + len(self.backfill_ratings)
        )

    @property
    def is_empty(self) -> bool:
        return self.write_count == 0


def _created_key(rating: Rating) -> datetime:
    return rating.created_at or _UNDATED


def retention_order(group: list[Rating]) -> list[Rating]:
    """
    Order a project's ratings by retention preference, keeper first.

    The earliest-created rating wins. Ratings with equal timestamps go to the
    most complete sub-rating set, then to the lowest identifier in natural
    order.

    Args:
        group: Ratings for one project (non-empty)

    Returns:
        The same ratings, keeper first
    """
    return sorted(group, key=lambda r: (_created_key(r), -r.present_count, natural_key(r.rating_id)))


def import_batch_ids(group: list[Rating], import_window_seconds: int = DEFAULT_IMPORT_WINDOW_SECONDS) -> set[str]:
    """
    Ids of imported ratings that belong to the first import batch of a group.

    A batch starts at the earliest dated imported rating and spans the import
    window. Live and undated ratings are never part of a batch.
    """
    imported = [r for r in group if r.is_imported and r.created_at is not None]
    if not imported:
        return set()
    start = min(r.created_at for r in imported)
    window = timedelta(seconds=import_window_seconds)
    return {r.rating_id for r in imported if r.created_at - start <= window}


class ReconciliationEngine:
    """
    Detects defects in a vendor snapshot and plans their repair.

    Steps, in order:
    1. Orphans (rating's project does not exist anywhere)
    2. Duplicate ratings per project (retain per retention_order)
    3. Overall drift and consolidated-rating backfill
    4. Consolidated-project backfill
    5. Lifecycle transitions and status corrections

    Projects that are ambiguous, or that have a rating the normalizer
    rejected, get no writes at all.
    """

    def __init__(self, import_window_seconds: int = DEFAULT_IMPORT_WINDOW_SECONDS):
        self.import_window_seconds = import_window_seconds

    def plan(self, snapshot: Snapshot, as_of: Optional[datetime] = None) -> ReconciliationPlan:
        """
        Build the repair plan for one snapshot.

        Args:
            snapshot: Canonical view of one vendor partition
            as_of: Clock for deadline checks (defaults to now, UTC)

        Returns:
            ReconciliationPlan
        """
        as_of = as_of or datetime.now(timezone.utc)
        plan = ReconciliationPlan(vendor_id=snapshot.vendor_id, as_of=as_of, malformed=list(snapshot.malformed))

        # 1. Partition ratings into per-project groups and orphans
        groups = self._group_ratings(snapshot, plan)

        # 2. Resolve duplicates; projects with an unreadable rating are held back
        untouched = self._held_back(snapshot)
        for project_id in sorted(groups, key=natural_key):
            group = groups[project_id]
            keeper = None if project_id in untouched else self._resolve_group(project_id, group, snapshot, plan)
            if keeper is None:
                untouched.add(project_id)
                keeper = retention_order(group)[0]
            plan.effective_ratings[project_id] = keeper

        # 3. Overall drift on persisted ratings; backfill unpersisted ones
        for project_id, rating in plan.effective_ratings.items():
            if project_id in untouched:
                continue
            calculated = rating.overall
            if rating.rating_id in snapshot.unpersisted_rating_ids:
                plan.backfill_ratings.append(rating.model_copy(update={"stored_overall": calculated}))
            elif overall_drifted(rating.stored_overall, calculated):
                plan.overall_rewrites.append(
                    OverallRewrite(rating.rating_id, project_id, rating.stored_overall, calculated)
                )

        # 4 + 5. Lifecycle, then project backfill with the final status
        for project_id in sorted(snapshot.projects, key=natural_key):
            project = snapshot.projects[project_id]
            persisted = project_id not in snapshot.unpersisted_project_ids
            if project_id not in untouched:
                project = self._plan_status(project, plan.effective_ratings.get(project_id), persisted, plan)
            plan.projects[project_id] = project
            if not persisted:
                plan.backfill_projects.append(project)

        logger.info(
            f"Planned {snapshot.vendor_id}: {len(plan.orphans)} orphans, "
            f"{len(plan.deleted_rating_ids)} duplicate deletions, {len(plan.ambiguous)} ambiguous, "
            f"{len(plan.status_changes)} status changes, {len(plan.overall_rewrites)} overall rewrites, "
            f"{len(plan.backfill_projects) + len(plan.backfill_ratings)} backfills"
        )
        return plan

    @staticmethod
    def _held_back(snapshot: Snapshot) -> set[str]:
        held = snapshot.unreadable_project_ids & set(snapshot.projects)
        for project_id in sorted(held, key=natural_key):
            logger.warning(f"Leaving project {project_id} untouched: it has a rating that could not be read")
        return held

    def _group_ratings(self, snapshot: Snapshot, plan: ReconciliationPlan) -> dict[str, list[Rating]]:
        groups: dict[str, list[Rating]] = defaultdict(list)
        loose_index = self._loose_index(snapshot.known_project_ids)

        for rating in sorted(snapshot.ratings, key=lambda r: natural_key(r.rating_id)):
            if rating.project_id in snapshot.projects:
                groups[rating.project_id].append(rating)
                continue
            if rating.project_id in snapshot.known_project_ids:
                # Project lives in another vendor partition; that unit owns it
                continue
            orphan = OrphanedReference(rating.rating_id, rating.project_id, vendor_id=rating.vendor_id)
            plan.orphans.append(orphan)
            logger.warning(orphan.message)

            candidate = loose_index.get(loose_id(rating.project_id))
            if candidate:
                plan.relink_suggestions.append(
                    RelinkSuggestion(
                        rating_id=rating.rating_id,
                        referenced_project_id=rating.project_id,
                        candidate_project_id=candidate,
                    )
                )
        return groups

    @staticmethod
    def _loose_index(project_ids: set[str]) -> dict[str, str]:
        """Loose id -> project id, skipping loose ids shared by several projects."""
        index: dict[str, Optional[str]] = {}
        for project_id in sorted(project_ids, key=natural_key):
            key = loose_id(project_id)
            if key is None:
                continue
            index[key] = None if key in index else project_id
        return {k: v for k, v in index.items() if v}

    def _resolve_group(
        self, project_id: str, group: list[Rating], snapshot: Snapshot, plan: ReconciliationPlan
    ) -> Optional[Rating]:
        """Plan a duplicate group's resolution. Returns None when it is ambiguous."""
        if len(group) == 1:
            return group[0]

        rating_ids = [r.rating_id for r in group]
        ordered = retention_order(group)
        keeper, losers = ordered[0], ordered[1:]

        reason = None
        if len(set(rating_ids)) != len(rating_ids):
            reason = "two records share a rating id"
        else:
            live_losers = [r.rating_id for r in losers if not r.is_imported]
            if live_losers:
                reason = f"resolution would delete live rating(s) {', '.join(live_losers)}"

        if reason:
            ambiguous = AmbiguousDuplicate(project_id, sorted(rating_ids, key=natural_key), reason)
            plan.ambiguous.append(ambiguous)
            logger.warning(ambiguous.message)
            return None

        resolution = DuplicateResolution(project_id=project_id, kept_id=keeper.rating_id)
        batch = import_batch_ids(group, self.import_window_seconds)
        for loser in losers:
            if loser.rating_id in snapshot.unpersisted_rating_ids:
                resolution.skipped_ids.append(loser.rating_id)
            else:
                resolution.deleted_ids.append(loser.rating_id)
                if loser.rating_id in batch:
                    resolution.batch_ids.append(loser.rating_id)
        plan.resolutions.append(resolution)
        return keeper

    def _plan_status(
        self, project: Project, rating: Optional[Rating], persisted: bool, plan: ReconciliationPlan
    ) -> Project:
        target = expected_status(project, rating, plan.as_of)
        if target == project.status:
            return project

        kind = "transition" if target.rank > project.status.rank else "correction"
        plan.status_changes.append(
            StatusChange(
                project_id=project.project_id,
                vendor_id=project.vendor_id,
                before=project.status,
                after=target,
                kind=kind,
                persisted=persisted,
            )
        )
        if kind == "correction":
            plan.corrections.append(
                InconsistentState(
                    f"Project {project.project_id} is {project.status.value} without a Complete rating; "
                    f"corrected to {target.value}",
                    subject_id=project.project_id,
                    before=project.status.value,
                    after=target.value,
                )
            )
        return project.model_copy(update={"status": target})
