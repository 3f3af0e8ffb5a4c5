"""
Scorecard Runner - Executes reconciliation and recompute passes.

Each vendor partition is one committed unit:
    1. acquire the vendor's lock
    2. open a transaction and load a fresh snapshot
    3. plan in memory
    4. write the deltas and the vendor summary, then commit

Disjoint vendors run in parallel on a WorkerPool. A StorageFailure rolls back
only the failing vendor's unit; units that already committed stay committed,
and the raised error carries the partial report.
"""

import logging
import threading
import uuid
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, ContextManager, Iterator, Optional

from ..config import EngineSettings, get_settings
from ..constants import UNASSIGNED_VENDOR
from ..errors import StorageFailure
from ..models.project import ProjectStatus
from ..models.report import (
    AuditEvent,
    DefectIssue,
    DefectType,
    PassMode,
    ReconciliationReport,
    VendorOutcome,
)
from ..models.vendor_summary import VendorPerformanceSummary
from ..utils.id_utils import natural_key
from ..utils.worker_pool import WorkerPool
from .lifecycle import close
from .normalizer import RatingNormalizer
from .performance_tiers import TierConfig
from .reconciliation_engine import ReconciliationEngine, ReconciliationPlan
from .snapshot import Snapshot, SnapshotLoader, partition_key
from .vendor_aggregator import VendorAggregator

logger = logging.getLogger(__name__)


@dataclass
class UnitResult:
    """Output of one vendor unit, merged into the pass report on the calling thread."""

    partition: str
    plan: Optional[ReconciliationPlan] = None
    snapshot: Optional[Snapshot] = None
    summary: Optional[VendorPerformanceSummary] = None
    issues: list[DefectIssue] = field(default_factory=list)


def _new_run_id(mode: PassMode, started: datetime) -> str:
    return f"{mode.value}-{started:%Y%m%dT%H%M%S}-{uuid.uuid4().hex[:8]}"


class ScorecardRunner:
    """
    Trigger surface for reconciliation, summary recompute and audited purges.

    Args:
        project_repo: Project source
        rating_repo: Rating source
        summary_repo: Vendor summary sink
        consolidated_repo: Consolidated source (optional)
        review_queue: Operator review queue (optional)
        transaction: Factory returning an all-or-nothing context manager
            (defaults to db.client.transaction)
        settings: Engine settings (defaults to environment)
        tier_config: Tier thresholds (defaults to scorecard/performance_tiers.yaml)
    """

    # Shared across runner instances so two passes in one process serialize per vendor
    _locks_guard = threading.Lock()
    _vendor_locks: dict[str, threading.Lock] = {}

    def __init__(
        self,
        project_repo,
        rating_repo,
        summary_repo,
        consolidated_repo=None,
        review_queue=None,
        transaction: Optional[Callable[[], ContextManager]] = None,
        settings: Optional[EngineSettings] = None,
        tier_config: Optional[TierConfig] = None,
    ):
        if transaction is None:
            from ..db.client import transaction

        self.settings = settings or get_settings()
        self.project_repo = project_repo
        self.rating_repo = rating_repo
        self.summary_repo = summary_repo
        self.consolidated_repo = consolidated_repo
        self.review_queue = review_queue
        self.transaction = transaction
        self.loader = SnapshotLoader(
            project_repo,
            rating_repo,
            consolidated_repo,
            RatingNormalizer(self.settings.import_sentinel),
        )
        self.engine = ReconciliationEngine(self.settings.import_window_seconds)
        self.aggregator = VendorAggregator(tier_config)

    # ─── Locks ────────────────────────────────────────────────────────────

    @classmethod
    def _lock_for(cls, partition: str) -> threading.Lock:
        with cls._locks_guard:
            if partition not in cls._vendor_locks:
                cls._vendor_locks[partition] = threading.Lock()
            return cls._vendor_locks[partition]

    @contextmanager
    def _vendor_locks_held(self, partitions: list[str]) -> Iterator[None]:
        """Hold several vendor locks, acquired in a fixed order."""
        with ExitStack() as stack:
            for partition in sorted(set(partitions), key=natural_key):
                stack.enter_context(self._lock_for(partition))
            yield

    # ─── Passes ───────────────────────────────────────────────────────────

    def run_reconciliation(
        self,
        vendor_ids: Optional[list[str]] = None,
        as_of: Optional[datetime] = None,
        dry_run: bool = False,
    ) -> ReconciliationReport:
        """
        Reconcile vendor partitions and refresh their summaries.

        Args:
            vendor_ids: Partitions to process (default: every vendor, plus
                the unassigned partition when it has projects)
            as_of: Clock for deadline checks (default: now, UTC)
            dry_run: Plan and report without writing

        Returns:
            ReconciliationReport

        Raises:
            StorageFailure: a vendor unit failed; err.report holds the partial report
        """
        as_of = as_of or datetime.now(timezone.utc)
        report = ReconciliationReport(
            run_id=_new_run_id(PassMode.RECONCILE, as_of),
            mode=PassMode.RECONCILE,
            as_of=as_of,
            dry_run=dry_run,
        )
        partitions = list(vendor_ids) if vendor_ids else self.loader.discover_partitions()
        logger.info(f"Reconciling {len(partitions)} vendor partitions (dry_run={dry_run})")

        pool = WorkerPool(self.settings.max_workers, logger=logger)
        results = pool.map(lambda p: self._reconcile_unit(p, as_of, dry_run), partitions, desc="Reconcile")
        return self._finish(report, results, self._merge_reconcile)

    def recompute_vendor_summaries(self, vendor_ids: Optional[list[str]] = None) -> ReconciliationReport:
        """
        Rebuild vendor summaries from the current population without repairing data.

        Orphans are excluded and duplicates counted once, exactly as in a
        reconciliation pass.

        Raises:
            StorageFailure: a vendor unit failed; err.report holds the partial report
        """
        now = datetime.now(timezone.utc)
        report = ReconciliationReport(run_id=_new_run_id(PassMode.RECOMPUTE, now), mode=PassMode.RECOMPUTE, as_of=now)
        partitions = list(vendor_ids) if vendor_ids else self.loader.discover_partitions()
        partitions = [p for p in partitions if p != UNASSIGNED_VENDOR]
        logger.info(f"Recomputing summaries for {len(partitions)} vendors")

        pool = WorkerPool(self.settings.max_workers, logger=logger)
        results = pool.map(self._recompute_unit, partitions, desc="Recompute")
        return self._finish(report, results, self._merge_recompute)

    # ─── Units (worker threads) ───────────────────────────────────────────

    def _reconcile_unit(self, partition: str, as_of: datetime, dry_run: bool) -> UnitResult:
        with self._vendor_locks_held([partition]), self.transaction():
            snapshot = self.loader.load(partition)
            plan = self.engine.plan(snapshot, as_of)
            result = UnitResult(partition=partition, plan=plan, issues=self._issues_for(plan))
            if partition != UNASSIGNED_VENDOR:
                result.summary = self.aggregator.summarize(
                    partition, plan.projects.values(), plan.effective_ratings.values()
                )
            if dry_run:
                return result

            self._apply(plan)
            if self.review_queue is not None:
                self.review_queue.upsert_batch([issue for issue in result.issues if issue.flagged_for_review])
            if result.summary is not None:
                self.summary_repo.upsert(result.summary)
        return result

    def _recompute_unit(self, partition: str) -> UnitResult:
        with self._vendor_locks_held([partition]), self.transaction():
            snapshot = self.loader.load(partition)
            summary = self.aggregator.summarize(partition, snapshot.projects.values(), snapshot.ratings)
            self.summary_repo.upsert(summary)
        return UnitResult(partition=partition, snapshot=snapshot, summary=summary)

    def _apply(self, plan: ReconciliationPlan) -> None:
        """Write a plan's repairs. Runs inside the vendor's transaction."""
        for resolution in plan.resolutions:
            if resolution.deleted_ids:
                self.rating_repo.delete(resolution.deleted_ids)
                for rating_id in resolution.deleted_ids:
                    origin = "same import batch" if rating_id in resolution.batch_ids else "repeat record"
                    logger.info(
                        f"Deleted duplicate rating {rating_id} "
                        f"(project {resolution.project_id}, kept {resolution.kept_id}, {origin})"
                    )

        for rewrite in plan.overall_rewrites:
            self.rating_repo.update_overall(rewrite.rating_id, rewrite.calculated)
            logger.info(f"Rewrote overall for {rewrite.rating_id}: {rewrite.stored} -> {rewrite.calculated}")

        for project in plan.backfill_projects:
            self.project_repo.upsert(project)
            logger.info(f"Backfilled project {project.project_id} from consolidated record")

        for rating in plan.backfill_ratings:
            self.rating_repo.upsert(rating)
            logger.info(f"Backfilled rating {rating.rating_id} for project {rating.project_id}")

        for change in plan.status_changes:
            if not change.persisted:
                continue
            self.project_repo.update_status(change.project_id, change.after)
            message = f"{change.project_id}: {change.before.value} -> {change.after.value}"
            if change.is_correction:
                logger.warning(f"Corrected inconsistent status {message}")
            else:
                logger.info(f"Lifecycle transition {message}")

    @staticmethod
    def _issues_for(plan: ReconciliationPlan) -> list[DefectIssue]:
        vendor_id = plan.vendor_id
        # A malformed rating holds its project back until an operator fixes it
        issues = [DefectIssue.from_error(e, vendor_id, flagged="project_id" in e.details) for e in plan.malformed]
        issues += [DefectIssue.from_error(e, vendor_id, flagged=True) for e in plan.orphans]
        issues += [DefectIssue.from_error(e, vendor_id, flagged=True) for e in plan.ambiguous]
        issues += [DefectIssue.from_error(e, vendor_id) for e in plan.corrections]
        return issues

    # ─── Report merging (calling thread) ──────────────────────────────────

    def _finish(self, report: ReconciliationReport, results: list, merge) -> ReconciliationReport:
        failures: list[Exception] = []
        for success, partition, payload in results:
            if success:
                merge(report, payload)
                continue
            failures.append(payload)
            report.vendors.append(VendorOutcome(vendor_id=partition, success=False, error=str(payload)))

        report.finished_at = datetime.now(timezone.utc)
        logger.info(
            f"Pass {report.run_id} finished: {len(report.vendors) - len(failures)} vendors ok, "
            f"{len(failures)} failed, {report.write_count} writes"
        )
        if failures:
            error = next((e for e in failures if isinstance(e, StorageFailure)), failures[0])
            if isinstance(error, StorageFailure):
                error.report = report
            raise error
        return report

    def _merge_reconcile(self, report: ReconciliationReport, result: UnitResult) -> None:
        plan = result.plan
        fixed = not report.dry_run
        vendor_id = result.partition

        report.vendors.append(
            VendorOutcome(vendor_id=vendor_id, committed=fixed, writes=plan.write_count if fixed else 0)
        )
        report.issues.extend(result.issues)
        report.relink_suggestions.extend(plan.relink_suggestions)
        if result.summary is not None:
            report.summaries.append(result.summary)

        for error in plan.malformed:
            report.defect(DefectType.MALFORMED_RECORD).add(error.subject_id or "<unidentified>", fixed=False)
        for orphan in plan.orphans:
            report.defect(DefectType.ORPHANED_REFERENCE).add(orphan.rating_id, fixed=False)
        for ambiguous in plan.ambiguous:
            report.defect(DefectType.AMBIGUOUS_DUPLICATE).add(ambiguous.project_id, fixed=False)

        def audit(action: str, subject_id: str, before=None, after=None) -> None:
            report.audit.append(
                AuditEvent(action=action, subject_id=subject_id, vendor_id=vendor_id, before=before, after=after)
            )

        for resolution in plan.resolutions:
            for rating_id in resolution.deleted_ids + resolution.skipped_ids:
                report.defect(DefectType.DUPLICATE_RATING).add(rating_id, fixed=fixed)
            for rating_id in resolution.deleted_ids:
                audit("delete_duplicate", rating_id, before=resolution.project_id, after=resolution.kept_id)

        for change in plan.status_changes:
            category = DefectType.INCONSISTENT_STATE if change.is_correction else DefectType.LIFECYCLE_TRANSITION
            report.defect(category).add(change.project_id, fixed=fixed)
            action = "correct_status" if change.is_correction else "advance_status"
            audit(action, change.project_id, before=change.before.value, after=change.after.value)

        for rewrite in plan.overall_rewrites:
            report.defect(DefectType.OVERALL_DRIFT).add(rewrite.rating_id, fixed=fixed)
            audit("rewrite_overall", rewrite.rating_id, before=rewrite.stored, after=rewrite.calculated)

        for project in plan.backfill_projects:
            report.defect(DefectType.BACKFILL).add(project.project_id, fixed=fixed)
            audit("backfill_project", project.project_id, after=project.status.value)
        for rating in plan.backfill_ratings:
            report.defect(DefectType.BACKFILL).add(rating.rating_id, fixed=fixed)
            audit("backfill_rating", rating.rating_id, after=rating.stored_overall)

    def _merge_recompute(self, report: ReconciliationReport, result: UnitResult) -> None:
        snapshot = result.snapshot
        report.vendors.append(VendorOutcome(vendor_id=result.partition, committed=True))
        report.summaries.append(result.summary)
        for error in snapshot.malformed:
            report.defect(DefectType.MALFORMED_RECORD).add(error.subject_id or "<unidentified>", fixed=False)
        for rating in snapshot.ratings:
            if rating.project_id not in snapshot.known_project_ids:
                report.defect(DefectType.ORPHANED_REFERENCE).add(rating.rating_id, fixed=False)

    # ─── Administrative purges ────────────────────────────────────────────

    def find_orphans(self) -> list:
        """Persisted ratings whose project exists in neither storage shape."""
        snapshot = self.loader.load(None)
        return [
            rating
            for rating in snapshot.ratings
            if rating.project_id not in snapshot.known_project_ids
            and rating.rating_id not in snapshot.unpersisted_rating_ids
        ]

    def purge_orphans(self, confirm: bool, rating_ids: Optional[list[str]] = None) -> list[str]:
        """
        Delete orphaned ratings.

        Args:
            confirm: Must be True to delete; otherwise the candidates are only returned
            rating_ids: Restrict the purge to these ratings (non-orphans are skipped)

        Returns:
            Ids deleted (or, without confirm, the ids that would be deleted)
        """
        candidates = self.find_orphans()
        if rating_ids is not None:
            wanted = set(rating_ids)
            for rating_id in sorted(wanted - {r.rating_id for r in candidates}, key=natural_key):
                logger.warning(f"Not purging {rating_id}: not an orphaned rating")
            candidates = [r for r in candidates if r.rating_id in wanted]

        if not confirm:
            ids = sorted((r.rating_id for r in candidates), key=natural_key)
            logger.info(f"Orphan purge preview: {len(ids)} ratings (pass confirm to delete)")
            return ids

        partitions = [partition_key(r.vendor_id) for r in candidates]
        with self._vendor_locks_held(partitions), self.transaction():
            # Re-verify inside the transaction: a project may have appeared meanwhile
            current = {r.rating_id for r in self.find_orphans()}
            ids = sorted((r.rating_id for r in candidates if r.rating_id in current), key=natural_key)
            self.rating_repo.delete(ids)
            if self.review_queue is not None:
                self.review_queue.resolve([f"{DefectType.ORPHANED_REFERENCE.value}:{rid}" for rid in ids])

        for rating_id in ids:
            logger.info(f"Purged orphaned rating {rating_id}")
        return ids

    def purge_project(self, project_id: str, confirm: bool) -> dict:
        """
        Delete a project and all of its ratings in one transaction.

        Returns:
            {"project_id", "vendor_id", "ratings", "deleted"}

        Raises:
            ValueError: unknown project, or one the read-only consolidated
                table would restore on the next pass
        """
        row = self.project_repo.get(project_id)
        if row is None:
            raise ValueError(f"Unknown project {project_id}")
        if self.consolidated_repo is not None and project_id in set(self.consolidated_repo.get_project_ids()):
            raise ValueError(
                f"Project {project_id} also exists in the consolidated table and would be restored on the next pass"
            )

        project = self.loader.normalizer.normalize_project(row)
        rating_count = len(self.rating_repo.get_for_project(project_id))
        result = {"project_id": project_id, "vendor_id": project.vendor_id, "ratings": rating_count, "deleted": False}
        if not confirm:
            logger.info(f"Project purge preview: {project_id} with {rating_count} ratings (pass confirm to delete)")
            return result

        partition = partition_key(project.vendor_id)
        with self._vendor_locks_held([partition]), self.transaction():
            result["ratings"] = self.rating_repo.delete_for_project(project_id)
            self.project_repo.delete([project_id])
            if partition != UNASSIGNED_VENDOR:
                snapshot = self.loader.load(partition)
                summary = self.aggregator.summarize(partition, snapshot.projects.values(), snapshot.ratings)
                self.summary_repo.upsert(summary)
        result["deleted"] = True
        logger.info(f"Purged project {project_id} and {result['ratings']} ratings")
        return result

    def close_project(self, project_id: str) -> ProjectStatus:
        """Explicit close (active -> completed). Returns the resulting status."""
        row = self.project_repo.get(project_id)
        if row is None:
            raise ValueError(f"Unknown project {project_id}")
        project = self.loader.normalizer.normalize_project(row)
        with self._vendor_locks_held([partition_key(project.vendor_id)]), self.transaction():
            closed = close(project)
            if closed.status != project.status:
                self.project_repo.update_status(project_id, closed.status)
                logger.info(f"Closed project {project_id}")
        return closed.status
