"""Tests for reconciliation / recompute passes and administrative purges.

Runs against the in-memory store: every vendor unit opens a transaction on it,
and a failing unit restores the store to its pre-unit state.
"""

import pytest

from factories import AS_OF, IMPORTED, consolidated_row, project_row, rating_row
from scorecard.constants import UNASSIGNED_VENDOR
from scorecard.errors import StorageFailure
from scorecard.models.report import DefectType, PassMode

# ─── Helpers ──────────────────────────────────────────────────────────────────


def _seed_vendor(store, vendor_id="VEN-1", prefix="1"):
    """One project rated twice by the same import batch, plus an orphaned rating.

    Expected repairs: delete the 2-sub-rating duplicate, write the missing
    overall of the keeper, archive the project.
    """
    project_id = f"PRJ-{prefix}"
    store.projects[project_id] = project_row(project_id, vendor_id=vendor_id)
    store.ratings[f"RAT-{prefix}1"] = rating_row(
        f"RAT-{prefix}1", project_id, 8, 9, None, rater_email=IMPORTED, vendor_id=vendor_id
    )
    store.ratings[f"RAT-{prefix}2"] = rating_row(
        f"RAT-{prefix}2", project_id, 8, 9, 7, rater_email=IMPORTED, vendor_id=vendor_id
    )
    store.ratings[f"RAT-{prefix}9"] = rating_row(f"RAT-{prefix}9", "PRJ-9999", 10, 10, 10, vendor_id=vendor_id)


# ─── Reconciliation ───────────────────────────────────────────────────────────


class TestReconcile:
    def test_repairs_and_summary(self, store, runner):
        _seed_vendor(store)
        report = runner.run_reconciliation(as_of=AS_OF)

        assert report.mode == PassMode.RECONCILE
        assert [v.vendor_id for v in report.vendors] == ["VEN-1"]
        assert report.count(DefectType.DUPLICATE_RATING, "fixed") == 1
        assert report.count(DefectType.OVERALL_DRIFT, "fixed") == 1
        assert report.count(DefectType.LIFECYCLE_TRANSITION, "fixed") == 1
        assert report.count(DefectType.ORPHANED_REFERENCE, "unresolved") == 1
        assert report.defects[DefectType.ORPHANED_REFERENCE].identifiers == ["RAT-19"]
        assert report.write_count == 3

        assert sorted(store.ratings) == ["RAT-12", "RAT-19"]
        assert store.ratings["RAT-12"]["overall_rating_calc"] == 8.0
        assert store.projects["PRJ-1"]["status"] == "archived"

        summary = store.summaries["VEN-1"]
        assert summary.rated_projects == 1
        assert summary.avg_overall == 8.0
        assert summary.performance_tier == "top"

    def test_orphan_flagged_for_review(self, store, runner):
        _seed_vendor(store)
        runner.run_reconciliation(as_of=AS_OF)
        assert list(store.queue) == ["orphaned_reference:RAT-19"]
        assert store.queue["orphaned_reference:RAT-19"].details["project_id"] == "PRJ-9999"

    def test_second_pass_is_a_no_op(self, store, runner):
        """Reconciling the repaired state → zero writes and an identical summary."""
        _seed_vendor(store)
        first = runner.run_reconciliation(as_of=AS_OF)
        second = runner.run_reconciliation(as_of=AS_OF)

        assert second.write_count == 0
        assert second.count(DefectType.DUPLICATE_RATING) == 0
        assert second.count(DefectType.ORPHANED_REFERENCE) == 1
        assert second.audit == []
        assert first.summaries[0].model_dump_json() == second.summaries[0].model_dump_json()

    def test_dry_run_writes_nothing(self, store, runner):
        _seed_vendor(store)
        before = {k: dict(v) for k, v in store.ratings.items()}
        report = runner.run_reconciliation(as_of=AS_OF, dry_run=True)

        assert report.dry_run
        assert report.write_count == 0
        assert report.count(DefectType.DUPLICATE_RATING, "unresolved") == 1
        assert report.summaries[0].avg_overall == 8.0
        assert store.ratings == before
        assert store.summaries == {}
        assert store.queue == {}

    def test_selected_vendors_only(self, store, runner):
        _seed_vendor(store, "VEN-1", "1")
        _seed_vendor(store, "VEN-2", "2")
        runner.run_reconciliation(vendor_ids=["VEN-2"], as_of=AS_OF)
        assert "RAT-11" in store.ratings
        assert "RAT-21" not in store.ratings
        assert list(store.summaries) == ["VEN-2"]

    def test_ambiguous_duplicate_left_for_operator(self, store, runner):
        store.projects["PRJ-1"] = project_row("PRJ-1")
        store.ratings["RAT-1"] = rating_row("RAT-1", "PRJ-1", 5, 5, 5)
        store.ratings["RAT-2"] = rating_row("RAT-2", "PRJ-1", 9, 9, 9, created="2024-03-01T00:00:00Z")

        report = runner.run_reconciliation(as_of=AS_OF)

        assert report.count(DefectType.AMBIGUOUS_DUPLICATE) == 1
        assert sorted(store.ratings) == ["RAT-1", "RAT-2"]
        assert store.projects["PRJ-1"]["status"] == "active"
        assert "ambiguous_duplicate:PRJ-1" in store.queue
        # Counted once, through the keeper
        assert store.summaries["VEN-1"].rated_projects == 1
        assert store.summaries["VEN-1"].avg_overall == 5.0

    def test_inconsistent_archived_project_corrected(self, store, runner):
        store.projects["PRJ-1"] = project_row("PRJ-1", status="archived")
        store.ratings["RAT-1"] = rating_row("RAT-1", "PRJ-1", 8, None, None, overall_rating_calc=8.0)

        report = runner.run_reconciliation(as_of=AS_OF)

        assert report.count(DefectType.INCONSISTENT_STATE, "fixed") == 1
        assert store.projects["PRJ-1"]["status"] == "completed"
        audit = [e for e in report.audit if e.action == "correct_status"]
        assert (audit[0].before, audit[0].after) == ("archived", "completed")

    def test_unreadable_rating_holds_project_back(self, store, runner):
        """quality=11 cannot be read → the archived project is not "corrected" from a rating it never saw."""
        store.projects["PRJ-1"] = project_row("PRJ-1", status="archived")
        store.ratings["RAT-1"] = rating_row("RAT-1", "PRJ-1", 8, 11, 9)

        report = runner.run_reconciliation(as_of=AS_OF)

        assert store.projects["PRJ-1"]["status"] == "archived"
        assert report.write_count == 0
        assert report.count(DefectType.MALFORMED_RECORD, "unresolved") == 1
        assert report.count(DefectType.INCONSISTENT_STATE) == 0
        issue = store.queue["malformed_record:RAT-1"]
        assert issue.flagged_for_review
        assert issue.details["project_id"] == "PRJ-1"

    def test_unreadable_rating_blocks_duplicate_deletion(self, store, runner):
        store.projects["PRJ-1"] = project_row("PRJ-1")
        store.ratings["RAT-1"] = rating_row("RAT-1", "PRJ-1", 8, 9, None, rater_email=IMPORTED)
        store.ratings["RAT-2"] = rating_row("RAT-2", "PRJ-1", 8, 9, 7, rater_email=IMPORTED)
        store.ratings["RAT-3"] = rating_row("RAT-3", "PRJ-1", 8, 9, "n/a", rater_email=IMPORTED)

        report = runner.run_reconciliation(as_of=AS_OF)

        assert sorted(store.ratings) == ["RAT-1", "RAT-2", "RAT-3"]
        assert store.projects["PRJ-1"]["status"] == "active"
        assert report.write_count == 0

    def test_unassigned_partition_reconciled_without_summary(self, store, runner):
        store.projects["PRJ-U"] = project_row("PRJ-U", vendor_id=None, status="archived")
        report = runner.run_reconciliation(as_of=AS_OF)

        assert [v.vendor_id for v in report.vendors] == [UNASSIGNED_VENDOR]
        assert store.projects["PRJ-U"]["status"] == "completed"
        assert report.summaries == []
        assert store.summaries == {}


class TestConsolidatedBackfill:
    def test_legacy_record_backfilled_once(self, store, runner):
        store.consolidated.append(
            consolidated_row(
                "PRJ-7",
                success_rating=9,
                quality_rating=8,
                communication_rating=7,
                rater_email=IMPORTED,
            )
        )

        first = runner.run_reconciliation(as_of=AS_OF)

        assert first.count(DefectType.BACKFILL, "fixed") == 2
        assert store.projects["PRJ-7"]["status"] == "archived"
        assert store.ratings["RAT-PRJ-7"]["overall_rating_calc"] == 8.0
        assert store.summaries["VEN-1"].rated_projects == 1

        second = runner.run_reconciliation(as_of=AS_OF)
        assert second.write_count == 0
        assert second.count(DefectType.BACKFILL) == 0

    def test_stored_rating_shadows_consolidated(self, store, runner):
        store.projects["PRJ-7"] = project_row("PRJ-7", status="archived")
        store.ratings["RAT-7"] = rating_row("RAT-7", "PRJ-7", 6, 6, 6, overall_rating_calc=6.0)
        store.consolidated.append(consolidated_row("PRJ-7", success_rating=1, rater_email=IMPORTED))

        report = runner.run_reconciliation(as_of=AS_OF)

        assert report.write_count == 0
        assert "RAT-PRJ-7" not in store.ratings
        assert store.summaries["VEN-1"].avg_overall == 6.0


# ─── Failure isolation ────────────────────────────────────────────────────────


class TestStorageFailure:
    def test_failing_vendor_rolls_back_alone(self, store, runner):
        """VEN-2's summary write fails → VEN-2 rolled back, VEN-1 stays committed."""
        _seed_vendor(store, "VEN-1", "1")
        _seed_vendor(store, "VEN-2", "2")
        store.fail_summary_for.add("VEN-2")

        with pytest.raises(StorageFailure) as exc:
            runner.run_reconciliation(as_of=AS_OF)

        report = exc.value.report
        assert report is not None
        outcomes = {v.vendor_id: v for v in report.vendors}
        assert outcomes["VEN-1"].committed
        assert not outcomes["VEN-2"].success
        assert report.failed_vendors == ["VEN-2"]

        assert "RAT-11" not in store.ratings
        assert "RAT-21" in store.ratings
        assert store.projects["PRJ-2"]["status"] == "active"
        assert list(store.summaries) == ["VEN-1"]
        assert store.rollbacks == 1

    def test_recompute_failure_carries_report(self, store, runner):
        _seed_vendor(store)
        store.fail_summary_for.add("VEN-1")
        with pytest.raises(StorageFailure) as exc:
            runner.recompute_vendor_summaries()
        assert exc.value.report.mode == PassMode.RECOMPUTE
        assert exc.value.report.failed_vendors == ["VEN-1"]


# ─── Recompute ────────────────────────────────────────────────────────────────


class TestRecompute:
    def test_summaries_without_repairs(self, store, runner):
        _seed_vendor(store)
        report = runner.recompute_vendor_summaries()

        assert report.mode == PassMode.RECOMPUTE
        assert report.write_count == 0
        assert sorted(store.ratings) == ["RAT-11", "RAT-12", "RAT-19"]
        assert store.summaries["VEN-1"].rated_projects == 1
        assert store.summaries["VEN-1"].avg_overall == 8.0
        assert report.count(DefectType.ORPHANED_REFERENCE) == 1

    def test_matches_reconcile_summary(self, store, runner):
        """Recompute over a clean population → same summary a reconcile pass writes."""
        _seed_vendor(store)
        reconciled = runner.run_reconciliation(as_of=AS_OF).summaries[0]
        recomputed = runner.recompute_vendor_summaries().summaries[0]
        assert reconciled.model_dump_json() == recomputed.model_dump_json()

    def test_unassigned_skipped(self, store, runner):
        store.projects["PRJ-U"] = project_row("PRJ-U", vendor_id=None)
        report = runner.recompute_vendor_summaries()
        assert report.vendors == []


# ─── Purges and close ─────────────────────────────────────────────────────────


class TestPurgeOrphans:
    def test_preview_without_confirm(self, store, runner):
        _seed_vendor(store)
        assert runner.purge_orphans(confirm=False) == ["RAT-19"]
        assert "RAT-19" in store.ratings

    def test_confirm_deletes_and_resolves_queue(self, store, runner):
        _seed_vendor(store)
        runner.run_reconciliation(as_of=AS_OF)

        assert runner.purge_orphans(confirm=True) == ["RAT-19"]
        assert "RAT-19" not in store.ratings
        assert "orphaned_reference:RAT-19" in store.resolved

    def test_restricted_to_named_ratings(self, store, runner):
        _seed_vendor(store)
        store.ratings["RAT-50"] = rating_row("RAT-50", "PRJ-5000", 3)
        deleted = runner.purge_orphans(confirm=True, rating_ids=["RAT-50", "RAT-12"])
        assert deleted == ["RAT-50"]
        assert "RAT-19" in store.ratings
        assert "RAT-12" in store.ratings


class TestPurgeProject:
    def test_preview_then_delete(self, store, runner):
        _seed_vendor(store)
        preview = runner.purge_project("PRJ-1", confirm=False)
        assert preview == {"project_id": "PRJ-1", "vendor_id": "VEN-1", "ratings": 2, "deleted": False}
        assert "PRJ-1" in store.projects

        result = runner.purge_project("PRJ-1", confirm=True)
        assert result["deleted"]
        assert "PRJ-1" not in store.projects
        assert sorted(store.ratings) == ["RAT-19"]
        assert store.summaries["VEN-1"].total_projects == 0

    def test_unknown_project(self, runner):
        with pytest.raises(ValueError):
            runner.purge_project("PRJ-404", confirm=True)

    def test_refused_when_consolidated_copy_exists(self, store, runner):
        store.projects["PRJ-7"] = project_row("PRJ-7")
        store.consolidated.append(consolidated_row("PRJ-7"))
        with pytest.raises(ValueError):
            runner.purge_project("PRJ-7", confirm=True)
        assert "PRJ-7" in store.projects


class TestCloseProject:
    def test_active_to_completed(self, store, runner):
        store.projects["PRJ-1"] = project_row("PRJ-1")
        assert runner.close_project("PRJ-1").value == "completed"
        assert store.projects["PRJ-1"]["status"] == "completed"

    def test_already_closed_is_noop(self, store, runner):
        store.projects["PRJ-1"] = project_row("PRJ-1", status="archived")
        assert runner.close_project("PRJ-1").value == "archived"

    def test_unknown_project(self, runner):
        with pytest.raises(ValueError):
            runner.close_project("PRJ-404")
