"""
Reconciliation Reporter - Generates readable summary reports for pass results.

Provides clear BEFORE → AFTER views showing:
- Defect counts per category (found / fixed / unresolved)
- Every write the pass made (audit events)
- Items left for the operator (orphans, ambiguous duplicates)
- Refreshed vendor summaries
"""

from typing import Any, List

from ..models.report import AuditEvent, DefectType, ReconciliationReport

# Report order and display names
_CATEGORY_LABELS = {
    DefectType.MALFORMED_RECORD: "Malformed records",
    DefectType.ORPHANED_REFERENCE: "Orphaned ratings",
    DefectType.DUPLICATE_RATING: "Duplicate ratings",
    DefectType.AMBIGUOUS_DUPLICATE: "Ambiguous duplicates",
    DefectType.INCONSISTENT_STATE: "Status corrections",
    DefectType.LIFECYCLE_TRANSITION: "Lifecycle transitions",
    DefectType.OVERALL_DRIFT: "Overall drift",
    DefectType.BACKFILL: "Consolidated backfill",
}

_MAX_IDS = 10


class ReconciliationReporter:
    """Generates human-readable pass reports."""

    def generate_summary(self, report: ReconciliationReport, verbose: bool = False) -> str:
        """
        Generate a readable summary report for a pass.

        Returns formatted text with BEFORE → AFTER view of each write.
        """
        lines = []

        # Header
        lines.append("")
        lines.append("=" * 80)
        title = "RECONCILIATION REPORT" if report.mode.value == "reconcile" else "RECOMPUTE REPORT"
        if report.dry_run:
            title += " (DRY RUN)"
        lines.append(f"{title}: {report.run_id}")
        lines.append("=" * 80)
        lines.append(f"As of: {report.as_of.isoformat()}")
        lines.append(f"Vendors: {len(report.vendors)} ({len(report.failed_vendors)} failed)")
        lines.append(f"Writes: {report.write_count}")
        lines.append("")

        for outcome in report.vendors:
            if not outcome.success:
                lines.append(f"❌ {outcome.vendor_id}: {outcome.error}")
        if report.failed_vendors:
            lines.append("")

        # Defect categories
        for defect_type, label in _CATEGORY_LABELS.items():
            summary = report.defects.get(defect_type)
            if not summary or not summary.found:
                continue
            lines.append(f"─── {label} {'─' * (74 - len(label))}")
            lines.append(f"  found={summary.found} fixed={summary.fixed} unresolved={summary.unresolved}")
            lines.append(f"  ids: {self._format_ids(summary.identifiers)}")
            lines.append("")

        if report.relink_suggestions:
            lines.append(f"─── Re-link suggestions {'─' * 56}")
            for suggestion in report.relink_suggestions:
                lines.append(
                    f"  {suggestion.rating_id}: {suggestion.referenced_project_id} → "
                    f"{suggestion.candidate_project_id}?"
                )
            lines.append("")

        if verbose and report.audit:
            lines.append(f"─── Audit {'─' * 70}")
            for event in report.audit:
                lines.extend(self._format_audit_event(event))
            lines.append("")

        flagged = [issue for issue in report.issues if issue.flagged_for_review]
        if flagged:
            lines.append(f"─── Review queue {'─' * 63}")
            for issue in flagged:
                lines.append(f"  ⚠️  [{issue.defect_type}] {issue.message}")
            lines.append("")

        # Summary statistics
        lines.append("=" * 80)
        lines.append("VENDOR SUMMARIES")
        lines.append("=" * 80)
        for summary in report.summaries:
            lines.append(
                f"  {summary.vendor_id:<16} tier={summary.performance_tier:<8} "
                f"rated={summary.rated_projects}/{summary.total_projects} "
                f"avg_overall={self._format_value(summary.avg_overall)} "
                f"recommend={self._format_value(summary.recommendation_rate)}"
            )
        lines.append("")

        return "\n".join(lines)

    def _format_audit_event(self, event: AuditEvent) -> List[str]:
        return [
            f"  {event.action} {event.subject_id} ({event.vendor_id})",
            f"    BEFORE: {self._format_value(event.before)}",
            f"    AFTER:  {self._format_value(event.after)}",
        ]

    def _format_ids(self, identifiers: List[str]) -> str:
        if len(identifiers) <= _MAX_IDS:
            return ", ".join(identifiers)
        return f"{', '.join(identifiers[:_MAX_IDS])}, ... +{len(identifiers) - _MAX_IDS} more"

    def _format_value(self, value: Any) -> str:
        """Format a value for display."""
        if value is None:
            return "NULL"
        if isinstance(value, float):
            return f"{value:.2f}"
        return str(value)
