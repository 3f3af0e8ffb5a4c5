"""
Scorecard CLI - Command-line interface for reconciliation and vendor metrics.

Usage:
    # Create missing tables
    python -m scorecard init-db

    # Reconcile every vendor (repairs + summaries), record a Dolt commit
    python -m scorecard --dolt-commit reconcile

    # Preview repairs for two vendors without writing
    python -m scorecard reconcile --vendor VEN-3 --vendor VEN-7 --dry-run

    # Rebuild summaries only
    python -m scorecard recompute

    # Delete orphaned ratings (requires --confirm)
    python -m scorecard purge-orphans --confirm

    # Delete a project and its ratings (requires --confirm)
    python -m scorecard purge-project PRJ-0042 --confirm

    # Record a live review (archives the project when complete)
    python -m scorecard submit PRJ-0042 pm@client.com --success 8 --quality 9 --communication 8 --recommend

    # Close a project, show a vendor, rank vendors
    python -m scorecard close PRJ-0042
    python -m scorecard show VEN-3
    python -m scorecard rank --limit 10

    # Open review-queue issues (orphans, ambiguous duplicates)
    python -m scorecard queue

    # Recent Dolt commits (one per recorded pass)
    python -m scorecard history --limit 5
"""

import argparse
import sys
from datetime import datetime

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import get_settings
from .db.client import apply_schema, check_connection
from .db.dolt_client import get_dolt
from .db.repository import (
    ConsolidatedRecordRepository,
    ProjectRepository,
    RatingRepository,
    ReviewQueueRepository,
    VendorSummaryRepository,
)
from .errors import MalformedRecord, OrphanedReference, StorageFailure
from .models.report import ReconciliationReport
from .services.normalizer import RatingNormalizer, parse_timestamp
from .services.rating_submission import RatingSubmissionService
from .services.reconciliation_reporter import ReconciliationReporter
from .services.recommendation import rank_vendors
from .services.runner import ScorecardRunner
from .utils.logger import configure_global_logging

console = Console()


def build_runner() -> ScorecardRunner:
    """Runner wired to the DoltDB repositories."""
    return ScorecardRunner(
        project_repo=ProjectRepository(),
        rating_repo=RatingRepository(),
        summary_repo=VendorSummaryRepository(),
        consolidated_repo=ConsolidatedRecordRepository(),
        review_queue=ReviewQueueRepository(),
    )


def build_submission_service() -> RatingSubmissionService:
    """Submission service wired to the DoltDB repositories."""
    return RatingSubmissionService(
        ProjectRepository(),
        RatingRepository(),
        normalizer=RatingNormalizer(get_settings().import_sentinel),
    )


def _dolt_commit(args: argparse.Namespace, summary: str, run_id: str | None = None) -> None:
    if not args.dolt_commit:
        return
    commit_hash = get_dolt().commit(summary, run_id=run_id)
    if commit_hash:
        console.print(f"Dolt commit: [cyan]{commit_hash[:8]}[/cyan]")
    else:
        console.print("[dim]No changes to commit[/dim]")


def _print_report(report: ReconciliationReport, args: argparse.Namespace) -> None:
    if args.json:
        print(report.model_dump_json(indent=2))
        return
    print(ReconciliationReporter().generate_summary(report, verbose=args.verbose))


def _print_storage_failure(error: StorageFailure) -> None:
    console.print(f"[red]Storage failure:[/red] {error.message}")
    if error.report is not None:
        committed = [o.vendor_id for o in error.report.vendors if o.committed]
        console.print(f"Committed before the failure: {', '.join(committed) or 'none'}")


def cmd_init_db(args: argparse.Namespace) -> int:
    """Create missing tables."""
    if not check_connection():
        console.print("[red]Cannot reach DoltDB[/red] (check DOLT_HOST / DOLT_PORT / DOLT_DATABASE)")
        return 1
    count = apply_schema()
    console.print(f"[green]Schema applied[/green] ({count} statements)")
    return 0


def cmd_reconcile(args: argparse.Namespace) -> int:
    """Run a reconciliation pass."""
    try:
        as_of = parse_timestamp(args.as_of, "as_of") if args.as_of else None
    except MalformedRecord as e:
        console.print(f"[red]{e.message}[/red]")
        return 1
    try:
        report = build_runner().run_reconciliation(vendor_ids=args.vendor, as_of=as_of, dry_run=args.dry_run)
    except StorageFailure as e:
        _print_storage_failure(e)
        return 1

    _print_report(report, args)
    if not args.dry_run and report.write_count:
        _dolt_commit(args, f"Reconcile: {report.write_count} repairs", run_id=report.run_id)
    return 0


def cmd_recompute(args: argparse.Namespace) -> int:
    """Rebuild vendor summaries."""
    try:
        report = build_runner().recompute_vendor_summaries(vendor_ids=args.vendor)
    except StorageFailure as e:
        _print_storage_failure(e)
        return 1

    _print_report(report, args)
    _dolt_commit(args, f"Recompute: {len(report.summaries)} vendor summaries", run_id=report.run_id)
    return 0


def cmd_purge_orphans(args: argparse.Namespace) -> int:
    """Delete orphaned ratings."""
    ids = build_runner().purge_orphans(confirm=args.confirm, rating_ids=args.rating)
    if not args.confirm:
        console.print(f"[yellow]{len(ids)} orphaned ratings would be deleted:[/yellow] {', '.join(ids) or '-'}")
        console.print("Re-run with --confirm to delete them.")
        return 1

    console.print(f"[green]Deleted {len(ids)} orphaned ratings[/green] {', '.join(ids)}")
    if ids:
        _dolt_commit(args, f"Purge {len(ids)} orphaned ratings")
    return 0


def cmd_purge_project(args: argparse.Namespace) -> int:
    """Delete a project and its ratings."""
    try:
        result = build_runner().purge_project(args.project_id, confirm=args.confirm)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        return 1

    if not result["deleted"]:
        console.print(
            f"[yellow]Would delete project {result['project_id']} and {result['ratings']} ratings.[/yellow] "
            "Re-run with --confirm."
        )
        return 1

    console.print(f"[green]Deleted project {result['project_id']} and {result['ratings']} ratings[/green]")
    _dolt_commit(args, f"Purge project {result['project_id']}")
    return 0


def cmd_submit(args: argparse.Namespace) -> int:
    """Record a live review for a project."""
    try:
        result = build_submission_service().submit(
            args.project_id,
            args.rater_email,
            success=args.success,
            quality=args.quality,
            communication=args.communication,
            recommend=args.recommend,
            on_time=args.on_time,
            on_budget=args.on_budget,
            what_went_well=args.what_went_well,
            areas_for_improvement=args.areas_for_improvement,
        )
    except OrphanedReference as e:
        console.print(f"[red]Unknown project:[/red] {e.project_id}")
        return 1
    except MalformedRecord as e:
        console.print(f"[red]Rejected:[/red] {e}")
        return 1

    verb = "Recorded" if result.created else "Updated"
    overall = result.rating.stored_overall
    console.print(
        f"{verb} [cyan]{result.rating.rating_id}[/cyan] for {args.project_id}: "
        f"overall {'-' if overall is None else f'{overall:.1f}'}, "
        f"rating {result.rating_status.value}, project {result.project_status.value}"
    )
    _dolt_commit(args, f"Rating {result.rating.rating_id} for {args.project_id}")
    return 0


def cmd_close(args: argparse.Namespace) -> int:
    """Close a project (active -> completed)."""
    try:
        status = build_runner().close_project(args.project_id)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        return 1
    console.print(f"{args.project_id}: [cyan]{status.value}[/cyan]")
    _dolt_commit(args, f"Close project {args.project_id}")
    return 0


def cmd_show(args: argparse.Namespace) -> int:
    """Show a vendor's summary."""
    summary = VendorSummaryRepository().get(args.vendor_id)
    if summary is None:
        console.print(f"[yellow]No summary for {args.vendor_id}[/yellow] (run recompute)")
        return 1

    def fmt(value) -> str:
        return "-" if value is None else f"{value:.2f}"

    body = (
        f"Tier: {summary.performance_tier}\n"
        f"Projects: {summary.total_projects} total, {summary.completed_projects} completed, "
        f"{summary.rated_projects} rated\n"
        f"Success: {fmt(summary.avg_success)}  Quality: {fmt(summary.avg_quality)}  "
        f"Communication: {fmt(summary.avg_communication)}\n"
        f"Overall: {fmt(summary.avg_overall)}\n"
        f"Recommend: {fmt(summary.recommendation_rate)}  On time: {fmt(summary.on_time_rate)}  "
        f"On budget: {fmt(summary.on_budget_rate)}\n"
        f"Last project: {summary.last_project_date.isoformat() if summary.last_project_date else '-'}"
    )
    console.print(Panel(body, title=f"Vendor {summary.vendor_id}", border_style="blue"))
    return 0


def cmd_rank(args: argparse.Namespace) -> int:
    """Rank vendors for new work."""
    rankings = rank_vendors(VendorSummaryRepository().get_all(), limit=args.limit)
    table = Table(title="Vendor Ranking")
    table.add_column("#", justify="right")
    table.add_column("Vendor", style="cyan")
    table.add_column("Score", justify="right")
    table.add_column("Tier", justify="center")
    table.add_column("Rated", justify="right")
    for ranking in rankings:
        table.add_row(
            str(ranking.rank),
            ranking.vendor_id,
            "-" if ranking.score is None else f"{ranking.score:.2f}",
            ranking.performance_tier,
            str(ranking.rated_projects),
        )
    console.print(table)
    return 0


def cmd_queue(args: argparse.Namespace) -> int:
    """List open review-queue issues."""
    rows = ReviewQueueRepository().get_open()
    table = Table(title=f"Review Queue ({len(rows)} open)")
    table.add_column("Type", style="yellow")
    table.add_column("Subject", style="cyan")
    table.add_column("Vendor")
    table.add_column("Message")
    for row in rows:
        table.add_row(row["defect_type"], row["subject_id"] or "-", row["vendor_id"] or "-", row["message"])
    console.print(table)
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    """Show recent Dolt commits."""
    commits = get_dolt().log(limit=args.limit, engine_only=args.engine_only)
    table = Table(title="Dolt History")
    table.add_column("Commit", style="cyan")
    table.add_column("Date")
    table.add_column("Author")
    table.add_column("Run", style="magenta")
    table.add_column("Message")
    for commit in commits:
        table.add_row(
            commit.hash[:8], f"{commit.date:%Y-%m-%d %H:%M}", commit.author, commit.run_id or "-", commit.summary
        )
    console.print(table)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scorecard",
        description="Vendor scorecard: rating reconciliation and vendor performance",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--log-level", default="INFO", choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    parser.add_argument("--dolt-commit", action="store_true", help="Record a Dolt commit after writing")
    parser.add_argument("--log-file", action="store_true", help="Also write a DEBUG log file under logs/")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("init-db", help="Create missing scorecard tables")

    reconcile_parser = subparsers.add_parser("reconcile", help="Run a reconciliation pass")
    reconcile_parser.add_argument("--vendor", action="append", help="Vendor id (repeatable; default: all)")
    reconcile_parser.add_argument("--as-of", help="ISO timestamp used for deadline checks (default: now)")
    reconcile_parser.add_argument("--dry-run", action="store_true", help="Report without writing")
    reconcile_parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    reconcile_parser.add_argument("-v", "--verbose", action="store_true", help="Show audit events")

    recompute_parser = subparsers.add_parser("recompute", help="Rebuild vendor summaries")
    recompute_parser.add_argument("--vendor", action="append", help="Vendor id (repeatable; default: all)")
    recompute_parser.add_argument("--json", action="store_true", help="Print the report as JSON")
    recompute_parser.add_argument("-v", "--verbose", action="store_true", help="Show audit events")

    orphans_parser = subparsers.add_parser("purge-orphans", help="Delete orphaned ratings")
    orphans_parser.add_argument("--confirm", action="store_true", help="Actually delete")
    orphans_parser.add_argument("--rating", action="append", help="Restrict to these rating ids (repeatable)")

    project_parser = subparsers.add_parser("purge-project", help="Delete a project and its ratings")
    project_parser.add_argument("project_id", help="Project to delete")
    project_parser.add_argument("--confirm", action="store_true", help="Actually delete")

    submit_parser = subparsers.add_parser("submit", help="Record a live review for a project")
    submit_parser.add_argument("project_id", help="Project being reviewed")
    submit_parser.add_argument("rater_email", help="Reviewer identity")
    for field in ("success", "quality", "communication"):
        submit_parser.add_argument(f"--{field}", type=int, help=f"{field.capitalize()} rating (1-10)")
    for flag in ("recommend", "on-time", "on-budget"):
        submit_parser.add_argument(f"--{flag}", action=argparse.BooleanOptionalAction, default=None)
    submit_parser.add_argument("--what-went-well")
    submit_parser.add_argument("--areas-for-improvement")

    close_parser = subparsers.add_parser("close", help="Close a project (active -> completed)")
    close_parser.add_argument("project_id", help="Project to close")

    show_parser = subparsers.add_parser("show", help="Show a vendor summary")
    show_parser.add_argument("vendor_id", help="Vendor id")

    rank_parser = subparsers.add_parser("rank", help="Rank vendors for new work")
    rank_parser.add_argument("--limit", type=int, help="Show only the top N")

    subparsers.add_parser("queue", help="List open review-queue issues")

    history_parser = subparsers.add_parser("history", help="Show recent Dolt commits")
    history_parser.add_argument("--limit", type=int, default=10, help="Number of commits (default: 10)")
    history_parser.add_argument("--engine-only", action="store_true", help="Only commits made by scorecard passes")

    return parser


COMMANDS = {
    "init-db": cmd_init_db,
    "reconcile": cmd_reconcile,
    "recompute": cmd_recompute,
    "purge-orphans": cmd_purge_orphans,
    "purge-project": cmd_purge_project,
    "submit": cmd_submit,
    "close": cmd_close,
    "show": cmd_show,
    "rank": cmd_rank,
    "queue": cmd_queue,
    "history": cmd_history,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    handler = COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    log_file = f"{args.command}_{datetime.now():%Y%m%d_%H%M%S}.log" if args.log_file else None
    configure_global_logging(args.log_level, phase=args.command, log_file=log_file)
    try:
        return handler(args)
    except StorageFailure as e:
        _print_storage_failure(e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
