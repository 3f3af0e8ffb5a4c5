"""Data access repositories for DoltDB.

Simple CRUD operations for each table. Read methods return raw rows (dicts);
turning rows into Project / Rating is the normalizer's job. Write methods
take canonical models and map them back onto the paired-table columns.

Vendor filtering (get_all):
    get_all()                     every row
    get_all(vendor_id="VEN-3")    rows for one vendor
    get_all(unassigned=True)      rows with no vendor
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from ..models.project import Project, ProjectStatus
from ..models.rating import Rating
from ..models.report import DefectIssue
from ..models.vendor_summary import VendorPerformanceSummary
from .client import execute_many, execute_query

logger = logging.getLogger(__name__)


def _json_default(obj: Any) -> Any:
    """Handle non-serializable objects for JSON encoding."""
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return float(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def _serialize_json(value: Any) -> str | None:
    """Serialize a value to JSON string for storage."""
    if value is None:
        return None
    return json.dumps(value, default=_json_default, sort_keys=True)


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """DATETIME columns carry no zone; the engine stores UTC."""
    if value is None or value.tzinfo is None:
        return value
    return value.replace(tzinfo=None)


def _placeholders(values: list) -> str:
    return ", ".join(["%s"] * len(values))


def _upsert_sql(table: str, columns: list[str], key: str) -> str:
    update_clause = ", ".join(f"`{col}` = VALUES(`{col}`)" for col in columns if col != key)
    return f"""
        INSERT INTO {table} ({", ".join(f"`{c}`" for c in columns)})
        VALUES ({_placeholders(columns)})
        ON DUPLICATE KEY UPDATE {update_clause}
    """


class ProjectRepository:
    """projects table operations."""

    COLUMNS = [
        "project_id",
        "project_title",
        "client_id",
        "assigned_vendor_id",
        "status",
        "created_date",
        "expected_deadline",
        "project_on_time",
        "project_on_budget",
    ]

    def get_all(self, vendor_id: str | None = None, unassigned: bool = False) -> list[dict]:
        """Get project rows, optionally for one vendor or for unassigned projects."""
        if unassigned:
            return execute_query("SELECT * FROM projects WHERE assigned_vendor_id IS NULL") or []
        if vendor_id:
            return execute_query("SELECT * FROM projects WHERE assigned_vendor_id = %s", (vendor_id,)) or []
        return execute_query("SELECT * FROM projects") or []

    def get(self, project_id: str) -> dict | None:
        """Get project row by id."""
        return execute_query("SELECT * FROM projects WHERE project_id = %s", (project_id,), fetch="one")

    def get_ids(self) -> list[str]:
        """Every project id in the table."""
        rows = execute_query("SELECT project_id FROM projects") or []
        return [row["project_id"] for row in rows]

    def upsert(self, project: Project) -> None:
        """Insert or update a project (used by backfill)."""
        values = (
            project.project_id,
            project.title,
            project.client_id,
            project.vendor_id,
            project.status.value,
            _naive_utc(project.created_at),
            _naive_utc(project.expected_deadline),
            project.on_time,
            project.on_budget,
        )
        execute_query(_upsert_sql("projects", self.COLUMNS, "project_id"), values, fetch="none")

    def update_status(self, project_id: str, status: ProjectStatus) -> None:
        """Set a project's lifecycle status."""
        execute_query(
            "UPDATE projects SET status = %s WHERE project_id = %s",
            (status.value, project_id),
            fetch="none",
        )

    def delete(self, project_ids: list[str]) -> int:
        """Delete projects by id. Callers remove dependent ratings first."""
        if not project_ids:
            return 0
        execute_query(
            f"DELETE FROM projects WHERE project_id IN ({_placeholders(project_ids)})",
            tuple(project_ids),
            fetch="none",
        )
        return len(project_ids)


class RatingRepository:
    """ratings table operations."""

    COLUMNS = [
        "rating_id",
        "project_id",
        "vendor_id",
        "rater_email",
        "project_success_rating",
        "vendor_quality_rating",
        "vendor_communication_rating",
        "vendor_overall_rating",
        "overall_rating_calc",
        "recommend_again",
        "project_on_time",
        "project_on_budget",
        "what_went_well",
        "areas_for_improvement",
        "rating_date",
    ]

    def get_all(self, vendor_id: str | None = None, unassigned: bool = False) -> list[dict]:
        """Get rating rows.

        A vendor's ratings are those recorded against the vendor plus those on
        the vendor's projects; the snapshot loader settles which partition
        owns each one.
        """
        if unassigned:
            sql = """
                SELECT r.* FROM ratings r
                LEFT JOIN projects p ON p.project_id = r.project_id
                WHERE p.assigned_vendor_id IS NULL
            """
            return execute_query(sql) or []
        if vendor_id:
            sql = """
                SELECT * FROM ratings
                WHERE vendor_id = %s
                   OR project_id IN (SELECT project_id FROM projects WHERE assigned_vendor_id = %s)
            """
            return execute_query(sql, (vendor_id, vendor_id)) or []
        return execute_query("SELECT * FROM ratings") or []

    def get_for_project(self, project_id: str) -> list[dict]:
        """Every rating row stored for a project."""
        return execute_query("SELECT * FROM ratings WHERE project_id = %s", (project_id,)) or []

    def upsert(self, rating: Rating) -> None:
        """Insert or update a rating keyed by rating_id."""
        values = (
            rating.rating_id,
            rating.project_id,
            rating.vendor_id,
            rating.rater_email,
            rating.success,
            rating.quality,
            rating.communication,
            rating.supplied_overall,
            rating.stored_overall,
            rating.recommend,
            rating.on_time,
            rating.on_budget,
            rating.what_went_well,
            rating.areas_for_improvement,
            _naive_utc(rating.created_at),
        )
        execute_query(_upsert_sql("ratings", self.COLUMNS, "rating_id"), values, fetch="none")

    def update_overall(self, rating_id: str, value: Optional[float]) -> None:
        """Rewrite the stored overall rating."""
        execute_query(
            "UPDATE ratings SET overall_rating_calc = %s WHERE rating_id = %s",
            (value, rating_id),
            fetch="none",
        )

    def delete(self, rating_ids: list[str]) -> int:
        """Delete ratings by id."""
        if not rating_ids:
            return 0
        execute_query(
            f"DELETE FROM ratings WHERE rating_id IN ({_placeholders(rating_ids)})",
            tuple(rating_ids),
            fetch="none",
        )
        return len(rating_ids)

    def delete_for_project(self, project_id: str) -> int:
        """Delete every rating of a project. Returns the number of rows found beforehand."""
        rows = self.get_for_project(project_id)
        execute_query("DELETE FROM ratings WHERE project_id = %s", (project_id,), fetch="none")
        return len(rows)


class ConsolidatedRecordRepository:
    """projects_consolidated table operations (read only)."""

    def get_all(self, vendor_id: str | None = None, unassigned: bool = False) -> list[dict]:
        if unassigned:
            return execute_query("SELECT * FROM projects_consolidated WHERE vendor_id IS NULL") or []
        if vendor_id:
            return execute_query("SELECT * FROM projects_consolidated WHERE vendor_id = %s", (vendor_id,)) or []
        return execute_query("SELECT * FROM projects_consolidated") or []

    def get_project_ids(self) -> list[str]:
        rows = execute_query("SELECT project_id FROM projects_consolidated") or []
        return [row["project_id"] for row in rows]


class VendorSummaryRepository:
    """vendor_performance table operations. Rows are replaced wholesale."""

    COLUMNS = [
        "vendor_id",
        "total_projects",
        "completed_projects",
        "rated_projects",
        "avg_success",
        "avg_quality",
        "avg_communication",
        "avg_overall",
        "recommendation_rate",
        "on_time_rate",
        "on_budget_rate",
        "last_project_date",
        "performance_tier",
    ]

    def upsert(self, summary: VendorPerformanceSummary) -> None:
        """Replace a vendor's summary."""
        data = summary.model_dump()
        data["last_project_date"] = _naive_utc(summary.last_project_date)
        values = tuple(data[col] for col in self.COLUMNS)
        execute_query(_upsert_sql("vendor_performance", self.COLUMNS, "vendor_id"), values, fetch="none")

    def get(self, vendor_id: str) -> VendorPerformanceSummary | None:
        row = execute_query("SELECT * FROM vendor_performance WHERE vendor_id = %s", (vendor_id,), fetch="one")
        return self._to_model(row) if row else None

    def get_all(self) -> list[VendorPerformanceSummary]:
        rows = execute_query("SELECT * FROM vendor_performance ORDER BY vendor_id") or []
        return [self._to_model(row) for row in rows]

    def _to_model(self, row: dict) -> VendorPerformanceSummary:
        data = {col: row.get(col) for col in self.COLUMNS}
        for col in self.COLUMNS[4:11]:
            if data[col] is not None:
                data[col] = float(data[col])
        return VendorPerformanceSummary(**data)


class ReviewQueueRepository:
    """review_queue table operations (operator follow-ups)."""

    COLUMNS = ["issue_key", "defect_type", "subject_id", "vendor_id", "message", "details"]

    def upsert_batch(self, issues: list[DefectIssue]) -> None:
        """Queue issues; re-queuing an issue key refreshes it instead of duplicating."""
        if not issues:
            return
        execute_many(
            _upsert_sql("review_queue", self.COLUMNS, "issue_key"),
            [
                (i.issue_key, i.defect_type, i.subject_id, i.vendor_id, i.message, _serialize_json(i.details))
                for i in issues
            ],
        )

    def get_open(self) -> list[dict]:
        """Unresolved issues, ordered by key."""
        return execute_query("SELECT * FROM review_queue WHERE resolved = FALSE ORDER BY issue_key") or []

    def resolve(self, issue_keys: list[str]) -> None:
        """Mark queued issues resolved (e.g. after an orphan purge)."""
        if not issue_keys:
            return
        execute_query(
            f"UPDATE review_queue SET resolved = TRUE WHERE issue_key IN ({_placeholders(issue_keys)})",
            tuple(issue_keys),
            fetch="none",
        )
