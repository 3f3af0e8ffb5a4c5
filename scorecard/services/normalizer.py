"""
Rating Record Normalizer - Converts raw storage rows into canonical models.

Handles both historical storage shapes:
- Paired: a `projects` row and a `ratings` row joined by project_id
- Consolidated: one `projects_consolidated` row carrying project and rating fields

Bulk-imported rows are recognised by the sentinel rater identity and tagged
with Provenance.IMPORTED. The shape distinction ends here: callers only ever
see Project and Rating.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Callable, Iterable, Optional, TypeVar

from ..constants import DEFAULT_IMPORT_SENTINEL, LEGACY_UNRATED_PLACEHOLDER, RATING_SCALE_MAX, RATING_SCALE_MIN
from ..errors import MalformedRecord
from ..models.project import Project, ProjectStatus
from ..models.rating import Provenance, Rating
from ..utils.id_utils import normalize_id

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Canonical field -> raw column names, first non-empty wins.
# Paired names come first; consolidated names follow.
PROJECT_FIELD_ALIASES = {
    "project_id": ["project_id"],
    "title": ["project_title", "project_name", "title"],
    "client_id": ["client_id", "client_name"],
    "vendor_id": ["assigned_vendor_id", "vendor_id", "vendor_name"],
    "status": ["status", "project_status"],
    "created_at": ["created_date", "created_at", "contact_date"],
    "expected_deadline": ["expected_deadline", "end_date"],
    "on_time": ["project_on_time", "on_time"],
    "on_budget": ["project_on_budget", "on_budget"],
}

RATING_FIELD_ALIASES = {
    "rating_id": ["rating_id"],
    "project_id": ["project_id"],
    "vendor_id": ["vendor_id", "assigned_vendor_id", "vendor_name"],
    "success": ["project_success_rating", "success_rating"],
    "quality": ["vendor_quality_rating", "quality_rating"],
    "communication": ["vendor_communication_rating", "communication_rating"],
    "supplied_overall": ["vendor_overall_rating", "project_overall_rating", "overall_rating"],
    "stored_overall": ["overall_rating_calc", "project_overall_rating_calc"],
    "recommend": ["recommend_again", "recommend"],
    "on_time": ["project_on_time", "on_time"],
    "on_budget": ["project_on_budget", "on_budget"],
    "what_went_well": ["what_went_well", "positive_feedback"],
    "areas_for_improvement": ["areas_for_improvement", "improvement_feedback"],
    "rater_email": ["rater_email"],
    "created_at": ["rating_date", "created_date", "created_at"],
}

# Any of these present on a consolidated row means it carries a rating
CONSOLIDATED_RATING_MARKERS = (
    "success",
    "quality",
    "communication",
    "supplied_overall",
    "stored_overall",
    "recommend",
    "what_went_well",
    "areas_for_improvement",
    "rater_email",
)

LEGACY_STATUS_MAP = {
    "active": ProjectStatus.ACTIVE,
    "open": ProjectStatus.ACTIVE,
    "in progress": ProjectStatus.ACTIVE,
    "in_progress": ProjectStatus.ACTIVE,
    "planning": ProjectStatus.ACTIVE,
    "proposed": ProjectStatus.ACTIVE,
    "completed": ProjectStatus.COMPLETED,
    "complete": ProjectStatus.COMPLETED,
    "closed": ProjectStatus.COMPLETED,
    "done": ProjectStatus.COMPLETED,
    "archived": ProjectStatus.ARCHIVED,
}

_TRUE_STRINGS = {"true", "yes", "y", "1", "t"}
_FALSE_STRINGS = {"false", "no", "n", "0", "f"}


@dataclass
class NormalizedRecord:
    """A project and/or rating produced from one raw record."""

    project: Optional[Project] = None
    rating: Optional[Rating] = None


@dataclass
class NormalizationResult:
    """Batch output: canonical records plus the records that were skipped."""

    records: list = field(default_factory=list)
    malformed: list[MalformedRecord] = field(default_factory=list)


def _pick(row: dict, aliases: list[str]) -> Any:
    """Return the first non-empty value among the alias columns."""
    for key in aliases:
        value = row.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def parse_sub_rating(value: Any, field_name: str, record_id: Optional[str] = None) -> Optional[int]:
    """Parse a sub-rating, keeping missing values as None.

    Raises:
        MalformedRecord: if the value is not an integer on the rating scale
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise MalformedRecord(f"{field_name} must be numeric, got {value!r}", subject_id=record_id, field=field_name)
    try:
        number = float(str(value).strip())
    except ValueError:
        raise MalformedRecord(
            f"{field_name} must be numeric, got {value!r}", subject_id=record_id, field=field_name
        ) from None
    if not number.is_integer():
        raise MalformedRecord(f"{field_name} must be an integer, got {value!r}", subject_id=record_id, field=field_name)
    score = int(number)
    if score == LEGACY_UNRATED_PLACEHOLDER:
        return None
    if score < RATING_SCALE_MIN or score > RATING_SCALE_MAX:
        raise MalformedRecord(
            f"{field_name}={score} outside {RATING_SCALE_MIN}-{RATING_SCALE_MAX}",
            subject_id=record_id,
            field=field_name,
        )
    return score


def parse_overall(value: Any, field_name: str, record_id: Optional[str] = None) -> Optional[float]:
    """Parse a supplied or stored overall value; 0 means not rated."""
    if value is None:
        return None
    try:
        number = float(str(value).strip())
    except ValueError:
        raise MalformedRecord(
            f"{field_name} must be numeric, got {value!r}", subject_id=record_id, field=field_name
        ) from None
    if number == LEGACY_UNRATED_PLACEHOLDER:
        return None
    if number < RATING_SCALE_MIN or number > RATING_SCALE_MAX:
        raise MalformedRecord(
            f"{field_name}={number} outside {RATING_SCALE_MIN}-{RATING_SCALE_MAX}",
            subject_id=record_id,
            field=field_name,
        )
    return number


def parse_bool(value: Any) -> Optional[bool]:
    """Parse yes/no style flags. Unrecognised text is treated as unknown."""
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    text = str(value).strip().lower()
    if text in _TRUE_STRINGS:
        return True
    if text in _FALSE_STRINGS:
        return False
    return None


def parse_timestamp(value: Any, field_name: str, record_id: Optional[str] = None) -> Optional[datetime]:
    """Parse a timestamp into an aware UTC datetime. Naive values are UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            raise MalformedRecord(
                f"{field_name} is not an ISO timestamp: {value!r}", subject_id=record_id, field=field_name
            ) from None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_status(value: Any, record_id: Optional[str] = None) -> ProjectStatus:
    """Map current and legacy status strings onto ProjectStatus."""
    if value is None:
        return ProjectStatus.ACTIVE
    if isinstance(value, ProjectStatus):
        return value
    status = LEGACY_STATUS_MAP.get(" ".join(str(value).split()).lower())
    if status is None:
        raise MalformedRecord(f"Unknown project status {value!r}", subject_id=record_id, field="status")
    return status


class RatingNormalizer:
    """
    Normalizes raw project/rating rows from either storage shape.

    Args:
        import_sentinel: Rater identity that marks bulk-imported rows
    """

    def __init__(self, import_sentinel: str = DEFAULT_IMPORT_SENTINEL):
        self.import_sentinel = import_sentinel.strip().lower()

    def provenance_for(self, rater_email: Optional[str]) -> Provenance:
        if rater_email and rater_email.strip().lower() == self.import_sentinel:
            return Provenance.IMPORTED
        return Provenance.LIVE

    def normalize_project(self, row: dict) -> Project:
        """Convert a project row (either shape) into a Project.

        Raises:
            MalformedRecord: missing project_id, unknown status, bad timestamps
        """
        project_id = normalize_id(_pick(row, PROJECT_FIELD_ALIASES["project_id"]))
        if not project_id:
            raise MalformedRecord("Project record has no project_id", record=_describe(row))

        def text(name: str) -> Optional[str]:
            return normalize_id(_pick(row, PROJECT_FIELD_ALIASES[name]))

        return Project(
            project_id=project_id,
            title=text("title"),
            client_id=text("client_id"),
            vendor_id=text("vendor_id"),
            status=parse_status(_pick(row, PROJECT_FIELD_ALIASES["status"]), project_id),
            created_at=parse_timestamp(_pick(row, PROJECT_FIELD_ALIASES["created_at"]), "created_at", project_id),
            expected_deadline=parse_timestamp(
                _pick(row, PROJECT_FIELD_ALIASES["expected_deadline"]), "expected_deadline", project_id
            ),
            on_time=parse_bool(_pick(row, PROJECT_FIELD_ALIASES["on_time"])),
            on_budget=parse_bool(_pick(row, PROJECT_FIELD_ALIASES["on_budget"])),
        )

    def normalize_rating(
        self,
        row: dict,
        project_id: Optional[str] = None,
        default_rating_id: Optional[str] = None,
    ) -> Rating:
        """Convert a rating row (either shape) into a Rating.

        Args:
            row: Raw row
            project_id: Join key from the paired project row, used when the
                rating row does not carry its own
            default_rating_id: Identifier to use when the row has none

        Raises:
            MalformedRecord: missing project reference or rating id, off-scale values
        """
        rating_id = normalize_id(_pick(row, RATING_FIELD_ALIASES["rating_id"])) or default_rating_id
        resolved_project = normalize_id(_pick(row, RATING_FIELD_ALIASES["project_id"])) or normalize_id(project_id)
        if not resolved_project:
            raise MalformedRecord(
                f"Rating {rating_id or '<unknown>'} has no project reference",
                subject_id=rating_id,
                record=_describe(row),
            )
        if not rating_id:
            raise MalformedRecord(
                f"Rating for project {resolved_project} has no rating_id",
                subject_id=resolved_project,
                project_id=resolved_project,
            )

        def value(name: str) -> Any:
            return _pick(row, RATING_FIELD_ALIASES[name])

        rater_email = normalize_id(value("rater_email"))
        try:
            return Rating(
                rating_id=rating_id,
                project_id=resolved_project,
                vendor_id=normalize_id(value("vendor_id")),
                success=parse_sub_rating(value("success"), "success", rating_id),
                quality=parse_sub_rating(value("quality"), "quality", rating_id),
                communication=parse_sub_rating(value("communication"), "communication", rating_id),
                supplied_overall=parse_overall(value("supplied_overall"), "supplied_overall", rating_id),
                stored_overall=parse_overall(value("stored_overall"), "stored_overall", rating_id),
                recommend=parse_bool(value("recommend")),
                on_time=parse_bool(value("on_time")),
                on_budget=parse_bool(value("on_budget")),
                what_went_well=value("what_went_well"),
                areas_for_improvement=value("areas_for_improvement"),
                rater_email=rater_email,
                provenance=self.provenance_for(rater_email),
                created_at=parse_timestamp(value("created_at"), "created_at", rating_id),
            )
        except MalformedRecord as e:
            # Callers hold the rating's project back from repair
            e.details.setdefault("project_id", resolved_project)
            raise

    def normalize_paired(self, project_row: Optional[dict], rating_row: Optional[dict]) -> NormalizedRecord:
        """Normalize a paired project row and its rating row."""
        project = self.normalize_project(project_row) if project_row else None
        rating = None
        if rating_row:
            rating = self.normalize_rating(rating_row, project_id=project.project_id if project else None)
        return NormalizedRecord(project=project, rating=rating)

    def normalize_consolidated(self, row: dict) -> NormalizedRecord:
        """Normalize a consolidated row into its project and (optional) rating.

        Consolidated rows without a rating_id get a deterministic one derived
        from the project id, so re-reading the row yields the same rating.
        """
        project = self.normalize_project(row)
        has_rating = any(_pick(row, RATING_FIELD_ALIASES[name]) is not None for name in CONSOLIDATED_RATING_MARKERS)
        rating = None
        if has_rating:
            rating = self.normalize_rating(
                row,
                project_id=project.project_id,
                default_rating_id=f"RAT-{project.project_id}",
            )
            if rating.vendor_id is None:
                rating = rating.model_copy(update={"vendor_id": project.vendor_id})
        return NormalizedRecord(project=project, rating=rating)

    # ─── Batch helpers ─────────────────────────────────────────────────────

    def normalize_projects(self, rows: Iterable[dict]) -> NormalizationResult:
        return self._collect(rows, self.normalize_project, "project")

    def normalize_ratings(self, rows: Iterable[dict]) -> NormalizationResult:
        return self._collect(rows, self.normalize_rating, "rating")

    def normalize_consolidated_rows(self, rows: Iterable[dict]) -> NormalizationResult:
        return self._collect(rows, self.normalize_consolidated, "consolidated record")

    def _collect(self, rows: Iterable[dict], fn: Callable[[dict], T], kind: str) -> NormalizationResult:
        """Apply fn to every row; malformed rows are logged and skipped."""
        result = NormalizationResult()
        for row in rows:
            try:
                result.records.append(fn(row))
            except MalformedRecord as e:
                logger.warning(f"Skipping malformed {kind}: {e.message}")
                result.malformed.append(e)
        return result


def _describe(row: dict) -> dict:
    """Small identifying subset of a raw row for error reports."""
    keys = ("rating_id", "project_id", "project_title", "project_name", "vendor_id", "vendor_name", "rater_email")
    return {k: row.get(k) for k in keys if row.get(k) is not None}
