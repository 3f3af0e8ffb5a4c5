"""
Pydantic models for pass reports.

Every reconciliation or recompute invocation returns one of these instead
of raising for expected defect classes: per-defect counts (found / fixed /
unresolved), affected identifiers, audit events and operator issues.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..errors import ScorecardError
from .vendor_summary import VendorPerformanceSummary


class DefectType(str, Enum):
    """Categories tracked in pass reports."""

    MALFORMED_RECORD = "malformed_record"
    ORPHANED_REFERENCE = "orphaned_reference"
    DUPLICATE_RATING = "duplicate_rating"
    AMBIGUOUS_DUPLICATE = "ambiguous_duplicate"
    INCONSISTENT_STATE = "inconsistent_state"
    LIFECYCLE_TRANSITION = "lifecycle_transition"
    OVERALL_DRIFT = "overall_drift"
    BACKFILL = "backfill"


class PassMode(str, Enum):
    RECONCILE = "reconcile"
    RECOMPUTE = "recompute"


class DefectSummary(BaseModel):
    """Counts and identifiers for one defect category."""

    found: int = 0
    fixed: int = 0
    unresolved: int = 0
    identifiers: list[str] = Field(default_factory=list)

    def add(self, identifier: str, fixed: bool) -> None:
        self.found += 1
        if fixed:
            self.fixed += 1
        else:
            self.unresolved += 1
        self.identifiers.append(identifier)


class DefectIssue(BaseModel):
    """A single reported defect, optionally flagged for the operator review queue."""

    defect_type: str = Field(..., description="Report category")
    subject_id: Optional[str] = Field(None, description="Affected rating or project id")
    vendor_id: Optional[str] = Field(None, description="Vendor partition the defect was found in")
    message: str = Field(..., description="Human-readable description")
    details: dict[str, Any] = Field(default_factory=dict, description="Structured context")
    flagged_for_review: bool = Field(default=False, description="Needs an operator decision")

    @property
    def issue_key(self) -> str:
        """Stable key so re-running a pass does not duplicate queue entries."""
        return f"{self.defect_type}:{self.subject_id or '-'}"

    @classmethod
    def from_error(
        cls, error: ScorecardError, vendor_id: Optional[str] = None, flagged: bool = False
    ) -> "DefectIssue":
        return cls(
            defect_type=error.defect_type,
            subject_id=error.subject_id,
            vendor_id=vendor_id,
            message=error.message,
            details=dict(error.details),
            flagged_for_review=flagged,
        )


class AuditEvent(BaseModel):
    """One write performed (or, for dry runs, planned) by a pass."""

    action: str = Field(..., description="e.g. delete_duplicate, correct_status, rewrite_overall")
    subject_id: str = Field(..., description="Affected rating or project id")
    vendor_id: Optional[str] = Field(None, description="Vendor partition")
    before: Optional[Any] = Field(None, description="Value before the write")
    after: Optional[Any] = Field(None, description="Value after the write")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class RelinkSuggestion(BaseModel):
    """A known project an orphaned rating probably meant. Never applied automatically."""

    rating_id: str
    referenced_project_id: str
    candidate_project_id: str
    reason: str = "identifier matches ignoring case and punctuation"


class VendorOutcome(BaseModel):
    """Result of one vendor unit (one committed transaction)."""

    vendor_id: str
    success: bool = True
    committed: bool = False
    error: Optional[str] = None
    writes: int = 0


class ReconciliationReport(BaseModel):
    """Structured result of a reconcile or recompute pass."""

    run_id: str
    mode: PassMode = PassMode.RECONCILE
    as_of: datetime
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None
    dry_run: bool = False
    vendors: list[VendorOutcome] = Field(default_factory=list)
    defects: dict[DefectType, DefectSummary] = Field(default_factory=dict)
    issues: list[DefectIssue] = Field(default_factory=list)
    audit: list[AuditEvent] = Field(default_factory=list)
    relink_suggestions: list[RelinkSuggestion] = Field(default_factory=list)
    summaries: list[VendorPerformanceSummary] = Field(default_factory=list)

    def defect(self, defect_type: DefectType) -> DefectSummary:
        """Get (creating if needed) the summary for a defect category."""
        if defect_type not in self.defects:
            self.defects[defect_type] = DefectSummary()
        return self.defects[defect_type]

    def count(self, defect_type: DefectType, field: str = "found") -> int:
        summary = self.defects.get(defect_type)
        return getattr(summary, field) if summary else 0

    @property
    def write_count(self) -> int:
        """Number of data repairs applied (summary upserts excluded)."""
        return sum(outcome.writes for outcome in self.vendors)

    @property
    def failed_vendors(self) -> list[str]:
        return [outcome.vendor_id for outcome in self.vendors if not outcome.success]
