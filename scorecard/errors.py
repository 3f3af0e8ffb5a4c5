"""Error taxonomy for the scorecard engine.

Expected data defects (malformed, orphaned, ambiguous, inconsistent) are
instantiated by the engine and recorded in pass reports; only StorageFailure
and unexpected conditions propagate to callers.
"""

from typing import Any, Optional


class ScorecardError(Exception):
    """Base class for scorecard errors.

    Attributes:
        defect_type: Report category this error is filed under
        subject_id: Identifier of the affected record (rating or project id)
        details: Structured context for the report
    """

    defect_type = "error"

    def __init__(self, message: str, subject_id: Optional[str] = None, **details: Any):
        super().__init__(message)
        self.message = message
        self.subject_id = subject_id
        self.details = details


class MalformedRecord(ScorecardError):
    """Raw input cannot be normalized (e.g. missing project reference)."""

    defect_type = "malformed_record"


class OrphanedReference(ScorecardError):
    """A rating names a project that does not exist."""

    defect_type = "orphaned_reference"

    def __init__(self, rating_id: str, project_id: str, **details: Any):
        super().__init__(
            f"Rating {rating_id} references unknown project {project_id}",
            subject_id=rating_id,
            project_id=project_id,
            **details,
        )
        self.rating_id = rating_id
        self.project_id = project_id


class AmbiguousDuplicate(ScorecardError):
    """Duplicate ratings for a project cannot be resolved without guessing."""

    defect_type = "ambiguous_duplicate"

    def __init__(self, project_id: str, rating_ids: list[str], reason: str):
        super().__init__(
            f"Cannot resolve duplicates for project {project_id}: {reason}",
            subject_id=project_id,
            rating_ids=list(rating_ids),
            reason=reason,
        )
        self.project_id = project_id
        self.rating_ids = list(rating_ids)
        self.reason = reason


class InconsistentState(ScorecardError):
    """A project's status disagrees with its rating completeness."""

    defect_type = "inconsistent_state"


class StorageFailure(ScorecardError):
    """The external store failed to read or write.

    Attributes:
        report: Partial pass report (vendors committed before the failure), if any
    """

    defect_type = "storage_failure"

    def __init__(self, message: str, subject_id: Optional[str] = None, **details: Any):
        super().__init__(message, subject_id=subject_id, **details)
        self.report = None
