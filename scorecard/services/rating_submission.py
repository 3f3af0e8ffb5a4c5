"""
Rating Submission Service - Records a live review for a project.

A project has at most one rating: resubmitting a review for the same project
updates the existing rating (same rating id) instead of inserting another.
The stored overall is set from the calculator and the project's lifecycle is
advanced in the same transaction.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, ContextManager, Optional

from ..errors import MalformedRecord, OrphanedReference
from ..models.project import ProjectStatus
from ..models.rating import Rating, RatingStatus
from .completeness import classify
from .lifecycle import advance
from .normalizer import RatingNormalizer
from .reconciliation_engine import retention_order

logger = logging.getLogger(__name__)


@dataclass
class SubmissionResult:
    """Outcome of a submission."""

    rating: Rating
    rating_status: RatingStatus
    project_status: ProjectStatus
    created: bool  # False when an existing rating was updated


def _new_rating_id() -> str:
    return f"RAT-{int(time.time() * 1000)}"


class RatingSubmissionService:
    """
    Args:
        project_repo: Project source (get, update_status)
        rating_repo: Rating source (get_for_project, upsert)
        normalizer: RatingNormalizer used to validate the submission
        transaction: Factory returning an all-or-nothing context manager
        id_factory: New rating id generator
    """

    def __init__(
        self,
        project_repo,
        rating_repo,
        normalizer: Optional[RatingNormalizer] = None,
        transaction: Optional[Callable[[], ContextManager]] = None,
        id_factory: Callable[[], str] = _new_rating_id,
    ):
        if transaction is None:
            from ..db.client import transaction

        self.project_repo = project_repo
        self.rating_repo = rating_repo
        self.normalizer = normalizer or RatingNormalizer()
        self.transaction = transaction
        self.id_factory = id_factory

    def submit(
        self,
        project_id: str,
        rater_email: str,
        success: Optional[int] = None,
        quality: Optional[int] = None,
        communication: Optional[int] = None,
        recommend: Optional[bool] = None,
        on_time: Optional[bool] = None,
        on_budget: Optional[bool] = None,
        what_went_well: Optional[str] = None,
        areas_for_improvement: Optional[str] = None,
        supplied_overall: Optional[float] = None,
        as_of: Optional[datetime] = None,
    ) -> SubmissionResult:
        """
        Submit (or resubmit) the review of a project.

        Raises:
            OrphanedReference: the project does not exist
            MalformedRecord: a sub-rating is off scale
        """
        as_of = as_of or datetime.now(timezone.utc)
        with self.transaction():
            project_row = self.project_repo.get(project_id)
            if project_row is None:
                raise OrphanedReference("<new>", project_id)
            project = self.normalizer.normalize_project(project_row)
            existing = [self.normalizer.normalize_rating(row) for row in self.rating_repo.get_for_project(project_id)]

            if existing:
                rating_id = retention_order(existing)[0].rating_id
                created_at = None
            else:
                rating_id = self.id_factory()
                created_at = as_of

            rating = self.normalizer.normalize_rating(
                {
                    "rating_id": rating_id,
                    "project_id": project_id,
                    "vendor_id": project.vendor_id,
                    "rater_email": rater_email,
                    "project_success_rating": success,
                    "vendor_quality_rating": quality,
                    "vendor_communication_rating": communication,
                    "vendor_overall_rating": supplied_overall,
                    "recommend_again": recommend,
                    "project_on_time": on_time,
                    "project_on_budget": on_budget,
                    "what_went_well": what_went_well,
                    "areas_for_improvement": areas_for_improvement,
                    "rating_date": created_at,
                }
            )
            if rating.is_imported:
                raise MalformedRecord(
                    f"Live submissions cannot use the import identity {rater_email}", subject_id=rating_id
                )
            if existing:
                original = next(r for r in existing if r.rating_id == rating_id)
                rating = rating.model_copy(update={"created_at": original.created_at})
            rating = rating.model_copy(update={"stored_overall": rating.overall})
            self.rating_repo.upsert(rating)

            advanced = advance(project, rating, as_of)
            if advanced.status != project.status:
                self.project_repo.update_status(project_id, advanced.status)

        action = "Updated" if existing else "Recorded"
        logger.info(
            f"{action} rating {rating.rating_id} for {project_id}: overall={rating.overall}, "
            f"status {project.status.value} -> {advanced.status.value}"
        )
        return SubmissionResult(
            rating=rating,
            rating_status=classify(rating, advanced.status),
            project_status=advanced.status,
            created=not existing,
        )
