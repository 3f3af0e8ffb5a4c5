"""Rating Completeness Classifier.

Pure function of (project status, rating presence, sub-rating presence).
The result is recomputed on every read and never persisted, so a stored
status can never drift away from the rating it describes.
"""

from typing import Optional

from ..models.project import ProjectStatus
from ..models.rating import Rating, RatingStatus


def classify(rating: Optional[Rating], project_status: Optional[ProjectStatus] = None) -> RatingStatus:
    """
    Classify a project's rating completeness.

    Args:
        rating: The project's rating, or None if it has none
        project_status: Current project status. A project without a rating
            needs review whatever its status; the argument is accepted so
            callers can pass the full project state.

    Returns:
        NEEDS_REVIEW when there is no rating, INCOMPLETE when any of the three
        sub-ratings is missing, COMPLETE otherwise.
    """
    if rating is None:
        return RatingStatus.NEEDS_REVIEW
    if rating.present_count < 3:
        return RatingStatus.INCOMPLETE
    return RatingStatus.COMPLETE


def is_complete(rating: Optional[Rating]) -> bool:
    return classify(rating) == RatingStatus.COMPLETE
