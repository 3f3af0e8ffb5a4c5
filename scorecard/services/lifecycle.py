"""
Project Lifecycle Driver.

State machine: active -> completed -> archived (archived is terminal).

- active -> completed: the expected deadline has passed, or an explicit close
- (active | completed) -> archived: the project's rating is Complete

Status never moves backward here. The reconciliation engine is the only
caller allowed to pull an archived project back, and only to the status these
rules would produce on their own (see expected_status).
"""

import logging
from datetime import datetime
from typing import Optional

from ..errors import InconsistentState
from ..models.project import Project, ProjectStatus
from ..models.rating import Rating, RatingStatus
from .completeness import classify

logger = logging.getLogger(__name__)


def expected_status(project: Project, rating: Optional[Rating], as_of: datetime) -> ProjectStatus:
    """
    Status a project should have given its rating and the clock.

    Closure is sticky: a project already completed or archived stays closed
    even if its deadline is in the future.
    """
    if classify(rating, project.status) == RatingStatus.COMPLETE:
        return ProjectStatus.ARCHIVED
    closed = project.status in (ProjectStatus.COMPLETED, ProjectStatus.ARCHIVED)
    if closed or project.deadline_passed(as_of):
        return ProjectStatus.COMPLETED
    return ProjectStatus.ACTIVE


def advance(project: Project, rating: Optional[Rating], as_of: datetime) -> Project:
    """
    Apply forward-only lifecycle transitions.

    Returns:
        The project, with a new status if a transition applies. A project
        whose expected status is behind its current one is returned unchanged;
        that disagreement belongs to reconciliation.
    """
    target = expected_status(project, rating, as_of)
    if target.rank <= project.status.rank:
        return project
    logger.debug(f"Lifecycle {project.project_id}: {project.status.value} -> {target.value}")
    return project.model_copy(update={"status": target})


def close(project: Project) -> Project:
    """Explicit close action (active -> completed). No-op when already closed."""
    if project.status != ProjectStatus.ACTIVE:
        return project
    return project.model_copy(update={"status": ProjectStatus.COMPLETED})


def transition(project: Project, target: ProjectStatus) -> Project:
    """Administrative status change; only forward moves are allowed.

    Raises:
        InconsistentState: if target is behind the current status, or the
            project is already archived
    """
    if project.status == ProjectStatus.ARCHIVED and target != ProjectStatus.ARCHIVED:
        raise InconsistentState(
            f"Project {project.project_id} is archived; archived is terminal",
            subject_id=project.project_id,
            current=project.status.value,
            requested=target.value,
        )
    if target.rank < project.status.rank:
        raise InconsistentState(
            f"Project {project.project_id} cannot move from {project.status.value} back to {target.value}",
            subject_id=project.project_id,
            current=project.status.value,
            requested=target.value,
        )
    return project.model_copy(update={"status": target})
