"""
Pydantic model for vendor engagements (projects).
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ProjectStatus(str, Enum):
    """Project lifecycle status. Transitions only move forward."""

    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"

    @property
    def rank(self) -> int:
        """Position in the lifecycle (active=0, completed=1, archived=2)."""
        return _STATUS_ORDER[self]


_STATUS_ORDER = {
    ProjectStatus.ACTIVE: 0,
    ProjectStatus.COMPLETED: 1,
    ProjectStatus.ARCHIVED: 2,
}


class Project(BaseModel):
    """One vendor engagement for one client."""

    project_id: str = Field(..., description="Stable opaque identifier")
    title: Optional[str] = Field(None, description="Project title")
    client_id: Optional[str] = Field(None, description="Client reference")
    vendor_id: Optional[str] = Field(None, description="Assigned vendor (null until assigned)")
    status: ProjectStatus = Field(default=ProjectStatus.ACTIVE, description="Lifecycle status")
    created_at: Optional[datetime] = Field(None, description="When the project was created")
    expected_deadline: Optional[datetime] = Field(None, description="Expected delivery deadline")
    on_time: Optional[bool] = Field(None, description="Delivered on time (if known)")
    on_budget: Optional[bool] = Field(None, description="Delivered on budget (if known)")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "project_id": "PRJ-0042",
                "title": "Website redesign",
                "client_id": "CLI-7",
                "vendor_id": "VEN-3",
                "status": "completed",
                "created_at": "2024-03-01T00:00:00Z",
                "expected_deadline": "2024-05-01T00:00:00Z",
            }
        }
    )

    def deadline_passed(self, as_of: datetime) -> bool:
        """True if the expected deadline exists and is before as_of."""
        return self.expected_deadline is not None and self.expected_deadline < as_of
