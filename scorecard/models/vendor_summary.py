"""
Pydantic model for derived vendor performance summaries.

Summaries are a materialized view owned by the vendor aggregator: always
rebuildable from the current project and rating population, never edited.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class VendorPerformanceSummary(BaseModel):
    """Per-vendor statistics over rated projects."""

    vendor_id: str = Field(..., description="Vendor reference")
    total_projects: int = Field(0, description="Projects assigned to the vendor")
    completed_projects: int = Field(0, description="Assigned projects that are completed or archived")
    rated_projects: int = Field(0, description="Projects with a counted (non-orphaned, deduplicated) rating")
    avg_success: Optional[float] = Field(None, description="Average success sub-rating")
    avg_quality: Optional[float] = Field(None, description="Average quality sub-rating")
    avg_communication: Optional[float] = Field(None, description="Average communication sub-rating")
    avg_overall: Optional[float] = Field(None, description="Average calculated overall rating")
    recommendation_rate: Optional[float] = Field(None, description="Share of ratings recommending again (0-1)")
    on_time_rate: Optional[float] = Field(None, description="Share of rated projects delivered on time (0-1)")
    on_budget_rate: Optional[float] = Field(None, description="Share of rated projects delivered on budget (0-1)")
    last_project_date: Optional[datetime] = Field(None, description="Most recent project creation date")
    performance_tier: str = Field(..., description="Tier bucket of avg_overall")

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "vendor_id": "VEN-3",
                "total_projects": 12,
                "completed_projects": 10,
                "rated_projects": 8,
                "avg_success": 8.25,
                "avg_quality": 8.5,
                "avg_communication": 7.67,
                "avg_overall": 8.14,
                "recommendation_rate": 0.875,
                "on_time_rate": 0.75,
                "on_budget_rate": 1.0,
                "last_project_date": "2024-09-01T00:00:00Z",
                "performance_tier": "top",
            }
        },
    )
