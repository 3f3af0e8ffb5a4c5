"""
Pydantic model for canonical project ratings.

Both storage shapes (paired project+rating rows and consolidated records)
normalize into this single type; nothing past the normalizer knows which
shape a rating came from.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..services.rating_calculator import calculate_overall


class Provenance(str, Enum):
    """Where a rating came from."""

    LIVE = "live"  # Submitted by a real reviewer
    IMPORTED = "imported"  # Bulk historical load (sentinel rater identity)


class RatingStatus(str, Enum):
    """Completeness of a project's rating. Derived on read, never stored."""

    NEEDS_REVIEW = "Needs Review"
    INCOMPLETE = "Incomplete"
    COMPLETE = "Complete"


class Rating(BaseModel):
    """One evaluation of a project's vendor performance."""

    rating_id: str = Field(..., description="Rating identifier")
    project_id: str = Field(..., description="Rated project (may not resolve: orphan)")
    vendor_id: Optional[str] = Field(None, description="Vendor as recorded on the rating")
    success: Optional[int] = Field(None, description="Project success sub-rating (1-10)")
    quality: Optional[int] = Field(None, description="Quality sub-rating (1-10)")
    communication: Optional[int] = Field(None, description="Communication sub-rating (1-10)")
    supplied_overall: Optional[float] = Field(None, description="Overall given directly by the rater (audit only)")
    stored_overall: Optional[float] = Field(None, description="Overall as currently persisted")
    recommend: Optional[bool] = Field(None, description="Would hire this vendor again")
    on_time: Optional[bool] = Field(None, description="Delivered on time")
    on_budget: Optional[bool] = Field(None, description="Delivered on budget")
    what_went_well: Optional[str] = Field(None, description="Free-text positive feedback")
    areas_for_improvement: Optional[str] = Field(None, description="Free-text improvement feedback")
    rater_email: Optional[str] = Field(None, description="Rater identity")
    provenance: Provenance = Field(default=Provenance.LIVE, description="Live review or bulk import")
    created_at: Optional[datetime] = Field(None, description="When the rating was created")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "rating_id": "RAT-1718000000",
                "project_id": "PRJ-0042",
                "vendor_id": "VEN-3",
                "success": 8,
                "quality": 9,
                "communication": 7,
                "recommend": True,
                "rater_email": "imported@system.com",
                "provenance": "imported",
                "created_at": "2024-06-10T06:13:20Z",
            }
        }
    )

    @property
    def sub_ratings(self) -> tuple[Optional[int], Optional[int], Optional[int]]:
        return (self.success, self.quality, self.communication)

    @property
    def present_count(self) -> int:
        """Number of sub-ratings that are present (0-3)."""
        return sum(1 for value in self.sub_ratings if value is not None)

    @property
    def is_imported(self) -> bool:
        return self.provenance == Provenance.IMPORTED

    @property
    def overall(self) -> Optional[float]:
        """Overall rating as the calculator derives it (used for aggregation)."""
        return calculate_overall(self.success, self.quality, self.communication, supplied=self.supplied_overall)
