"""Workout data models shared by the stress scorer and the matcher."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ActivityCategory(str, Enum):
    """Coarse activity categories used for matching and per-sport scaling."""
    RUN = "run"
    BIKE = "bike"
    SWIM = "swim"
    STRENGTH = "strength"
    OTHER = "other"


# Categories that carry their own learned scaling factor
SCALED_SPORTS = (ActivityCategory.BIKE, ActivityCategory.RUN, ActivityCategory.SWIM)


class WorkoutObservation(BaseModel):
    """
    An activity record as observed by one data source.

    Observations are immutable once fetched. The same real-world workout
    may be observed by several sources (a wearable, a training log import,
    the local store) and the matcher decides which ones describe the same
    activity.
    """

    model_config = ConfigDict(frozen=True)

    source_id: str = Field(..., description="Identifier of the record within its source")
    start_time: datetime = Field(..., description="Local start time of the activity")
    duration_seconds: float = Field(..., ge=0, description="Elapsed duration in seconds")
    distance_meters: Optional[float] = Field(None, ge=0, description="Distance in meters")
    activity_category: ActivityCategory = Field(ActivityCategory.OTHER)
    average_heart_rate: Optional[float] = Field(None, ge=0, description="Average HR in bpm")
    average_power: Optional[float] = Field(None, ge=0, description="Average power in watts")
    normalized_power: Optional[float] = Field(None, ge=0, description="Normalized power in watts")

    @property
    def end_time(self) -> datetime:
        """Start time plus duration."""
        return self.start_time + timedelta(seconds=self.duration_seconds)

    @property
    def has_midnight_start(self) -> bool:
        """True when the start time is exactly 00:00 (date-only imports)."""
        return self.start_time.hour == 0 and self.start_time.minute == 0
