from pydantic import BaseModel, Field, model_validator
from typing import Optional, List

# 24-hour HH:MM, e.g. 09:00 or 17:30
TIME_PATTERN = r"^([0-1][0-9]|2[0-3]):[0-5][0-9]$"

# Canonical 8-4-4-4-12 hex identifier
UUID_PATTERN = r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"

DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"


def _minutes(value: str) -> int:
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


class AvailabilityPatternCreate(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0 = Sunday ... 6 = Saturday")
    start_time: str = Field(..., pattern=TIME_PATTERN, description="Local start time (HH:MM)")
    end_time: str = Field(..., pattern=TIME_PATTERN, description="Local end time (HH:MM)")

    @model_validator(mode="after")
    def check_time_order(self):
        if _minutes(self.end_time) <= _minutes(self.start_time):
            raise ValueError("End time must be after start time")
        return self


class AvailabilityPatternUpdate(BaseModel):
    """Patch for a pattern; only the fields that are set are applied"""
    day_of_week: Optional[int] = Field(None, ge=0, le=6, description="0 = Sunday ... 6 = Saturday")
    start_time: Optional[str] = Field(None, pattern=TIME_PATTERN, description="Local start time (HH:MM)")
    end_time: Optional[str] = Field(None, pattern=TIME_PATTERN, description="Local end time (HH:MM)")
    is_active: Optional[bool] = Field(None, description="Whether the pattern generates slots")


class AvailabilityPatternResponse(BaseModel):
    id: str = Field(..., description="Pattern ID")
    tutor_id: str = Field(..., description="Tutor ID")
    day_of_week: int = Field(..., description="0 = Sunday ... 6 = Saturday")
    start_time: str = Field(..., description="Local start time (HH:MM)")
    end_time: str = Field(..., description="Local end time (HH:MM)")
    is_active: bool = Field(..., description="Whether the pattern generates slots")


class TimeSlotResponse(BaseModel):
    start: str = Field(..., description="Slot start (ISO-8601, UTC)")
    end: str = Field(..., description="Slot end (ISO-8601, UTC)")


class AvailableSlotsResponse(BaseModel):
    slots: List[TimeSlotResponse] = Field(default_factory=list, description="Bookable slots, ascending")


class TutorPatternsResponse(BaseModel):
    tutor_id: str = Field(..., description="Tutor ID")
    timezone: Optional[str] = Field(None, description="Tutor's IANA timezone")
    patterns: List[AvailabilityPatternResponse] = Field(default_factory=list)
