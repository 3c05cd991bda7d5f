"""
Schedule profile Pydantic schemas.

Weekly schedules are supplied by the schedule collaborator.
"""

from pydantic import BaseModel, Field
from datetime import datetime, time
from typing import Optional, List

from campus_parking.app.models.enums import GradeLevel, VehicleSize


class ScheduleDayIn(BaseModel):
    """One weekday window (0 = Monday ... 4 = Friday)."""
    weekday: int = Field(..., ge=0, le=4)
    arrival: time
    departure: time
    lunch_off_campus: bool = False
    extracurricular_end: Optional[time] = None


class ScheduleProfileUpsert(BaseModel):
    """Schema for replacing the caller's schedule profile."""
    grade_level: GradeLevel
    vehicle_size: VehicleSize = VehicleSize.STANDARD
    home_latitude: float = Field(..., ge=-90, le=90)
    home_longitude: float = Field(..., ge=-180, le=180)
    preference_tags: List[str] = Field(default_factory=list, max_length=20)
    days: List[ScheduleDayIn] = Field(..., min_length=5, max_length=5)


class ScheduleDayResponse(BaseModel):
    weekday: int
    arrival: time
    departure: time
    lunch_off_campus: bool
    extracurricular_end: Optional[time]

    class Config:
        from_attributes = True


class ScheduleProfileResponse(BaseModel):
    """Schema for schedule profile response."""
    id: int
    user_id: int
    grade_level: GradeLevel
    vehicle_size: VehicleSize
    home_latitude: float
    home_longitude: float
    preference_tags: List[str]
    days: List[ScheduleDayResponse]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
