"""
Spot Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List

from campus_parking.app.models.spot import SpotType


class SpotCreate(BaseModel):
    """Schema for an owner registering a spot."""
    code: str = Field(..., min_length=1, max_length=20, description="Identifier painted on the spot")
    lot: str = Field(..., min_length=1, max_length=50)
    spot_type: SpotType = SpotType.SINGLE
    distance_to_campus_m: float = Field(..., ge=0, description="Walking distance to campus in metres")
    compact_only: bool = False


class SpotResponse(BaseModel):
    id: int
    code: str
    lot: str
    spot_type: SpotType
    distance_to_campus_m: float
    compact_only: bool
    owner_id: int
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class SpotAvailabilityResponse(BaseModel):
    lot: str
    date: str
    spots: List[SpotResponse]
