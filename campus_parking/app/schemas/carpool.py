"""
Carpool group Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import List


class CarpoolCreate(BaseModel):
    """Schema for forming a carpool group."""
    name: str = Field(..., min_length=1, max_length=120)
    capacity: int = Field(4, ge=2, le=8, description="Seats including the driver")


class CarpoolResponse(BaseModel):
    id: int
    name: str
    created_by_id: int
    capacity: int
    is_active: bool
    member_ids: List[int]
    created_at: datetime

    class Config:
        from_attributes = True
