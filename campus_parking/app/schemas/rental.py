"""
Rental Pydantic schemas.

Requests and responses for renting spots, reporting problems and
answering reassignment offers.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import List, Optional, Literal

from campus_parking.app.models.enums import VehicleSize
from campus_parking.app.models.rental_enums import (
    RentalEvent,
    RentalStatus,
    EscrowSettlement,
    ReportKind,
    ReassignmentOutcome,
)


class RentalCreate(BaseModel):
    """Schema for renting a spot for one date."""
    spot_id: int
    rental_date: date
    price: float = Field(..., gt=0)
    vehicle_size: VehicleSize = VehicleSize.STANDARD


class ReportCreate(BaseModel):
    """Schema for a report filed by a party of the rental."""
    kind: ReportKind
    description: Optional[str] = Field(None, max_length=2000)


class DisputeResolution(BaseModel):
    """Admin ruling on a disputed rental."""
    outcome: Literal["COMPLETE", "CANCEL"]
    penalize_user_id: Optional[int] = None
    penalty_amount: Optional[float] = Field(None, gt=0)
    note: Optional[str] = Field(None, max_length=1000)


class RentalResponse(BaseModel):
    """Schema for rental response."""
    id: int
    spot_id: int
    original_spot_id: Optional[int]
    rental_date: date
    owner_id: int
    renter_id: int
    vehicle_size: VehicleSize
    price: float
    status: RentalStatus
    display_status: str
    allowed_events: List[RentalEvent]
    settlement: Optional[EscrowSettlement]
    settled_amount: Optional[float]
    reassignment_count: int
    offered_spot_id: Optional[int]
    offer_expires_at: Optional[datetime]
    created_at: datetime
    confirmed_at: Optional[datetime]
    completed_at: Optional[datetime]
    cancelled_at: Optional[datetime]

    class Config:
        from_attributes = True


class ReassignmentRecordResponse(BaseModel):
    id: int
    rental_id: int
    blocked_spot_id: int
    candidate_spot_id: Optional[int]
    outcome: ReassignmentOutcome
    recorded_at: datetime

    class Config:
        from_attributes = True
