"""
Admin operations Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List

from campus_parking.app.models.outbox_event import EventType


class SweepResponse(BaseModel):
    """Rental ids touched by each sweep step."""
    expired_offers: List[int]
    auto_confirmed: List[int]
    auto_completed: List[int]


class OutboxEventResponse(BaseModel):
    id: int
    event_type: EventType
    dedupe_key: str
    payload: Dict[str, Any]
    created_at: datetime

    class Config:
        from_attributes = True


class OutboxAck(BaseModel):
    """Event ids the relay has delivered."""
    event_ids: List[int] = Field(..., min_length=1, max_length=500)
