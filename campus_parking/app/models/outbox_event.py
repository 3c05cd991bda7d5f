"""
Outbox Event database model.

Outbound events for the notification, analytics and admin-review
collaborators. Written in the same transaction as the state change that
produced them and delivered at-least-once.
"""

import enum
from sqlalchemy import Column, Integer, String, DateTime, JSON, Enum
from sqlalchemy.sql import func
from campus_parking.app.db.session import Base


class EventType(str, enum.Enum):
    MATCH_FOUND = "MATCH_FOUND"
    RENTAL_STATE_CHANGED = "RENTAL_STATE_CHANGED"
    REASSIGNMENT_OFFERED = "REASSIGNMENT_OFFERED"
    REASSIGNMENT_RECORDED = "REASSIGNMENT_RECORDED"
    PENALTY_CREATED = "PENALTY_CREATED"
    CREDIT_GRANTED = "CREDIT_GRANTED"


class OutboxEvent(Base):
    """
    Outbox table.

    `dedupe_key` lets consumers drop duplicates.
    """
    __tablename__ = "outbox_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    event_type = Column(Enum(EventType), nullable=False, index=True)
    dedupe_key = Column(String(255), nullable=False, unique=True, index=True)
    payload = Column(JSON, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<OutboxEvent(id={self.id}, type='{self.event_type.value}', key='{self.dedupe_key}')>"
