"""
Outbound Event Service.

The engine never calls notification or analytics code directly. It
publishes typed events into the outbox table inside the caller's
transaction; a relay delivers them at-least-once and consumers drop
duplicates by `dedupe_key`.
"""

import logging
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update

from campus_parking.app.models.outbox_event import OutboxEvent, EventType

logger = logging.getLogger("campus_parking.events")


@dataclass(frozen=True)
class MatchFound:
    user_id: int
    candidate_id: int
    kind: str
    score: int
    fingerprint: str

    event_type = EventType.MATCH_FOUND

    @property
    def dedupe_key(self) -> str:
        return f"match:{self.kind}:{self.user_id}:{self.candidate_id}:{self.fingerprint[:16]}"


@dataclass(frozen=True)
class RentalStateChanged:
    rental_id: int
    previous_status: Optional[str]
    status: str
    owner_id: int
    renter_id: int
    reason: Optional[str] = None

    event_type = EventType.RENTAL_STATE_CHANGED

    @property
    def dedupe_key(self) -> str:
        return f"rental:{self.rental_id}:{self.previous_status}->{self.status}"


@dataclass(frozen=True)
class ReassignmentOffered:
    rental_id: int
    renter_id: int
    candidate_spot_id: int
    expires_at: str

    event_type = EventType.REASSIGNMENT_OFFERED

    @property
    def dedupe_key(self) -> str:
        return f"offer:{self.rental_id}:{self.candidate_spot_id}"


@dataclass(frozen=True)
class ReassignmentRecorded:
    record_id: int
    rental_id: int
    candidate_spot_id: Optional[int]
    outcome: str

    event_type = EventType.REASSIGNMENT_RECORDED

    @property
    def dedupe_key(self) -> str:
        return f"reassignment:{self.record_id}"


@dataclass(frozen=True)
class PenaltyCreated:
    penalty_id: int
    user_id: int
    rental_id: Optional[int]
    offense_type: str
    amount: float

    event_type = EventType.PENALTY_CREATED

    @property
    def dedupe_key(self) -> str:
        return f"penalty:{self.penalty_id}"


@dataclass(frozen=True)
class CreditGranted:
    credit_id: int
    user_id: int
    rental_id: Optional[int]
    amount: float

    event_type = EventType.CREDIT_GRANTED

    @property
    def dedupe_key(self) -> str:
        return f"credit:{self.credit_id}"


class EventPublisher:
    """Writes events to the outbox. The caller owns the transaction."""

    async def publish(self, db: AsyncSession, event) -> Optional[OutboxEvent]:
        """
        Add an event to the outbox.

        Returns:
            The new OutboxEvent, or None if an event with the same dedupe
            key was already published
        """
        key = event.dedupe_key
        existing = await db.execute(
            select(OutboxEvent.id).where(OutboxEvent.dedupe_key == key)
        )
        if existing.scalar_one_or_none() is not None:
            return None

        row = OutboxEvent(
            event_type=event.event_type,
            dedupe_key=key,
            payload=asdict(event),
        )
        db.add(row)
        await db.flush()

        logger.info(
            "Event queued: %s", event.event_type.value,
            extra={"event_type": event.event_type.value, "dedupe_key": key},
        )
        return row

    @staticmethod
    async def pending(db: AsyncSession, limit: int = 100) -> List[OutboxEvent]:
        """Undelivered events, oldest first (for the relay)."""
        result = await db.execute(
            select(OutboxEvent)
            .where(OutboxEvent.delivered_at.is_(None))
            .order_by(OutboxEvent.id)
            .limit(limit)
        )
        return result.scalars().all()

    @staticmethod
    async def mark_delivered(db: AsyncSession, event_ids: List[int]) -> int:
        """Mark events as delivered."""
        if not event_ids:
            return 0
        result = await db.execute(
            update(OutboxEvent)
            .where(OutboxEvent.id.in_(event_ids), OutboxEvent.delivered_at.is_(None))
            .values(delivered_at=datetime.utcnow())
        )
        return result.rowcount
