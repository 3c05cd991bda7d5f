"""
Admin Operations API Endpoints.

Periodic sweeps (offer expiry, auto-confirm, auto-complete) and the
outbox relay interface used by the notification and analytics
collaborators.
"""

from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from campus_parking.app.db.session import get_db
from campus_parking.app.core.guards import require_admin
from campus_parking.app.schemas.ops import SweepResponse, OutboxEventResponse, OutboxAck
from campus_parking.app.services.engine import Engine, get_engine
from campus_parking.app.services.events import EventPublisher
from campus_parking.app.services.audit import log_user_action, AuditAction

router = APIRouter(prefix="/admin/ops", tags=["Admin - Ops"])


@router.post("/sweep", response_model=SweepResponse)
async def run_sweep(
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    engine: Engine = Depends(get_engine),
):
    """
    Run the lifecycle timers once.

    1. Unanswered reassignment offers past expiry are rejected
    2. PENDING rentals past the auto-confirm timeout are confirmed
    3. CONFIRMED rentals whose date has elapsed are completed
    """
    expired = await engine.coordinator.expire_offers(db)
    confirmed = await engine.lifecycle.auto_confirm_due(db)
    completed = await engine.lifecycle.complete_due(db)

    await log_user_action(
        db, current_user, AuditAction.SWEEP_RUN,
        metadata={"expired_offers": expired, "auto_confirmed": confirmed, "auto_completed": completed},
    )
    return SweepResponse(expired_offers=expired, auto_confirmed=confirmed, auto_completed=completed)


@router.get("/outbox", response_model=List[OutboxEventResponse])
async def pending_events(
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Undelivered outbound events, oldest first."""
    events = await EventPublisher.pending(db, limit)
    return [OutboxEventResponse.model_validate(e) for e in events]


@router.post("/outbox/ack")
async def acknowledge_events(
    payload: OutboxAck,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Mark events delivered. Acknowledging twice is harmless."""
    count = await EventPublisher.mark_delivered(db, payload.event_ids)
    await db.commit()
    return {"delivered": count}
