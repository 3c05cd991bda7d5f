"""
Spot API Endpoints.

Owners register spots; renters browse what is free on a given date.
Availability is always read from the Spot Ledger, never from a cache.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from campus_parking.app.db.session import get_db
from campus_parking.app.models.spot import Spot
from campus_parking.app.schemas.spot import SpotCreate, SpotResponse, SpotAvailabilityResponse
from campus_parking.app.core.dependencies import get_current_user
from campus_parking.app.core.exceptions import ConflictError
from campus_parking.app.services.engine import Engine, get_engine
from campus_parking.app.services.audit import log_user_action, AuditAction

router = APIRouter(prefix="/spots", tags=["Spots"])


@router.post("", response_model=SpotResponse, status_code=status.HTTP_201_CREATED)
async def register_spot(
    payload: SpotCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Register a spot owned by the caller."""
    existing = await db.execute(select(Spot.id).where(Spot.code == payload.code))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("Spot code already registered", details={"code": payload.code})

    spot = Spot(
        code=payload.code,
        lot=payload.lot,
        spot_type=payload.spot_type,
        distance_to_campus_m=payload.distance_to_campus_m,
        compact_only=payload.compact_only,
        owner_id=current_user["user_id"],
        is_active=True,
    )
    db.add(spot)
    await db.commit()
    await db.refresh(spot)

    await log_user_action(
        db, current_user, AuditAction.SPOT_REGISTERED,
        target_type="spot", target_id=spot.id,
        metadata={"code": spot.code, "lot": spot.lot},
    )
    return SpotResponse.model_validate(spot)


@router.get("/available", response_model=SpotAvailabilityResponse)
async def available_spots(
    lot: str = Query(..., min_length=1),
    on: date = Query(..., alias="date"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    engine: Engine = Depends(get_engine),
):
    spots = await engine.ledger.query(db, lot, on)
    return SpotAvailabilityResponse(
        lot=lot,
        date=on.isoformat(),
        spots=[SpotResponse.model_validate(s) for s in spots],
    )
