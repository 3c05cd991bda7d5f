"""
Schedule API Endpoints.

Entry point for the schedule collaborator: stores a user's weekly
schedule snapshot and invalidates their cached rankings.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from campus_parking.app.db.session import get_db
from campus_parking.app.schemas.schedule import ScheduleProfileUpsert, ScheduleProfileResponse
from campus_parking.app.core.dependencies import get_current_user
from campus_parking.app.core.exceptions import ResourceNotFoundError
from campus_parking.app.services import schedule_store
from campus_parking.app.services.engine import Engine, get_engine
from campus_parking.app.services.audit import log_user_action, AuditAction

router = APIRouter(prefix="/schedules", tags=["Schedules"])


@router.put("/me", response_model=ScheduleProfileResponse)
async def upsert_my_schedule(
    payload: ScheduleProfileUpsert,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    engine: Engine = Depends(get_engine),
):
    """
    Create or replace the caller's schedule profile.

    Rejects malformed schedules without touching the stored one.
    """
    user_id = current_user["user_id"]
    profile = await schedule_store.upsert_profile(
        db,
        user_id=user_id,
        grade_level=payload.grade_level,
        vehicle_size=payload.vehicle_size,
        home_latitude=payload.home_latitude,
        home_longitude=payload.home_longitude,
        preference_tags=payload.preference_tags,
        days=[d.model_dump() for d in payload.days],
    )
    await engine.ranker.invalidate(user_id)

    await log_user_action(
        db, current_user, AuditAction.SCHEDULE_UPDATED,
        target_type="schedule_profile", target_id=profile.id,
    )
    return ScheduleProfileResponse.model_validate(profile)


@router.get("/me", response_model=ScheduleProfileResponse)
async def get_my_schedule(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    profile = await schedule_store.get_profile(db, current_user["user_id"])
    if profile is None:
        raise ResourceNotFoundError("Schedule profile", current_user["user_id"])
    return ScheduleProfileResponse.model_validate(profile)
