"""
Carpool API Endpoints.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from campus_parking.app.db.session import get_db
from campus_parking.app.schemas.carpool import CarpoolCreate, CarpoolResponse
from campus_parking.app.core.dependencies import get_current_user
from campus_parking.app.services import schedule_store
from campus_parking.app.services.audit import log_user_action, AuditAction

router = APIRouter(prefix="/carpools", tags=["Carpools"])


@router.post("", response_model=CarpoolResponse, status_code=status.HTTP_201_CREATED)
async def create_carpool(
    payload: CarpoolCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Form a carpool group with the caller as first member."""
    group = await schedule_store.create_carpool(
        db, creator_id=current_user["user_id"], name=payload.name, capacity=payload.capacity
    )
    await log_user_action(
        db, current_user, AuditAction.CARPOOL_CREATED,
        target_type="carpool_group", target_id=group.id,
    )
    return CarpoolResponse.model_validate(group)


@router.post("/{group_id}/join", response_model=CarpoolResponse)
async def join_carpool(
    group_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    group = await schedule_store.join_carpool(db, group_id, current_user["user_id"])
    await log_user_action(
        db, current_user, AuditAction.CARPOOL_JOINED,
        target_type="carpool_group", target_id=group.id,
    )
    return CarpoolResponse.model_validate(group)
