"""
Admin Rental API Endpoints.

Dispute rulings and the reassignment trail. Admin only.
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from campus_parking.app.db.session import get_db
from campus_parking.app.schemas.rental import DisputeResolution, RentalResponse, ReassignmentRecordResponse
from campus_parking.app.core.guards import require_admin
from campus_parking.app.services.engine import Engine, get_engine
from campus_parking.app.services.audit import log_user_action, AuditAction

router = APIRouter(prefix="/admin/rentals", tags=["Admin - Rentals"])


@router.post("/{rental_id}/resolve", response_model=RentalResponse)
async def resolve_dispute(
    rental_id: int,
    payload: DisputeResolution,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    engine: Engine = Depends(get_engine),
):
    """
    Rule on a DISPUTED rental.

    COMPLETE pays the owner (minus the platform fee); CANCEL refunds the
    renter in full. Optionally penalizes one party.
    """
    rental = await engine.lifecycle.resolve_dispute(
        db, rental_id,
        admin_id=current_user["user_id"],
        outcome=payload.outcome,
        penalize_user_id=payload.penalize_user_id,
        penalty_amount=payload.penalty_amount,
    )
    await log_user_action(
        db, current_user, AuditAction.DISPUTE_RESOLVED,
        target_type="rental", target_id=rental_id,
        metadata={
            "outcome": payload.outcome,
            "penalize_user_id": payload.penalize_user_id,
            "penalty_amount": payload.penalty_amount,
            "note": payload.note,
        },
    )
    return RentalResponse.model_validate(rental)


@router.get("/{rental_id}/reassignments", response_model=List[ReassignmentRecordResponse])
async def reassignment_history(
    rental_id: int,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    engine: Engine = Depends(get_engine),
):
    records = await engine.coordinator.history(db, rental_id)
    return [ReassignmentRecordResponse.model_validate(r) for r in records]
