"""
Rental API Endpoints.

Renting a spot, confirming and cancelling, filing reports and answering
reassignment offers. Every action is restricted to the parties of the
rental; reassignment answers to the renter alone.
"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from campus_parking.app.db.session import get_db
from campus_parking.app.schemas.rental import RentalCreate, RentalResponse, ReportCreate
from campus_parking.app.core.dependencies import get_current_user
from campus_parking.app.core.guards import RentalPartyGuard
from campus_parking.app.services.engine import Engine, get_engine
from campus_parking.app.services.audit import log_user_action, AuditAction

router = APIRouter(prefix="/rentals", tags=["Rentals"])
party_guard = RentalPartyGuard()


@router.post("", response_model=RentalResponse, status_code=status.HTTP_201_CREATED)
async def create_rental(
    payload: RentalCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    engine: Engine = Depends(get_engine),
):
    """
    Rent a spot for one date.

    The spot is claimed and the price is held in escrow (authorized, not
    captured). Returns 409 if the spot is already taken for the date.
    """
    rental = await engine.lifecycle.create(
        db,
        spot_id=payload.spot_id,
        rental_date=payload.rental_date,
        renter_id=current_user["user_id"],
        price=payload.price,
        vehicle_size=payload.vehicle_size,
    )
    await log_user_action(
        db, current_user, AuditAction.RENTAL_CREATED,
        target_type="rental", target_id=rental.id,
        metadata={"spot_id": rental.spot_id, "rental_date": rental.rental_date.isoformat(), "price": rental.price},
    )
    return RentalResponse.model_validate(rental)


@router.get("/{rental_id}", response_model=RentalResponse)
async def get_rental(
    rental_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    engine: Engine = Depends(get_engine),
):
    rental = await engine.lifecycle.get(db, rental_id)
    party_guard.enforce(rental, current_user)
    return RentalResponse.model_validate(rental)


@router.post("/{rental_id}/confirm", response_model=RentalResponse)
async def confirm_rental(
    rental_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    engine: Engine = Depends(get_engine),
):
    """Capture the escrow hold. A payment failure puts the rental under review."""
    party_guard.enforce(await engine.lifecycle.get(db, rental_id), current_user)
    rental = await engine.lifecycle.confirm(db, rental_id, actor_id=current_user["user_id"])
    await log_user_action(db, current_user, AuditAction.RENTAL_CONFIRMED, target_type="rental", target_id=rental_id)
    return RentalResponse.model_validate(rental)


@router.post("/{rental_id}/cancel", response_model=RentalResponse)
async def cancel_rental(
    rental_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    engine: Engine = Depends(get_engine),
):
    """
    Cancel a rental.

    Late cancellations (within the full-refund window) carry a penalty
    for the cancelling party.
    """
    party_guard.enforce(await engine.lifecycle.get(db, rental_id), current_user)
    rental = await engine.lifecycle.cancel(db, rental_id, actor_id=current_user["user_id"])
    await log_user_action(
        db, current_user, AuditAction.RENTAL_CANCELLED,
        target_type="rental", target_id=rental_id,
        metadata={"refund": rental.settled_amount},
    )
    return RentalResponse.model_validate(rental)


@router.post("/{rental_id}/reports", response_model=RentalResponse, status_code=status.HTTP_201_CREATED)
async def file_report(
    rental_id: int,
    payload: ReportCreate,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    engine: Engine = Depends(get_engine),
):
    """
    File a report against a confirmed rental.

    BLOCKED_SPOT starts a reassignment (or refunds with credit when none
    is possible); other kinds put the rental under review.
    """
    party_guard.enforce(await engine.lifecycle.get(db, rental_id), current_user)
    rental = await engine.lifecycle.report(
        db, rental_id,
        reporter_id=current_user["user_id"],
        kind=payload.kind,
        description=payload.description,
    )
    await log_user_action(
        db, current_user, AuditAction.REPORT_FILED,
        target_type="rental", target_id=rental_id,
        metadata={"kind": payload.kind.value},
    )
    return RentalResponse.model_validate(rental)


@router.post("/{rental_id}/reassignment/accept", response_model=RentalResponse)
async def accept_reassignment(
    rental_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    engine: Engine = Depends(get_engine),
):
    party_guard.enforce(await engine.lifecycle.get(db, rental_id), current_user, renter_only=True)
    rental = await engine.coordinator.accept_offer(db, rental_id, renter_id=current_user["user_id"])
    await log_user_action(
        db, current_user, AuditAction.REASSIGNMENT_ACCEPTED,
        target_type="rental", target_id=rental_id,
        metadata={"spot_id": rental.spot_id},
    )
    return RentalResponse.model_validate(rental)


@router.post("/{rental_id}/reassignment/reject", response_model=RentalResponse)
async def reject_reassignment(
    rental_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    engine: Engine = Depends(get_engine),
):
    """Decline the offered spot; the rental is refunded with a platform credit."""
    party_guard.enforce(await engine.lifecycle.get(db, rental_id), current_user, renter_only=True)
    rental = await engine.coordinator.reject_offer(db, rental_id, renter_id=current_user["user_id"])
    await log_user_action(db, current_user, AuditAction.REASSIGNMENT_REJECTED, target_type="rental", target_id=rental_id)
    return RentalResponse.model_validate(rental)
