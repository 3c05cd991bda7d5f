"""
Rental Lifecycle Manager.

Drives rentals through the state machine in `transitions.py` and owns
escrow bookkeeping:

* the hold is captured only on PENDING -> CONFIRMED;
* it is released (refund or transfer) exactly once, at a terminal status.

Every operation on a rental runs under a per-rental asyncio lock plus a
row lock (SELECT ... FOR UPDATE). Payment calls happen before any state
is written, so a failed call leaves the rental as it was; an exhausted
call escalates the rental to DISPUTED with a system report.

Lock order is always rental first, then spot.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, exists, and_

from campus_parking.app.core.config import settings
from campus_parking.app.core.exceptions import (
    CollaboratorFailure,
    InsufficientPermissionsError,
    InvalidTransitionError,
    InvariantViolation,
    ResourceNotFoundError,
    ValidationError,
)
from campus_parking.app.core.locks import KeyedLock
from campus_parking.app.domain.rentals.transitions import next_status
from campus_parking.app.models.enums import VehicleSize
from campus_parking.app.models.penalty import Penalty
from campus_parking.app.models.rental import Rental
from campus_parking.app.models.rental_enums import (
    EscrowSettlement,
    OffenseType,
    RentalEvent,
    RentalStatus,
    ReportKind,
)
from campus_parking.app.models.report import Report
from campus_parking.app.models.spot import Spot
from campus_parking.app.services.events import EventPublisher, PenaltyCreated, RentalStateChanged
from campus_parking.app.services.payments import PaymentError, PaymentService
from campus_parking.app.services.spot_ledger import SpotLedger

logger = logging.getLogger("campus_parking.rentals")


def utc_naive(value: Optional[datetime]) -> Optional[datetime]:
    """Normalize a stored timestamp to naive UTC for comparisons."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def end_of_day(day: date) -> datetime:
    return datetime.combine(day + timedelta(days=1), time.min)


class ResolutionOutcome:
    COMPLETE = "COMPLETE"
    CANCEL = "CANCEL"


class RentalLifecycleManager:
    """Rental state machine, escrow bookkeeping and claim handling."""

    def __init__(
        self,
        ledger: SpotLedger,
        payments: PaymentService,
        publisher: Optional[EventPublisher] = None,
    ):
        self.ledger = ledger
        self.payments = payments
        self.publisher = publisher or EventPublisher()
        self.coordinator = None  # Set by AllocationCoordinator
        self._locks = KeyedLock()

    # Locking and loading

    @asynccontextmanager
    async def locked(self, rental_id: int):
        """Serialize every operation on one rental."""
        async with self._locks.acquire(("rental", rental_id)):
            yield

    async def get(self, db: AsyncSession, rental_id: int) -> Rental:
        rental = await db.get(Rental, rental_id)
        if rental is None:
            raise ResourceNotFoundError("Rental", rental_id)
        return rental

    async def load_for_update(self, db: AsyncSession, rental_id: int) -> Rental:
        result = await db.execute(
            select(Rental)
            .where(Rental.id == rental_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        rental = result.scalar_one_or_none()
        if rental is None:
            raise ResourceNotFoundError("Rental", rental_id)
        return rental

    @staticmethod
    def _require_party(rental: Rental, actor_id: Optional[int]):
        if actor_id is not None and actor_id not in (rental.renter_id, rental.owner_id):
            raise InsufficientPermissionsError(
                "Only the renter or the owner can act on this rental",
                details={"rental_id": rental.id},
            )

    # Internal bookkeeping

    async def _apply(
        self,
        db: AsyncSession,
        rental: Rental,
        event: RentalEvent,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RentalStatus:
        """Apply a state machine event and queue the state-change event."""
        previous = rental.status
        rental.status = next_status(previous, event)
        now = now or datetime.utcnow()

        if rental.status == RentalStatus.CONFIRMED:
            rental.confirmed_at = now
        elif rental.status == RentalStatus.COMPLETED:
            rental.completed_at = now
        elif rental.status == RentalStatus.CANCELLED:
            rental.cancelled_at = now

        await self.publisher.publish(db, RentalStateChanged(
            rental_id=rental.id,
            previous_status=previous.value,
            status=rental.status.value,
            owner_id=rental.owner_id,
            renter_id=rental.renter_id,
            reason=reason,
        ))
        logger.info(
            "Rental %s: %s -> %s", rental.id, previous.value, rental.status.value,
            extra={"rental_id": rental.id, "event": event.value, "reason": reason},
        )
        return rental.status

    async def _capture(self, db: AsyncSession, rental: Rental, now: Optional[datetime] = None):
        if rental.escrow_captured_at is not None or rental.status != RentalStatus.PENDING:
            raise InvariantViolation(
                "Escrow capture outside PENDING -> CONFIRMED",
                details={"rental_id": rental.id, "status": rental.status.value},
            )
        await self.payments.capture(db, rental)
        rental.escrow_captured_at = now or datetime.utcnow()

    async def _settle(
        self,
        db: AsyncSession,
        rental: Rental,
        settlement: EscrowSettlement,
        amount: float,
        now: Optional[datetime] = None,
    ):
        """
        Release the escrow hold. Allowed once per rental.

        Raises:
            InvariantViolation: escrow already released
            PaymentError: the payment collaborator failed after retries
        """
        if rental.settlement is not None:
            raise InvariantViolation(
                "Escrow already released",
                details={"rental_id": rental.id, "settlement": rental.settlement.value},
            )

        if settlement == EscrowSettlement.REFUND:
            await self.payments.refund(db, rental, amount)
        else:
            await self.payments.transfer(db, rental, amount)

        rental.settlement = settlement
        rental.settled_amount = amount
        rental.settled_at = now or datetime.utcnow()

    async def _escalate(self, db: AsyncSession, rental: Rental, failure: Exception) -> Rental:
        """Move a rental to DISPUTED after a collaborator failure and commit."""
        db.add(Report(
            rental_id=rental.id,
            reporter_id=None,
            kind=ReportKind.SYSTEM_PAYMENT_FAILURE,
            description=getattr(failure, "message", str(failure)),
            is_open=True,
        ))
        await self._apply(db, rental, RentalEvent.ESCALATE, reason="payment_failure")
        await db.commit()
        await db.refresh(rental)

        logger.warning(
            "Rental %s escalated to DISPUTED after payment failure", rental.id,
            extra={"rental_id": rental.id, "error": getattr(failure, "details", None)},
        )
        return rental

    async def release_claims(self, db: AsyncSession, rental: Rental):
        """Release the offered candidate (if any), then the rental's own spot."""
        if rental.offered_spot_id is not None:
            await self.ledger.release(db, rental.offered_spot_id, rental.rental_date, rental_id=rental.id)
            rental.offered_spot_id = None
            rental.offer_expires_at = None
        await self.ledger.release(db, rental.spot_id, rental.rental_date, rental_id=rental.id)

    async def _add_penalty(
        self,
        db: AsyncSession,
        user_id: int,
        rental: Rental,
        offense: OffenseType,
        amount: float,
    ) -> Penalty:
        penalty = Penalty(user_id=user_id, rental_id=rental.id, offense_type=offense, amount=amount)
        db.add(penalty)
        await db.flush()
        await self.publisher.publish(db, PenaltyCreated(
            penalty_id=penalty.id,
            user_id=user_id,
            rental_id=rental.id,
            offense_type=offense.value,
            amount=amount,
        ))
        return penalty

    async def has_open_report(self, db: AsyncSession, rental_id: int) -> bool:
        result = await db.execute(
            select(exists().where(and_(Report.rental_id == rental_id, Report.is_open.is_(True))))
        )
        return bool(result.scalar())

    # Operations

    async def create(
        self,
        db: AsyncSession,
        spot_id: int,
        rental_date: date,
        renter_id: int,
        price: float,
        vehicle_size: VehicleSize = VehicleSize.STANDARD,
        now: Optional[datetime] = None,
    ) -> Rental:
        """
        Reserve a spot for a date and place an escrow hold.

        Raises:
            ResourceNotFoundError: unknown spot
            ValidationError: inactive or own spot, past date, bad price,
                vehicle does not fit
            ConflictError: spot already claimed for the date
            PaymentError: authorization failed after retries (no claim kept)
        """
        now = now or datetime.utcnow()

        spot = await db.get(Spot, spot_id)
        if spot is None:
            raise ResourceNotFoundError("Spot", spot_id)
        if not spot.is_active:
            raise ValidationError("Spot is not available for rent", details={"spot_id": spot_id})
        if spot.owner_id == renter_id:
            raise ValidationError("Owners cannot rent their own spot", details={"spot_id": spot_id})
        if rental_date < now.date():
            raise ValidationError("Rental date is in the past", details={"rental_date": rental_date.isoformat()})
        if price is None or price <= 0:
            raise ValidationError("Price must be positive", details={"price": price})
        if not spot.fits(vehicle_size):
            raise ValidationError(
                "Vehicle does not fit a compact-only spot",
                details={"spot_id": spot_id, "vehicle_size": vehicle_size.value},
            )

        async with self.ledger.guard(spot.id, rental_date):
            rental = Rental(
                spot_id=spot.id,
                rental_date=rental_date,
                owner_id=spot.owner_id,
                renter_id=renter_id,
                vehicle_size=vehicle_size,
                price=price,
                status=RentalStatus.PENDING,
            )
            # A conflict or failed hold discards the rental and its claim only
            async with db.begin_nested():
                db.add(rental)
                await db.flush()
                await self.ledger.claim(db, spot.id, rental_date, rental.id)
                await self.payments.authorize(db, rental)

            await self.publisher.publish(db, RentalStateChanged(
                rental_id=rental.id,
                previous_status=None,
                status=RentalStatus.PENDING.value,
                owner_id=rental.owner_id,
                renter_id=renter_id,
            ))
            await db.commit()

        await db.refresh(rental)
        logger.info(
            "Rental created",
            extra={"rental_id": rental.id, "spot_id": spot.id, "date": rental_date.isoformat()},
        )
        return rental

    async def confirm(
        self,
        db: AsyncSession,
        rental_id: int,
        actor_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Rental:
        """
        Capture the escrow hold (PENDING -> CONFIRMED).

        Raises:
            InvalidTransitionError: rental not PENDING
            PaymentError: capture failed after retries; the rental has been
                escalated to DISPUTED
        """
        now = now or datetime.utcnow()
        async with self.locked(rental_id):
            rental = await self.load_for_update(db, rental_id)
            self._require_party(rental, actor_id)
            next_status(rental.status, RentalEvent.CONFIRM)

            try:
                await self._capture(db, rental, now)
            except PaymentError as e:
                await self._escalate(db, rental, e)
                raise

            await self._apply(db, rental, RentalEvent.CONFIRM, now=now)
            await db.commit()
            await db.refresh(rental)
            return rental

    async def complete(self, db: AsyncSession, rental_id: int, now: Optional[datetime] = None) -> Rental:
        """
        Pay the owner once the rental date has elapsed (CONFIRMED -> COMPLETED).

        Raises:
            ValidationError: date not elapsed, an open report exists, or a
                reassignment offer is still pending
            InvalidTransitionError: rental not CONFIRMED
            PaymentError: transfer failed; the rental has been escalated
        """
        now = now or datetime.utcnow()
        async with self.locked(rental_id):
            rental = await self.load_for_update(db, rental_id)
            next_status(rental.status, RentalEvent.COMPLETE)

            if now < end_of_day(rental.rental_date):
                raise ValidationError(
                    "Rental date has not elapsed",
                    details={"rental_id": rental_id, "rental_date": rental.rental_date.isoformat()},
                )
            if await self.has_open_report(db, rental_id):
                raise ValidationError("Rental has an open report", details={"rental_id": rental_id})
            if rental.has_pending_offer:
                raise ValidationError(
                    "Reassignment offer is still pending",
                    details={"rental_id": rental_id, "offered_spot_id": rental.offered_spot_id},
                )

            payout = round(rental.price * (1 - settings.platform_fee_rate), 2)
            try:
                await self._settle(db, rental, EscrowSettlement.TRANSFER, payout, now)
            except PaymentError as e:
                await self._escalate(db, rental, e)
                raise

            await self._apply(db, rental, RentalEvent.COMPLETE, now=now)
            await self.release_claims(db, rental)
            await db.commit()
            await db.refresh(rental)
            return rental

    async def report(
        self,
        db: AsyncSession,
        rental_id: int,
        reporter_id: Optional[int],
        kind: ReportKind,
        description: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Rental:
        """
        File a report. BLOCKED_SPOT triggers reassignment; other kinds
        freeze the escrow (CONFIRMED -> DISPUTED).
        """
        async with self.locked(rental_id):
            rental = await self.load_for_update(db, rental_id)
            self._require_party(rental, reporter_id)

            if kind == ReportKind.BLOCKED_SPOT:
                return await self.coordinator.blocked_spot_locked(db, rental, reporter_id, description, now)

            next_status(rental.status, RentalEvent.REPORT)
            db.add(Report(rental_id=rental.id, reporter_id=reporter_id, kind=kind, description=description))

            # A pending reassignment is abandoned while under review
            if rental.offered_spot_id is not None:
                await self.ledger.release(db, rental.offered_spot_id, rental.rental_date, rental_id=rental.id)
                rental.offered_spot_id = None
                rental.offer_expires_at = None

            await self._apply(db, rental, RentalEvent.REPORT, reason=kind.value, now=now)
            await db.commit()
            await db.refresh(rental)
            return rental

    async def cancel(
        self,
        db: AsyncSession,
        rental_id: int,
        actor_id: int,
        now: Optional[datetime] = None,
    ) -> Rental:
        """
        Cancel a PENDING or CONFIRMED rental.

        More than `cancellation_full_refund_hours` before the rental date:
        full refund. Later: the cancelling party gets a penalty of
        `late_cancellation_fee_rate * price`, withheld from the refund when
        the renter cancels.
        """
        now = now or datetime.utcnow()
        async with self.locked(rental_id):
            rental = await self.load_for_update(db, rental_id)
            self._require_party(rental, actor_id)
            next_status(rental.status, RentalEvent.CANCEL)

            hours_left = (start_of_day(rental.rental_date) - now).total_seconds() / 3600
            late = hours_left <= settings.cancellation_full_refund_hours
            fee = round(rental.price * settings.late_cancellation_fee_rate, 2) if late else 0.0
            refund = round(rental.price - fee, 2) if actor_id == rental.renter_id else rental.price

            try:
                await self._settle(db, rental, EscrowSettlement.REFUND, refund, now)
            except PaymentError as e:
                await self._escalate(db, rental, e)
                raise

            if late:
                await self._add_penalty(db, actor_id, rental, OffenseType.LATE_CANCELLATION, fee)

            rental.cancelled_by_id = actor_id
            await self._apply(
                db, rental, RentalEvent.CANCEL,
                reason="late_cancellation" if late else "cancelled", now=now,
            )
            await self.release_claims(db, rental)
            await db.commit()
            await db.refresh(rental)
            return rental

    async def resolve_dispute(
        self,
        db: AsyncSession,
        rental_id: int,
        admin_id: int,
        outcome: str,
        penalize_user_id: Optional[int] = None,
        penalty_amount: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> Rental:
        """
        Apply an admin ruling to a DISPUTED rental.

        COMPLETE pays the owner, CANCEL refunds the renter in full. An
        optional penalty is recorded against one of the parties.
        """
        now = now or datetime.utcnow()
        if outcome == ResolutionOutcome.COMPLETE:
            event = RentalEvent.RESOLVE_COMPLETE
        elif outcome == ResolutionOutcome.CANCEL:
            event = RentalEvent.RESOLVE_CANCEL
        else:
            raise ValidationError("Unknown resolution outcome", details={"outcome": outcome})

        async with self.locked(rental_id):
            rental = await self.load_for_update(db, rental_id)
            next_status(rental.status, event)

            if penalize_user_id is not None:
                if penalize_user_id not in (rental.renter_id, rental.owner_id):
                    raise ValidationError(
                        "Penalty must target a party of the rental",
                        details={"user_id": penalize_user_id},
                    )
                if not penalty_amount or penalty_amount <= 0:
                    raise ValidationError("Penalty amount must be positive", details={"amount": penalty_amount})

            if event == RentalEvent.RESOLVE_COMPLETE:
                if rental.escrow_captured_at is None:
                    raise ValidationError(
                        "Escrow was never captured; the dispute can only be resolved by cancelling",
                        details={"rental_id": rental_id},
                    )
                await self._settle(
                    db, rental, EscrowSettlement.TRANSFER,
                    round(rental.price * (1 - settings.platform_fee_rate), 2), now,
                )
            else:
                await self._settle(db, rental, EscrowSettlement.REFUND, rental.price, now)

            if penalize_user_id is not None:
                await self._add_penalty(db, penalize_user_id, rental, OffenseType.DISPUTE_RULING, penalty_amount)

            result = await db.execute(
                select(Report).where(Report.rental_id == rental.id, Report.is_open.is_(True))
            )
            for report in result.scalars().all():
                report.is_open = False
                report.closed_at = now

            await self._apply(db, rental, event, reason=f"resolved_by:{admin_id}", now=now)
            await self.release_claims(db, rental)
            await db.commit()
            await db.refresh(rental)

            logger.info(
                "Dispute resolved",
                extra={"rental_id": rental_id, "admin_id": admin_id, "outcome": outcome},
            )
            return rental

    # Sweeps

    async def auto_confirm_due(self, db: AsyncSession, now: Optional[datetime] = None) -> List[int]:
        """Confirm PENDING rentals older than the auto-confirm timeout."""
        now = now or datetime.utcnow()
        cutoff = now - timedelta(minutes=settings.auto_confirm_after_minutes)
        result = await db.execute(
            select(Rental.id)
            .where(Rental.status == RentalStatus.PENDING, Rental.created_at <= cutoff)
            .order_by(Rental.id)
        )
        confirmed = []
        for rental_id in result.scalars().all():
            try:
                await self.confirm(db, rental_id, actor_id=None, now=now)
                confirmed.append(rental_id)
            except (CollaboratorFailure, InvalidTransitionError) as e:
                logger.warning("Auto-confirm skipped rental %s: %s", rental_id, e)
        return confirmed

    async def complete_due(self, db: AsyncSession, now: Optional[datetime] = None) -> List[int]:
        """Complete CONFIRMED rentals whose date has elapsed and that have no open report."""
        now = now or datetime.utcnow()
        result = await db.execute(
            select(Rental.id)
            .where(Rental.status == RentalStatus.CONFIRMED, Rental.rental_date < now.date())
            .order_by(Rental.id)
        )
        completed = []
        for rental_id in result.scalars().all():
            try:
                await self.complete(db, rental_id, now=now)
                completed.append(rental_id)
            except (CollaboratorFailure, InvalidTransitionError, ValidationError) as e:
                logger.warning("Auto-complete skipped rental %s: %s", rental_id, e)
        return completed
