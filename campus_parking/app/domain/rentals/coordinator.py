"""
Allocation Coordinator.

Recovers confirmed rentals whose spot turns out to be unusable. A rental
gets at most one reassignment; when no equivalent spot is free (or the
single reassignment was already used) the renter is refunded in full and
granted a platform credit.

Reassignment flow:
    blocked report -> candidate claimed + offer stored
        -> accept: rental moves to the candidate, original released
        -> reject / expiry: candidate released, fallback
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from campus_parking.app.core.config import settings
from campus_parking.app.core.exceptions import (
    ConflictError,
    InsufficientPermissionsError,
    InvalidTransitionError,
    InvariantViolation,
    ValidationError,
)
from campus_parking.app.domain.rentals.lifecycle import RentalLifecycleManager, end_of_day, utc_naive
from campus_parking.app.models.penalty import PlatformCredit
from campus_parking.app.models.reassignment_record import ReassignmentRecord
from campus_parking.app.models.rental import Rental
from campus_parking.app.models.rental_enums import (
    EscrowSettlement,
    ReassignmentOutcome,
    RentalEvent,
    RentalStatus,
    ReportKind,
)
from campus_parking.app.models.report import Report
from campus_parking.app.models.spot import Spot
from campus_parking.app.services.events import CreditGranted, ReassignmentOffered, ReassignmentRecorded
from campus_parking.app.services.payments import PaymentError

logger = logging.getLogger("campus_parking.reassignment")

MAX_REASSIGNMENTS = 1


class AllocationCoordinator:
    """Reassignment and fallback compensation for blocked spots."""

    def __init__(self, manager: RentalLifecycleManager):
        self.manager = manager
        self.ledger = manager.ledger
        self.publisher = manager.publisher
        manager.coordinator = self

    @staticmethod
    def _require_renter(rental: Rental, renter_id: Optional[int]):
        if renter_id is not None and renter_id != rental.renter_id:
            raise InsufficientPermissionsError(
                "Only the renter can answer a reassignment offer",
                details={"rental_id": rental.id},
            )

    async def _record(
        self,
        db: AsyncSession,
        rental: Rental,
        blocked_spot_id: int,
        candidate_spot_id: Optional[int],
        outcome: ReassignmentOutcome,
    ) -> ReassignmentRecord:
        record = ReassignmentRecord(
            rental_id=rental.id,
            blocked_spot_id=blocked_spot_id,
            candidate_spot_id=candidate_spot_id,
            outcome=outcome,
        )
        db.add(record)
        await db.flush()
        await self.publisher.publish(db, ReassignmentRecorded(
            record_id=record.id,
            rental_id=rental.id,
            candidate_spot_id=candidate_spot_id,
            outcome=outcome.value,
        ))
        logger.info(
            "Reassignment %s", outcome.value,
            extra={"rental_id": rental.id, "blocked_spot_id": blocked_spot_id, "candidate_spot_id": candidate_spot_id},
        )
        return record

    async def find_candidates(self, db: AsyncSession, rental: Rental, blocked: Spot) -> List[Spot]:
        """
        Free spots in the same lot on the rental date that are no farther
        from campus than the blocked one and fit the renter's vehicle,
        closest distance first, then lowest spot id.
        """
        free = await self.ledger.query(db, blocked.lot, rental.rental_date)
        eligible = [
            spot for spot in free
            if spot.id != blocked.id
            and spot.owner_id != rental.renter_id
            and spot.distance_to_campus_m <= blocked.distance_to_campus_m
            and spot.fits(rental.vehicle_size)
        ]
        eligible.sort(key=lambda s: (abs(s.distance_to_campus_m - blocked.distance_to_campus_m), s.id))
        return eligible

    # Blocked spot

    async def handle_blocked_spot(
        self,
        db: AsyncSession,
        rental_id: int,
        reporter_id: Optional[int],
        description: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Rental:
        async with self.manager.locked(rental_id):
            rental = await self.manager.load_for_update(db, rental_id)
            return await self.blocked_spot_locked(db, rental, reporter_id, description, now)

    async def blocked_spot_locked(
        self,
        db: AsyncSession,
        rental: Rental,
        reporter_id: Optional[int],
        description: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Rental:
        """Blocked-spot handling; the caller holds the rental lock."""
        now = now or datetime.utcnow()

        if rental.status != RentalStatus.CONFIRMED:
            raise InvalidTransitionError(rental.status.value, ReportKind.BLOCKED_SPOT.value)
        if rental.has_pending_offer:
            raise ConflictError(
                "A reassignment offer is already pending",
                details={"rental_id": rental.id, "offered_spot_id": rental.offered_spot_id},
            )

        db.add(Report(
            rental_id=rental.id,
            reporter_id=reporter_id,
            kind=ReportKind.BLOCKED_SPOT,
            description=description,
            is_open=False,
            closed_at=now,
        ))
        await db.commit()
        await db.refresh(rental)

        if rental.reassignment_count >= MAX_REASSIGNMENTS:
            logger.info("Reassignment already used, falling back", extra={"rental_id": rental.id})
            return await self._fallback(db, rental, now)

        blocked = await db.get(Spot, rental.spot_id)
        for candidate in await self.find_candidates(db, rental, blocked):
            async with self.ledger.guard(candidate.id, rental.rental_date):
                try:
                    await self.ledger.claim(db, candidate.id, rental.rental_date, rental.id)
                except ConflictError:
                    continue

                expires_at = min(
                    now + timedelta(minutes=settings.reassignment_offer_timeout_minutes),
                    end_of_day(rental.rental_date),
                )
                rental.offered_spot_id = candidate.id
                rental.offer_expires_at = expires_at
                await self.publisher.publish(db, ReassignmentOffered(
                    rental_id=rental.id,
                    renter_id=rental.renter_id,
                    candidate_spot_id=candidate.id,
                    expires_at=expires_at.isoformat(),
                ))
                await db.commit()

            await db.refresh(rental)
            logger.info(
                "Reassignment offered",
                extra={"rental_id": rental.id, "blocked_spot_id": blocked.id, "candidate_spot_id": candidate.id},
            )
            return rental

        logger.info("No reassignment candidate", extra={"rental_id": rental.id, "lot": blocked.lot})
        return await self._fallback(db, rental, now)

    # Offer answers

    def _require_offer(self, rental: Rental):
        if rental.status != RentalStatus.CONFIRMED or not rental.has_pending_offer:
            raise ValidationError("No reassignment offer pending", details={"rental_id": rental.id})

    async def accept_offer(
        self,
        db: AsyncSession,
        rental_id: int,
        renter_id: Optional[int],
        now: Optional[datetime] = None,
    ) -> Rental:
        """
        Move the rental to the offered spot. Payment terms are unchanged.

        Raises:
            ValidationError: no offer pending
            ConflictError: the offer expired (it is rejected on the spot)
            InvariantViolation: the rental was already reassigned once
        """
        now = now or datetime.utcnow()
        async with self.manager.locked(rental_id):
            rental = await self.manager.load_for_update(db, rental_id)
            self._require_renter(rental, renter_id)
            self._require_offer(rental)

            if utc_naive(rental.offer_expires_at) <= now:
                await self._reject(db, rental, now)
                raise ConflictError("Reassignment offer has expired", details={"rental_id": rental_id})

            if rental.reassignment_count + 1 > MAX_REASSIGNMENTS:
                raise InvariantViolation(
                    "Rental would exceed its single reassignment",
                    details={"rental_id": rental_id, "reassignment_count": rental.reassignment_count},
                )

            blocked_spot_id = rental.spot_id
            new_spot_id = rental.offered_spot_id

            rental.reassignment_count += 1
            rental.original_spot_id = rental.original_spot_id or blocked_spot_id
            rental.spot_id = new_spot_id
            rental.offered_spot_id = None
            rental.offer_expires_at = None

            await self._record(db, rental, blocked_spot_id, new_spot_id, ReassignmentOutcome.ACCEPTED)
            await self.ledger.release(db, blocked_spot_id, rental.rental_date, rental_id=rental.id)
            await db.commit()
            await db.refresh(rental)
            return rental

    async def reject_offer(
        self,
        db: AsyncSession,
        rental_id: int,
        renter_id: Optional[int],
        now: Optional[datetime] = None,
    ) -> Rental:
        """Decline the offer; the renter is compensated through the fallback."""
        now = now or datetime.utcnow()
        async with self.manager.locked(rental_id):
            rental = await self.manager.load_for_update(db, rental_id)
            self._require_renter(rental, renter_id)
            self._require_offer(rental)
            return await self._reject(db, rental, now)

    async def expire_offers(self, db: AsyncSession, now: Optional[datetime] = None) -> List[int]:
        """Treat unanswered offers past their expiry as rejections."""
        now = now or datetime.utcnow()
        result = await db.execute(
            select(Rental.id)
            .where(
                Rental.offered_spot_id.is_not(None),
                Rental.offer_expires_at <= now,
            )
            .order_by(Rental.id)
        )
        expired = []
        for rental_id in result.scalars().all():
            async with self.manager.locked(rental_id):
                rental = await self.manager.load_for_update(db, rental_id)
                if not rental.has_pending_offer or utc_naive(rental.offer_expires_at) > now:
                    continue
                await self._reject(db, rental, now)
                expired.append(rental_id)
        if expired:
            logger.info("Expired reassignment offers", extra={"rental_ids": expired})
        return expired

    async def _reject(self, db: AsyncSession, rental: Rental, now: datetime) -> Rental:
        candidate_spot_id = rental.offered_spot_id
        await self._record(db, rental, rental.spot_id, candidate_spot_id, ReassignmentOutcome.REJECTED)
        await self.ledger.release(db, candidate_spot_id, rental.rental_date, rental_id=rental.id)
        rental.offered_spot_id = None
        rental.offer_expires_at = None
        return await self._fallback(db, rental, now)

    # Fallback

    async def _fallback(self, db: AsyncSession, rental: Rental, now: datetime) -> Rental:
        """
        Full refund plus platform credit, rental cancelled.

        If the refund cannot be made the rental is escalated to DISPUTED
        instead and keeps its claims.
        """
        try:
            await self.manager._settle(db, rental, EscrowSettlement.REFUND, rental.price, now)
        except PaymentError as e:
            return await self.manager._escalate(db, rental, e)

        credit = PlatformCredit(
            user_id=rental.renter_id,
            rental_id=rental.id,
            amount=settings.reassignment_credit_amount,
            reason="Reassignment exhausted",
        )
        db.add(credit)
        await db.flush()
        await self.publisher.publish(db, CreditGranted(
            credit_id=credit.id,
            user_id=rental.renter_id,
            rental_id=rental.id,
            amount=credit.amount,
        ))

        await self._record(db, rental, rental.spot_id, None, ReassignmentOutcome.EXHAUSTED)

        rental.reassignment_exhausted = True
        await self.manager._apply(db, rental, RentalEvent.CANCEL, reason="reassignment_exhausted", now=now)
        await self.manager.release_claims(db, rental)
        await db.commit()
        await db.refresh(rental)
        return rental

    async def history(self, db: AsyncSession, rental_id: int) -> List[ReassignmentRecord]:
        await self.manager.get(db, rental_id)
        result = await db.execute(
            select(ReassignmentRecord)
            .where(ReassignmentRecord.rental_id == rental_id)
            .order_by(ReassignmentRecord.id)
        )
        return result.scalars().all()
