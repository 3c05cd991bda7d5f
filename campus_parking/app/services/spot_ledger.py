"""
Spot Ledger.

Source of truth for which spot is claimed on which date. Exclusivity is
enforced twice: a per-(spot, date) asyncio lock serializes writers inside
the process, and the partial unique index on active claims catches writers
in other processes.

Usage:
    async with ledger.guard(spot_id, day):
        await ledger.claim(db, spot_id, day, rental_id)
        await db.commit()

or `claim_exclusive`, which does exactly that.
"""

import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from campus_parking.app.core.exceptions import ConflictError, InvariantViolation
from campus_parking.app.core.locks import KeyedLock
from campus_parking.app.models.spot import Spot
from campus_parking.app.models.spot_claim import SpotClaim

logger = logging.getLogger("campus_parking.ledger")


class SpotLedger:
    """Exclusive (spot, date) claims."""

    def __init__(self):
        self._locks = KeyedLock()

    @asynccontextmanager
    async def guard(self, spot_id: int, claim_date: date):
        """Hold the in-process lock for one (spot, date)."""
        async with self._locks.acquire(("spot", spot_id, claim_date)):
            yield

    async def active_claim(self, db: AsyncSession, spot_id: int, claim_date: date) -> Optional[SpotClaim]:
        """
        Current active claim on (spot, date), if any.

        Raises:
            InvariantViolation: more than one active claim exists
        """
        result = await db.execute(
            select(SpotClaim).where(
                SpotClaim.spot_id == spot_id,
                SpotClaim.claim_date == claim_date,
                SpotClaim.released_at.is_(None),
            )
        )
        claims = result.scalars().all()
        if len(claims) > 1:
            raise InvariantViolation(
                "Multiple active claims on one spot and date",
                details={"spot_id": spot_id, "date": claim_date.isoformat(), "claims": [c.id for c in claims]},
            )
        return claims[0] if claims else None

    async def claim(self, db: AsyncSession, spot_id: int, claim_date: date, rental_id: int) -> SpotClaim:
        """
        Claim a spot for a date on behalf of a rental.

        Call while holding `guard(spot_id, claim_date)` and commit before
        leaving it. Not queued: the first claimant wins.

        Raises:
            ConflictError: spot already claimed for the date
        """
        if await self.active_claim(db, spot_id, claim_date) is not None:
            logger.info(
                "Claim rejected, spot taken",
                extra={"spot_id": spot_id, "date": claim_date.isoformat(), "rental_id": rental_id},
            )
            raise ConflictError(details={"spot_id": spot_id, "date": claim_date.isoformat()})

        claim = SpotClaim(
            spot_id=spot_id,
            claim_date=claim_date,
            rental_id=rental_id,
            claimed_at=datetime.utcnow(),
            released_at=None,
        )
        try:
            # Partial unique index catches claims from other processes. A
            # rejected insert rolls back to the savepoint, not the whole session
            async with db.begin_nested():
                db.add(claim)
                await db.flush()
        except IntegrityError:
            logger.info(
                "Claim rejected by unique index",
                extra={"spot_id": spot_id, "date": claim_date.isoformat(), "rental_id": rental_id},
            )
            raise ConflictError(details={"spot_id": spot_id, "date": claim_date.isoformat()})

        logger.info(
            "Spot claimed",
            extra={"spot_id": spot_id, "date": claim_date.isoformat(), "rental_id": rental_id},
        )
        return claim

    async def claim_exclusive(self, db: AsyncSession, spot_id: int, claim_date: date, rental_id: int) -> SpotClaim:
        """Guard, claim and commit in one step."""
        async with self.guard(spot_id, claim_date):
            claim = await self.claim(db, spot_id, claim_date, rental_id)
            await db.commit()
            return claim

    async def release(
        self,
        db: AsyncSession,
        spot_id: int,
        claim_date: date,
        rental_id: Optional[int] = None,
    ) -> bool:
        """
        Release the active claim on (spot, date). Idempotent.

        Args:
            rental_id: When given, only that rental's claim is released

        Returns:
            True if a claim was released, False if none was active
        """
        query = select(SpotClaim).where(
            SpotClaim.spot_id == spot_id,
            SpotClaim.claim_date == claim_date,
            SpotClaim.released_at.is_(None),
        )
        if rental_id is not None:
            query = query.where(SpotClaim.rental_id == rental_id)

        result = await db.execute(query)
        claims = result.scalars().all()
        if not claims:
            return False

        now = datetime.utcnow()
        for claim in claims:
            claim.released_at = now
        await db.flush()

        logger.info(
            "Spot released",
            extra={"spot_id": spot_id, "date": claim_date.isoformat(), "rental_id": rental_id},
        )
        return True

    async def query(self, db: AsyncSession, lot: str, claim_date: date) -> List[Spot]:
        """Active spots in a lot with no active claim on the date, by code."""
        claimed = (
            select(SpotClaim.spot_id)
            .where(SpotClaim.claim_date == claim_date, SpotClaim.released_at.is_(None))
        )
        result = await db.execute(
            select(Spot)
            .where(
                Spot.lot == lot,
                Spot.is_active.is_(True),
                Spot.id.not_in(claimed),
            )
            .order_by(Spot.code)
        )
        return result.scalars().all()
