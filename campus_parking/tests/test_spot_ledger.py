"""
Spot Ledger Tests.

Validates that a spot can be claimed by exactly one rental per date.
"""

import pytest
import asyncio
from datetime import timedelta

from campus_parking.app.core.exceptions import ConflictError, InvariantViolation
from campus_parking.app.models.rental import Rental
from campus_parking.app.models.spot_claim import SpotClaim
from campus_parking.app.services.spot_ledger import SpotLedger


async def make_rentals(db, spot, day, count):
    rentals = [
        Rental(spot_id=spot.id, rental_date=day, owner_id=spot.owner_id, renter_id=200 + i, price=10.0)
        for i in range(count)
    ]
    db.add_all(rentals)
    await db.commit()
    return rentals


@pytest.mark.asyncio
async def test_concurrent_claims_have_one_winner(db_session, session_factory, lot_spots, rental_day):
    """Ten claimants race for one (spot, date): exactly one succeeds."""
    ledger = SpotLedger()
    spot = lot_spots["A-200"]
    rentals = await make_rentals(db_session, spot, rental_day, 10)

    async def attempt(rental_id):
        async with session_factory() as db:
            try:
                await ledger.claim_exclusive(db, spot.id, rental_day, rental_id)
                return rental_id
            except ConflictError:
                return None

    results = await asyncio.gather(*[attempt(r.id) for r in rentals])
    winners = [r for r in results if r is not None]

    assert len(winners) == 1
    claim = await ledger.active_claim(db_session, spot.id, rental_day)
    assert claim.rental_id == winners[0]
    assert len(ledger._locks) == 0


@pytest.mark.asyncio
async def test_same_spot_other_date_is_independent(db_session, lot_spots, rental_day):
    ledger = SpotLedger()
    spot = lot_spots["A-200"]
    first = (await make_rentals(db_session, spot, rental_day, 1))[0]
    second = (await make_rentals(db_session, spot, rental_day + timedelta(days=1), 1))[0]

    await ledger.claim_exclusive(db_session, spot.id, rental_day, first.id)
    await ledger.claim_exclusive(db_session, spot.id, rental_day + timedelta(days=1), second.id)

    with pytest.raises(ConflictError):
        await ledger.claim_exclusive(db_session, spot.id, rental_day, second.id)


@pytest.mark.asyncio
async def test_release_is_idempotent(db_session, lot_spots, rental_day):
    ledger = SpotLedger()
    spot = lot_spots["A-200"]
    rental, other = await make_rentals(db_session, spot, rental_day, 2)
    await ledger.claim_exclusive(db_session, spot.id, rental_day, rental.id)

    # Another rental's id does not release it
    assert await ledger.release(db_session, spot.id, rental_day, rental_id=other.id) is False

    assert await ledger.release(db_session, spot.id, rental_day, rental_id=rental.id) is True
    assert await ledger.release(db_session, spot.id, rental_day, rental_id=rental.id) is False
    await db_session.commit()

    assert await ledger.active_claim(db_session, spot.id, rental_day) is None

    # Released spots can be claimed again
    claim = await ledger.claim_exclusive(db_session, spot.id, rental_day, other.id)
    assert claim.is_active


@pytest.mark.asyncio
async def test_query_lists_unclaimed_spots_by_code(db_session, lot_spots, rental_day):
    ledger = SpotLedger()
    taken = lot_spots["A-200"]
    rental = (await make_rentals(db_session, taken, rental_day, 1))[0]
    await ledger.claim_exclusive(db_session, taken.id, rental_day, rental.id)

    lot_spots["A-300"].is_active = False
    await db_session.commit()

    free = await ledger.query(db_session, "A", rental_day)
    assert [s.code for s in free] == ["A-150"]

    tomorrow = await ledger.query(db_session, "A", rental_day + timedelta(days=1))
    assert [s.code for s in tomorrow] == ["A-150", "A-200"]

    assert await ledger.query(db_session, "B", rental_day) == []


@pytest.mark.asyncio
async def test_duplicate_active_claims_are_reported(db_session, lot_spots, rental_day):
    """Rows written around the ledger (and the index) surface as a fault."""
    ledger = SpotLedger()
    spot = lot_spots["A-200"]
    first, second = await make_rentals(db_session, spot, rental_day, 2)

    await db_session.run_sync(
        lambda session: session.connection().exec_driver_sql("DROP INDEX ix_spot_claims_active")
    )
    db_session.add_all([
        SpotClaim(spot_id=spot.id, claim_date=rental_day, rental_id=first.id),
        SpotClaim(spot_id=spot.id, claim_date=rental_day, rental_id=second.id),
    ])
    await db_session.commit()

    with pytest.raises(InvariantViolation):
        await ledger.active_claim(db_session, spot.id, rental_day)
