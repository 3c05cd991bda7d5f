"""
API Flow Tests.

End-to-end through the HTTP surface: schedules, matches, carpools,
spots, rentals and admin operations.
"""

import pytest
from datetime import time


def schedule_body(arrival, departure, grade="JUNIOR", lat=40.0, lng=-75.0, tags=None):
    days = [
        {
            "weekday": weekday,
            "arrival": arrival.isoformat(),
            "departure": departure.isoformat(),
            "lunch_off_campus": False,
            "extracurricular_end": None,
        }
        for weekday in range(5)
    ]
    return {
        "grade_level": grade,
        "home_latitude": lat,
        "home_longitude": lng,
        "preference_tags": tags or [],
        "days": days,
    }


async def put_schedule(client, headers, arrival, departure, **kwargs):
    response = await client.put("/v1/schedules/me", json=schedule_body(arrival, departure, **kwargs), headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


async def register_spot(client, headers, code, distance, lot="A"):
    response = await client.post(
        "/v1/spots",
        json={"code": code, "lot": lot, "distance_to_campus_m": distance},
        headers=headers,
    )
    assert response.status_code == 201, response.text
    return response.json()


async def rent(client, headers, spot_id, rental_day, price=20.0):
    return await client.post(
        "/v1/rentals",
        json={"spot_id": spot_id, "rental_date": rental_day.isoformat(), "price": price},
        headers=headers,
    )


@pytest.fixture
def owner(auth_headers, owner_id):
    return auth_headers(owner_id)


@pytest.fixture
def renter(auth_headers, renter_id):
    return auth_headers(renter_id)


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["cache"] == "up"


@pytest.mark.asyncio
async def test_requests_without_token_are_rejected(client):
    response = await client.get("/v1/schedules/me")
    assert response.status_code in (401, 403)

    response = await client.get("/v1/schedules/me", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_AUTH_001"


@pytest.mark.asyncio
async def test_schedule_roundtrip_and_validation(client, auth_headers):
    body = await put_schedule(client, auth_headers(1), time(8, 0), time(12, 0), tags=["quiet"])
    assert body["user_id"] == 1
    assert [d["weekday"] for d in body["days"]] == [0, 1, 2, 3, 4]

    response = await client.get("/v1/schedules/me", headers=auth_headers(1))
    assert response.status_code == 200
    assert response.json()["preference_tags"] == ["quiet"]

    # Departure before arrival is rejected and the stored profile kept
    bad = schedule_body(time(12, 0), time(8, 0))
    response = await client.put("/v1/schedules/me", json=bad, headers=auth_headers(1))
    assert response.status_code == 422

    response = await client.get("/v1/schedules/me", headers=auth_headers(1))
    assert response.json()["days"][0]["arrival"] == "08:00:00"

    response = await client.get("/v1/schedules/me", headers=auth_headers(2))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_tandem_matches_and_cache_invalidation(client, parking_engine, auth_headers):
    await put_schedule(client, auth_headers(1), time(8, 0), time(12, 0))
    await put_schedule(client, auth_headers(2), time(12, 30), time(16, 0))
    await put_schedule(client, auth_headers(3), time(10, 0), time(14, 0))

    response = await client.get("/v1/matches?kind=TANDEM", headers=auth_headers(1))
    assert response.status_code == 200
    matches = response.json()["matches"]
    assert [m["candidate_id"] for m in matches] == [2, 3]
    assert matches[0]["score"] == 100
    assert set(matches[0]["breakdown"]) == {
        "schedule_overlap", "grade_level", "arrival_gap", "extracurricular", "lunch",
    }

    # Updating one's own schedule drops the cached ranking
    await put_schedule(client, auth_headers(1), time(8, 0), time(12, 0), grade="SENIOR")
    response = await client.get("/v1/matches?kind=TANDEM&limit=1", headers=auth_headers(1))
    assert [m["candidate_id"] for m in response.json()["matches"]] == [2]
    assert response.json()["matches"][0]["score"] == 80
    assert parking_engine.ranker.computations == 2


@pytest.mark.asyncio
async def test_carpool_flow(client, auth_headers):
    for user_id in (1, 2, 3):
        await put_schedule(client, auth_headers(user_id), time(8, 0), time(15, 0))

    response = await client.post(
        "/v1/carpools", json={"name": "North side", "capacity": 2}, headers=auth_headers(2),
    )
    assert response.status_code == 201
    group = response.json()
    assert group["member_ids"] == [2]

    response = await client.get("/v1/matches?kind=CARPOOL", headers=auth_headers(1))
    assert [m["candidate_id"] for m in response.json()["matches"]] == [group["id"]]

    response = await client.post(f"/v1/carpools/{group['id']}/join", headers=auth_headers(3))
    assert response.status_code == 200
    assert response.json()["member_ids"] == [2, 3]

    # Full
    response = await client.post(f"/v1/carpools/{group['id']}/join", headers=auth_headers(1))
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_spot_registration_and_availability(client, auth_headers, owner, renter, owner_id, renter_id, rental_day):
    spot = await register_spot(client, owner, "A-200", 200)
    await register_spot(client, auth_headers(owner_id + 1), "A-150", 150)

    response = await client.post(
        "/v1/spots", json={"code": "A-200", "lot": "A", "distance_to_campus_m": 10}, headers=owner,
    )
    assert response.status_code == 409

    response = await rent(client, renter, spot["id"], rental_day)
    assert response.status_code == 201

    response = await client.get(f"/v1/spots/available?lot=A&date={rental_day.isoformat()}", headers=renter)
    assert [s["code"] for s in response.json()["spots"]] == ["A-150"]

    # Same spot, same date
    response = await rent(client, auth_headers(renter_id + 1), spot["id"], rental_day)
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_CONFLICT_001"


@pytest.mark.asyncio
async def test_rental_flow_with_reassignment(
    client, auth_headers, admin_headers, owner, renter, owner_id, rental_day,
):
    blocked = await register_spot(client, owner, "A-200", 200)
    nearer = await register_spot(client, auth_headers(owner_id + 1), "A-150", 150)

    rental = (await rent(client, renter, blocked["id"], rental_day)).json()
    assert rental["status"] == "PENDING"
    assert "CONFIRM" in rental["allowed_events"]
    assert "COMPLETE" not in rental["allowed_events"]

    response = await client.post(f"/v1/rentals/{rental['id']}/confirm", headers=renter)
    assert response.json()["status"] == "CONFIRMED"
    assert "COMPLETE" in response.json()["allowed_events"]

    # Not a party
    response = await client.get(f"/v1/rentals/{rental['id']}", headers=auth_headers(555))
    assert response.status_code == 403

    response = await client.post(
        f"/v1/rentals/{rental['id']}/reports",
        json={"kind": "BLOCKED_SPOT", "description": "Pickup truck"},
        headers=renter,
    )
    assert response.status_code == 201
    assert response.json()["offered_spot_id"] == nearer["id"]
    assert response.json()["display_status"] == "reassignment offered"

    # Only the renter answers
    response = await client.post(f"/v1/rentals/{rental['id']}/reassignment/accept", headers=owner)
    assert response.status_code == 403

    response = await client.post(f"/v1/rentals/{rental['id']}/reassignment/accept", headers=renter)
    assert response.status_code == 200
    assert response.json()["spot_id"] == nearer["id"]
    assert response.json()["reassignment_count"] == 1

    response = await client.get(f"/v1/admin/rentals/{rental['id']}/reassignments", headers=admin_headers)
    assert [r["outcome"] for r in response.json()] == ["ACCEPTED"]

    # Already confirmed
    response = await client.post(f"/v1/rentals/{rental['id']}/confirm", headers=renter)
    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_STATE_001"


@pytest.mark.asyncio
async def test_dispute_resolution_is_admin_only(client, admin_headers, owner, renter, owner_id, rental_day):
    spot = await register_spot(client, owner, "A-200", 200)
    rental = (await rent(client, renter, spot["id"], rental_day)).json()
    await client.post(f"/v1/rentals/{rental['id']}/confirm", headers=renter)

    response = await client.post(
        f"/v1/rentals/{rental['id']}/reports", json={"kind": "MISCONDUCT"}, headers=owner,
    )
    assert response.json()["status"] == "DISPUTED"
    assert response.json()["display_status"] == "under review"
    assert response.json()["allowed_events"] == ["RESOLVE_CANCEL", "RESOLVE_COMPLETE"]

    body = {"outcome": "CANCEL", "penalize_user_id": owner_id, "penalty_amount": 5}
    response = await client.post(f"/v1/admin/rentals/{rental['id']}/resolve", json=body, headers=owner)
    assert response.status_code == 403

    response = await client.post(f"/v1/admin/rentals/{rental['id']}/resolve", json=body, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "CANCELLED"
    assert response.json()["settlement"] == "REFUND"
    assert response.json()["settled_amount"] == 20.0
    assert response.json()["allowed_events"] == []


@pytest.mark.asyncio
async def test_payment_outage_returns_502(client, gateway, owner, renter, rental_day):
    spot = await register_spot(client, owner, "A-200", 200)
    gateway.fail_next("authorize", 3)

    response = await rent(client, renter, spot["id"], rental_day)

    assert response.status_code == 502
    assert response.json()["error_code"] == "ERR_COLLAB_001"


@pytest.mark.asyncio
async def test_sweep_and_outbox_relay(client, admin_headers, owner, renter, rental_day):
    spot = await register_spot(client, owner, "A-200", 200)
    await rent(client, renter, spot["id"], rental_day)

    response = await client.post("/v1/admin/ops/sweep", headers=admin_headers)
    assert response.status_code == 200
    assert response.json() == {"expired_offers": [], "auto_confirmed": [], "auto_completed": []}

    response = await client.post("/v1/admin/ops/sweep", headers=renter)
    assert response.status_code == 403

    response = await client.get("/v1/admin/ops/outbox", headers=admin_headers)
    events = response.json()
    assert [e["event_type"] for e in events] == ["RENTAL_STATE_CHANGED"]

    ids = [e["id"] for e in events]
    response = await client.post("/v1/admin/ops/outbox/ack", json={"event_ids": ids}, headers=admin_headers)
    assert response.json() == {"delivered": 1}
    response = await client.post("/v1/admin/ops/outbox/ack", json={"event_ids": ids}, headers=admin_headers)
    assert response.json() == {"delivered": 0}

    response = await client.get("/v1/admin/ops/outbox", headers=admin_headers)
    assert response.json() == []
