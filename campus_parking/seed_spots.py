"""
Database seeding script for a development lot.

Creates a handful of spots in lot "A" and schedule profiles for a few
students so the matching and rental endpoints have data to work with.
Run this script after the database is reachable.
"""

import asyncio
import sys
from datetime import time
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from campus_parking.app.db.session import session_scope, create_all_tables
from campus_parking.app.models.enums import GradeLevel
from campus_parking.app.models.spot import Spot
from campus_parking.app.services import schedule_store
from sqlalchemy import select

SPOTS = [
    # code, distance to campus (m), owner user id
    ("A-100", 100, 1),
    ("A-150", 150, 2),
    ("A-200", 200, 3),
    ("A-300", 300, 4),
]

STUDENTS = [
    # user id, grade, arrival, departure, home
    (1, GradeLevel.SENIOR, time(7, 45), time(12, 0), (40.001, -75.002)),
    (2, GradeLevel.JUNIOR, time(12, 30), time(16, 0), (40.010, -75.010)),
    (3, GradeLevel.JUNIOR, time(8, 0), time(15, 0), (40.020, -75.000)),
    (4, GradeLevel.SOPHOMORE, time(8, 0), time(15, 0), (40.025, -75.005)),
]


async def seed():
    await create_all_tables()

    async with session_scope() as db:
        print("🌱 Starting seeding...")

        result = await db.execute(select(Spot).where(Spot.code == SPOTS[0][0]))
        if result.scalar_one_or_none():
            print("ℹ️  Lot A already seeded, skipping")
            return

        for code, distance, owner_id in SPOTS:
            db.add(Spot(code=code, lot="A", distance_to_campus_m=distance, owner_id=owner_id))
            print(f"✅ Created spot {code} ({distance} m, owner {owner_id})")
        await db.commit()

        for user_id, grade, arrival, departure, home in STUDENTS:
            await schedule_store.upsert_profile(
                db,
                user_id=user_id,
                grade_level=grade,
                home_latitude=home[0],
                home_longitude=home[1],
                days=[
                    {
                        "weekday": weekday,
                        "arrival": arrival,
                        "departure": departure,
                        "lunch_off_campus": False,
                        "extracurricular_end": None,
                    }
                    for weekday in range(5)
                ],
            )
            print(f"✅ Created schedule profile for user {user_id}")

        print("\n🎉 Seeding completed successfully!")
        print("\nNote: tokens come from the identity service; in development use")
        print("      campus_parking.app.core.jwt.issue_identity_token(user_id, username)")


if __name__ == "__main__":
    asyncio.run(seed())
