"""
Schedule Store.

Read model over schedule data supplied by the schedule collaborator, and
the carpool groups users form. Builds the immutable snapshots the scoring
engine works on.
"""

import logging
from datetime import datetime, time
from typing import Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from campus_parking.app.core.exceptions import ConflictError, ResourceNotFoundError, ValidationError
from campus_parking.app.domain.matching.scoring import (
    DaySchedule,
    ProfileSnapshot,
    to_minutes,
    validate_snapshot,
)
from campus_parking.app.models.carpool_group import CarpoolGroup, CarpoolGroupMember
from campus_parking.app.models.enums import GradeLevel, VehicleSize
from campus_parking.app.models.schedule_profile import ScheduleProfile, ScheduleDay

logger = logging.getLogger("campus_parking.schedules")


def snapshot_from_profile(profile: ScheduleProfile) -> ProfileSnapshot:
    """Freeze an ORM profile into a scoring snapshot."""
    return ProfileSnapshot(
        user_id=profile.user_id,
        grade=profile.grade_level,
        days=tuple(
            DaySchedule(
                weekday=d.weekday,
                arrival=to_minutes(d.arrival),
                departure=to_minutes(d.departure),
                lunch_off_campus=bool(d.lunch_off_campus),
                extracurricular_end=to_minutes(d.extracurricular_end) if d.extracurricular_end is not None else None,
            )
            for d in sorted(profile.days, key=lambda d: d.weekday)
        ),
        home_latitude=profile.home_latitude,
        home_longitude=profile.home_longitude,
        tags=frozenset(profile.preference_tags or []),
        created_at=profile.created_at,
    )


def _day_value(day, name):
    return day[name] if isinstance(day, dict) else getattr(day, name)


async def get_profile(db: AsyncSession, user_id: int) -> Optional[ScheduleProfile]:
    result = await db.execute(
        select(ScheduleProfile).where(ScheduleProfile.user_id == user_id)
    )
    return result.scalar_one_or_none()


async def upsert_profile(
    db: AsyncSession,
    user_id: int,
    grade_level: GradeLevel,
    home_latitude: float,
    home_longitude: float,
    days: Iterable,
    preference_tags: Optional[List[str]] = None,
    vehicle_size: VehicleSize = VehicleSize.STANDARD,
) -> ScheduleProfile:
    """
    Create or replace a user's schedule profile.

    The snapshot is validated before anything is written, so a rejected
    update leaves the previous profile untouched.

    Args:
        days: Five weekday entries (dicts or objects) with weekday,
            arrival, departure, lunch_off_campus, extracurricular_end

    Raises:
        ValidationError: malformed schedule
    """
    days = list(days)
    tags = list(preference_tags or [])

    try:
        candidate = ProfileSnapshot(
            user_id=user_id,
            grade=grade_level,
            days=tuple(
                DaySchedule(
                    weekday=int(_day_value(d, "weekday")),
                    arrival=to_minutes(_day_value(d, "arrival")),
                    departure=to_minutes(_day_value(d, "departure")),
                    lunch_off_campus=bool(_day_value(d, "lunch_off_campus")),
                    extracurricular_end=(
                        to_minutes(_day_value(d, "extracurricular_end"))
                        if _day_value(d, "extracurricular_end") is not None else None
                    ),
                )
                for d in days
            ),
            home_latitude=home_latitude,
            home_longitude=home_longitude,
            tags=frozenset(tags),
        )
    except (KeyError, AttributeError, TypeError) as e:
        raise ValidationError("Malformed schedule entry", details={"user_id": user_id, "error": str(e)})
    validate_snapshot(candidate)

    profile = await get_profile(db, user_id)
    if profile is None:
        profile = ScheduleProfile(user_id=user_id, grade_level=grade_level)
        db.add(profile)
        existing = {}
    else:
        existing = {d.weekday: d for d in profile.days}

    profile.grade_level = grade_level
    profile.vehicle_size = vehicle_size
    profile.home_latitude = home_latitude
    profile.home_longitude = home_longitude
    profile.preference_tags = tags
    profile.updated_at = datetime.utcnow()

    # Update weekday rows in place; the (profile, weekday) pair is unique
    for entry in candidate.days:
        row = existing.get(entry.weekday)
        if row is None:
            row = ScheduleDay(weekday=entry.weekday)
            profile.days.append(row)
        row.arrival = time(entry.arrival // 60, entry.arrival % 60)
        row.departure = time(entry.departure // 60, entry.departure % 60)
        row.lunch_off_campus = entry.lunch_off_campus
        row.extracurricular_end = (
            time(entry.extracurricular_end // 60, entry.extracurricular_end % 60)
            if entry.extracurricular_end is not None else None
        )

    await db.commit()
    await db.refresh(profile)

    logger.info("Schedule profile saved", extra={"user_id": user_id})
    return profile


async def load_snapshot(db: AsyncSession, user_id: int) -> ProfileSnapshot:
    """
    Raises:
        ResourceNotFoundError: user has no schedule profile
    """
    profile = await get_profile(db, user_id)
    if profile is None:
        raise ResourceNotFoundError("Schedule profile", user_id)
    return snapshot_from_profile(profile)


async def load_all_snapshots(db: AsyncSession, exclude_user_id: Optional[int] = None) -> List[ProfileSnapshot]:
    query = select(ScheduleProfile).order_by(ScheduleProfile.user_id)
    if exclude_user_id is not None:
        query = query.where(ScheduleProfile.user_id != exclude_user_id)
    result = await db.execute(query)
    return [snapshot_from_profile(p) for p in result.scalars().all()]


async def load_snapshots_for(db: AsyncSession, user_ids: Iterable[int]) -> List[ProfileSnapshot]:
    ids = list(user_ids)
    if not ids:
        return []
    result = await db.execute(
        select(ScheduleProfile)
        .where(ScheduleProfile.user_id.in_(ids))
        .order_by(ScheduleProfile.user_id)
    )
    return [snapshot_from_profile(p) for p in result.scalars().all()]


# Carpool groups

async def get_carpool(db: AsyncSession, group_id: int) -> CarpoolGroup:
    result = await db.execute(select(CarpoolGroup).where(CarpoolGroup.id == group_id))
    group = result.scalar_one_or_none()
    if group is None:
        raise ResourceNotFoundError("Carpool group", group_id)
    return group


async def create_carpool(db: AsyncSession, creator_id: int, name: str, capacity: int = 4) -> CarpoolGroup:
    """Create a group with its creator as the first member."""
    if capacity < 2:
        raise ValidationError("Carpool capacity must be at least 2", details={"capacity": capacity})
    if await get_profile(db, creator_id) is None:
        raise ValidationError(
            "A schedule profile is required to form a carpool",
            details={"user_id": creator_id},
        )

    group = CarpoolGroup(name=name, created_by_id=creator_id, capacity=capacity)
    group.members.append(CarpoolGroupMember(user_id=creator_id))
    db.add(group)
    await db.commit()
    await db.refresh(group)

    logger.info("Carpool group created", extra={"group_id": group.id, "user_id": creator_id})
    return group


async def join_carpool(db: AsyncSession, group_id: int, user_id: int) -> CarpoolGroup:
    """
    Add a user to a group.

    Raises:
        ResourceNotFoundError: unknown or inactive group
        ConflictError: already a member, or the group is full
    """
    group = await get_carpool(db, group_id)
    if not group.is_active:
        raise ResourceNotFoundError("Carpool group", group_id)
    if user_id in group.member_ids:
        raise ConflictError("Already a member of this carpool", details={"group_id": group_id})
    if len(group.members) >= group.capacity:
        raise ConflictError("Carpool group is full", details={"group_id": group_id})
    if await get_profile(db, user_id) is None:
        raise ValidationError(
            "A schedule profile is required to join a carpool",
            details={"user_id": user_id},
        )

    group.members.append(CarpoolGroupMember(user_id=user_id))
    await db.commit()
    await db.refresh(group)

    logger.info("Carpool joined", extra={"group_id": group_id, "user_id": user_id})
    return group


async def open_carpools(db: AsyncSession, exclude_member_id: int) -> List[CarpoolGroup]:
    """Active groups with free capacity that the user is not part of."""
    result = await db.execute(
        select(CarpoolGroup)
        .where(CarpoolGroup.is_active.is_(True))
        .order_by(CarpoolGroup.id)
    )
    return [
        g for g in result.scalars().all()
        if exclude_member_id not in g.member_ids and len(g.members) < g.capacity
    ]
