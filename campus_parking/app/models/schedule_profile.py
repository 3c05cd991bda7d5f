"""
Schedule Profile database models.

Snapshot of a user's weekly schedule supplied by the schedule collaborator.
Read-only for the scoring engine; `updated_at` versions the snapshot.
"""

from sqlalchemy import Column, Integer, Float, Boolean, DateTime, ForeignKey, Enum, Time, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from campus_parking.app.db.session import Base
from campus_parking.app.models.enums import GradeLevel, VehicleSize


class ScheduleProfile(Base):
    """
    Schedule profile model.

    One per user. Exactly five weekday entries (see ScheduleDay).
    """
    __tablename__ = "schedule_profiles"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Owner (identity lives in the identity service)
    user_id = Column(Integer, nullable=False, unique=True, index=True)

    grade_level = Column(Enum(GradeLevel), nullable=False)
    vehicle_size = Column(Enum(VehicleSize), default=VehicleSize.STANDARD, nullable=False)

    # Home coordinates for carpool proximity
    home_latitude = Column(Float, nullable=False)
    home_longitude = Column(Float, nullable=False)

    # Free-text preference tags, e.g. ["quiet", "music"]
    preference_tags = Column(JSON, nullable=False, default=list)

    # created_at is the ranking tie-break key; updated_at is the snapshot version
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    days = relationship(
        "ScheduleDay",
        back_populates="profile",
        cascade="all, delete-orphan",
        order_by="ScheduleDay.weekday",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<ScheduleProfile(id={self.id}, user_id={self.user_id}, grade='{self.grade_level.value}')>"


class ScheduleDay(Base):
    """One weekday window of a schedule profile."""
    __tablename__ = "schedule_days"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    profile_id = Column(Integer, ForeignKey("schedule_profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    weekday = Column(Integer, nullable=False)  # 0 = Monday ... 4 = Friday
    arrival = Column(Time, nullable=False)
    departure = Column(Time, nullable=False)
    lunch_off_campus = Column(Boolean, default=False, nullable=False)
    extracurricular_end = Column(Time, nullable=True)

    profile = relationship("ScheduleProfile", back_populates="days")

    __table_args__ = (
        UniqueConstraint("profile_id", "weekday", name="uq_schedule_days_profile_weekday"),
    )

    def __repr__(self):
        return f"<ScheduleDay(profile_id={self.profile_id}, weekday={self.weekday}, {self.arrival}-{self.departure})>"
