"""
Parking Spot database model.
"""

import enum
from sqlalchemy import Column, Integer, String, Float, Boolean, DateTime, Enum
from sqlalchemy.sql import func
from campus_parking.app.db.session import Base
from campus_parking.app.models.enums import VehicleSize


class SpotType(str, enum.Enum):
    """Physical spot type."""
    SINGLE = "SINGLE"
    TANDEM = "TANDEM"  # Two cars parked nose to tail, shared sequentially


class Spot(Base):
    """
    Spot model.

    Owned long-term by exactly one user. Temporary use by renters is
    tracked through Rental and SpotClaim, never on this row.
    """
    __tablename__ = "spots"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Human identifier painted on the ground, e.g. "B-014"
    code = Column(String(20), nullable=False, unique=True, index=True)
    lot = Column(String(50), nullable=False, index=True)
    spot_type = Column(Enum(SpotType), default=SpotType.SINGLE, nullable=False)

    distance_to_campus_m = Column(Float, nullable=False)
    compact_only = Column(Boolean, default=False, nullable=False)

    owner_id = Column(Integer, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def fits(self, vehicle_size: VehicleSize) -> bool:
        """Compact vehicles fit anywhere; others never fit compact-only spots."""
        return not self.compact_only or vehicle_size == VehicleSize.COMPACT

    def __repr__(self):
        return f"<Spot(id={self.id}, code='{self.code}', lot='{self.lot}', distance={self.distance_to_campus_m})>"
