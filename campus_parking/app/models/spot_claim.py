"""
Spot Claim database model.

Ensures at most one active claim per (spot, date) through a DB-level
partial unique index.
"""

from sqlalchemy import Column, Integer, ForeignKey, DateTime, Date, Index, text
from sqlalchemy.sql import func
from campus_parking.app.db.session import Base


class SpotClaim(Base):
    """
    Spot Claim model.

    A claim is taken when a rental is created (or a reassignment candidate
    is reserved) and released when the rental ends or moves away.
    """
    __tablename__ = "spot_claims"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    spot_id = Column(Integer, ForeignKey("spots.id"), nullable=False, index=True)
    claim_date = Column(Date, nullable=False, index=True)
    rental_id = Column(Integer, ForeignKey("rentals.id"), nullable=False, index=True)

    claimed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    released_at = Column(DateTime(timezone=True), nullable=True)

    # Only one active claim per (spot, date)
    __table_args__ = (
        Index(
            "ix_spot_claims_active",
            "spot_id", "claim_date",
            unique=True,
            postgresql_where=text("released_at IS NULL"),
            sqlite_where=text("released_at IS NULL"),
        ),
    )

    @property
    def is_active(self) -> bool:
        return self.released_at is None

    def __repr__(self):
        return f"<SpotClaim(spot_id={self.spot_id}, date={self.claim_date}, rental_id={self.rental_id}, active={self.is_active})>"
