"""
Reassignment Record database model.

Append-only audit trail of reassignment attempts.
"""

from sqlalchemy import Column, Integer, ForeignKey, DateTime, Enum
from sqlalchemy.sql import func
from campus_parking.app.db.session import Base
from campus_parking.app.models.rental_enums import ReassignmentOutcome


class ReassignmentRecord(Base):
    """
    Reassignment Record model.

    NO updates or deletions allowed.
    """
    __tablename__ = "reassignment_records"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    rental_id = Column(Integer, ForeignKey("rentals.id"), nullable=False, index=True)
    blocked_spot_id = Column(Integer, ForeignKey("spots.id"), nullable=False)
    candidate_spot_id = Column(Integer, ForeignKey("spots.id"), nullable=True)  # None when exhausted

    outcome = Column(Enum(ReassignmentOutcome), nullable=False)

    # Timestamps (Immutable - no updated_at)
    recorded_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<ReassignmentRecord(rental_id={self.rental_id}, candidate={self.candidate_spot_id}, outcome='{self.outcome.value}')>"
