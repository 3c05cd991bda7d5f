"""
Rental database model.

A rental is a paid, date-scoped transfer of spot usage from the spot
owner to a renter, backed by an escrow hold at the payment collaborator.
"""

from sqlalchemy import Column, Integer, Float, String, Boolean, Date, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from campus_parking.app.db.session import Base
from campus_parking.app.models.enums import VehicleSize
from campus_parking.app.models.rental_enums import RentalStatus, EscrowSettlement
from campus_parking.app.domain.rentals.transitions import allowed_events


class Rental(Base):
    """
    Rental model.

    Keyed by (spot, date). Holds the escrow intent while PENDING,
    CONFIRMED or DISPUTED; the escrow is settled exactly once at a
    terminal status (see `settlement`).
    """
    __tablename__ = "rentals"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Spot and date (spot_id changes on an accepted reassignment)
    spot_id = Column(Integer, ForeignKey("spots.id"), nullable=False, index=True)
    original_spot_id = Column(Integer, ForeignKey("spots.id"), nullable=True)
    rental_date = Column(Date, nullable=False, index=True)

    # Parties
    owner_id = Column(Integer, nullable=False, index=True)
    renter_id = Column(Integer, nullable=False, index=True)
    vehicle_size = Column(Enum(VehicleSize), default=VehicleSize.STANDARD, nullable=False)

    # Financials
    price = Column(Float, nullable=False)
    escrow_intent_id = Column(String(100), nullable=True, index=True)
    escrow_captured_at = Column(DateTime(timezone=True), nullable=True)
    settlement = Column(Enum(EscrowSettlement), nullable=True)
    settled_amount = Column(Float, nullable=True)
    settled_at = Column(DateTime(timezone=True), nullable=True)

    # Status
    status = Column(Enum(RentalStatus), default=RentalStatus.PENDING, nullable=False, index=True)

    # Reassignment (count is capped at 1)
    reassignment_count = Column(Integer, default=0, nullable=False)
    reassignment_exhausted = Column(Boolean, default=False, nullable=False)
    offered_spot_id = Column(Integer, ForeignKey("spots.id"), nullable=True)
    offer_expires_at = Column(DateTime(timezone=True), nullable=True)

    cancelled_by_id = Column(Integer, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def has_pending_offer(self) -> bool:
        return self.offered_spot_id is not None

    @property
    def allowed_events(self):
        return allowed_events(self.status)

    @property
    def display_status(self) -> str:
        """Status wording shown to users."""
        if self.status == RentalStatus.DISPUTED:
            return "under review"
        if self.status == RentalStatus.CANCELLED and self.reassignment_exhausted:
            return "refunded + credit issued"
        if self.has_pending_offer:
            return "reassignment offered"
        return self.status.value.lower()

    def __repr__(self):
        return f"<Rental(id={self.id}, spot_id={self.spot_id}, date={self.rental_date}, status='{self.status.value}')>"
