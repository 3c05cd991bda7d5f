"""
Penalty and Platform Credit database models.

Both are created by the rental lifecycle (or an admin ruling) and are
never deleted automatically.
"""

from sqlalchemy import Column, Integer, Float, Boolean, String, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from campus_parking.app.db.session import Base
from campus_parking.app.models.rental_enums import OffenseType


class Penalty(Base):
    """Penalty owed by a user."""
    __tablename__ = "penalties"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    user_id = Column(Integer, nullable=False, index=True)
    rental_id = Column(Integer, ForeignKey("rentals.id"), nullable=True, index=True)

    offense_type = Column(Enum(OffenseType), nullable=False)
    amount = Column(Float, nullable=False)
    is_paid = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Penalty(user_id={self.user_id}, offense='{self.offense_type.value}', amount={self.amount})>"


class PlatformCredit(Base):
    """Credit granted to a user, e.g. after an exhausted reassignment."""
    __tablename__ = "platform_credits"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    user_id = Column(Integer, nullable=False, index=True)
    rental_id = Column(Integer, ForeignKey("rentals.id"), nullable=True, index=True)

    amount = Column(Float, nullable=False)
    reason = Column(String(255), nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<PlatformCredit(user_id={self.user_id}, amount={self.amount})>"
