"""
Payment Operation database model.

Immutable record of every successful call to the payment collaborator.
"""

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, Enum, String
from sqlalchemy.sql import func
from campus_parking.app.db.session import Base
from campus_parking.app.models.rental_enums import PaymentOperationType


class PaymentOperation(Base):
    """
    Payment Operation model.

    Every terminal rental carries exactly one REFUND or TRANSFER row.
    NO updates or deletions allowed.
    """
    __tablename__ = "payment_operations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    rental_id = Column(Integer, ForeignKey("rentals.id"), nullable=False, index=True)
    intent_id = Column(String(100), nullable=False, index=True)

    operation = Column(Enum(PaymentOperationType), nullable=False)
    amount = Column(Float, nullable=True)
    payee_id = Column(Integer, nullable=True)

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<PaymentOperation(rental_id={self.rental_id}, op='{self.operation.value}', amount={self.amount})>"
