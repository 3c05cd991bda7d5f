"""
Report database model.

Reports are delivered by the report/dispute collaborator (or generated by
the system when payment retries are exhausted).
"""

from sqlalchemy import Column, Integer, Text, Boolean, DateTime, ForeignKey, Enum
from sqlalchemy.sql import func
from campus_parking.app.db.session import Base
from campus_parking.app.models.rental_enums import ReportKind


class Report(Base):
    """
    Report filed against a rental.

    An open report blocks automatic completion.
    """
    __tablename__ = "reports"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    rental_id = Column(Integer, ForeignKey("rentals.id"), nullable=False, index=True)
    reporter_id = Column(Integer, nullable=True)  # None for system reports

    kind = Column(Enum(ReportKind), nullable=False)
    description = Column(Text, nullable=True)
    is_open = Column(Boolean, default=True, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    closed_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<Report(id={self.id}, rental_id={self.rental_id}, kind='{self.kind.value}', open={self.is_open})>"
