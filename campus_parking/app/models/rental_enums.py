"""
Rental-related enumerations.
"""

import enum


class RentalStatus(str, enum.Enum):
    """Rental status enumeration."""
    PENDING = "PENDING"  # Spot claimed, payment authorized (not captured)
    CONFIRMED = "CONFIRMED"  # Payment captured into escrow
    COMPLETED = "COMPLETED"  # Escrow transferred to owner
    CANCELLED = "CANCELLED"  # Escrow refunded to renter
    DISPUTED = "DISPUTED"  # Escrow frozen pending admin resolution


ACTIVE_STATUSES = (RentalStatus.PENDING, RentalStatus.CONFIRMED, RentalStatus.DISPUTED)
TERMINAL_STATUSES = (RentalStatus.COMPLETED, RentalStatus.CANCELLED)


class RentalEvent(str, enum.Enum):
    """Inputs that drive the rental state machine."""
    CONFIRM = "CONFIRM"
    COMPLETE = "COMPLETE"
    REPORT = "REPORT"
    ESCALATE = "ESCALATE"  # Payment collaborator exhausted its retries
    CANCEL = "CANCEL"
    RESOLVE_COMPLETE = "RESOLVE_COMPLETE"  # Admin decision
    RESOLVE_CANCEL = "RESOLVE_CANCEL"  # Admin decision


class EscrowSettlement(str, enum.Enum):
    """How the escrow hold was released. Set exactly once."""
    REFUND = "REFUND"
    TRANSFER = "TRANSFER"


class ReassignmentOutcome(str, enum.Enum):
    """Outcome of a reassignment attempt."""
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXHAUSTED = "EXHAUSTED"


class ReportKind(str, enum.Enum):
    """Kind of report filed against a rental."""
    BLOCKED_SPOT = "BLOCKED_SPOT"
    MISCONDUCT = "MISCONDUCT"
    OTHER = "OTHER"
    SYSTEM_PAYMENT_FAILURE = "SYSTEM_PAYMENT_FAILURE"


class OffenseType(str, enum.Enum):
    """Penalty offense types."""
    LATE_CANCELLATION = "LATE_CANCELLATION"
    DISPUTE_RULING = "DISPUTE_RULING"


class PaymentOperationType(str, enum.Enum):
    """Successful payment collaborator calls."""
    AUTHORIZE = "AUTHORIZE"
    CAPTURE = "CAPTURE"
    REFUND = "REFUND"
    TRANSFER = "TRANSFER"
