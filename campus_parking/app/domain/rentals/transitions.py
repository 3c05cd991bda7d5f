"""
Rental state machine.

The transition table below is the only place legal status changes are
defined. Every status write in the lifecycle goes through `next_status`.
"""

from typing import Dict, Tuple

from campus_parking.app.core.exceptions import InvalidTransitionError
from campus_parking.app.models.rental_enums import RentalEvent, RentalStatus

TRANSITIONS: Dict[Tuple[RentalStatus, RentalEvent], RentalStatus] = {
    (RentalStatus.PENDING, RentalEvent.CONFIRM): RentalStatus.CONFIRMED,
    (RentalStatus.PENDING, RentalEvent.CANCEL): RentalStatus.CANCELLED,
    (RentalStatus.PENDING, RentalEvent.ESCALATE): RentalStatus.DISPUTED,
    (RentalStatus.CONFIRMED, RentalEvent.COMPLETE): RentalStatus.COMPLETED,
    (RentalStatus.CONFIRMED, RentalEvent.REPORT): RentalStatus.DISPUTED,
    (RentalStatus.CONFIRMED, RentalEvent.ESCALATE): RentalStatus.DISPUTED,
    (RentalStatus.CONFIRMED, RentalEvent.CANCEL): RentalStatus.CANCELLED,
    (RentalStatus.DISPUTED, RentalEvent.RESOLVE_COMPLETE): RentalStatus.COMPLETED,
    (RentalStatus.DISPUTED, RentalEvent.RESOLVE_CANCEL): RentalStatus.CANCELLED,
}


def next_status(current: RentalStatus, event: RentalEvent) -> RentalStatus:
    """
    Raises:
        InvalidTransitionError: event not legal from `current`
    """
    try:
        return TRANSITIONS[(current, event)]
    except KeyError:
        raise InvalidTransitionError(current.value, event.value)


def allowed_events(current: RentalStatus):
    """Events legal from `current`, by name."""
    return sorted((e for (s, e) in TRANSITIONS if s == current), key=lambda e: e.value)
