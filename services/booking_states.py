"""
Booking State Machine
Version: 1.0

Transition table for booking statuses and boundary parsing of status strings.
DEPENDS ON: schemas.py, services/errors.py
"""

from typing import Dict, FrozenSet, Type, TypeVar
from enum import Enum

from schemas import BookingStatus
from services.errors import InvalidStateError, ValidationError

E = TypeVar("E", bound=Enum)


TERMINAL_STATUSES: FrozenSet[BookingStatus] = frozenset({
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
})

# Edges only the driver assignment operation may take: assign from PENDING,
# swap or remove from DRIVER_ASSIGNED. PENDING -> PENDING clears an empty slot.
ASSIGNMENT_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.DRIVER_ASSIGNED, BookingStatus.PENDING}),
    BookingStatus.DRIVER_ASSIGNED: frozenset({BookingStatus.DRIVER_ASSIGNED, BookingStatus.PENDING}),
}

# Transitions reachable through update_status
STATUS_TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.DRIVER_ASSIGNED: frozenset({BookingStatus.ONGOING, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.ONGOING, BookingStatus.CANCELLED}),
    BookingStatus.ONGOING: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}


def is_terminal(status: BookingStatus) -> bool:
    return status in TERMINAL_STATUSES


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in STATUS_TRANSITIONS.get(current, frozenset())


def assert_transition(current: BookingStatus, target: BookingStatus) -> None:
    """Raise InvalidStateError unless current -> target is in the table."""
    if not can_transition(current, target):
        if target == BookingStatus.DRIVER_ASSIGNED:
            raise InvalidStateError(
                "DRIVER_ASSIGNED is set by driver assignment, not by a status update",
                current=current.value
            )
        raise InvalidStateError(
            f"Invalid booking transition: {current.value} -> {target.value}",
            current=current.value,
            target=target.value
        )


def can_assign(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ASSIGNMENT_TRANSITIONS.get(current, frozenset())


def assert_assignment(current: BookingStatus, target: BookingStatus) -> None:
    """Raise InvalidStateError unless driver assignment may move current -> target."""
    if not can_assign(current, target):
        raise InvalidStateError(
            f"Cannot change driver of a booking in status {current.value}",
            current=current.value,
            target=target.value
        )


def _parse(enum_cls: Type[E], value, label: str) -> E:
    if isinstance(value, enum_cls):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Missing {label}")
    try:
        return enum_cls(value.strip().upper())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(f"Unknown {label} '{value}'. Allowed: {allowed}") from None


def parse_status(value) -> BookingStatus:
    """Parse a free-form status string once, at the boundary."""
    return _parse(BookingStatus, value, "booking status")
