"""
Tests for services/booking_states.py
"""
import pytest

from schemas import BookingStatus
from services.booking_states import (
    ASSIGNMENT_TRANSITIONS,
    STATUS_TRANSITIONS,
    assert_assignment,
    assert_transition,
    can_assign,
    can_transition,
    is_terminal,
    parse_status,
)
from services.errors import InvalidStateError, ValidationError


class TestTransitionTable:
    """Legal and illegal status moves."""

    @pytest.mark.parametrize("current,target", [
        (BookingStatus.PENDING, BookingStatus.CONFIRMED),
        (BookingStatus.PENDING, BookingStatus.CANCELLED),
        (BookingStatus.CONFIRMED, BookingStatus.ONGOING),
        (BookingStatus.DRIVER_ASSIGNED, BookingStatus.ONGOING),
        (BookingStatus.DRIVER_ASSIGNED, BookingStatus.CANCELLED),
        (BookingStatus.ONGOING, BookingStatus.COMPLETED),
        (BookingStatus.ONGOING, BookingStatus.CANCELLED),
    ])
    def test_allowed(self, current, target):
        assert can_transition(current, target)
        assert_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (BookingStatus.PENDING, BookingStatus.ONGOING),
        (BookingStatus.PENDING, BookingStatus.COMPLETED),
        (BookingStatus.CONFIRMED, BookingStatus.PENDING),
        (BookingStatus.ONGOING, BookingStatus.PENDING),
    ])
    def test_rejected(self, current, target):
        assert not can_transition(current, target)
        with pytest.raises(InvalidStateError):
            assert_transition(current, target)

    @pytest.mark.parametrize("terminal", [BookingStatus.COMPLETED, BookingStatus.CANCELLED])
    def test_terminal_statuses_are_final(self, terminal):
        assert is_terminal(terminal)
        assert STATUS_TRANSITIONS[terminal] == frozenset()
        for target in BookingStatus:
            with pytest.raises(InvalidStateError):
                assert_transition(terminal, target)

    def test_driver_assigned_not_reachable_by_status_update(self):
        for current in BookingStatus:
            assert not can_transition(current, BookingStatus.DRIVER_ASSIGNED)

        with pytest.raises(InvalidStateError) as exc:
            assert_transition(BookingStatus.PENDING, BookingStatus.DRIVER_ASSIGNED)
        assert "driver assignment" in exc.value.message

    def test_every_status_has_a_row(self):
        assert set(STATUS_TRANSITIONS) == set(BookingStatus)


class TestAssignable:

    @pytest.mark.parametrize("current,target", [
        (BookingStatus.PENDING, BookingStatus.DRIVER_ASSIGNED),
        (BookingStatus.PENDING, BookingStatus.PENDING),
        (BookingStatus.DRIVER_ASSIGNED, BookingStatus.DRIVER_ASSIGNED),
        (BookingStatus.DRIVER_ASSIGNED, BookingStatus.PENDING),
    ])
    def test_assignable(self, current, target):
        assert can_assign(current, target)
        assert_assignment(current, target)

    @pytest.mark.parametrize("status", [
        BookingStatus.CONFIRMED,
        BookingStatus.ONGOING,
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED,
    ])
    def test_not_assignable(self, status):
        for target in (BookingStatus.DRIVER_ASSIGNED, BookingStatus.PENDING):
            assert not can_assign(status, target)
            with pytest.raises(InvalidStateError):
                assert_assignment(status, target)

    def test_assignment_never_confirms(self):
        for targets in ASSIGNMENT_TRANSITIONS.values():
            assert BookingStatus.CONFIRMED not in targets


class TestParseStatus:

    def test_enum_passthrough(self):
        assert parse_status(BookingStatus.ONGOING) is BookingStatus.ONGOING

    def test_case_and_whitespace(self):
        assert parse_status(" completed ") == BookingStatus.COMPLETED

    def test_unknown_value(self):
        with pytest.raises(ValidationError) as exc:
            parse_status("FINISHED")
        assert "Allowed" in exc.value.message

    @pytest.mark.parametrize("value", [None, "", "   ", 3])
    def test_missing_value(self, value):
        with pytest.raises(ValidationError):
            parse_status(value)
