"""
Tests for services/booking_service.py

Runs against a real SQLite store; notifications go to a mock sink.
"""
import asyncio
from datetime import date
from decimal import Decimal
from unittest.mock import ANY, MagicMock

import pydantic
import pytest

from models import Booking, User, Vehicle
from schemas import BookingEvent, BookingRequest, BookingStatus, PaymentStatus
from services.booking_service import BookingService, validate_date_range
from services.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from services.notification_service import SafeNotifier


class TestCreateBooking:

    @pytest.mark.asyncio
    async def test_create_holds_vehicle(self, booking_service, make_request, fleet, fetch):
        booking = await booking_service.create_booking(make_request())

        assert booking.id is not None
        assert booking.status == BookingStatus.PENDING
        assert booking.payment_status == PaymentStatus.PENDING
        assert booking.driver_id is None
        assert booking.total_price == Decimal("250.00")
        assert booking.pickup_location == "Airport Terminal 1"

        vehicle = await fetch(Vehicle, fleet.v1)
        assert vehicle.available is False

    @pytest.mark.asyncio
    async def test_booking_number_format(self, booking_service, make_request):
        booking = await booking_service.create_booking(make_request())

        number = booking.booking_number
        assert number.startswith("BK")
        assert number[2:].isdigit()
        assert len(number) == 2 + 13 + 4

    @pytest.mark.asyncio
    async def test_overlap_rejected(self, booking_service, make_request):
        await booking_service.create_booking(make_request())

        with pytest.raises(ConflictError):
            await booking_service.create_booking(
                make_request(start_date=date(2024, 6, 3), end_date=date(2024, 6, 7))
            )

    @pytest.mark.asyncio
    async def test_unavailable_vehicle_rejected_for_any_dates(self, booking_service, make_request):
        await booking_service.create_booking(make_request())

        with pytest.raises(ConflictError) as exc:
            await booking_service.create_booking(
                make_request(start_date=date(2024, 9, 1), end_date=date(2024, 9, 2))
            )
        assert exc.value.message == "Vehicle is not available"

    @pytest.mark.asyncio
    async def test_other_vehicle_same_dates(self, booking_service, make_request, fleet):
        await booking_service.create_booking(make_request())
        second = await booking_service.create_booking(make_request(vehicle_id=fleet.v2))
        assert second.vehicle_id == fleet.v2

    @pytest.mark.asyncio
    async def test_single_day_booking(self, booking_service, make_request):
        booking = await booking_service.create_booking(
            make_request(start_date=date(2024, 6, 1), end_date=date(2024, 6, 1))
        )
        assert booking.start_date == booking.end_date

    @pytest.mark.asyncio
    async def test_missing_user(self, booking_service, make_request):
        with pytest.raises(NotFoundError):
            await booking_service.create_booking(make_request(user_id=9999))

    @pytest.mark.asyncio
    async def test_missing_vehicle(self, booking_service, make_request):
        with pytest.raises(NotFoundError) as exc:
            await booking_service.create_booking(make_request(vehicle_id=9999))
        assert "Vehicle 9999" in exc.value.message

    @pytest.mark.asyncio
    async def test_reversed_dates_rejected_by_service(self, booking_service, make_request, fleet, fetch):
        valid = make_request()
        reversed_request = BookingRequest.model_construct(
            **{**valid.model_dump(), "start_date": date(2024, 6, 5), "end_date": date(2024, 6, 1)}
        )

        with pytest.raises(ValidationError):
            await booking_service.create_booking(reversed_request)

        vehicle = await fetch(Vehicle, fleet.v1)
        assert vehicle.available is True

    def test_reversed_dates_rejected_by_schema(self, make_request):
        with pytest.raises(pydantic.ValidationError):
            make_request(start_date=date(2024, 6, 5), end_date=date(2024, 6, 1))

    def test_validate_date_range(self):
        validate_date_range(date(2024, 1, 1), date(2024, 1, 1))
        with pytest.raises(ValidationError):
            validate_date_range(date(2024, 1, 2), date(2024, 1, 1))
        with pytest.raises(ValidationError):
            validate_date_range(None, date(2024, 1, 1))

    @pytest.mark.asyncio
    async def test_concurrent_creates_one_wins(self, booking_service, make_request):
        results = await asyncio.gather(
            booking_service.create_booking(make_request()),
            booking_service.create_booking(make_request()),
            booking_service.create_booking(make_request()),
            return_exceptions=True
        )

        created = [r for r in results if isinstance(r, Booking)]
        conflicts = [r for r in results if isinstance(r, ConflictError)]
        assert len(created) == 1
        assert len(conflicts) == 2

        assert len(await booking_service.list_bookings()) == 1


class TestBookingNumbers:

    @pytest.mark.asyncio
    async def test_collision_regenerates(self, booking_service, make_request, fleet):
        booking_service.generate_booking_number = MagicMock(
            side_effect=["BK0000000000001", "BK0000000000001", "BK0000000000002"]
        )

        first = await booking_service.create_booking(make_request())
        second = await booking_service.create_booking(make_request(vehicle_id=fleet.v2))

        assert first.booking_number == "BK0000000000001"
        assert second.booking_number == "BK0000000000002"
        assert booking_service.generate_booking_number.call_count == 3

    @pytest.mark.asyncio
    async def test_gives_up_after_attempts(self, booking_service, make_request, fleet, fetch):
        booking_service.generate_booking_number = MagicMock(return_value="BK0000000000001")
        await booking_service.create_booking(make_request())

        with pytest.raises(ConflictError):
            await booking_service.create_booking(make_request(vehicle_id=fleet.v2))

        vehicle = await fetch(Vehicle, fleet.v2)
        assert vehicle.available is True


class TestLookups:

    @pytest.mark.asyncio
    async def test_get_booking(self, booking_service, make_request):
        created = await booking_service.create_booking(make_request())

        by_id = await booking_service.get_booking(created.id)
        by_number = await booking_service.get_booking_by_number(created.booking_number)

        assert by_id.id == created.id
        assert by_number.id == created.id

    @pytest.mark.asyncio
    async def test_get_missing(self, booking_service):
        with pytest.raises(NotFoundError):
            await booking_service.get_booking(424242)
        with pytest.raises(NotFoundError):
            await booking_service.get_booking_by_number("BK-NOPE")

    @pytest.mark.asyncio
    async def test_lists_newest_first(self, booking_service, make_request, fleet):
        first = await booking_service.create_booking(make_request())
        second = await booking_service.create_booking(make_request(vehicle_id=fleet.v2))

        all_bookings = await booking_service.list_bookings()
        assert [b.id for b in all_bookings] == [second.id, first.id]

        mine = await booking_service.list_bookings_by_user(fleet.customer)
        assert len(mine) == 2
        assert await booking_service.list_bookings_by_user(fleet.admin) == []

    @pytest.mark.asyncio
    async def test_list_by_status(self, booking_service, make_request, fleet):
        first = await booking_service.create_booking(make_request())
        await booking_service.create_booking(make_request(vehicle_id=fleet.v2))
        await booking_service.update_status(first.id, "CONFIRMED")

        pending = await booking_service.list_bookings_by_status("pending")
        confirmed = await booking_service.list_bookings_by_status(BookingStatus.CONFIRMED)

        assert len(pending) == 1
        assert [b.id for b in confirmed] == [first.id]

    @pytest.mark.asyncio
    async def test_list_by_unknown_status(self, booking_service):
        with pytest.raises(ValidationError):
            await booking_service.list_bookings_by_status("LOST")

    @pytest.mark.asyncio
    async def test_list_by_driver(self, booking_service, assignment_service, make_request, fleet):
        booking = await booking_service.create_booking(make_request())
        await assignment_service.assign_driver(booking.id, fleet.d1)

        trips = await booking_service.list_bookings_by_driver(fleet.d1)
        assert [t.id for t in trips] == [booking.id]
        assert await booking_service.list_bookings_by_driver(fleet.d2) == []

    @pytest.mark.asyncio
    async def test_vehicle_availability_query(self, booking_service, make_request, fleet):
        assert await booking_service.is_vehicle_available(fleet.v1, date(2024, 6, 1), date(2024, 6, 5))

        await booking_service.create_booking(make_request())

        assert not await booking_service.is_vehicle_available(fleet.v1, date(2024, 6, 3), date(2024, 6, 4))
        assert not await booking_service.is_vehicle_available(fleet.v1, date(2024, 7, 1), date(2024, 7, 2))

        with pytest.raises(NotFoundError):
            await booking_service.is_vehicle_available(9999, date(2024, 6, 1), date(2024, 6, 2))


class TestUpdateStatus:

    @pytest.mark.asyncio
    async def test_happy_path(self, booking_service, make_request, fleet, fetch, mock_sink):
        booking = await booking_service.create_booking(make_request())

        await booking_service.update_status(booking.id, "CONFIRMED")
        await booking_service.update_status(booking.id, BookingStatus.ONGOING)
        assert (await fetch(Vehicle, fleet.v1)).available is False

        done = await booking_service.update_status(booking.id, "COMPLETED")
        assert done.status == BookingStatus.COMPLETED
        assert (await fetch(Vehicle, fleet.v1)).available is True

        mock_sink.notify.assert_awaited_with(BookingEvent.STATUS_CHANGED, ANY)
        payload = mock_sink.notify.await_args.args[1]
        assert payload["previous_status"] == "ONGOING"
        assert payload["status"] == "COMPLETED"

    @pytest.mark.asyncio
    async def test_cancel_from_pending_releases_vehicle(self, booking_service, make_request, fleet, fetch):
        booking = await booking_service.create_booking(make_request())

        await booking_service.update_status(booking.id, "CANCELLED")

        assert (await fetch(Vehicle, fleet.v1)).available is True
        again = await booking_service.create_booking(make_request())
        assert again.id != booking.id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("terminal", ["COMPLETED", "CANCELLED"])
    async def test_terminal_is_final(self, booking_service, make_request, terminal):
        booking = await booking_service.create_booking(make_request())
        await booking_service.update_status(booking.id, "CONFIRMED")
        await booking_service.update_status(booking.id, "ONGOING")
        await booking_service.update_status(booking.id, terminal)

        for target in ["PENDING", "CONFIRMED", "ONGOING", "COMPLETED", "CANCELLED"]:
            with pytest.raises(InvalidStateError):
                await booking_service.update_status(booking.id, target)

    @pytest.mark.asyncio
    async def test_illegal_jump(self, booking_service, make_request):
        booking = await booking_service.create_booking(make_request())
        with pytest.raises(InvalidStateError):
            await booking_service.update_status(booking.id, "COMPLETED")

        unchanged = await booking_service.get_booking(booking.id)
        assert unchanged.status == BookingStatus.PENDING

    @pytest.mark.asyncio
    async def test_driver_assigned_rejected(self, booking_service, make_request):
        booking = await booking_service.create_booking(make_request())
        with pytest.raises(InvalidStateError):
            await booking_service.update_status(booking.id, "DRIVER_ASSIGNED")

    @pytest.mark.asyncio
    async def test_unknown_status(self, booking_service, make_request):
        booking = await booking_service.create_booking(make_request())
        with pytest.raises(ValidationError):
            await booking_service.update_status(booking.id, "PARKED")

    @pytest.mark.asyncio
    async def test_missing_booking(self, booking_service, fleet):
        with pytest.raises(NotFoundError):
            await booking_service.update_status(9999, "CONFIRMED")

    @pytest.mark.asyncio
    async def test_cancel_releases_driver_keeps_reference(
        self, booking_service, assignment_service, make_request, fleet, fetch
    ):
        booking = await booking_service.create_booking(make_request())
        await assignment_service.assign_driver(booking.id, fleet.d1)

        cancelled = await booking_service.update_status(booking.id, "CANCELLED")

        assert cancelled.driver_id == fleet.d1
        assert (await fetch(User, fleet.d1)).available is True
        assert (await fetch(Vehicle, fleet.v1)).available is True


class TestConfirmPayment:

    @pytest.mark.asyncio
    async def test_requires_completed(self, booking_service, make_request):
        booking = await booking_service.create_booking(make_request())
        with pytest.raises(InvalidStateError) as exc:
            await booking_service.confirm_payment(booking.id)
        assert "completed bookings" in exc.value.message

    @pytest.mark.asyncio
    async def test_confirm_once(self, booking_service, make_request, mock_sink):
        booking = await booking_service.create_booking(make_request())
        for status in ["CONFIRMED", "ONGOING", "COMPLETED"]:
            await booking_service.update_status(booking.id, status)

        paid = await booking_service.confirm_payment(booking.id)
        assert paid.payment_status == PaymentStatus.COMPLETED
        mock_sink.notify.assert_awaited_with(BookingEvent.PAYMENT_CONFIRMED, ANY)

        with pytest.raises(InvalidStateError) as exc:
            await booking_service.confirm_payment(booking.id)
        assert exc.value.message == "Payment already confirmed"

    @pytest.mark.asyncio
    async def test_missing_booking(self, booking_service, fleet):
        with pytest.raises(NotFoundError):
            await booking_service.confirm_payment(9999)


class TestDeleteBooking:

    @pytest.mark.asyncio
    async def test_delete_restores_vehicle_and_driver(
        self, booking_service, assignment_service, make_request, fleet, fetch
    ):
        booking = await booking_service.create_booking(make_request())
        await assignment_service.assign_driver(booking.id, fleet.d1)
        assert (await fetch(User, fleet.d1)).available is False

        await booking_service.delete_booking(booking.id)

        assert (await fetch(Vehicle, fleet.v1)).available is True
        assert (await fetch(User, fleet.d1)).available is True
        with pytest.raises(NotFoundError):
            await booking_service.get_booking(booking.id)

    @pytest.mark.asyncio
    async def test_delete_completed_booking(self, booking_service, make_request, fleet, fetch):
        booking = await booking_service.create_booking(make_request())
        await booking_service.update_status(booking.id, "CANCELLED")

        await booking_service.delete_booking(booking.id)

        assert (await fetch(Vehicle, fleet.v1)).available is True
        assert await booking_service.list_bookings() == []

    @pytest.mark.asyncio
    async def test_delete_missing(self, booking_service, fleet):
        with pytest.raises(NotFoundError):
            await booking_service.delete_booking(9999)


class TestNotifications:

    @pytest.mark.asyncio
    async def test_created_event(self, booking_service, make_request, mock_sink):
        booking = await booking_service.create_booking(make_request())

        mock_sink.notify.assert_awaited_once_with(BookingEvent.BOOKING_CREATED, ANY)
        payload = mock_sink.notify.await_args.args[1]
        assert payload["booking_id"] == booking.id
        assert payload["booking_number"] == booking.booking_number

    @pytest.mark.asyncio
    async def test_sink_failure_propagates_after_commit(self, booking_service, make_request, mock_sink):
        mock_sink.notify.side_effect = RuntimeError("stream down")

        with pytest.raises(RuntimeError):
            await booking_service.create_booking(make_request())

        assert len(await booking_service.list_bookings()) == 1

    @pytest.mark.asyncio
    async def test_safe_notifier_hides_failure(
        self, session_factory, guard, locks, mock_sink, make_request
    ):
        mock_sink.notify.side_effect = RuntimeError("stream down")
        service = BookingService(session_factory, guard=guard, locks=locks, notifier=SafeNotifier(mock_sink))

        booking = await service.create_booking(make_request())

        assert booking.status == BookingStatus.PENDING
        mock_sink.notify.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_without_notifier(self, session_factory, guard, locks, make_request):
        service = BookingService(session_factory, guard=guard, locks=locks)
        booking = await service.create_booking(make_request())
        assert booking.id is not None


class TestScenarios:
    """End-to-end walk through creation, assignment, completion and payment."""

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, booking_service, assignment_service, make_request, fleet, fetch):
        # 1. book V1
        booking = await booking_service.create_booking(make_request())
        assert booking.status == BookingStatus.PENDING
        assert (await fetch(Vehicle, fleet.v1)).available is False

        # 2. overlapping request
        with pytest.raises(ConflictError):
            await booking_service.create_booking(
                make_request(start_date=date(2024, 6, 3), end_date=date(2024, 6, 7))
            )

        # 3. assign D1, then swap to D2
        assigned = await assignment_service.assign_driver(booking.id, fleet.d1)
        assert assigned.status == BookingStatus.DRIVER_ASSIGNED
        assert (await fetch(User, fleet.d1)).available is False

        swapped = await assignment_service.assign_driver(booking.id, fleet.d2)
        assert swapped.driver_id == fleet.d2
        assert (await fetch(User, fleet.d1)).available is True
        assert (await fetch(User, fleet.d2)).available is False

        # 5. payment before completion
        other = await booking_service.create_booking(make_request(vehicle_id=fleet.v2))
        with pytest.raises(InvalidStateError):
            await booking_service.confirm_payment(other.id)

        # 4. complete
        await booking_service.update_status(booking.id, "ONGOING")
        completed = await booking_service.update_status(booking.id, "COMPLETED")
        assert completed.status == BookingStatus.COMPLETED
        assert (await fetch(Vehicle, fleet.v1)).available is True
        assert (await fetch(User, fleet.d2)).available is True

        # 6. pay once
        paid = await booking_service.confirm_payment(booking.id)
        assert paid.payment_status == PaymentStatus.COMPLETED
        with pytest.raises(InvalidStateError):
            await booking_service.confirm_payment(booking.id)
