"""
Booking Service
Version: 1.0

Booking lifecycle: creation with conflict detection, lookups, status
transitions, payment confirmation and deletion. Every write runs in one
transaction together with the availability updates it causes.
DEPENDS ON: services/booking_base.py, services/booking_states.py
"""

import random
import time
from datetime import date
from typing import List, Union

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from models import Booking
from schemas import BookingEvent, BookingRequest, BookingStatus, PaymentStatus, ResourceType
from services.booking_base import BookingServiceBase
from services.booking_states import assert_transition, is_terminal, parse_status
from services.directory import UserDirectory, VehicleCatalog
from services.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from services.logging_config import get_logger
from services.metrics import STATUS_TRANSITIONS
from services.resource_locks import booking_key, driver_key, vehicle_key

logger = get_logger(__name__)


def validate_date_range(start: date, end: date) -> None:
    if start is None or end is None:
        raise ValidationError("Start and end dates are required")
    if start > end:
        raise ValidationError(
            "Start date must not be after end date",
            start_date=start.isoformat(),
            end_date=end.isoformat()
        )


class BookingService(BookingServiceBase):
    """
    Booking lifecycle manager.

    Handles:
    - create_booking (PENDING, vehicle held)
    - get / list lookups
    - update_status through the transition table
    - confirm_payment for completed bookings
    - delete_booking with release of held resources
    """

    def __init__(self, session_factory, guard=None, locks=None, notifier=None, settings=None):
        super().__init__(session_factory, guard=guard, locks=locks, notifier=notifier)
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Booking numbers
    # ------------------------------------------------------------------

    def generate_booking_number(self) -> str:
        """Prefix + epoch milliseconds + 4 random digits, e.g. BK17040672000001234."""
        millis = int(time.time() * 1000)
        suffix = random.randint(1000, 9999)
        return f"{self.settings.BOOKING_NUMBER_PREFIX}{millis}{suffix}"

    async def _allocate_booking_number(self, session: AsyncSession) -> str:
        for attempt in range(1, self.settings.BOOKING_NUMBER_ATTEMPTS + 1):
            number = self.generate_booking_number()
            taken = await session.scalar(select(exists().where(Booking.booking_number == number)))
            if not taken:
                return number
            logger.warning("Booking number collision", booking_number=number, attempt=attempt)
        raise ConflictError("Could not allocate a unique booking number, retry the request")

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_booking(self, request: BookingRequest) -> Booking:
        """
        Create a PENDING booking and hold the vehicle for its dates.

        Raises:
            ValidationError: start date after end date
            NotFoundError: customer or vehicle missing
            ConflictError: vehicle unavailable or dates overlap an active booking
        """
        validate_date_range(request.start_date, request.end_date)

        async with self.locks.hold(vehicle_key(request.vehicle_id)):
            async with self.transaction(
                "create_booking",
                user_id=request.user_id,
                vehicle_id=request.vehicle_id
            ) as session:
                await UserDirectory(session).resolve(request.user_id)
                vehicle = await VehicleCatalog(session).resolve(request.vehicle_id, lock=True)

                await self.guard.check_vehicle(session, vehicle, request.start_date, request.end_date)

                booking = Booking(
                    booking_number=await self._allocate_booking_number(session),
                    user_id=request.user_id,
                    vehicle_id=vehicle.id,
                    start_date=request.start_date,
                    end_date=request.end_date,
                    total_price=request.total_price,
                    status=BookingStatus.PENDING,
                    payment_status=PaymentStatus.PENDING,
                    pickup_location=request.pickup_location,
                    pickup_latitude=request.pickup_latitude,
                    pickup_longitude=request.pickup_longitude,
                    dropoff_location=request.dropoff_location,
                    dropoff_latitude=request.dropoff_latitude,
                    dropoff_longitude=request.dropoff_longitude,
                    distance_km=request.distance_km,
                    base_price_per_day=request.base_price_per_day,
                    distance_price=request.distance_price,
                    special_requests=request.special_requests,
                    payment_method=request.payment_method,
                )
                session.add(booking)
                await session.flush()

                await self.guard.reserve(session, ResourceType.VEHICLE, vehicle.id, booking)

        logger.info(
            "Booking created",
            booking_id=booking.id,
            booking_number=booking.booking_number,
            vehicle_id=booking.vehicle_id
        )
        await self.notify(BookingEvent.BOOKING_CREATED, booking)
        return booking

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_booking(self, booking_id: int) -> Booking:
        async with self.read_session() as session:
            booking = await session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found", booking_id=booking_id)
        return booking

    async def get_booking_by_number(self, booking_number: str) -> Booking:
        async with self.read_session() as session:
            result = await session.execute(
                select(Booking).where(Booking.booking_number == booking_number)
            )
            booking = result.scalar_one_or_none()
        if booking is None:
            raise NotFoundError(
                f"Booking {booking_number} not found",
                booking_number=booking_number
            )
        return booking

    async def _list(self, *criteria) -> List[Booking]:
        stmt = select(Booking).order_by(Booking.created_at.desc(), Booking.id.desc())
        if criteria:
            stmt = stmt.where(*criteria)
        async with self.read_session() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def list_bookings(self) -> List[Booking]:
        return await self._list()

    async def list_bookings_by_user(self, user_id: int) -> List[Booking]:
        """Customer's bookings, newest first."""
        return await self._list(Booking.user_id == user_id)

    async def list_bookings_by_driver(self, driver_id: int) -> List[Booking]:
        """Driver's trips, newest first."""
        return await self._list(Booking.driver_id == driver_id)

    async def list_bookings_by_status(self, status: Union[str, BookingStatus]) -> List[Booking]:
        return await self._list(Booking.status == parse_status(status))

    async def is_vehicle_available(self, vehicle_id: int, start: date, end: date) -> bool:
        """Whether the vehicle could be reserved for [start, end] right now."""
        validate_date_range(start, end)
        async with self.read_session() as session:
            vehicle = await VehicleCatalog(session).resolve(vehicle_id)
            if not self.guard.allow_advance_reservations and not vehicle.available:
                return False
            return await self.guard.is_available(session, ResourceType.VEHICLE, vehicle_id, start, end)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def update_status(
        self,
        booking_id: int,
        new_status: Union[str, BookingStatus]
    ) -> Booking:
        """
        Move a booking along the status table.

        Entering COMPLETED or CANCELLED releases the vehicle and the driver
        in the same transaction. The driver reference stays on the booking.

        Raises:
            ValidationError: unknown status string
            NotFoundError: booking missing
            InvalidStateError: transition not allowed
        """
        target = parse_status(new_status)

        async with self.locks.hold(booking_key(booking_id)):
            snapshot = await self.peek_booking(booking_id)
            driver_lock = driver_key(snapshot.driver_id) if snapshot.driver_id else None

            async with self.locks.hold(vehicle_key(snapshot.vehicle_id), driver_lock):
                async with self.transaction(
                    "update_status",
                    booking_id=booking_id,
                    target=target.value
                ) as session:
                    booking = await self.load_booking_for_update(session, booking_id)
                    previous = booking.status
                    assert_transition(previous, target)

                    booking.status = target
                    if is_terminal(target):
                        await self.lock_booking_resources(session, booking)
                        await self.guard.release_booking(session, booking)
                    await session.flush()

        STATUS_TRANSITIONS.labels(from_status=previous.value, to_status=target.value).inc()
        logger.info(
            "Booking status changed",
            booking_id=booking.id,
            from_status=previous.value,
            to_status=target.value
        )
        await self.notify(BookingEvent.STATUS_CHANGED, booking, previous_status=previous.value)
        return booking

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    async def confirm_payment(self, booking_id: int) -> Booking:
        """
        Mark a completed booking as paid.

        Raises:
            NotFoundError: booking missing
            InvalidStateError: booking not COMPLETED, or already paid
        """
        async with self.locks.hold(booking_key(booking_id)):
            async with self.transaction("confirm_payment", booking_id=booking_id) as session:
                booking = await self.load_booking_for_update(session, booking_id)

                if booking.status != BookingStatus.COMPLETED:
                    raise InvalidStateError(
                        "Can only confirm payment for completed bookings",
                        status=booking.status.value
                    )
                if booking.payment_status == PaymentStatus.COMPLETED:
                    raise InvalidStateError("Payment already confirmed", booking_id=booking_id)

                booking.payment_status = PaymentStatus.COMPLETED
                await session.flush()

        logger.info("Payment confirmed", booking_id=booking.id, amount=str(booking.total_price))
        await self.notify(BookingEvent.PAYMENT_CONFIRMED, booking)
        return booking

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete_booking(self, booking_id: int) -> None:
        """Release the vehicle and driver held by the booking, then remove it."""
        async with self.locks.hold(booking_key(booking_id)):
            snapshot = await self.peek_booking(booking_id)
            driver_lock = driver_key(snapshot.driver_id) if snapshot.driver_id else None

            async with self.locks.hold(vehicle_key(snapshot.vehicle_id), driver_lock):
                async with self.transaction("delete_booking", booking_id=booking_id) as session:
                    booking = await self.load_booking_for_update(session, booking_id)
                    await self.lock_booking_resources(session, booking)
                    await self.guard.release_booking(session, booking)
                    await session.delete(booking)

        logger.info("Booking deleted", booking_id=booking_id)