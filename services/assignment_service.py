"""
Assignment Service
Version: 1.0

Assigns, swaps and removes the driver on a booking while keeping driver
availability consistent with the booking write.
DEPENDS ON: services/booking_base.py, services/booking_states.py
"""

from typing import Optional

from models import Booking
from schemas import BookingEvent, BookingStatus, ResourceType
from services.booking_base import BookingServiceBase
from services.booking_states import assert_assignment
from services.directory import UserDirectory
from services.errors import DriverUnavailableError
from services.logging_config import get_logger
from services.resource_locks import booking_key, driver_key

logger = get_logger(__name__)


class AssignmentService(BookingServiceBase):
    """Driver assignment coordinator."""

    async def assign_driver(self, booking_id: int, driver_id: Optional[int]) -> Booking:
        """
        Bind a driver to a booking, or remove the current one.

        driver_id=None releases the current driver (if any), clears the
        reference and puts the booking back to PENDING. Otherwise the new
        driver is validated and held, a different previous driver is
        released, and the booking moves to DRIVER_ASSIGNED. The driver the
        booking already holds is not available to it again.

        Raises:
            NotFoundError: booking or driver missing
            InvalidStateError: booking not PENDING or DRIVER_ASSIGNED
            InvalidRoleError: user is not a driver
            DriverUnavailableError: driver already held, including by this booking
        """
        async with self.locks.hold(booking_key(booking_id)):
            snapshot = await self.peek_booking(booking_id)
            previous_lock = driver_key(snapshot.driver_id) if snapshot.driver_id else None
            new_lock = driver_key(driver_id) if driver_id is not None else None

            async with self.locks.hold(previous_lock, new_lock):
                async with self.transaction(
                    "assign_driver",
                    booking_id=booking_id,
                    driver_id=driver_id
                ) as session:
                    booking = await self.load_booking_for_update(session, booking_id)
                    target = BookingStatus.PENDING if driver_id is None else BookingStatus.DRIVER_ASSIGNED
                    assert_assignment(booking.status, target)

                    users = UserDirectory(session)
                    previous_driver_id = booking.driver_id

                    if driver_id is None:
                        if previous_driver_id is not None:
                            await users.resolve(previous_driver_id, lock=True)
                            await self.guard.release(
                                session, ResourceType.DRIVER, previous_driver_id, booking.id
                            )
                        booking.driver_id = None
                        booking.status = BookingStatus.PENDING
                        driver = None

                    elif previous_driver_id == driver_id:
                        await users.resolve_driver(driver_id, lock=True)
                        raise DriverUnavailableError(
                            "Driver is not available",
                            driver_id=driver_id,
                            booking_id=booking.id
                        )

                    else:
                        driver = await users.resolve_driver(driver_id, lock=True)
                        await self.guard.check_driver(
                            session,
                            driver,
                            booking.start_date,
                            booking.end_date,
                            exclude_booking_id=booking.id
                        )
                        if previous_driver_id is not None:
                            await users.resolve(previous_driver_id, lock=True)
                            await self.guard.release(
                                session, ResourceType.DRIVER, previous_driver_id, booking.id
                            )

                        booking.driver_id = driver.id
                        booking.status = BookingStatus.DRIVER_ASSIGNED
                        await self.guard.reserve(session, ResourceType.DRIVER, driver.id, booking)

                    await session.flush()

        if driver is None:
            logger.info(
                "Driver removed from booking",
                booking_id=booking.id,
                previous_driver_id=previous_driver_id
            )
            return booking

        logger.info(
            "Driver assigned",
            booking_id=booking.id,
            driver_id=driver.id,
            previous_driver_id=previous_driver_id
        )
        await self.notify(BookingEvent.DRIVER_ASSIGNED, booking, driver_name=driver.name)
        return booking
