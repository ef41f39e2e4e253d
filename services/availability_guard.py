"""
Availability Guard
Version: 1.0

Single owner of vehicle and driver availability.

Holds are stored as date intervals in the reservations table, one row per
resource per non-terminal booking. The `available` flag on vehicles and
users is a cache meaning "no active booking holds this resource" and is
recomputed from the interval set every time a hold is added or dropped,
inside the caller's transaction.
DEPENDS ON: models.py, services/directory.py, services/errors.py, config.py
"""

from datetime import date
from typing import List, Optional

from sqlalchemy import delete, exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from models import Booking, Reservation, User, Vehicle
from schemas import ResourceType
from services.directory import UserDirectory, VehicleCatalog
from services.errors import ConflictError, DriverUnavailableError
from services.logging_config import get_logger
from services.metrics import BOOKING_CONFLICTS

logger = get_logger(__name__)


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """Inclusive date ranges overlap when each starts before the other ends."""
    return a_start <= b_end and a_end >= b_start


class AvailabilityGuard:
    """
    Availability checks and hold bookkeeping.

    Strict mode (the default) treats a resource whose flag is false as
    unavailable for any dates. With advance reservations enabled, only
    overlapping intervals conflict, so a vehicle can carry several future
    bookings at once.
    """

    def __init__(self, allow_advance_reservations: Optional[bool] = None):
        if allow_advance_reservations is None:
            allow_advance_reservations = get_settings().ALLOW_ADVANCE_RESERVATIONS
        self.allow_advance_reservations = allow_advance_reservations

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def overlapping_holds(
        self,
        session: AsyncSession,
        resource_type: ResourceType,
        resource_id: int,
        start: date,
        end: date,
        exclude_booking_id: Optional[int] = None
    ) -> List[Reservation]:
        stmt = select(Reservation).where(
            Reservation.resource_type == resource_type,
            Reservation.resource_id == resource_id,
            Reservation.start_date <= end,
            Reservation.end_date >= start,
        )
        if exclude_booking_id is not None:
            stmt = stmt.where(Reservation.booking_id != exclude_booking_id)
        result = await session.execute(stmt.order_by(Reservation.start_date))
        return list(result.scalars().all())

    async def has_active_hold(
        self,
        session: AsyncSession,
        resource_type: ResourceType,
        resource_id: int
    ) -> bool:
        stmt = select(exists().where(
            Reservation.resource_type == resource_type,
            Reservation.resource_id == resource_id,
        ))
        return bool((await session.execute(stmt)).scalar())

    async def is_available(
        self,
        session: AsyncSession,
        resource_type: ResourceType,
        resource_id: int,
        start: date,
        end: date
    ) -> bool:
        """True when no active hold on the resource overlaps [start, end]."""
        holds = await self.overlapping_holds(session, resource_type, resource_id, start, end)
        return not holds

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    async def check_vehicle(
        self,
        session: AsyncSession,
        vehicle: Vehicle,
        start: date,
        end: date,
        exclude_booking_id: Optional[int] = None
    ) -> None:
        """Raise ConflictError unless the vehicle can be held for [start, end]."""
        if not self.allow_advance_reservations and not vehicle.available:
            BOOKING_CONFLICTS.labels(reason="vehicle_unavailable").inc()
            raise ConflictError("Vehicle is not available", vehicle_id=vehicle.id)

        holds = await self.overlapping_holds(
            session, ResourceType.VEHICLE, vehicle.id, start, end, exclude_booking_id
        )
        if holds:
            BOOKING_CONFLICTS.labels(reason="overlap").inc()
            logger.info(
                "Vehicle reservation overlap",
                vehicle_id=vehicle.id,
                start=start.isoformat(),
                end=end.isoformat(),
                conflicting_bookings=[h.booking_id for h in holds]
            )
            raise ConflictError(
                "Vehicle is already booked for these dates",
                vehicle_id=vehicle.id,
                conflicting_booking_id=holds[0].booking_id
            )

    async def check_driver(
        self,
        session: AsyncSession,
        driver: User,
        start: date,
        end: date,
        exclude_booking_id: Optional[int] = None
    ) -> None:
        """Raise DriverUnavailableError unless the driver can take [start, end]."""
        if not self.allow_advance_reservations and not driver.available:
            BOOKING_CONFLICTS.labels(reason="driver_unavailable").inc()
            raise DriverUnavailableError("Driver is not available", driver_id=driver.id)

        holds = await self.overlapping_holds(
            session, ResourceType.DRIVER, driver.id, start, end, exclude_booking_id
        )
        if holds:
            BOOKING_CONFLICTS.labels(reason="driver_unavailable").inc()
            raise DriverUnavailableError(
                "Driver is already assigned for these dates",
                driver_id=driver.id,
                conflicting_booking_id=holds[0].booking_id
            )

    # ------------------------------------------------------------------
    # Hold bookkeeping
    # ------------------------------------------------------------------

    async def reserve(
        self,
        session: AsyncSession,
        resource_type: ResourceType,
        resource_id: int,
        booking: Booking
    ) -> Reservation:
        """Record a hold for the booking's dates and refresh the flag."""
        hold = Reservation(
            resource_type=resource_type,
            resource_id=resource_id,
            booking_id=booking.id,
            start_date=booking.start_date,
            end_date=booking.end_date,
        )
        session.add(hold)
        await session.flush()
        await self.sync_flag(session, resource_type, resource_id)
        return hold

    async def release(
        self,
        session: AsyncSession,
        resource_type: ResourceType,
        resource_id: int,
        booking_id: int
    ) -> None:
        """Drop the booking's hold on one resource and refresh the flag."""
        await session.execute(
            delete(Reservation).where(
                Reservation.resource_type == resource_type,
                Reservation.resource_id == resource_id,
                Reservation.booking_id == booking_id,
            )
        )
        await self.sync_flag(session, resource_type, resource_id)

    async def release_booking(self, session: AsyncSession, booking: Booking) -> None:
        """Drop every hold the booking has (vehicle and driver)."""
        result = await session.execute(
            select(Reservation.resource_type, Reservation.resource_id)
            .where(Reservation.booking_id == booking.id)
        )
        touched = {(row[0], row[1]) for row in result.all()}
        touched.add((ResourceType.VEHICLE, booking.vehicle_id))
        if booking.driver_id is not None:
            touched.add((ResourceType.DRIVER, booking.driver_id))

        await session.execute(delete(Reservation).where(Reservation.booking_id == booking.id))

        for resource_type, resource_id in sorted(touched, key=lambda t: (t[0].value, t[1])):
            await self.sync_flag(session, resource_type, resource_id)

        logger.debug("Released booking holds", booking_id=booking.id, resources=len(touched))

    async def sync_flag(
        self,
        session: AsyncSession,
        resource_type: ResourceType,
        resource_id: int
    ) -> bool:
        """Recompute the cached availability flag. Returns the new value."""
        available = not await self.has_active_hold(session, resource_type, resource_id)
        if resource_type == ResourceType.VEHICLE:
            await VehicleCatalog(session).set_available(resource_id, available)
        else:
            await UserDirectory(session).set_available(resource_id, available)
        return available
