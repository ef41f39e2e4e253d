"""
Booking Service Base
Version: 1.0

Shared plumbing for the services that change bookings: one database
transaction per operation, row locks, error translation, timing,
metrics and post-commit notification.
DEPENDS ON: database.py, models.py, services/availability_guard.py,
            services/resource_locks.py, services/notification_service.py
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from structlog.contextvars import bound_contextvars

from models import Booking
from schemas import BookingEvent
from services.availability_guard import AvailabilityGuard
from services.directory import UserDirectory, VehicleCatalog
from services.errors import BookingError, ConflictError, NotFoundError
from services.logging_config import LogTimer, get_logger
from services.metrics import BOOKING_CONFLICTS, record_booking_operation
from services.notification_service import NotificationSink, booking_payload
from services.resource_locks import ResourceLocks

logger = get_logger(__name__)


class BookingServiceBase:
    """Transaction, locking and notification helpers."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        guard: Optional[AvailabilityGuard] = None,
        locks: Optional[ResourceLocks] = None,
        notifier: Optional[NotificationSink] = None
    ):
        """
        Args:
            session_factory: async_sessionmaker bound to the reservation store
            guard: Availability guard (a default one is created if omitted)
            locks: Lock registry; share one instance between services
            notifier: Sink for lifecycle events (optional)
        """
        self.session_factory = session_factory
        self.guard = guard or AvailabilityGuard()
        self.locks = locks or ResourceLocks()
        self.notifier = notifier

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def transaction(self, operation: str, **fields) -> AsyncIterator[AsyncSession]:
        """
        Run the body inside one transaction.

        Every log line emitted inside carries the operation name and fields.
        Commits on success, rolls back on any exception. Version clashes
        and unique/foreign key violations surface as ConflictError.
        """
        timer = LogTimer(logger, operation, **fields)
        outcome = "success"
        try:
            with timer, bound_contextvars(operation=operation, **fields):
                async with self.session_factory() as session:
                    async with session.begin():
                        yield session
        except StaleDataError as e:
            outcome = "conflict"
            BOOKING_CONFLICTS.labels(reason="concurrent_write").inc()
            raise ConflictError("Resource was modified concurrently, retry the request") from e
        except IntegrityError as e:
            outcome = "conflict"
            BOOKING_CONFLICTS.labels(reason="concurrent_write").inc()
            raise ConflictError("Booking conflicts with existing data", reason=str(e.orig)) from e
        except BookingError as e:
            outcome = e.error_code.lower()
            raise
        except Exception:
            outcome = "error"
            raise
        finally:
            record_booking_operation(operation, timer.duration_seconds, outcome)

    @asynccontextmanager
    async def read_session(self) -> AsyncIterator[AsyncSession]:
        """Session for lock-free reads of committed state."""
        async with self.session_factory() as session:
            yield session

    # ------------------------------------------------------------------
    # Booking loading
    # ------------------------------------------------------------------

    async def peek_booking(self, booking_id: int) -> Booking:
        """Unlocked read used to learn which resources a booking touches."""
        async with self.read_session() as session:
            booking = await session.get(Booking, booking_id)
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found", booking_id=booking_id)
        return booking

    async def load_booking_for_update(self, session: AsyncSession, booking_id: int) -> Booking:
        stmt = (
            select(Booking)
            .where(Booking.id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        booking = (await session.execute(stmt)).scalar_one_or_none()
        if booking is None:
            raise NotFoundError(f"Booking {booking_id} not found", booking_id=booking_id)
        return booking

    async def lock_booking_resources(self, session: AsyncSession, booking: Booking) -> None:
        """Row-lock the vehicle and driver a booking holds."""
        await VehicleCatalog(session).resolve(booking.vehicle_id, lock=True)
        if booking.driver_id is not None:
            await UserDirectory(session).resolve(booking.driver_id, lock=True)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    async def notify(self, event: BookingEvent, booking: Booking, **extra) -> None:
        """Publish a lifecycle event. Runs after commit; errors propagate."""
        if self.notifier is None:
            return
        await self.notifier.notify(event, booking_payload(booking, **extra))
