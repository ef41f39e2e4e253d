"""
Statistics Service
Version: 1.0

Read-only dashboard figures over committed bookings: global counts and
revenue, per-customer and per-driver summaries with month-over-month
change.
DEPENDS ON: models.py, services/directory.py, config.py
"""

import math
from datetime import date, datetime, timedelta
from decimal import ROUND_DOWN, Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from config import get_settings
from models import Booking
from schemas import BookingStatus, PaymentStatus
from services.directory import UserDirectory
from services.logging_config import get_logger

logger = get_logger(__name__)

CENT = Decimal("0.01")

CUSTOMER_ACTIVE = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})
DRIVER_ACTIVE = frozenset({
    BookingStatus.CONFIRMED,
    BookingStatus.ONGOING,
    BookingStatus.DRIVER_ASSIGNED,
})


def month_windows(today: date) -> Tuple[Tuple[date, date], Tuple[date, date]]:
    """
    Return ((last_start, last_end), (prev_start, prev_end)).

    "Last" is the previous calendar month, "prev" the month before it.
    Both ranges are inclusive.
    """
    this_month_start = today.replace(day=1)
    last_end = this_month_start - timedelta(days=1)
    last_start = last_end.replace(day=1)
    prev_end = last_start - timedelta(days=1)
    prev_start = prev_end.replace(day=1)
    return (last_start, last_end), (prev_start, prev_end)


def percentage_change(current: int, previous: int) -> str:
    """Format the change from previous to current as '+N%', '-N%' or '0%'."""
    if previous == 0:
        return "+100%" if current > 0 else "0%"
    change = math.floor(100 * (current - previous) / previous + 0.5)
    if change > 0:
        return f"+{change}%"
    if change < 0:
        return f"{change}%"
    return "0%"


def _created_between(booking: Booking, window: Tuple[date, date]) -> bool:
    created = booking.created_at.date() if isinstance(booking.created_at, datetime) else booking.created_at
    return window[0] <= created <= window[1]


def _sum_prices(bookings: Iterable[Booking], rate: Decimal = Decimal(1)) -> Decimal:
    total = sum((Decimal(b.total_price) * rate for b in bookings), Decimal(0))
    return total.quantize(CENT)


def _whole_units(amount: Decimal) -> int:
    return int(amount.to_integral_value(rounding=ROUND_DOWN))


class StatisticsService:
    """Dashboard aggregation over committed bookings. Takes no locks."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        commission_rate: Optional[Decimal] = None,
        clock: Optional[Callable[[], date]] = None
    ):
        """
        Args:
            session_factory: async_sessionmaker bound to the reservation store
            commission_rate: Driver share of a paid booking (defaults to settings)
            clock: Returns "today" in UTC, injectable for tests
        """
        self.session_factory = session_factory
        if commission_rate is None:
            commission_rate = get_settings().DRIVER_COMMISSION_RATE
        self.commission_rate = Decimal(commission_rate)
        self.clock = clock or (lambda: datetime.utcnow().date())

    async def _bookings(self, *criteria) -> List[Booking]:
        async with self.session_factory() as session:
            result = await session.execute(select(Booking).where(*criteria))
            return list(result.scalars().all())

    def _changes(
        self,
        bookings: List[Booking],
        active: frozenset,
        amount_of: Callable[[List[Booking]], Decimal]
    ) -> Dict[str, str]:
        last, prev = month_windows(self.clock())
        last_bookings = [b for b in bookings if _created_between(b, last)]
        prev_bookings = [b for b in bookings if _created_between(b, prev)]

        def active_count(items):
            return sum(1 for b in items if b.status in active)

        return {
            "count": percentage_change(len(last_bookings), len(prev_bookings)),
            "active": percentage_change(active_count(last_bookings), active_count(prev_bookings)),
            "amount": percentage_change(
                _whole_units(amount_of(last_bookings)),
                _whole_units(amount_of(prev_bookings))
            ),
        }

    async def get_booking_statistics(self) -> Dict[str, Any]:
        """Counts per status and revenue from completed bookings."""
        stmt = (
            select(Booking.status, func.count(Booking.id), func.sum(Booking.total_price))
            .group_by(Booking.status)
        )
        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()

        counts = {status: 0 for status in BookingStatus}
        revenue = Decimal(0)
        for status, count, total in rows:
            counts[status] = count
            if status == BookingStatus.COMPLETED and total is not None:
                revenue = Decimal(total)

        return {
            "totalBookings": sum(counts.values()),
            "pendingBookings": counts[BookingStatus.PENDING],
            "confirmedBookings": counts[BookingStatus.CONFIRMED],
            "driverAssignedBookings": counts[BookingStatus.DRIVER_ASSIGNED],
            "ongoingBookings": counts[BookingStatus.ONGOING],
            "completedBookings": counts[BookingStatus.COMPLETED],
            "cancelledBookings": counts[BookingStatus.CANCELLED],
            "totalRevenue": revenue.quantize(CENT),
        }

    async def get_user_stats(self, user_id: int) -> Dict[str, Any]:
        """Customer summary: bookings, active bookings, amount paid."""
        async with self.session_factory() as session:
            user = await UserDirectory(session).resolve(user_id)
        bookings = await self._bookings(Booking.user_id == user_id)

        def paid(items):
            return _sum_prices(b for b in items if b.payment_status == PaymentStatus.COMPLETED)

        changes = self._changes(bookings, CUSTOMER_ACTIVE, paid)

        return {
            "userId": user.id,
            "name": user.name,
            "email": user.email,
            "phone": user.phone,
            "role": user.role.value,
            "status": user.status.value,
            "available": user.available,
            "joinDate": user.created_at,
            "totalBookings": len(bookings),
            "activeBookings": sum(1 for b in bookings if b.status in CUSTOMER_ACTIVE),
            "totalSpent": paid(bookings),
            "bookingsChange": changes["count"],
            "activeBookingsChange": changes["active"],
            "spentChange": changes["amount"],
        }

    async def get_driver_stats(self, driver_id: int) -> Dict[str, Any]:
        """Driver summary: trips and commission earned on completed, paid trips."""
        async with self.session_factory() as session:
            driver = await UserDirectory(session).resolve_driver(driver_id)
        trips = await self._bookings(Booking.driver_id == driver_id)

        def earned(items):
            return _sum_prices(
                (
                    b for b in items
                    if b.status == BookingStatus.COMPLETED
                    and b.payment_status == PaymentStatus.COMPLETED
                ),
                self.commission_rate
            )

        changes = self._changes(trips, DRIVER_ACTIVE, earned)

        return {
            "userId": driver.id,
            "name": driver.name,
            "email": driver.email,
            "available": driver.available,
            "totalTrips": len(trips),
            "completedTrips": sum(1 for t in trips if t.status == BookingStatus.COMPLETED),
            "activeTrips": sum(1 for t in trips if t.status in DRIVER_ACTIVE),
            "totalEarnings": earned(trips),
            "commissionRate": self.commission_rate,
            "tripsChange": changes["count"],
            "activeTripsChange": changes["active"],
            "earningsChange": changes["amount"],
        }
