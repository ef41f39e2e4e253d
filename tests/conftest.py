"""
Test Configuration and Fixtures
Version: 1.0

Every test gets a fresh SQLite database file, seeded with one customer,
an admin, two drivers and two vehicles.
"""

import os

os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ALLOW_ADVANCE_RESERVATIONS", "false")

from datetime import date
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

from database import build_engine, build_session_factory, init_db
from models import User, Vehicle
from schemas import BookingRequest, UserRole
from services.assignment_service import AssignmentService
from services.availability_guard import AvailabilityGuard
from services.booking_service import BookingService
from services.resource_locks import ResourceLocks
from services.statistics_service import StatisticsService


# ============================================================================
# DATABASE FIXTURES
# ============================================================================

@pytest_asyncio.fixture
async def engine(tmp_path):
    """Engine on a throwaway SQLite file."""
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'reservations.db'}")
    await init_db(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest_asyncio.fixture
async def fleet(session_factory):
    """Seed users and vehicles; returns their ids."""
    async with session_factory() as session:
        async with session.begin():
            customer = User(name="Test User", email="user@drivenow.com", role=UserRole.USER)
            admin = User(name="Admin User", email="admin@drivenow.com", role=UserRole.ADMIN)
            d1 = User(name="John Driver", email="d1@drivenow.com", role=UserRole.DRIVER, license_number="DL1")
            d2 = User(name="Jane Driver", email="d2@drivenow.com", role=UserRole.DRIVER, license_number="DL2")
            v1 = Vehicle(name="Toyota Corolla", category="SEDAN", license_plate="DN-1",
                         price_per_day=Decimal("50.00"), price_per_km=Decimal("2.00"))
            v2 = Vehicle(name="Honda CR-V", category="SUV", license_plate="DN-2",
                         price_per_day=Decimal("70.00"), price_per_km=Decimal("2.50"))
            session.add_all([customer, admin, d1, d2, v1, v2])
            await session.flush()
            ids = SimpleNamespace(
                customer=customer.id,
                admin=admin.id,
                d1=d1.id,
                d2=d2.id,
                v1=v1.id,
                v2=v2.id,
            )
    return ids


# ============================================================================
# SERVICE FIXTURES
# ============================================================================

@pytest.fixture
def mock_sink():
    """Notification sink that records calls."""
    sink = MagicMock()
    sink.notify = AsyncMock(return_value=None)
    return sink


@pytest.fixture
def locks():
    return ResourceLocks()


@pytest.fixture
def guard():
    return AvailabilityGuard(allow_advance_reservations=False)


@pytest.fixture
def booking_service(session_factory, guard, locks, mock_sink):
    return BookingService(session_factory, guard=guard, locks=locks, notifier=mock_sink)


@pytest.fixture
def assignment_service(session_factory, guard, locks, mock_sink):
    return AssignmentService(session_factory, guard=guard, locks=locks, notifier=mock_sink)


@pytest.fixture
def statistics_service(session_factory):
    return StatisticsService(session_factory, commission_rate=Decimal("0.15"))


@pytest.fixture
def mock_redis():
    """Mock Redis client."""
    redis = MagicMock()
    redis.ping = AsyncMock(return_value=True)
    redis.xadd = AsyncMock(return_value="1234567890-0")
    redis.aclose = AsyncMock()
    return redis


# ============================================================================
# SAMPLE DATA
# ============================================================================

@pytest.fixture
def make_request(fleet):
    """Build a BookingRequest for V1 / the seeded customer, with overrides."""
    def _make(**overrides) -> BookingRequest:
        data = {
            "user_id": fleet.customer,
            "vehicle_id": fleet.v1,
            "start_date": date(2024, 6, 1),
            "end_date": date(2024, 6, 5),
            "total_price": Decimal("250.00"),
            "pickup_location": "Airport Terminal 1",
            "pickup_latitude": 45.74,
            "pickup_longitude": 16.07,
            "dropoff_location": "City Center",
            "distance_km": 17.5,
            "base_price_per_day": Decimal("50.00"),
            "distance_price": Decimal("35.00"),
            "payment_method": "CARD",
        }
        data.update(overrides)
        return BookingRequest(**data)
    return _make


@pytest.fixture
def fetch(session_factory):
    """Read a committed row in a fresh session."""
    async def _fetch(model, pk):
        async with session_factory() as session:
            return await session.get(model, pk)
    return _fetch
