"""
User Directory and Vehicle Catalog
Version: 1.0

Narrow, session-scoped views of the user and vehicle records the
reservation core needs: resolve by id and flip the availability flag.
Profile and catalogue management live elsewhere.
DEPENDS ON: models.py, services/errors.py
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import User, Vehicle
from schemas import UserRole
from services.errors import InvalidRoleError, NotFoundError

logger = logging.getLogger(__name__)


class VehicleCatalog:
    """Vehicle lookups inside the caller's transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(self, vehicle_id: int, lock: bool = False) -> Optional[Vehicle]:
        stmt = select(Vehicle).where(Vehicle.id == vehicle_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def resolve(self, vehicle_id: int, lock: bool = False) -> Vehicle:
        """
        Load a vehicle or raise NotFoundError.

        Args:
            vehicle_id: Vehicle primary key
            lock: Take a row lock for the rest of the transaction
        """
        vehicle = await self.find(vehicle_id, lock=lock)
        if vehicle is None:
            raise NotFoundError(f"Vehicle {vehicle_id} not found", vehicle_id=vehicle_id)
        return vehicle

    async def set_available(self, vehicle_id: int, available: bool) -> Vehicle:
        vehicle = await self.resolve(vehicle_id)
        if vehicle.available != available:
            vehicle.available = available
            logger.debug(f"Vehicle {vehicle_id} available={available}")
        return vehicle


class UserDirectory:
    """User and driver lookups inside the caller's transaction."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(self, user_id: int, lock: bool = False) -> Optional[User]:
        stmt = select(User).where(User.id == user_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()

    async def resolve(self, user_id: int, lock: bool = False) -> User:
        user = await self.find(user_id, lock=lock)
        if user is None:
            raise NotFoundError(f"User {user_id} not found", user_id=user_id)
        return user

    async def resolve_driver(self, driver_id: int, lock: bool = False) -> User:
        """Load a user and require the DRIVER role."""
        user = await self.find(driver_id, lock=lock)
        if user is None:
            raise NotFoundError(f"Driver {driver_id} not found", driver_id=driver_id)
        if user.role != UserRole.DRIVER:
            raise InvalidRoleError(
                f"User {driver_id} is not a driver",
                user_id=driver_id,
                role=user.role.value
            )
        return user

    async def set_available(self, user_id: int, available: bool) -> User:
        user = await self.resolve(user_id)
        if user.available != available:
            user.available = available
            logger.debug(f"Driver {user_id} available={available}")
        return user
