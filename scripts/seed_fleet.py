"""Seed demo vehicles, a customer and drivers into the reservation store."""
import argparse
import asyncio
import os
import sys
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import select

DEMO_VEHICLES = [
    ("Toyota Corolla", "SEDAN", "DN-1001", Decimal("45.00"), Decimal("1.50")),
    ("Honda CR-V", "SUV", "DN-1002", Decimal("70.00"), Decimal("2.00")),
    ("Volkswagen Golf", "HATCHBACK", "DN-1003", Decimal("40.00"), Decimal("1.50")),
    ("Ford Transit", "VAN", "DN-1004", Decimal("90.00"), Decimal("2.50")),
    ("Mercedes E-Class", "LUXURY", "DN-1005", Decimal("150.00"), Decimal("3.00")),
]


async def seed(driver_count: int) -> None:
    from database import AsyncSessionLocal, init_db
    from models import User, Vehicle
    from schemas import UserRole
    from services.logging_config import configure_logging, get_logger

    configure_logging(json_format=False)
    logger = get_logger("seed")

    await init_db()

    async with AsyncSessionLocal() as session:
        async with session.begin():
            existing = set((await session.execute(select(User.email))).scalars().all())

            people = [("Admin User", "admin@drivenow.com", UserRole.ADMIN, None),
                      ("Test User", "user@drivenow.com", UserRole.USER, None)]
            people += [
                (f"Driver {n}", f"driver{n}@drivenow.com", UserRole.DRIVER, f"DL{100000 + n}")
                for n in range(1, driver_count + 1)
            ]
            for name, email, role, license_number in people:
                if email in existing:
                    logger.info("User already exists", email=email)
                    continue
                session.add(User(name=name, email=email, role=role, license_number=license_number))
                logger.info("User created", email=email, role=role.value)

            plates = set((await session.execute(select(Vehicle.license_plate))).scalars().all())
            for name, category, plate, per_day, per_km in DEMO_VEHICLES:
                if plate in plates:
                    continue
                session.add(Vehicle(
                    name=name,
                    category=category,
                    license_plate=plate,
                    price_per_day=per_day,
                    price_per_km=per_km,
                ))
                logger.info("Vehicle created", name=name, plate=plate)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--drivers", type=int, default=3, help="number of demo drivers")
    args = parser.parse_args()
    asyncio.run(seed(args.drivers))
