"""
Database Models
Version: 1.0

SQLAlchemy ORM models.
DEPENDS ON: database.py, schemas.py (enums only)
"""

from datetime import datetime

from sqlalchemy import (
    Column,
    String,
    Boolean,
    Date,
    DateTime,
    Enum,
    Float,
    Integer,
    Numeric,
    ForeignKey,
    Index,
    UniqueConstraint,
    CheckConstraint
)

from database import Base
from schemas import BookingStatus, PaymentStatus, ResourceType, UserRole, UserStatus


class User(Base):
    """Customer, admin or driver account (the core only reads a small subset)."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    email = Column(String(200), unique=True, nullable=False, index=True)
    phone = Column(String(30), nullable=True)
    role = Column(Enum(UserRole, native_enum=False, length=20), nullable=False, default=UserRole.USER)
    status = Column(Enum(UserStatus, native_enum=False, length=20), nullable=False, default=UserStatus.ACTIVE)
    license_number = Column(String(50), nullable=True)
    available = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_user_role_available", "role", "available"),
    )


class Vehicle(Base):
    """Rentable vehicle."""

    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    category = Column(String(20), nullable=True)
    license_plate = Column(String(20), nullable=True, unique=True)
    price_per_day = Column(Numeric(10, 2), nullable=False)
    price_per_km = Column(Numeric(10, 2), nullable=False, default=2)
    available = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __mapper_args__ = {"version_id_col": version}


class Booking(Base):
    """Reservation of a vehicle (and optionally a driver) for a date range."""

    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    booking_number = Column(String(40), unique=True, nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    status = Column(
        Enum(BookingStatus, native_enum=False, length=20),
        nullable=False,
        default=BookingStatus.PENDING
    )
    payment_status = Column(
        Enum(PaymentStatus, native_enum=False, length=20),
        nullable=False,
        default=PaymentStatus.PENDING
    )
    pickup_location = Column(String(255), nullable=False)
    pickup_latitude = Column(Float, nullable=True)
    pickup_longitude = Column(Float, nullable=True)
    dropoff_location = Column(String(255), nullable=False)
    dropoff_latitude = Column(Float, nullable=True)
    dropoff_longitude = Column(Float, nullable=True)
    distance_km = Column(Float, nullable=True)
    base_price_per_day = Column(Numeric(10, 2), nullable=True)
    distance_price = Column(Numeric(10, 2), nullable=True)
    special_requests = Column(String(1000), nullable=True)
    payment_method = Column(String(50), nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("start_date <= end_date", name="ck_booking_date_range"),
        Index("ix_booking_vehicle_dates", "vehicle_id", "start_date", "end_date"),
        Index("ix_booking_status", "status"),
        Index("ix_booking_created", "created_at"),
    )


class Reservation(Base):
    """
    Date interval held on a vehicle or driver by a non-terminal booking.

    The availability flags on vehicles and users are derived from these rows.
    """

    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    resource_type = Column(Enum(ResourceType, native_enum=False, length=10), nullable=False)
    resource_id = Column(Integer, nullable=False)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("resource_type", "resource_id", "booking_id", name="uq_reservation_hold"),
        Index("ix_reservation_resource_dates", "resource_type", "resource_id", "start_date", "end_date"),
    )
