"""
Pydantic Schemas
Version: 1.0

Enums and request/response schemas shared by the store and the HTTP layer.
NO DEPENDENCIES on services.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# === ENUMS ===

class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    DRIVER_ASSIGNED = "DRIVER_ASSIGNED"
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class UserRole(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"
    DRIVER = "DRIVER"


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


class ResourceType(str, Enum):
    VEHICLE = "VEHICLE"
    DRIVER = "DRIVER"


class BookingEvent(str, Enum):
    BOOKING_CREATED = "BOOKING_CREATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    DRIVER_ASSIGNED = "DRIVER_ASSIGNED"
    PAYMENT_CONFIRMED = "PAYMENT_CONFIRMED"


# === REQUEST SCHEMAS ===

class BookingRequest(BaseModel):
    """Payload for creating a booking."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: int = Field(..., alias="userId")
    vehicle_id: int = Field(..., alias="vehicleId")
    start_date: date = Field(..., alias="startDate")
    end_date: date = Field(..., alias="endDate")
    total_price: Decimal = Field(..., alias="totalPrice", ge=0, decimal_places=2)
    pickup_location: str = Field(..., alias="pickupLocation", min_length=1)
    pickup_latitude: Optional[float] = Field(default=None, alias="pickupLatitude")
    pickup_longitude: Optional[float] = Field(default=None, alias="pickupLongitude")
    dropoff_location: str = Field(..., alias="dropoffLocation", min_length=1)
    dropoff_latitude: Optional[float] = Field(default=None, alias="dropoffLatitude")
    dropoff_longitude: Optional[float] = Field(default=None, alias="dropoffLongitude")
    distance_km: Optional[float] = Field(default=None, alias="distanceKm", ge=0)
    base_price_per_day: Optional[Decimal] = Field(default=None, alias="basePricePerDay", ge=0)
    distance_price: Optional[Decimal] = Field(default=None, alias="distancePrice", ge=0)
    special_requests: Optional[str] = Field(default=None, alias="specialRequests", max_length=1000)
    payment_method: Optional[str] = Field(default=None, alias="paymentMethod")

    @model_validator(mode='after')
    def check_date_range(self) -> 'BookingRequest':
        if self.start_date > self.end_date:
            raise ValueError("startDate must not be after endDate")
        return self


# === RESPONSE SCHEMAS ===

class BookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    booking_number: str = Field(..., serialization_alias="bookingNumber")
    user_id: int = Field(..., serialization_alias="userId")
    vehicle_id: int = Field(..., serialization_alias="vehicleId")
    driver_id: Optional[int] = Field(default=None, serialization_alias="driverId")
    start_date: date = Field(..., serialization_alias="startDate")
    end_date: date = Field(..., serialization_alias="endDate")
    total_price: Decimal = Field(..., serialization_alias="totalPrice")
    status: BookingStatus
    payment_status: PaymentStatus = Field(..., serialization_alias="paymentStatus")
    pickup_location: str = Field(..., serialization_alias="pickupLocation")
    pickup_latitude: Optional[float] = Field(default=None, serialization_alias="pickupLatitude")
    pickup_longitude: Optional[float] = Field(default=None, serialization_alias="pickupLongitude")
    dropoff_location: str = Field(..., serialization_alias="dropoffLocation")
    dropoff_latitude: Optional[float] = Field(default=None, serialization_alias="dropoffLatitude")
    dropoff_longitude: Optional[float] = Field(default=None, serialization_alias="dropoffLongitude")
    distance_km: Optional[float] = Field(default=None, serialization_alias="distanceKm")
    base_price_per_day: Optional[Decimal] = Field(default=None, serialization_alias="basePricePerDay")
    distance_price: Optional[Decimal] = Field(default=None, serialization_alias="distancePrice")
    special_requests: Optional[str] = Field(default=None, serialization_alias="specialRequests")
    payment_method: Optional[str] = Field(default=None, serialization_alias="paymentMethod")
    created_at: Optional[datetime] = Field(default=None, serialization_alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, serialization_alias="updatedAt")


class ErrorResponse(BaseModel):
    detail: str
    error_code: str
