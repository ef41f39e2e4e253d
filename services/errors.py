"""
Booking Errors
Version: 1.0

Typed failures raised by the reservation core and mapped to HTTP
responses by main.py.
NO DEPENDENCIES on other services.
"""

from typing import Any, Dict


class BookingError(Exception):
    """Base class for every failure the core reports to its caller."""

    error_code = "BOOKING_ERROR"
    http_status = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.message, "error_code": self.error_code}
        if self.details:
            body["details"] = {k: str(v) for k, v in self.details.items()}
        return body


class NotFoundError(BookingError):
    """Booking, vehicle, driver or user does not exist."""
    error_code = "NOT_FOUND"
    http_status = 404


class ConflictError(BookingError):
    """Vehicle unavailable, overlapping reservation or concurrent write."""
    error_code = "CONFLICT"
    http_status = 409


class InvalidStateError(BookingError):
    """Operation not allowed in the booking's current status."""
    error_code = "INVALID_STATE"
    http_status = 409


class InvalidRoleError(BookingError):
    """User does not have the role the operation requires."""
    error_code = "INVALID_ROLE"
    http_status = 422


class DriverUnavailableError(BookingError):
    """Driver is already committed to another active booking."""
    error_code = "DRIVER_UNAVAILABLE"
    http_status = 409


class ValidationError(BookingError):
    """Malformed date range, unknown status or missing field."""
    error_code = "VALIDATION_ERROR"
    http_status = 422
