"""
Bookings Router
Version: 1.0

HTTP surface of the booking lifecycle. Domain errors are turned into
responses by the handler registered in main.py.
"""
from datetime import date
from typing import Any, Dict, List

import structlog
from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.encoders import jsonable_encoder

from models import Booking
from schemas import BookingRequest, BookingResponse, ErrorResponse
from services.assignment_service import AssignmentService
from services.booking_service import BookingService
from services.statistics_service import StatisticsService

router = APIRouter()
logger = structlog.get_logger("bookings")

ERROR_RESPONSES = {
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    422: {"model": ErrorResponse},
}


def get_booking_service(request: Request) -> BookingService:
    return request.app.state.bookings


def get_assignment_service(request: Request) -> AssignmentService:
    return request.app.state.assignments


def get_statistics_service(request: Request) -> StatisticsService:
    return request.app.state.statistics


def serialize(booking: Booking) -> Dict[str, Any]:
    return BookingResponse.model_validate(booking).model_dump(by_alias=True, mode="json")


def serialize_all(bookings: List[Booking]) -> List[Dict[str, Any]]:
    return [serialize(b) for b in bookings]


# Static paths first so they are not captured by /{booking_id}

@router.get("/statistics")
async def booking_statistics(stats: StatisticsService = Depends(get_statistics_service)):
    return jsonable_encoder(await stats.get_booking_statistics())


@router.get("")
async def list_bookings(service: BookingService = Depends(get_booking_service)):
    return serialize_all(await service.list_bookings())


@router.get("/number/{booking_number}", responses=ERROR_RESPONSES)
async def get_booking_by_number(
    booking_number: str,
    service: BookingService = Depends(get_booking_service)
):
    return serialize(await service.get_booking_by_number(booking_number))


@router.get("/user/{user_id}")
async def list_user_bookings(user_id: int, service: BookingService = Depends(get_booking_service)):
    return serialize_all(await service.list_bookings_by_user(user_id))


@router.get("/driver/{driver_id}")
async def list_driver_bookings(driver_id: int, service: BookingService = Depends(get_booking_service)):
    return serialize_all(await service.list_bookings_by_driver(driver_id))


@router.get("/status/{booking_status}", responses=ERROR_RESPONSES)
async def list_bookings_by_status(
    booking_status: str,
    service: BookingService = Depends(get_booking_service)
):
    return serialize_all(await service.list_bookings_by_status(booking_status))


@router.get("/availability/{vehicle_id}", responses=ERROR_RESPONSES)
async def vehicle_availability(
    vehicle_id: int,
    start: date = Query(..., alias="startDate"),
    end: date = Query(..., alias="endDate"),
    service: BookingService = Depends(get_booking_service)
):
    """Whether the vehicle can be booked for the given dates."""
    available = await service.is_vehicle_available(vehicle_id, start, end)
    return {
        "vehicleId": vehicle_id,
        "startDate": start.isoformat(),
        "endDate": end.isoformat(),
        "available": available,
    }


@router.get("/{booking_id}", responses=ERROR_RESPONSES)
async def get_booking(booking_id: int, service: BookingService = Depends(get_booking_service)):
    return serialize(await service.get_booking(booking_id))


@router.post("", status_code=status.HTTP_201_CREATED, responses=ERROR_RESPONSES)
async def create_booking(
    payload: BookingRequest,
    service: BookingService = Depends(get_booking_service)
):
    booking = await service.create_booking(payload)
    return serialize(booking)


@router.put("/{booking_id}/status", responses=ERROR_RESPONSES)
async def update_booking_status(
    booking_id: int,
    new_status: str = Query(..., alias="status"),
    service: BookingService = Depends(get_booking_service)
):
    return serialize(await service.update_status(booking_id, new_status))


@router.put("/{booking_id}/assign-driver/{driver_id}", responses=ERROR_RESPONSES)
async def assign_driver(
    booking_id: int,
    driver_id: int,
    assignments: AssignmentService = Depends(get_assignment_service)
):
    return serialize(await assignments.assign_driver(booking_id, driver_id))


@router.delete("/{booking_id}/assign-driver", responses=ERROR_RESPONSES)
async def unassign_driver(
    booking_id: int,
    assignments: AssignmentService = Depends(get_assignment_service)
):
    return serialize(await assignments.assign_driver(booking_id, None))


@router.put("/{booking_id}/confirm-payment", responses=ERROR_RESPONSES)
async def confirm_payment(booking_id: int, service: BookingService = Depends(get_booking_service)):
    return serialize(await service.confirm_payment(booking_id))


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT, responses=ERROR_RESPONSES)
async def delete_booking(booking_id: int, service: BookingService = Depends(get_booking_service)):
    await service.delete_booking(booking_id)
    logger.info("Booking deleted via API", booking_id=booking_id)
