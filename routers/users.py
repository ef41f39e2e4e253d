"""
User and Driver Statistics Router
Version: 1.0
"""
from fastapi import APIRouter, Depends, Request
from fastapi.encoders import jsonable_encoder

from schemas import ErrorResponse
from services.statistics_service import StatisticsService

router = APIRouter()


def get_statistics_service(request: Request) -> StatisticsService:
    return request.app.state.statistics


@router.get("/users/{user_id}/stats", responses={404: {"model": ErrorResponse}})
async def user_stats(user_id: int, stats: StatisticsService = Depends(get_statistics_service)):
    return jsonable_encoder(await stats.get_user_stats(user_id))


@router.get(
    "/drivers/{driver_id}/stats",
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}}
)
async def driver_stats(driver_id: int, stats: StatisticsService = Depends(get_statistics_service)):
    return jsonable_encoder(await stats.get_driver_stats(driver_id))
