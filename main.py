"""
DriveNow Reservations - FastAPI Application
Version: 1.0

Main entry point: database and Redis wiring, booking services, HTTP
routers, health and metrics endpoints.
"""

import asyncio
import os
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text

# Configure structured logging FIRST (before any other imports)
from services.logging_config import configure_logging, get_logger, set_trace_id

configure_logging(log_level=os.getenv('LOG_LEVEL', 'INFO'))

logger = get_logger(__name__)

from config import get_settings
from services.errors import BookingError

settings = get_settings()


async def wait_for_database(max_retries: int = 30, delay: int = 2) -> bool:
    """Wait for database to be available and create tables."""
    from database import engine, init_db
    import models  # noqa: F401 - registers tables on Base.metadata

    logger.info("Waiting for database...")

    for attempt in range(max_retries):
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            logger.info("Database connection established")

            await init_db()
            logger.info("Database tables ready")
            return True

        except Exception as e:
            logger.warning(f"Database not ready (attempt {attempt + 1}/{max_retries}): {e}")
            if attempt < max_retries - 1:
                await asyncio.sleep(delay)

    logger.error("Could not connect to database after all retries")
    return False


def build_services(app: FastAPI, session_factory, sink=None) -> None:
    """Create the booking services on app.state; they share one lock registry."""
    from services.assignment_service import AssignmentService
    from services.availability_guard import AvailabilityGuard
    from services.booking_service import BookingService
    from services.notification_service import SafeNotifier
    from services.resource_locks import ResourceLocks
    from services.statistics_service import StatisticsService

    guard = AvailabilityGuard(settings.ALLOW_ADVANCE_RESERVATIONS)
    locks = ResourceLocks()
    notifier = SafeNotifier(sink)

    app.state.bookings = BookingService(session_factory, guard=guard, locks=locks, notifier=notifier)
    app.state.assignments = AssignmentService(session_factory, guard=guard, locks=locks, notifier=notifier)
    app.state.statistics = StatisticsService(session_factory, settings.DRIVER_COMMISSION_RATE)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan manager."""
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}...")

    # 1. Database
    db_ready = await wait_for_database()
    if not db_ready:
        raise RuntimeError("Database not available")

    # 2. Redis (booking event stream). Bookings still work without it.
    sink = None
    app.state.redis = None
    try:
        redis_client = aioredis.from_url(
            settings.REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.REDIS_MAX_CONNECTIONS
        )
        await redis_client.ping()
        app.state.redis = redis_client

        from services.notification_service import RedisNotificationSink
        sink = RedisNotificationSink(redis_client, stream=settings.BOOKING_EVENTS_STREAM)
        logger.info("Redis connected")
    except Exception as e:
        logger.warning(f"Redis unavailable, booking notifications disabled: {e}")

    # 3. Services
    from database import AsyncSessionLocal
    build_services(app, AsyncSessionLocal, sink)
    logger.info("Booking services initialized")

    # 4. Metrics
    from services.metrics import set_app_info
    set_app_info(version=settings.APP_VERSION, environment=settings.APP_ENV)

    logger.info("Application ready!")

    yield

    logger.info("Shutting down...")

    if getattr(app.state, 'redis', None):
        await app.state.redis.aclose()

    from database import close_db
    await close_db()

    logger.info("Goodbye!")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Vehicle rental reservations",
    lifespan=lifespan,
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def trace_id_middleware(request: Request, call_next):
    """Add trace ID to each request for distributed tracing."""
    trace_id = request.headers.get("X-Trace-ID") or str(uuid.uuid4())[:8]
    set_trace_id(trace_id)
    started = time.perf_counter()

    response = await call_next(request)

    response.headers["X-Trace-ID"] = trace_id

    from services.metrics import record_request
    route = request.scope.get("route")
    endpoint = getattr(route, "path", request.url.path)
    record_request(request.method, endpoint, response.status_code, time.perf_counter() - started)

    logger.info(
        "Request completed",
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        trace_id=trace_id
    )

    return response


from routers.bookings import router as bookings_router
from routers.users import router as users_router

app.include_router(bookings_router, prefix="/api/bookings", tags=["bookings"])
app.include_router(users_router, prefix="/api", tags=["statistics"])


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError):
    """Typed domain errors become 4xx responses."""
    logger.info(
        "Booking request rejected",
        path=request.url.path,
        error_code=exc.error_code,
        detail=exc.message
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.get("/health/live")
async def liveness_check():
    """Liveness probe - process is running, no dependency checks."""
    return {"status": "alive"}


@app.get("/health/ready")
async def readiness_check():
    """Readiness probe - database must answer; Redis is reported but optional."""
    from database import engine

    checks = {
        "status": "ready",
        "version": settings.APP_VERSION,
        "database": "disconnected",
        "redis": "disconnected",
    }

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "connected"
    except Exception as e:
        checks["status"] = "not_ready"
        checks["error"] = str(e)
        return JSONResponse(status_code=503, content=checks)

    try:
        if getattr(app.state, 'redis', None):
            await app.state.redis.ping()
            checks["redis"] = "connected"
    except Exception as e:
        checks["redis_error"] = str(e)

    return checks


@app.get("/")
async def root():
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running"
    }


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    from services.metrics import get_metrics
    return get_metrics()


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"}
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        workers=1
    )
