"""
Cinema Booking API - Main Application Entry Point

Ticket booking backend with manual payment verification:
- Bookings move pending -> pending_verification -> confirmed / payment_rejected
- Seat conflicts are settled at payment approval under a per-showtime lock
- Door scanning marks tickets used and broadcasts seat updates
- Redis caching, structured logging with request correlation, Prometheus metrics
"""

import asyncio
import contextlib
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cinema_booking.core.config import get_settings
from cinema_booking.core.exceptions import BookingError, StorageError
from cinema_booking.core.logging import setup_logging, get_logger
from cinema_booking.core.metrics import metrics_endpoint
from cinema_booking.api.router import api_router
from cinema_booking.api.middleware import RequestLoggingMiddleware
from cinema_booking.db.session import AsyncSessionLocal
from cinema_booking.services.auth_service import ensure_admin_user
from cinema_booking.services.cache_service import get_redis, close_redis, get_cache_stats
from cinema_booking.services.expiry_service import run_expiry_sweeper
from cinema_booking.services.interfaces.memory_broadcast import InMemorySeatBroadcaster
from cinema_booking.services.strategy_factory import get_seat_broadcaster

settings = get_settings()
logger = get_logger(__name__)


async def _bootstrap_admin() -> None:
    async with AsyncSessionLocal() as session:
        await ensure_admin_user(session)
        await session.commit()


def _log_seat_updates(showtime_id, updates) -> None:
    logger.info("seat_updates", showtime_id=showtime_id, seats=[u.seat_number for u in updates])


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Running without cache")

    if settings.ADMIN_PASSWORD:
        await _bootstrap_admin()

    broadcaster = get_seat_broadcaster()
    if isinstance(broadcaster, InMemorySeatBroadcaster):
        # No pub/sub consumers in a single process; keep scans visible in the logs
        broadcaster.subscribe(_log_seat_updates)

    sweeper = None
    if settings.EXPIRY_SWEEP_ENABLED:
        sweeper = asyncio.create_task(run_expiry_sweeper(settings.EXPIRY_SWEEP_INTERVAL_SECONDS))

    yield

    if sweeper:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Cinema ticket booking API with payment-proof verification",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.exception_handler(BookingError)
async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    if isinstance(exc, StorageError):
        logger.error("storage_error", error=exc.message, path=request.url.path)
    else:
        logger.info("booking_error", error=exc.error_code, detail=exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
