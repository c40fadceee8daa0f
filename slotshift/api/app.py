"""FastAPI application for SlotShift."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from slotshift import __version__
from slotshift.api.middleware import RequestLoggingMiddleware
from slotshift.api.routes import health, planning
from slotshift.config import get_settings
from slotshift.scheduling.errors import (
    ReconciliationInProgressError,
    SchedulingError,
    ShiftRejected,
    StaleCacheError,
    TransferRejected,
    UnknownScheduleError,
    UnknownSlotError,
)

logger = logging.getLogger(__name__)


def status_for(exc: SchedulingError) -> int:
    """HTTP status for a scheduling error."""
    if isinstance(exc, (TransferRejected, StaleCacheError, ReconciliationInProgressError)):
        return 409
    if isinstance(exc, ShiftRejected):
        return 422
    if isinstance(exc, (UnknownScheduleError, UnknownSlotError)):
        return 404
    return 400


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting SlotShift API")
    yield
    logger.info("Shutting down SlotShift API")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="SlotShift API",
        description="Appointment slot transfer and schedule shift planning",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health.router, tags=["health"])
    app.include_router(planning.router, prefix="/api/v1", tags=["planning"])

    @app.exception_handler(SchedulingError)
    async def scheduling_exception_handler(request: Request, exc: SchedulingError):
        status_code = status_for(exc)
        logger.info(f"Rejected {request.method} {request.url.path}: {exc.code} ({exc.message})")
        return JSONResponse(
            status_code=status_code,
            content={"error": exc.code, "detail": exc.message},
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if settings.log_level == "DEBUG" else None,
            },
        )

    return app
