"""
FastAPI Application Entry Point.

This is the main application file for the Campus Parking Backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from campus_parking.app.core.config import settings
from campus_parking.app.api.v1.router import router as api_v1_router
from campus_parking.app.core.observability import ObservabilityMiddleware, configure_logging
from campus_parking.app.core.redis_client import ping_redis
from campus_parking.app.db.session import create_all_tables
from campus_parking.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from campus_parking.app.models.audit_log import AuditLog
from campus_parking.app.models.schedule_profile import ScheduleProfile, ScheduleDay
from campus_parking.app.models.carpool_group import CarpoolGroup, CarpoolGroupMember
from campus_parking.app.models.spot import Spot
from campus_parking.app.models.rental import Rental
from campus_parking.app.models.spot_claim import SpotClaim
from campus_parking.app.models.reassignment_record import ReassignmentRecord
from campus_parking.app.models.penalty import Penalty, PlatformCredit
from campus_parking.app.models.report import Report
from campus_parking.app.models.payment_operation import PaymentOperation
from campus_parking.app.models.outbox_event import OutboxEvent

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Creates database tables on startup.
    """
    await create_all_tables()
    yield


# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Campus parking matching and allocation engine",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Returns:
        dict: Status, application information and cache reachability
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "cache": "up" if await ping_redis() else "down",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": "Welcome to Campus Parking Backend API",
        "docs": "/docs",
        "health": "/health",
    }
