"""FastAPI application bootstrap and lifecycle wiring.

Run via the launcher (`python main.py`) or directly:

    uvicorn residence_booking.main:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from residence_booking.controllers.booking_controller import router as booking_router
from residence_booking.controllers.health_controller import context_router, router as health_router
from residence_booking.repository.data_repository import DataRepository
from residence_booking.services.allocation_service import ConflictResolver
from residence_booking.services.auth_service import AuthService
from residence_booking.services.authorization_service import AuthorizationGate
from residence_booking.services.eligibility_service import EligibilityService
from residence_booking.services.lifecycle_service import BookingLifecycleService
from residence_booking.services.query_service import BookingQueryService
from residence_booking.utils.config import Settings, get_settings
from residence_booking.utils.logger import get_logger


logger = get_logger(__name__)


async def request_validation_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Malformed bodies and path ids are client errors, reported as 400."""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "; ".join(messages) or "Invalid request"},
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the app with every dependency wired explicitly."""
    settings = settings or get_settings()

    # --- Ledger (one SQLite connection per operation) ---
    repository = DataRepository(settings)

    # --- Services (business logic, no direct SQL) ---
    gate = AuthorizationGate(repository)
    resolver = ConflictResolver(repository=repository, settings=settings)
    eligibility_service = EligibilityService(
        repository=repository,
        gate=gate,
        settings=settings,
    )
    lifecycle_service = BookingLifecycleService(
        repository=repository,
        resolver=resolver,
        gate=gate,
        settings=settings,
    )
    query_service = BookingQueryService(repository=repository, settings=settings)
    auth_service = AuthService(settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.include_router(health_router)
    app.include_router(context_router, prefix=settings.api_prefix)
    app.include_router(booking_router, prefix=f"{settings.api_prefix}/booking-requests")

    app.state.settings = settings
    app.state.repository = repository
    app.state.eligibility_service = eligibility_service
    app.state.lifecycle_service = lifecycle_service
    app.state.query_service = query_service
    app.state.auth_service = auth_service

    return app


def startup(app: FastAPI) -> None:
    """Idempotent: schema first, then the demo directory if it is empty."""
    repository: DataRepository = app.state.repository
    settings: Settings = app.state.settings

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo residency directory (skipped if not empty)")
        repository.seed_demo_directory_if_empty()

    logger.info("Startup complete, ledger at %s", repository.database_path)


app = create_app()
