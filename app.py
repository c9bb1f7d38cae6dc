"""
app.py — FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI

from backend.controllers.reports_controller import router as reports_router
from backend.controllers.scheduling_controller import router as scheduling_router
from backend.repository.data_repository import DataRepository
from backend.services.availability_service import AvailabilityService
from backend.services.report_service import ReportService
from backend.services.reservation_service import ReservationService
from backend.utils.config import get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(seed_demo_data: bool = True) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Services are created here and handed to controllers through app.state,
    so every dependency is traceable from this function.
    """
    settings = get_settings()

    # --- Repository (SQLite connection factory) ---
    repository = DataRepository(settings)

    # --- Services ---
    availability_service = AvailabilityService(repository=repository, settings=settings)
    reservation_service = ReservationService(
        repository=repository,
        availability_service=availability_service,
        settings=settings,
    )
    report_service = ReportService(repository=repository, settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app, seed_demo_data)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.include_router(scheduling_router)
    app.include_router(reports_router)

    app.state.repository = repository
    app.state.availability_service = availability_service
    app.state.reservation_service = reservation_service
    app.state.report_service = report_service

    return app


def _startup(app: FastAPI, seed_demo_data: bool) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Schema first, then the machine/service catalog, then demo reservations
    (skipped whenever any reservation already exists).
    """
    repository: DataRepository = app.state.repository

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    logger.info("Startup: seeding machine and service catalog")
    repository.seed_catalog()

    if seed_demo_data:
        logger.info("Startup: seeding demo reservations")
        repository.seed_demo_reservations()

    app.state.availability_service.refresh_snapshot()
    logger.info("Startup complete, scheduling service ready")


# Module-level app object for uvicorn
app = create_app()
