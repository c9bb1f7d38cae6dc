"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request, status

from backend.services.availability_service import AvailabilityService
from backend.services.report_service import ReportService
from backend.services.reservation_service import ReservationService


def _require_state(request: Request, attribute: str, label: str) -> Any:
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_availability_service(request: Request) -> AvailabilityService:
    return _require_state(request, "availability_service", "Availability service")


def get_reservation_service(request: Request) -> ReservationService:
    return _require_state(request, "reservation_service", "Reservation service")


def get_report_service(request: Request) -> ReportService:
    return _require_state(request, "report_service", "Report service")
