"""HTTP controller layer for utilisation reports."""

from __future__ import annotations

from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field

from backend.controllers.dependencies import get_report_service
from backend.services.bucketing_service import Granularity
from backend.services.report_pdf import render_utilization_report_pdf
from backend.services.report_service import ReportService, ReportValidationError
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"])


class MachineUsageResponse(BaseModel):
    machine: str
    count: int = Field(ge=0)


class ReportSummaryResponse(BaseModel):
    date_from: date
    date_to: date
    granularity: Granularity
    total_requests: int = Field(ge=0)
    pending_count: int = Field(ge=0)
    completed_count: int = Field(ge=0)
    status_counts: dict[str, int]
    machine_usage: list[MachineUsageResponse]
    trend: list[dict[str, Any]]
    ticks: list[str]


@router.get("/summary", response_model=ReportSummaryResponse, status_code=status.HTTP_200_OK)
async def report_summary(
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    granularity: Granularity = Query(default=Granularity.DAY),
    service: ReportService = Depends(get_report_service),
) -> ReportSummaryResponse:
    try:
        summary = service.build_summary(date_from=date_from, date_to=date_to, granularity=granularity)
        return ReportSummaryResponse(**summary.to_dict())
    except ReportValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected report summary failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to build report summary",
        ) from exc


@router.get("/pdf", status_code=status.HTTP_200_OK)
async def report_pdf(
    date_from: Optional[date] = Query(default=None),
    date_to: Optional[date] = Query(default=None),
    granularity: Granularity = Query(default=Granularity.DAY),
    service: ReportService = Depends(get_report_service),
) -> Response:
    """Export the same summary as a downloadable PDF."""
    try:
        summary = service.build_summary(date_from=date_from, date_to=date_to, granularity=granularity)
        content = render_utilization_report_pdf(summary)
    except ReportValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected report export failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to render report",
        ) from exc

    filename = f"utilization_{summary.date_from.isoformat()}_{summary.date_to.isoformat()}.pdf"
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
