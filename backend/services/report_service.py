"""Utilisation summaries for the admin reports."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Optional
from zoneinfo import ZoneInfo

from backend.domain.models import BucketedSeriesEntry, ReservationStatus
from backend.repository.data_repository import DataRepository
from backend.services.bucketing_service import Granularity, aggregate, period_ticks
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)

TREND_FIELDS = ("requests", "hours", "machine_count")


class ReportValidationError(Exception):
    """Raised when report filters are invalid."""


@dataclass(frozen=True)
class ReportSummary:
    date_from: date
    date_to: date
    granularity: Granularity
    total_requests: int
    pending_count: int
    completed_count: int
    status_counts: dict[str, int]
    machine_usage: list[tuple[str, int]]
    trend: list[BucketedSeriesEntry] = field(default_factory=list)
    ticks: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "date_from": self.date_from.isoformat(),
            "date_to": self.date_to.isoformat(),
            "granularity": self.granularity.value,
            "total_requests": self.total_requests,
            "pending_count": self.pending_count,
            "completed_count": self.completed_count,
            "status_counts": dict(self.status_counts),
            "machine_usage": [
                {"machine": machine, "count": count} for machine, count in self.machine_usage
            ],
            "trend": [entry.to_dict() for entry in self.trend],
            "ticks": list(self.ticks),
        }


class ReportService:
    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def _today(self) -> date:
        return datetime.now(ZoneInfo(self._settings.timezone)).date()

    def build_summary(
        self,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        granularity: Granularity | str = Granularity.DAY,
        today: Optional[date] = None,
    ) -> ReportSummary:
        try:
            resolved_granularity = Granularity(granularity)
        except ValueError as exc:
            allowed = ", ".join(item.value for item in Granularity)
            raise ReportValidationError(f"granularity must be one of: {allowed}") from exc

        end = date_to or today or self._today()
        start = date_from or end - timedelta(days=self._settings.report_default_window_days)
        if start > end:
            raise ReportValidationError("date_from must be on or before date_to")

        records = self._repository.list_reservation_records(start, end)

        status_counts = {item.value: 0 for item in ReservationStatus}
        for record in records:
            status_counts[record.status] = status_counts.get(record.status, 0) + 1

        unspecified = self._settings.unspecified_machine_label
        usage = Counter(
            machine
            for record in records
            for machine in record.machines
            if machine and machine != unspecified
        )
        machine_usage = sorted(usage.items(), key=lambda item: (-item[1], item[0]))

        trend = aggregate(
            (
                {
                    "date": record.request_date,
                    "requests": 1,
                    "hours": record.booked_hours,
                    "machine_count": len(
                        [machine for machine in record.machines if machine != unspecified]
                    ),
                }
                for record in records
            ),
            resolved_granularity,
            TREND_FIELDS,
        )

        summary = ReportSummary(
            date_from=start,
            date_to=end,
            granularity=resolved_granularity,
            total_requests=len(records),
            pending_count=status_counts[ReservationStatus.PENDING.value],
            completed_count=status_counts[ReservationStatus.COMPLETED.value],
            status_counts=status_counts,
            machine_usage=machine_usage,
            trend=trend,
            ticks=period_ticks(start, end, resolved_granularity, self._settings.report_max_ticks),
        )
        logger.info(
            "Report summary built | from=%s | to=%s | granularity=%s | requests=%s",
            start.isoformat(),
            end.isoformat(),
            resolved_granularity.value,
            summary.total_requests,
        )
        return summary
