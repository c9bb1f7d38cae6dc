"""Calendar bucketing of dated records for the utilisation reports."""

from __future__ import annotations

import math
from datetime import date, timedelta
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

import pandas as pd

from backend.domain.models import BucketedSeriesEntry
from backend.utils.logger import get_logger
from backend.utils.time_parsing import parse_calendar_date


logger = get_logger(__name__)

# Fixed so period keys never depend on the process locale.
_MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


class Granularity(str, Enum):
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


def _month_day(value: date) -> str:
    return f"{_MONTH_ABBREVIATIONS[value.month - 1]} {value.day:02d}"


def normalize_period_start(value: date, granularity: Granularity | str) -> date:
    granularity = Granularity(granularity)
    if granularity is Granularity.WEEK:
        return value - timedelta(days=value.weekday())
    if granularity is Granularity.MONTH:
        return value.replace(day=1)
    if granularity is Granularity.YEAR:
        return value.replace(month=1, day=1)
    return value


def period_key(value: date, granularity: Granularity | str) -> str:
    granularity = Granularity(granularity)
    start = normalize_period_start(value, granularity)
    if granularity is Granularity.WEEK:
        end = start + timedelta(days=6)
        return f"{_month_day(start)} - {_month_day(end)}, {end.year}"
    if granularity is Granularity.MONTH:
        return f"{_MONTH_ABBREVIATIONS[start.month - 1]} {start.year}"
    if granularity is Granularity.YEAR:
        return str(start.year)
    return start.isoformat()


def aggregate(
    records: Iterable[Mapping[str, Any]],
    granularity: Granularity | str,
    fields: Sequence[str],
    date_field: str = "date",
) -> list[BucketedSeriesEntry]:
    """Group ``records`` into calendar periods with a count and per-field sums.

    Records without a parseable date are skipped. Field values that are
    missing or not numeric add zero.
    """
    granularity = Granularity(granularity)
    rows: list[dict[str, Any]] = []
    skipped = 0
    for record in records:
        record_date = parse_calendar_date(record.get(date_field))
        if record_date is None:
            skipped += 1
            continue
        row: dict[str, Any] = {"period_start": normalize_period_start(record_date, granularity)}
        for field_name in fields:
            row[field_name] = record.get(field_name)
        rows.append(row)

    if skipped:
        logger.debug("Skipped %s records without a usable %s", skipped, date_field)
    if not rows:
        return []

    frame = pd.DataFrame(rows, columns=["period_start", *fields])
    for field_name in fields:
        frame[field_name] = pd.to_numeric(frame[field_name], errors="coerce").fillna(0.0)

    grouped = frame.groupby("period_start", sort=True)
    counts = grouped.size()
    sums = grouped[list(fields)].sum() if fields else None

    entries: list[BucketedSeriesEntry] = []
    for period_start, count in counts.items():
        totals = (
            {field_name: float(sums.at[period_start, field_name]) for field_name in fields}
            if sums is not None
            else {}
        )
        entries.append(
            BucketedSeriesEntry(
                period_key=period_key(period_start, granularity),
                period_start=period_start,
                count=int(count),
                sums=totals,
            )
        )
    return entries


def _next_period(value: date, granularity: Granularity) -> date:
    if granularity is Granularity.WEEK:
        return value + timedelta(days=7)
    if granularity is Granularity.MONTH:
        if value.month == 12:
            return value.replace(year=value.year + 1, month=1)
        return value.replace(month=value.month + 1)
    if granularity is Granularity.YEAR:
        return value.replace(year=value.year + 1)
    return value + timedelta(days=1)


def period_ticks(
    start: date,
    end: date,
    granularity: Granularity | str,
    max_ticks: int = 12,
) -> list[str]:
    """Period keys between ``start`` and ``end``, thinned to at most ``max_ticks``."""
    granularity = Granularity(granularity)
    if end < start or max_ticks <= 0:
        return []
    periods: list[date] = []
    current = normalize_period_start(start, granularity)
    while current <= end:
        periods.append(current)
        current = _next_period(current, granularity)

    step = max(1, math.ceil(len(periods) / max_ticks))
    return [period_key(value, granularity) for value in periods[::step]]
