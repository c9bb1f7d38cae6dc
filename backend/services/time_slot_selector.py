"""Per-date start/end time selection driven by block availability.

Each candidate date moves through ``UNSELECTED -> START_CHOSEN ->
FULLY_SELECTED``. Invalid edits are rejected with a message and leave the
selection untouched; accepted edits replace the frozen ``DayTimeSelection``.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from threading import RLock
from typing import Callable, Iterable, Optional

from backend.domain.constraints import DEFAULT_BUSINESS_HOURS, BusinessHours
from backend.domain.models import DayAvailability, DayTimeSelection, SelectionPhase
from backend.utils.logger import get_logger
from backend.utils.time_parsing import format_clock, parse_clock_minutes


logger = get_logger(__name__)

START_FIELD = "start_time"
END_FIELD = "end_time"
_FIELD_ALIASES = {
    "start_time": START_FIELD,
    "startTime": START_FIELD,
    "end_time": END_FIELD,
    "endTime": END_FIELD,
}

END_BEFORE_START_MESSAGE = "End time must be after start time"
NO_FREE_BLOCK_MESSAGE = "No time blocks are available on this date"
START_REQUIRED_MESSAGE = "Select a start time before choosing an end time"


@dataclass(frozen=True)
class SelectionOutcome:
    accepted: bool
    message: Optional[str] = None


def normalize_field(field_name: str) -> str:
    try:
        return _FIELD_ALIASES[field_name]
    except KeyError as exc:
        raise ValueError(f"unknown time field {field_name!r}") from exc


class TimeSlotSelector:
    """Holds one ``DayTimeSelection`` per candidate date."""

    def __init__(
        self,
        availability_for: Callable[[date], DayAvailability],
        business_hours: BusinessHours = DEFAULT_BUSINESS_HOURS,
    ) -> None:
        self._availability_for = availability_for
        self._hours = business_hours
        self._lock = RLock()
        self._selections: list[DayTimeSelection] = []

    @property
    def business_hours(self) -> BusinessHours:
        return self._hours

    # Candidate dates

    def add_date(self, target_date: date) -> bool:
        with self._lock:
            if any(item.date == target_date for item in self._selections):
                return False
            if len(self._selections) >= self._hours.max_candidate_dates:
                logger.debug("Ignoring %s: candidate date limit reached", target_date)
                return False
            self._selections.append(
                DayTimeSelection(date=target_date, availability=self._availability_for(target_date))
            )
            return True

    def remove_date(self, target_date: date) -> bool:
        with self._lock:
            remaining = [item for item in self._selections if item.date != target_date]
            removed = len(remaining) != len(self._selections)
            self._selections = remaining
            return removed

    def toggle_date(self, target_date: date) -> bool:
        """Add or remove ``target_date``; returns whether it is selected afterwards."""
        with self._lock:
            if self.remove_date(target_date):
                return False
            return self.add_date(target_date)

    def set_candidate_dates(self, dates: Iterable[date]) -> list[date]:
        with self._lock:
            self._selections = []
            for target_date in dates:
                self.add_date(target_date)
            return [item.date for item in self._selections]

    def refresh_availability(self) -> None:
        """Recompute availability and drop times the new availability no longer allows."""
        with self._lock:
            refreshed: list[DayTimeSelection] = []
            for item in self._selections:
                current = replace(item, availability=self._availability_for(item.date))
                start = parse_clock_minutes(current.start_time)
                end = parse_clock_minutes(current.end_time)
                if not current.availability.any_free:
                    current = replace(current, start_time=None, end_time=None)
                elif start is not None and self._start_rejection(current.availability, start):
                    current = replace(current, start_time=None, end_time=None)
                elif start is not None and end is not None and self._end_rejection(
                    current.availability, start, end
                ):
                    current = replace(current, end_time=None)
                refreshed.append(current)
            self._selections = refreshed

    # Time edits

    def on_change(self, field_name: str, date_index: int, value: Optional[str]) -> SelectionOutcome:
        target_field = normalize_field(field_name)
        with self._lock:
            if not 0 <= date_index < len(self._selections):
                raise IndexError(f"no candidate date at index {date_index}")
            current = self._selections[date_index]
            minutes = parse_clock_minutes(value)

            if minutes is None:
                if target_field == START_FIELD:
                    self._selections[date_index] = replace(current, start_time=None, end_time=None)
                else:
                    self._selections[date_index] = replace(current, end_time=None)
                return SelectionOutcome(accepted=True)

            if not current.availability.any_free:
                return SelectionOutcome(False, NO_FREE_BLOCK_MESSAGE)

            if target_field == START_FIELD:
                return self._set_start(date_index, current, minutes)
            return self._set_end(date_index, current, minutes)

    def _set_start(self, index: int, current: DayTimeSelection, start: int) -> SelectionOutcome:
        if not self._hours.opening_minute <= start < self._hours.closing_minute:
            return SelectionOutcome(False, self._outside_hours_message())
        rejection = self._start_rejection(current.availability, start)
        if rejection:
            return SelectionOutcome(False, rejection)

        end = parse_clock_minutes(current.end_time)
        if end is not None and end <= start:
            self._selections[index] = replace(current, start_time=format_clock(start), end_time=None)
            return SelectionOutcome(
                True, "End time was cleared because it is no longer after the new start time"
            )
        if end is not None and self._end_rejection(current.availability, start, end):
            self._selections[index] = replace(current, start_time=format_clock(start), end_time=None)
            return SelectionOutcome(True, "End time was cleared because it no longer fits the available block")
        self._selections[index] = replace(current, start_time=format_clock(start))
        return SelectionOutcome(accepted=True)

    def _set_end(self, index: int, current: DayTimeSelection, end: int) -> SelectionOutcome:
        start = parse_clock_minutes(current.start_time)
        if start is None:
            return SelectionOutcome(False, START_REQUIRED_MESSAGE)
        if not self._hours.opening_minute < end <= self._hours.closing_minute:
            return SelectionOutcome(False, self._outside_hours_message())
        if end <= start:
            return SelectionOutcome(False, END_BEFORE_START_MESSAGE)
        rejection = self._end_rejection(current.availability, start, end)
        if rejection:
            return SelectionOutcome(False, rejection)
        self._selections[index] = replace(current, end_time=format_clock(end))
        return SelectionOutcome(accepted=True)

    def _start_rejection(self, availability: DayAvailability, start: int) -> Optional[str]:
        hour = start // 60
        if availability.morning_only and hour >= self._hours.afternoon_start:
            return self._only_block_message("morning")
        if availability.afternoon_only and hour < self._hours.morning_end:
            return self._only_block_message("afternoon")
        return None

    def _end_rejection(self, availability: DayAvailability, start: int, end: int) -> Optional[str]:
        if availability.morning_only and end // 60 >= self._hours.afternoon_start:
            return self._only_block_message("morning")
        if availability.afternoon_only and start // 60 < self._hours.morning_end:
            return self._only_block_message("afternoon")
        return None

    def _only_block_message(self, block: str) -> str:
        if block == "morning":
            opening, closing = self._hours.morning_start, self._hours.morning_end
        else:
            opening, closing = self._hours.afternoon_start, self._hours.afternoon_end
        return (
            f"Only the {block} block ({format_clock(opening * 60)} - "
            f"{format_clock(closing * 60)}) is available on this date"
        )

    def _outside_hours_message(self) -> str:
        return (
            f"Time must be within business hours ({format_clock(self._hours.opening_minute)} - "
            f"{format_clock(self._hours.closing_minute)})"
        )

    def apply_unified_time(self, field_name: str, value: Optional[str]) -> list[SelectionOutcome]:
        """Apply one time to every candidate date."""
        with self._lock:
            return [self.on_change(field_name, index, value) for index in range(len(self._selections))]

    # Views

    def time_options(self, date_index: int, field_name: str) -> list[str]:
        """Whole-hour choices that ``on_change`` would accept right now."""
        target_field = normalize_field(field_name)
        with self._lock:
            current = self._selections[date_index]
            availability = current.availability
            if not availability.any_free:
                return []
            opening_hour = self._hours.opening_minute // 60
            closing_hour = self._hours.closing_minute // 60

            if target_field == START_FIELD:
                return [
                    format_clock(hour * 60)
                    for hour in range(opening_hour, closing_hour)
                    if self._start_rejection(availability, hour * 60) is None
                ]

            start = parse_clock_minutes(current.start_time)
            if start is None:
                return []
            return [
                format_clock(hour * 60)
                for hour in range(opening_hour + 1, closing_hour + 1)
                if hour * 60 > start and self._end_rejection(availability, start, hour * 60) is None
            ]

    def selections(self) -> list[DayTimeSelection]:
        with self._lock:
            return list(self._selections)

    def completed_selections(self) -> list[DayTimeSelection]:
        with self._lock:
            return [item for item in self._selections if item.phase == SelectionPhase.FULLY_SELECTED]

    def validation_errors(self) -> list[str]:
        """Form-level problems that block submission."""
        with self._lock:
            if not self._selections:
                return ["Select at least one date"]
            errors: list[str] = []
            for item in self._selections:
                label = item.date.isoformat()
                if not item.availability.any_free:
                    errors.append(f"{label}: {NO_FREE_BLOCK_MESSAGE}")
                    continue
                start = parse_clock_minutes(item.start_time)
                end = parse_clock_minutes(item.end_time)
                if start is None:
                    errors.append(f"{label}: start time is required")
                elif end is None:
                    errors.append(f"{label}: end time is required")
                elif end <= start:
                    errors.append(f"{label}: {END_BEFORE_START_MESSAGE}")
            return errors
