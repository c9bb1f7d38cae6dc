"""Business-hour rules shared by availability and time-slot selection."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class BusinessHours:
    morning_start: int = 8
    morning_end: int = 12
    afternoon_start: int = 13
    afternoon_end: int = 17
    max_candidate_dates: int = 5
    booking_horizon_days: int = 31

    @property
    def opening_minute(self) -> int:
        return self.morning_start * 60

    @property
    def closing_minute(self) -> int:
        return self.afternoon_end * 60

    def tracked_hours(self) -> range:
        """Hours covered by the occupancy table, closing hour included."""
        return range(self.morning_start, self.afternoon_end + 1)

    def morning_hours(self) -> range:
        return range(self.morning_start, self.morning_end)

    def afternoon_hours(self) -> range:
        return range(self.afternoon_start, self.afternoon_end + 1)


DEFAULT_BUSINESS_HOURS = BusinessHours()


def validate_business_hours(hours: BusinessHours) -> None:
    for name in ("morning_start", "morning_end", "afternoon_start", "afternoon_end"):
        value = getattr(hours, name)
        if not 0 <= value <= 23:
            raise ValueError(f"{name} must be between 0 and 23")
    if hours.morning_start >= hours.morning_end:
        raise ValueError("morning_start must be before morning_end")
    if hours.afternoon_start >= hours.afternoon_end:
        raise ValueError("afternoon_start must be before afternoon_end")
    if hours.morning_end > hours.afternoon_start:
        raise ValueError("morning block must end before the afternoon block starts")
    if hours.max_candidate_dates <= 0:
        raise ValueError("max_candidate_dates must be > 0")
    if hours.booking_horizon_days <= 0:
        raise ValueError("booking_horizon_days must be > 0")
