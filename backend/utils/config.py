"""Application settings loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from backend.domain.constraints import BusinessHours, validate_business_hours


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    app_name: str = "FabLab Scheduling Service"
    app_version: str = "1.0.0"
    log_level: str = "INFO"
    database_path: Path = PROJECT_ROOT / "data" / "fablab.db"
    timezone: str = "Asia/Manila"

    morning_start_hour: int = 8
    morning_end_hour: int = 12
    afternoon_start_hour: int = 13
    afternoon_end_hour: int = 17
    max_candidate_dates: int = 5
    booking_horizon_days: int = 31

    occupying_statuses: tuple[str, ...] = ("Approved", "Ongoing")
    unspecified_machine_label: str = "Not specified"

    report_default_window_days: int = 30
    report_max_ticks: int = 12

    demo_random_seed: int = 42
    demo_seed_days: int = 45

    def business_hours(self) -> BusinessHours:
        hours = BusinessHours(
            morning_start=self.morning_start_hour,
            morning_end=self.morning_end_hour,
            afternoon_start=self.afternoon_start_hour,
            afternoon_end=self.afternoon_end_hour,
            max_candidate_dates=self.max_candidate_dates,
            booking_horizon_days=self.booking_horizon_days,
        )
        validate_business_hours(hours)
        return hours


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; tests call ``cache_clear`` to reload."""
    defaults = Settings()
    database_path = os.getenv("FABLAB_DATABASE_PATH")
    return Settings(
        app_name=os.getenv("FABLAB_APP_NAME", defaults.app_name),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level),
        database_path=Path(database_path) if database_path else defaults.database_path,
        timezone=os.getenv("FABLAB_TIMEZONE", defaults.timezone),
        morning_start_hour=_env_int("FABLAB_MORNING_START_HOUR", defaults.morning_start_hour),
        morning_end_hour=_env_int("FABLAB_MORNING_END_HOUR", defaults.morning_end_hour),
        afternoon_start_hour=_env_int(
            "FABLAB_AFTERNOON_START_HOUR", defaults.afternoon_start_hour
        ),
        afternoon_end_hour=_env_int("FABLAB_AFTERNOON_END_HOUR", defaults.afternoon_end_hour),
        max_candidate_dates=_env_int("FABLAB_MAX_CANDIDATE_DATES", defaults.max_candidate_dates),
        booking_horizon_days=_env_int(
            "FABLAB_BOOKING_HORIZON_DAYS", defaults.booking_horizon_days
        ),
        report_default_window_days=_env_int(
            "FABLAB_REPORT_WINDOW_DAYS", defaults.report_default_window_days
        ),
    )
