"""Process-wide logging setup for the scheduling service."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from backend.utils.config import get_settings


_LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
_LOGGER_INITIALIZED = False


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root logger once; later calls are no-ops."""

    global _LOGGER_INITIALIZED
    if _LOGGER_INITIALIZED:
        return

    resolved_level = (level or get_settings().log_level).upper()
    if not isinstance(logging.getLevelName(resolved_level), int):
        resolved_level = "INFO"

    logging.basicConfig(level=resolved_level, format=_LOG_FORMAT, stream=sys.stdout)
    # uvicorn installs its own handlers; keep its access log at the same level.
    logging.getLogger("uvicorn.access").setLevel(resolved_level)
    _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
