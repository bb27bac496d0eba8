"""Process-wide logging for the booking service."""

from __future__ import annotations

import logging
import sys
import threading
from typing import Optional

from residence_booking.utils.config import get_settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s"

_CONFIGURE_LOCK = threading.Lock()
_LOGGER_INITIALIZED = False


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root handler once per process.

    Requests run on worker threads, so the thread name is part of every
    record; competing approvals for one room can be told apart in the log.
    """

    global _LOGGER_INITIALIZED
    with _CONFIGURE_LOCK:
        if _LOGGER_INITIALIZED:
            return

        resolved_level = (level or get_settings().log_level).upper()
        logging.basicConfig(level=resolved_level, format=LOG_FORMAT, stream=sys.stdout)
        logging.getLogger("residence_booking").setLevel(resolved_level)
        _LOGGER_INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
