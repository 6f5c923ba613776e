"""
Logging setup for SessionGate.

Application and uvicorn logs share one console handler through the root
logger. Access lines get their own handler so the polling filter only ever
sees uvicorn.access records.
"""

import logging
from typing import Any, Dict

# Endpoints the web client polls; their access lines are noise.
POLLED_PATHS = ("/health", "/api/status")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class PollingFilter(logging.Filter):
    """Filter to suppress access logs for polled endpoints."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if "GET" not in message:
            return True
        return not any(f"{path} " in message for path in POLLED_PATHS)


def get_logging_config(level: str = "INFO") -> Dict[str, Any]:
    """dictConfig for the app and uvicorn, with polled GETs dropped from access logs."""
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {"polling": {"()": PollingFilter}},
        "formatters": {
            "console": {"format": LOG_FORMAT},
            "access": {"format": "%(message)s"},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "console",
                "stream": "ext://sys.stdout",
            },
            "access": {
                "class": "logging.StreamHandler",
                "formatter": "access",
                "stream": "ext://sys.stdout",
                "filters": ["polling"],
            },
        },
        "loggers": {
            "uvicorn": {"level": "INFO"},
            "uvicorn.access": {"handlers": ["access"], "level": "INFO", "propagate": False},
            "sessiongate": {"level": level},
        },
        "root": {"level": "INFO", "handlers": ["console"]},
    }
