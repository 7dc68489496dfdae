"""JSON structured logging configuration.

The API and the Celery worker both log through here; every record carries
the emitting `service` so the two streams can be told apart once shipped.
"""
from __future__ import annotations

import logging
import sys

from pythonjsonlogger.json import JsonFormatter

from stockshift.config import settings

# Loggers that are too chatty at INFO for a reconciliation service.
QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "httpx": logging.WARNING,
    "httpcore": logging.WARNING,
    "celery.app.trace": logging.WARNING,
}


def build_formatter(service: str) -> JsonFormatter:
    return JsonFormatter(
        fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
        rename_fields={
            "asctime": "timestamp",
            "levelname": "level",
            "name": "logger",
        },
        static_fields={"service": f"stockshift-{service}", "env": settings.APP_ENV},
    )


def setup_logging(service: str = "api") -> None:
    """Route every logger to one JSON handler on stdout."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(build_formatter(service))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.APP_LOG_LEVEL)

    for name, level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)
    # Per-statement SQL only while developing locally.
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.APP_ENV == "development" else logging.WARNING
    )
