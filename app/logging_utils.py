"""Structured JSON logging for the API process and background jobs."""

import logging
import sys
from datetime import datetime, timezone

from pythonjsonlogger import jsonlogger


class DeliveryJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with an ISO-8601 UTC timestamp and level name."""

    def add_fields(self, log_record, record, message_dict):  # type: ignore[no-untyped-def]
        super().add_fields(log_record, record, message_dict)
        if not log_record.get("ts"):
            log_record["ts"] = (
                datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f")[:-3] + "Z"
            )
        log_record["level"] = record.levelname


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """
    Configure the root logger to emit JSON lines on stdout.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    logger = logging.getLogger()
    logger.setLevel(log_level.upper())
    logger.handlers = []

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(DeliveryJsonFormatter("%(ts)s %(level)s %(name)s %(message)s"))
    logger.addHandler(handler)

    # Route uvicorn output through the same handler
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = []
        uvicorn_logger.addHandler(handler)
        uvicorn_logger.propagate = False

    return logger
