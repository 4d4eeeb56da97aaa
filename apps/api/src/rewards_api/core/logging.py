"""Loguru setup for the rewards API.

Development runs log human-readable lines to stderr. Every other environment
writes one JSON object per line to stdout, tagged with the deployment and the
active trace so ledger, referral and claim events can be joined to requests.
"""

from __future__ import annotations

import json
import logging
import sys
from logging import LogRecord
from typing import Any, Dict

from loguru import logger
from opentelemetry import trace


# Attributes every LogRecord carries; anything else was passed via ``extra=``.
_LOG_RECORD_FIELDS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "botocore": logging.WARNING,
    "boto3": logging.WARNING,
    "s3transfer": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.INFO,
}


class InterceptHandler(logging.Handler):
    """Forward uvicorn, SQLAlchemy and boto records into the rewards log stream."""

    def emit(self, record: LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Attribute the line to the caller rather than to the logging module.
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        context = {key: value for key, value in vars(record).items() if key not in _LOG_RECORD_FIELDS}
        bound = logger.bind(stdlib_logger=record.name, **context)
        bound.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _trace_fields() -> Dict[str, str]:
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return {}
    return {
        "trace_id": f"{span_context.trace_id:032x}",
        "span_id": f"{span_context.span_id:016x}",
    }


def build_log_line(record: Dict[str, Any], metadata: Dict[str, str]) -> Dict[str, Any]:
    """Shape a Loguru record into the JSON object shipped by the rewards API.

    Fields bound with ``logger.bind`` or passed as keyword arguments (member
    ids, claim ids, storage keys) land at the top level next to the deployment
    tags. The exception, when present, is reduced to its type and message.
    """

    line: Dict[str, Any] = {
        "timestamp": record["time"].isoformat(),
        "level": record["level"].name.lower(),
        "message": record["message"],
        "logger": record["extra"].get("stdlib_logger", record["name"]),
        "service": metadata["service_name"],
        "environment": metadata["environment"],
        "version": metadata["version"],
    }
    line.update(_trace_fields())
    line.update({key: value for key, value in record["extra"].items() if key != "stdlib_logger"})

    if record["exception"] is not None:
        exc_type, exc_value, _ = record["exception"]
        line["exception"] = {
            "type": exc_type.__name__ if exc_type else None,
            "value": str(exc_value) if exc_value else None,
        }
    return line


def configure_logging(*, service_name: str, environment: str, version: str) -> None:
    """Install the rewards API log sinks and route stdlib loggers through them."""

    logger.remove()
    if environment == "development":
        logger.add(sys.stderr, level="DEBUG", backtrace=False, diagnose=False)
    else:
        metadata = {"service_name": service_name, "environment": environment, "version": version}

        def write_json(message: "logger.Message") -> None:
            sys.stdout.write(json.dumps(build_log_line(message.record, metadata), default=str) + "\n")

        logger.add(write_json, level="INFO", backtrace=False, diagnose=False)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name, level in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(level)
