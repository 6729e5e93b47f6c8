from __future__ import annotations

import json
import logging
import sys
from logging import LogRecord
from typing import Any, Dict, TextIO

from loguru import logger
from opentelemetry import trace

# Attributes every stdlib LogRecord carries; anything else was passed via ``extra``.
_STDLIB_RECORD_FIELDS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime", "taskName"}

# Chatty third-party loggers and the floor they are held to.
_QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "httpx": logging.WARNING,
    "apscheduler": logging.INFO,
}


class InterceptHandler(logging.Handler):
    """Route stdlib records (uvicorn, sqlalchemy, apscheduler) into Loguru."""

    def emit(self, record: LogRecord) -> None:  # pragma: no cover - bridging glue
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        try:
            message = record.getMessage()
        except Exception:  # pragma: no cover - malformed format strings
            message = str(record.msg)

        extra = {key: value for key, value in vars(record).items() if key not in _STDLIB_RECORD_FIELDS}
        bound = logger.bind(logger_name=record.name, **extra)
        bound.opt(depth=6, exception=record.exc_info).log(level, message.replace("{", "{{").replace("}", "}}"))


class JsonLineSink:
    """Loguru sink writing one JSON object per record, tagged with service metadata."""

    def __init__(self, *, service_name: str, environment: str, version: str, stream: TextIO | None = None) -> None:
        self._static = {"service": service_name, "environment": environment, "version": version}
        self._stream = stream or sys.stdout

    def __call__(self, message: "logger.Message") -> None:
        self._stream.write(json.dumps(self.render(message.record), default=str) + "\n")

    def render(self, record: Dict[str, Any]) -> Dict[str, Any]:
        extra = dict(record["extra"])
        payload: Dict[str, Any] = {
            "timestamp": record["time"].isoformat(),
            "level": record["level"].name.lower(),
            "message": record["message"],
            "logger": extra.pop("logger_name", record["name"]),
            **self._static,
        }

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            payload["trace_id"] = f"{span_context.trace_id:032x}"
            payload["span_id"] = f"{span_context.span_id:016x}"

        payload.update(extra)
        if record["exception"] is not None:
            payload["exception"] = repr(record["exception"].value)
        return payload


def configure_logging(*, service_name: str, environment: str, version: str, level: str = "INFO") -> None:
    """Install the JSON Loguru sink and bridge stdlib logging into it."""

    logger.remove()
    sink = JsonLineSink(service_name=service_name, environment=environment, version=version)
    logger.add(sink, level=level.upper(), backtrace=False, diagnose=False)

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name, floor in _QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(floor)


__all__ = ["InterceptHandler", "JsonLineSink", "configure_logging"]
