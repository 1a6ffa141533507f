"""
JSON-lines logging for the counter service.

Every record becomes one JSON object on stdout with the deployment fields
(service, env, revision, sha), the `event_id` of the delivery being handled,
a stable `event_type` and a Cloud Logging `severity`. Keyword fields passed to
`log_event` are copied onto the line as-is.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Iterator, Optional


_current_event_id: ContextVar[Optional[str]] = ContextVar("follow_counters_event_id", default=None)

# Cloud Logging severities; NOTICE/ALERT/EMERGENCY have no stdlib level of their own.
SEVERITY_TO_LEVEL: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "NOTICE": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
    "ALERT": logging.CRITICAL,
    "EMERGENCY": logging.CRITICAL,
}

# Anything on a record outside this set arrived through `extra=`.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime", "taskName"}


def get_event_id() -> Optional[str]:
    return _current_event_id.get()


@contextmanager
def bind_event_id(*, event_id: str | None = None) -> Iterator[str]:
    """Attach `event_id` (or a fresh one) to every line logged inside the block."""
    eid = str(event_id).strip() if event_id else ""
    token = _current_event_id.set(eid or uuid.uuid4().hex)
    try:
        yield _current_event_id.get()
    finally:
        _current_event_id.reset(token)


class JsonLogFormatter(logging.Formatter):
    def __init__(self, *, service: str, env: str, version: str | None = None, sha: str | None = None) -> None:
        super().__init__()
        self._deployment = {
            "service": service or "follow-counters",
            "env": env or "unknown",
            "version": version or os.getenv("K_REVISION") or "unknown",
            "sha": sha or os.getenv("GIT_SHA") or "unknown",
        }

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003
        line: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "severity": getattr(record, "severity", None) or record.levelname,
            **self._deployment,
            "event_id": getattr(record, "event_id", None) or get_event_id(),
            "event_type": getattr(record, "event_type", None) or "log",
            "message": record.getMessage(),
            "logger": record.name,
        }
        if record.exc_info:
            line["exception"] = self.formatException(record.exc_info)
        for key, value in record.__dict__.items():
            if key in _RECORD_ATTRS or key in line or key.startswith("_"):
                continue
            line[key] = value
        return json.dumps(line, ensure_ascii=False, default=str)


def init_structured_logging(
    *,
    service: str,
    env: str,
    level: str | int = "INFO",
    version: str | None = None,
    sha: str | None = None,
) -> None:
    """Route the root logger (and uvicorn's) to a single JSON handler on stdout."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonLogFormatter(service=service, env=env, version=version, sha=sha))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level if isinstance(level, int) else str(level).upper())

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv = logging.getLogger(name)
        uv.handlers = []
        uv.propagate = True


def log_event(
    logger: logging.Logger,
    event_type: str,
    *,
    severity: str = "INFO",
    message: str | None = None,
    exc_info: Any = None,
    **fields: Any,
) -> None:
    """Log a named event; `severity` is kept verbatim on the line and mapped to a stdlib level."""
    sev = str(severity or "INFO").upper()
    logger.log(
        SEVERITY_TO_LEVEL.get(sev, logging.INFO),
        message or event_type,
        exc_info=exc_info,
        extra={**fields, "event_type": event_type, "severity": sev},
    )
