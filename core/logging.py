# ============================================================================
# STRUCTURED LOGGING
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - Structured logging with per-task context
# PURPOSE: Stamp run/channel/model/endpoint onto every record
# LAST_REVIEWED: 18 OCT 2026
# ============================================================================
"""
Structured Logging

Context travels in a ContextVar, so each asyncio task (one probe job, one
run activation) carries its own fields. A logging.Filter installed on the
root handler copies those fields onto every record, which means ordinary
``logging.getLogger(__name__)`` loggers pick them up without an adapter.

Usage:
    from core.logging import log_context

    with log_context(run_id=run.run_id, channel_id=channel.id):
        logger.info("Dispatching probe")

Output formats:
    console (default)  2026-10-18 08:00:01 INFO  worker.pool [run=ab12 model=m-7]: ...
    json (LOG_FORMAT=json)  one JSON object per line
"""

import json
import logging
import os
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional, Union


@dataclass(frozen=True)
class LogContext:
    """Fields attached to every record logged inside a log_context block."""
    run_id: Optional[str] = None
    job_id: Optional[str] = None
    channel_id: Optional[str] = None
    model_id: Optional[str] = None
    endpoint_type: Optional[str] = None
    component: Optional[str] = None

    def as_fields(self) -> Dict[str, str]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


_EMPTY = LogContext()
_context: ContextVar[LogContext] = ContextVar("modelcheck_log_context", default=_EMPTY)

# Short labels for the console format
_CONSOLE_LABELS = (
    ("run_id", "run"),
    ("channel_id", "channel"),
    ("model_id", "model"),
    ("endpoint_type", "endpoint"),
)


def current_context() -> LogContext:
    return _context.get()


@contextmanager
def log_context(**changes: Optional[str]) -> Iterator[LogContext]:
    """
    Layer fields over the enclosing context for the duration of the block.

    Unknown field names raise TypeError, same as dataclasses.replace.
    """
    token = _context.set(replace(_context.get(), **changes))
    try:
        yield _context.get()
    finally:
        _context.reset(token)


# ============================================================================
# FILTER + FORMATTERS
# ============================================================================

class ContextFilter(logging.Filter):
    """Copies the active LogContext onto the record as ``record.context``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.context = current_context().as_fields()
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per record, for log shipping."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        context = getattr(record, "context", None)
        if context:
            payload.update(context)
        data = getattr(record, "data", None)
        if data:
            payload["data"] = data
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class ConsoleFormatter(logging.Formatter):
    """Single-line human format with the main context fields inline."""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created, timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        context = getattr(record, "context", None) or {}
        tags = " ".join(
            f"{label}={context[key]}" for key, label in _CONSOLE_LABELS if key in context
        )
        line = f"{ts} {record.levelname:<5} {record.name}"
        if tags:
            line += f" [{tags}]"
        line += f": {record.getMessage()}"

        data = getattr(record, "data", None)
        if data:
            line += f" {data}"
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def configure_logging(
    level: Union[str, int] = "INFO",
    json_output: bool = False,
) -> logging.Handler:
    """
    Replace root handlers with a single stdout handler.

    Args:
        level: Log level name or number
        json_output: JSON lines instead of the console format

    Returns:
        The installed handler
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    if json_output or os.getenv("LOG_FORMAT", "").lower() == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = ConsoleFormatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    # httpx logs every request at INFO; a run would drown everything else
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
    return handler


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


# ============================================================================
# CHECKPOINTS
# ============================================================================

def log_checkpoint(
    name: str,
    data: Optional[Dict[str, Any]] = None,
    logger: Optional[logging.Logger] = None,
) -> None:
    """
    Log a named milestone of a run (run_enqueued, run_cancelled, ...).

    Checkpoints share the ``CHECKPOINT:`` prefix so a run can be
    reconstructed by grepping for its run_id.
    """
    (logger or logging.getLogger("checkpoint")).info(
        f"CHECKPOINT: {name}",
        extra={"data": data or {}},
    )


__all__ = [
    "LogContext",
    "ContextFilter",
    "JsonFormatter",
    "ConsoleFormatter",
    "configure_logging",
    "current_context",
    "get_logger",
    "log_context",
    "log_checkpoint",
]
