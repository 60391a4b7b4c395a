from __future__ import annotations

import datetime as dt
import json
import logging
import sys
import uuid
from typing import Any

from loguru import logger as loguru_logger

UTC = dt.UTC

# Attributes present on every LogRecord; anything else came in through ``extra=``.
_STANDARD_FIELDS = frozenset(
    {
        "args",
        "msg",
        "name",
        "levelno",
        "levelname",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "message",
    }
)

_USAGE_FIELDS = frozenset(
    {"latency_ms", "tokens_prompt", "tokens_completion", "tokens_total", "cost_usd"}
)


def _record_extras(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if not key.startswith("_") and key not in _STANDARD_FIELDS
    }


class EnhancedJsonFormatter(logging.Formatter):
    """JSON formatter that groups ``extra`` fields and keeps LLM usage numbers together."""

    def __init__(self, include_location: bool = True):
        super().__init__()
        self.include_location = include_location

    def format(self, record: logging.LogRecord) -> str:
        base: dict[str, Any] = {
            "timestamp": dt.datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_location:
            base.update(
                {"module": record.module, "function": record.funcName, "line": record.lineno}
            )

        if record.exc_info:
            base["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        extra_fields: dict[str, Any] = {}
        usage_fields: dict[str, Any] = {}
        for key, value in _record_extras(record).items():
            if key in base:
                continue
            if key in _USAGE_FIELDS:
                usage_fields[key] = value
            elif key == "correlation_id":
                base["correlation_id"] = value
            else:
                extra_fields[key] = value

        if usage_fields:
            base["usage"] = usage_fields
        if extra_fields:
            base["extra"] = extra_fields

        return json.dumps(base, ensure_ascii=False, default=str, separators=(",", ":"))


class InterceptHandler(logging.Handler):
    """Forward stdlib records, including their ``extra`` fields, to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        level: int | str
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        loguru_logger.bind(**_record_extras(record)).opt(
            depth=6, exception=record.exc_info
        ).log(level, record.getMessage())


def setup_json_logging(
    level: str = "INFO",
    *,
    log_file: str | None = None,
    use_loguru: bool = True,
    include_location: bool = True,
    max_file_size: str = "20 MB",
    retention: str = "14 days",
) -> None:
    """Configure structured JSON logging for the whole process.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path for persistent logging
        use_loguru: Route stdlib logging through loguru sinks
        include_location: Include module/function/line in stdlib JSON output
        max_file_size: Rotation size for the loguru file sink
        retention: Retention period for rotated loguru files
    """
    lvl = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(lvl)

    if use_loguru:
        loguru_logger.remove()
        loguru_logger.add(sys.stderr, level=level.upper(), serialize=True, backtrace=False)
        if log_file:
            loguru_logger.add(
                log_file,
                level=level.upper(),
                serialize=True,
                rotation=max_file_size,
                retention=retention,
                enqueue=True,
            )
        root.addHandler(InterceptHandler())
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(EnhancedJsonFormatter(include_location=include_location))
        root.addHandler(console_handler)
        if log_file:
            from logging.handlers import RotatingFileHandler

            file_handler = RotatingFileHandler(log_file, maxBytes=20 * 1024 * 1024, backupCount=5)
            file_handler.setFormatter(EnhancedJsonFormatter(include_location=include_location))
            root.addHandler(file_handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("peewee").setLevel(logging.INFO)

    logging.getLogger(__name__).debug(
        "logging_initialized",
        extra={"level": level.upper(), "log_file": log_file, "use_loguru": use_loguru},
    )


def generate_correlation_id() -> str:
    """Generate a short correlation ID for tracing a run across logs and reports."""
    return uuid.uuid4().hex[:12]


def truncate_log_content(content: str | None, max_length: int = 1000) -> str | None:
    """Truncate large content (LLM replies, prompts) before it is logged."""
    if not content or len(content) <= max_length:
        return content
    if max_length > 20:
        cut = content.rfind(" ", 0, max_length - 15)
        if cut < max_length // 2:
            cut = max_length - 15
        return f"{content[:cut]}... [+{len(content) - cut} chars]"
    return content[:max_length]
