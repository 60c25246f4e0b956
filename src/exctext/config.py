"""Structlog configuration for the middleware's log events.

Routes structlog and stdlib records through one
:class:`structlog.stdlib.ProcessorFormatter` producing either JSON (via
orjson) or colored console output with these fields:

- ``timestamp``: ISO 8601 in UTC.
- ``service``: application name.
- ``level`` / ``severity``: canonical level name and RFC 5424 code.
- ``message``: the log message.
- ``exception_chain``: cause chain summary for logged exceptions.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import Any

import orjson
import structlog
from structlog.contextvars import merge_contextvars

from exctext.processors import (
    add_exception_chain,
    add_service,
    add_syslog_severity,
    ensure_event_is_str,
    normalize_level,
)


def _orjson_serializer(obj: object, **_kw: object) -> str:
    return orjson.dumps(obj, default=str).decode()


def _to_logging_level(level_name: str) -> int:
    """Convert a level name such as ``"warn"`` to its :mod:`logging` constant."""
    upper_level = level_name.upper()
    if upper_level == "WARN":
        return logging.WARNING
    result: int = getattr(logging, upper_level, logging.INFO)
    return result


def _stream_isatty(stream: Any) -> bool:
    try:
        result: bool = stream.isatty()
        return result
    except (AttributeError, ValueError):
        return False


def _build_shared_processors(service: str) -> list[structlog.types.Processor]:
    """Processor chain shared by structlog loggers and foreign stdlib records."""
    return [
        merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        normalize_level,  # type: ignore[list-item]
        add_syslog_severity,  # type: ignore[list-item]
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        add_service(service),  # type: ignore[list-item]
        add_exception_chain,  # type: ignore[list-item]
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        ensure_event_is_str,  # type: ignore[list-item]
        structlog.processors.EventRenamer("message"),
    ]


def configure_logging(
    *,
    service: str = "app",
    level: str = "INFO",
    json_logs: bool = True,
    stream: Any = None,
    clear_handlers: bool = True,
) -> None:
    """Configure structlog and the root logger.

    Parameters
    ----------
    service:
        Application name added to every log record.
    level:
        Minimum log level (e.g. ``"DEBUG"``, ``"INFO"``).
    json_logs:
        ``True`` for JSON output, ``False`` for console output.
    stream:
        Output stream.  Defaults to ``sys.stdout``.
    clear_handlers:
        Remove existing root handlers before adding the structlog handler.
    """
    if stream is None:
        stream = sys.stdout

    shared_processors = _build_shared_processors(service)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(_to_logging_level(level)),
        cache_logger_on_first_use=True,
    )

    renderer: structlog.types.Processor
    formatter_processors: list[structlog.types.Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
    ]
    if json_logs:
        renderer = structlog.processors.JSONRenderer(serializer=_orjson_serializer)
        formatter_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(
            colors=_stream_isatty(stream),
            event_key="message",
        )
    formatter_processors.append(renderer)

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=formatter_processors,
        foreign_pre_chain=shared_processors,
    )

    root = logging.getLogger()
    if clear_handlers:
        root.handlers.clear()
    root.setLevel(_to_logging_level(level))

    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    root.addHandler(handler)


def setup_logging(*, service: str = "app") -> None:
    """Configure logging from ``LOG_LEVEL`` and ``JSON_LOGS`` (``"0"`` = console)."""
    configure_logging(
        service=service,
        level=os.environ.get("LOG_LEVEL", "INFO"),
        json_logs=os.environ.get("JSON_LOGS", "1") != "0",
    )
