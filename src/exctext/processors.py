"""Structlog processors used by :func:`exctext.config.configure_logging`.

- ``level`` is normalized to ``CRITICAL``, ``ERROR``, ``WARN``, ``INFO`` or
  ``DEBUG``.
- ``severity`` is the matching RFC 5424 syslog code.
- ``service`` names the application.
- ``exception_chain`` lists ``Type: message`` for every exception in the
  cause chain of a logged exception.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from exctext.details import iter_cause_chain

_LEVEL_MAP: dict[str, str] = {
    "debug": "DEBUG",
    "info": "INFO",
    "warning": "WARN",
    "warn": "WARN",
    "error": "ERROR",
    "exception": "ERROR",
    "critical": "CRITICAL",
    "fatal": "CRITICAL",
}

# RFC 5424 section 6.2.1
_SEVERITY_MAP: dict[str, int] = {
    "DEBUG": 7,
    "INFO": 6,
    "WARN": 4,
    "ERROR": 3,
    "CRITICAL": 2,
}


def add_service(
    service_name: str,
) -> Callable[[Any, str, dict[str, Any]], dict[str, Any]]:
    """Return a processor that adds a ``service`` field to every log record."""

    def _processor(
        _logger: Any,
        _method_name: str,
        event_dict: dict[str, Any],
    ) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict

    return _processor


def normalize_level(
    _logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Set the canonical ``level`` string."""
    raw_level = str(event_dict.get("level", method_name)).lower()
    event_dict["level"] = _LEVEL_MAP.get(raw_level, raw_level.upper())
    return event_dict


def add_syslog_severity(
    _logger: Any,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Add the numeric RFC 5424 ``severity`` for the canonical ``level``.

    Runs after :func:`normalize_level`; unknown levels map to ``6``.
    """
    event_dict["severity"] = _SEVERITY_MAP.get(event_dict.get("level", "INFO"), 6)
    return event_dict


def ensure_event_is_str(
    _logger: Any,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    event = event_dict.get("event")
    if event is not None and not isinstance(event, str):
        event_dict["event"] = str(event)
    return event_dict


def add_exception_chain(
    _logger: Any,
    _method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Summarize the cause chain of an ``exc_info`` exception instance.

    Only exception instances and ``(type, value, tb)`` tuples are inspected;
    ``exc_info=True`` is left for structlog's own exception formatting.
    """
    exc_info = event_dict.get("exc_info")
    if isinstance(exc_info, tuple) and len(exc_info) == 3:
        exc_info = exc_info[1]
    if not isinstance(exc_info, BaseException):
        return event_dict

    event_dict["exception_chain"] = [
        f"{type(error).__name__}: {error}" for error in iter_cause_chain(exc_info)
    ]
    return event_dict
