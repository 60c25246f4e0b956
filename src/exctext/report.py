"""Plain-text rendering of the exception report."""

from __future__ import annotations

import os
import traceback
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, TypeAlias

from exctext.details import ExceptionChain, ExceptionDetail

INDENTATION = "   "
BANNER = "An unhandled exception occurred while processing the request."

MultiValueMapping: TypeAlias = Mapping[str, "tuple[str, ...]"]
CollectionSource: TypeAlias = (
    "Mapping[str, str | Sequence[str]] | Iterable[tuple[str, str | Sequence[str]]]"
)


def normalize_collection(source: CollectionSource | None) -> MultiValueMapping:
    """Return *source* as a read-only ``name -> values`` mapping.

    Accepts a mapping or an iterable of ``(name, value)`` pairs; values may be
    single strings or sequences of strings.  Repeated names are merged into
    the position of their first occurrence and values keep their order.
    """
    if source is None:
        return MappingProxyType({})
    items = source.items() if isinstance(source, Mapping) else source
    grouped: dict[str, list[str]] = {}
    for name, value in items:
        values = grouped.setdefault(name, [])
        if isinstance(value, str):
            values.append(value)
        else:
            values.extend(value)
    return MappingProxyType({name: tuple(values) for name, values in grouped.items()})


def parse_cookie_header(value: str) -> list[tuple[str, str]]:
    """Split a ``Cookie`` header into ``(name, value)`` pairs.

    Lenient like browsers: chunks without ``=`` are treated as a value with
    an empty name, and surrounding whitespace and quotes are dropped.
    """
    pairs: list[tuple[str, str]] = []
    for chunk in value.split(";"):
        if "=" in chunk:
            name, val = chunk.split("=", 1)
        else:
            name, val = "", chunk
        name, val = name.strip(), val.strip()
        if len(val) >= 2 and val[0] == val[-1] == '"':
            val = val[1:-1]
        if name or val:
            pairs.append((name, val))
    return pairs


@dataclass(frozen=True)
class RequestSnapshot:
    """Read-only view of the request data shown in the report."""

    query: MultiValueMapping = field(default_factory=lambda: MappingProxyType({}))
    cookies: MultiValueMapping = field(default_factory=lambda: MappingProxyType({}))
    headers: MultiValueMapping = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def build(
        cls,
        *,
        query: CollectionSource | None = None,
        cookies: CollectionSource | None = None,
        headers: CollectionSource | None = None,
    ) -> RequestSnapshot:
        return cls(
            query=normalize_collection(query),
            cookies=normalize_collection(cookies),
            headers=normalize_collection(headers),
        )


def format_raw_exception(exc: BaseException) -> str:
    """Full traceback text of *exc*, including chained causes."""
    return "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))


def render_report(
    chain: ExceptionChain,
    snapshot: RequestSnapshot,
    raw_text: str,
) -> str:
    """Render the exception chain and request data as a text document.

    Only the first (most recent) frame of each exception is summarized; the
    complete traceback is in the raw section at the end.
    """
    lines: list[str] = [BANNER, ""]

    for detail in chain:
        _append_exception_detail(lines, detail)
    lines.append("")

    _append_collection(lines, "Query", snapshot.query, "=")
    _append_collection(lines, "Cookies", snapshot.cookies, "=")
    _append_collection(lines, "Headers", snapshot.headers, ": ")

    lines.append(raw_text.rstrip("\n"))
    return "\n".join(lines) + "\n"


def _append_exception_detail(lines: list[str], detail: ExceptionDetail) -> None:
    lines.append(f"{type(detail.error).__name__}: {_message(detail.error)}")

    first = detail.stack_frames[0] if detail.stack_frames else None
    if first is None or first.is_unknown:
        lines.append(INDENTATION + "Unknown location")
    elif first.file:
        lines.append(f"{INDENTATION}{first.function} in {os.path.basename(first.file)}")
    else:
        lines.append(INDENTATION + first.function)


def _message(error: BaseException) -> str:
    try:
        return str(error)
    except Exception:
        return f"<unprintable {type(error).__name__} object>"


def _append_collection(
    lines: list[str],
    title: str,
    collection: Mapping[str, Sequence[Any]],
    delimiter: str,
) -> None:
    lines.append(title)
    for name, values in collection.items():
        for value in values:
            lines.append(f"{INDENTATION}{name}{delimiter}{value}")
    lines.append("")
