"""Exception detail extraction.

Walks an exception's cause chain and resolves the stack frames of every
exception in it.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import TypeAlias

import structlog

from exctext.frames import FrameResolver, ResolvedFrame, iter_raw_frames

_log = structlog.get_logger("exctext.details")


@dataclass(frozen=True)
class ExceptionDetail:
    """One exception of a cause chain with its resolved frames.

    ``stack_frames`` is ordered most recent call first.
    """

    error: BaseException
    stack_frames: tuple[ResolvedFrame, ...]


ExceptionChain: TypeAlias = "tuple[ExceptionDetail, ...]"

DEFAULT_MAX_DEPTH = 32


def inner_cause(exc: BaseException) -> BaseException | None:
    """Return the exception *exc* wraps, following Python's chaining rules."""
    if exc.__cause__ is not None:
        return exc.__cause__
    if exc.__suppress_context__:
        return None
    return exc.__context__


def iter_cause_chain(
    exc: BaseException,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> Iterator[BaseException]:
    """Yield *exc* and its inner causes, outermost first.

    Stops at the first exception seen twice or after *max_depth* entries.
    """
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen and len(seen) < max_depth:
        seen.add(id(current))
        yield current
        current = inner_cause(current)


class ExceptionDetailsProvider:
    """Build :class:`ExceptionDetail` records for an exception chain.

    Parameters
    ----------
    resolver:
        Frame resolver used for every traceback entry.
    max_depth:
        Maximum number of exceptions taken from one chain.
    """

    def __init__(self, resolver: FrameResolver, *, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        self._resolver = resolver
        self._max_depth = max_depth

    def get_details(self, exc: BaseException) -> ExceptionChain:
        return tuple(
            ExceptionDetail(error, self._resolve_frames(error))
            for error in iter_cause_chain(exc, self._max_depth)
        )

    def _resolve_frames(self, exc: BaseException) -> tuple[ResolvedFrame, ...]:
        frames = []
        for raw_frame in iter_raw_frames(exc):
            try:
                frame = self._resolver.resolve(raw_frame)
            except Exception:
                _log.debug("Frame resolution failed", exc_info=True)
                frame = None
            frames.append(frame if frame is not None else ResolvedFrame.unknown())
        return tuple(frames)
