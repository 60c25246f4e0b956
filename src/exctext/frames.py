"""Stack frame resolution.

Turns raw traceback entries into :class:`ResolvedFrame` records holding the
function name, source file, line number and a short source snippet.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from types import TracebackType
from typing import Protocol

from exctext.files import FileProvider, PhysicalFileProvider


@dataclass(frozen=True)
class ResolvedFrame:
    """A symbolic stack frame.

    ``function`` is empty for a frame whose location could not be resolved.
    """

    function: str
    file: str | None = None
    line: int | None = None
    pre_context: tuple[str, ...] = ()
    context_line: str | None = None
    post_context: tuple[str, ...] = ()

    @classmethod
    def unknown(cls) -> ResolvedFrame:
        return cls(function="")

    @property
    def is_unknown(self) -> bool:
        return not self.function


class FrameResolver(Protocol):
    """Map a raw frame to a :class:`ResolvedFrame`.

    Implementations may raise or return ``None``; callers must cope.
    """

    def resolve(self, raw_frame: TracebackType) -> ResolvedFrame | None: ...


def iter_raw_frames(exc: BaseException) -> Iterator[TracebackType]:
    """Yield the traceback entries of *exc*, most recent call first."""
    entries: list[TracebackType] = []
    tb = exc.__traceback__
    while tb is not None:
        entries.append(tb)
        tb = tb.tb_next
    return reversed(entries)


class TracebackFrameResolver:
    """Resolve traceback entries using their code objects.

    Parameters
    ----------
    file_provider:
        Source of file contents for snippets.  Defaults to a
        :class:`PhysicalFileProvider` rooted at the working directory.
    source_code_line_count:
        Number of lines to capture before and after the failing line.
    """

    def __init__(
        self,
        file_provider: FileProvider | None = None,
        *,
        source_code_line_count: int = 6,
    ) -> None:
        self.file_provider = file_provider or PhysicalFileProvider()
        self.source_code_line_count = source_code_line_count

    def resolve(self, raw_frame: TracebackType) -> ResolvedFrame | None:
        code = raw_frame.tb_frame.f_code
        function = getattr(code, "co_qualname", code.co_name)
        filename = code.co_filename or None
        lineno = raw_frame.tb_lineno

        if filename is None or lineno is None:
            return ResolvedFrame(function=function, file=filename, line=lineno)

        lines = self.file_provider.read_lines(filename)
        if not lines or not 1 <= lineno <= len(lines):
            return ResolvedFrame(function=function, file=filename, line=lineno)

        index = lineno - 1
        count = self.source_code_line_count
        return ResolvedFrame(
            function=function,
            file=filename,
            line=lineno,
            pre_context=tuple(lines[max(index - count, 0) : index]),
            context_line=lines[index],
            post_context=tuple(lines[index + 1 : index + 1 + count]),
        )
