"""Source file access for frame snippets.

The frame resolver reads source files through a :class:`FileProvider` so
that hosts can point it at something other than the local disk.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol, runtime_checkable


@runtime_checkable
class FileProvider(Protocol):
    """Read access to source files."""

    def read_lines(self, path: str) -> list[str] | None:
        """Return the lines of *path* without line endings, or ``None``."""
        ...


class PhysicalFileProvider:
    """Read source files from the local filesystem.

    Parameters
    ----------
    root:
        Directory that relative paths are resolved against.  Defaults to the
        current working directory at construction time.
    """

    def __init__(self, root: str | os.PathLike[str] | None = None) -> None:
        self.root = Path(root) if root is not None else Path.cwd()

    def read_lines(self, path: str) -> list[str] | None:
        candidate = Path(path)
        if not candidate.is_absolute():
            candidate = self.root / candidate
        # Frames compiled from strings report names such as "<string>".
        if not candidate.is_file():
            return None
        try:
            text = candidate.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return None
        return text.splitlines()


class CachingFileProvider:
    """Remember the lines of every file read through *provider*.

    Lives for one report; files are never re-read while it exists.
    """

    def __init__(self, provider: FileProvider) -> None:
        self._provider = provider
        self._lines: dict[str, list[str] | None] = {}

    def read_lines(self, path: str) -> list[str] | None:
        if path not in self._lines:
            self._lines[path] = self._provider.read_lines(path)
        return self._lines[path]
