"""Options for the exception text middleware."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

from exctext.files import FileProvider, PhysicalFileProvider

DEFAULT_SOURCE_CODE_LINE_COUNT = 6


@dataclass
class ExceptionTextOptions:
    """Configuration for :class:`~exctext.middleware.ExceptionTextHandler`.

    Parameters
    ----------
    source_code_line_count:
        Lines of source captured around each resolved frame.
    file_provider:
        Source file access.  ``None`` means the local filesystem rooted at
        the current working directory.
    """

    source_code_line_count: int = DEFAULT_SOURCE_CODE_LINE_COUNT
    file_provider: FileProvider | None = None

    def __post_init__(self) -> None:
        if self.source_code_line_count < 0:
            msg = f"source_code_line_count must be >= 0, got {self.source_code_line_count}"
            raise ValueError(msg)

    def resolve_file_provider(self) -> FileProvider:
        return self.file_provider or PhysicalFileProvider()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> ExceptionTextOptions:
        """Build options from environment variables.

        - ``EXCTEXT_SOURCE_CODE_LINE_COUNT`` (default: ``6``)
        - ``EXCTEXT_CONTENT_ROOT`` (default: current working directory)
        """
        if environ is None:
            environ = os.environ

        raw_count = environ.get("EXCTEXT_SOURCE_CODE_LINE_COUNT")
        try:
            count = int(raw_count) if raw_count else DEFAULT_SOURCE_CODE_LINE_COUNT
        except ValueError:
            msg = f"EXCTEXT_SOURCE_CODE_LINE_COUNT must be an integer, got {raw_count!r}"
            raise ValueError(msg) from None

        root = environ.get("EXCTEXT_CONTENT_ROOT")
        provider = PhysicalFileProvider(root) if root else None
        return cls(source_code_line_count=count, file_provider=provider)
