"""Transport-neutral exception capture.

:class:`ExceptionTextHandler` runs a request through the downstream handler
and, when that fails, writes a plain-text report to the response before
re-raising the original exception.  The ASGI and WSGI adapters in
:mod:`exctext.integrations` plug their request and response objects into it.

The report contains request headers and cookies; only enable it in
development.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypeVar

import structlog

from exctext.details import ExceptionDetailsProvider
from exctext.files import CachingFileProvider
from exctext.frames import FrameResolver, TracebackFrameResolver
from exctext.options import ExceptionTextOptions
from exctext.report import RequestSnapshot, format_raw_exception, render_report

T = TypeVar("T")

INTERNAL_SERVER_ERROR = 500


class RequestContext(Protocol):
    def snapshot(self) -> RequestSnapshot: ...


class ResponseWriter(Protocol):
    """Response operations used when reporting a failure.

    ``write`` is a coroutine for :meth:`ExceptionTextHandler.handle` and a
    plain method for :meth:`ExceptionTextHandler.handle_sync`.
    """

    status_code: int

    @property
    def has_started(self) -> bool: ...

    def clear(self) -> None: ...

    def write(self, text: str) -> Any: ...


class ExceptionTextHandler:
    """Capture unhandled exceptions and render them as text.

    Parameters
    ----------
    resolver:
        Frame resolver.  Built from *options* when omitted.
    logger:
        structlog logger receiving the failure events.
    options:
        Source snippet and file access settings.
    """

    def __init__(
        self,
        *,
        resolver: FrameResolver | None = None,
        logger: Any = None,
        options: ExceptionTextOptions | None = None,
    ) -> None:
        self.options = options or ExceptionTextOptions()
        self.log = logger if logger is not None else structlog.get_logger("exctext")
        self._resolver = resolver
        self._file_provider = self.options.resolve_file_provider()

    def create_report(self, exc: BaseException, snapshot: RequestSnapshot) -> str:
        """Extract and render the report for *exc*.

        Without an injected resolver, each report gets its own resolver whose
        file cache reads every source file in the chain at most once.
        """
        resolver = self._resolver
        if resolver is None:
            resolver = TracebackFrameResolver(
                CachingFileProvider(self._file_provider),
                source_code_line_count=self.options.source_code_line_count,
            )
        chain = ExceptionDetailsProvider(resolver).get_details(exc)
        return render_report(chain, snapshot, format_raw_exception(exc))

    async def handle(
        self,
        request: RequestContext,
        response: ResponseWriter,
        call_next: Callable[[], Awaitable[T]],
    ) -> T:
        """Await *call_next* and report its failure on *response*.

        The report, including source file reads, is built synchronously on the
        event loop so that nothing else runs between the ``has_started`` check
        and the write.
        """
        try:
            return await call_next()
        except Exception as exc:
            report = self._prepare_report(request, response, exc)
            if report is None:
                raise
            try:
                await response.write(report)
            except Exception:
                self._log_report_failure()
            raise

    def handle_sync(
        self,
        request: RequestContext,
        response: ResponseWriter,
        call_next: Callable[[], T],
    ) -> T:
        try:
            return call_next()
        except Exception as exc:
            report = self._prepare_report(request, response, exc)
            if report is None:
                raise
            try:
                response.write(report)
            except Exception:
                self._log_report_failure()
            raise

    def _prepare_report(
        self,
        request: RequestContext,
        response: ResponseWriter,
        exc: Exception,
    ) -> str | None:
        """Log *exc* and prime *response* for the report.

        Returns ``None`` when nothing should be written.  No awaits happen
        between the ``has_started`` check and the caller's write.
        """
        self.log.error(
            "An unhandled exception has occurred while executing the request.",
            event_id=1,
            event_name="UnhandledException",
            exc_info=exc,
        )

        if response.has_started:
            self.log.warning(
                "The response has already started, the error text middleware "
                "will not be executed.",
                event_id=2,
                event_name="ResponseStarted",
            )
            return None

        try:
            response.clear()
            response.status_code = INTERNAL_SERVER_ERROR
            return self.create_report(exc, request.snapshot())
        except Exception:
            self._log_report_failure()
            return None

    def _log_report_failure(self) -> None:
        self.log.error(
            "An exception was thrown attempting to display the error text.",
            event_id=3,
            event_name="DisplayErrorTextException",
            exc_info=True,
        )
