"""WSGI middleware rendering unhandled exceptions as plain text.

Usage with Flask::

    from exctext.integrations.wsgi import ExceptionTextWSGIMiddleware

    app = Flask(__name__)
    app.wsgi_app = ExceptionTextWSGIMiddleware(app.wsgi_app)

The report is sent through the ``write`` callable returned by
``start_response`` and the original exception is re-raised afterwards, so
the server logs it and closes the connection.
"""

from __future__ import annotations

import sys
from collections.abc import Callable, Iterable, Iterator
from typing import Any, TypeAlias
from urllib.parse import parse_qsl

import structlog

from exctext.frames import FrameResolver
from exctext.middleware import ExceptionTextHandler
from exctext.options import ExceptionTextOptions
from exctext.report import RequestSnapshot, parse_cookie_header

Environ: TypeAlias = dict[str, Any]
StartResponse: TypeAlias = Callable[..., Callable[[bytes], Any]]
WSGIApp: TypeAlias = Callable[[Environ, StartResponse], Iterable[bytes]]

_STATUS_LINES = {500: "500 Internal Server Error"}


class _EnvironRequest:
    def __init__(self, environ: Environ) -> None:
        self.environ = environ

    def snapshot(self) -> RequestSnapshot:
        headers: list[tuple[str, str]] = []
        for key, value in self.environ.items():
            if key.startswith("HTTP_"):
                name = key[5:]
            elif key in ("CONTENT_TYPE", "CONTENT_LENGTH") and value:
                name = key
            else:
                continue
            headers.append((name.replace("_", "-").title(), str(value)))
        return RequestSnapshot.build(
            query=parse_qsl(self.environ.get("QUERY_STRING", ""), keep_blank_values=True),
            cookies=parse_cookie_header(self.environ.get("HTTP_COOKIE", "")),
            headers=headers,
        )


class _StartResponse:
    """Response state for one WSGI request.

    Headers count as sent once the app writes or yields a non-empty chunk.
    """

    def __init__(self, start_response: StartResponse) -> None:
        self._start_response = start_response
        self._write: Callable[[bytes], Any] | None = None
        self.has_started = False
        self.status_code = 200

    def start_response(
        self,
        status: str,
        headers: list[tuple[str, str]],
        exc_info: Any = None,
    ) -> Callable[[bytes], Any]:
        self._write = self._start_response(status, headers, exc_info)
        return self._tracking_write

    def _tracking_write(self, data: bytes) -> Any:
        if self._write is None:
            raise RuntimeError("write() called before start_response()")
        if data:
            self.has_started = True
        return self._write(data)

    def clear(self) -> None:
        # Headers already given to start_response are replaced via exc_info.
        pass

    def write(self, text: str) -> None:
        body = text.encode("utf-8")
        write = self._start_response(
            _STATUS_LINES.get(self.status_code, str(self.status_code)),
            [
                ("Content-Type", "text/plain; charset=utf-8"),
                ("Content-Length", str(len(body))),
            ],
            sys.exc_info(),
        )
        self.has_started = True
        write(body)


class ExceptionTextWSGIMiddleware:
    """WSGI middleware that answers failed requests with a text report.

    Parameters
    ----------
    app:
        The WSGI application to wrap.
    options:
        Source snippet and file access settings.
    resolver:
        Custom frame resolver.
    logger_name:
        Name for the structlog logger used by this middleware.
    """

    def __init__(
        self,
        app: WSGIApp,
        *,
        options: ExceptionTextOptions | None = None,
        resolver: FrameResolver | None = None,
        logger_name: str = "exctext.wsgi",
    ) -> None:
        self.app = app
        self.handler = ExceptionTextHandler(
            resolver=resolver,
            logger=structlog.get_logger(logger_name),
            options=options,
        )

    def __call__(self, environ: Environ, start_response: StartResponse) -> Iterator[bytes]:
        response = _StartResponse(start_response)
        request = _EnvironRequest(environ)
        result = self.handler.handle_sync(
            request,
            response,
            lambda: self.app(environ, response.start_response),
        )
        return self._iterate(request, response, result)

    def _iterate(
        self,
        request: _EnvironRequest,
        response: _StartResponse,
        result: Iterable[bytes],
    ) -> Iterator[bytes]:
        try:
            chunks = self.handler.handle_sync(request, response, lambda: iter(result))
            while True:
                chunk = self.handler.handle_sync(request, response, lambda: next(chunks, None))
                if chunk is None:
                    return
                if chunk:
                    response.has_started = True
                yield chunk
        finally:
            close = getattr(result, "close", None)
            if close is not None:
                close()
