"""ASGI middleware rendering unhandled exceptions as plain text.

Works with any ASGI framework (FastAPI, Starlette, Litestar, etc.)::

    from exctext.integrations.asgi import ExceptionTextMiddleware

    app = ExceptionTextMiddleware(app)

The original exception is re-raised after the report has been sent so that
the server still logs it.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeAlias
from urllib.parse import parse_qsl

import structlog

from exctext.frames import FrameResolver
from exctext.middleware import ExceptionTextHandler
from exctext.options import ExceptionTextOptions
from exctext.report import RequestSnapshot, parse_cookie_header

Scope: TypeAlias = dict[str, Any]
Receive: TypeAlias = Callable[[], Awaitable[dict[str, Any]]]
Send: TypeAlias = Callable[[dict[str, Any]], Awaitable[None]]
ASGIApp: TypeAlias = Callable[[Scope, Receive, Send], Awaitable[None]]


class _ScopeRequest:
    def __init__(self, scope: Scope) -> None:
        self.scope = scope

    def snapshot(self) -> RequestSnapshot:
        raw_query = self.scope.get("query_string", b"").decode("latin-1")
        headers = [
            (name.decode("latin-1"), value.decode("latin-1"))
            for name, value in self.scope.get("headers", [])
        ]
        cookies: list[tuple[str, str]] = []
        for name, value in headers:
            if name.lower() == "cookie":
                cookies.extend(parse_cookie_header(value))
        return RequestSnapshot.build(
            query=parse_qsl(raw_query, keep_blank_values=True),
            cookies=cookies,
            headers=headers,
        )


class _SendResponse:
    """Response state for one ASGI request.

    ``has_started`` flips as soon as the app sends ``http.response.start``.
    """

    def __init__(self, send: Send) -> None:
        self._send = send
        self.has_started = False
        self.status_code = 200

    async def send(self, message: dict[str, Any]) -> None:
        if message["type"] == "http.response.start":
            self.has_started = True
        await self._send(message)

    def clear(self) -> None:
        # Nothing is buffered; messages go straight to the server.
        pass

    async def write(self, text: str) -> None:
        body = text.encode("utf-8")
        self.has_started = True
        await self._send(
            {
                "type": "http.response.start",
                "status": self.status_code,
                "headers": [
                    (b"content-type", b"text/plain; charset=utf-8"),
                    (b"content-length", str(len(body)).encode()),
                ],
            }
        )
        await self._send({"type": "http.response.body", "body": body})


class ExceptionTextMiddleware:
    """ASGI middleware that answers failed HTTP requests with a text report.

    Parameters
    ----------
    app:
        The ASGI application to wrap.
    options:
        Source snippet and file access settings.
    resolver:
        Custom frame resolver.
    logger_name:
        Name for the structlog logger used by this middleware.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        options: ExceptionTextOptions | None = None,
        resolver: FrameResolver | None = None,
        logger_name: str = "exctext.asgi",
    ) -> None:
        self.app = app
        self.handler = ExceptionTextHandler(
            resolver=resolver,
            logger=structlog.get_logger(logger_name),
            options=options,
        )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        response = _SendResponse(send)

        async def call_next() -> None:
            await self.app(scope, receive, response.send)

        await self.handler.handle(_ScopeRequest(scope), response, call_next)
