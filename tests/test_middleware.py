"""Tests for exctext.middleware."""

from __future__ import annotations

from types import TracebackType
from typing import Any

import pytest
from structlog.testing import capture_logs

from exctext.frames import ResolvedFrame
from exctext.middleware import ExceptionTextHandler
from exctext.options import ExceptionTextOptions
from exctext.report import BANNER, RequestSnapshot


class OuterFailure(Exception):
    pass


class RootCause(Exception):
    pass


class FakeRequest:
    def __init__(self, snapshot: RequestSnapshot | None = None) -> None:
        self._snapshot = snapshot or RequestSnapshot()

    def snapshot(self) -> RequestSnapshot:
        return self._snapshot


class FakeResponse:
    def __init__(self, *, has_started: bool = False, fail_write: bool = False) -> None:
        self.has_started = has_started
        self.status_code = 200
        self.body = "partial"
        self.cleared = False
        self.writes: list[str] = []
        self._fail_write = fail_write

    def clear(self) -> None:
        self.cleared = True
        self.body = ""

    def _write(self, text: str) -> None:
        if self._fail_write:
            raise ConnectionResetError("client went away")
        self.writes.append(text)
        self.body += text


class AsyncFakeResponse(FakeResponse):
    async def write(self, text: str) -> None:
        self._write(text)


class SyncFakeResponse(FakeResponse):
    def write(self, text: str) -> None:
        self._write(text)


def _compile(source: str, filename: str) -> dict[str, Any]:
    namespace: dict[str, Any] = {}
    exec(compile(source, filename, "exec"), namespace)
    return namespace


SERVICE = _compile("def doWork():\n    raise Exception('boom')\n", "service.py")


class TestHandleAsync:
    @pytest.mark.asyncio
    async def test_success_passes_result_through(self) -> None:
        handler = ExceptionTextHandler()
        response = AsyncFakeResponse()

        async def call_next() -> str:
            return "ok"

        assert await handler.handle(FakeRequest(), response, call_next) == "ok"
        assert response.writes == []
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_failure_writes_report_and_reraises(self) -> None:
        handler = ExceptionTextHandler()
        response = AsyncFakeResponse()
        snapshot = RequestSnapshot.build(headers={"host": "localhost"})

        async def call_next() -> None:
            SERVICE["doWork"]()

        with capture_logs() as logs, pytest.raises(Exception, match="boom") as excinfo:
            await handler.handle(FakeRequest(snapshot), response, call_next)

        assert type(excinfo.value) is Exception
        assert response.cleared
        assert response.status_code == 500
        assert len(response.writes) == 1

        lines = response.body.splitlines()
        assert lines[0] == BANNER
        assert lines[1] == ""
        assert lines[2] == "Exception: boom"
        assert lines[3] == "   doWork in service.py"
        assert lines[4:12] == [
            "",
            "Query",
            "",
            "Cookies",
            "",
            "Headers",
            "   host: localhost",
            "",
        ]
        assert "boom" in "\n".join(lines[12:])

        assert [e["event_id"] for e in logs] == [1]
        assert logs[0]["log_level"] == "error"
        assert logs[0]["exc_info"] is excinfo.value

    @pytest.mark.asyncio
    async def test_response_started_is_suppressed(self) -> None:
        handler = ExceptionTextHandler()
        response = AsyncFakeResponse(has_started=True)
        error = RuntimeError("late")

        async def call_next() -> None:
            raise error

        with capture_logs() as logs, pytest.raises(RuntimeError) as excinfo:
            await handler.handle(FakeRequest(), response, call_next)

        assert excinfo.value is error
        assert response.writes == []
        assert response.body == "partial"
        assert response.status_code == 200
        assert not response.cleared
        assert [(e["event_id"], e["log_level"]) for e in logs] == [
            (1, "error"),
            (2, "warning"),
        ]

    @pytest.mark.asyncio
    async def test_chained_exception_lists_outer_first(self) -> None:
        handler = ExceptionTextHandler()
        response = AsyncFakeResponse()

        async def call_next() -> None:
            try:
                raise RootCause("root")
            except RootCause as e:
                raise OuterFailure("outer") from e

        with pytest.raises(OuterFailure):
            await handler.handle(FakeRequest(), response, call_next)

        body = response.body
        assert body.index("OuterFailure: outer") < body.index("RootCause: root")

    @pytest.mark.asyncio
    async def test_write_failure_is_logged_and_original_reraised(self) -> None:
        handler = ExceptionTextHandler()
        response = AsyncFakeResponse(fail_write=True)
        error = ValueError("primary")

        async def call_next() -> None:
            raise error

        with capture_logs() as logs, pytest.raises(ValueError) as excinfo:
            await handler.handle(FakeRequest(), response, call_next)

        assert excinfo.value is error
        assert [(e["event_id"], e["log_level"]) for e in logs] == [
            (1, "error"),
            (3, "error"),
        ]
        assert logs[1]["event_name"] == "DisplayErrorTextException"

    @pytest.mark.asyncio
    async def test_report_generation_failure_is_logged(self) -> None:
        class BrokenRequest:
            def snapshot(self) -> RequestSnapshot:
                raise LookupError("no headers")

        handler = ExceptionTextHandler()
        response = AsyncFakeResponse()

        async def call_next() -> None:
            raise ValueError("primary")

        with capture_logs() as logs, pytest.raises(ValueError, match="primary"):
            await handler.handle(BrokenRequest(), response, call_next)

        assert response.writes == []
        assert [e["event_id"] for e in logs] == [1, 3]

    @pytest.mark.asyncio
    async def test_base_exceptions_are_not_intercepted(self) -> None:
        handler = ExceptionTextHandler()
        response = AsyncFakeResponse()

        async def call_next() -> None:
            raise KeyboardInterrupt

        with capture_logs() as logs, pytest.raises(KeyboardInterrupt):
            await handler.handle(FakeRequest(), response, call_next)

        assert logs == []
        assert response.writes == []


class TestHandleSync:
    def test_failure_writes_report(self) -> None:
        handler = ExceptionTextHandler()
        response = SyncFakeResponse()

        def call_next() -> None:
            raise LookupError("missing")

        with pytest.raises(LookupError):
            handler.handle_sync(FakeRequest(), response, call_next)

        assert response.status_code == 500
        assert "LookupError: 'missing'" not in response.body
        assert "LookupError: missing" in response.body

    def test_success(self) -> None:
        handler = ExceptionTextHandler()
        assert handler.handle_sync(FakeRequest(), SyncFakeResponse(), lambda: 42) == 42

    def test_response_started(self) -> None:
        handler = ExceptionTextHandler()
        response = SyncFakeResponse(has_started=True)

        def call_next() -> None:
            raise ValueError("x")

        with pytest.raises(ValueError):
            handler.handle_sync(FakeRequest(), response, call_next)
        assert response.writes == []


class TestDependencies:
    def test_injected_resolver_and_logger(self) -> None:
        calls: list[TracebackType] = []

        class Resolver:
            def resolve(self, raw_frame: TracebackType) -> ResolvedFrame:
                calls.append(raw_frame)
                return ResolvedFrame("injected", None, None)

        class Sink:
            def __init__(self) -> None:
                self.events: list[tuple[str, dict]] = []

            def error(self, event: str, **kw: Any) -> None:
                self.events.append(("error", kw))

            def warning(self, event: str, **kw: Any) -> None:
                self.events.append(("warning", kw))

        sink = Sink()
        handler = ExceptionTextHandler(resolver=Resolver(), logger=sink)
        response = SyncFakeResponse()

        def call_next() -> None:
            raise ValueError("x")

        with pytest.raises(ValueError):
            handler.handle_sync(FakeRequest(), response, call_next)

        assert calls
        assert "   injected\n" in response.body
        assert [level for level, _ in sink.events] == ["error"]

    def test_report_reads_each_source_file_once(self) -> None:
        class CountingProvider:
            def __init__(self) -> None:
                self.reads: list[str] = []

            def read_lines(self, path: str) -> list[str] | None:
                self.reads.append(path)
                return None

        provider = CountingProvider()
        handler = ExceptionTextHandler(
            options=ExceptionTextOptions(source_code_line_count=2, file_provider=provider),
        )
        try:
            try:
                raise RootCause("root")
            except RootCause as e:
                raise OuterFailure("outer") from e
        except OuterFailure as e:
            exc = e

        handler.create_report(exc, RequestSnapshot())
        assert provider.reads == [__file__]

        handler.create_report(exc, RequestSnapshot())
        assert provider.reads == [__file__, __file__]

    def test_create_report_for_unraised_exception(self) -> None:
        handler = ExceptionTextHandler()
        text = handler.create_report(ValueError("never raised"), RequestSnapshot())
        assert "ValueError: never raised\n   Unknown location\n" in text
