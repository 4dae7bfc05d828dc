"""Tests for the ambient failure hooks and their interplay with the wrapper."""

from __future__ import annotations

import asyncio
import sys
import threading

import pytest

from catchpoint.helpers import ReentrancySuppressor, set_suppressor, wrap
from catchpoint.hub import get_current_hub
from catchpoint.integrations import GlobalHandlers


@pytest.fixture
def global_hub(client):
    hub = get_current_hub()
    previous = hub.client
    hub.bind_client(client)
    yield hub
    hub.bind_client(previous)


@pytest.fixture
def global_suppressor(suppressor):
    previous = set_suppressor(suppressor)
    yield suppressor
    set_suppressor(previous)


@pytest.fixture
def handlers():
    previous_sys, previous_threading = sys.excepthook, threading.excepthook
    handlers = GlobalHandlers()
    handlers.chained = []
    yield handlers

    handlers.uninstall()
    sys.excepthook, threading.excepthook = previous_sys, previous_threading


def _install(handlers: GlobalHandlers, client) -> None:
    sys.excepthook = lambda *args: handlers.chained.append(args)
    threading.excepthook = lambda args: handlers.chained.append(args)
    handlers.setup_once(client)


def _caught() -> BaseException:
    try:
        raise LookupError("ambient failure")
    except LookupError as exc:
        return exc


class TestGlobalHandlers:
    def test_install_and_uninstall(self, handlers, client):
        _install(handlers, client)
        assert sys.excepthook == handlers.excepthook
        assert threading.excepthook == handlers.threading_excepthook
        handlers.uninstall()
        assert sys.excepthook != handlers.excepthook
        assert threading.excepthook != handlers.threading_excepthook

    def test_setup_is_idempotent(self, handlers, client):
        _install(handlers, client)
        handlers.setup_once(client)
        handlers.uninstall()
        assert sys.excepthook != handlers.excepthook

    def test_excepthook_reports_unhandled(self, global_hub, global_suppressor, handlers, client, transport):
        _install(handlers, client)
        exc = _caught()
        sys.excepthook(type(exc), exc, exc.__traceback__)
        assert client.backend.wait(timeout=2.0)

        assert len(transport.events) == 1
        first = transport.events[0].exception.values[0]
        assert first.type == "LookupError"
        assert first.value == "ambient failure"
        assert first.mechanism.type == "onerror"
        assert first.mechanism.handled is False
        assert len(handlers.chained) == 1

    def test_excepthook_skips_while_suppressed(
        self, global_hub, global_suppressor, handlers, client, transport
    ):
        _install(handlers, client)
        global_suppressor.ignore_next()
        exc = _caught()
        sys.excepthook(type(exc), exc, exc.__traceback__)
        assert client.backend.wait(timeout=2.0)

        assert transport.events == []
        assert len(handlers.chained) == 1

    def test_thread_failures_are_reported(self, global_hub, global_suppressor, handlers, client, transport):
        _install(handlers, client)

        def target():
            try:
                raise ValueError("thread failure")
            except ValueError as exc:
                handlers.threading_excepthook(
                    threading.ExceptHookArgs(
                        (type(exc), exc, exc.__traceback__, threading.current_thread())
                    )
                )

        thread = threading.Thread(target=target)
        thread.start()
        thread.join()
        assert client.backend.wait(timeout=2.0)

        assert len(transport.events) == 1
        assert transport.events[0].exception.values[0].value == "thread failure"
        assert len(handlers.chained) == 1

    @pytest.mark.asyncio
    async def test_loop_handler(self, global_hub, global_suppressor, client, transport):
        loop = asyncio.get_running_loop()
        previous = loop.get_exception_handler()
        seen = []
        loop.set_exception_handler(lambda loop, context: seen.append(context))
        try:
            GlobalHandlers(excepthook=False, threading_hook=False).install_loop_handler(loop)
            loop.call_exception_handler({"message": "Task exception was never retrieved"})
            loop.call_exception_handler(
                {"message": "Task exception was never retrieved", "exception": RuntimeError("bg")}
            )
            await client.flush(timeout=1.0)
        finally:
            loop.set_exception_handler(previous)

        assert len(seen) == 2
        assert len(transport.events) == 1
        first = transport.events[0].exception.values[0]
        assert first.type == "RuntimeError"
        assert first.mechanism.type == "onunhandledrejection"


class TestWrapperAndAmbientHook:
    def test_one_failure_yields_one_event(
        self, global_hub, global_suppressor, scheduler, handlers, client, transport
    ):
        _install(handlers, client)
        caught = []

        def explode():
            try:
                raise ValueError("reported once")
            except ValueError as exc:
                caught.append(exc)
                raise

        assert wrap(explode)() is None
        exc = caught[0]
        sys.excepthook(type(exc), exc, exc.__traceback__)
        assert client.backend.wait(timeout=2.0)
        assert len(transport.events) == 1

        scheduler.run_pending()
        sys.excepthook(type(exc), exc, exc.__traceback__)
        assert client.backend.wait(timeout=2.0)
        assert len(transport.events) == 2

    def test_default_suppressor_without_loop(self, global_hub, handlers, client, transport):
        previous = set_suppressor(ReentrancySuppressor())
        try:
            _install(handlers, client)
            caught = []

            def explode():
                try:
                    raise ValueError("sync failure")
                except ValueError as exc:
                    caught.append(exc)
                    raise

            assert wrap(explode)() is None
            exc = caught[0]
            sys.excepthook(type(exc), exc, exc.__traceback__)
            sys.excepthook(type(exc), exc, exc.__traceback__)
            assert client.backend.wait(timeout=2.0)
        finally:
            set_suppressor(previous)

        mechanisms = [event.exception.values[0].mechanism.type for event in transport.events]
        assert mechanisms == ["generic", "onerror"]
        assert len(handlers.chained) == 2
