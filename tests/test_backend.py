"""Tests for the delivery backend and transports."""

from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import json
import logging
import threading
from datetime import datetime, timezone

import httpx
import pytest

from catchpoint.backend import Backend
from catchpoint.models.event import Event, Session
from catchpoint.models.options import ClientOptions
from catchpoint.transports.base import BaseTransport
from catchpoint.transports.http import HttpTransport
from catchpoint.transports.noop import NoopTransport


class BrokenTransport(BaseTransport):
    @property
    def name(self) -> str:
        return "broken"

    @property
    def enabled(self) -> bool:
        return True

    async def send_event(self, event: Event) -> bool:
        raise ConnectionError("ingest unreachable")


class GatedTransport(BaseTransport):
    """Holds every delivery until the gate opens."""

    def __init__(self) -> None:
        self.gate = threading.Event()
        self.events: list[Event] = []

    @property
    def name(self) -> str:
        return "gated"

    @property
    def enabled(self) -> bool:
        return True

    async def send_event(self, event: Event) -> bool:
        self.gate.wait(2.0)
        self.events.append(event)
        return True


def _session() -> Session:
    return Session(sid="s-1", started=datetime(2024, 1, 1, tzinfo=timezone.utc))


class TestHttpTransport:
    @pytest.mark.asyncio
    async def test_posts_event_json(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"ok": True})

        transport = HttpTransport("https://ingest.example/api", transport=httpx.MockTransport(handler))
        event = Event(event_id="e1", message="hello", extra={"callback": print})
        assert await transport.send_event(event) is True

        body = json.loads(requests[0].content)
        assert body["type"] == "event"
        assert body["payload"]["event_id"] == "e1"
        assert body["payload"]["message"] == "hello"
        assert body["payload"]["extra"]["callback"].startswith("<built-in function print")
        assert "X-Catchpoint-Signature" not in requests[0].headers

    @pytest.mark.asyncio
    async def test_signs_requests_with_secret(self):
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(202)

        transport = HttpTransport(
            "https://ingest.example/api",
            secret="s3cret",
            transport=httpx.MockTransport(handler),
        )
        await transport.send_session(_session())

        request = requests[0]
        timestamp = request.headers["X-Catchpoint-Timestamp"]
        expected = base64.b64encode(
            hmac.new(
                b"s3cret",
                f"{timestamp}\n".encode("utf-8") + request.content,
                digestmod=hashlib.sha256,
            ).digest()
        ).decode("utf-8")
        assert request.headers["X-Catchpoint-Signature"] == expected
        assert json.loads(request.content)["type"] == "session"

    @pytest.mark.asyncio
    async def test_server_error_is_logged_not_raised(self, caplog):
        transport = HttpTransport(
            "https://ingest.example/api",
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        assert await transport.send_event_safe(Event(message="m")) is False
        assert "Error while sending event via http" in caplog.text

    @pytest.mark.asyncio
    async def test_disabled_without_url(self):
        transport = HttpTransport("")
        assert transport.enabled is False
        assert await transport.send_event_safe(Event(message="m")) is False


class TestBackend:
    def test_transport_selection(self, caplog):
        with caplog.at_level(logging.WARNING):
            backend = Backend(ClientOptions())
        assert isinstance(backend.transport, NoopTransport)
        assert "No ingest URL provided" in caplog.text

        backend = Backend(ClientOptions(ingest_url="https://ingest.example/api"))
        assert isinstance(backend.transport, HttpTransport)

    @pytest.mark.asyncio
    async def test_send_event_is_fire_and_forget(self, transport):
        backend = Backend(ClientOptions(), transport=transport)
        assert backend.send_event(Event(message="m")) is None
        assert transport.events == []
        assert await backend.flush(timeout=1.0) is True
        assert [event.message for event in transport.events] == ["m"]

    def test_send_event_without_loop_does_not_block(self):
        transport = GatedTransport()
        backend = Backend(ClientOptions(), transport=transport)
        backend.send_event(Event(message="sync"))

        assert transport.events == []
        assert backend.worker.is_alive
        transport.gate.set()
        assert backend.wait(timeout=2.0) is True
        assert [event.message for event in transport.events] == ["sync"]

    def test_wait_times_out_on_stuck_delivery(self):
        transport = GatedTransport()
        backend = Backend(ClientOptions(), transport=transport)
        backend.send_event(Event(message="stuck"))
        assert backend.wait(timeout=0.05) is False
        transport.gate.set()
        assert backend.wait(timeout=2.0) is True

    @pytest.mark.asyncio
    async def test_close_drains_and_stops_worker(self, transport):
        backend = Backend(ClientOptions(), transport=transport)
        await asyncio.to_thread(backend.send_event, Event(message="from thread"))
        assert await backend.close(timeout=2.0) is True
        assert [event.message for event in transport.events] == ["from thread"]
        assert not backend.worker.is_alive

    @pytest.mark.asyncio
    async def test_delivery_failure_is_logged(self, caplog):
        backend = Backend(ClientOptions(), transport=BrokenTransport())
        backend.send_event(Event(message="m"))
        await backend.flush(timeout=1.0)
        assert "ingest unreachable" in caplog.text

    @pytest.mark.asyncio
    async def test_sessions(self, transport):
        backend = Backend(ClientOptions(), transport=transport)
        backend.send_session(_session())
        await backend.close(timeout=1.0)
        assert [session.sid for session in transport.sessions] == ["s-1"]

    def test_session_dropped_when_unsupported(self, caplog):
        backend = Backend(ClientOptions(), transport=NoopTransport())
        with caplog.at_level(logging.WARNING):
            backend.send_session(_session())
        assert "Dropping session" in caplog.text
