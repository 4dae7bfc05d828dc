"""Shared fixtures: a recording transport, a manual scheduler and a bound hub."""

from __future__ import annotations

from typing import Callable

import pytest

from catchpoint.client import Client
from catchpoint.helpers import ReentrancySuppressor
from catchpoint.hub import Hub
from catchpoint.models.event import Event, Session
from catchpoint.models.options import ClientOptions
from catchpoint.transports.base import BaseTransport


class RecordingTransport(BaseTransport):
    def __init__(self) -> None:
        self.events: list[Event] = []
        self.sessions: list[Session] = []

    @property
    def name(self) -> str:
        return "recording"

    @property
    def enabled(self) -> bool:
        return True

    @property
    def supports_sessions(self) -> bool:
        return True

    async def send_event(self, event: Event) -> bool:
        self.events.append(event)
        return True

    async def send_session(self, session: Session) -> bool:
        self.sessions.append(session)
        return True


class ManualScheduler:
    """Collects deferred callbacks until the test runs them."""

    def __init__(self) -> None:
        self.pending: list[Callable[[], None]] = []

    def __call__(self, callback: Callable[[], None]) -> None:
        self.pending.append(callback)

    def run_pending(self) -> None:
        pending, self.pending = self.pending, []
        for callback in pending:
            callback()


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def client(transport: RecordingTransport) -> Client:
    return Client(ClientOptions(), transport=transport)


@pytest.fixture
def hub(client: Client) -> Hub:
    return Hub(client)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def suppressor(scheduler: ManualScheduler) -> ReentrancySuppressor:
    return ReentrancySuppressor(scheduler=scheduler)
