"""Hub and scope: the capture context the rest of an application talks to."""

import logging
from contextlib import contextmanager
from typing import Any, Iterator

from catchpoint.client import Client, Integration
from catchpoint.models.event import Event, EventHint, Severity
from catchpoint.models.options import ClientOptions
from catchpoint.processors import EventProcessor
from catchpoint.stacksource import SyntheticException
from catchpoint.transports.base import BaseTransport

logger = logging.getLogger(__name__)


class Scope:
    """Extra data and event processors applied to events captured within it."""

    def __init__(self) -> None:
        self._extra: dict[str, Any] = {}
        self._event_processors: list[EventProcessor] = []

    def set_extra(self, key: str, value: Any) -> None:
        self._extra[key] = value

    def add_event_processor(self, processor: EventProcessor) -> None:
        self._event_processors.append(processor)

    def copy(self) -> "Scope":
        scope = Scope()
        scope._extra = dict(self._extra)
        scope._event_processors = list(self._event_processors)
        return scope

    def apply_to_event(self, event: Event) -> Event | None:
        if self._extra:
            event = event.model_copy(update={"extra": {**self._extra, **event.extra}})
        for processor in self._event_processors:
            result = processor(event)
            if result is None:
                return None
            event = result
        return event


class Hub:
    """Binds a client to a stack of scopes."""

    def __init__(self, client: Client | None = None):
        self._stack: list[tuple[Client | None, Scope]] = [(client, Scope())]
        self._last_event_id: str | None = None

    @property
    def client(self) -> Client | None:
        return self._stack[-1][0]

    @property
    def scope(self) -> Scope:
        return self._stack[-1][1]

    def bind_client(self, client: Client | None) -> None:
        self._stack[-1] = (client, self.scope)

    @contextmanager
    def push_scope(self) -> Iterator[Scope]:
        scope = self.scope.copy()
        self._stack.append((self.client, scope))
        try:
            yield scope
        finally:
            self._stack.pop()

    def last_event_id(self) -> str | None:
        return self._last_event_id

    def _remember(self, event_id: str | None) -> str | None:
        if event_id is not None:
            self._last_event_id = event_id
        return event_id

    def capture_exception(self, raw: Any, hint: EventHint | None = None) -> str | None:
        client = self.client
        if client is None:
            return None
        hint = hint or EventHint()
        update: dict[str, Any] = {"original_exception": raw}
        if hint.synthetic_exception is None and client.options.attach_stacktrace:
            update["synthetic_exception"] = SyntheticException("synthetic exception")
        hint = hint.model_copy(update=update)
        return self._remember(client.capture_exception(raw, hint, self.scope))

    def capture_message(
        self,
        text: str,
        level: Severity = Severity.INFO,
        hint: EventHint | None = None,
    ) -> str | None:
        client = self.client
        if client is None:
            return None
        hint = hint or EventHint()
        if hint.synthetic_exception is None and client.options.attach_stacktrace:
            hint = hint.model_copy(update={"synthetic_exception": SyntheticException(text)})
        return self._remember(client.capture_message(text, level, hint, self.scope))

    def capture_event(self, event: Event, hint: EventHint | None = None) -> str | None:
        client = self.client
        if client is None:
            return None
        return self._remember(client.capture_event(event, hint, self.scope))


_hub = Hub()


def get_current_hub() -> Hub:
    return _hub


def init(
    options: ClientOptions | None = None,
    transport: BaseTransport | None = None,
    integrations: list[Integration] | None = None,
) -> Client:
    """Create a client and bind it to the current hub."""
    client = Client(options, transport=transport, integrations=integrations)
    get_current_hub().bind_client(client)
    return client


def capture_exception(raw: Any, hint: EventHint | None = None) -> str | None:
    return get_current_hub().capture_exception(raw, hint)


def capture_message(
    text: str,
    level: Severity = Severity.INFO,
    hint: EventHint | None = None,
) -> str | None:
    return get_current_hub().capture_message(text, level, hint)
