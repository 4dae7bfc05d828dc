"""Client: builds, filters and dispatches events."""

import logging
import uuid
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

from catchpoint.backend import Backend
from catchpoint.eventbuilder import build_exception_event, build_message_event
from catchpoint.filters.inbound import InboundFilter
from catchpoint.models.event import Event, EventHint, Session, Severity
from catchpoint.models.options import ClientOptions
from catchpoint.processors import EventProcessorChain
from catchpoint.transports.base import BaseTransport
from catchpoint.utils import safe_str

if TYPE_CHECKING:
    from catchpoint.hub import Scope

logger = logging.getLogger(__name__)


class Integration(Protocol):
    name: str

    def setup_once(self, client: "Client") -> None:
        ...


IntegrationT = TypeVar("IntegrationT")


def default_integrations() -> list[Integration]:
    return [InboundFilter()]


class Client:
    """Turns captures into events and sends the ones that survive filtering."""

    def __init__(
        self,
        options: ClientOptions | None = None,
        transport: BaseTransport | None = None,
        integrations: list[Integration] | None = None,
    ):
        self.options = options or ClientOptions()
        self.processors = EventProcessorChain()
        self._backend = Backend(self.options, transport)
        self._integrations: dict[type, Integration] = {}

        if integrations is None:
            integrations = default_integrations() if self.options.default_integrations else []
        for integration in integrations:
            self._integrations[type(integration)] = integration
            integration.setup_once(self)

        logger.info(
            f"Client initialized with {len(self._integrations)} integration(s): "
            f"{[integration.name for integration in self._integrations.values()]}"
        )

    @property
    def backend(self) -> Backend:
        return self._backend

    def get_integration(self, cls: type[IntegrationT]) -> IntegrationT | None:
        return self._integrations.get(cls)  # type: ignore[return-value]

    def _prepare_event(self, event: Event, scope: "Scope | None") -> Event | None:
        update: dict[str, Any] = {}
        if not event.event_id:
            update["event_id"] = uuid.uuid4().hex
        if event.timestamp is None:
            update["timestamp"] = datetime.now(timezone.utc)
        if event.environment is None and self.options.environment:
            update["environment"] = self.options.environment
        if event.release is None and self.options.release:
            update["release"] = self.options.release
        prepared = event.model_copy(update=update)

        if scope is not None:
            return scope.apply_to_event(prepared)
        return prepared

    def capture_event(
        self,
        event: Event,
        hint: EventHint | None = None,
        scope: "Scope | None" = None,
    ) -> str | None:
        """Run the event through scope and processors, then dispatch it.

        Returns the event id, or None if the event was dropped.
        """
        try:
            prepared = self._prepare_event(event, scope)
            if prepared is None:
                return None
            processed = self.processors.run(prepared)
            if processed is None:
                return None
            self._backend.send_event(processed)
            return processed.event_id
        except Exception as e:
            logger.exception(f"Failed to capture event: {safe_str(e)}")
            return None

    def capture_exception(
        self,
        raw: Any,
        hint: EventHint | None = None,
        scope: "Scope | None" = None,
    ) -> str | None:
        try:
            event = build_exception_event(self.options, raw, hint)
        except Exception as e:
            logger.exception(f"Failed to build exception event: {safe_str(e)}")
            return None
        return self.capture_event(event, hint, scope)

    def capture_message(
        self,
        text: str,
        level: Severity = Severity.INFO,
        hint: EventHint | None = None,
        scope: "Scope | None" = None,
    ) -> str | None:
        try:
            event = build_message_event(self.options, text, level, hint)
        except Exception as e:
            logger.exception(f"Failed to build message event: {safe_str(e)}")
            return None
        return self.capture_event(event, hint, scope)

    def capture_session(self, session: Session) -> None:
        self._backend.send_session(session)

    async def flush(self, timeout: float | None = None) -> bool:
        return await self._backend.flush(timeout)

    async def close(self, timeout: float | None = None) -> bool:
        return await self._backend.close(timeout)
