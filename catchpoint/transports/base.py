"""Base class for event transports."""

import logging
from abc import ABC, abstractmethod

from catchpoint.models.event import Event, Session

logger = logging.getLogger(__name__)


class BaseTransport(ABC):
    """Abstract base class for delivery transports."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Transport name for logging."""
        ...

    @property
    @abstractmethod
    def enabled(self) -> bool:
        """Whether the transport delivers anything."""
        ...

    @property
    def supports_sessions(self) -> bool:
        return False

    @abstractmethod
    async def send_event(self, event: Event) -> bool:
        """Deliver an event."""
        ...

    async def send_session(self, session: Session) -> bool:
        """Deliver a session."""
        raise NotImplementedError(f"{self.name} transport cannot send sessions")

    async def close(self) -> None:
        """Release any held resources."""
        return None

    async def send_event_safe(self, event: Event) -> bool:
        """Send event with error handling."""
        if not self.enabled:
            return False
        try:
            return await self.send_event(event)
        except Exception as e:
            logger.exception(f"Error while sending event via {self.name}: {e}")
            return False

    async def send_session_safe(self, session: Session) -> bool:
        """Send session with error handling."""
        if not self.enabled:
            return False
        try:
            return await self.send_session(session)
        except Exception as e:
            logger.exception(f"Error while sending session via {self.name}: {e}")
            return False
