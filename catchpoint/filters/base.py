"""Base class for event filters."""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from catchpoint.models.event import Event
from catchpoint.models.options import ClientOptions

if TYPE_CHECKING:
    from catchpoint.client import Client


class BaseFilter(ABC):
    """Abstract base class for filters registered on a client's processor chain."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Filter name for logging."""
        ...

    @abstractmethod
    def process(self, event: Event, client_options: ClientOptions) -> Event | None:
        """Return the event to keep it, or None to drop it."""
        ...

    def setup_once(self, client: "Client") -> None:
        """Register this filter on the client's processor chain."""
        client.processors.register(lambda event: self.process(event, client.options))
