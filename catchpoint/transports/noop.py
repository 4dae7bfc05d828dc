"""Transport used when no ingest URL is configured."""

import logging

from catchpoint.models.event import Event
from catchpoint.transports.base import BaseTransport

logger = logging.getLogger(__name__)


class NoopTransport(BaseTransport):
    """Skips every event."""

    @property
    def name(self) -> str:
        return "noop"

    @property
    def enabled(self) -> bool:
        return True

    async def send_event(self, event: Event) -> bool:
        logger.debug(
            f"NoopTransport: event {event.event_id} has been skipped because no ingest URL is configured."
        )
        return False
