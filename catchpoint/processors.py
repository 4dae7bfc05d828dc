"""Ordered chain of event processors."""

import logging
from typing import Callable

from catchpoint.models.event import Event
from catchpoint.utils import get_event_description, safe_str

logger = logging.getLogger(__name__)

EventProcessor = Callable[[Event], Event | None]


class EventProcessorChain:
    """Runs processors in registration order; a None result drops the event."""

    def __init__(self) -> None:
        self._processors: list[EventProcessor] = []

    def __len__(self) -> int:
        return len(self._processors)

    def register(self, processor: EventProcessor) -> None:
        self._processors.append(processor)

    def run(self, event: Event) -> Event | None:
        for processor in self._processors:
            try:
                result = processor(event)
            except Exception as e:
                logger.exception(
                    f"Event processor {getattr(processor, '__name__', processor)!r} failed "
                    f"for event {get_event_description(event)}: {safe_str(e)}"
                )
                continue
            if result is None:
                logger.debug(f"Event dropped by processor: {get_event_description(event)}")
                return None
            event = result
        return event
