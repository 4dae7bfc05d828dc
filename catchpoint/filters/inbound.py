"""Inbound filter: drop events before they reach the transport."""

import logging
import re
from typing import Any

from catchpoint.exceptions import INTERNAL_ERROR_TYPE
from catchpoint.filters.base import BaseFilter
from catchpoint.models.event import Event
from catchpoint.models.options import FilterOptions
from catchpoint.utils import get_event_description, is_matching_pattern

logger = logging.getLogger(__name__)

# Opaque cross-origin failures carry no usable detail.
DEFAULT_IGNORE_ERRORS = [
    re.compile(r"^Script error\.?$"),
    re.compile(r"^Javascript error: Script error\.? on line 0$"),
]


def merge_filter_options(
    instance: FilterOptions | None,
    client: FilterOptions | None,
) -> FilterOptions:
    """Combine instance-level and client-level options.

    List options are concatenated, instance first; the default ignore patterns
    are always appended. `ignore_internal` follows the instance, defaulting on.
    """
    instance = instance or FilterOptions()
    client = client or FilterOptions()
    return FilterOptions(
        allow_urls=[*(instance.allow_urls or []), *(client.allow_urls or [])],
        deny_urls=[*(instance.deny_urls or []), *(client.deny_urls or [])],
        ignore_errors=[
            *(instance.ignore_errors or []),
            *(client.ignore_errors or []),
            *DEFAULT_IGNORE_ERRORS,
        ],
        ignore_internal=(
            instance.ignore_internal if instance.ignore_internal is not None else True
        ),
    )


def get_possible_event_messages(event: Event) -> list[str]:
    if event.message:
        return [event.message]
    if event.exception:
        try:
            first = event.exception.values[0]
            type_ = first.type or ""
            value = first.value or ""
            return [value, f"{type_}: {value}"]
        except Exception:
            logger.error(f"Cannot extract message for event {get_event_description(event)}")
            return []
    return []


def get_event_filter_url(event: Event) -> str | None:
    """Return the filename of the frame nearest the entry point."""
    try:
        if event.stacktrace:
            return event.stacktrace.frames[-1].filename or None
        if event.exception:
            stacktrace = event.exception.values[0].stacktrace
            if stacktrace is None:
                return None
            return stacktrace.frames[-1].filename or None
        return None
    except Exception:
        logger.error(f"Cannot extract url for event {get_event_description(event)}")
        return None


class InboundFilter(BaseFilter):
    """Drops internal errors, ignored messages, and events from denied origins."""

    def __init__(self, options: FilterOptions | None = None):
        self._options = options or FilterOptions()

    @property
    def name(self) -> str:
        return "inbound_filters"

    @property
    def options(self) -> FilterOptions:
        return self._options

    def process(self, event: Event, client_options: Any) -> Event | None:
        options = merge_filter_options(self._options, client_options)
        if self.should_drop_event(event, options):
            return None
        return event

    def should_drop_event(self, event: Event, options: FilterOptions) -> bool:
        if self._is_internal_error(event, options):
            logger.warning(
                f"Event dropped due to being an internal error.\n"
                f"Event: {get_event_description(event)}"
            )
            return True
        if self._is_ignored_error(event, options):
            logger.warning(
                f"Event dropped due to being matched by `ignore_errors` option.\n"
                f"Event: {get_event_description(event)}"
            )
            return True
        if self._is_denied_url(event, options):
            logger.warning(
                f"Event dropped due to being matched by `deny_urls` option.\n"
                f"Event: {get_event_description(event)}.\n"
                f"Url: {get_event_filter_url(event)}"
            )
            return True
        if not self._is_allowed_url(event, options):
            logger.warning(
                f"Event dropped due to not being matched by `allow_urls` option.\n"
                f"Event: {get_event_description(event)}.\n"
                f"Url: {get_event_filter_url(event)}"
            )
            return True
        return False

    @staticmethod
    def _is_internal_error(event: Event, options: FilterOptions) -> bool:
        if not options.ignore_internal:
            return False
        try:
            return event.exception.values[0].type == INTERNAL_ERROR_TYPE
        except (AttributeError, IndexError):
            return False

    @staticmethod
    def _is_ignored_error(event: Event, options: FilterOptions) -> bool:
        if not options.ignore_errors:
            return False
        return any(
            is_matching_pattern(message, pattern, require_exact=True)
            for message in get_possible_event_messages(event)
            for pattern in options.ignore_errors
        )

    @staticmethod
    def _is_denied_url(event: Event, options: FilterOptions) -> bool:
        if not options.deny_urls:
            return False
        url = get_event_filter_url(event)
        if not url:
            return False
        return any(is_matching_pattern(url, pattern) for pattern in options.deny_urls)

    @staticmethod
    def _is_allowed_url(event: Event, options: FilterOptions) -> bool:
        if not options.allow_urls:
            return True
        url = get_event_filter_url(event)
        if not url:
            return True
        return any(is_matching_pattern(url, pattern) for pattern in options.allow_urls)
