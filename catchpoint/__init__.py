"""Catchpoint: failure capture, classification and inbound filtering."""

from catchpoint.eventbuilder import (
    event_from_exception,
    event_from_message,
    event_from_string,
    event_from_unknown_input,
)
from catchpoint.exceptions import CatchpointError
from catchpoint.helpers import wrap
from catchpoint.hub import Hub, Scope, capture_exception, capture_message, get_current_hub, init
from catchpoint.mechanism import add_exception_mechanism, add_exception_type_value
from catchpoint.models.event import Event, EventHint, Mechanism, Severity

__all__ = [
    "CatchpointError",
    "Event",
    "EventHint",
    "Hub",
    "Mechanism",
    "Scope",
    "Severity",
    "add_exception_mechanism",
    "add_exception_type_value",
    "capture_exception",
    "capture_message",
    "event_from_exception",
    "event_from_message",
    "event_from_string",
    "event_from_unknown_input",
    "get_current_hub",
    "init",
    "wrap",
]
