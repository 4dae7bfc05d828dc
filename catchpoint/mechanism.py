"""Helpers that attach classification metadata to an event's exception slot.

Both helpers return a new Event. Fields already set on the first exception
value are never overwritten.
"""

from typing import Any

from catchpoint.models.event import Event, ExceptionInfo, ExceptionValue, Mechanism


def _first_value(event: Event) -> tuple[Event, ExceptionValue]:
    new_event = event.model_copy(deep=True)
    if new_event.exception is None:
        new_event.exception = ExceptionInfo()
    if not new_event.exception.values:
        new_event.exception.values.append(ExceptionValue())
    return new_event, new_event.exception.values[0]


def add_exception_mechanism(event: Event, partial: Mechanism | dict[str, Any]) -> Event:
    """Merge `partial` into the first exception value's mechanism, first writer wins."""
    if isinstance(partial, Mechanism):
        partial = partial.model_dump(exclude_none=True)

    new_event, slot = _first_value(event)
    current = slot.mechanism.model_dump(exclude_none=True) if slot.mechanism else {}
    merged = {key: value for key, value in partial.items() if value is not None}
    merged.update(current)
    slot.mechanism = Mechanism.model_validate(merged)
    return new_event


def add_exception_type_value(
    event: Event,
    value: str | None = None,
    type: str | None = None,
) -> Event:
    """Ensure the first exception value exists and fill its unset type/value."""
    new_event, slot = _first_value(event)
    if slot.value is None and value is not None:
        slot.value = value
    if slot.type is None and type is not None:
        slot.type = type
    return new_event
