"""Turn arbitrary captured values into canonical events.

Raw failures are classified by structural inspection into one of four kinds,
checked in a fixed order:

1. wrapped event: a host wrapper (loop handler context, hook arguments,
   exc_info triple, ``.error`` carrier) holding a real exception; unwrapped
   and handled as a native error
2. native error: an exception instance; frames come from the stack source
3. plain record: a mapping, pydantic model or dataclass; serialized with
   sorted keys so structurally identical records group together
4. anything else: coerced to a string message

An exception instance is never treated as a wrapper, whatever attributes it
carries.
"""

import dataclasses
import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel

from catchpoint.mechanism import add_exception_mechanism, add_exception_type_value
from catchpoint.models.event import (
    Event,
    EventHint,
    ExceptionInfo,
    ExceptionValue,
    Severity,
    Stacktrace,
)
from catchpoint.stacksource import get_stack_source
from catchpoint.utils import as_record, normalize, safe_str, truncate

logger = logging.getLogger(__name__)

MAX_KEYS_LENGTH = 40


class FailureKind(str, Enum):
    WRAPPED_EVENT = "wrapped_event"
    NATIVE_ERROR = "native_error"
    PLAIN_RECORD = "plain_record"
    OTHER = "other"


def unwrap_error_event(raw: Any) -> BaseException | None:
    """Return the exception boxed inside a host error-event wrapper, if any."""
    if isinstance(raw, BaseException):
        return None
    if isinstance(raw, tuple) and len(raw) == 3 and isinstance(raw[1], BaseException):
        return raw[1]
    if isinstance(raw, Mapping):
        for key in ("error", "exception"):
            try:
                inner = raw.get(key)
            except Exception:
                continue
            if isinstance(inner, BaseException):
                return inner
        return None
    for attr in ("error", "exc_value"):
        try:
            inner = getattr(raw, attr, None)
        except Exception:
            continue
        if isinstance(inner, BaseException):
            return inner
    return None


def classify(raw: Any) -> FailureKind:
    if unwrap_error_event(raw) is not None:
        return FailureKind.WRAPPED_EVENT
    if isinstance(raw, BaseException):
        return FailureKind.NATIVE_ERROR
    if isinstance(raw, (Mapping, BaseModel)) or (
        dataclasses.is_dataclass(raw) and not isinstance(raw, type)
    ):
        return FailureKind.PLAIN_RECORD
    return FailureKind.OTHER


def _frames_for(failure: Any) -> list:
    return get_stack_source().frames(failure)


def event_from_native_error(error: BaseException) -> Event:
    frames = _frames_for(error)
    value = ExceptionValue(
        type=type(error).__name__,
        value=safe_str(error),
        stacktrace=Stacktrace(frames=frames) if frames else None,
    )
    return Event(exception=ExceptionInfo(values=[value]))


def _keys_for_message(record: dict[str, Any], max_length: int = MAX_KEYS_LENGTH) -> str:
    keys = sorted(safe_str(key) for key in record)
    if not keys:
        return "[object has no keys]"
    if len(keys[0]) >= max_length:
        return truncate(keys[0], max_length)
    for included in range(len(keys), 0, -1):
        serialized = ", ".join(keys[:included])
        if len(serialized) > max_length:
            continue
        if included == len(keys):
            return serialized
        return truncate(serialized, max_length)
    return ""


def event_from_plain_object(
    raw: Any,
    synthetic_exception: BaseException | None = None,
    rejection: bool = False,
) -> Event:
    try:
        record = as_record(raw)
    except Exception as e:
        logger.debug(f"Cannot read fields of {type(raw).__name__}: {safe_str(e)}")
        record = {}
    if isinstance(raw, BaseModel) or dataclasses.is_dataclass(raw):
        type_name = type(raw).__name__
    elif rejection:
        type_name = "UnhandledRejection"
    else:
        type_name = "Error"
    kind = "promise rejection" if rejection else "exception"

    event = Event(
        exception=ExceptionInfo(
            values=[
                ExceptionValue(
                    type=type_name,
                    value=f"Non-Error {kind} captured with keys: {_keys_for_message(record)}",
                )
            ]
        ),
        extra={"__serialized__": normalize(record)},
    )
    if synthetic_exception is not None:
        frames = _frames_for(synthetic_exception)
        if frames:
            event.stacktrace = Stacktrace(frames=frames)
    return event


def event_from_string(
    text: str,
    synthetic_exception: BaseException | None = None,
    *,
    attach_stacktrace: bool = False,
) -> Event:
    """Build a message-only event.

    Frames are computed only when stack attachment is requested and a
    synthetic failure was supplied.
    """
    event = Event(message=text)
    if attach_stacktrace and synthetic_exception is not None:
        event.stacktrace = Stacktrace(frames=_frames_for(synthetic_exception))
    return event


def event_from_unknown_input(
    raw: Any,
    synthetic_exception: BaseException | None = None,
    *,
    attach_stacktrace: bool = False,
    rejection: bool = False,
) -> Event:
    kind = classify(raw)

    if kind is FailureKind.WRAPPED_EVENT:
        return event_from_native_error(unwrap_error_event(raw))

    if kind is FailureKind.NATIVE_ERROR:
        return event_from_native_error(raw)

    if kind is FailureKind.PLAIN_RECORD:
        event = event_from_plain_object(raw, synthetic_exception, rejection)
        return add_exception_mechanism(event, {"synthetic": True})

    text = safe_str(raw)
    event = event_from_string(text, synthetic_exception, attach_stacktrace=attach_stacktrace)
    event = add_exception_type_value(event, text, None)
    return add_exception_mechanism(event, {"synthetic": True})


def build_exception_event(options: Any, raw: Any, hint: EventHint | None = None) -> Event:
    hint = hint or EventHint()
    event = event_from_unknown_input(
        raw,
        hint.synthetic_exception,
        attach_stacktrace=getattr(options, "attach_stacktrace", False),
    )
    if hint.mechanism is not None:
        event = add_exception_mechanism(event, hint.mechanism)
    event = add_exception_mechanism(event, {"handled": True, "type": "generic"})
    update: dict[str, Any] = {"level": Severity.ERROR}
    if hint.event_id:
        update["event_id"] = hint.event_id
    return event.model_copy(update=update)


def build_message_event(
    options: Any,
    text: str,
    level: Severity = Severity.INFO,
    hint: EventHint | None = None,
) -> Event:
    hint = hint or EventHint()
    event = event_from_string(
        text,
        hint.synthetic_exception,
        attach_stacktrace=getattr(options, "attach_stacktrace", False),
    )
    update: dict[str, Any] = {"level": level}
    if hint.event_id:
        update["event_id"] = hint.event_id
    return event.model_copy(update=update)


async def event_from_exception(options: Any, raw: Any, hint: EventHint | None = None) -> Event:
    """Classify a raw failure into an error-level event."""
    return build_exception_event(options, raw, hint)


async def event_from_message(
    options: Any,
    text: str,
    level: Severity = Severity.INFO,
    hint: EventHint | None = None,
) -> Event:
    """Build an event for a plain message capture."""
    return build_message_event(options, text, level, hint)
