"""Shared helpers for pattern matching, event descriptions and normalization."""

import dataclasses
import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

from catchpoint.models.event import Event


def is_matching_pattern(value: Any, pattern: Any, require_exact: bool = False) -> bool:
    """Check a string against a pattern.

    Compiled patterns are searched. String patterns match as substrings, or
    only on equality when `require_exact` is set.
    """
    if not isinstance(value, str):
        return False
    if isinstance(pattern, re.Pattern):
        return pattern.search(value) is not None
    if isinstance(pattern, str):
        return value == pattern if require_exact else pattern in value
    return False


def get_event_description(event: Event) -> str:
    if event.message:
        return event.message
    if event.exception and event.exception.values:
        first = event.exception.values[0]
        if first.type and first.value:
            return f"{first.type}: {first.value}"
        return first.type or first.value or event.event_id or "<unknown>"
    return event.event_id or "<unknown>"


def safe_str(value: Any) -> str:
    try:
        return str(value)
    except Exception:
        return f"<unprintable {type(value).__name__} object>"


def safe_repr(value: Any) -> str:
    try:
        return repr(value)
    except Exception:
        return f"<unprintable {type(value).__name__} object>"


def as_record(value: Any) -> dict[str, Any]:
    """Return the shallow key/value view of a plain structured value."""
    if isinstance(value, BaseModel):
        record = {name: getattr(value, name, None) for name in type(value).model_fields}
        record.update(value.model_extra or {})
        return record
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {field.name: getattr(value, field.name, None) for field in dataclasses.fields(value)}
    return dict(value)


def normalize(value: Any, depth: int = 3) -> Any:
    """Convert a value to a JSON-safe structure with sorted mapping keys.

    Never raises: a value that cannot be converted becomes a placeholder string.
    """
    try:
        return _normalize(value, depth)
    except Exception:
        return safe_repr(value)


def _normalize(value: Any, depth: int) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if depth <= 0:
        if isinstance(value, (Mapping, list, tuple, set)):
            return f"[{type(value).__name__}]"
        return safe_repr(value)
    if isinstance(value, BaseModel) or (
        dataclasses.is_dataclass(value) and not isinstance(value, type)
    ):
        value = as_record(value)
    if isinstance(value, Mapping):
        return {
            safe_str(key): normalize(value[key], depth - 1)
            for key in sorted(value, key=safe_str)
        }
    if isinstance(value, (list, tuple)):
        return [normalize(item, depth - 1) for item in value]
    if isinstance(value, set):
        return sorted((normalize(item, depth - 1) for item in value), key=safe_repr)
    return safe_repr(value)


def truncate(text: str, max_length: int) -> str:
    if max_length <= 0 or len(text) <= max_length:
        return text
    return f"{text[:max_length]}..."
