"""Canonical event envelope produced by the capture pipeline.

Every stage (classifier, mechanism tagger, filters) hands a new Event to the
next one instead of mutating a shared record.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    """Event severity level."""

    FATAL = "fatal"
    ERROR = "error"
    WARNING = "warning"
    LOG = "log"
    INFO = "info"
    DEBUG = "debug"
    CRITICAL = "critical"


class StackFrame(BaseModel):
    """A single stack frame. Index 0 of a frame list is nearest the throw site."""

    function: str | None = None
    filename: str | None = None
    lineno: int | None = None
    colno: int | None = None


class Stacktrace(BaseModel):
    frames: list[StackFrame] = Field(default_factory=list)


class Mechanism(BaseModel):
    """How an event was captured."""

    model_config = ConfigDict(extra="allow")

    type: str | None = Field(default=None, description="Capture mechanism, e.g. generic/onerror")
    handled: bool | None = Field(default=None, description="Whether user code handled the failure")
    synthetic: bool | None = Field(default=None, description="No real failure object was available")


class ExceptionValue(BaseModel):
    """One classified failure entry."""

    type: str | None = None
    value: str | None = None
    mechanism: Mechanism | None = None
    stacktrace: Stacktrace | None = None


class ExceptionInfo(BaseModel):
    values: list[ExceptionValue] = Field(default_factory=list)


class Event(BaseModel):
    """A normalized record describing one captured failure or message."""

    event_id: str | None = None
    message: str | None = None
    level: Severity | None = None
    exception: ExceptionInfo | None = None
    stacktrace: Stacktrace | None = None
    extra: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime | None = None
    environment: str | None = None
    release: str | None = None
    platform: str = "python"


class EventHint(BaseModel):
    """Out-of-band data passed alongside a capture call."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    event_id: str | None = Field(default=None, description="Pre-assigned event id")
    synthetic_exception: Any = Field(
        default=None, description="Failure object used to recover call-site frames"
    )
    mechanism: Mechanism | None = Field(default=None, description="Mechanism stamped before defaults")
    original_exception: Any = None


class Session(BaseModel):
    """Release health session handed to the transport."""

    sid: str
    status: Literal["ok", "exited", "crashed"] = "ok"
    started: datetime
    errors: int = 0
    release: str | None = None
    environment: str | None = None
