"""Stack frame extraction for native failures.

Frame lists are ordered with index 0 nearest the throw site and the last frame
nearest the program entry point. The last frame's filename is what URL-based
filters treat as the event's origin.
"""

import traceback
from typing import Any, Protocol

from catchpoint.models.event import StackFrame


class StackSource(Protocol):
    """Converts a native failure into ordered stack frames."""

    def frames(self, failure: Any) -> list[StackFrame]:
        ...


class SyntheticException(Exception):
    """An exception that remembers where it was created.

    Never meant to be raised: it carries the call stack of its construction
    site so that plain string captures can recover call-site frames.
    """

    def __init__(self, message: str = "synthetic"):
        super().__init__(message)
        # Drop this constructor's own frame.
        self.stack = traceback.extract_stack()[:-1]


def _to_frame(summary: traceback.FrameSummary) -> StackFrame:
    return StackFrame(
        function=summary.name,
        filename=summary.filename,
        lineno=summary.lineno,
        colno=getattr(summary, "colno", None),
    )


class TracebackStackSource:
    """Reads frames from a raised exception's traceback or a synthetic stack."""

    def frames(self, failure: Any) -> list[StackFrame]:
        tb = getattr(failure, "__traceback__", None)
        if tb is not None:
            summaries = traceback.extract_tb(tb)
        else:
            summaries = getattr(failure, "stack", None)
            if not isinstance(summaries, list):
                return []
        # traceback lists outermost first
        return [_to_frame(summary) for summary in reversed(summaries)]


_stack_source: StackSource = TracebackStackSource()


def get_stack_source() -> StackSource:
    return _stack_source


def set_stack_source(source: StackSource) -> StackSource:
    """Install a stack source and return the previous one."""
    global _stack_source
    previous = _stack_source
    _stack_source = source
    return previous
