"""Ambient failure hooks.

`GlobalHandlers` reports exceptions that reach the interpreter's last-resort
hooks. A hook skips reporting while the reentrancy suppressor is positive,
then ends the current turn so the next ambient failure is reported again.
"""

import asyncio
import logging
import sys
import threading
from typing import TYPE_CHECKING, Any

from catchpoint.eventbuilder import unwrap_error_event
from catchpoint.helpers import end_turn, should_ignore_on_error
from catchpoint.hub import get_current_hub
from catchpoint.models.event import EventHint, Mechanism

if TYPE_CHECKING:
    from catchpoint.client import Client

logger = logging.getLogger(__name__)


def _capture(raw: Any, mechanism_type: str) -> str | None:
    try:
        if should_ignore_on_error():
            logger.debug(f"Skipping {mechanism_type} report, failure already captured")
            return None
        return get_current_hub().capture_exception(
            raw,
            hint=EventHint(mechanism=Mechanism(type=mechanism_type, handled=False)),
        )
    finally:
        end_turn()


class GlobalHandlers:
    """Installs sys, threading and asyncio last-resort exception hooks."""

    name = "global_handlers"

    def __init__(self, excepthook: bool = True, threading_hook: bool = True):
        self._install_excepthook = excepthook
        self._install_threading_hook = threading_hook
        self._previous_excepthook = None
        self._previous_threading_hook = None

    def setup_once(self, client: "Client") -> None:
        if self._install_excepthook and self._previous_excepthook is None:
            self._previous_excepthook = sys.excepthook
            sys.excepthook = self.excepthook
            logger.info("Installed global excepthook")
        if self._install_threading_hook and self._previous_threading_hook is None:
            self._previous_threading_hook = threading.excepthook
            threading.excepthook = self.threading_excepthook
            logger.info("Installed threading excepthook")

    def uninstall(self) -> None:
        if self._previous_excepthook is not None:
            sys.excepthook = self._previous_excepthook
            self._previous_excepthook = None
        if self._previous_threading_hook is not None:
            threading.excepthook = self._previous_threading_hook
            self._previous_threading_hook = None

    def excepthook(self, exc_type, exc_value, tb) -> None:
        _capture((exc_type, exc_value, tb), "onerror")
        if self._previous_excepthook is not None:
            self._previous_excepthook(exc_type, exc_value, tb)

    def threading_excepthook(self, args: Any) -> None:
        _capture(args, "onerror")
        if self._previous_threading_hook is not None:
            self._previous_threading_hook(args)

    def install_loop_handler(self, loop: asyncio.AbstractEventLoop) -> None:
        """Report exceptions the loop would otherwise only log."""
        previous = loop.get_exception_handler()

        def handler(loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
            if unwrap_error_event(context) is not None:
                _capture(context, "onunhandledrejection")
            if previous is not None:
                previous(loop, context)
            else:
                loop.default_exception_handler(context)

        loop.set_exception_handler(handler)
