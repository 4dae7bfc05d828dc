"""Delivery backend: hands filtered events and sessions to a transport.

Sending is fire-and-forget. Under a running event loop a delivery is a task on
that loop; otherwise it goes to a background worker thread with its own loop.
Failures are logged and the event is dropped; nothing is retried.
"""

import asyncio
import concurrent.futures
import logging
import threading
from typing import Coroutine

from catchpoint.models.event import Event, Session
from catchpoint.models.options import ClientOptions
from catchpoint.transports.base import BaseTransport
from catchpoint.transports.http import HttpTransport
from catchpoint.transports.noop import NoopTransport
from catchpoint.utils import safe_str

logger = logging.getLogger(__name__)


class BackgroundWorker:
    """Daemon thread running an event loop for deliveries made outside one."""

    def __init__(self, name: str = "catchpoint-backend"):
        self._name = name
        self._lock = threading.Lock()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._pending: set[concurrent.futures.Future] = set()

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _ensure_started(self) -> asyncio.AbstractEventLoop:
        with self._lock:
            if self._loop is None:
                loop = asyncio.new_event_loop()
                thread = threading.Thread(target=loop.run_forever, name=self._name, daemon=True)
                thread.start()
                self._loop, self._thread = loop, thread
                logger.debug(f"Started background worker {self._name}")
            return self._loop

    def submit(self, coro: Coroutine) -> None:
        future = asyncio.run_coroutine_threadsafe(coro, self._ensure_started())
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._discard)

    def _discard(self, future: concurrent.futures.Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def wait(self, timeout: float | None = None) -> bool:
        """Block until submitted deliveries finish. Returns False on timeout."""
        with self._lock:
            pending = set(self._pending)
        if not pending:
            return True
        _, not_done = concurrent.futures.wait(pending, timeout=timeout)
        return not not_done

    def stop(self, timeout: float | None = None) -> None:
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = self._thread = None
        if loop is None or thread is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout)
        if not thread.is_alive():
            loop.close()


class Backend:
    """Owns the transport and schedules deliveries."""

    def __init__(self, options: ClientOptions, transport: BaseTransport | None = None):
        self._options = options
        if transport is None and not options.ingest_url:
            logger.warning("No ingest URL provided, backend will not deliver anything.")
        self._transport = transport or self._setup_transport()
        self._pending: set[asyncio.Task] = set()
        self._worker = BackgroundWorker()

    def _setup_transport(self) -> BaseTransport:
        if self._options.ingest_url:
            return HttpTransport(self._options.ingest_url, secret=self._options.ingest_secret)
        return NoopTransport()

    @property
    def transport(self) -> BaseTransport:
        return self._transport

    @property
    def worker(self) -> BackgroundWorker:
        return self._worker

    def _spawn(self, coro: Coroutine, what: str) -> None:
        async def _deliver() -> None:
            try:
                await coro
            except Exception as e:
                logger.error(f"Error while sending {what}: {safe_str(e)}")

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._worker.submit(_deliver())
            return

        task = loop.create_task(_deliver())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def send_event(self, event: Event) -> None:
        self._spawn(self._transport.send_event_safe(event), "event")

    def send_session(self, session: Session) -> None:
        if not self._transport.supports_sessions:
            logger.warning(
                f"Dropping session because transport {self._transport.name} doesn't implement send_session"
            )
            return
        self._spawn(self._transport.send_session_safe(session), "session")

    def wait(self, timeout: float | None = None) -> bool:
        """Block until background deliveries finish. Returns False on timeout."""
        return self._worker.wait(timeout)

    async def flush(self, timeout: float | None = None) -> bool:
        """Wait for in-flight deliveries. Returns False if the timeout elapsed first."""
        drained = True
        if self._pending:
            _, pending = await asyncio.wait(set(self._pending), timeout=timeout)
            drained = not pending
        if not await asyncio.to_thread(self._worker.wait, timeout):
            drained = False
        return drained

    async def close(self, timeout: float | None = None) -> bool:
        drained = await self.flush(timeout)
        await asyncio.to_thread(self._worker.stop, timeout)
        await self._transport.close()
        return drained
