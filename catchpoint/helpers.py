"""Instrumentation wrapper and the reentrancy suppressor.

`wrap` calls into user code and reports any exception it raises exactly once,
without re-raising. While a wrapper-reported failure is fresh, ambient failure
hooks check the suppressor and skip reporting the same failure again.

A failure stays fresh until the current turn ends. Under a running event loop
that is the loop's next iteration. Without one, the turn ends when the next
outermost wrapped call starts, when an ambient hook has checked the suppressor,
or when `end_turn` is called.
"""

import asyncio
import contextvars
import functools
import inspect
import logging
import threading
import weakref
from typing import Any, Callable

from catchpoint.hub import Hub, get_current_hub
from catchpoint.models.event import Event, EventHint, Mechanism
from catchpoint.utils import normalize, safe_repr, safe_str

logger = logging.getLogger(__name__)

Scheduler = Callable[[Callable[[], None]], None]

_wrap_depth: contextvars.ContextVar[int] = contextvars.ContextVar("catchpoint_wrap_depth", default=0)


class ReentrancySuppressor:
    """Process-wide counter of failures the wrapper has just reported.

    `ignore_next` increments immediately and defers the matching decrement to
    the end of the current turn, so overlapping reports stack. A custom
    `scheduler` takes over deferral entirely.
    """

    def __init__(self, scheduler: Scheduler | None = None):
        self._count = 0
        self._lock = threading.Lock()
        self._scheduler = scheduler
        self._deferred: list[Callable[[], None]] = []

    @property
    def count(self) -> int:
        return self._count

    def should_ignore(self) -> bool:
        return self._count > 0

    def ignore_next(self) -> None:
        with self._lock:
            self._count += 1
        self._defer(self._decrement)

    def end_turn(self) -> None:
        """Apply the decrements deferred while no event loop was running."""
        with self._lock:
            deferred, self._deferred = self._deferred, []
        for callback in deferred:
            callback()

    def _defer(self, callback: Callable[[], None]) -> None:
        if self._scheduler is not None:
            self._scheduler(callback)
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            with self._lock:
                self._deferred.append(callback)
            return
        loop.call_soon(callback)

    def _decrement(self) -> None:
        with self._lock:
            self._count -= 1


_suppressor = ReentrancySuppressor()


def get_suppressor() -> ReentrancySuppressor:
    return _suppressor


def set_suppressor(suppressor: ReentrancySuppressor) -> ReentrancySuppressor:
    """Install a suppressor and return the previous one."""
    global _suppressor
    previous = _suppressor
    _suppressor = suppressor
    return previous


def should_ignore_on_error() -> bool:
    return _suppressor.should_ignore()


def ignore_next_on_error() -> None:
    _suppressor.ignore_next()


def end_turn() -> None:
    _suppressor.end_turn()


class _WrapRegistry:
    """Side table from original callables to their wrappers.

    Entries hold weak references only; callables that cannot be weakly
    referenced are wrapped anew each time.
    """

    def __init__(self) -> None:
        self._wrapped: weakref.WeakKeyDictionary = weakref.WeakKeyDictionary()
        self._wrappers: weakref.WeakSet = weakref.WeakSet()

    def is_wrapper(self, fn: Any) -> bool:
        try:
            return fn in self._wrappers
        except TypeError:
            return False

    def cached(self, fn: Any) -> Any | None:
        try:
            return self._wrapped.get(fn)
        except TypeError:
            return None

    def remember(self, fn: Any, wrapper: Any) -> None:
        self._wrappers.add(wrapper)
        try:
            self._wrapped[fn] = wrapper
        except TypeError:
            logger.debug(f"Cannot cache wrapper for {safe_repr(fn)}, it will be re-wrapped on demand")


_registry = _WrapRegistry()


def _should_wrap(value: Any) -> bool:
    return callable(value) and not inspect.isclass(value)


def _enter(suppressor: ReentrancySuppressor | None) -> contextvars.Token:
    depth = _wrap_depth.get()
    if depth == 0:
        (suppressor or _suppressor).end_turn()
    return _wrap_depth.set(depth + 1)


def _report(
    exc: Exception,
    args: tuple,
    kwargs: dict[str, Any],
    mechanism: Mechanism | None,
    hub: Hub | None,
    suppressor: ReentrancySuppressor | None,
) -> None:
    (suppressor or _suppressor).ignore_next()

    def _record_arguments(event: Event) -> Event:
        extra = {**event.extra, "arguments": normalize(list(args))}
        if kwargs:
            extra["keyword_arguments"] = normalize(kwargs)
        return event.model_copy(update={"extra": extra})

    try:
        hub = hub or get_current_hub()
        with hub.push_scope() as scope:
            scope.add_event_processor(_record_arguments)
            hub.capture_exception(exc, hint=EventHint(mechanism=mechanism))
    except Exception as e:
        logger.exception(f"Failed to report {type(exc).__name__} from wrapped call: {safe_str(e)}")


def wrap(
    fn: Any,
    mechanism: Mechanism | dict[str, Any] | None = None,
    *,
    hub: Hub | None = None,
    suppressor: ReentrancySuppressor | None = None,
) -> Any:
    """Instrument `fn` so exceptions it raises are reported instead of propagated.

    The wrapper keeps `fn`'s calling convention and returns None when `fn`
    raises. Wrapping is idempotent: a wrapper, or a callable wrapped before,
    comes back as the same wrapper object.

    The cache is keyed on `fn` alone. A later call with a different
    `mechanism`, `hub` or `suppressor` returns the first wrapper, bound to the
    options it was created with.
    """
    if not _should_wrap(fn):
        return fn

    if _registry.is_wrapper(fn):
        return fn
    cached = _registry.cached(fn)
    if cached is not None:
        return cached

    if isinstance(mechanism, dict):
        mechanism = Mechanism.model_validate(mechanism)

    def _wrap_arguments(args: tuple, kwargs: dict[str, Any]) -> tuple[tuple, dict[str, Any]]:
        wrapped_args = tuple(
            wrap(arg, mechanism, hub=hub, suppressor=suppressor) if _should_wrap(arg) else arg
            for arg in args
        )
        wrapped_kwargs = {
            key: wrap(value, mechanism, hub=hub, suppressor=suppressor) if _should_wrap(value) else value
            for key, value in kwargs.items()
        }
        return wrapped_args, wrapped_kwargs

    if inspect.iscoroutinefunction(fn):

        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            token = _enter(suppressor)
            try:
                wrapped_args, wrapped_kwargs = _wrap_arguments(args, kwargs)
                return await fn(*wrapped_args, **wrapped_kwargs)
            except Exception as exc:
                _report(exc, args, kwargs, mechanism, hub, suppressor)
                return None
            finally:
                _wrap_depth.reset(token)

    else:

        def wrapper(*args: Any, **kwargs: Any) -> Any:
            token = _enter(suppressor)
            try:
                wrapped_args, wrapped_kwargs = _wrap_arguments(args, kwargs)
                return fn(*wrapped_args, **wrapped_kwargs)
            except Exception as exc:
                _report(exc, args, kwargs, mechanism, hub, suppressor)
                return None
            finally:
                _wrap_depth.reset(token)

    # Attribute access on some proxies raises; fall back to the original callable.
    try:
        wrapper.__dict__.update(getattr(fn, "__dict__", {}))
    except Exception:
        logger.debug(f"Cannot copy attributes of {safe_repr(fn)}, leaving it unwrapped")
        return fn

    for attr in functools.WRAPPER_ASSIGNMENTS:
        try:
            setattr(wrapper, attr, getattr(fn, attr))
        except (AttributeError, TypeError):
            pass
    wrapper.__wrapped__ = fn

    _registry.remember(fn, wrapper)
    return wrapper
