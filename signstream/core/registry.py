"""
Handle-keyed callback registry used by every pipeline stage.

Producers own a registry and dispatch payloads to it; consumers register a
handler and keep the returned handle to remove it later. Handlers are
invoked synchronously on the dispatching thread.

Thread-safe: the handler map is snapshotted under the lock, then iterated
outside it, so add/remove during a dispatch never corrupts the iteration.
"""
import itertools
import threading
from typing import Any, Callable, Dict, Hashable, Optional

from signstream.utils.logger import Logger


class CallbackHandle:
    """Opaque token returned by `CallbackRegistry.add`."""

    __slots__ = ("key",)

    def __init__(self, key: Hashable):
        self.key = key

    def __eq__(self, other):
        return isinstance(other, CallbackHandle) and other.key == self.key

    def __hash__(self):
        return hash(self.key)

    def __repr__(self):
        return f"CallbackHandle({self.key!r})"


# Named and automatic keys live in separate namespaces so they never collide
_NAMED = "named"
_AUTO = "auto"


def _as_handle(handle) -> Optional[CallbackHandle]:
    """Accept a handle or the str name a handler was added under."""
    if isinstance(handle, CallbackHandle):
        return handle
    if isinstance(handle, str):
        return CallbackHandle((_NAMED, handle))
    return None


class CallbackRegistry:
    """
    Register handlers and dispatch payloads to all of them.

    Usage:
        registry = CallbackRegistry("signs")
        handle = registry.add(my_handler)
        registry.dispatch(SignRecognized(label="hello", ...))
        registry.remove(handle)
    """

    _ids = itertools.count(1)

    def __init__(self, name: str = "callbacks", propagate_errors: bool = False):
        """
        Args:
            name: Used only for log messages.
            propagate_errors: Re-raise handler exceptions instead of logging them.
        """
        self.name = name
        self.propagate_errors = propagate_errors
        self._handlers: Dict[CallbackHandle, Callable[[Any], None]] = {}
        self._lock = threading.Lock()
        self.logger = Logger("CallbackRegistry")

    def add(self, handler: Callable[[Any], None], name: Optional[str] = None) -> CallbackHandle:
        """
        Register a handler.

        Args:
            handler: Callable receiving the dispatched payload.
            name: Optional stable key. Adding again under the same name replaces
                  the previous handler instead of registering a second one.

        Returns:
            The handle to pass to `remove`.
        """
        if name is None:
            handle = CallbackHandle((_AUTO, next(self._ids)))
        elif isinstance(name, str):
            handle = CallbackHandle((_NAMED, name))
        else:
            raise TypeError(f"Callback name must be a str, got {type(name).__name__}")
        with self._lock:
            self._handlers[handle] = handler
        self.logger.debug(f"[{self.name}] registered {getattr(handler, '__qualname__', handler)}")
        return handle

    def remove(self, handle) -> bool:
        """Remove a handler by handle (or by the name it was added under). Unknown handles are ignored."""
        handle = _as_handle(handle)
        with self._lock:
            return self._handlers.pop(handle, None) is not None

    def clear(self) -> None:
        """Remove all handlers."""
        with self._lock:
            self._handlers.clear()

    def dispatch(self, payload: Any) -> int:
        """
        Call every registered handler with `payload`.

        Exceptions in one handler do not prevent the others from running
        unless the registry was built with `propagate_errors=True`.

        Returns:
            Number of handlers invoked.
        """
        with self._lock:
            handlers = list(self._handlers.values())

        for handler in handlers:
            try:
                handler(payload)
            except Exception as e:
                if self.propagate_errors:
                    raise
                self.logger.error(
                    f"Error in handler {getattr(handler, '__qualname__', handler)} "
                    f"for '{self.name}': {e}"
                )
        return len(handlers)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)

    def __contains__(self, handle) -> bool:
        handle = _as_handle(handle)
        with self._lock:
            return handle in self._handlers
