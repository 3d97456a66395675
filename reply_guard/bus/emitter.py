"""Synchronous publish/subscribe bus for host notifications."""

from collections.abc import Callable
from enum import Enum
from typing import Any, Protocol

from loguru import logger

Handler = Callable[..., Any]


def _key(name: Any) -> str:
    return name.value if isinstance(name, Enum) else str(name)


class EventSource(Protocol):
    """Anything the runtime can subscribe to."""

    def on(self, name: str, handler: Handler) -> None:
        ...

    def off(self, name: str, handler: Handler) -> None:
        ...


class EventBus:
    """
    In-process event bus.

    Handlers run synchronously in subscription order. A failing handler is
    logged and does not stop the remaining handlers.
    """

    def __init__(self):
        self._handlers: dict[str, list[Handler]] = {}

    def on(self, name: str, handler: Handler) -> None:
        """Subscribe a handler to an event name."""
        self._handlers.setdefault(_key(name), []).append(handler)

    def off(self, name: str, handler: Handler) -> None:
        """Unsubscribe a handler. Unknown handlers are ignored."""
        handlers = self._handlers.get(_key(name))
        if not handlers:
            return
        try:
            handlers.remove(handler)
        except ValueError:
            return
        if not handlers:
            self._handlers.pop(_key(name), None)

    def emit(self, name: str, *args: Any) -> int:
        """Deliver an event to every current subscriber. Returns handlers invoked."""
        handlers = list(self._handlers.get(_key(name), ()))
        for handler in handlers:
            try:
                handler(*args)
            except Exception:
                logger.exception(f"Event handler failed for {name}")
        return len(handlers)

    def listener_count(self, name: str) -> int:
        return len(self._handlers.get(_key(name), ()))
