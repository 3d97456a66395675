"""Host event bus module for decoupled host-guard communication."""

from reply_guard.bus.emitter import EventBus, EventSource
from reply_guard.bus.events import DEFAULT_EVENT_NAMES, HostEvent

__all__ = ["EventBus", "EventSource", "HostEvent", "DEFAULT_EVENT_NAMES"]
