"""Observability helpers for guard decisions."""

from reply_guard.observability.events import EVENT_KINDS, GuardEventLog, load_events, summarize

__all__ = ["GuardEventLog", "EVENT_KINDS", "load_events", "summarize"]
