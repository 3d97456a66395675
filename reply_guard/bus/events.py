"""Host notification names."""

from enum import Enum


class HostEvent(str, Enum):
    """Notifications the guard consumes from the chat host."""

    GENERATION_STARTED = "generation_started"
    GENERATION_ENDED = "generation_ended"
    CONTENT_RENDERED = "character_message_rendered"
    MESSAGE_SENT = "message_sent"
    CHAT_CHANGED = "chat_id_changed"


DEFAULT_EVENT_NAMES: dict[HostEvent, str] = {event: event.value for event in HostEvent}
