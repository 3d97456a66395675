"""Data records shared by the guard components."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

UNKNOWN_CHAT_ID = "unknown"


@dataclass(frozen=True, slots=True)
class SlotKey:
    """One reply-producing turn: (chat id, position in that chat)."""

    chat_id: str
    index: int

    def __str__(self) -> str:
        return f"{self.chat_id}:{self.index}"


@dataclass(slots=True)
class ChatEntry:
    """A single chat entry as seen by the guard."""

    is_user: bool = False
    is_side_channel: bool = False
    text: str | None = None

    @property
    def is_reply(self) -> bool:
        return not self.is_user and not self.is_side_channel

    @classmethod
    def from_payload(cls, payload: Any) -> ChatEntry:
        """Adapt a host chat entry (`is_user`/`is_system`/`mes` or our own field names)."""
        if isinstance(payload, ChatEntry):
            return payload
        if not isinstance(payload, Mapping):
            # Unknown shapes are treated as side-channel so they never become a slot.
            return cls(is_side_channel=True)

        side_channel = payload.get("is_side_channel", payload.get("is_system", False))
        text = payload.get("text", payload.get("mes"))
        return cls(
            is_user=payload.get("is_user") is True,
            is_side_channel=side_channel is True,
            text=text if isinstance(text, str) else None,
        )


@dataclass(slots=True)
class ConversationState:
    """Snapshot of the host conversation."""

    chat_id: str = UNKNOWN_CHAT_ID
    entries: list[ChatEntry] = field(default_factory=list)

    @classmethod
    def from_context(cls, context: Any) -> ConversationState:
        """Adapt a host context object or mapping into a conversation snapshot."""
        if isinstance(context, ConversationState):
            return context
        if context is None:
            return cls()

        if isinstance(context, Mapping):
            chat_id = context.get("chat_id", context.get("chatId"))
            raw_entries = context.get("entries", context.get("chat"))
        else:
            chat_id = getattr(context, "chat_id", getattr(context, "chatId", None))
            raw_entries = getattr(context, "entries", getattr(context, "chat", None))

        if not isinstance(chat_id, str) or not chat_id:
            chat_id = UNKNOWN_CHAT_ID
        if not isinstance(raw_entries, (list, tuple)):
            raw_entries = []
        return cls(chat_id=chat_id, entries=[ChatEntry.from_payload(item) for item in raw_entries])

    def entry_at(self, index: int) -> ChatEntry | None:
        if not isinstance(index, int) or isinstance(index, bool):
            return None
        if index < 0 or index >= len(self.entries):
            return None
        return self.entries[index]

    def latest_visible_index(self) -> int | None:
        """Index of the last entry that is not side-channel, if any."""
        for index in range(len(self.entries) - 1, -1, -1):
            if not self.entries[index].is_side_channel:
                return index
        return None


@dataclass(frozen=True, slots=True)
class SlotObservation:
    """Normalized "slot text observed" event fed to the controller and the gate."""

    slot: SlotKey
    text: str
    finished: bool = True
    source: str = "generation_ended"
