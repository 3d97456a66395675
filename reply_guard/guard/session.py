"""Generation session tracking: which slot does a finished generation refer to."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from loguru import logger

from reply_guard.guard.scheduler import Scheduler
from reply_guard.guard.types import ChatEntry, ConversationState, SlotKey, SlotObservation
from reply_guard.observability.events import GuardEventLog

DEFAULT_SETTLE_DELAY_MS = 250


def resolve_target_index(entries: Sequence[ChatEntry]) -> int:
    """
    Slot index a new generation is expected to fill.

    Side-channel entries are skipped. After a user entry a fresh reply goes one
    past it; after a reply the generation regenerates that reply in place.
    """
    for index in range(len(entries) - 1, -1, -1):
        entry = entries[index]
        if entry.is_side_channel:
            continue
        return index + 1 if entry.is_user else index
    return 0


class GenerationSessionTracker:
    """
    Tracks one generation attempt at a time and turns host notifications into
    `SlotObservation`s.

    Every deferred callback captures the session sequence when it is scheduled
    and does nothing if a newer session (or a reset) has happened since.
    """

    def __init__(
        self,
        *,
        scheduler: Scheduler,
        get_conversation: Callable[[], Any],
        on_observed: Callable[[SlotObservation], None],
        settle_delay_ms: int = DEFAULT_SETTLE_DELAY_MS,
        events: GuardEventLog | None = None,
    ):
        self._scheduler = scheduler
        self._get_conversation = get_conversation
        self._on_observed = on_observed
        self._settle_delay_ms = max(0, int(settle_delay_ms))
        self._events = events

        self._disposed = False
        self._sequence = 0
        self._chat_id: str | None = None
        self._target_index: int | None = None
        self._in_flight = False
        self._settle_handle: Any = None

    @property
    def sequence(self) -> int:
        return self._sequence

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def settle_pending(self) -> bool:
        return self._settle_handle is not None

    @property
    def is_busy(self) -> bool:
        """A generation is running or its result has not settled yet."""
        return self._in_flight or self._settle_handle is not None

    @property
    def target_slot(self) -> SlotKey | None:
        if self._chat_id is None or self._target_index is None:
            return None
        return SlotKey(self._chat_id, self._target_index)

    def begin(self) -> None:
        """A generation started: open a new session aimed at the expected slot."""
        if self._disposed:
            return
        self._sequence += 1
        self._cancel_settle()
        conversation = self._conversation()
        self._chat_id = conversation.chat_id
        self._target_index = resolve_target_index(conversation.entries)
        self._in_flight = True
        logger.debug(f"Generation session #{self._sequence} targets {self.target_slot}")

    def finish(self) -> None:
        """A generation ended: observe the target now, or after the settle delay."""
        if self._disposed:
            return
        self._in_flight = False
        conversation = self._conversation()
        if self._target_index is None or self._chat_id != conversation.chat_id:
            self._chat_id = conversation.chat_id
            self._target_index = resolve_target_index(conversation.entries)

        slot = SlotKey(self._chat_id, self._target_index)
        entry = conversation.entry_at(slot.index)
        if entry is not None and entry.is_reply and (entry.text or "").strip():
            self._cancel_settle()
            self._emit(SlotObservation(slot, entry.text or "", finished=True, source="generation_ended"))
            return

        self._schedule_settle(slot)

    def content_rendered(self, index: Any) -> None:
        """Content was rendered at `index`; accept it only for the latest reply."""
        if self._disposed:
            return
        if not isinstance(index, int) or isinstance(index, bool):
            logger.debug(f"Ignoring render notification with non-integer index {index!r}")
            return

        conversation = self._conversation()
        entry = conversation.entry_at(index)
        if entry is None:
            logger.debug(f"Ignoring render notification outside conversation bounds: index={index}")
            return
        if not entry.is_reply:
            return
        if conversation.latest_visible_index() != index:
            logger.debug(f"Ignoring render notification for superseded slot index={index}")
            return

        slot = SlotKey(conversation.chat_id, index)
        if self._in_flight or self._settle_handle is not None:
            if slot == self.target_slot:
                self._cancel_settle()
                self._in_flight = False
        else:
            self._chat_id = slot.chat_id
            self._target_index = slot.index

        self._emit(
            SlotObservation(
                slot,
                entry.text or "",
                finished=not self._in_flight,
                source="content_rendered",
            )
        )

    def read_text(self, slot: SlotKey) -> str:
        """Current text at `slot`, or an empty string when it is not a reply there."""
        conversation = self._conversation()
        if conversation.chat_id != slot.chat_id:
            return ""
        entry = conversation.entry_at(slot.index)
        if entry is None or not entry.is_reply:
            return ""
        return entry.text or ""

    def reset(self) -> None:
        """Supersede any session in progress."""
        self._sequence += 1
        self._cancel_settle()
        self._chat_id = None
        self._target_index = None
        self._in_flight = False

    def dispose(self) -> None:
        self.reset()
        self._disposed = True

    def _schedule_settle(self, slot: SlotKey) -> None:
        self._cancel_settle()
        sequence = self._sequence

        def _settle() -> None:
            if sequence != self._sequence or self._disposed:
                return
            self._settle_handle = None
            conversation = self._conversation()
            if conversation.chat_id != slot.chat_id:
                logger.debug(f"Dropping settle for {slot}: conversation changed")
                return
            text = self.read_text(slot)
            if not text.strip():
                logger.info(f"Reply slot {slot} still empty after settle delay")
                self._record("settle_expired", slot=str(slot))
            self._emit(SlotObservation(slot, text, finished=True, source="settle"))

        logger.debug(f"Slot {slot} not materialized yet; settling for {self._settle_delay_ms}ms")
        self._record("settle_scheduled", slot=str(slot), delay_ms=self._settle_delay_ms)
        self._settle_handle = self._scheduler.schedule_after(_settle, self._settle_delay_ms)

    def _cancel_settle(self) -> None:
        if self._settle_handle is None:
            return
        handle, self._settle_handle = self._settle_handle, None
        self._scheduler.cancel(handle)

    def _conversation(self) -> ConversationState:
        return ConversationState.from_context(self._get_conversation())

    def _emit(self, observation: SlotObservation) -> None:
        self._on_observed(observation)

    def _record(self, kind: str, **fields: Any) -> None:
        if self._events is not None:
            self._events.record(kind, **fields)
