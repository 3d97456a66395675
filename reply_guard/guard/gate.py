"""One-shot send gate for the cooperating auto-continue automation."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from loguru import logger

from reply_guard.config.schema import CooperatingSettings
from reply_guard.guard.session import GenerationSessionTracker
from reply_guard.guard.types import SlotKey
from reply_guard.guard.validity import has_valid_content
from reply_guard.observability.events import GuardEventLog
from reply_guard.utils.helpers import compact_preview


class AutoContinueGate:
    """
    Hold back programmatic "timeskip" sends until the observed reply is valid,
    then let exactly one through for that slot.
    """

    def __init__(
        self,
        *,
        tracker: GenerationSessionTracker,
        validator: Callable[[Any], bool] = has_valid_content,
        events: GuardEventLog | None = None,
    ):
        self._tracker = tracker
        self._validator = validator
        self._events = events

        self._observed_slot: SlotKey | None = None
        self._last_known_valid = True
        self._consumed_for_slot: SlotKey | None = None

    @property
    def observed_slot(self) -> SlotKey | None:
        return self._observed_slot

    @property
    def last_known_valid(self) -> bool:
        return self._last_known_valid

    @property
    def consumed_for_slot(self) -> SlotKey | None:
        return self._consumed_for_slot

    def update(self, slot: SlotKey, text: Any) -> None:
        if slot != self._observed_slot:
            self._observed_slot = slot
            self._consumed_for_slot = None
        self._last_known_valid = self._validator(text)

    def reset(self) -> None:
        self._observed_slot = None
        self._last_known_valid = True
        self._consumed_for_slot = None

    def should_block(self, is_trusted: bool, message_text: Any, cooperating_settings: Any) -> bool:
        """Return True to block this send attempt."""
        if is_trusted:
            return False

        text = message_text if isinstance(message_text, str) else ""
        settings = CooperatingSettings.coerce(cooperating_settings)
        if settings is None:
            if cooperating_settings is not None:
                logger.debug("Ignoring malformed cooperating automation settings")
            return False
        if not (settings.enabled and settings.auto_continue_active and settings.matches(text)):
            return False

        if self._tracker.is_busy:
            return self._block("generation pending", text)

        slot = self._observed_slot
        if slot is None:
            return self._allow(None, text)

        self._last_known_valid = self._validator(self._tracker.read_text(slot))
        if not self._last_known_valid:
            return self._block("reply invalid", text, slot)

        if self._consumed_for_slot == slot:
            return self._block("already sent for this reply", text, slot)

        self._consumed_for_slot = slot
        return self._allow(slot, text)

    def _block(self, reason: str, text: str, slot: SlotKey | None = None) -> bool:
        logger.warning(f"Blocked auto-continue send: reason={reason}, slot={slot}, text={compact_preview(text, 40)!r}")
        if self._events is not None:
            self._events.record("send_blocked", reason=reason, slot=str(slot) if slot else None)
        return True

    def _allow(self, slot: SlotKey | None, text: str) -> bool:
        logger.info(f"Allowed auto-continue send: slot={slot}, text={compact_preview(text, 40)!r}")
        if self._events is not None:
            self._events.record("send_allowed", slot=str(slot) if slot else None)
        return False
