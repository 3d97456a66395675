"""Auto-retry state machine."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from loguru import logger

from reply_guard.config.schema import RetrySettings
from reply_guard.guard.scheduler import Scheduler
from reply_guard.guard.types import SlotKey
from reply_guard.guard.validity import has_valid_content
from reply_guard.observability.events import GuardEventLog


class RetryController:
    """
    Re-trigger generation while the reply at the current slot is invalid.

    The retry count is per slot: a new slot, a valid reply, a user message or a
    chat switch all start over. At most one retry timer is pending at a time.
    The budget is spent before the regenerate action runs, so a failing action
    still uses up its attempt.
    """

    def __init__(
        self,
        *,
        get_settings: Callable[[], Any],
        scheduler: Scheduler,
        regenerate: Callable[[], Any],
        validator: Callable[[Any], bool] = has_valid_content,
        events: GuardEventLog | None = None,
    ):
        self._get_settings = get_settings
        self._scheduler = scheduler
        self._regenerate = regenerate
        self._validator = validator
        self._events = events

        self._disposed = False
        self._generation_in_flight = False
        self._pending_timer: Any = None

        self._retry_count = 0
        self._last_slot: SlotKey | None = None
        self._suppressed = False
        self._max_reported_slot: SlotKey | None = None
        self._checked_slot: SlotKey | None = None
        self._checked_valid: bool | None = None

    @property
    def retry_count(self) -> int:
        return self._retry_count

    @property
    def last_slot(self) -> SlotKey | None:
        return self._last_slot

    @property
    def suppressed(self) -> bool:
        return self._suppressed

    @property
    def has_pending_retry(self) -> bool:
        return self._pending_timer is not None

    @property
    def generation_in_flight(self) -> bool:
        return self._generation_in_flight

    def dispose(self) -> None:
        self._disposed = True
        self._cancel_pending()

    def on_generation_started(self) -> None:
        self._generation_in_flight = True
        self._cancel_pending()

    def on_generation_ended(self, slot: SlotKey | None, text: Any) -> None:
        self._generation_in_flight = False
        self.observe(slot, text)

    def observe(self, slot: SlotKey | None, text: Any) -> None:
        """Evaluate the text currently held by `slot` and schedule a retry if needed."""
        if self._disposed:
            return

        settings = self._read_settings()
        if not settings.enabled:
            self._cancel_pending()
            return

        if settings.stop_on_manual_regen and self._suppressed:
            return

        if slot is None:
            return

        if self._last_slot != slot:
            self._retry_count = 0
            self._last_slot = slot
            self._max_reported_slot = None
            self._cancel_pending()

        valid = self._validator(text)
        if self._checked_slot != slot or self._checked_valid != valid:
            self._checked_slot = slot
            self._checked_valid = valid
            logger.info(
                f"Reply check: slot={slot}, valid={valid}, "
                f"retry_count={self._retry_count}, max_retries={settings.max_retries}"
            )
            self._record(
                "check",
                slot=str(slot),
                valid=valid,
                retry_count=self._retry_count,
                max_retries=settings.max_retries,
            )

        if valid:
            self._retry_count = 0
            self._max_reported_slot = None
            self._cancel_pending()
            return

        if self._pending_timer is not None:
            return

        if self._retry_count >= settings.max_retries:
            if self._max_reported_slot != slot:
                self._max_reported_slot = slot
                logger.warning(f"Max retries reached: slot={slot}, max_retries={settings.max_retries}")
                self._record("max_retries_reached", slot=str(slot), max_retries=settings.max_retries)
            return

        if self._generation_in_flight:
            return

        self._retry_count += 1
        attempt = self._retry_count
        cooldown_ms = settings.cooldown_ms

        logger.info(
            f"Retry scheduled: slot={slot}, attempt={attempt}/{settings.max_retries}, "
            f"cooldown_ms={cooldown_ms}"
        )
        self._record(
            "retry_scheduled",
            slot=str(slot),
            attempt=attempt,
            max_retries=settings.max_retries,
            cooldown_ms=cooldown_ms,
        )

        def _fire() -> None:
            self._pending_timer = None
            if self._disposed:
                return

            latest = self._read_settings()
            if not latest.enabled:
                return
            if latest.stop_on_manual_regen and self._suppressed:
                return

            logger.info(f"Regenerating: slot={slot}, attempt={attempt}")
            self._record("regenerate", slot=str(slot), attempt=attempt)
            try:
                self._regenerate()
            except Exception as e:
                logger.error(f"Regenerate action failed: slot={slot}, attempt={attempt}: {e}")
                self._record("regenerate_failed", slot=str(slot), attempt=attempt, error=str(e))

        self._pending_timer = self._scheduler.schedule_after(_fire, cooldown_ms)

    def on_user_message_sent(self) -> None:
        self._reset("user message sent")

    def on_chat_changed(self) -> None:
        self._reset("chat changed")

    def on_manual_override(self) -> None:
        """User regenerated by hand: freeze auto-retry until the next user turn."""
        settings = self._read_settings()
        if not settings.stop_on_manual_regen:
            return

        self._suppressed = True
        self._retry_count = 0
        self._max_reported_slot = None
        self._checked_slot = None
        self._checked_valid = None
        self._cancel_pending()

        logger.info("Manual regenerate detected; auto-retry suppressed until next user message")
        self._record("manual_override", slot=str(self._last_slot) if self._last_slot else None)

    def _cancel_pending(self) -> None:
        if self._pending_timer is None:
            return
        handle, self._pending_timer = self._pending_timer, None
        try:
            self._scheduler.cancel(handle)
        except Exception as e:
            logger.error(f"Failed to cancel retry timer: {e}")

    def _reset(self, reason: str) -> None:
        self._retry_count = 0
        self._last_slot = None
        self._suppressed = False
        self._generation_in_flight = False
        self._max_reported_slot = None
        self._checked_slot = None
        self._checked_valid = None
        self._cancel_pending()
        logger.debug(f"Retry state reset ({reason})")

    def _read_settings(self) -> RetrySettings:
        return RetrySettings.coerce(self._get_settings())

    def _record(self, kind: str, **fields: Any) -> None:
        if self._events is not None:
            self._events.record(kind, **fields)
