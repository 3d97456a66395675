"""Wires host notifications to the retry controller, session tracker and send gate."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from typing import Any

from loguru import logger

from reply_guard.bus.emitter import EventSource
from reply_guard.bus.events import DEFAULT_EVENT_NAMES, HostEvent
from reply_guard.config.schema import GuardConfig
from reply_guard.guard.controller import RetryController
from reply_guard.guard.gate import AutoContinueGate
from reply_guard.guard.scheduler import Scheduler
from reply_guard.guard.session import DEFAULT_SETTLE_DELAY_MS, GenerationSessionTracker
from reply_guard.guard.types import SlotObservation
from reply_guard.guard.validity import make_validator
from reply_guard.observability.events import GuardEventLog


class GuardRuntime:
    """
    Host-facing entry point.

    Subscribes to the host event source on construction; `dispose()` removes
    every subscription and cancels every timer.
    """

    def __init__(
        self,
        *,
        event_source: EventSource,
        get_conversation: Callable[[], Any],
        regenerate: Callable[[], Any],
        get_settings: Callable[[], Any],
        scheduler: Scheduler,
        get_cooperating_settings: Callable[[], Any] | None = None,
        event_names: Mapping[HostEvent, str] | None = None,
        settle_delay_ms: int = DEFAULT_SETTLE_DELAY_MS,
        tags: Iterable[str] | None = None,
        events: GuardEventLog | None = None,
    ):
        self.event_source = event_source
        self.events = events
        self._get_cooperating_settings = get_cooperating_settings
        self._disposed = False
        self._regenerate = regenerate
        self._auto_regenerating = False

        validator = make_validator(tags)
        self.controller = RetryController(
            get_settings=get_settings,
            scheduler=scheduler,
            regenerate=self._run_regenerate,
            validator=validator,
            events=events,
        )
        self.tracker = GenerationSessionTracker(
            scheduler=scheduler,
            get_conversation=get_conversation,
            on_observed=self._on_observed,
            settle_delay_ms=settle_delay_ms,
            events=events,
        )
        self.gate = AutoContinueGate(tracker=self.tracker, validator=validator, events=events)

        names = dict(DEFAULT_EVENT_NAMES)
        names.update(event_names or {})
        self._subscriptions: list[tuple[str, Callable[..., None]]] = [
            (names[HostEvent.GENERATION_STARTED], self._on_generation_started),
            (names[HostEvent.GENERATION_ENDED], self._on_generation_ended),
            (names[HostEvent.CONTENT_RENDERED], self._on_content_rendered),
            (names[HostEvent.MESSAGE_SENT], self._on_message_sent),
            (names[HostEvent.CHAT_CHANGED], self._on_chat_changed),
        ]
        for name, handler in self._subscriptions:
            self.event_source.on(name, handler)

    @classmethod
    def from_config(cls, config: GuardConfig, **deps: Any) -> GuardRuntime:
        """Build a runtime whose settings accessors read the live config sections."""
        deps.setdefault("get_settings", lambda: config.retry)
        deps.setdefault("get_cooperating_settings", lambda: config.cooperating)
        deps.setdefault("settle_delay_ms", config.tracker.settle_delay_ms)
        deps.setdefault("tags", config.validity.tags)
        return cls(**deps)

    @property
    def disposed(self) -> bool:
        return self._disposed

    def evaluate_send(
        self,
        is_trusted: bool,
        message_text: str,
        cooperating_settings: Any = None,
    ) -> bool:
        """Return True when the cooperating automation's send must be blocked."""
        if self._disposed:
            return False
        if cooperating_settings is None and self._get_cooperating_settings is not None:
            cooperating_settings = self._get_cooperating_settings()
        return self.gate.should_block(is_trusted, message_text, cooperating_settings)

    @property
    def auto_regenerating(self) -> bool:
        """True while the guard's own regenerate action is running."""
        return self._auto_regenerating

    def notify_manual_override(self) -> None:
        """The user regenerated by hand. Ignored while the guard's own action runs."""
        if self._disposed:
            return
        if self._auto_regenerating:
            logger.debug("Ignoring regenerate notification raised by the guard's own retry")
            return
        self.controller.on_manual_override()

    def _run_regenerate(self) -> Any:
        self._auto_regenerating = True
        try:
            return self._regenerate()
        finally:
            self._auto_regenerating = False

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        for name, handler in self._subscriptions:
            self.event_source.off(name, handler)
        self.controller.dispose()
        self.tracker.dispose()
        logger.debug("Guard runtime disposed")

    def _on_generation_started(self, *_: Any) -> None:
        if self._disposed:
            return
        self.tracker.begin()
        self.controller.on_generation_started()

    def _on_generation_ended(self, *_: Any) -> None:
        if self._disposed:
            return
        self.tracker.finish()

    def _on_content_rendered(self, index: Any = None, *_: Any) -> None:
        if self._disposed:
            return
        self.tracker.content_rendered(index)

    def _on_message_sent(self, *_: Any) -> None:
        if self._disposed:
            return
        self._reset("user message sent")
        self.controller.on_user_message_sent()

    def _on_chat_changed(self, *_: Any) -> None:
        if self._disposed:
            return
        self._reset("chat changed")
        self.controller.on_chat_changed()

    def _reset(self, reason: str) -> None:
        self.tracker.reset()
        self.gate.reset()
        if self.events is not None:
            self.events.record("reset", reason=reason)

    def _on_observed(self, observation: SlotObservation) -> None:
        if self._disposed:
            return
        logger.debug(
            f"Observed slot={observation.slot}, source={observation.source}, "
            f"finished={observation.finished}"
        )
        if observation.finished:
            self.controller.on_generation_ended(observation.slot, observation.text)
        else:
            self.controller.observe(observation.slot, observation.text)
        self.gate.update(observation.slot, observation.text)
