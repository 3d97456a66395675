"""Replay scripted host scenarios through a GuardRuntime on a virtual clock."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from reply_guard.bus.emitter import EventBus
from reply_guard.bus.events import HostEvent
from reply_guard.config.schema import CooperatingSettings, GuardConfig, RetrySettings
from reply_guard.guard.runtime import GuardRuntime
from reply_guard.guard.scheduler import ManualScheduler
from reply_guard.guard.types import ChatEntry, ConversationState
from reply_guard.observability.events import GuardEventLog


class ScenarioError(ValueError):
    """Raised for scripts that cannot be replayed."""


@dataclass
class SendDecision:
    at_ms: int
    text: str
    trusted: bool
    blocked: bool


@dataclass
class ScenarioResult:
    regenerations: list[int] = field(default_factory=list)
    decisions: list[SendDecision] = field(default_factory=list)
    events: GuardEventLog = field(default_factory=GuardEventLog)
    elapsed_ms: int = 0


def parse_host_event(raw: Any) -> HostEvent:
    """Accept a host event value (`generation_ended`) or member name (`GENERATION_ENDED`)."""
    text = str(raw or "").strip()
    for event in HostEvent:
        if text == event.value or text.upper() == event.name:
            return event
    raise ScenarioError(f"Unknown host event: {raw!r}")


def load_script(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ScenarioError(f"Cannot read scenario {path}: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("steps"), list):
        raise ScenarioError("Scenario must be an object with a 'steps' list")
    return data


def _merge_retry(current: RetrySettings, raw: dict[str, Any]) -> RetrySettings:
    """Overlay only the keys present in `raw` (snake or camel case) onto `current`."""
    partial = RetrySettings.model_validate(raw)
    return current.model_copy(update=partial.model_dump(exclude_unset=True))


def run_scenario(script: dict[str, Any], config: GuardConfig | None = None) -> ScenarioResult:
    """Run every step of `script`, returning regenerations, send decisions and guard events."""
    config = (config or GuardConfig()).model_copy(deep=True)
    if isinstance(script.get("settings"), dict):
        config.retry = _merge_retry(config.retry, script["settings"])
    if isinstance(script.get("cooperating"), dict):
        config.cooperating = CooperatingSettings.model_validate(script["cooperating"])
    if "settleDelayMs" in script:
        config.tracker.settle_delay_ms = script["settleDelayMs"]
    if isinstance(script.get("tags"), list):
        config.validity.tags = [str(tag) for tag in script["tags"]]

    bus = EventBus()
    scheduler = ManualScheduler()
    conversation = ConversationState(chat_id=str(script.get("chatId") or "chat"))
    log_path = Path(config.events.log_path).expanduser() if config.events.log_path else None
    result = ScenarioResult(events=GuardEventLog(log_path, max_events=config.events.max_events))
    starts_generation = script.get("regenerateStartsGeneration", True) is True

    def regenerate() -> None:
        result.regenerations.append(scheduler.now())
        if starts_generation:
            bus.emit(HostEvent.GENERATION_STARTED)

    runtime = GuardRuntime.from_config(
        config,
        event_source=bus,
        get_conversation=lambda: conversation,
        regenerate=regenerate,
        scheduler=scheduler,
        events=result.events,
    )

    try:
        for number, step in enumerate(script["steps"], start=1):
            if not isinstance(step, dict):
                raise ScenarioError(f"Step {number} is not an object")
            _run_step(number, step, bus, scheduler, conversation, config, runtime, result)
    finally:
        runtime.dispose()

    result.elapsed_ms = scheduler.now()
    return result


def _run_step(
    number: int,
    step: dict[str, Any],
    bus: EventBus,
    scheduler: ManualScheduler,
    conversation: ConversationState,
    config: GuardConfig,
    runtime: GuardRuntime,
    result: ScenarioResult,
) -> None:
    op = str(step.get("op", "")).strip().lower()

    if op == "user":
        conversation.entries.append(ChatEntry(is_user=True, text=str(step.get("text", ""))))
        if step.get("emit", True):
            bus.emit(HostEvent.MESSAGE_SENT)
    elif op == "reply":
        conversation.entries.append(ChatEntry(text=str(step.get("text", ""))))
    elif op == "system":
        conversation.entries.append(ChatEntry(is_side_channel=True, text=str(step.get("text", ""))))
    elif op == "edit":
        index = step.get("index", len(conversation.entries) - 1)
        entry = conversation.entry_at(index)
        if entry is None:
            raise ScenarioError(f"Step {number}: no entry at index {index!r}")
        entry.text = str(step.get("text", ""))
    elif op == "emit":
        event = parse_host_event(step.get("event"))
        if event is HostEvent.CONTENT_RENDERED:
            bus.emit(event, step.get("index"))
        else:
            bus.emit(event)
    elif op == "render":
        bus.emit(HostEvent.CONTENT_RENDERED, step.get("index", len(conversation.entries) - 1))
    elif op == "advance":
        scheduler.advance(int(step.get("ms", 0)))
    elif op == "send":
        text = str(step.get("text", ""))
        trusted = step.get("trusted", False) is True
        blocked = runtime.evaluate_send(trusted, text, step.get("cooperating"))
        result.decisions.append(SendDecision(scheduler.now(), text, trusted, blocked))
    elif op == "manual_override":
        runtime.notify_manual_override()
    elif op == "settings":
        values = step.get("values", {})
        if not isinstance(values, dict):
            raise ScenarioError(f"Step {number}: 'values' must be an object")
        config.retry = _merge_retry(config.retry, values)
    elif op == "chat":
        conversation.chat_id = str(step.get("chatId") or f"chat-{number}")
        conversation.entries.clear()
        bus.emit(HostEvent.CHAT_CHANGED)
    else:
        raise ScenarioError(f"Step {number}: unknown op {op!r}")
