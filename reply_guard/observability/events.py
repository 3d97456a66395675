"""Observable guard events: bounded in-memory log with optional JSONL sink."""

from __future__ import annotations

import json
from collections import Counter, deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable

from loguru import logger

from reply_guard.utils.helpers import ensure_dir

EVENT_KINDS: tuple[str, ...] = (
    "check",
    "retry_scheduled",
    "regenerate",
    "regenerate_failed",
    "max_retries_reached",
    "manual_override",
    "reset",
    "settle_scheduled",
    "settle_expired",
    "send_blocked",
    "send_allowed",
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {str(key): _jsonable(item) for key, item in value.items()}
    return str(value)


class GuardEventLog:
    """Record of what the guard decided, for tests, the CLI and offline review."""

    def __init__(self, path: Path | None = None, max_events: int = 500):
        self.path = path
        self._events: deque[dict[str, Any]] = deque(maxlen=max(1, int(max_events)))
        if path is not None:
            ensure_dir(path.parent)

    def _append(self, payload: dict[str, Any]) -> bool:
        if self.path is None:
            return False
        line = json.dumps(payload, ensure_ascii=False)
        try:
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(line + "\n")
            return True
        except OSError as e:
            logger.warning(f"Failed to append guard event to {self.path}: {e}")
            return False

    def record(self, kind: str, **fields: Any) -> dict[str, Any]:
        event = {"kind": kind, "ts": _now_iso()}
        event.update({key: _jsonable(value) for key, value in fields.items()})
        self._events.append(event)
        self._append(event)
        return event

    @property
    def events(self) -> list[dict[str, Any]]:
        return list(self._events)

    def of_kind(self, kind: str) -> list[dict[str, Any]]:
        return [event for event in self._events if event.get("kind") == kind]

    def kinds(self) -> list[str]:
        return [str(event.get("kind")) for event in self._events]

    def clear(self) -> None:
        self._events.clear()

    def snapshot(self) -> dict[str, Any]:
        return summarize(self._events)


def summarize(events: Iterable[dict[str, Any]]) -> dict[str, Any]:
    """Counts per kind plus a few derived totals."""
    counts: Counter[str] = Counter()
    slots_exhausted: set[str] = set()
    total = 0
    for event in events:
        total += 1
        kind = str(event.get("kind", "unknown"))
        counts[kind] += 1
        if kind == "max_retries_reached" and event.get("slot"):
            slots_exhausted.add(str(event["slot"]))

    decisions = counts["send_blocked"] + counts["send_allowed"]
    return {
        "total": total,
        "counts": {kind: counts[kind] for kind in sorted(counts)},
        "regenerations": counts["regenerate"],
        "regenerate_failures": counts["regenerate_failed"],
        "slots_exhausted": sorted(slots_exhausted),
        "send_block_rate": round(counts["send_blocked"] / decisions * 100.0, 2) if decisions else 0.0,
    }


def load_events(path: Path) -> list[dict[str, Any]]:
    """Read a JSONL event file, skipping unreadable lines."""
    events: list[dict[str, Any]] = []
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError:
        return events
    for line in raw.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError:
            continue
        if isinstance(payload, dict):
            events.append(payload)
    return events
