"""Timer scheduling used by the guard (cooldown and settle delays)."""

from __future__ import annotations

import asyncio
import heapq
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol


class Scheduler(Protocol):
    """Single-shot millisecond timers."""

    def schedule_after(self, callback: Callable[[], None], delay_ms: int) -> Any:
        ...

    def cancel(self, handle: Any) -> None:
        ...


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def schedule_after(self, callback: Callable[[], None], delay_ms: int) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0, delay_ms) / 1000.0, callback)

    def cancel(self, handle: Any) -> None:
        if isinstance(handle, asyncio.TimerHandle):
            handle.cancel()


@dataclass(order=True)
class _ManualTimer:
    due_ms: int
    timer_id: int
    callback: Callable[[], None] = field(compare=False)


class ManualScheduler:
    """
    Virtual-clock scheduler.

    Nothing fires until `advance()` is called. Timers fire in due-time order
    (ties in scheduling order) and the clock reads the timer's due time while
    its callback runs, so callbacks that schedule new timers see a consistent now.
    """

    def __init__(self, start_ms: int = 0):
        self._now_ms = start_ms
        self._next_id = 1
        self._heap: list[_ManualTimer] = []
        self._live: set[int] = set()

    def now(self) -> int:
        return self._now_ms

    @property
    def pending(self) -> int:
        return len(self._live)

    def schedule_after(self, callback: Callable[[], None], delay_ms: int) -> int:
        timer_id = self._next_id
        self._next_id += 1
        heapq.heappush(self._heap, _ManualTimer(self._now_ms + max(0, int(delay_ms)), timer_id, callback))
        self._live.add(timer_id)
        return timer_id

    def cancel(self, handle: Any) -> None:
        self._live.discard(handle)

    def advance(self, ms: int) -> int:
        """Move the clock forward by `ms`, firing due timers. Returns timers fired."""
        target = self._now_ms + max(0, int(ms))
        fired = 0
        while self._heap and self._heap[0].due_ms <= target:
            timer = heapq.heappop(self._heap)
            if timer.timer_id not in self._live:
                continue
            self._live.discard(timer.timer_id)
            self._now_ms = max(self._now_ms, timer.due_ms)
            timer.callback()
            fired += 1
        self._now_ms = target
        return fired

    def run_all(self, limit: int = 1000) -> int:
        """Fire every pending timer, however far out. `limit` bounds runaway reschedules."""
        fired = 0
        while self._live and fired < limit:
            live = [timer for timer in self._heap if timer.timer_id in self._live]
            if not live:
                break
            fired += self.advance(min(live).due_ms - self._now_ms)
        return fired
