from typing import Any

import pytest

from reply_guard.guard.scheduler import ManualScheduler
from reply_guard.guard.session import GenerationSessionTracker, resolve_target_index
from reply_guard.guard.types import ChatEntry, SlotKey, SlotObservation
from reply_guard.observability.events import GuardEventLog


def user(text: str = "hi") -> dict[str, Any]:
    return {"is_user": True, "is_system": False, "mes": text}


def reply(text: str) -> dict[str, Any]:
    return {"is_user": False, "is_system": False, "mes": text}


def system(text: str = "note") -> dict[str, Any]:
    return {"is_user": False, "is_system": True, "mes": text}


class NonCancellingScheduler(ManualScheduler):
    """Lets superseded timers fire so the sequence guard is what stops them."""

    def cancel(self, handle: Any) -> None:
        return


class Harness:
    def __init__(self, scheduler: ManualScheduler | None = None, settle_delay_ms: int = 250):
        self.context: dict[str, Any] = {"chatId": "chat-a", "chat": []}
        self.scheduler = scheduler or ManualScheduler()
        self.events = GuardEventLog()
        self.observed: list[SlotObservation] = []
        self.tracker = GenerationSessionTracker(
            scheduler=self.scheduler,
            get_conversation=lambda: self.context,
            on_observed=self.observed.append,
            settle_delay_ms=settle_delay_ms,
            events=self.events,
        )

    @property
    def chat(self) -> list[dict[str, Any]]:
        return self.context["chat"]


@pytest.mark.parametrize(
    ("entries", "expected"),
    [
        ([], 0),
        ([user()], 1),
        ([user(), reply("a")], 1),
        ([user(), reply("a"), system()], 1),
        ([user(), system()], 1),
        ([system()], 0),
        ([user(), reply("a"), user()], 3),
    ],
)
def test_resolve_target_index(entries: list[dict[str, Any]], expected: int):
    assert resolve_target_index([ChatEntry.from_payload(item) for item in entries]) == expected


def test_begin_targets_fresh_slot_after_user_entry():
    h = Harness()
    h.chat.append(user())
    h.tracker.begin()

    assert h.tracker.target_slot == SlotKey("chat-a", 1)
    assert h.tracker.in_flight
    assert h.tracker.is_busy
    assert h.tracker.sequence == 1


def test_finish_with_materialized_reply_observes_immediately():
    h = Harness()
    h.chat.append(user())
    h.tracker.begin()
    h.chat.append(reply("no tags"))
    h.tracker.finish()

    assert h.observed == [SlotObservation(SlotKey("chat-a", 1), "no tags", True, "generation_ended")]
    assert not h.tracker.is_busy


def test_finish_without_session_resolves_latest_reply():
    h = Harness()
    h.chat.extend([user(), reply("text")])
    h.tracker.finish()

    assert h.observed[0].slot == SlotKey("chat-a", 1)


def test_finish_before_reply_materializes_waits_for_settle():
    h = Harness()
    h.chat.append(user())
    h.tracker.begin()
    h.tracker.finish()

    assert h.observed == []
    assert h.tracker.settle_pending
    assert h.tracker.is_busy

    h.chat.append(reply("late text"))
    h.scheduler.advance(249)
    assert h.observed == []
    h.scheduler.advance(1)

    assert h.observed == [SlotObservation(SlotKey("chat-a", 1), "late text", True, "settle")]
    assert not h.tracker.settle_pending
    assert h.events.of_kind("settle_expired") == []


def test_settle_with_missing_reply_observes_empty_text():
    h = Harness()
    h.chat.append(user())
    h.tracker.begin()
    h.tracker.finish()
    h.scheduler.advance(250)

    assert h.observed == [SlotObservation(SlotKey("chat-a", 1), "", True, "settle")]
    assert len(h.events.of_kind("settle_expired")) == 1


def test_blank_reply_is_not_treated_as_materialized():
    h = Harness()
    h.chat.extend([user(), reply("   ")])
    h.tracker.finish()

    assert h.observed == []
    h.scheduler.advance(250)
    assert h.observed[0].text == "   "


def test_stale_settle_is_discarded_by_sequence_guard():
    h = Harness(scheduler=NonCancellingScheduler())
    h.chat.append(user())
    h.tracker.begin()
    h.tracker.finish()
    h.tracker.begin()
    h.scheduler.advance(1000)

    assert h.observed == []
    assert h.tracker.in_flight


def test_reset_discards_pending_settle():
    h = Harness(scheduler=NonCancellingScheduler())
    h.chat.append(user())
    h.tracker.begin()
    h.tracker.finish()
    h.tracker.reset()
    h.scheduler.advance(1000)

    assert h.observed == []
    assert h.tracker.target_slot is None


def test_settle_is_dropped_when_conversation_changed():
    h = Harness()
    h.chat.append(user())
    h.tracker.begin()
    h.tracker.finish()
    h.context = {"chatId": "chat-b", "chat": [user(), reply("other")]}
    h.scheduler.advance(250)

    assert h.observed == []


def test_rendered_target_finishes_generation():
    h = Harness()
    h.chat.append(user())
    h.tracker.begin()
    h.chat.append(reply("rendered"))
    h.tracker.content_rendered(1)

    assert h.observed == [SlotObservation(SlotKey("chat-a", 1), "rendered", True, "content_rendered")]
    assert not h.tracker.in_flight


def test_rendered_target_cancels_pending_settle():
    h = Harness()
    h.chat.append(user())
    h.tracker.begin()
    h.tracker.finish()
    h.chat.append(reply("rendered"))
    h.tracker.content_rendered(1)
    h.scheduler.advance(1000)

    assert [item.source for item in h.observed] == ["content_rendered"]
    assert not h.tracker.is_busy


def test_rendered_non_target_during_generation_is_not_finished():
    h = Harness()
    h.chat.extend([user(), reply("first")])
    h.tracker.begin()
    h.chat.append(reply("appended"))
    h.tracker.content_rendered(2)

    assert h.observed[0].slot == SlotKey("chat-a", 2)
    assert h.observed[0].finished is False
    assert h.tracker.in_flight


@pytest.mark.parametrize("index", [-1, 5, True, "1", None])
def test_render_with_bad_index_is_ignored(index: Any):
    h = Harness()
    h.chat.extend([user(), reply("text")])
    h.tracker.content_rendered(index)

    assert h.observed == []


def test_render_for_user_or_side_channel_entry_is_ignored():
    h = Harness()
    h.chat.extend([user(), system()])
    h.tracker.content_rendered(0)
    h.tracker.content_rendered(1)

    assert h.observed == []


def test_render_for_superseded_reply_is_ignored():
    h = Harness()
    h.chat.extend([user(), reply("old"), user("next")])
    h.tracker.content_rendered(1)

    assert h.observed == []


def test_render_skips_trailing_side_channel_entries():
    h = Harness()
    h.chat.extend([user(), reply("text"), system()])
    h.tracker.content_rendered(1)

    assert h.observed[0].slot == SlotKey("chat-a", 1)


def test_read_text_requires_same_chat_and_reply_entry():
    h = Harness()
    h.chat.extend([user(), reply("text")])

    assert h.tracker.read_text(SlotKey("chat-a", 1)) == "text"
    assert h.tracker.read_text(SlotKey("chat-a", 0)) == ""
    assert h.tracker.read_text(SlotKey("chat-a", 9)) == ""
    assert h.tracker.read_text(SlotKey("chat-b", 1)) == ""


def test_dispose_stops_all_callbacks():
    h = Harness()
    h.chat.append(user())
    h.tracker.begin()
    h.tracker.finish()
    h.tracker.dispose()
    h.chat.append(reply("late"))
    h.scheduler.advance(1000)
    h.tracker.finish()
    h.tracker.content_rendered(1)

    assert h.observed == []
    assert h.scheduler.pending == 0
