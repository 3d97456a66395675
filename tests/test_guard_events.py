import json
from pathlib import Path

from reply_guard.observability.events import GuardEventLog, load_events, summarize


def test_record_keeps_kind_timestamp_and_fields():
    log = GuardEventLog()
    event = log.record("retry_scheduled", slot="chat-a:1", attempt=1, extra=Path("x"))

    assert event["kind"] == "retry_scheduled"
    assert event["ts"]
    assert event["slot"] == "chat-a:1"
    assert event["extra"] == "x"
    assert log.kinds() == ["retry_scheduled"]


def test_in_memory_log_is_bounded():
    log = GuardEventLog(max_events=3)
    for attempt in range(5):
        log.record("check", attempt=attempt)

    assert [event["attempt"] for event in log.events] == [2, 3, 4]
    log.clear()
    assert log.events == []


def test_jsonl_sink_appends_one_line_per_event(tmp_path: Path):
    path = tmp_path / "logs" / "events.jsonl"
    log = GuardEventLog(path)
    log.record("regenerate", slot="c:1", attempt=1)
    log.record("send_blocked", reason="reply invalid", slot="c:1")

    lines = path.read_text(encoding="utf-8").splitlines()
    assert [json.loads(line)["kind"] for line in lines] == ["regenerate", "send_blocked"]
    assert load_events(path) == log.events


def test_load_events_skips_bad_lines(tmp_path: Path):
    path = tmp_path / "events.jsonl"
    path.write_text('{"kind": "check"}\n\nnot json\n[1, 2]\n{"kind": "reset"}\n', encoding="utf-8")

    assert [event["kind"] for event in load_events(path)] == ["check", "reset"]
    assert load_events(tmp_path / "missing.jsonl") == []


def test_summarize_counts_and_derived_totals():
    events = [
        {"kind": "regenerate"},
        {"kind": "regenerate"},
        {"kind": "regenerate_failed"},
        {"kind": "max_retries_reached", "slot": "c:1"},
        {"kind": "max_retries_reached", "slot": "c:1"},
        {"kind": "max_retries_reached", "slot": "c:3"},
        {"kind": "send_blocked"},
        {"kind": "send_blocked"},
        {"kind": "send_blocked"},
        {"kind": "send_allowed"},
    ]
    summary = summarize(events)

    assert summary["total"] == 10
    assert summary["counts"]["regenerate"] == 2
    assert summary["regenerations"] == 2
    assert summary["regenerate_failures"] == 1
    assert summary["slots_exhausted"] == ["c:1", "c:3"]
    assert summary["send_block_rate"] == 75.0


def test_snapshot_of_empty_log():
    snapshot = GuardEventLog().snapshot()

    assert snapshot["total"] == 0
    assert snapshot["counts"] == {}
    assert snapshot["send_block_rate"] == 0.0
