from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from reply_guard import __version__
from reply_guard.cli.commands import app
from reply_guard.observability.events import GuardEventLog

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated_data_dir(monkeypatch, tmp_path: Path) -> Path:
    data_dir = tmp_path / "data"
    monkeypatch.setenv("REPLY_GUARD_DATA_DIR", str(data_dir))
    return data_dir


def test_top_level_without_args_shows_help():
    result = runner.invoke(app, [])
    assert result.exit_code in {0, 2}
    assert "Usage: reply-guard" in result.stdout


@pytest.mark.parametrize(
    ("group_name", "expected_help"),
    [
        ("config", "Manage configuration"),
        ("events", "Inspect recorded guard events"),
    ],
)
def test_group_command_without_subcommand_shows_help(group_name: str, expected_help: str):
    result = runner.invoke(app, [group_name])
    assert result.exit_code == 0
    assert f"Usage: reply-guard {group_name}" in result.stdout
    assert expected_help in result.stdout
    assert "Missing command." not in result.stdout


def test_version_alias_matches_global_flag_output():
    from_command = runner.invoke(app, ["version"])
    from_flag = runner.invoke(app, ["--version"])

    assert from_command.exit_code == 0
    assert from_flag.exit_code == 0
    assert f"v{__version__}" in from_command.stdout
    assert f"v{__version__}" in from_flag.stdout


def test_check_reports_valid_reply():
    result = runner.invoke(app, ["check", "<正文>hello</正文>"])
    assert result.exit_code == 0
    assert "valid" in result.stdout
    assert "invalid" not in result.stdout


def test_check_reports_invalid_reply_with_exit_code():
    result = runner.invoke(app, ["check", "<正文>  </正文>"])
    assert result.exit_code == 1
    assert "invalid" in result.stdout


def test_check_uses_given_tags():
    assert runner.invoke(app, ["check", "<story>ok</story>", "--tag", "story"]).exit_code == 0
    assert runner.invoke(app, ["check", "<story>ok</story>"]).exit_code == 1


def test_simulate_prints_regenerations_and_decisions(tmp_path: Path):
    script = {
        "settings": {"maxRetries": 2, "cooldownMs": 1000},
        "cooperating": {"enabled": True, "autoContinueActive": True, "selectedOption": "Skip ahead"},
        "steps": [
            {"op": "user", "text": "hi"},
            {"op": "reply", "text": "no tags"},
            {"op": "emit", "event": "generation_ended"},
            {"op": "send", "text": "Skip ahead"},
            {"op": "advance", "ms": 1000},
        ],
    }
    path = tmp_path / "scenario.json"
    path.write_text(json.dumps(script), encoding="utf-8")

    result = runner.invoke(app, ["simulate", str(path)])

    assert result.exit_code == 0
    assert "Regenerations: 1 (1000ms)" in result.stdout
    assert "blocked" in result.stdout
    assert "Guard Events" in result.stdout


def test_simulate_reports_broken_scenario(tmp_path: Path):
    path = tmp_path / "scenario.json"
    path.write_text(json.dumps({"steps": [{"op": "teleport"}]}), encoding="utf-8")

    result = runner.invoke(app, ["simulate", str(path)])

    assert result.exit_code == 1
    assert "Scenario failed" in result.stdout


def test_config_init_then_show(_isolated_data_dir: Path):
    created = runner.invoke(app, ["config", "init"])
    assert created.exit_code == 0
    assert (_isolated_data_dir / "config.json").exists()

    again = runner.invoke(app, ["config", "init"])
    assert again.exit_code == 1
    assert "already exists" in again.stdout

    assert runner.invoke(app, ["config", "init", "--force"]).exit_code == 0

    shown = runner.invoke(app, ["config", "show"])
    assert shown.exit_code == 0
    assert "Source: defaults" not in shown.stdout
    assert "maxRetries" in shown.stdout


def test_config_show_without_file_uses_defaults():
    result = runner.invoke(app, ["config", "show"])
    assert result.exit_code == 0
    assert "Source: defaults" in result.stdout


def test_events_summary(tmp_path: Path):
    path = tmp_path / "events.jsonl"
    log = GuardEventLog(path)
    log.record("regenerate", slot="c:1", attempt=1)
    log.record("max_retries_reached", slot="c:1", max_retries=1)
    log.record("send_blocked", reason="reply invalid", slot="c:1")
    log.record("send_allowed", slot="c:1")

    result = runner.invoke(app, ["events", "summary", str(path)])

    assert result.exit_code == 0
    assert "Regenerations: 1 (failed: 0)" in result.stdout
    assert "Send block rate: 50.0%" in result.stdout
    assert "c:1" in result.stdout


def test_events_summary_missing_file(tmp_path: Path):
    result = runner.invoke(app, ["events", "summary", str(tmp_path / "none.jsonl")])
    assert result.exit_code == 1
    assert "No event log" in result.stdout
