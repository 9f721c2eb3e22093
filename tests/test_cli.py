from __future__ import annotations

import json
from pathlib import Path

import allure
from click.testing import CliRunner

from dagtasks.main import tt

pytestmark = [
    allure.epic("Task Graph"),
    allure.feature("Command Line"),
]


def _invoke(runner: CliRunner, db_path: Path, *args: str, stdin: str | None = None):
    command, *rest = args
    return runner.invoke(tt, [command, "--db-path", str(db_path), *rest], input=stdin)


def test_commands_require_initialized_workspace(tmp_path: Path) -> None:
    result = _invoke(CliRunner(), tmp_path / "missing.db", "list", "--all")

    assert result.exit_code == 1
    assert "Not initialized" in result.output
    assert not (tmp_path / "missing.db").exists()


def test_init_creates_database_and_artifacts_dir(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "tt.db"

    result = _invoke(runner, db_path, "init")

    assert result.exit_code == 0, result.output
    assert db_path.exists()
    assert (tmp_path / ".tt" / "artifacts").is_dir()

    again = _invoke(runner, db_path, "init")
    assert again.exit_code == 1
    assert "Already initialized" in again.output


def test_cli_end_to_end_flow(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "tt.db"
    assert _invoke(runner, db_path, "init").exit_code == 0

    added = _invoke(runner, db_path, "add", "Design schema", "--dod", "reviewed")
    assert added.exit_code == 0, added.output
    assert "Created task #1: Design schema" in added.output
    assert _invoke(runner, db_path, "add", "Ship it").exit_code == 0
    assert _invoke(runner, db_path, "depend", "2", "1").exit_code == 0
    assert _invoke(runner, db_path, "target", "2").exit_code == 0

    listed = _invoke(runner, db_path, "list")
    assert listed.exit_code == 0, listed.output
    assert "○ #1 Design schema" in listed.output
    assert "○ #2 Ship it  <- #1  [target]" in listed.output
    assert "Legend:" in listed.output

    suggestion = _invoke(runner, db_path, "next")
    assert "Next: ○ #1 Design schema" in suggestion.output
    assert "Done when: reviewed" in suggestion.output

    started = _invoke(runner, db_path, "start", "1")
    assert "Started: ● #1 Design schema" in started.output
    assert "● #1" in _invoke(runner, db_path, "current").output

    logged = _invoke(runner, db_path, "log", "schema notes", "--file", "docs/schema.md")
    assert logged.exit_code == 0, logged.output
    assert "docs/schema.md" in _invoke(runner, db_path, "artifacts").output

    done = _invoke(runner, db_path, "done")
    assert "Completed: ✓ #1 Design schema" in done.output

    blocked_start = _invoke(runner, db_path, "done")
    assert blocked_start.exit_code == 1
    assert "No task is currently in progress" in blocked_start.output

    shown = _invoke(runner, db_path, "show", "2")
    assert "Depends on:" in shown.output
    assert "✓ #1 Design schema" in shown.output
    assert "Done when: (not set)" in shown.output


def test_cli_reports_cycle_and_leaves_graph_unchanged(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "tt.db"
    _invoke(runner, db_path, "init")
    for title in ("A", "B", "C"):
        _invoke(runner, db_path, "add", title)
    _invoke(runner, db_path, "depend", "1", "2")
    _invoke(runner, db_path, "depend", "2", "3")

    result = _invoke(runner, db_path, "depend", "3", "1")

    assert result.exit_code == 1
    assert "#1 -> #2 -> #3 -> #1" in result.output
    listed = _invoke(runner, db_path, "list", "--all")
    assert "○ #3 C\n" in listed.output


def test_cli_block_reorder_and_reindex(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "tt.db"
    _invoke(runner, db_path, "init")
    for title in ("first", "second", "third"):
        _invoke(runner, db_path, "add", title)

    assert "✗ #1 first" in _invoke(runner, db_path, "block", "1").output
    assert "✗ #1 first" in _invoke(runner, db_path, "list", "--all", "--status", "blocked").output
    assert "○ #1 first" in _invoke(runner, db_path, "unblock", "1").output

    moved = _invoke(runner, db_path, "reorder", "3", "--after", "1", "--before", "2")
    assert "Moved task #3 to order 15" in moved.output
    missing = _invoke(runner, db_path, "reorder", "3")
    assert missing.exit_code == 1

    assert "Reindexed 3 tasks" in _invoke(runner, db_path, "reindex").output
    listed = _invoke(runner, db_path, "list", "--all").output
    assert listed.index("#1 first") < listed.index("#3 third") < listed.index("#2 second")


def test_cli_serve_answers_json_lines(tmp_path: Path) -> None:
    runner = CliRunner()
    db_path = tmp_path / "tt.db"
    _invoke(runner, db_path, "init")
    requests = "\n".join(
        [
            json.dumps({"id": 1, "verb": "create", "params": {"title": "via json"}}),
            json.dumps({"id": 2, "verb": "get_target"}),
        ],
    )

    result = _invoke(runner, db_path, "serve", stdin=requests + "\n")

    assert result.exit_code == 0, result.output
    responses = [json.loads(line) for line in result.stdout.splitlines()]
    assert responses[0]["ok"] is True
    assert responses[0]["data"]["title"] == "via json"
    assert responses[1]["error"]["code"] == "no_target"
