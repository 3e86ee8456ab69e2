import json
from pathlib import Path

from typer.testing import CliRunner

from taskreader.cli import app

runner = CliRunner()


def _write_task(root: Path, task_id: str, payload: str) -> None:
    task_dir = root / task_id
    task_dir.mkdir(parents=True)
    (task_dir / "api_conversation_history.json").write_text(payload)


def test_root_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for name in ("messages", "search", "code", "analyze", "recover", "reports", "task", "mcp"):
        assert name in result.stdout


def test_reports_help_lists_subcommands() -> None:
    result = runner.invoke(app, ["reports", "--help"])
    assert result.exit_code == 0
    for name in ("list", "show", "dismiss", "read"):
        assert name in result.stdout


def test_messages_json_output(tasks_root: Path) -> None:
    _write_task(
        tasks_root,
        "100",
        json.dumps([{"role": "user", "content": f"m{index}"} for index in range(5)]),
    )
    result = runner.invoke(app, ["messages", "100", "--limit", "2", "--json"])
    assert result.exit_code == 0
    assert [item["content"] for item in json.loads(result.stdout)] == ["m3", "m4"]


def test_messages_unknown_task_exits_nonzero(tasks_root: Path) -> None:
    result = runner.invoke(app, ["messages", "404"])
    assert result.exit_code == 1
    assert "not found" in result.stdout


def test_markup_like_roles_are_printed_literally(tasks_root: Path) -> None:
    _write_task(
        tasks_root,
        "100",
        json.dumps(
            [
                {"role": "[/oops]", "content": "needle one"},
                {"role": "[bold", "content": "needle two"},
            ]
        ),
    )

    listed = runner.invoke(app, ["messages", "100"])
    assert listed.exit_code == 0
    assert "[/oops]" in listed.stdout
    assert "[bold" in listed.stdout

    searched = runner.invoke(app, ["search", "needle", "--task", "100"])
    assert searched.exit_code == 0
    assert "[/oops]" in searched.stdout


def test_recover_then_dismiss_report(tasks_root: Path) -> None:
    payload = json.dumps([{"role": "user", "content": "hello [bold]"}] * 3)
    _write_task(tasks_root, "100", payload[:-1])

    recovered = runner.invoke(app, ["recover", "100", "--json"])
    assert recovered.exit_code == 0
    report_id = json.loads(recovered.stdout)["report_id"]

    listed = runner.invoke(app, ["reports", "list"])
    assert report_id in listed.stdout

    dismissed = runner.invoke(app, ["reports", "dismiss", report_id])
    assert dismissed.exit_code == 0
    again = runner.invoke(app, ["reports", "dismiss", report_id])
    assert again.exit_code == 1

    shown = runner.invoke(app, ["reports", "show", report_id])
    assert shown.exit_code == 0
    assert "CONVERSATION RECOVERY" in shown.stdout


def test_tasks_lists_newest_first(tasks_root: Path) -> None:
    _write_task(tasks_root, "100", "[]")
    _write_task(tasks_root, "200", "[]")
    result = runner.invoke(app, ["tasks", "--json"])
    assert result.exit_code == 0
    assert [task["task_id"] for task in json.loads(result.stdout)] == ["200", "100"]


def test_code_command_filters_by_file(tasks_root: Path) -> None:
    data = [
        {"role": "user", "content": "Update app.py and db.py"},
        {"role": "assistant", "content": "Changed db.py only"},
        {"role": "user", "content": "great"},
    ]
    _write_task(tasks_root, "100", json.dumps(data))

    result = runner.invoke(app, ["code", "100", "--file", "app.py", "--json"])

    assert result.exit_code == 0
    assert json.loads(result.stdout) == [data[0]]


def test_task_command_shows_counts(tasks_root: Path) -> None:
    _write_task(
        tasks_root,
        "1700000000000",
        json.dumps([{"role": "user", "content": "hi"}, {"role": "assistant", "content": "hello"}]),
    )

    shown = runner.invoke(app, ["task", "1700000000000", "--json"])
    missing = runner.invoke(app, ["task", "404"])

    assert shown.exit_code == 0
    payload = json.loads(shown.stdout)
    assert payload["message_count"] == 2
    assert payload["preview_messages"][-1] == {"role": "assistant", "content": "hello"}
    assert missing.exit_code == 1
