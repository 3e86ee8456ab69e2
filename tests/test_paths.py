import os
from pathlib import Path

import pytest

from taskreader.config import TaskReaderConfig
from taskreader.errors import NotFoundError
from taskreader.paths import (
    crash_reports_dir,
    find_task,
    global_storage_dir,
    list_tasks,
    resolve_conversation_path,
    tasks_dirs,
)


def _task(root: Path, task_id: str, filename: str = "api_conversation_history.json") -> Path:
    task_dir = root / task_id
    task_dir.mkdir(parents=True)
    path = task_dir / filename
    path.write_text("[]")
    return path


def test_resolve_task_id(tmp_path: Path) -> None:
    cfg = TaskReaderConfig(tasks_dir=str(tmp_path))
    expected = _task(tmp_path, "1700000000000")
    assert resolve_conversation_path("1700000000000", cfg) == expected


def test_resolve_legacy_filename(tmp_path: Path) -> None:
    cfg = TaskReaderConfig(tasks_dir=str(tmp_path))
    expected = _task(tmp_path, "42", filename="api-conversation.json")
    assert resolve_conversation_path("42", cfg) == expected


def test_resolve_direct_json_path(tmp_path: Path) -> None:
    path = tmp_path / "export.json"
    path.write_text("[]")
    assert resolve_conversation_path(str(path), TaskReaderConfig()) == path


@pytest.mark.parametrize("task_id", ["", "missing", "../etc", "a/b"])
def test_resolve_rejects_unknown_or_unsafe_ids(tmp_path: Path, task_id: str) -> None:
    cfg = TaskReaderConfig(tasks_dir=str(tmp_path))
    with pytest.raises(NotFoundError):
        resolve_conversation_path(task_id, cfg)


def test_platform_defaults_use_extension_ids() -> None:
    cfg = TaskReaderConfig(extension_ids=["one.ext", "two.ext"])
    storage = global_storage_dir()
    assert tasks_dirs(cfg) == [storage / "one.ext" / "tasks", storage / "two.ext" / "tasks"]
    assert crash_reports_dir(cfg) in {
        storage / "one.ext" / "crashReports",
        storage / "two.ext" / "crashReports",
    }


def test_crash_reports_dir_override(tmp_path: Path) -> None:
    cfg = TaskReaderConfig(crash_reports_dir=str(tmp_path / "reports"))
    assert crash_reports_dir(cfg) == tmp_path / "reports"


def test_list_tasks_newest_first(tmp_path: Path) -> None:
    cfg = TaskReaderConfig(tasks_dir=str(tmp_path))
    _task(tmp_path, "1700000000000")
    _task(tmp_path, "1700000005000").write_text('[{"role": "user", "content": "hi"}]')
    (tmp_path / "1700000009000").mkdir()
    (tmp_path / "stray.txt").write_text("x")

    tasks = list_tasks(cfg)

    assert [task.task_id for task in tasks] == ["1700000009000", "1700000005000", "1700000000000"]
    assert tasks[0].conversation_path is None
    assert tasks[1].size_bytes == os.path.getsize(tasks[1].conversation_path)
    assert [task.task_id for task in list_tasks(cfg, limit=1)] == ["1700000009000"]


def test_list_tasks_without_root_is_empty(tmp_path: Path) -> None:
    cfg = TaskReaderConfig(tasks_dir=str(tmp_path / "missing"))
    assert list_tasks(cfg) == []


def test_find_task_reports_metadata(tmp_path: Path) -> None:
    cfg = TaskReaderConfig(tasks_dir=str(tmp_path))
    conversation = _task(tmp_path, "1700000000000")
    (conversation.parent / "ui_messages.json").write_text("[]")
    (tmp_path / "draft").mkdir()

    found = find_task("1700000000000", cfg)
    draft = find_task("draft", cfg)

    assert found.conversation_path == conversation
    assert found.started_at == 1_700_000_000_000
    assert found.has_ui_messages is True
    assert found.to_dict()["size_bytes"] == 2
    assert draft.conversation_path is None
    assert draft.started_at is None
    assert draft.has_ui_messages is False


@pytest.mark.parametrize("task_id", ["", "missing", "../etc", ".hidden"])
def test_find_task_rejects_unknown_or_unsafe_ids(tmp_path: Path, task_id: str) -> None:
    cfg = TaskReaderConfig(tasks_dir=str(tmp_path))
    with pytest.raises(NotFoundError):
        find_task(task_id, cfg)
