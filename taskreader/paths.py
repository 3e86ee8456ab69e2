from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .config import TaskReaderConfig
from .errors import NotFoundError

CONVERSATION_FILENAMES = ("api_conversation_history.json", "api-conversation.json")
UI_MESSAGES_FILENAME = "ui_messages.json"


def global_storage_dir() -> Path:
    """VS Code's per-user globalStorage directory for the current platform."""

    home = Path.home()
    if sys.platform == "darwin":
        return home / "Library" / "Application Support" / "Code" / "User" / "globalStorage"
    if sys.platform.startswith("win"):
        appdata = os.environ.get("APPDATA")
        base = Path(appdata) if appdata else home / "AppData" / "Roaming"
        return base / "Code" / "User" / "globalStorage"
    return home / ".config" / "Code" / "User" / "globalStorage"


def tasks_dirs(config: TaskReaderConfig) -> list[Path]:
    if config.tasks_dir:
        return [Path(config.tasks_dir).expanduser()]
    storage = global_storage_dir()
    return [storage / extension / "tasks" for extension in config.extension_ids]


def crash_reports_dir(config: TaskReaderConfig) -> Path:
    if config.crash_reports_dir:
        return Path(config.crash_reports_dir).expanduser()
    storage = global_storage_dir()
    candidates = [storage / extension / "crashReports" for extension in config.extension_ids]
    for candidate in candidates:
        if candidate.is_dir():
            return candidate
    return candidates[0]


def conversation_file_in(task_dir: Path) -> Path | None:
    for name in CONVERSATION_FILENAMES:
        candidate = task_dir / name
        if candidate.is_file():
            return candidate
    return None


def resolve_conversation_path(task_id_or_path: str, config: TaskReaderConfig) -> Path:
    """Map a task id (or a direct ``.json`` path) to its conversation file."""

    value = task_id_or_path.strip()
    if not value:
        raise NotFoundError("task id is required")
    if value.endswith(".json"):
        direct = Path(value).expanduser()
        if direct.is_file():
            return direct
        raise NotFoundError(f"conversation file not found: {direct}")
    if "/" in value or "\\" in value or value.startswith("."):
        raise NotFoundError(f"invalid task id: {value!r}")
    for root in tasks_dirs(config):
        found = conversation_file_in(root / value)
        if found is not None:
            return found
    raise NotFoundError(f"conversation file not found for task {value}")


@dataclass(frozen=True, slots=True)
class TaskInfo:
    task_id: str
    task_dir: Path
    conversation_path: Path | None
    size_bytes: int
    modified_at: float
    has_ui_messages: bool = False

    @property
    def started_at(self) -> int | None:
        # Task ids are the creation time in epoch milliseconds.
        return int(self.task_id) if self.task_id.isdigit() else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "task_dir": str(self.task_dir),
            "conversation_path": str(self.conversation_path) if self.conversation_path else None,
            "size_bytes": self.size_bytes,
            "modified_at": self.modified_at,
            "started_at": self.started_at,
            "has_ui_messages": self.has_ui_messages,
        }


def _task_info(task_dir: Path) -> TaskInfo | None:
    conversation = conversation_file_in(task_dir)
    try:
        stat = (conversation or task_dir).stat()
    except OSError:
        return None
    return TaskInfo(
        task_id=task_dir.name,
        task_dir=task_dir,
        conversation_path=conversation,
        size_bytes=stat.st_size if conversation else 0,
        modified_at=stat.st_mtime,
        has_ui_messages=(task_dir / UI_MESSAGES_FILENAME).is_file(),
    )


def _task_sort_key(task: TaskInfo) -> tuple[bool, int, float]:
    # Numeric ids sort before anything else.
    started = task.started_at
    return started is not None, started or 0, task.modified_at


def find_task(task_id: str, config: TaskReaderConfig) -> TaskInfo:
    """Metadata for one task directory; the first root that has it wins."""

    value = task_id.strip()
    if not value or "/" in value or "\\" in value or value.startswith("."):
        raise NotFoundError(f"invalid task id: {task_id!r}")
    for root in tasks_dirs(config):
        task_dir = root / value
        if task_dir.is_dir():
            info = _task_info(task_dir)
            if info is not None:
                return info
    raise NotFoundError(f"task not found: {value}")


def list_tasks(config: TaskReaderConfig, limit: int | None = None) -> list[TaskInfo]:
    """Task directories across all roots, newest first by task id."""

    tasks: dict[str, TaskInfo] = {}
    for root in tasks_dirs(config):
        if not root.is_dir():
            continue
        for task_dir in root.iterdir():
            if not task_dir.is_dir() or task_dir.name in tasks:
                continue
            info = _task_info(task_dir)
            if info is not None:
                tasks[task_dir.name] = info
    ordered = sorted(tasks.values(), key=_task_sort_key, reverse=True)
    return ordered[:limit] if limit is not None else ordered
