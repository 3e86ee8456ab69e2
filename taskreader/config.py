from __future__ import annotations

import json
import os
import warnings
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

DEFAULT_CONFIG_PATH = Path("~/.config/taskreader/config.json").expanduser()

DEFAULT_EXTENSION_IDS = ("custom.claude-dev-ultra", "saoudrizwan.claude-dev")

CONFIG_ENV_OVERRIDES = {
    "tasks_dir": "TASKREADER_TASKS_DIR",
    "crash_reports_dir": "TASKREADER_CRASH_REPORTS_DIR",
    "extension_ids": "TASKREADER_EXTENSIONS",
    "default_limit": "TASKREADER_DEFAULT_LIMIT",
    "max_limit": "TASKREADER_MAX_LIMIT",
    "topic_limit": "TASKREADER_TOPIC_LIMIT",
    "key_action_limit": "TASKREADER_KEY_ACTION_LIMIT",
    "recent_message_count": "TASKREADER_RECENT_MESSAGES",
    "active_task_ttl_s": "TASKREADER_ACTIVE_TASK_TTL_S",
}


@dataclass
class TaskReaderConfig:
    # Explicit directories win over the per-extension platform defaults.
    tasks_dir: str | None = None
    crash_reports_dir: str | None = None
    extension_ids: list[str] = field(default_factory=lambda: list(DEFAULT_EXTENSION_IDS))
    default_limit: int = 50
    max_limit: int = 100
    topic_limit: int = 10
    key_action_limit: int = 10
    recent_message_count: int = 15
    active_task_ttl_s: int = 600


_FIELD_TYPES = {item.name: item.type for item in fields(TaskReaderConfig)}


def get_config_path(path: Path | None = None) -> Path:
    if path is not None:
        return path.expanduser()
    return Path(os.getenv("TASKREADER_CONFIG") or DEFAULT_CONFIG_PATH).expanduser()


def _load_json_object(config_path: Path) -> dict[str, Any]:
    if not config_path.exists():
        return {}
    text = config_path.read_text()
    if not text.strip():
        return {}
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError("invalid config json") from exc
    if not isinstance(data, dict):
        raise ValueError("config must be an object")
    return data


def read_config_file(path: Path | None = None) -> dict[str, Any]:
    return _load_json_object(get_config_path(path))


def write_config_file(data: dict[str, Any], path: Path | None = None) -> Path:
    target = get_config_path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(data, ensure_ascii=False, indent=2) + "\n")
    return target


def get_env_overrides() -> dict[str, str]:
    return {
        key: os.environ[env_var]
        for key, env_var in CONFIG_ENV_OVERRIDES.items()
        if env_var in os.environ
    }


def _positive_int(raw: object, fallback: int, *, key: str) -> int:
    try:
        number = int(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        number = 0
    if number <= 0:
        warnings.warn(f"Invalid int for {key}: {raw!r}", RuntimeWarning, stacklevel=3)
        return fallback
    return number


def _str_list(raw: object, *, key: str) -> list[str]:
    if isinstance(raw, str):
        raw = raw.split(",")
    if not isinstance(raw, list):
        warnings.warn(f"Invalid list for {key}: {raw!r}", RuntimeWarning, stacklevel=3)
        return []
    return [item.strip() for item in raw if isinstance(item, str) and item.strip()]


def _apply(cfg: TaskReaderConfig, values: dict[str, Any]) -> TaskReaderConfig:
    for key, raw in values.items():
        kind = _FIELD_TYPES.get(key)
        if kind is None or raw is None:
            continue
        if kind == "int":
            setattr(cfg, key, _positive_int(raw, getattr(cfg, key), key=key))
        elif key == "extension_ids":
            # An empty list would disable task discovery entirely.
            cfg.extension_ids = _str_list(raw, key=key) or cfg.extension_ids
        else:
            setattr(cfg, key, str(raw))
    return cfg


def load_config(path: Path | None = None) -> TaskReaderConfig:
    """Defaults, then the JSON config file, then ``TASKREADER_*`` variables."""

    cfg = TaskReaderConfig()
    try:
        file_values = read_config_file(path)
    except ValueError:
        file_values = {}
    cfg = _apply(cfg, file_values)
    return _apply(cfg, get_env_overrides())
