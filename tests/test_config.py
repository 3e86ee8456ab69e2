import json
from pathlib import Path

import pytest

from taskreader.config import (
    DEFAULT_EXTENSION_IDS,
    get_config_path,
    get_env_overrides,
    load_config,
    read_config_file,
    write_config_file,
)


def test_read_config_file_rejects_invalid_json(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("{not-json}")
    with pytest.raises(ValueError, match="invalid config json"):
        read_config_file(config_path)


def test_read_config_file_rejects_non_object(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("[1, 2]")
    with pytest.raises(ValueError, match="config must be an object"):
        read_config_file(config_path)


def test_read_config_file_missing_or_blank_is_empty(tmp_path: Path) -> None:
    assert read_config_file(tmp_path / "missing.json") == {}
    blank = tmp_path / "blank.json"
    blank.write_text("  \n")
    assert read_config_file(blank) == {}


def test_config_path_env_override(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    target = tmp_path / "elsewhere.json"
    monkeypatch.setenv("TASKREADER_CONFIG", str(target))
    assert get_config_path() == target


def test_write_then_load_config(tmp_path: Path) -> None:
    config_path = tmp_path / "nested" / "config.json"
    write_config_file(
        {"tasks_dir": "/data/tasks", "default_limit": 25, "extension_ids": ["a.b", " "]},
        config_path,
    )
    assert json.loads(config_path.read_text())["default_limit"] == 25

    cfg = load_config(config_path)

    assert cfg.tasks_dir == "/data/tasks"
    assert cfg.default_limit == 25
    assert cfg.extension_ids == ["a.b"]
    assert cfg.max_limit == 100


def test_load_config_defaults_without_file(tmp_path: Path) -> None:
    cfg = load_config(tmp_path / "missing.json")
    assert cfg.tasks_dir is None
    assert cfg.extension_ids == list(DEFAULT_EXTENSION_IDS)
    assert cfg.recent_message_count == 15


def test_load_config_ignores_invalid_json(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text("{oops")
    assert load_config(config_path).default_limit == 50


def test_env_overrides_win(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"default_limit": 25, "tasks_dir": "/from/file"}))
    monkeypatch.setenv("TASKREADER_DEFAULT_LIMIT", "7")
    monkeypatch.setenv("TASKREADER_TASKS_DIR", "/from/env")
    monkeypatch.setenv("TASKREADER_EXTENSIONS", "one.ext, two.ext")

    cfg = load_config(config_path)

    assert cfg.default_limit == 7
    assert cfg.tasks_dir == "/from/env"
    assert cfg.extension_ids == ["one.ext", "two.ext"]
    assert get_env_overrides()["default_limit"] == "7"


def test_invalid_int_env_warns_and_keeps_default(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setenv("TASKREADER_MAX_LIMIT", "lots")
    with pytest.warns(RuntimeWarning, match="max_limit"):
        cfg = load_config(tmp_path / "missing.json")
    assert cfg.max_limit == 100


def test_non_positive_int_in_file_warns(tmp_path: Path) -> None:
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"topic_limit": 0}))
    with pytest.warns(RuntimeWarning):
        cfg = load_config(config_path)
    assert cfg.topic_limit == 10
