from __future__ import annotations

from pathlib import Path

import pytest

from taskreader.config import CONFIG_ENV_OVERRIDES


@pytest.fixture(autouse=True)
def _isolate_config(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("TASKREADER_CONFIG", str(tmp_path / "config.json"))
    for env_var in CONFIG_ENV_OVERRIDES.values():
        monkeypatch.delenv(env_var, raising=False)


@pytest.fixture
def tasks_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    root = tmp_path / "tasks"
    root.mkdir()
    monkeypatch.setenv("TASKREADER_TASKS_DIR", str(root))
    monkeypatch.setenv("TASKREADER_CRASH_REPORTS_DIR", str(tmp_path / "crashReports"))
    return root
