from __future__ import annotations

import json
import logging
import os
import re
import secrets
import string
import tempfile
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Literal

from .analysis.analyzer import AnalysisSummary
from .analysis.recovery_context import build_recovered_context, format_recovered_context
from .errors import NotFoundError
from .recovery.pipeline import RecoveryResult, RecoverySummary

logger = logging.getLogger(__name__)

Partition = Literal["active", "dismissed"]

DISMISSED_DIRNAME = "Dismissed"
_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase
_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def random_suffix(length: int = 9) -> str:
    return "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(length))


@dataclass(frozen=True, slots=True)
class CrashReport:
    id: str
    source_id: str
    created_at: int
    analysis: AnalysisSummary
    recovery_summary: RecoverySummary
    formatted_message: str
    read: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source_id": self.source_id,
            "created_at": self.created_at,
            "analysis": self.analysis.to_dict(),
            "recovery_summary": self.recovery_summary.to_dict(),
            "formatted_message": self.formatted_message,
            "read": self.read,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CrashReport:
        return cls(
            id=str(data["id"]),
            source_id=str(data["source_id"]),
            created_at=int(data["created_at"]),
            analysis=AnalysisSummary.from_dict(_nested_object(data, "analysis")),
            recovery_summary=RecoverySummary.from_dict(_nested_object(data, "recovery_summary")),
            formatted_message=str(data.get("formatted_message") or ""),
            read=bool(data.get("read", False)),
        )


class CrashReportStore:
    """Crash reports as ``<id>.json`` files in an active dir and its ``Dismissed`` child.

    The directory a file sits in is the only record of its partition.
    """

    def __init__(
        self,
        root: str | Path,
        *,
        clock: Callable[[], float] = time.time,
        suffix_factory: Callable[[], str] = random_suffix,
        recent_message_count: int = 15,
    ) -> None:
        self.active_dir = Path(root).expanduser()
        self.dismissed_dir = self.active_dir / DISMISSED_DIRNAME
        self._clock = clock
        self._suffix_factory = suffix_factory
        self.recent_message_count = recent_message_count

    def ensure_dirs(self) -> None:
        self.active_dir.mkdir(parents=True, exist_ok=True)
        self.dismissed_dir.mkdir(parents=True, exist_ok=True)

    def _dir(self, partition: Partition) -> Path:
        if partition == "active":
            return self.active_dir
        if partition == "dismissed":
            return self.dismissed_dir
        raise ValueError(f"unknown partition: {partition!r}")

    def _path(self, partition: Partition, report_id: str) -> Path:
        if not report_id or "/" in report_id or "\\" in report_id or report_id.startswith("."):
            raise NotFoundError(f"crash report not found: {report_id!r}")
        return self._dir(partition) / f"{report_id}.json"

    def locate(self, report_id: str) -> tuple[Partition, Path]:
        for partition in ("active", "dismissed"):
            path = self._path(partition, report_id)
            if path.is_file():
                return partition, path
        raise NotFoundError(f"crash report not found: {report_id}")

    def create(
        self, source_id: str, recovery: RecoveryResult, analysis: AnalysisSummary
    ) -> CrashReport:
        safe_source = _UNSAFE_ID_CHARS.sub("_", source_id).strip("._") or "unknown"
        report_id = f"crash-{safe_source}-{self._suffix_factory()}"
        context = build_recovered_context(
            source_id, recovery.messages, analysis, recent_count=self.recent_message_count
        )
        summary = recovery.summary()
        return CrashReport(
            id=report_id,
            source_id=source_id,
            created_at=int(self._clock() * 1000),
            analysis=analysis,
            recovery_summary=summary,
            formatted_message=format_recovered_context(context, analysis, summary),
            read=False,
        )

    def persist(self, report: CrashReport) -> Path:
        self.ensure_dirs()
        if self._path("dismissed", report.id).exists():
            raise ValueError(f"crash report already dismissed: {report.id}")
        path = self._path("active", report.id)
        _write_json(path, report.to_dict())
        return path

    def get(self, report_id: str) -> CrashReport:
        _, path = self.locate(report_id)
        return _read_report(path)

    def dismiss(self, report_id: str) -> Path:
        source = self._path("active", report_id)
        target = self._path("dismissed", report_id)
        self.dismissed_dir.mkdir(parents=True, exist_ok=True)
        try:
            os.rename(source, target)
        except FileNotFoundError as exc:
            raise NotFoundError(f"crash report not active: {report_id}") from exc
        logger.info("dismissed crash report %s", report_id)
        return target

    def mark_read(self, report_id: str) -> CrashReport:
        _, path = self.locate(report_id)
        report = replace(_read_report(path), read=True)
        _write_json(path, report.to_dict())
        return report

    def list_reports(self, partition: Partition = "active") -> list[CrashReport]:
        directory = self._dir(partition)
        if not directory.is_dir():
            return []
        reports: list[CrashReport] = []
        for path in directory.glob("*.json"):
            if path.name.startswith("."):
                continue
            try:
                reports.append(_read_report(path))
            except (OSError, ValueError, KeyError, TypeError, AttributeError) as exc:
                logger.warning("skipping unreadable crash report %s", path, exc_info=exc)
        reports.sort(key=lambda report: report.created_at, reverse=True)
        return reports


def _nested_object(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise ValueError(f"crash report field {key!r} must be an object")
    return value


def _read_report(path: Path) -> CrashReport:
    data = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"crash report must be an object: {path}")
    return CrashReport.from_dict(data)


def _write_json(path: Path, data: dict[str, Any]) -> None:
    payload = json.dumps(data, indent=2) + "\n"
    fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", suffix=".json", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
