from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from functools import partial
from pathlib import Path
from typing import Any

from .analysis.analyzer import AnalysisSummary, ConversationAnalyzer, is_code_discussion
from .config import TaskReaderConfig, load_config
from .conversation.filters import FilterSpec
from .conversation.reader import SearchHit, read_conversation, search_messages
from .conversation.types import Message
from .crash_reports import CrashReport, CrashReportStore
from .errors import NotFoundError, ParseError
from .paths import TaskInfo, crash_reports_dir, find_task, list_tasks, resolve_conversation_path
from .recovery.pipeline import RecoveryPipeline, RecoveryResult

logger = logging.getLogger(__name__)


def parse_since(value: int | float | str | None) -> int | float | None:
    """Accept epoch milliseconds or an ISO-8601 string; naive times are UTC."""

    if value is None or (isinstance(value, (int, float)) and not isinstance(value, bool)):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lstrip("-").isdigit():
            return int(text)
        try:
            moment = dt.datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ValueError(f"invalid since value: {value!r}") from exc
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=dt.UTC)
        return int(moment.timestamp() * 1000)
    raise ValueError(f"invalid since value: {value!r}")


@dataclass(frozen=True, slots=True)
class TaskSearchHits:
    task_id: str
    hits: list[SearchHit]

    def to_dict(self) -> dict[str, Any]:
        return {"task_id": self.task_id, "hits": [hit.to_dict() for hit in self.hits]}


@dataclass(frozen=True, slots=True)
class TaskSummary:
    task: TaskInfo
    message_count: int | None
    human_count: int = 0
    assistant_count: int = 0
    preview: list[Message] = field(default_factory=list)
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.task.to_dict(),
            "message_count": self.message_count,
            "human_count": self.human_count,
            "assistant_count": self.assistant_count,
            "preview_messages": [message.to_dict() for message in self.preview],
            "error": self.error,
        }


@dataclass(frozen=True, slots=True)
class RecoveryOutcome:
    recovery: RecoveryResult
    analysis: AnalysisSummary
    report: CrashReport | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "recovery": self.recovery.summary().to_dict(),
            "analysis": self.analysis.to_dict(),
            "report_id": self.report.id if self.report else None,
            "formatted_message": self.report.formatted_message if self.report else None,
        }


class TaskReaderService:
    """Operations shared by the MCP tools and the CLI."""

    def __init__(
        self,
        config: TaskReaderConfig | None = None,
        *,
        pipeline: RecoveryPipeline | None = None,
        reports: CrashReportStore | None = None,
    ) -> None:
        self.config = config or load_config()
        self.pipeline = pipeline or RecoveryPipeline()
        self.reports = reports or CrashReportStore(
            crash_reports_dir(self.config),
            recent_message_count=self.config.recent_message_count,
        )
        self.analyzer = ConversationAnalyzer(
            topic_limit=self.config.topic_limit,
            key_action_limit=self.config.key_action_limit,
        )

    def resolve(self, task_id: str) -> Path:
        return resolve_conversation_path(task_id, self.config)

    def clamp_limit(self, limit: int | None) -> int:
        if limit is None:
            return self.config.default_limit
        if limit <= 0:
            raise ValueError(f"limit must be positive, got {limit!r}")
        return min(limit, self.config.max_limit)

    def last_messages(self, task_id: str, limit: int | None = None) -> list[Message]:
        return read_conversation(self.resolve(task_id), FilterSpec(limit=self.clamp_limit(limit)))

    def messages_since(
        self, task_id: str, since: int | float | str, limit: int | None = None
    ) -> list[Message]:
        spec = FilterSpec(limit=self.clamp_limit(limit), since=parse_since(since))
        return read_conversation(self.resolve(task_id), spec)

    def search(self, task_id: str, term: str, limit: int | None = 20) -> list[SearchHit]:
        return search_messages(self.resolve(task_id), term, limit=self.clamp_limit(limit))

    def code_discussions(
        self, task_id: str, filename: str | None = None, limit: int | None = None
    ) -> list[Message]:
        """Most recent messages with code fences or file references."""

        spec = FilterSpec(
            limit=self.clamp_limit(limit),
            predicate=partial(is_code_discussion, filename=filename or None),
        )
        return read_conversation(self.resolve(task_id), spec)

    def search_all(
        self, term: str, limit: int | None = 20, max_tasks: int = 10
    ) -> list[TaskSearchHits]:
        """Search the most recent ``max_tasks`` conversations; unreadable ones are skipped."""

        per_task = self.clamp_limit(limit)
        results: list[TaskSearchHits] = []
        for task in list_tasks(self.config, limit=max_tasks):
            if task.conversation_path is None:
                continue
            try:
                hits = search_messages(task.conversation_path, term, limit=per_task)
            except (ParseError, NotFoundError, OSError) as exc:
                logger.warning("skipping task %s during search: %s", task.task_id, exc)
                continue
            if hits:
                results.append(TaskSearchHits(task_id=task.task_id, hits=hits))
        return results

    def analyze(
        self, task_id: str, since: int | float | str | None = None
    ) -> AnalysisSummary:
        """Exact analysis; an unparseable file is analysed from its recovered messages."""

        path = self.resolve(task_id)
        since_ms = parse_since(since)
        try:
            messages = read_conversation(path)
        except ParseError as exc:
            logger.warning("exact read of %s failed, analysing recovered messages: %s", path, exc)
            recovery = self.pipeline.recover(path)
            return self._analyze_recovered(recovery, since_ms)
        return self.analyzer.analyze(messages, since_ms)

    def _analyze_recovered(
        self, recovery: RecoveryResult, since: int | float | None = None
    ) -> AnalysisSummary:
        return self.analyzer.analyze(
            recovery.messages,
            since,
            complete=recovery.is_complete,
            expected_count=recovery.expected_count,
        )

    def recover(
        self,
        task_id: str,
        max_messages: int | None = None,
        *,
        save_report: bool = True,
    ) -> RecoveryOutcome:
        path = self.resolve(task_id)
        recovery = self.pipeline.recover(path, max_messages=max_messages)
        analysis = self._analyze_recovered(recovery)
        report = self.reports.create(task_id, recovery, analysis)
        if save_report:
            self.reports.persist(report)
            logger.info("saved crash report %s for task %s", report.id, task_id)
        return RecoveryOutcome(recovery=recovery, analysis=analysis, report=report)

    def recent_tasks(self, limit: int | None = 10) -> list[dict[str, Any]]:
        return [task.to_dict() for task in list_tasks(self.config, limit=limit)]

    def task_summary(self, task_id: str, preview_count: int = 5) -> TaskSummary:
        """Task metadata with role counts and the last ``preview_count`` messages.

        An unreadable conversation is reported in ``error`` rather than raised.
        """

        task = find_task(task_id, self.config)
        if task.conversation_path is None:
            return TaskSummary(task=task, message_count=0)
        try:
            messages = read_conversation(task.conversation_path)
        except ParseError as exc:
            logger.warning("cannot summarise task %s: %s", task.task_id, exc)
            return TaskSummary(task=task, message_count=None, error=exc.reason)
        return TaskSummary(
            task=task,
            message_count=len(messages),
            human_count=sum(1 for message in messages if message.is_human),
            assistant_count=sum(1 for message in messages if message.is_assistant),
            preview=messages[-preview_count:] if preview_count > 0 else [],
        )
