from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from ..conversation.types import Message
from ..recovery.pipeline import RecoverySummary
from .analyzer import AnalysisSummary

RECENT_MESSAGE_CHARS = 300
ACTIVE_FILE_LIMIT = 5
OPEN_QUESTION_LIMIT = 5

_QUESTION_RE = re.compile(r"[^.!?\n]*\?")


def first_sentence(text: str) -> str:
    cleaned = " ".join(line.strip() for line in text.splitlines() if line.strip())
    cleaned = re.sub(r"^[#*\-\d\.\s]+", "", cleaned)
    match = re.split(r"(?<=[.!?])\s+", cleaned, maxsplit=1)
    return (match[0] if match else cleaned).strip()


def _truncate(text: str, limit: int) -> str:
    text = text.strip()
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "..."


@dataclass(frozen=True, slots=True)
class RecentMessage:
    role: str
    text: str
    timestamp: int | float | None = None


@dataclass(frozen=True, slots=True)
class RecoveredContext:
    source_id: str
    original_task: str
    main_topic: str
    subtopics: list[str] = field(default_factory=list)
    active_files: list[str] = field(default_factory=list)
    open_questions: list[str] = field(default_factory=list)
    recent_messages: list[RecentMessage] = field(default_factory=list)
    current_status: str = ""


def rank_topics(analysis: AnalysisSummary, messages: Sequence[Message]) -> tuple[str, list[str]]:
    """Order topics by frequency with a bonus for appearing late in the conversation."""

    if not analysis.topics:
        return "unknown", []
    last_index = max(1, len(messages) - 1)
    lowered = [message.text.lower() for message in messages]
    scores: list[tuple[float, str]] = []
    for topic, count in analysis.topics:
        pattern = re.compile(rf"\b{re.escape(topic)}\b")
        recency = 0
        for index, text in enumerate(lowered):
            if pattern.search(text):
                recency = index
        scores.append((count + count * (recency / last_index) * 0.5, topic))
    ordered = [topic for _, topic in sorted(scores, key=lambda item: -item[0])]
    return ordered[0], ordered[1:]


def rank_active_files(analysis: AnalysisSummary, messages: Sequence[Message]) -> list[str]:
    if not analysis.files_referenced:
        return []
    last_index = max(1, len(messages) - 1)
    texts = [message.text for message in messages]
    scores: list[tuple[float, str]] = []
    for path in analysis.files_referenced:
        mentions = 0
        recency = 0
        for index, text in enumerate(texts):
            if path in text:
                mentions += 1
                recency = index
        if mentions:
            scores.append((mentions + mentions * (recency / last_index) * 2, path))
    scores.sort(key=lambda item: -item[0])
    return [path for _, path in scores[:ACTIVE_FILE_LIMIT]]


def find_open_questions(messages: Sequence[Message]) -> list[str]:
    """Questions from the human turns after the last assistant reply."""

    trailing: list[Message] = []
    for message in reversed(messages):
        if message.is_assistant:
            break
        if message.is_human:
            trailing.append(message)
    questions: list[str] = []
    for message in reversed(trailing):
        for match in _QUESTION_RE.finditer(message.text):
            question = match.group(0).strip()
            if len(question) > 3:
                questions.append(question)
    return questions[:OPEN_QUESTION_LIMIT]


def describe_status(messages: Sequence[Message]) -> str:
    if not messages:
        return "No messages could be recovered."
    last = messages[-1]
    summary = _truncate(first_sentence(last.text), 200) or "(no text content)"
    if last.is_human:
        return f"Your last message had not been answered yet: {summary}"
    if last.is_assistant:
        return f"The assistant's last reply: {summary}"
    return f"The last entry was a {last.role} message: {summary}"


def build_recovered_context(
    source_id: str,
    messages: Sequence[Message],
    analysis: AnalysisSummary,
    *,
    recent_count: int = 15,
) -> RecoveredContext:
    first_human = next((message for message in messages if message.is_human), None)
    original_task = _truncate(first_human.text, 500) if first_human else ""
    main_topic, subtopics = rank_topics(analysis, messages)
    recent = [
        RecentMessage(
            role=message.role,
            text=_truncate(message.text, RECENT_MESSAGE_CHARS),
            timestamp=message.timestamp,
        )
        for message in list(messages)[-recent_count:]
    ]
    return RecoveredContext(
        source_id=source_id,
        original_task=original_task,
        main_topic=main_topic,
        subtopics=subtopics,
        active_files=rank_active_files(analysis, messages),
        open_questions=find_open_questions(messages),
        recent_messages=recent,
        current_status=describe_status(messages),
    )


def _recovery_line(recovery: RecoverySummary) -> str:
    if recovery.expected_count is None:
        return (
            f"Recovered {recovery.recovered_count} messages "
            f"(strategy: {recovery.strategy_used})."
        )
    if recovery.is_complete:
        return (
            f"All {recovery.recovered_count} messages were recovered "
            f"(strategy: {recovery.strategy_used})."
        )
    return (
        f"Only {recovery.recovered_count} of ~{recovery.expected_count} messages could be "
        f"recovered (strategy: {recovery.strategy_used}); this is a partial reconstruction."
    )


def format_recovered_context(
    context: RecoveredContext,
    analysis: AnalysisSummary,
    recovery: RecoverySummary,
) -> str:
    lines: list[str] = ["CONVERSATION RECOVERY", ""]
    lines.append(f"Source: {context.source_id}")
    lines.append(_recovery_line(recovery))
    note = analysis.completeness_note
    if note:
        lines.append(note)
    lines.append("")

    lines.append("DISCUSSION TOPICS")
    lines.append(f"Main focus: {context.main_topic}")
    if context.subtopics:
        lines.append("Related topics:")
        lines.extend(f"- {topic}" for topic in context.subtopics[:10])
    lines.append("")

    lines.append("PROJECT CONTEXT")
    if context.original_task:
        lines.append(f"You were working on: {context.original_task}")
    else:
        lines.append(f"You were working on a project related to {context.main_topic}.")
    lines.append(
        f"{analysis.message_count} messages ({analysis.human_count} from you, "
        f"{analysis.assistant_count} from the assistant), {analysis.code_block_count} code blocks, "
        f"{analysis.file_operation_count} file operations, {analysis.command_count} commands."
    )
    if analysis.time_range:
        lines.append(f"Time range: {analysis.time_range.start} to {analysis.time_range.end}")
    lines.append("")

    if analysis.key_actions:
        lines.append("KEY ACTIONS")
        lines.extend(f"- {action}" for action in analysis.key_actions)
        lines.append("")

    if context.recent_messages:
        lines.append("RECENT CONVERSATION")
        for recent in context.recent_messages:
            speaker = "Assistant" if recent.role == "assistant" else "You"
            lines.append(f"{speaker}: {recent.text}")
        lines.append("")

    lines.append("CURRENT STATUS")
    lines.append(context.current_status)
    lines.append("")

    if context.active_files:
        lines.append("ACTIVE FILES")
        lines.extend(f"- {path}" for path in context.active_files)
        lines.append("")

    if context.open_questions:
        lines.append("OPEN QUESTIONS")
        lines.extend(f"- {question}" for question in context.open_questions)
        lines.append("")

    lines.append("CONTINUATION")
    lines.append(f"Would you like to continue working on {context.main_topic}?")
    return "\n".join(lines)
