from __future__ import annotations

import datetime as dt
import re
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Final

from ..conversation.filters import SinceGate
from ..conversation.types import Message

STOP_WORDS: Final[frozenset[str]] = frozenset(
    """
    a an the and or but is are was were be been being have has had do does did will would
    shall should can could may might must for of to in on at by with about against between
    into through during before after above below from up down this that these those it its
    they them their what which who whom when where why how all any both each few more most
    some such no nor not only own same so than too very just now also here there then always
    often once never ever your you our we i me my he she his her him us yes okay please
    want need like make sure going know think let use using file files code
    """.split()
)

FILE_EXTENSIONS: Final[tuple[str, ...]] = tuple(
    "tsx ts jsx js mjs cjs py java cpp cc c hpp h cs go rb rs php html css scss json md "
    "yml yaml sh sql toml".split()
)

_FILE_REF_RE = re.compile(
    r"(?<![\w/.-])[A-Za-z0-9_./-]*[A-Za-z0-9_-]\.(?:"
    + "|".join(FILE_EXTENSIONS)
    + r")(?![A-Za-z0-9])"
)
_TOKEN_SPLIT_RE = re.compile(r"[^\w]+")
_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|\n+")
_ACTION_RE = re.compile(
    r"^(?:I(?:'ve|’ve| have)?\s+"
    r"(?:created|updated|fixed|implemented|added|modified|refactored|removed)"
    r"|(?:Created|Updated|Fixed|Implemented|Added))\b"
)
_CODE_FENCE = "```"

FILE_OPERATION_MARKERS: Final[tuple[str, ...]] = ("write_to_file", "replace_in_file")
COMMAND_MARKERS: Final[tuple[str, ...]] = ("execute_command",)

DEFAULT_TOPIC_LIMIT = 10
DEFAULT_KEY_ACTION_LIMIT = 10


@dataclass(frozen=True, slots=True)
class TimeRange:
    start: str
    end: str


@dataclass(frozen=True, slots=True)
class AnalysisSummary:
    message_count: int
    human_count: int
    assistant_count: int
    topics: list[tuple[str, int]] = field(default_factory=list)
    code_block_count: int = 0
    file_operation_count: int = 0
    command_count: int = 0
    files_referenced: list[str] = field(default_factory=list)
    key_actions: list[str] = field(default_factory=list)
    time_range: TimeRange | None = None
    complete: bool = True
    expected_count: int | None = None

    @property
    def completeness_note(self) -> str | None:
        if self.complete:
            return None
        if self.expected_count is not None:
            return (
                f"Partial reconstruction: {self.message_count} of ~{self.expected_count} "
                "messages were recovered."
            )
        return "Partial reconstruction: the source file could not be read completely."

    def to_dict(self) -> dict[str, Any]:
        return {
            "message_count": self.message_count,
            "human_count": self.human_count,
            "assistant_count": self.assistant_count,
            "topics": [{"topic": topic, "count": count} for topic, count in self.topics],
            "code_block_count": self.code_block_count,
            "file_operation_count": self.file_operation_count,
            "command_count": self.command_count,
            "files_referenced": list(self.files_referenced),
            "key_actions": list(self.key_actions),
            "time_range": (
                {"start": self.time_range.start, "end": self.time_range.end}
                if self.time_range
                else None
            ),
            "complete": self.complete,
            "expected_count": self.expected_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalysisSummary:
        raw_range = data.get("time_range")
        time_range = None
        if isinstance(raw_range, dict):
            time_range = TimeRange(start=str(raw_range["start"]), end=str(raw_range["end"]))
        expected = data.get("expected_count")
        return cls(
            message_count=int(data.get("message_count", 0)),
            human_count=int(data.get("human_count", 0)),
            assistant_count=int(data.get("assistant_count", 0)),
            topics=[(str(item["topic"]), int(item["count"])) for item in data.get("topics") or []],
            code_block_count=int(data.get("code_block_count", 0)),
            file_operation_count=int(data.get("file_operation_count", 0)),
            command_count=int(data.get("command_count", 0)),
            files_referenced=[str(item) for item in data.get("files_referenced") or []],
            key_actions=[str(item) for item in data.get("key_actions") or []],
            time_range=time_range,
            complete=bool(data.get("complete", True)),
            expected_count=int(expected) if expected is not None else None,
        )


def tokenize(text: str) -> list[str]:
    tokens: list[str] = []
    for raw in _TOKEN_SPLIT_RE.split(text.lower()):
        token = raw.strip("_")
        if len(token) <= 3 or token in STOP_WORDS or token.isdigit():
            continue
        tokens.append(token)
    return tokens


def count_code_blocks(text: str) -> int:
    return text.count(_CODE_FENCE) // 2


def find_file_references(text: str) -> list[str]:
    return [match.group(0).removeprefix("./") for match in _FILE_REF_RE.finditer(text)]


def is_code_discussion(message: Message, filename: str | None = None) -> bool:
    """True for messages with a code fence or a file reference.

    With ``filename`` the message must also mention that name verbatim.
    """

    text = message.searchable_text()
    if not text:
        return False
    if filename and filename not in text:
        return False
    return _CODE_FENCE in text or _FILE_REF_RE.search(text) is not None


def find_action_sentences(text: str) -> list[str]:
    actions: list[str] = []
    for sentence in _SENTENCE_SPLIT_RE.split(text):
        cleaned = sentence.strip().lstrip("-*# ").strip()
        if cleaned and _ACTION_RE.match(cleaned):
            actions.append(cleaned.rstrip(".!?").strip())
    return actions


def format_timestamp(timestamp: int | float) -> str:
    """ISO-8601 UTC for epoch milliseconds; values datetime cannot hold stay numeric."""

    try:
        moment = dt.datetime.fromtimestamp(timestamp / 1000, tz=dt.UTC)
    except (ValueError, OverflowError, OSError):
        return str(timestamp)
    return moment.isoformat().replace("+00:00", "Z")


def filter_since(messages: Sequence[Message], since_timestamp: int | float | None) -> list[Message]:
    if since_timestamp is None:
        return list(messages)
    gate = SinceGate(since_timestamp)
    return [message for message in messages if gate.accept(message)]


class ConversationAnalyzer:
    """Derive topic, code, file and action statistics from a message list."""

    def __init__(
        self,
        *,
        topic_limit: int = DEFAULT_TOPIC_LIMIT,
        key_action_limit: int = DEFAULT_KEY_ACTION_LIMIT,
    ) -> None:
        self.topic_limit = topic_limit
        self.key_action_limit = key_action_limit

    def analyze(
        self,
        messages: Sequence[Message],
        since_timestamp: int | float | None = None,
        *,
        complete: bool = True,
        expected_count: int | None = None,
    ) -> AnalysisSummary:
        selected = filter_since(messages, since_timestamp)

        human_count = 0
        assistant_count = 0
        code_blocks = 0
        file_operations = 0
        commands = 0
        topic_counts: Counter[str] = Counter()
        files: set[str] = set()
        key_actions: list[str] = []
        timestamps: list[int | float] = []

        for message in selected:
            if message.is_human:
                human_count += 1
            elif message.is_assistant:
                assistant_count += 1
            if message.timestamp is not None:
                timestamps.append(message.timestamp)

            text = message.text
            if not text:
                continue
            code_blocks += count_code_blocks(text)
            if any(marker in text for marker in FILE_OPERATION_MARKERS):
                file_operations += 1
            if any(marker in text for marker in COMMAND_MARKERS):
                commands += 1
            files.update(find_file_references(text))
            topic_counts.update(tokenize(text))
            if message.is_assistant and len(key_actions) < self.key_action_limit:
                remaining = self.key_action_limit - len(key_actions)
                key_actions.extend(find_action_sentences(text)[:remaining])

        time_range = None
        if timestamps:
            time_range = TimeRange(
                start=format_timestamp(timestamps[0]),
                end=format_timestamp(timestamps[-1]),
            )

        return AnalysisSummary(
            message_count=len(selected),
            human_count=human_count,
            assistant_count=assistant_count,
            topics=topic_counts.most_common(self.topic_limit),
            code_block_count=code_blocks,
            file_operation_count=file_operations,
            command_count=commands,
            files_referenced=sorted(files),
            key_actions=key_actions,
            time_range=time_range,
            complete=complete,
            expected_count=expected_count,
        )
