from __future__ import annotations

import json
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from typing import Any, Literal, Protocol

from ..conversation.types import KNOWN_ROLES, Message

StrategyName = Literal["direct", "chunked", "line", "regex"]

ROLE_KEY_RE = re.compile(r'"role"\s*:')
_MESSAGE_START_RE = re.compile(r'\{\s*"role"\s*:')
_SIGNIFICANT_RE = re.compile(r'[{}"\\]')

MAX_DIAGNOSTICS_PER_STRATEGY = 20
MAX_RESYNCS = 64


@dataclass(frozen=True, slots=True)
class Recovered:
    offset: int
    message: Message


@dataclass(slots=True)
class StrategyOutcome:
    name: StrategyName
    found: list[Recovered] = field(default_factory=list)
    complete: bool = False
    reason: str | None = None
    diagnostics: list[str] = field(default_factory=list)

    def note(self, text: str) -> None:
        if len(self.diagnostics) < MAX_DIAGNOSTICS_PER_STRATEGY:
            self.diagnostics.append(f"{self.name}: {text}")
        elif len(self.diagnostics) == MAX_DIAGNOSTICS_PER_STRATEGY:
            self.diagnostics.append(f"{self.name}: further diagnostics suppressed")


class Strategy(Protocol):
    name: StrategyName

    def attempt(self, text: str) -> StrategyOutcome: ...


def count_role_keys(text: str) -> int:
    """Structural upper bound on the number of messages in ``text``."""

    return sum(1 for _ in ROLE_KEY_RE.finditer(text))


def as_message(value: Any, *, strict: bool = False) -> Message | None:
    if not isinstance(value, dict):
        return None
    role = value.get("role")
    if not isinstance(role, str) or not role:
        return None
    if strict and (role not in KNOWN_ROLES or "content" not in value):
        return None
    return Message.from_dict(value)


def match_object(text: str, start: int) -> int | None:
    """Return the end offset of the object opening at ``start``, or None."""

    depth = 0
    in_string = False
    skip_to = -1
    for match in _SIGNIFICANT_RE.finditer(text, start):
        pos = match.start()
        if pos < skip_to:
            continue
        char = match.group()
        if in_string:
            if char == "\\":
                skip_to = pos + 2
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return pos + 1
    return None


def iter_object_spans(text: str) -> Iterator[tuple[int, int]]:
    """Yield (start, end) of each outermost balanced ``{...}`` in ``text``.

    Separators between objects are skipped without string tracking, so junk
    between array elements does not desynchronize the scan. An object that
    never closes is skipped one brace at a time, a bounded number of times;
    after that the scan resumes at the next object that opens with a role key.
    """

    pos = 0
    resyncs = 0
    while True:
        start = text.find("{", pos)
        if start == -1:
            return
        end = match_object(text, start)
        if end is None:
            resyncs += 1
            if resyncs <= MAX_RESYNCS:
                pos = start + 1
                continue
            resume = _MESSAGE_START_RE.search(text, start + 1)
            if resume is None:
                return
            pos = resume.start()
            continue
        yield start, end
        pos = end


class DirectStrategy:
    name: StrategyName = "direct"

    def attempt(self, text: str) -> StrategyOutcome:
        outcome = StrategyOutcome(self.name)
        try:
            data = json.loads(text)
        except json.JSONDecodeError as exc:
            outcome.reason = f"invalid json: {exc}"
            return outcome
        if not isinstance(data, list):
            outcome.reason = "top-level value is not an array"
            return outcome
        for index, item in enumerate(data):
            message = as_message(item)
            if message is None:
                outcome.reason = f"element {index} is not a role-bearing object"
                outcome.found = []
                return outcome
            outcome.found.append(Recovered(index, message))
        outcome.complete = True
        return outcome


class ChunkedStrategy:
    name: StrategyName = "chunked"

    def attempt(self, text: str) -> StrategyOutcome:
        outcome = StrategyOutcome(self.name)
        for start, end in iter_object_spans(text):
            try:
                value = json.loads(text[start:end])
            except json.JSONDecodeError as exc:
                outcome.note(f"chunk at offset {start} unparseable: {exc.msg}")
                continue
            message = as_message(value)
            if message is not None:
                outcome.found.append(Recovered(start, message))
        if not outcome.found:
            outcome.reason = "no role-bearing chunks"
        return outcome


def _trim_candidate(raw: str) -> str:
    start = raw.find("{")
    end = raw.rfind("}")
    if start == -1 or end < start:
        return ""
    return raw[start : end + 1]


class LineScanStrategy:
    """Accumulate lines until braces balance, then parse the buffer.

    Brace counting is raw (strings are not tracked), which lets it recover
    pretty-printed objects after a region that confuses the chunk scanner.
    """

    name: StrategyName = "line"

    def attempt(self, text: str) -> StrategyOutcome:
        outcome = StrategyOutcome(self.name)
        buffer: list[str] = []
        buffer_start = 0
        balance = 0
        offset = 0
        for line in text.splitlines(keepends=True):
            line_start = offset
            offset += len(line)
            if not buffer:
                brace = line.find("{")
                if brace == -1:
                    continue
                buffer_start = line_start + brace
            buffer.append(line)
            balance += line.count("{") - line.count("}")
            if balance > 0:
                continue

            candidate = _trim_candidate("".join(buffer))
            buffer = []
            balance = 0
            if not candidate:
                continue
            try:
                value = json.loads(candidate)
            except json.JSONDecodeError as exc:
                outcome.note(f"block at offset {buffer_start} unparseable: {exc.msg}")
                continue
            message = as_message(value)
            if message is not None:
                outcome.found.append(Recovered(buffer_start, message))
        if buffer:
            outcome.note(f"unbalanced block at offset {buffer_start} discarded")
        if not outcome.found:
            outcome.reason = "no balanced role-bearing blocks"
        return outcome


def _enclosing_open_brace(text: str, pos: int) -> int | None:
    depth = 0
    for index in range(pos - 1, -1, -1):
        char = text[index]
        if char == "}":
            depth += 1
        elif char == "{":
            if depth == 0:
                return index
            depth -= 1
    return None


class RegexStrategy:
    """Grow a balanced object around every ``"role":`` key occurrence.

    Candidates must carry a known role and a content key, which filters most
    matches that come from unrelated nested objects.
    """

    name: StrategyName = "regex"

    def attempt(self, text: str) -> StrategyOutcome:
        outcome = StrategyOutcome(self.name)
        spans: list[tuple[int, int, Message]] = []
        tried: set[int] = set()
        for match in ROLE_KEY_RE.finditer(text):
            start = _enclosing_open_brace(text, match.start())
            if start is None or start in tried:
                continue
            tried.add(start)
            end = match_object(text, start)
            if end is None:
                outcome.note(f"object at offset {start} never closes")
                continue
            try:
                value = json.loads(text[start:end])
            except json.JSONDecodeError as exc:
                outcome.note(f"object at offset {start} unparseable: {exc.msg}")
                continue
            message = as_message(value, strict=True)
            if message is None:
                outcome.note(f"object at offset {start} rejected by schema check")
                continue
            spans.append((start, end, message))

        # Balanced spans are disjoint or nested; keep only the outermost ones.
        spans.sort(key=lambda span: (span[0], -span[1]))
        outer_end = -1
        for start, end, message in spans:
            if end <= outer_end:
                continue
            outcome.found.append(Recovered(start, message))
            outer_end = end
        if not outcome.found:
            outcome.reason = "no schema-valid objects"
        return outcome


DEFAULT_STRATEGIES: tuple[Strategy, ...] = (
    DirectStrategy(),
    ChunkedStrategy(),
    LineScanStrategy(),
    RegexStrategy(),
)
