from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Final, Literal

from ..errors import ParseError

KNOWN_ROLES: Final[tuple[str, ...]] = ("human", "user", "assistant", "system")
HUMAN_ROLES: Final[frozenset[str]] = frozenset({"human", "user"})

MessageKind = Literal["text", "blocks", "object", "empty"]

_KNOWN_KEYS = ("role", "content", "timestamp")


@dataclass(frozen=True, slots=True)
class Message:
    """One chat message as written by the extension.

    Keys other than role/content/timestamp are kept verbatim in ``extra`` so
    ``to_dict`` reproduces the source object. A known key whose value is null,
    or a timestamp that is not a number, is kept there too.
    """

    role: str
    content: Any = None
    timestamp: int | float | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        role = data.get("role")
        if not isinstance(role, str) or not role:
            raise ValueError("message role must be a non-empty string")
        extra = {key: value for key, value in data.items() if key not in _KNOWN_KEYS}
        content = data.get("content")
        if content is None and "content" in data:
            extra["content"] = None
        timestamp = data.get("timestamp")
        if "timestamp" in data and not _is_number(timestamp):
            extra["timestamp"] = timestamp
            timestamp = None
        return cls(role=role, content=content, timestamp=timestamp, extra=extra)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"role": self.role}
        if self.content is not None:
            data["content"] = self.content
        if self.timestamp is not None:
            data["timestamp"] = self.timestamp
        data.update(self.extra)
        return data

    @property
    def kind(self) -> MessageKind:
        if isinstance(self.content, str):
            return "text"
        if isinstance(self.content, list):
            return "blocks"
        if self.content is None:
            return "empty"
        return "object"

    @property
    def is_human(self) -> bool:
        return self.role in HUMAN_ROLES

    @property
    def is_assistant(self) -> bool:
        return self.role == "assistant"

    @property
    def text(self) -> str:
        """Flatten content into readable text; non-text blocks are serialized."""

        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        if isinstance(self.content, list):
            parts: list[str] = []
            for part in self.content:
                if isinstance(part, str):
                    parts.append(part)
                elif isinstance(part, dict) and isinstance(part.get("text"), str):
                    parts.append(part["text"])
                else:
                    parts.append(json.dumps(part, ensure_ascii=False))
            return " ".join(parts)
        return json.dumps(self.content, ensure_ascii=False)

    def searchable_text(self) -> str | None:
        """Content as matched by substring search, or None without content."""

        if self.content is None:
            return None
        if isinstance(self.content, str):
            return self.content
        return json.dumps(self.content, ensure_ascii=False)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def message_from_value(
    value: Any, *, source: str | None = None, index: int | None = None
) -> Message:
    """Convert one decoded array element into a Message or raise ParseError."""

    where = f"element {index}" if index is not None else "element"
    if not isinstance(value, dict):
        raise ParseError(f"{where} is not an object", source=source)
    try:
        return Message.from_dict(value)
    except ValueError as exc:
        raise ParseError(f"{where}: {exc}", source=source) from exc


def canonical_key(message: Message) -> str:
    return json.dumps(message.to_dict(), sort_keys=True, ensure_ascii=False)
