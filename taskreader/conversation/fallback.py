from __future__ import annotations

import json
from pathlib import Path

from ..errors import ParseError
from .filters import FilterSpec, apply_filter
from .types import Message, message_from_value


def load_messages(path: str | Path) -> list[Message]:
    source = str(path)
    try:
        raw = Path(path).read_text(encoding="utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ParseError(f"invalid utf-8: {exc}", source=source) from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ParseError(f"invalid json: {exc}", source=source) from exc
    if not isinstance(data, list):
        raise ParseError("top-level value is not an array", source=source)
    return [message_from_value(item, source=source, index=index) for index, item in enumerate(data)]


class FallbackArrayReader:
    """Whole-file reader with the same filter semantics as the streaming reader."""

    def read_filtered(self, path: str | Path, spec: FilterSpec | None = None) -> list[Message]:
        return apply_filter(load_messages(path), spec or FilterSpec())

    def count(self, path: str | Path) -> int:
        return len(load_messages(path))
