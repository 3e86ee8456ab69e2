from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from ..errors import NotFoundError, ParseError
from .fallback import FallbackArrayReader
from .filters import FilterSpec
from .streaming import StreamingArrayReader
from .types import Message

logger = logging.getLogger(__name__)

SNIPPET_CONTEXT_CHARS = 100


@dataclass(frozen=True, slots=True)
class SearchHit:
    message: Message
    snippet: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "role": self.message.role,
            "timestamp": self.message.timestamp,
            "snippet": self.snippet,
            "message": self.message.to_dict(),
        }


def _require_file(path: str | Path) -> Path:
    file_path = Path(path)
    if not file_path.is_file():
        raise NotFoundError(f"conversation file not found: {file_path}")
    return file_path


def read_conversation(path: str | Path, spec: FilterSpec | None = None) -> list[Message]:
    """Exact read: stream first, whole-file parse if streaming rejects the input.

    A ParseError from the fallback propagates; recovery is a separate call.
    """

    file_path = _require_file(path)
    spec = spec or FilterSpec()
    try:
        return StreamingArrayReader().read_filtered(file_path, spec)
    except ParseError as exc:
        logger.warning("streaming read failed, falling back to full parse: %s", exc)
    return FallbackArrayReader().read_filtered(file_path, spec)


def count_messages(path: str | Path) -> int:
    file_path = _require_file(path)
    try:
        return StreamingArrayReader().count(file_path)
    except ParseError as exc:
        logger.warning("streaming count failed, falling back to full parse: %s", exc)
    return FallbackArrayReader().count(file_path)


def extract_snippet(text: str, term: str, context: int = SNIPPET_CONTEXT_CHARS) -> str:
    index = text.lower().find(term.lower())
    if index == -1:
        return text[:150] + ("..." if len(text) > 150 else "")
    start = max(0, index - context)
    end = min(len(text), index + len(term) + context)
    snippet = text[start:end]
    if start > 0:
        snippet = "..." + snippet
    if end < len(text):
        snippet = snippet + "..."
    return snippet


def search_messages(
    path: str | Path,
    term: str,
    *,
    limit: int | None = 20,
    context: int = SNIPPET_CONTEXT_CHARS,
) -> list[SearchHit]:
    if not term or not term.strip():
        raise ValueError("search term is required")
    matches = read_conversation(path, FilterSpec(limit=limit, search_term=term))
    hits: list[SearchHit] = []
    for message in matches:
        snippet = extract_snippet(message.searchable_text() or "", term, context)
        hits.append(SearchHit(message=message, snippet=snippet))
    return hits
