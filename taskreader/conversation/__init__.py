from __future__ import annotations

from .fallback import FallbackArrayReader
from .filters import FilterSpec, apply_filter
from .reader import SearchHit, count_messages, read_conversation, search_messages
from .streaming import StreamingArrayReader, iter_messages
from .types import KNOWN_ROLES, Message

__all__ = [
    "KNOWN_ROLES",
    "FallbackArrayReader",
    "FilterSpec",
    "Message",
    "SearchHit",
    "StreamingArrayReader",
    "apply_filter",
    "count_messages",
    "iter_messages",
    "read_conversation",
    "search_messages",
]
