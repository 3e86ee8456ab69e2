from __future__ import annotations

from collections import deque
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from .types import Message


@dataclass(frozen=True, slots=True)
class FilterSpec:
    """Query-time filters for a conversation read.

    ``since``, ``search_term`` and ``predicate`` select matches; ``limit`` then
    keeps the most recent N of them in original order.
    """

    limit: int | None = None
    since: int | float | None = None
    search_term: str | None = None
    predicate: Callable[[Message], bool] | None = None

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit <= 0:
            raise ValueError(f"limit must be positive, got {self.limit!r}")

    @property
    def is_tail_only(self) -> bool:
        return self.since is None and not self.search_term and self.predicate is None


class SinceGate:
    """Time-bound filter that uses array position for untimestamped messages.

    A timestamped message passes when its timestamp is >= ``since``. A message
    without a timestamp passes when the latest timestamped message before it
    passed.
    """

    def __init__(self, since: int | float) -> None:
        self.since = since
        self._open = False

    def accept(self, message: Message) -> bool:
        if message.timestamp is None:
            return self._open
        self._open = message.timestamp >= self.since
        return self._open


class MessageFilter:
    """Stateful matcher for one pass over a message sequence."""

    def __init__(self, spec: FilterSpec) -> None:
        self.spec = spec
        self._gate = SinceGate(spec.since) if spec.since is not None else None
        self._needle = spec.search_term.lower() if spec.search_term else None

    def accept(self, message: Message) -> bool:
        # The gate must see every message to keep its position state.
        if self._gate is not None and not self._gate.accept(message):
            return False
        if self._needle is not None:
            haystack = message.searchable_text()
            if haystack is None or self._needle not in haystack.lower():
                return False
        if self.spec.predicate is not None and not self.spec.predicate(message):
            return False
        return True


def apply_filter(messages: Iterable[Message], spec: FilterSpec) -> list[Message]:
    """Apply ``spec`` in one forward pass.

    A bare tail query keeps only ``limit`` elements in a ring buffer. Filtered
    queries keep every match and truncate to the tail at the end.
    """

    if spec.is_tail_only:
        if spec.limit is None:
            return list(messages)
        ring: deque[Message] = deque(maxlen=spec.limit)
        ring.extend(messages)
        return list(ring)

    matcher = MessageFilter(spec)
    matches = [message for message in messages if matcher.accept(message)]
    if spec.limit is not None and len(matches) > spec.limit:
        return matches[-spec.limit :]
    return matches
