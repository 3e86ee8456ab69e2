from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

DEFAULT_LABEL = "default"


@dataclass(frozen=True, slots=True)
class ActiveTask:
    task_id: str
    label: str
    set_at: float

    def to_dict(self) -> dict[str, Any]:
        return {"task_id": self.task_id, "label": self.label, "set_at": self.set_at}


class ActiveTaskCache:
    """Labelled pointers to the task a host is currently working on.

    Entries expire ``ttl_s`` seconds after they were set. The clock is
    injected so expiry can be driven explicitly.
    """

    def __init__(self, ttl_s: float = 600, *, clock: Callable[[], float] = time.time) -> None:
        self.ttl_s = ttl_s
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, ActiveTask] = {}

    def _expired(self, entry: ActiveTask, now: float) -> bool:
        return now - entry.set_at >= self.ttl_s

    def set(self, task_id: str, label: str | None = None) -> ActiveTask:
        task_id = task_id.strip()
        if not task_id:
            raise ValueError("task_id is required")
        entry = ActiveTask(task_id=task_id, label=label or DEFAULT_LABEL, set_at=self._clock())
        with self._lock:
            self._entries[entry.label] = entry
        return entry

    def get(self, label: str | None = None) -> ActiveTask | None:
        key = label or DEFAULT_LABEL
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._expired(entry, now):
                del self._entries[key]
                return None
            return entry

    def active(self) -> list[ActiveTask]:
        now = self._clock()
        with self._lock:
            for key in [k for k, entry in self._entries.items() if self._expired(entry, now)]:
                del self._entries[key]
            return sorted(self._entries.values(), key=lambda entry: entry.label)

    def clear(self, label: str | None = None) -> None:
        with self._lock:
            if label is None:
                self._entries.clear()
            else:
                self._entries.pop(label, None)
