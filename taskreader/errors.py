from __future__ import annotations


class TaskReaderError(Exception):
    """Base class for taskreader failures."""


class ParseError(TaskReaderError, ValueError):
    """A conversation file could not be parsed as a message array."""

    def __init__(self, reason: str, *, source: str | None = None) -> None:
        self.reason = reason
        self.source = source
        message = f"{source}: {reason}" if source else reason
        super().__init__(message)


class NotFoundError(TaskReaderError, LookupError):
    """A conversation file or crash report does not exist."""
