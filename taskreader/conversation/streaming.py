from __future__ import annotations

import codecs
import contextlib
import json
from collections.abc import Iterator
from pathlib import Path
from typing import IO

import ijson
from ijson.common import JSONError, ObjectBuilder

from ..errors import ParseError
from .filters import FilterSpec, apply_filter
from .types import Message, message_from_value

# String unescaping goes through json.decoder.scanstring here, so decoded
# values (lone surrogate escapes included) are identical to json.loads.
_BACKEND = ijson.get_backend("python")

_OPEN_EVENTS = {"start_map", "start_array"}
_CLOSE_EVENTS = {"end_map", "end_array"}


def iter_messages(path: str | Path) -> Iterator[Message]:
    """Yield messages from a top-level JSON array one element at a time.

    A leading UTF-8 byte order mark is skipped. Closing the generator closes
    the file handle, which is how callers cancel a read early.
    """

    source = str(path)
    with open(path, "rb") as handle:
        if handle.read(len(codecs.BOM_UTF8)) != codecs.BOM_UTF8:
            handle.seek(0)
        yield from _iter_array(handle, source)


def _iter_array(handle: IO[bytes], source: str) -> Iterator[Message]:
    events = _BACKEND.parse(handle, use_float=True)
    try:
        first = next(events, None)
        if first is None:
            raise ParseError("empty document", source=source)
        _, event, _ = first
        if event != "start_array":
            raise ParseError(f"top-level value is not an array (got {event})", source=source)

        index = 0
        closed = False
        for prefix, event, value in events:
            if prefix == "" and event == "end_array":
                closed = True
                break
            if event != "start_map":
                raise ParseError(f"element {index} is not an object", source=source)
            element = _build_object(events, value, source)
            yield message_from_value(element, source=source, index=index)
            index += 1
        if not closed:
            raise ParseError("unterminated array", source=source)

        # Trailing content after the array is a parse error in ijson.
        for _ in events:
            pass
    except JSONError as exc:
        raise ParseError(str(exc) or exc.__class__.__name__, source=source) from exc
    except json.JSONDecodeError as exc:
        raise ParseError(f"invalid string: {exc.msg}", source=source) from exc
    except UnicodeDecodeError as exc:
        raise ParseError(f"invalid utf-8: {exc}", source=source) from exc


def _build_object(
    events: Iterator[tuple[str, str, object]], start_value: object, source: str
) -> object:
    builder = ObjectBuilder()
    builder.event("start_map", start_value)
    depth = 1
    for _, event, value in events:
        builder.event(event, value)
        if event in _OPEN_EVENTS:
            depth += 1
        elif event in _CLOSE_EVENTS:
            depth -= 1
            if depth == 0:
                return builder.value
    raise ParseError("truncated element", source=source)


class StreamingArrayReader:
    """Single-pass, bounded-memory reader over a JSON message array."""

    def read_filtered(self, path: str | Path, spec: FilterSpec | None = None) -> list[Message]:
        with contextlib.closing(iter_messages(path)) as messages:
            return apply_filter(messages, spec or FilterSpec())

    def count(self, path: str | Path) -> int:
        with contextlib.closing(iter_messages(path)) as messages:
            return sum(1 for _ in messages)
