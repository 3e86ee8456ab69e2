import codecs
import json
from pathlib import Path
from typing import Any

import pytest

from taskreader.conversation import (
    FallbackArrayReader,
    FilterSpec,
    StreamingArrayReader,
    count_messages,
    iter_messages,
    read_conversation,
    search_messages,
)
from taskreader.conversation.reader import extract_snippet
from taskreader.errors import NotFoundError, ParseError

BASE_TS = 1_700_000_000_000


def _messages(count: int) -> list[dict[str, Any]]:
    return [
        {
            "role": "user" if index % 2 else "assistant",
            "content": f"m{index}",
            "timestamp": BASE_TS + index * 1000,
        }
        for index in range(1, count + 1)
    ]


def _write(path: Path, data: Any) -> Path:
    path.write_text(json.dumps(data))
    return path


def _mixed_fixture(tmp_path: Path) -> Path:
    data = [
        {"role": "user", "content": "Please fix the login bug", "timestamp": BASE_TS},
        {"role": "assistant", "content": [{"type": "text", "text": "Looking at LOGIN.ts"}]},
        {"role": "assistant", "content": "Done", "timestamp": BASE_TS + 5000, "ts_extra": 1},
        {"role": "user", "content": {"tool": "read_file", "path": "login.ts"}},
        {"role": "system", "timestamp": BASE_TS + 9000},
        {
            "role": "assistant",
            "content": "Anything else about login?",
            "timestamp": BASE_TS + 10000,
        },
    ]
    return _write(tmp_path / "mixed.json", data)


FILTER_SPECS = [
    FilterSpec(),
    FilterSpec(limit=1),
    FilterSpec(limit=4),
    FilterSpec(limit=100),
    FilterSpec(since=BASE_TS + 5000),
    FilterSpec(since=BASE_TS + 5000, limit=2),
    FilterSpec(search_term="login"),
    FilterSpec(search_term="LOGIN", limit=2),
    FilterSpec(predicate=lambda message: message.is_assistant),
    FilterSpec(predicate=lambda message: message.is_assistant, since=BASE_TS + 1, limit=1),
]


@pytest.mark.parametrize("spec", FILTER_SPECS)
def test_streaming_matches_fallback(tmp_path: Path, spec: FilterSpec) -> None:
    path = _mixed_fixture(tmp_path)
    streamed = StreamingArrayReader().read_filtered(path, spec)
    loaded = FallbackArrayReader().read_filtered(path, spec)
    assert streamed == loaded


def _surrogate_fixture(tmp_path: Path, *, bom: bool) -> Path:
    data = [
        {"role": "user", "content": "emoji cut \ud83d before the login fix", "timestamp": BASE_TS},
        {
            "role": "assistant",
            "content": "Fixed LOGIN.ts for caf\u00e9",
            "timestamp": BASE_TS + 5000,
        },
        {"role": "user", "content": "thanks \U0001f600"},
    ]
    body = json.dumps(data).encode("ascii")
    path = tmp_path / "surrogates.json"
    path.write_bytes(codecs.BOM_UTF8 + body if bom else body)
    return path


@pytest.mark.parametrize("bom", [False, True])
@pytest.mark.parametrize("spec", FILTER_SPECS)
def test_streaming_matches_fallback_on_escapes_and_bom(
    tmp_path: Path, spec: FilterSpec, bom: bool
) -> None:
    path = _surrogate_fixture(tmp_path, bom=bom)
    streamed = StreamingArrayReader().read_filtered(path, spec)
    loaded = FallbackArrayReader().read_filtered(path, spec)
    assert streamed == loaded


def test_lone_surrogate_escape_is_preserved(tmp_path: Path) -> None:
    path = _surrogate_fixture(tmp_path, bom=True)
    messages = StreamingArrayReader().read_filtered(path)
    assert messages[0].content == "emoji cut \ud83d before the login fix"
    assert messages[2].content == "thanks \U0001f600"


def test_tail_limit_keeps_most_recent_in_order(tmp_path: Path) -> None:
    path = _write(tmp_path / "conv.json", _messages(10))
    for reader in (StreamingArrayReader(), FallbackArrayReader()):
        result = reader.read_filtered(path, FilterSpec(limit=3))
        assert [message.content for message in result] == ["m8", "m9", "m10"]


def test_filtered_query_applies_limit_after_matching(tmp_path: Path) -> None:
    path = _write(tmp_path / "conv.json", _messages(10))
    result = read_conversation(
        path, FilterSpec(limit=2, predicate=lambda message: message.role == "user")
    )
    assert [message.content for message in result] == ["m7", "m9"]


def test_since_keeps_untimestamped_messages_after_a_kept_one(tmp_path: Path) -> None:
    path = _mixed_fixture(tmp_path)
    result = read_conversation(path, FilterSpec(since=BASE_TS + 5000))
    # The block message before the cutoff has no timestamp and follows a dropped one.
    assert [message.role for message in result] == ["assistant", "user", "system", "assistant"]
    assert result[0].content == "Done"


def test_non_positive_limit_is_rejected() -> None:
    with pytest.raises(ValueError):
        FilterSpec(limit=0)


def test_unknown_keys_round_trip(tmp_path: Path) -> None:
    path = _mixed_fixture(tmp_path)
    messages = read_conversation(path)
    assert messages[2].extra == {"ts_extra": 1}
    assert messages[2].to_dict() == {
        "role": "assistant",
        "content": "Done",
        "timestamp": BASE_TS + 5000,
        "ts_extra": 1,
    }
    assert [message.kind for message in messages] == [
        "text",
        "blocks",
        "text",
        "object",
        "empty",
        "text",
    ]


@pytest.mark.parametrize(
    "raw",
    [
        '[{"role": "user", "content": "a"}, {"role": "assistant", "con',
        '{"role": "user", "content": "a"}',
        '[{"role": "user", "content": "a"}, 3]',
        '[{"content": "no role"}]',
        '[{"role": "user", "content": "a"}] trailing',
        "",
    ],
)
def test_both_readers_reject_malformed_input(tmp_path: Path, raw: str) -> None:
    path = tmp_path / "bad.json"
    path.write_text(raw)
    with pytest.raises(ParseError):
        StreamingArrayReader().read_filtered(path)
    with pytest.raises(ParseError):
        FallbackArrayReader().read_filtered(path)
    with pytest.raises(ParseError):
        read_conversation(path)


def test_read_conversation_handles_utf8_bom(tmp_path: Path) -> None:
    path = tmp_path / "bom.json"
    path.write_bytes(b"\xef\xbb\xbf" + json.dumps(_messages(3)).encode("utf-8"))
    result = read_conversation(path, FilterSpec(limit=2))
    assert [message.content for message in result] == ["m2", "m3"]
    assert count_messages(path) == 3


def test_missing_file_raises_not_found(tmp_path: Path) -> None:
    with pytest.raises(NotFoundError):
        read_conversation(tmp_path / "missing.json")


def test_iter_messages_can_stop_early(tmp_path: Path) -> None:
    path = _write(tmp_path / "conv.json", _messages(5))
    generator = iter_messages(path)
    first = next(generator)
    generator.close()
    assert first.content == "m1"


def test_count_messages(tmp_path: Path) -> None:
    path = _write(tmp_path / "conv.json", _messages(7))
    assert count_messages(path) == 7


def test_search_messages_returns_snippets(tmp_path: Path) -> None:
    long_text = "x" * 150 + " the needle is here " + "y" * 150
    data = [
        {"role": "user", "content": "nothing to see"},
        {"role": "assistant", "content": long_text},
        {"role": "user", "content": [{"type": "text", "text": "another NEEDLE"}]},
    ]
    path = _write(tmp_path / "conv.json", data)
    hits = search_messages(path, "needle")
    assert len(hits) == 2
    assert hits[0].snippet.startswith("...")
    assert hits[0].snippet.endswith("...")
    assert "the needle is here" in hits[0].snippet
    assert hits[1].message.role == "user"


def test_search_messages_requires_term(tmp_path: Path) -> None:
    path = _write(tmp_path / "conv.json", _messages(2))
    with pytest.raises(ValueError):
        search_messages(path, "  ")


def test_extract_snippet_without_match_uses_prefix() -> None:
    assert extract_snippet("short text", "absent") == "short text"
    assert extract_snippet("a" * 200, "absent") == "a" * 150 + "..."


def test_null_known_keys_round_trip(tmp_path: Path) -> None:
    data = [
        {"role": "user", "content": None},
        {"role": "assistant", "content": "ok", "timestamp": None},
        {"role": "user"},
    ]
    path = _write(tmp_path / "nulls.json", data)
    for reader in (StreamingArrayReader(), FallbackArrayReader()):
        messages = reader.read_filtered(path)
        assert [message.to_dict() for message in messages] == data
        assert messages[0].kind == "empty"
        assert messages[1].timestamp is None
