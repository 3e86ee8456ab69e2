from __future__ import annotations

import logging
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from ..conversation.types import Message, canonical_key
from .strategies import (
    DEFAULT_STRATEGIES,
    Recovered,
    Strategy,
    StrategyName,
    StrategyOutcome,
    count_role_keys,
)

logger = logging.getLogger(__name__)

StrategyUsed = StrategyName | Literal["none"]


@dataclass(frozen=True, slots=True)
class RecoverySummary:
    strategy_used: StrategyUsed
    recovered_count: int
    expected_count: int | None
    diagnostics: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return self.expected_count is not None and self.recovered_count >= self.expected_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy_used": self.strategy_used,
            "recovered_count": self.recovered_count,
            "expected_count": self.expected_count,
            "diagnostics": list(self.diagnostics),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecoverySummary:
        expected = data.get("expected_count")
        return cls(
            strategy_used=data.get("strategy_used", "none"),
            recovered_count=int(data.get("recovered_count", 0)),
            expected_count=int(expected) if expected is not None else None,
            diagnostics=[str(item) for item in data.get("diagnostics") or []],
        )


@dataclass(frozen=True, slots=True)
class RecoveryResult:
    strategy_used: StrategyUsed
    recovered_count: int
    expected_count: int | None
    messages: list[Message]
    diagnostics: list[str]

    @property
    def is_exhausted(self) -> bool:
        return self.recovered_count == 0

    @property
    def is_complete(self) -> bool:
        return self.summary().is_complete

    def summary(self) -> RecoverySummary:
        return RecoverySummary(
            strategy_used=self.strategy_used,
            recovered_count=self.recovered_count,
            expected_count=self.expected_count,
            diagnostics=list(self.diagnostics),
        )


def _merge(
    outcomes: Sequence[StrategyOutcome],
) -> tuple[list[Recovered], list[tuple[StrategyName, int]]]:
    """Union strategy results, keeping repeated identical messages once per copy."""

    best: Counter[str] = Counter()
    merged: list[Recovered] = []
    contributors: list[tuple[StrategyName, int]] = []
    for outcome in outcomes:
        local: Counter[str] = Counter()
        added = 0
        for item in sorted(outcome.found, key=lambda recovered: recovered.offset):
            key = canonical_key(item.message)
            local[key] += 1
            if local[key] > best[key]:
                best[key] = local[key]
                merged.append(item)
                added += 1
        if added:
            contributors.append((outcome.name, added))
    merged.sort(key=lambda recovered: recovered.offset)
    return merged, contributors


class RecoveryPipeline:
    """Best-effort message extraction for files the exact readers reject.

    Strategies run in order of decreasing precision. ``recover`` never raises:
    a failing strategy only lowers recall.
    """

    def __init__(self, strategies: Sequence[Strategy] | None = None) -> None:
        self.strategies = tuple(strategies) if strategies is not None else DEFAULT_STRATEGIES

    def recover(self, path: str | Path, max_messages: int | None = None) -> RecoveryResult:
        try:
            raw = Path(path).read_bytes()
        except OSError as exc:
            logger.warning("recovery could not read %s", path, exc_info=exc)
            return self._result("none", [], None, [f"read failed: {exc}"], max_messages)
        text = raw.decode("utf-8-sig", errors="replace")
        return self.recover_text(text, max_messages=max_messages)

    def recover_text(self, text: str, *, max_messages: int | None = None) -> RecoveryResult:
        diagnostics: list[str] = []
        bound = count_role_keys(text)
        outcomes: list[StrategyOutcome] = []
        for strategy in self.strategies:
            try:
                outcome = strategy.attempt(text)
            except Exception as exc:
                logger.warning("recovery strategy %s failed", strategy.name, exc_info=exc)
                diagnostics.append(f"{strategy.name}: failed: {exc}")
                continue
            diagnostics.extend(outcome.diagnostics)
            if outcome.reason:
                diagnostics.append(f"{outcome.name}: {outcome.reason}")
            count = len(outcome.found)
            if outcome.complete:
                diagnostics.append(f"{outcome.name}: parsed all {count} messages")
                return self._result(outcome.name, outcome.found, count, diagnostics, max_messages)
            diagnostics.append(f"{outcome.name}: recovered {count} of at most {bound}")
            if count and count >= bound:
                return self._result(outcome.name, outcome.found, bound, diagnostics, max_messages)
            outcomes.append(outcome)

        merged, contributors = _merge(outcomes)
        if not merged:
            logger.info("recovery exhausted all strategies")
            diagnostics.append("all strategies exhausted")
            return self._result("none", [], bound or None, diagnostics, max_messages)
        diagnostics.append(
            "merged: " + ", ".join(f"{name} contributed {added}" for name, added in contributors)
        )
        expected = max(bound, len(merged))
        strategy_used = contributors[0][0]
        return self._result(strategy_used, merged, expected, diagnostics, max_messages)

    def _result(
        self,
        strategy_used: StrategyUsed,
        found: Sequence[Recovered],
        expected: int | None,
        diagnostics: list[str],
        max_messages: int | None,
    ) -> RecoveryResult:
        messages = [item.message for item in found]
        recovered = len(messages)
        if max_messages is not None and max_messages > 0 and recovered > max_messages:
            messages = messages[-max_messages:]
            diagnostics.append(f"kept most recent {max_messages} of {recovered} messages")
        return RecoveryResult(
            strategy_used=strategy_used,
            recovered_count=recovered,
            expected_count=expected,
            messages=messages,
            diagnostics=diagnostics,
        )
