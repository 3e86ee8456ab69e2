from __future__ import annotations

from .pipeline import RecoveryPipeline, RecoveryResult, RecoverySummary
from .strategies import (
    DEFAULT_STRATEGIES,
    ChunkedStrategy,
    DirectStrategy,
    LineScanStrategy,
    RegexStrategy,
    Strategy,
    StrategyOutcome,
)

__all__ = [
    "DEFAULT_STRATEGIES",
    "ChunkedStrategy",
    "DirectStrategy",
    "LineScanStrategy",
    "RecoveryPipeline",
    "RecoveryResult",
    "RecoverySummary",
    "RegexStrategy",
    "Strategy",
    "StrategyOutcome",
]
