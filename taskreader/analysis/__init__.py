from __future__ import annotations

from .analyzer import AnalysisSummary, ConversationAnalyzer, TimeRange, is_code_discussion
from .recovery_context import RecoveredContext, build_recovered_context, format_recovered_context

__all__ = [
    "AnalysisSummary",
    "ConversationAnalyzer",
    "RecoveredContext",
    "TimeRange",
    "build_recovered_context",
    "format_recovered_context",
    "is_code_discussion",
]
