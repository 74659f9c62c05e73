"""Advisory spending-limit guard."""

from multivault.spending.guard import (
    LimitCheckResult,
    LimitSuggestion,
    SpendingLimitsSnapshot,
    SpendingView,
    SuggestionAction,
    UsageLevel,
    build_view,
    ensure_allowed,
    evaluate,
    format_duration,
    percentage_used,
    remaining_allowance,
    time_until_reset,
    usage_level,
)

__all__ = [
    "LimitCheckResult",
    "LimitSuggestion",
    "SpendingLimitsSnapshot",
    "SpendingView",
    "SuggestionAction",
    "UsageLevel",
    "build_view",
    "ensure_allowed",
    "evaluate",
    "format_duration",
    "percentage_used",
    "remaining_allowance",
    "time_until_reset",
    "usage_level",
]
