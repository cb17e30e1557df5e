"""Aggregation and query package."""

from moneymind.queries.aggregations import (
    INSUFFICIENT_DATA_MESSAGE,
    budget_progress,
    dashboard_stats,
    expense_breakdown,
    format_currency,
    goal_progress,
    monthly_series,
    narrative_summary,
    round_half_up,
)
from moneymind.queries.filters import (
    EXPORT_HEADERS,
    export_rows,
    filter_transactions,
)

__all__ = [
    # Aggregations
    "INSUFFICIENT_DATA_MESSAGE",
    "budget_progress",
    "dashboard_stats",
    "expense_breakdown",
    "format_currency",
    "goal_progress",
    "monthly_series",
    "narrative_summary",
    "round_half_up",
    # Filters
    "EXPORT_HEADERS",
    "export_rows",
    "filter_transactions",
]
