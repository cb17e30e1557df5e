"""Recurring expansion package."""

from moneymind.recurring.expansion import (
    ExpansionResult,
    RecurrenceLimitError,
    expand_recurring,
    iter_due_dates,
    materialize,
    occurrence_date,
)

__all__ = [
    "ExpansionResult",
    "RecurrenceLimitError",
    "expand_recurring",
    "iter_due_dates",
    "materialize",
    "occurrence_date",
]
