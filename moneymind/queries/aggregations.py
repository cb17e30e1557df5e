"""
Ledger Aggregations

DESIGN DECISION: Aggregations are DETERMINISTIC derivations.
They read a snapshot and return report models; nothing is cached and
nothing is written back. Dashboards, charts and the narrative summary
all see exactly what the ledger holds.

"Current month" means the calendar month (year and month) of `today`,
which defaults to the configured timezone's local date.
"""

import calendar
import datetime as dt
from collections import defaultdict
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from dateutil.relativedelta import relativedelta

from moneymind.config import get_settings, local_today
from moneymind.models.ledger import LedgerSnapshot, Transaction, TransactionType
from moneymind.models.reports import (
    BudgetProgress,
    DashboardStats,
    GoalProgress,
    MonthlyTotals,
)


INSUFFICIENT_DATA_MESSAGE = (
    "Not enough data for a meaningful summary. "
    "Please add more transactions from the last 30 days."
)

UNCATEGORIZED = "Uncategorized"

# Symbol and minor-unit digits; other codes are printed as "CHF 1,234.50"
_CURRENCY_FORMATS = {
    "USD": ("$", 2),
    "EUR": ("€", 2),
    "GBP": ("£", 2),
    "INR": ("₹", 2),
    "JPY": ("¥", 0),
    "CAD": ("CA$", 2),
    "AUD": ("A$", 2),
}


# =============================================================================
# HELPERS
# =============================================================================

def _resolve_today(today: Optional[dt.date]) -> dt.date:
    return today if today is not None else local_today()


def _in_month(transaction: Transaction, year: int, month: int) -> bool:
    return transaction.date.year == year and transaction.date.month == month


def _sum(transactions: Iterable[Transaction], kind: TransactionType) -> Decimal:
    return sum(
        (t.amount for t in transactions if t.type == kind),
        Decimal("0"),
    )


def _percent(part: Decimal, whole: Decimal) -> Decimal:
    return part / whole * 100


def round_half_up(value: Decimal) -> int:
    """Nearest integer, halves towards +infinity (-2.5 -> -2, 2.5 -> 3)."""
    return int((value + Decimal("0.5")).to_integral_value(rounding=ROUND_FLOOR))


def format_currency(amount: Decimal, currency: str = "USD") -> str:
    """
    Render an amount the way the dashboard shows it.

    >>> format_currency(Decimal("1234.5"))
    '$1,234.50'
    >>> format_currency(Decimal("-50"))
    '-$50.00'
    """
    code = currency.upper()
    symbol, digits = _CURRENCY_FORMATS.get(code, (f"{code} ", 2))
    quantum = Decimal(1).scaleb(-digits)
    value = Decimal(amount).quantize(quantum, rounding=ROUND_HALF_UP)
    sign = "-" if value < 0 else ""
    return f"{sign}{symbol}{abs(value):,.{digits}f}"


# =============================================================================
# CURRENT MONTH
# =============================================================================

def dashboard_stats(
    snapshot: LedgerSnapshot,
    today: Optional[dt.date] = None,
) -> DashboardStats:
    """Headline numbers: balances plus this month's income and spending."""
    today = _resolve_today(today)
    monthly = [t for t in snapshot.transactions if _in_month(t, today.year, today.month)]

    income = _sum(monthly, TransactionType.INCOME)
    expenses = _sum(monthly, TransactionType.EXPENSE)
    net = income - expenses
    savings_rate = round_half_up(net / income * 100) if income > 0 else 0

    return DashboardStats(
        total_balance=sum((a.balance for a in snapshot.accounts), Decimal("0")),
        monthly_income=income,
        monthly_expenses=expenses,
        net_change=net,
        savings_rate=savings_rate,
    )


def budget_progress(
    snapshot: LedgerSnapshot,
    today: Optional[dt.date] = None,
) -> list[BudgetProgress]:
    """
    This month's spend for every category that has a budget.

    Progress is an unrounded percentage and is not capped at 100.
    """
    today = _resolve_today(today)
    spent: dict[str, Decimal] = defaultdict(Decimal)
    for t in snapshot.transactions:
        if t.type == TransactionType.EXPENSE and t.category_id and _in_month(t, today.year, today.month):
            spent[t.category_id] += t.amount

    return [
        BudgetProgress(
            category_id=category.id,
            name=category.name,
            icon=category.icon,
            budget=category.budget,
            spent=spent[category.id],
            progress=_percent(spent[category.id], category.budget),
        )
        for category in snapshot.categories
        if category.budget > 0
    ]


def expense_breakdown(
    snapshot: LedgerSnapshot,
    today: Optional[dt.date] = None,
) -> dict[str, Decimal]:
    """This month's expenses totalled by category name, largest first."""
    today = _resolve_today(today)
    return _expenses_by_category(
        snapshot,
        (t for t in snapshot.transactions if _in_month(t, today.year, today.month)),
    )


def _expenses_by_category(
    snapshot: LedgerSnapshot,
    transactions: Iterable[Transaction],
) -> dict[str, Decimal]:
    totals: dict[str, Decimal] = defaultdict(Decimal)
    for t in transactions:
        if t.type != TransactionType.EXPENSE:
            continue
        category = snapshot.get_category(t.category_id)
        totals[category.name if category else UNCATEGORIZED] += t.amount
    # sorted() is stable, so ties keep first-seen order
    return dict(sorted(totals.items(), key=lambda item: item[1], reverse=True))


# =============================================================================
# HISTORY
# =============================================================================

def monthly_series(
    snapshot: LedgerSnapshot,
    today: Optional[dt.date] = None,
    months: Optional[int] = None,
) -> list[MonthlyTotals]:
    """Income/expense totals for the trailing months, oldest first."""
    today = _resolve_today(today)
    if months is None:
        months = get_settings().engine.series_months

    first_of_month = today.replace(day=1)
    series = []
    for offset in range(months - 1, -1, -1):
        month_start = first_of_month - relativedelta(months=offset)
        bucket = [
            t for t in snapshot.transactions
            if _in_month(t, month_start.year, month_start.month)
        ]
        series.append(MonthlyTotals(
            year=month_start.year,
            month=month_start.month,
            label=calendar.month_abbr[month_start.month],
            income=_sum(bucket, TransactionType.INCOME),
            expenses=_sum(bucket, TransactionType.EXPENSE),
        ))
    return series


def goal_progress(snapshot: LedgerSnapshot) -> list[GoalProgress]:
    return [
        GoalProgress(
            goal_id=goal.id,
            name=goal.name,
            target_amount=goal.target_amount,
            current_amount=goal.current_amount,
            progress=_percent(goal.current_amount, goal.target_amount),
        )
        for goal in snapshot.goals
    ]


def narrative_summary(
    snapshot: LedgerSnapshot,
    today: Optional[dt.date] = None,
) -> str:
    """
    Plain-text recap of the recent window.

    The window covers the last `summary_window_days` days: the date that
    many days back is outside it, and there is no upper bound, so
    post-dated entries are included. Below the minimum number of
    transactions a fixed message is returned instead.
    """
    today = _resolve_today(today)
    engine = get_settings().engine
    since = today - dt.timedelta(days=engine.summary_window_days)
    recent = [t for t in snapshot.transactions if t.date > since]

    if len(recent) < engine.summary_min_transactions:
        return INSUFFICIENT_DATA_MESSAGE

    currency = snapshot.settings.default_currency
    income = _sum(recent, TransactionType.INCOME)
    expenses = _sum(recent, TransactionType.EXPENSE)
    net = income - expenses
    by_category = _expenses_by_category(snapshot, recent)

    summary = f"Here's your financial summary for the last {engine.summary_window_days} days:\n\n"
    summary += f"• Total Income: {format_currency(income, currency)}\n"
    summary += f"• Total Expenses: {format_currency(expenses, currency)}\n"
    summary += (
        f"• Net Change: {format_currency(net, currency)} "
        f"({'Surplus' if net >= 0 else 'Deficit'})\n\n"
    )
    if by_category:
        name, total = next(iter(by_category.items()))
        summary += (
            f'Your top spending category was "{name}" '
            f"with a total of {format_currency(total, currency)}.\n\n"
        )
    summary += "Keep up the great work tracking your finances!"
    return summary
