"""
Report and Query Models

Shapes returned by the aggregation layer and the filter accepted by the
transaction query. These are derived values: nothing here is persisted.
"""

import datetime as dt
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from moneymind.models.ledger import TransactionType


class TransactionFilter(BaseModel):
    """
    Criteria for the filtered transaction query.

    Every criterion is optional; an omitted one lets everything through.
    The date range is inclusive on both ends.
    """
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    date_from: Optional[dt.date] = None
    date_to: Optional[dt.date] = None
    type: Optional[TransactionType] = None
    category_id: Optional[str] = None
    account_id: Optional[str] = None


class DashboardStats(BaseModel):
    """Current-month headline numbers."""

    total_balance: Decimal
    monthly_income: Decimal
    monthly_expenses: Decimal
    net_change: Decimal
    savings_rate: int = Field(
        ...,
        description="Rounded percent of income kept; 0 when there is no income"
    )


class BudgetProgress(BaseModel):
    """
    Spend against one category's monthly budget.

    progress is uncapped: over 100 means over budget.
    """

    category_id: str
    name: str
    icon: str
    budget: Decimal
    spent: Decimal
    progress: Decimal

    @property
    def is_over_budget(self) -> bool:
        return self.spent > self.budget


class MonthlyTotals(BaseModel):
    """Income and expense sums for one calendar month."""

    year: int
    month: int = Field(..., ge=1, le=12)
    label: str
    income: Decimal
    expenses: Decimal


class GoalProgress(BaseModel):
    goal_id: str
    name: str
    target_amount: Decimal
    current_amount: Decimal
    progress: Decimal


class ExportRow(BaseModel):
    """
    One transaction as exporters see it.

    Category and account are resolved to names (blank when missing).
    """

    date: dt.date
    description: str
    type: TransactionType
    amount: Decimal
    category: str
    account: str
    tags: tuple[str, ...] = ()
