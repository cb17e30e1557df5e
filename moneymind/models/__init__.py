"""
Data Models Package

This package contains all Pydantic models used by the ledger engine.
All data flowing through the engine must conform to these schemas.
"""

from moneymind.models.ledger import (
    Account,
    AccountType,
    Category,
    Frequency,
    Goal,
    LedgerSnapshot,
    Receipt,
    RecurringRule,
    RecurringTemplate,
    Transaction,
    TransactionType,
    UserPreferences,
    ValidationIssue,
    ValidationResult,
    default_snapshot,
    generate_id,
    references_account,
    references_category,
)
from moneymind.models.reports import (
    BudgetProgress,
    DashboardStats,
    ExportRow,
    GoalProgress,
    MonthlyTotals,
    TransactionFilter,
)
from moneymind.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "Account",
    "AccountType",
    "Category",
    "Frequency",
    "Goal",
    "LedgerSnapshot",
    "Receipt",
    "RecurringRule",
    "RecurringTemplate",
    "Transaction",
    "TransactionType",
    "UserPreferences",
    "ValidationIssue",
    "ValidationResult",
    "default_snapshot",
    "generate_id",
    "references_account",
    "references_category",
    # Report models
    "BudgetProgress",
    "DashboardStats",
    "ExportRow",
    "GoalProgress",
    "MonthlyTotals",
    "TransactionFilter",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
