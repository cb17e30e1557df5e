"""
Core Ledger Models for MoneyMind

These models define the entities every other component reads and writes.
They are designed to:
1. Be immutable values (every change produces a new snapshot)
2. Enforce the structural rules of each entity at construction time
3. Round-trip the persisted ledger document (camelCase keys)

DESIGN DECISION: Money is Decimal, never float. Applying and reverting
the same transaction must restore a balance exactly, with no drift.
Only the stored document carries money as JSON numbers, the way the
ledger has always been written.
"""

import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Iterable, Mapping, Optional, Union
from uuid import uuid4

import structlog
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    PlainSerializer,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


logger = structlog.get_logger(__name__)


def generate_id() -> str:
    """Fresh opaque entity id."""
    return uuid4().hex


def _money_number(value: Decimal) -> Union[int, float]:
    if value == value.to_integral_value():
        return int(value)
    return float(value)


# Decimal in memory, a plain number in the stored document
Money = Annotated[
    Decimal,
    PlainSerializer(_money_number, return_type=Union[int, float], when_used="json"),
]


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """Kinds of account the owner can hold."""
    CASH = "cash"
    BANK = "bank"
    CREDIT = "credit"
    INVESTMENT = "investment"


class TransactionType(str, Enum):
    """
    Transaction kinds.

    The type decides which accounts a transaction moves money on:
    income credits one account, expense debits one, transfer moves
    between two.
    """
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class Frequency(str, Enum):
    """How often a recurring rule comes due."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# =============================================================================
# BASE
# =============================================================================

class LedgerModel(BaseModel):
    """
    Base for persisted ledger entities.

    Python attributes are snake_case; the stored document uses camelCase
    (accountId, startDate...), so both spellings are accepted on input.
    """
    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


# =============================================================================
# ACCOUNTS, CATEGORIES, GOALS
# =============================================================================

class Account(LedgerModel):
    """
    A place money lives.

    The balance is set once at creation and afterwards only moves through
    transaction effects. opening_balance remembers the creation balance so
    the history can be re-checked against it.
    """

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType = AccountType.BANK
    icon: str = "fa-wallet"
    balance: Money = Decimal("0")
    opening_balance: Optional[Money] = None


class Category(LedgerModel):
    """Spending/income category. A budget of 0 means no budget."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    icon: str = "fa-tag"
    budget: Money = Field(default=Decimal("0"), ge=0)


class Goal(LedgerModel):
    """
    Savings goal.

    current_amount is maintained by the owner directly; transactions never
    fund goals automatically.
    """

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    target_amount: Money = Field(..., gt=0)
    current_amount: Money = Field(default=Decimal("0"), ge=0)
    icon: str = "fa-bullseye"
    target_date: Optional[dt.date] = None

    @field_validator("target_date", mode="before")
    @classmethod
    def blank_target_date(cls, v: Any) -> Any:
        return _blank_to_none(v)


class Receipt(LedgerModel):
    """Opaque attachment reference owned by the storage collaborator."""

    url: str
    path: str


# =============================================================================
# TRANSACTIONS AND RECURRING RULES
# =============================================================================

class TransactionShape(LedgerModel):
    """
    Fields shared by transactions and recurring templates.

    Rules:
    - transfer requires a destination account
    - every type except income requires a category
    - a destination account only makes sense on a transfer and is
      dropped otherwise
    """

    type: TransactionType
    amount: Money = Field(..., gt=0)
    description: str = Field(default="", max_length=500)
    account_id: str = Field(..., min_length=1)
    to_account_id: Optional[str] = None
    category_id: Optional[str] = None
    tags: tuple[str, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def drop_destination_unless_transfer(cls, data: Any) -> Any:
        if isinstance(data, Mapping):
            kind = data.get("type")
            if isinstance(kind, TransactionType):
                kind = kind.value
            if kind != TransactionType.TRANSFER.value:
                data = {
                    key: value
                    for key, value in data.items()
                    if key not in ("to_account_id", "toAccountId")
                }
        return data

    @field_validator("to_account_id", "category_id", mode="before")
    @classmethod
    def blank_ids_to_none(cls, v: Any) -> Any:
        return _blank_to_none(v)

    @field_validator("tags", mode="before")
    @classmethod
    def normalize_tags(cls, v: Any) -> tuple[str, ...]:
        """Tags are unique; blanks dropped, first appearance order kept."""
        if v is None:
            return ()
        if isinstance(v, str):
            v = v.split(",")
        unique: list[str] = []
        for tag in v:
            tag = str(tag).strip()
            if tag and tag not in unique:
                unique.append(tag)
        return tuple(unique)

    @model_validator(mode="after")
    def check_required_references(self) -> "TransactionShape":
        if self.type == TransactionType.TRANSFER and not self.to_account_id:
            raise ValueError("Transfer requires a destination account")
        if self.type != TransactionType.INCOME and not self.category_id:
            raise ValueError(f"{self.type.value.capitalize()} requires a category")
        return self

    def referenced_account_ids(self) -> tuple[str, ...]:
        if self.to_account_id:
            return (self.account_id, self.to_account_id)
        return (self.account_id,)


class Transaction(TransactionShape):
    """
    A single settled ledger entry.

    Created by the owner or materialized from a recurring rule
    (recurring_id links back to the rule). Changed only by full
    replacement.
    """

    id: str = Field(..., min_length=1)
    date: dt.date
    receipt: Optional[Receipt] = None
    recurring_id: Optional[str] = None

    @field_validator("recurring_id", mode="before")
    @classmethod
    def blank_recurring_id(cls, v: Any) -> Any:
        return _blank_to_none(v)


class RecurringTemplate(TransactionShape):
    """The transaction a recurring rule stamps out on each due date."""
    pass


_TEMPLATE_KEYS = frozenset(
    key
    for name in RecurringTemplate.model_fields
    for key in (name, to_camel(name))
)


class RecurringRule(LedgerModel):
    """
    Generative rule for repeating transactions.

    end_date is inclusive. Edits replace the whole rule.
    """

    id: str = Field(..., min_length=1)
    frequency: Frequency
    start_date: dt.date
    end_date: Optional[dt.date] = None
    template: RecurringTemplate

    @model_validator(mode="before")
    @classmethod
    def lift_flat_template(cls, data: Any) -> Any:
        """Older documents keep the template fields flat on the rule."""
        if isinstance(data, Mapping) and "template" not in data:
            data = dict(data)
            data["template"] = {
                key: data.pop(key) for key in list(data) if key in _TEMPLATE_KEYS
            }
        return data

    @field_validator("end_date", mode="before")
    @classmethod
    def blank_end_date(cls, v: Any) -> Any:
        return _blank_to_none(v)


# =============================================================================
# SNAPSHOT
# =============================================================================

class UserPreferences(LedgerModel):
    """Owner preferences stored alongside the ledger."""

    default_currency: str = Field(default="USD", min_length=3, max_length=3)
    default_account: Optional[str] = None
    theme: str = "dark"

    @field_validator("default_currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()

    @field_validator("default_account", mode="before")
    @classmethod
    def blank_default_account(cls, v: Any) -> Any:
        return _blank_to_none(v)


_RULE_KEYS = ("recurringRules", "recurringTransactions", "recurring_rules")


class LedgerSnapshot(LedgerModel):
    """
    The complete ledger state at one point in time.

    This is the unit of persistence and the unit every engine operation
    transforms: one snapshot in, one new snapshot out.

    Unknown top-level keys of the stored document (owner name, email...)
    are carried through untouched.
    """
    model_config = ConfigDict(extra="allow")

    accounts: tuple[Account, ...] = ()
    transactions: tuple[Transaction, ...] = ()
    categories: tuple[Category, ...] = ()
    goals: tuple[Goal, ...] = ()
    recurring_rules: tuple[RecurringRule, ...] = Field(
        default=(),
        validation_alias=AliasChoices(*_RULE_KEYS),
        serialization_alias="recurringRules",
    )
    settings: UserPreferences = Field(default_factory=UserPreferences)

    # Rules that could not be parsed on load; kept verbatim, never expanded
    quarantined_rules: tuple[dict[str, Any], ...] = Field(default=(), exclude=True)

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "LedgerSnapshot":
        """
        Build a snapshot from the stored document.

        A malformed recurring rule must not make the whole ledger
        unreadable, so rules are parsed one by one and failures are
        quarantined instead of raised.
        """
        data = dict(document)
        raw_rules: list[Any] = []
        for key in _RULE_KEYS:
            raw_rules.extend(data.pop(key, None) or [])

        rules: list[RecurringRule] = []
        quarantined: list[dict[str, Any]] = []
        for raw in raw_rules:
            try:
                rules.append(RecurringRule.model_validate(raw))
            except ValidationError as e:
                rule_id = raw.get("id") if isinstance(raw, Mapping) else None
                logger.warning(
                    "recurring_rule_quarantined",
                    rule_id=rule_id,
                    error_count=e.error_count(),
                )
                quarantined.append(dict(raw) if isinstance(raw, Mapping) else {"raw": raw})

        data["recurring_rules"] = rules
        data["quarantined_rules"] = quarantined
        return cls.model_validate(data)

    def to_document(self) -> dict[str, Any]:
        """Serialize to the stored (JSON-compatible, camelCase) document."""
        document = self.model_dump(mode="json", by_alias=True)
        document["recurringRules"] = document.get("recurringRules", []) + [
            dict(raw) for raw in self.quarantined_rules
        ]
        return document

    # Lookups -----------------------------------------------------------------

    def get_account(self, account_id: Optional[str]) -> Optional[Account]:
        return _find(self.accounts, account_id)

    def get_category(self, category_id: Optional[str]) -> Optional[Category]:
        return _find(self.categories, category_id)

    def get_transaction(self, transaction_id: Optional[str]) -> Optional[Transaction]:
        return _find(self.transactions, transaction_id)

    def get_goal(self, goal_id: Optional[str]) -> Optional[Goal]:
        return _find(self.goals, goal_id)

    def get_rule(self, rule_id: Optional[str]) -> Optional[RecurringRule]:
        return _find(self.recurring_rules, rule_id)


def _find(items: Iterable[Any], item_id: Optional[str]) -> Any:
    if item_id is None:
        return None
    return next((item for item in items if item.id == item_id), None)


def references_account(snapshot: LedgerSnapshot, account_id: str) -> bool:
    """Does any transaction or recurring template touch this account?"""
    if any(account_id in t.referenced_account_ids() for t in snapshot.transactions):
        return True
    return any(
        account_id in rule.template.referenced_account_ids()
        for rule in snapshot.recurring_rules
    )


def references_category(snapshot: LedgerSnapshot, category_id: str) -> bool:
    """Does any transaction or recurring template use this category?"""
    if any(t.category_id == category_id for t in snapshot.transactions):
        return True
    return any(rule.template.category_id == category_id for rule in snapshot.recurring_rules)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field or entity path with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'dangling_reference', 'balance_drift')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """Integrity report over a whole snapshot."""

    checked_at: dt.datetime = Field(
        default_factory=lambda: dt.datetime.now(dt.timezone.utc)
    )
    is_valid: bool = Field(
        ...,
        description="No error-level issues were found"
    )
    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-blocking warnings"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")


# =============================================================================
# STARTER LEDGER
# =============================================================================

_DEFAULT_CATEGORIES = (
    ("cat_salary", "Salary", "fa-briefcase", 0),
    ("cat_rent", "Rent", "fa-home", 1200),
    ("cat_groceries", "Groceries", "fa-shopping-cart", 400),
    ("cat_transport", "Transport", "fa-car", 150),
    ("cat_utilities", "Utilities", "fa-bolt", 200),
    ("cat_entertainment", "Entertainment", "fa-film", 100),
    ("cat_health", "Health", "fa-heartbeat", 100),
    ("cat_investments", "Investments", "fa-chart-line", 300),
)

_STUDENT_CATEGORIES = (
    ("cat_student_loan", "Student Loan", "fa-graduation-cap", 300),
    ("cat_scholarship", "Scholarship", "fa-award", 0),
    ("cat_textbooks", "Textbooks", "fa-book", 200),
)


def default_snapshot(is_student: bool = False) -> LedgerSnapshot:
    """The ledger a new owner starts with."""
    rows = _DEFAULT_CATEGORIES + (_STUDENT_CATEGORIES if is_student else ())
    return LedgerSnapshot(
        accounts=(
            Account(
                id="acc_cash",
                name="Cash",
                type=AccountType.CASH,
                icon="fa-money-bill-wave",
                balance=Decimal("0"),
                opening_balance=Decimal("0"),
            ),
            Account(
                id="acc_checking",
                name="Checking Account",
                type=AccountType.BANK,
                icon="fa-university",
                balance=Decimal("1000"),
                opening_balance=Decimal("1000"),
            ),
        ),
        categories=tuple(
            Category(id=cid, name=name, icon=icon, budget=Decimal(budget))
            for cid, name, icon, budget in rows
        ),
        settings=UserPreferences(
            default_currency="USD",
            default_account="acc_checking",
            theme="dark",
        ),
    )
