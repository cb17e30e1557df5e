"""
Ledger Validation

DESIGN DECISION: Validation happens at two levels:

ADMISSION (per operation, raises):
- Payload shape: types, positive amounts, transfer destination,
  category presence. Pydantic does the work; its errors are translated
  into ValidationIssues on an InvalidPayloadError.
- References: every account/category a transaction or recurring
  template names must exist in the snapshot it is admitted into.
  This runs before any balance effect is computed.

INTEGRITY (whole snapshot, reports):
- Duplicate ids, dangling references
- Balance drift against recorded opening balances
- Duplicate recurring occurrences, quarantined rules
- Returns a ValidationResult; it never repairs anything.

IMPORTANT: Validation NEVER silently fixes issues.
"""

from collections import Counter
from typing import Any, Iterable, Mapping, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from moneymind.errors import InvalidPayloadError, LedgerReferenceError
from moneymind.models.ledger import (
    LedgerSnapshot,
    TransactionShape,
    ValidationIssue,
    ValidationResult,
)
from moneymind.reconciliation import recompute_balances


ModelT = TypeVar("ModelT", bound=BaseModel)


def issues_from_pydantic(error: ValidationError) -> list[ValidationIssue]:
    """Translate pydantic errors into ValidationIssues."""
    issues = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "payload"
        issues.append(ValidationIssue(
            field=location,
            issue_type=item.get("type", "invalid"),
            message=item.get("msg", "Invalid value"),
            severity="error",
        ))
    return issues


def parse_payload(
    model: type[ModelT],
    data: Mapping[str, Any],
    entity_kind: Optional[str] = None,
) -> ModelT:
    """
    Build a model from a payload or raise InvalidPayloadError.

    The error message carries the first problem; all of them are on
    .issues.
    """
    try:
        return model.model_validate(dict(data))
    except ValidationError as e:
        issues = issues_from_pydantic(e)
        first = issues[0].message if issues else "Invalid payload"
        raise InvalidPayloadError(
            f"Invalid {entity_kind or model.__name__.lower()}: {first}",
            entity_kind=entity_kind,
            entity_id=data.get("id"),
            issues=issues,
        ) from e


def _missing_references(
    snapshot: LedgerSnapshot,
    shape: TransactionShape,
) -> list[ValidationIssue]:
    issues = []
    if snapshot.get_account(shape.account_id) is None:
        issues.append(ValidationIssue(
            field="account_id",
            issue_type="dangling_reference",
            message=f"Account {shape.account_id} does not exist",
            severity="error",
        ))
    if shape.to_account_id and snapshot.get_account(shape.to_account_id) is None:
        issues.append(ValidationIssue(
            field="to_account_id",
            issue_type="dangling_reference",
            message=f"Account {shape.to_account_id} does not exist",
            severity="error",
        ))
    if shape.category_id and snapshot.get_category(shape.category_id) is None:
        issues.append(ValidationIssue(
            field="category_id",
            issue_type="dangling_reference",
            message=f"Category {shape.category_id} does not exist",
            severity="error",
        ))
    return issues


def require_references(
    snapshot: LedgerSnapshot,
    shape: TransactionShape,
    entity_kind: str,
    entity_id: Optional[str] = None,
) -> None:
    """Raise LedgerReferenceError unless every referenced entity exists."""
    issues = _missing_references(snapshot, shape)
    if issues:
        raise LedgerReferenceError(
            issues[0].message,
            entity_kind=entity_kind,
            entity_id=entity_id,
            issues=issues,
        )


def require_transaction_references(snapshot: LedgerSnapshot, transaction) -> None:
    require_references(snapshot, transaction, "transaction", transaction.id)


def require_template_references(snapshot: LedgerSnapshot, rule) -> None:
    require_references(snapshot, rule.template, "recurring_rule", rule.id)


class LedgerValidator:
    """
    Integrity checks over a whole snapshot.

    Useful after a sync delivery or before persisting a snapshot that
    came from somewhere other than this engine.
    """

    def _check_ids(self, snapshot: LedgerSnapshot) -> list[ValidationIssue]:
        issues = []
        collections: dict[str, Iterable[Any]] = {
            "accounts": snapshot.accounts,
            "transactions": snapshot.transactions,
            "categories": snapshot.categories,
            "goals": snapshot.goals,
            "recurring_rules": snapshot.recurring_rules,
        }
        for name, items in collections.items():
            counts = Counter(item.id for item in items)
            for item_id, count in counts.items():
                if count > 1:
                    issues.append(ValidationIssue(
                        field=name,
                        issue_type="duplicate_id",
                        message=f"Id {item_id} appears {count} times in {name}",
                        severity="error",
                    ))
        return issues

    def _check_references(self, snapshot: LedgerSnapshot) -> list[ValidationIssue]:
        issues = []
        for transaction in snapshot.transactions:
            for issue in _missing_references(snapshot, transaction):
                issues.append(issue.model_copy(update={
                    "field": f"transactions.{transaction.id}.{issue.field}",
                }))
        for rule in snapshot.recurring_rules:
            for issue in _missing_references(snapshot, rule.template):
                issues.append(issue.model_copy(update={
                    "field": f"recurring_rules.{rule.id}.{issue.field}",
                    "severity": "warning",
                    "suggested_fix": "The rule is skipped until the reference is restored",
                }))
        default_account = snapshot.settings.default_account
        if default_account and snapshot.get_account(default_account) is None:
            issues.append(ValidationIssue(
                field="settings.default_account",
                issue_type="dangling_reference",
                message=f"Default account {default_account} does not exist",
                severity="warning",
            ))
        return issues

    def _check_balances(self, snapshot: LedgerSnapshot) -> list[ValidationIssue]:
        issues = []
        expected = recompute_balances(snapshot.accounts, snapshot.transactions)
        for account in snapshot.accounts:
            if account.id in expected and expected[account.id] != account.balance:
                issues.append(ValidationIssue(
                    field=f"accounts.{account.id}.balance",
                    issue_type="balance_drift",
                    message=(
                        f"Balance of {account.name} is {account.balance} "
                        f"but its history adds up to {expected[account.id]}"
                    ),
                    severity="warning",
                    suggested_fix="Review recent edits to this account's transactions",
                ))
        return issues

    def _check_recurring(self, snapshot: LedgerSnapshot) -> list[ValidationIssue]:
        issues = []
        occurrences = Counter(
            (t.recurring_id, t.date)
            for t in snapshot.transactions
            if t.recurring_id
        )
        for (rule_id, day), count in occurrences.items():
            if count > 1:
                issues.append(ValidationIssue(
                    field=f"recurring_rules.{rule_id}",
                    issue_type="duplicate_occurrence",
                    message=f"Rule {rule_id} was materialized {count} times on {day}",
                    severity="warning",
                ))
        for raw in snapshot.quarantined_rules:
            issues.append(ValidationIssue(
                field=f"recurring_rules.{raw.get('id', '?')}",
                issue_type="unparseable_rule",
                message=f"Recurring rule {raw.get('id', '?')} could not be read and is skipped",
                severity="warning",
                suggested_fix="Re-create the rule with valid dates and amounts",
            ))
        return issues

    def check_snapshot(self, snapshot: LedgerSnapshot) -> ValidationResult:
        """Run every integrity check and collect the findings."""
        issues = (
            self._check_ids(snapshot)
            + self._check_references(snapshot)
            + self._check_balances(snapshot)
            + self._check_recurring(snapshot)
        )
        warnings = [issue.message for issue in issues if issue.severity == "warning"]
        return ValidationResult(
            is_valid=not any(issue.severity == "error" for issue in issues),
            issues=issues,
            warnings=warnings,
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """Short plain-language summary of an integrity report."""
        if result.is_valid and not result.warnings:
            return "✅ Ledger is consistent."

        lines = []
        if result.has_errors:
            lines.append("❌ The ledger has problems that need fixing:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            if lines:
                lines.append("")
            lines.append("⚠️ Please review the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        return "\n".join(lines)
