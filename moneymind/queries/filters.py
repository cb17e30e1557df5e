"""
Transaction Queries

Filtered, ordered views over the transaction list, and the flat rows
CSV/PDF exporters consume.
"""

from typing import Callable, Iterable, Optional

from moneymind.errors import LedgerReferenceError
from moneymind.models.ledger import LedgerSnapshot, Transaction
from moneymind.models.reports import ExportRow, TransactionFilter


Predicate = Callable[[Transaction], bool]


def _predicates(criteria: TransactionFilter) -> list[Predicate]:
    checks: list[Predicate] = []
    if criteria.date_from is not None:
        checks.append(lambda t: t.date >= criteria.date_from)
    if criteria.date_to is not None:
        checks.append(lambda t: t.date <= criteria.date_to)
    if criteria.type is not None:
        checks.append(lambda t: t.type == criteria.type)
    if criteria.category_id:
        checks.append(lambda t: t.category_id == criteria.category_id)
    if criteria.account_id:
        # Source account only; a transfer is listed under the account it left
        checks.append(lambda t: t.account_id == criteria.account_id)
    return checks


def _require_known(snapshot: LedgerSnapshot, criteria: TransactionFilter) -> None:
    if criteria.account_id and snapshot.get_account(criteria.account_id) is None:
        raise LedgerReferenceError(
            f"Account {criteria.account_id} does not exist",
            entity_kind="filter",
            entity_id=criteria.account_id,
        )
    if criteria.category_id and snapshot.get_category(criteria.category_id) is None:
        raise LedgerReferenceError(
            f"Category {criteria.category_id} does not exist",
            entity_kind="filter",
            entity_id=criteria.category_id,
        )


def filter_transactions(
    snapshot: LedgerSnapshot,
    criteria: Optional[TransactionFilter] = None,
) -> list[Transaction]:
    """
    Transactions matching every given criterion, newest first.

    Transactions on the same date keep their ledger order.

    Raises:
        LedgerReferenceError: the filter names an unknown account or category
    """
    criteria = criteria or TransactionFilter()
    _require_known(snapshot, criteria)
    checks = _predicates(criteria)
    matches = [t for t in snapshot.transactions if all(check(t) for check in checks)]
    return sorted(matches, key=lambda t: t.date, reverse=True)


def export_rows(
    snapshot: LedgerSnapshot,
    transactions: Optional[Iterable[Transaction]] = None,
) -> list[ExportRow]:
    """
    Resolve ids to names for export.

    Defaults to every transaction in filter order. Missing categories
    and accounts export as blanks.
    """
    if transactions is None:
        transactions = filter_transactions(snapshot)

    rows = []
    for t in transactions:
        category = snapshot.get_category(t.category_id)
        account = snapshot.get_account(t.account_id)
        rows.append(ExportRow(
            date=t.date,
            description=t.description,
            type=t.type,
            amount=t.amount,
            category=category.name if category else "",
            account=account.name if account else "",
            tags=t.tags,
        ))
    return rows


EXPORT_HEADERS = ("Date", "Description", "Type", "Amount", "Category", "Account", "Tags")
