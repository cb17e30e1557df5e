"""Shared fixtures: a small ledger and a predictable id source."""

import itertools
from datetime import date
from decimal import Decimal

import pytest

from moneymind.models.ledger import (
    Account,
    AccountType,
    Category,
    LedgerSnapshot,
    Transaction,
    TransactionType,
)


@pytest.fixture
def ids():
    """Sequential ids: id_1, id_2, ..."""
    counter = itertools.count(1)
    return lambda: f"id_{next(counter)}"


@pytest.fixture
def ledger() -> LedgerSnapshot:
    """Three accounts, four categories, no history."""
    return LedgerSnapshot(
        accounts=(
            Account(
                id="acc_checking",
                name="Checking",
                type=AccountType.BANK,
                balance=Decimal("1000"),
                opening_balance=Decimal("1000"),
            ),
            Account(
                id="acc_savings",
                name="Savings",
                type=AccountType.BANK,
                balance=Decimal("500"),
                opening_balance=Decimal("500"),
            ),
            Account(
                id="acc_cash",
                name="Cash",
                type=AccountType.CASH,
                balance=Decimal("0"),
                opening_balance=Decimal("0"),
            ),
        ),
        categories=(
            Category(id="cat_salary", name="Salary"),
            Category(id="cat_groceries", name="Groceries", budget=Decimal("400")),
            Category(id="cat_rent", name="Rent", budget=Decimal("1200")),
            Category(id="cat_transfer", name="Transfers"),
        ),
    )


def make_transaction(
    txn_id: str,
    day: date,
    kind: TransactionType,
    amount: str,
    account_id: str = "acc_checking",
    category_id=None,
    to_account_id=None,
    **extra,
) -> Transaction:
    """Build a transaction with sensible defaults for the fixture ledger."""
    if category_id is None and kind == TransactionType.EXPENSE:
        category_id = "cat_groceries"
    if category_id is None and kind == TransactionType.TRANSFER:
        category_id = "cat_transfer"
    return Transaction(
        id=txn_id,
        date=day,
        type=kind,
        amount=Decimal(amount),
        account_id=account_id,
        to_account_id=to_account_id,
        category_id=category_id,
        **extra,
    )


def balances(snapshot: LedgerSnapshot) -> dict[str, Decimal]:
    return {account.id: account.balance for account in snapshot.accounts}
