"""
Balance Reconciliation

The one arithmetic primitive the rest of the engine builds on:
apply (or revert) the balance effect of a single transaction.

    transfer  source -= amount * sign, destination += amount * sign
    expense   account -= amount * sign
    income    account += amount * sign

GUARANTEES:
- Pure: inputs are never modified, a new tuple is returned
- Self-inverse: apply then revert restores the accounts exactly
- Total: a reference to an unknown account is a no-op; callers
  validate references before they get here
"""

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Sequence

from moneymind.models.ledger import Account, TransactionShape, TransactionType


APPLY = 1
REVERT = -1


def effect_of(transaction: TransactionShape, sign: int = APPLY) -> dict[str, Decimal]:
    """Per-account balance deltas caused by a transaction."""
    if sign not in (APPLY, REVERT):
        raise ValueError(f"sign must be {APPLY} or {REVERT}, got {sign!r}")

    amount = transaction.amount * sign
    deltas: dict[str, Decimal] = defaultdict(Decimal)

    if transaction.type == TransactionType.TRANSFER:
        deltas[transaction.account_id] -= amount
        if transaction.to_account_id:
            deltas[transaction.to_account_id] += amount
    elif transaction.type == TransactionType.EXPENSE:
        deltas[transaction.account_id] -= amount
    else:
        deltas[transaction.account_id] += amount

    return dict(deltas)


def apply_effect(
    accounts: Sequence[Account],
    transaction: TransactionShape,
    sign: int = APPLY,
) -> tuple[Account, ...]:
    """
    Return the accounts with the transaction's effect applied.

    Accounts the transaction does not touch are returned as the same
    objects.
    """
    deltas = effect_of(transaction, sign)
    return tuple(
        account.model_copy(update={"balance": account.balance + deltas[account.id]})
        if account.id in deltas
        else account
        for account in accounts
    )


def revert_effect(
    accounts: Sequence[Account],
    transaction: TransactionShape,
) -> tuple[Account, ...]:
    return apply_effect(accounts, transaction, REVERT)


def fold_effects(
    accounts: Sequence[Account],
    transactions: Iterable[TransactionShape],
    sign: int = APPLY,
) -> tuple[Account, ...]:
    """Apply a batch of transactions in the given order."""
    result = tuple(accounts)
    for transaction in transactions:
        result = apply_effect(result, transaction, sign)
    return result


def recompute_balances(
    accounts: Sequence[Account],
    transactions: Iterable[TransactionShape],
) -> dict[str, Decimal]:
    """
    Expected balance of every account with a known opening balance.

    Accounts created before opening balances were recorded are left out;
    there is nothing to check them against.
    """
    expected = {
        account.id: account.opening_balance
        for account in accounts
        if account.opening_balance is not None
    }
    for transaction in transactions:
        for account_id, delta in effect_of(transaction).items():
            if account_id in expected:
                expected[account_id] += delta
    return expected
