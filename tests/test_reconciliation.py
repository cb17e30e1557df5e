"""Tests for the balance effect primitive."""

import pytest
from datetime import date
from decimal import Decimal

from moneymind.models.ledger import TransactionType
from moneymind.reconciliation import (
    APPLY,
    REVERT,
    apply_effect,
    effect_of,
    fold_effects,
    recompute_balances,
    revert_effect,
)

from conftest import balances, make_transaction


DAY = date(2024, 3, 1)


class TestEffects:
    """Tests for per-type balance effects."""

    def test_income_credits_account(self, ledger):
        txn = make_transaction("t1", DAY, TransactionType.INCOME, "250", category_id="cat_salary")
        accounts = apply_effect(ledger.accounts, txn)
        assert accounts[0].balance == Decimal("1250")

    def test_expense_debits_account(self, ledger):
        txn = make_transaction("t1", DAY, TransactionType.EXPENSE, "40.10")
        accounts = apply_effect(ledger.accounts, txn)
        assert accounts[0].balance == Decimal("959.90")

    def test_transfer_moves_between_accounts(self, ledger):
        """Source loses exactly what the destination gains."""
        txn = make_transaction(
            "t1", DAY, TransactionType.TRANSFER, "300",
            account_id="acc_checking", to_account_id="acc_savings",
        )
        deltas = effect_of(txn)
        assert deltas == {"acc_checking": Decimal("-300"), "acc_savings": Decimal("300")}

        after = balances(ledger.model_copy(update={"accounts": apply_effect(ledger.accounts, txn)}))
        assert after["acc_checking"] == Decimal("700")
        assert after["acc_savings"] == Decimal("800")
        assert sum(after.values()) == sum(balances(ledger).values())

    def test_untouched_accounts_are_same_objects(self, ledger):
        txn = make_transaction("t1", DAY, TransactionType.EXPENSE, "5")
        accounts = apply_effect(ledger.accounts, txn)
        assert accounts[1] is ledger.accounts[1]
        assert accounts[2] is ledger.accounts[2]

    def test_inputs_not_modified(self, ledger):
        txn = make_transaction("t1", DAY, TransactionType.EXPENSE, "5")
        apply_effect(ledger.accounts, txn)
        assert ledger.accounts[0].balance == Decimal("1000")

    def test_unknown_account_is_noop(self, ledger):
        txn = make_transaction("t1", DAY, TransactionType.EXPENSE, "5", account_id="missing")
        assert apply_effect(ledger.accounts, txn) == ledger.accounts

    def test_invalid_sign_rejected(self, ledger):
        txn = make_transaction("t1", DAY, TransactionType.EXPENSE, "5")
        with pytest.raises(ValueError):
            effect_of(txn, 2)


class TestInverse:
    """Applying then reverting restores balances exactly."""

    @pytest.mark.parametrize("kind,amount", [
        (TransactionType.INCOME, "0.01"),
        (TransactionType.EXPENSE, "19.99"),
        (TransactionType.TRANSFER, "1234.56"),
    ])
    def test_apply_then_revert(self, ledger, kind, amount):
        txn = make_transaction(
            "t1", DAY, kind, amount,
            to_account_id="acc_cash" if kind == TransactionType.TRANSFER else None,
        )
        applied = apply_effect(ledger.accounts, txn, APPLY)
        restored = apply_effect(applied, txn, REVERT)
        assert restored == ledger.accounts

    def test_revert_effect_alias(self, ledger):
        txn = make_transaction("t1", DAY, TransactionType.EXPENSE, "7")
        assert revert_effect(apply_effect(ledger.accounts, txn), txn) == ledger.accounts


class TestFoldAndRecompute:
    """Tests for batch application and drift recomputation."""

    def test_fold_effects(self, ledger):
        txns = [
            make_transaction("t1", DAY, TransactionType.INCOME, "100", category_id="cat_salary"),
            make_transaction("t2", DAY, TransactionType.EXPENSE, "30"),
            make_transaction(
                "t3", DAY, TransactionType.TRANSFER, "20",
                to_account_id="acc_cash",
            ),
        ]
        accounts = fold_effects(ledger.accounts, txns)
        result = {a.id: a.balance for a in accounts}
        assert result == {
            "acc_checking": Decimal("1050"),
            "acc_savings": Decimal("500"),
            "acc_cash": Decimal("20"),
        }

    def test_recompute_matches_folded_balances(self, ledger):
        txns = [
            make_transaction("t1", DAY, TransactionType.EXPENSE, "30"),
            make_transaction("t2", DAY, TransactionType.TRANSFER, "70", to_account_id="acc_savings"),
        ]
        accounts = fold_effects(ledger.accounts, txns)
        expected = recompute_balances(accounts, txns)
        assert expected == {a.id: a.balance for a in accounts}

    def test_recompute_skips_accounts_without_opening_balance(self, ledger):
        legacy = ledger.accounts[0].model_copy(update={"opening_balance": None})
        expected = recompute_balances((legacy,) + ledger.accounts[1:], [])
        assert "acc_checking" not in expected
        assert expected["acc_savings"] == Decimal("500")
