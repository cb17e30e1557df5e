"""Tests for the mutation coordinator."""

import json

import pytest
from datetime import date
from decimal import Decimal

from moneymind.errors import (
    ConflictError,
    EntityNotFoundError,
    InvalidPayloadError,
    LedgerReferenceError,
)
from moneymind.models.ledger import Goal, RecurringRule, TransactionType
from moneymind.mutations import EntityKind, MutationAction, mutate, update_settings

from conftest import balances, make_transaction


def expense_payload(**overrides):
    payload = {
        "type": "expense",
        "amount": "50",
        "date": "2024-03-10",
        "description": "Weekly shop",
        "accountId": "acc_checking",
        "categoryId": "cat_groceries",
    }
    payload.update(overrides)
    return payload


def frozen_bytes(snapshot) -> str:
    return json.dumps(snapshot.to_document(), sort_keys=True)


class TestTransactionMutations:
    """Tests for transaction add/update/delete."""

    def test_add_assigns_id_and_applies_effect(self, ledger, ids):
        result = mutate(ledger, "transaction", "add", expense_payload(), id_factory=ids)
        assert [t.id for t in result.transactions] == ["id_1"]
        assert result.get_account("acc_checking").balance == Decimal("950")
        # Input snapshot untouched
        assert ledger.transactions == ()
        assert ledger.get_account("acc_checking").balance == Decimal("1000")

    def test_add_ignores_supplied_id(self, ledger, ids):
        result = mutate(ledger, "transaction", "add", expense_payload(id="mine"), id_factory=ids)
        assert result.transactions[0].id == "id_1"

    def test_enum_arguments_accepted(self, ledger, ids):
        result = mutate(
            ledger, EntityKind.TRANSACTION, MutationAction.ADD,
            expense_payload(), id_factory=ids,
        )
        assert len(result.transactions) == 1

    def test_balance_conservation(self, ledger, ids):
        """add -> update -> delete returns every balance to where it started."""
        start = balances(ledger)

        added = mutate(ledger, "transaction", "add", expense_payload(), id_factory=ids)
        updated = mutate(
            added, "transaction", "update",
            expense_payload(id="id_1", amount="80", accountId="acc_savings"),
        )
        assert updated.get_account("acc_checking").balance == Decimal("1000")
        assert updated.get_account("acc_savings").balance == Decimal("420")

        deleted = mutate(updated, "transaction", "delete", {"id": "id_1"})
        assert deleted.transactions == ()
        assert balances(deleted) == start

    def test_update_description_only_reapplies_effect(self, ledger, ids):
        added = mutate(ledger, "transaction", "add", expense_payload(), id_factory=ids)
        updated = mutate(
            added, "transaction", "update",
            expense_payload(id="id_1", description="Corner shop"),
        )
        assert updated.transactions[0].description == "Corner shop"
        assert updated.get_account("acc_checking").balance == Decimal("950")

    def test_transfer_symmetry_and_restoration(self, ledger, ids):
        payload = {
            "type": "transfer",
            "amount": "200",
            "date": "2024-03-01",
            "accountId": "acc_checking",
            "toAccountId": "acc_savings",
            "categoryId": "cat_transfer",
        }
        moved = mutate(ledger, "transaction", "add", payload, id_factory=ids)
        assert moved.get_account("acc_checking").balance == Decimal("800")
        assert moved.get_account("acc_savings").balance == Decimal("700")

        restored = mutate(moved, "transaction", "delete", {"id": "id_1"})
        assert balances(restored) == balances(ledger)

    def test_unknown_account_rejected(self, ledger, ids):
        before = frozen_bytes(ledger)
        with pytest.raises(LedgerReferenceError) as exc:
            mutate(ledger, "transaction", "add", expense_payload(accountId="nope"), id_factory=ids)
        assert exc.value.kind == "reference"
        assert exc.value.issues[0].field == "account_id"
        assert frozen_bytes(ledger) == before

    def test_unknown_category_rejected(self, ledger, ids):
        with pytest.raises(LedgerReferenceError):
            mutate(ledger, "transaction", "add", expense_payload(categoryId="nope"), id_factory=ids)

    def test_transfer_without_destination_rejected(self, ledger, ids):
        with pytest.raises(InvalidPayloadError, match="destination"):
            mutate(ledger, "transaction", "add", expense_payload(type="transfer"), id_factory=ids)

    def test_expense_without_category_rejected(self, ledger, ids):
        with pytest.raises(InvalidPayloadError) as exc:
            mutate(ledger, "transaction", "add", expense_payload(categoryId=""), id_factory=ids)
        assert exc.value.kind == "validation"
        assert exc.value.issues

    def test_negative_amount_rejected(self, ledger, ids):
        with pytest.raises(InvalidPayloadError):
            mutate(ledger, "transaction", "add", expense_payload(amount="-5"), id_factory=ids)

    def test_update_unknown_id(self, ledger):
        with pytest.raises(EntityNotFoundError):
            mutate(ledger, "transaction", "update", expense_payload(id="ghost"))

    def test_delete_unknown_id(self, ledger):
        with pytest.raises(EntityNotFoundError):
            mutate(ledger, "transaction", "delete", {"id": "ghost"})

    def test_missing_id_on_delete(self, ledger):
        with pytest.raises(InvalidPayloadError, match="id is required"):
            mutate(ledger, "transaction", "delete", {})

    def test_receipt_reference_kept(self, ledger, ids):
        result = mutate(
            ledger, "transaction", "add",
            expense_payload(receipt={"url": "https://files/r.jpg", "path": "receipts/r.jpg"}),
            id_factory=ids,
        )
        assert result.transactions[0].receipt.path == "receipts/r.jpg"


class TestAccountMutations:
    """Tests for account add/update/delete."""

    def test_add_records_opening_balance(self, ledger, ids):
        result = mutate(
            ledger, "account", "add",
            {"name": "Brokerage", "type": "investment", "balance": "2500"},
            id_factory=ids,
        )
        account = result.get_account("id_1")
        assert account.balance == Decimal("2500")
        assert account.opening_balance == Decimal("2500")

    def test_update_cannot_change_balance(self, ledger):
        result = mutate(
            ledger, "account", "update",
            {"id": "acc_checking", "name": "Main", "balance": "5"},
        )
        account = result.get_account("acc_checking")
        assert account.name == "Main"
        assert account.balance == Decimal("1000")
        assert account.opening_balance == Decimal("1000")

    def test_delete_unreferenced_account(self, ledger):
        result = mutate(ledger, "account", "delete", {"id": "acc_cash"})
        assert result.get_account("acc_cash") is None

    def test_delete_guard_leaves_snapshot_identical(self, ledger):
        """Deleting an account with history is refused and changes nothing."""
        with_history = ledger.model_copy(update={
            "transactions": (
                make_transaction(
                    "t1", date(2024, 1, 1), TransactionType.TRANSFER, "10",
                    account_id="acc_checking", to_account_id="acc_cash",
                ),
            ),
        })
        before = frozen_bytes(with_history)
        with pytest.raises(ConflictError) as exc:
            mutate(with_history, "account", "delete", {"id": "acc_cash"})
        assert exc.value.kind == "conflict"
        assert frozen_bytes(with_history) == before

    def test_delete_guard_counts_recurring_templates(self, ledger, ids):
        with_rule = mutate(
            ledger, "recurring_rule", "add",
            {
                "frequency": "monthly", "startDate": "2030-01-01",
                "type": "income", "amount": 10, "accountId": "acc_cash",
            },
            id_factory=ids,
        )
        with pytest.raises(ConflictError):
            mutate(with_rule, "account", "delete", {"id": "acc_cash"})


class TestCategoryMutations:
    """Tests for category add/update/delete."""

    def test_add_category(self, ledger, ids):
        result = mutate(ledger, "category", "add", {"name": "Books", "budget": 60}, id_factory=ids)
        assert result.get_category("id_1").budget == Decimal("60")

    def test_update_is_wholesale_replace(self, ledger):
        """Omitted fields fall back to defaults."""
        result = mutate(ledger, "category", "update", {"id": "cat_groceries", "name": "Food"})
        category = result.get_category("cat_groceries")
        assert category.name == "Food"
        assert category.budget == Decimal("0")

    def test_negative_budget_rejected(self, ledger, ids):
        with pytest.raises(InvalidPayloadError):
            mutate(ledger, "category", "add", {"name": "Books", "budget": -1}, id_factory=ids)

    def test_delete_referenced_category_refused(self, ledger, ids):
        used = mutate(ledger, "transaction", "add", expense_payload(), id_factory=ids)
        with pytest.raises(ConflictError):
            mutate(used, "category", "delete", {"id": "cat_groceries"})

    def test_delete_unreferenced_category(self, ledger):
        result = mutate(ledger, "category", "delete", {"id": "cat_rent"})
        assert result.get_category("cat_rent") is None


class TestGoalMutations:
    """Tests for goals, including the shallow-merge update."""

    def test_add_starts_at_zero(self, ledger, ids):
        result = mutate(
            ledger, "goal", "add",
            {"name": "Holiday", "targetAmount": "1500", "currentAmount": "300"},
            id_factory=ids,
        )
        assert result.get_goal("id_1").current_amount == Decimal("0")

    def test_update_merges_supplied_fields(self, ledger):
        seeded = ledger.model_copy(update={
            "goals": (Goal(id="g1", name="Holiday", target_amount=Decimal("1500"), icon="fa-plane"),),
        })
        result = mutate(seeded, "goal", "update", {"id": "g1", "currentAmount": "250"})
        goal = result.get_goal("g1")
        assert goal.current_amount == Decimal("250")
        assert goal.name == "Holiday"
        assert goal.icon == "fa-plane"

    def test_update_still_validated(self, ledger):
        seeded = ledger.model_copy(update={
            "goals": (Goal(id="g1", name="Holiday", target_amount=Decimal("1500")),),
        })
        with pytest.raises(InvalidPayloadError):
            mutate(seeded, "goal", "update", {"id": "g1", "targetAmount": "0"})

    def test_update_unknown_goal(self, ledger):
        with pytest.raises(EntityNotFoundError):
            mutate(ledger, "goal", "update", {"id": "ghost", "name": "x"})

    def test_delete_goal(self, ledger):
        seeded = ledger.model_copy(update={
            "goals": (Goal(id="g1", name="Holiday", target_amount=Decimal("1500")),),
        })
        assert mutate(seeded, "goal", "delete", {"id": "g1"}).goals == ()


class TestRecurringRuleMutations:
    """Tests for recurring rule add/update/delete."""

    RULE = {
        "frequency": "monthly",
        "startDate": "2024-01-15",
        "type": "expense",
        "amount": 50,
        "accountId": "acc_checking",
        "categoryId": "cat_rent",
    }

    def test_add_flat_rule(self, ledger, ids):
        result = mutate(ledger, "recurring_rule", "add", self.RULE, id_factory=ids)
        rule = result.get_rule("id_1")
        assert isinstance(rule, RecurringRule)
        assert rule.template.category_id == "cat_rent"
        # Adding a rule materializes nothing by itself
        assert result.transactions == ()

    def test_add_rule_with_unknown_account(self, ledger, ids):
        with pytest.raises(LedgerReferenceError):
            mutate(ledger, "recurring_rule", "add", {**self.RULE, "accountId": "nope"}, id_factory=ids)

    def test_update_replaces_rule(self, ledger, ids):
        added = mutate(ledger, "recurring_rule", "add", self.RULE, id_factory=ids)
        result = mutate(added, "recurring_rule", "update", {**self.RULE, "id": "id_1", "frequency": "weekly"})
        assert result.get_rule("id_1").frequency.value == "weekly"

    def test_delete_keeps_materialized_transactions(self, ledger, ids):
        added = mutate(ledger, "recurring_rule", "add", self.RULE, id_factory=ids)
        materialized = added.model_copy(update={
            "transactions": (
                make_transaction(
                    "t1", date(2024, 1, 15), TransactionType.EXPENSE, "50",
                    category_id="cat_rent", recurring_id="id_1",
                ),
            ),
        })
        result = mutate(materialized, "recurring_rule", "delete", {"id": "id_1"})
        assert result.recurring_rules == ()
        assert [t.id for t in result.transactions] == ["t1"]


class TestDispatch:
    """Tests for unsupported kinds and actions."""

    def test_unknown_kind(self, ledger):
        with pytest.raises(InvalidPayloadError, match="Unsupported mutation"):
            mutate(ledger, "budget", "add", {})

    def test_unknown_action(self, ledger):
        with pytest.raises(InvalidPayloadError):
            mutate(ledger, "transaction", "archive", {"id": "x"})


class TestUpdateSettings:
    """Tests for preference updates."""

    def test_shallow_merge(self, ledger):
        result = update_settings(ledger, {"defaultCurrency": "eur"})
        assert result.settings.default_currency == "EUR"
        assert result.settings.theme == "dark"

    def test_default_account_must_exist(self, ledger):
        with pytest.raises(LedgerReferenceError):
            update_settings(ledger, {"defaultAccount": "ghost"})

    def test_default_account_set(self, ledger):
        result = update_settings(ledger, {"defaultAccount": "acc_savings"})
        assert result.settings.default_account == "acc_savings"
