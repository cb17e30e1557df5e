"""
Mutation Coordinator

The single entry point for create/update/delete of ledger entities.

    mutate(snapshot, entity_kind, action, payload) -> new snapshot

Every check (payload shape, references, delete guards) runs before the
new snapshot is built, so a rejected mutation raises a LedgerError and
the input snapshot is all the caller ever sees.

Per-entity policy:
- transaction: add applies the effect; update reverts the OLD record and
  applies the NEW one (always, even if only the description changed);
  delete reverts then removes
- account: update replaces the record but keeps its balance, which only
  moves through transaction effects; delete is refused while referenced
- category: wholesale replace; delete is refused while referenced
- goal: add starts at current_amount 0; update is a shallow merge of the
  supplied fields (unlike the wholesale replace of the other kinds);
  delete has no reference checks
- recurring_rule: wholesale replace; delete keeps the transactions it
  already materialized
"""

from enum import Enum
from typing import Any, Callable, Mapping, Optional, Union

import structlog
from pydantic import BaseModel
from pydantic.alias_generators import to_camel

from moneymind.errors import (
    ConflictError,
    EntityNotFoundError,
    InvalidPayloadError,
    LedgerReferenceError,
)
from moneymind.models.ledger import (
    Account,
    Category,
    Goal,
    LedgerSnapshot,
    RecurringRule,
    Transaction,
    UserPreferences,
    generate_id,
    references_account,
    references_category,
)
from moneymind.reconciliation import APPLY, REVERT, apply_effect
from moneymind.validation import (
    parse_payload,
    require_template_references,
    require_transaction_references,
)


logger = structlog.get_logger(__name__)

IdFactory = Callable[[], str]
Payload = Union[Mapping[str, Any], BaseModel]


class EntityKind(str, Enum):
    TRANSACTION = "transaction"
    ACCOUNT = "account"
    CATEGORY = "category"
    GOAL = "goal"
    RECURRING_RULE = "recurring_rule"


class MutationAction(str, Enum):
    ADD = "add"
    UPDATE = "update"
    DELETE = "delete"


# Snapshot attribute holding each entity kind
_COLLECTIONS = {
    EntityKind.TRANSACTION: "transactions",
    EntityKind.ACCOUNT: "accounts",
    EntityKind.CATEGORY: "categories",
    EntityKind.GOAL: "goals",
    EntityKind.RECURRING_RULE: "recurring_rules",
}


# =============================================================================
# HELPERS
# =============================================================================

def as_payload_dict(payload: Payload) -> dict[str, Any]:
    """Plain dict of a payload; for models only the fields that were set."""
    if isinstance(payload, BaseModel):
        return payload.model_dump(exclude_unset=True)
    return dict(payload)


def _field_names(model: type[BaseModel], data: Mapping[str, Any]) -> dict[str, Any]:
    """Map camelCase payload keys onto attribute names; unknown keys dropped."""
    lookup = {}
    for name in model.model_fields:
        lookup[name] = name
        lookup[to_camel(name)] = name
    return {lookup[key]: value for key, value in data.items() if key in lookup}


def _require_id(kind: EntityKind, data: Mapping[str, Any]) -> str:
    entity_id = data.get("id")
    if not entity_id:
        raise InvalidPayloadError(
            f"{kind.value.capitalize()} id is required",
            entity_kind=kind.value,
        )
    return str(entity_id)


def _existing(snapshot: LedgerSnapshot, kind: EntityKind, entity_id: str) -> Any:
    items = getattr(snapshot, _COLLECTIONS[kind])
    for item in items:
        if item.id == entity_id:
            return item
    raise EntityNotFoundError(
        f"{kind.value.capitalize()} {entity_id} does not exist",
        entity_kind=kind.value,
        entity_id=entity_id,
    )


def _appended(snapshot: LedgerSnapshot, kind: EntityKind, item: Any) -> tuple:
    return getattr(snapshot, _COLLECTIONS[kind]) + (item,)


def _replaced(snapshot: LedgerSnapshot, kind: EntityKind, item: Any) -> tuple:
    return tuple(
        item if existing.id == item.id else existing
        for existing in getattr(snapshot, _COLLECTIONS[kind])
    )


def _removed(snapshot: LedgerSnapshot, kind: EntityKind, entity_id: str) -> tuple:
    return tuple(
        existing
        for existing in getattr(snapshot, _COLLECTIONS[kind])
        if existing.id != entity_id
    )


# =============================================================================
# TRANSACTIONS
# =============================================================================

def _add_transaction(snapshot: LedgerSnapshot, data: dict, ids: IdFactory) -> LedgerSnapshot:
    transaction = parse_payload(Transaction, {**data, "id": ids()}, "transaction")
    require_transaction_references(snapshot, transaction)
    return snapshot.model_copy(update={
        "transactions": _appended(snapshot, EntityKind.TRANSACTION, transaction),
        "accounts": apply_effect(snapshot.accounts, transaction, APPLY),
    })


def _update_transaction(snapshot: LedgerSnapshot, data: dict, ids: IdFactory) -> LedgerSnapshot:
    transaction_id = _require_id(EntityKind.TRANSACTION, data)
    old = _existing(snapshot, EntityKind.TRANSACTION, transaction_id)
    new = parse_payload(Transaction, data, "transaction")
    require_transaction_references(snapshot, new)

    accounts = apply_effect(snapshot.accounts, old, REVERT)
    accounts = apply_effect(accounts, new, APPLY)
    return snapshot.model_copy(update={
        "transactions": _replaced(snapshot, EntityKind.TRANSACTION, new),
        "accounts": accounts,
    })


def _delete_transaction(snapshot: LedgerSnapshot, data: dict, ids: IdFactory) -> LedgerSnapshot:
    transaction_id = _require_id(EntityKind.TRANSACTION, data)
    old = _existing(snapshot, EntityKind.TRANSACTION, transaction_id)
    return snapshot.model_copy(update={
        "accounts": apply_effect(snapshot.accounts, old, REVERT),
        "transactions": _removed(snapshot, EntityKind.TRANSACTION, transaction_id),
    })


# =============================================================================
# ACCOUNTS
# =============================================================================

def _add_account(snapshot: LedgerSnapshot, data: dict, ids: IdFactory) -> LedgerSnapshot:
    fields = _field_names(Account, data)
    balance = fields.get("balance", 0)
    account = parse_payload(
        Account,
        {**fields, "id": ids(), "balance": balance, "opening_balance": balance},
        "account",
    )
    return snapshot.model_copy(update={
        "accounts": _appended(snapshot, EntityKind.ACCOUNT, account),
    })


def _update_account(snapshot: LedgerSnapshot, data: dict, ids: IdFactory) -> LedgerSnapshot:
    account_id = _require_id(EntityKind.ACCOUNT, data)
    old = _existing(snapshot, EntityKind.ACCOUNT, account_id)
    account = parse_payload(
        Account,
        {
            **_field_names(Account, data),
            "balance": old.balance,
            "opening_balance": old.opening_balance,
        },
        "account",
    )
    return snapshot.model_copy(update={
        "accounts": _replaced(snapshot, EntityKind.ACCOUNT, account),
    })


def _delete_account(snapshot: LedgerSnapshot, data: dict, ids: IdFactory) -> LedgerSnapshot:
    account_id = _require_id(EntityKind.ACCOUNT, data)
    account = _existing(snapshot, EntityKind.ACCOUNT, account_id)
    if references_account(snapshot, account_id):
        raise ConflictError(
            f"Cannot delete account {account.name}: it still has transactions",
            entity_kind=EntityKind.ACCOUNT.value,
            entity_id=account_id,
        )
    return snapshot.model_copy(update={
        "accounts": _removed(snapshot, EntityKind.ACCOUNT, account_id),
    })


# =============================================================================
# CATEGORIES
# =============================================================================

def _add_category(snapshot: LedgerSnapshot, data: dict, ids: IdFactory) -> LedgerSnapshot:
    category = parse_payload(Category, {**data, "id": ids()}, "category")
    return snapshot.model_copy(update={
        "categories": _appended(snapshot, EntityKind.CATEGORY, category),
    })


def _update_category(snapshot: LedgerSnapshot, data: dict, ids: IdFactory) -> LedgerSnapshot:
    category_id = _require_id(EntityKind.CATEGORY, data)
    _existing(snapshot, EntityKind.CATEGORY, category_id)
    category = parse_payload(Category, data, "category")
    return snapshot.model_copy(update={
        "categories": _replaced(snapshot, EntityKind.CATEGORY, category),
    })


def _delete_category(snapshot: LedgerSnapshot, data: dict, ids: IdFactory) -> LedgerSnapshot:
    category_id = _require_id(EntityKind.CATEGORY, data)
    category = _existing(snapshot, EntityKind.CATEGORY, category_id)
    if references_category(snapshot, category_id):
        raise ConflictError(
            f"Cannot delete category {category.name}: it still has transactions",
            entity_kind=EntityKind.CATEGORY.value,
            entity_id=category_id,
        )
    return snapshot.model_copy(update={
        "categories": _removed(snapshot, EntityKind.CATEGORY, category_id),
    })


# =============================================================================
# GOALS
# =============================================================================

def _add_goal(snapshot: LedgerSnapshot, data: dict, ids: IdFactory) -> LedgerSnapshot:
    fields = _field_names(Goal, data)
    goal = parse_payload(Goal, {**fields, "id": ids(), "current_amount": 0}, "goal")
    return snapshot.model_copy(update={
        "goals": _appended(snapshot, EntityKind.GOAL, goal),
    })


def _update_goal(snapshot: LedgerSnapshot, data: dict, ids: IdFactory) -> LedgerSnapshot:
    goal_id = _require_id(EntityKind.GOAL, data)
    old = _existing(snapshot, EntityKind.GOAL, goal_id)
    merged = {**old.model_dump(), **_field_names(Goal, data)}
    goal = parse_payload(Goal, merged, "goal")
    return snapshot.model_copy(update={
        "goals": _replaced(snapshot, EntityKind.GOAL, goal),
    })


def _delete_goal(snapshot: LedgerSnapshot, data: dict, ids: IdFactory) -> LedgerSnapshot:
    goal_id = _require_id(EntityKind.GOAL, data)
    _existing(snapshot, EntityKind.GOAL, goal_id)
    return snapshot.model_copy(update={
        "goals": _removed(snapshot, EntityKind.GOAL, goal_id),
    })


# =============================================================================
# RECURRING RULES
# =============================================================================

def _add_rule(snapshot: LedgerSnapshot, data: dict, ids: IdFactory) -> LedgerSnapshot:
    rule = parse_payload(RecurringRule, {**data, "id": ids()}, "recurring_rule")
    require_template_references(snapshot, rule)
    return snapshot.model_copy(update={
        "recurring_rules": _appended(snapshot, EntityKind.RECURRING_RULE, rule),
    })


def _update_rule(snapshot: LedgerSnapshot, data: dict, ids: IdFactory) -> LedgerSnapshot:
    rule_id = _require_id(EntityKind.RECURRING_RULE, data)
    _existing(snapshot, EntityKind.RECURRING_RULE, rule_id)
    rule = parse_payload(RecurringRule, data, "recurring_rule")
    require_template_references(snapshot, rule)
    return snapshot.model_copy(update={
        "recurring_rules": _replaced(snapshot, EntityKind.RECURRING_RULE, rule),
    })


def _delete_rule(snapshot: LedgerSnapshot, data: dict, ids: IdFactory) -> LedgerSnapshot:
    rule_id = _require_id(EntityKind.RECURRING_RULE, data)
    _existing(snapshot, EntityKind.RECURRING_RULE, rule_id)
    return snapshot.model_copy(update={
        "recurring_rules": _removed(snapshot, EntityKind.RECURRING_RULE, rule_id),
    })


Handler = Callable[[LedgerSnapshot, dict, IdFactory], LedgerSnapshot]

_HANDLERS: dict[tuple[EntityKind, MutationAction], Handler] = {
    (EntityKind.TRANSACTION, MutationAction.ADD): _add_transaction,
    (EntityKind.TRANSACTION, MutationAction.UPDATE): _update_transaction,
    (EntityKind.TRANSACTION, MutationAction.DELETE): _delete_transaction,
    (EntityKind.ACCOUNT, MutationAction.ADD): _add_account,
    (EntityKind.ACCOUNT, MutationAction.UPDATE): _update_account,
    (EntityKind.ACCOUNT, MutationAction.DELETE): _delete_account,
    (EntityKind.CATEGORY, MutationAction.ADD): _add_category,
    (EntityKind.CATEGORY, MutationAction.UPDATE): _update_category,
    (EntityKind.CATEGORY, MutationAction.DELETE): _delete_category,
    (EntityKind.GOAL, MutationAction.ADD): _add_goal,
    (EntityKind.GOAL, MutationAction.UPDATE): _update_goal,
    (EntityKind.GOAL, MutationAction.DELETE): _delete_goal,
    (EntityKind.RECURRING_RULE, MutationAction.ADD): _add_rule,
    (EntityKind.RECURRING_RULE, MutationAction.UPDATE): _update_rule,
    (EntityKind.RECURRING_RULE, MutationAction.DELETE): _delete_rule,
}


# =============================================================================
# ENTRY POINTS
# =============================================================================

def mutate(
    snapshot: LedgerSnapshot,
    entity_kind: Union[EntityKind, str],
    action: Union[MutationAction, str],
    payload: Payload,
    *,
    id_factory: Optional[IdFactory] = None,
) -> LedgerSnapshot:
    """
    Apply one create/update/delete and return the new snapshot.

    Raises:
        InvalidPayloadError: malformed payload or unknown kind/action
        LedgerReferenceError: payload references a missing entity
        EntityNotFoundError: update/delete of an unknown id
        ConflictError: delete of a still-referenced account/category
    """
    try:
        kind = EntityKind(entity_kind)
        verb = MutationAction(action)
    except ValueError as e:
        raise InvalidPayloadError(f"Unsupported mutation: {entity_kind} {action}") from e

    handler = _HANDLERS[(kind, verb)]
    result = handler(snapshot, as_payload_dict(payload), id_factory or generate_id)
    logger.debug("mutation_applied", entity_kind=kind.value, action=verb.value)
    return result


def update_settings(snapshot: LedgerSnapshot, changes: Payload) -> LedgerSnapshot:
    """
    Shallow-merge owner preferences.

    The default account, when given, must exist.
    """
    fields = _field_names(UserPreferences, as_payload_dict(changes))
    preferences = parse_payload(
        UserPreferences,
        {**snapshot.settings.model_dump(), **fields},
        "settings",
    )
    if preferences.default_account and snapshot.get_account(preferences.default_account) is None:
        raise LedgerReferenceError(
            f"Account {preferences.default_account} does not exist",
            entity_kind="settings",
        )
    return snapshot.model_copy(update={"settings": preferences})
