"""
Recurring Expansion Engine

Walks every recurring rule forward from its start date and materializes
the occurrences that are due but missing from the ledger.

GUARANTEES:
- Idempotent: an occurrence is keyed on (recurring_id, date); running
  twice against the same day adds nothing the second time
- Deterministic: new transactions are ordered by (date, rule id) and
  folded into balances in that order
- Isolated: one bad rule is skipped and logged, it never blocks the
  materialization of the others

Monthly occurrences are computed from the start date (start + n months)
rather than from the previous occurrence, so a rule starting on the 31st
lands on the last day of short months without drifting afterwards.
"""

import datetime as dt
from typing import Callable, Iterator, Optional, Union

import structlog
from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, ConfigDict, ValidationError

from moneymind.config import get_settings
from moneymind.errors import LedgerError
from moneymind.models.ledger import (
    Frequency,
    LedgerSnapshot,
    RecurringRule,
    Transaction,
    generate_id,
)
from moneymind.reconciliation import fold_effects
from moneymind.validation import require_template_references


logger = structlog.get_logger(__name__)


class RecurrenceLimitError(ValueError):
    """A rule needs more occurrences than one refresh may walk."""
    pass


class ExpansionResult(BaseModel):
    """Outcome of one expansion pass."""
    model_config = ConfigDict(frozen=True)

    snapshot: LedgerSnapshot
    generated: tuple[Transaction, ...] = ()
    skipped_rule_ids: tuple[Optional[str], ...] = ()

    @property
    def changed(self) -> bool:
        return bool(self.generated)


def occurrence_date(rule: RecurringRule, index: int) -> dt.date:
    """Date of the index-th occurrence (0 is the start date)."""
    if rule.frequency == Frequency.DAILY:
        return rule.start_date + dt.timedelta(days=index)
    if rule.frequency == Frequency.WEEKLY:
        return rule.start_date + dt.timedelta(weeks=index)
    return rule.start_date + relativedelta(months=index)


def iter_due_dates(
    rule: RecurringRule,
    until: dt.date,
    max_occurrences: Optional[int] = None,
) -> Iterator[dt.date]:
    """
    Every occurrence on or before `until` (and the rule's end date).

    Raises RecurrenceLimitError when more than max_occurrences would be
    produced.
    """
    index = 0
    cursor = rule.start_date
    while cursor <= until and (rule.end_date is None or cursor <= rule.end_date):
        if max_occurrences is not None and index >= max_occurrences:
            raise RecurrenceLimitError(
                f"Rule {rule.id} exceeds {max_occurrences} occurrences"
            )
        yield cursor
        index += 1
        cursor = occurrence_date(rule, index)


def materialize(rule: RecurringRule, on: dt.date, transaction_id: str) -> Transaction:
    """Stamp the rule's template out as a concrete transaction."""
    return Transaction(
        id=transaction_id,
        date=on,
        recurring_id=rule.id,
        **rule.template.model_dump(),
    )


def _as_date(now: Union[dt.date, dt.datetime]) -> dt.date:
    if isinstance(now, dt.datetime):
        return now.date()
    return now


def expand_recurring(
    snapshot: LedgerSnapshot,
    now: Union[dt.date, dt.datetime],
    *,
    id_factory: Callable[[], str] = generate_id,
    max_occurrences: Optional[int] = None,
) -> ExpansionResult:
    """
    Top up the snapshot with every due recurring transaction.

    Returns the input snapshot object untouched when nothing was due.
    """
    today = _as_date(now)
    if max_occurrences is None:
        max_occurrences = get_settings().engine.max_recurring_occurrences

    existing = {
        (t.recurring_id, t.date)
        for t in snapshot.transactions
        if t.recurring_id
    }

    generated: list[Transaction] = []
    skipped: list[Optional[str]] = [raw.get("id") for raw in snapshot.quarantined_rules]

    for rule in sorted(snapshot.recurring_rules, key=lambda r: r.id):
        try:
            require_template_references(snapshot, rule)
            batch = [
                materialize(rule, day, id_factory())
                for day in iter_due_dates(rule, today, max_occurrences)
                if (rule.id, day) not in existing
            ]
        except (LedgerError, ValidationError, ValueError, OverflowError) as e:
            logger.warning(
                "recurring_rule_skipped",
                rule_id=rule.id,
                error=str(e),
            )
            skipped.append(rule.id)
            continue
        generated.extend(batch)

    if not generated:
        return ExpansionResult(snapshot=snapshot, skipped_rule_ids=tuple(skipped))

    # Stable sort: within one rule the walk order is already by date
    generated.sort(key=lambda t: (t.date, t.recurring_id))

    logger.info(
        "recurring_materialized",
        count=len(generated),
        rule_ids=sorted({t.recurring_id for t in generated}),
    )

    updated = snapshot.model_copy(update={
        "transactions": snapshot.transactions + tuple(generated),
        "accounts": fold_effects(snapshot.accounts, generated),
    })
    return ExpansionResult(
        snapshot=updated,
        generated=tuple(generated),
        skipped_rule_ids=tuple(skipped),
    )
