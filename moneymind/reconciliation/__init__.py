"""Balance reconciliation package."""

from moneymind.reconciliation.balance import (
    APPLY,
    REVERT,
    apply_effect,
    effect_of,
    fold_effects,
    recompute_balances,
    revert_effect,
)

__all__ = [
    "APPLY",
    "REVERT",
    "apply_effect",
    "effect_of",
    "fold_effects",
    "recompute_balances",
    "revert_effect",
]
