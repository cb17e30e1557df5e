"""Validation package."""

from moneymind.validation.validator import (
    LedgerValidator,
    issues_from_pydantic,
    parse_payload,
    require_references,
    require_template_references,
    require_transaction_references,
)

__all__ = [
    "LedgerValidator",
    "issues_from_pydantic",
    "parse_payload",
    "require_references",
    "require_template_references",
    "require_transaction_references",
]
