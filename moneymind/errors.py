"""
Ledger Error Types

Every rejected operation surfaces as one of these. They are local and
recoverable: the snapshot passed in is never modified, and the caller
decides whether to retry with corrected input.
"""

from typing import Optional, Sequence

from moneymind.models.ledger import ValidationIssue


class LedgerError(Exception):
    """Base class for rejected ledger operations."""

    kind = "ledger"

    def __init__(
        self,
        message: str,
        *,
        entity_kind: Optional[str] = None,
        entity_id: Optional[str] = None,
        issues: Optional[Sequence[ValidationIssue]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.entity_kind = entity_kind
        self.entity_id = entity_id
        self.issues = list(issues or [])

    def to_dict(self) -> dict:
        """Serializable form for logging and API responses."""
        return {
            "kind": self.kind,
            "message": self.message,
            "entity_kind": self.entity_kind,
            "entity_id": self.entity_id,
            "issues": [issue.model_dump() for issue in self.issues],
        }


class LedgerReferenceError(LedgerError):
    """A transaction, rule or filter references a nonexistent entity."""

    kind = "reference"


class EntityNotFoundError(LedgerReferenceError):
    """Update/delete targeted an id that is not in the snapshot."""
    pass


class ConflictError(LedgerError):
    """Delete of an account or category that is still referenced."""

    kind = "conflict"


class InvalidPayloadError(LedgerError):
    """Malformed payload (bad amount, missing destination or category...)."""

    kind = "validation"
