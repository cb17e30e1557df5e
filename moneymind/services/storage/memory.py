"""
In-Memory Storage

Process-local implementations of the storage interfaces. Used by tests
and when no ledger path is configured.

The ledger is kept as its serialized document, not as the snapshot
object, so a load always goes through the same parsing path as a real
backend.
"""

from typing import Any, Optional

from moneymind.models.audit import AuditEvent
from moneymind.models.ledger import LedgerSnapshot
from moneymind.services.storage.interface import (
    AuditStorageInterface,
    LedgerStorageInterface,
    StorageError,
)


class InMemoryLedgerStorage(LedgerStorageInterface):
    """Ledger document held in memory."""

    def __init__(self, document: Optional[dict[str, Any]] = None):
        self._document = document
        self.save_count = 0

    @property
    def document(self) -> Optional[dict[str, Any]]:
        return self._document

    async def load_snapshot(self) -> Optional[LedgerSnapshot]:
        if self._document is None:
            return None
        try:
            return LedgerSnapshot.from_document(self._document)
        except ValueError as e:
            raise StorageError(f"Failed to read ledger: {e}") from e

    async def save_snapshot(self, snapshot: LedgerSnapshot) -> bool:
        self._document = snapshot.to_document()
        self.save_count += 1
        return True


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only event list."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    @property
    def events(self) -> list[AuditEvent]:
        return list(self._events)

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        # Newest first; appends arrive in order so reversing is enough
        return list(reversed(self._events))[:limit]
