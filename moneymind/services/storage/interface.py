"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the ledger engine free of any I/O
2. Use in-memory storage for testing
3. Swap the JSON document for a remote document store later

The ledger is persisted as one document per owner, so the interface is
intentionally small: load the whole snapshot, save the whole snapshot.
"""

from abc import ABC, abstractmethod
from typing import Optional

from moneymind.models.audit import AuditEvent
from moneymind.models.ledger import LedgerSnapshot


class LedgerStorageInterface(ABC):
    """
    Abstract interface for the ledger document.

    Any storage implementation (local JSON file, remote document store...)
    must implement these methods.
    """

    @abstractmethod
    async def load_snapshot(self) -> Optional[LedgerSnapshot]:
        """
        Load the stored ledger.

        Returns:
            The snapshot, or None when nothing has been stored yet

        Raises:
            StorageError: If the document exists but cannot be read
        """
        pass

    @abstractmethod
    async def save_snapshot(self, snapshot: LedgerSnapshot) -> bool:
        """
        Replace the stored ledger with this snapshot.

        Args:
            snapshot: The full ledger state to store

        Returns:
            True if saved successfully

        Raises:
            StorageError: If save fails
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Args:
            event: The audit event to log

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Args:
            limit: Maximum number of events to return

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass
