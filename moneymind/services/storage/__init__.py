"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
The ledger is a JSON document on disk; in-memory storage backs tests and
sessions without a configured path.
"""

from moneymind.services.storage.interface import (
    AuditStorageInterface,
    LedgerStorageInterface,
    StorageError,
)
from moneymind.services.storage.json_file import JsonFileLedgerStorage
from moneymind.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "LedgerStorageInterface",
    # Exceptions
    "StorageError",
    # Implementations
    "InMemoryAuditStorage",
    "InMemoryLedgerStorage",
    "JsonFileLedgerStorage",
]
