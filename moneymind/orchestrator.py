"""
Ledger Session Orchestrator

This module ties the pure engine to storage and the audit trail, and
defines the flows for:
1. Load (storage -> recurring top-up -> persist if changed -> current)
2. Sync delivery (incoming snapshot -> recurring top-up -> persist if changed)
3. Mutation (current -> mutate -> recurring top-up -> persist -> current)

DESIGN DECISION: The session is the single writer.
- Every flow runs under one asyncio.Lock against the latest snapshot,
  so two mutations can never both start from the same base
- The current reference is swapped only after persistence succeeds;
  a failed save leaves the session exactly where it was
- Every step is audited

The engine underneath never does I/O; everything blocking lives here.
"""

import asyncio
import datetime as dt
from typing import Any, Callable, Optional
from uuid import UUID

import structlog

from moneymind.audit import AuditLogger, configure_logging, create_correlation_id
from moneymind.config import get_settings, local_today, validate_all_settings
from moneymind.errors import LedgerError
from moneymind.models.ledger import LedgerSnapshot, default_snapshot, generate_id
from moneymind.mutations import (
    EntityKind,
    MutationAction,
    Payload,
    as_payload_dict,
    mutate,
    update_settings,
)
from moneymind.recurring import ExpansionResult, expand_recurring
from moneymind.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    JsonFileLedgerStorage,
    LedgerStorageInterface,
    StorageError,
)


logger = structlog.get_logger(__name__)


class SessionNotLoadedError(RuntimeError):
    """The session has no snapshot yet; call load() or receive_snapshot()."""
    pass


def _counts(snapshot: LedgerSnapshot) -> dict[str, int]:
    return {
        "accounts": len(snapshot.accounts),
        "transactions": len(snapshot.transactions),
        "categories": len(snapshot.categories),
        "goals": len(snapshot.goals),
        "recurring_rules": len(snapshot.recurring_rules),
    }


class LedgerSession:
    """
    Owns the current ledger snapshot for one owner.

    Usage:
        session = LedgerSession(InMemoryLedgerStorage())
        await session.load()
        await session.mutate("transaction", "add", {...})
    """

    def __init__(
        self,
        storage: LedgerStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], dt.date] = local_today,
        id_factory: Callable[[], str] = generate_id,
        is_student: bool = False,
    ):
        self._storage = storage
        self._audit_logger = audit_logger
        self._clock = clock
        self._id_factory = id_factory
        self._is_student = is_student
        self._lock = asyncio.Lock()
        self._snapshot: Optional[LedgerSnapshot] = None

    @property
    def snapshot(self) -> LedgerSnapshot:
        if self._snapshot is None:
            raise SessionNotLoadedError("No ledger loaded")
        return self._snapshot

    @property
    def is_loaded(self) -> bool:
        return self._snapshot is not None

    # -------------------------------------------------------------------------
    # Internals (callers hold the lock)
    # -------------------------------------------------------------------------

    async def _audit(self, method: str, **kwargs: Any) -> None:
        if self._audit_logger:
            await getattr(self._audit_logger, method)(**kwargs)

    async def _expand(
        self,
        snapshot: LedgerSnapshot,
        correlation_id: UUID,
    ) -> ExpansionResult:
        result = expand_recurring(snapshot, self._clock(), id_factory=self._id_factory)
        for rule_id in result.skipped_rule_ids:
            await self._audit(
                "log_recurring_rule_skipped",
                rule_id=rule_id,
                correlation_id=correlation_id,
            )
        if result.changed:
            await self._audit(
                "log_recurring_materialized",
                count=len(result.generated),
                rule_ids=sorted({t.recurring_id for t in result.generated}),
                correlation_id=correlation_id,
            )
        return result

    async def _persist(self, snapshot: LedgerSnapshot, correlation_id: UUID) -> None:
        try:
            await self._storage.save_snapshot(snapshot)
        except StorageError as e:
            logger.error("ledger_persist_failed", error=str(e))
            await self._audit(
                "log_persist_failed",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise
        await self._audit(
            "log_snapshot_persisted",
            transaction_count=len(snapshot.transactions),
            correlation_id=correlation_id,
        )

    async def _accept(
        self,
        snapshot: LedgerSnapshot,
        correlation_id: UUID,
        source: str,
        force_persist: bool = False,
    ) -> LedgerSnapshot:
        await self._audit(
            "log_snapshot_loaded",
            counts=_counts(snapshot),
            correlation_id=correlation_id,
            source=source,
        )
        result = await self._expand(snapshot, correlation_id)
        if result.changed or force_persist:
            await self._persist(result.snapshot, correlation_id)
        self._snapshot = result.snapshot
        return result.snapshot

    # -------------------------------------------------------------------------
    # Flows
    # -------------------------------------------------------------------------

    async def load(self, correlation_id: Optional[UUID] = None) -> LedgerSnapshot:
        """
        Load the stored ledger, creating the starter ledger if none exists.

        Due recurring transactions are materialized and persisted before
        the snapshot becomes current.
        """
        correlation_id = correlation_id or create_correlation_id()
        async with self._lock:
            try:
                stored = await self._storage.load_snapshot()
            except StorageError as e:
                logger.error("ledger_load_failed", error=str(e))
                await self._audit(
                    "log_error",
                    error_type="ledger_load_failed",
                    error_message=str(e),
                    details={"storage": type(self._storage).__name__},
                    correlation_id=correlation_id,
                )
                raise
            if stored is None:
                logger.info("ledger_created", is_student=self._is_student)
                return await self._accept(
                    default_snapshot(self._is_student),
                    correlation_id,
                    source="defaults",
                    force_persist=True,
                )
            return await self._accept(stored, correlation_id, source="storage")

    async def receive_snapshot(
        self,
        snapshot: LedgerSnapshot,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerSnapshot:
        """Adopt a snapshot delivered by the sync collaborator."""
        correlation_id = correlation_id or create_correlation_id()
        async with self._lock:
            return await self._accept(snapshot, correlation_id, source="sync")

    async def refresh(self, correlation_id: Optional[UUID] = None) -> LedgerSnapshot:
        """Re-run recurring expansion against today (e.g. after midnight)."""
        correlation_id = correlation_id or create_correlation_id()
        async with self._lock:
            result = await self._expand(self.snapshot, correlation_id)
            if result.changed:
                await self._persist(result.snapshot, correlation_id)
                self._snapshot = result.snapshot
            return self.snapshot

    async def mutate(
        self,
        entity_kind: str,
        action: str,
        payload: Payload,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerSnapshot:
        """
        Apply one create/update/delete and persist the result.

        Raises:
            LedgerError: the mutation was rejected; nothing changed
            StorageError: the new snapshot could not be saved; nothing changed
        """
        correlation_id = correlation_id or create_correlation_id()
        created: list[str] = []

        def ids() -> str:
            new_id = self._id_factory()
            created.append(new_id)
            return new_id

        async with self._lock:
            base = self.snapshot
            try:
                updated = mutate(base, entity_kind, action, payload, id_factory=ids)
            except LedgerError as e:
                await self._audit(
                    "log_mutation_rejected",
                    entity_type=str(getattr(entity_kind, "value", entity_kind)),
                    action=str(getattr(action, "value", action)),
                    error_kind=e.kind,
                    error_message=e.message,
                    correlation_id=correlation_id,
                    entity_id=e.entity_id,
                )
                raise

            kind = EntityKind(entity_kind)
            verb = MutationAction(action)
            if verb == MutationAction.ADD:
                entity_id = created[0] if created else None
            else:
                entity_id = as_payload_dict(payload).get("id")

            # Newly added or edited rules may already have due occurrences
            result = await self._expand(updated, correlation_id)
            await self._persist(result.snapshot, correlation_id)
            self._snapshot = result.snapshot

            await self._audit(
                "log_mutation_applied",
                entity_type=kind.value,
                action=verb.value,
                entity_id=entity_id,
                correlation_id=correlation_id,
            )
            return result.snapshot

    async def update_settings(
        self,
        changes: Payload,
        correlation_id: Optional[UUID] = None,
    ) -> LedgerSnapshot:
        """Merge preference changes and persist them."""
        correlation_id = correlation_id or create_correlation_id()
        async with self._lock:
            try:
                updated = update_settings(self.snapshot, changes)
            except LedgerError as e:
                await self._audit(
                    "log_mutation_rejected",
                    entity_type="settings",
                    action=MutationAction.UPDATE.value,
                    error_kind=e.kind,
                    error_message=e.message,
                    correlation_id=correlation_id,
                )
                raise
            await self._persist(updated, correlation_id)
            self._snapshot = updated
            await self._audit(
                "log_settings_updated",
                fields=sorted(as_payload_dict(changes)),
                correlation_id=correlation_id,
            )
            return updated


def create_session(
    ledger_path: Optional[str] = None,
    is_student: bool = False,
) -> LedgerSession:
    """
    Factory function to create a session with its collaborators.

    Args:
        ledger_path: JSON ledger document. Falls back to
                    MONEYMIND_STORAGE_LEDGER_PATH, then to in-memory
                    storage when neither is set.
        is_student: Seed student categories when creating a new ledger

    Returns:
        A LedgerSession; call load() before use

    Raises:
        ValueError: a settings section failed validation
    """
    status = validate_all_settings()
    invalid = sorted(name for name, ok in status.items() if ok is False)
    if invalid:
        for name in invalid:
            logger.error("settings_invalid", section=name, error=status.get(f"{name}_error"))
        raise ValueError(f"Invalid settings: {', '.join(invalid)}")

    configure_logging()

    path = ledger_path or get_settings().storage.ledger_path
    if path:
        storage: LedgerStorageInterface = JsonFileLedgerStorage(path)
    else:
        logger.warning("ledger_storage_in_memory")
        storage = InMemoryLedgerStorage()

    return LedgerSession(
        storage=storage,
        audit_logger=AuditLogger(InMemoryAuditStorage()),
        is_student=is_student,
    )
