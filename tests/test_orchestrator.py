"""Tests for the ledger session flows."""

import asyncio
import logging

import pytest
from datetime import date
from decimal import Decimal

from moneymind.audit import AuditLogger, configure_logging
from moneymind.config import validate_all_settings
from moneymind.errors import ConflictError, InvalidPayloadError
from moneymind.models.audit import AuditEventType
from moneymind.models.ledger import LedgerSnapshot
from moneymind.orchestrator import LedgerSession, SessionNotLoadedError, create_session
from moneymind.services.storage import (
    InMemoryAuditStorage,
    InMemoryLedgerStorage,
    JsonFileLedgerStorage,
    StorageError,
)


RENT_RULE = {
    "id": "r_rent",
    "frequency": "monthly",
    "startDate": "2024-01-15",
    "template": {
        "type": "expense",
        "amount": "50",
        "accountId": "acc_checking",
        "categoryId": "cat_rent",
    },
}


class FailingLedgerStorage(InMemoryLedgerStorage):
    """Saves fail once `broken` is set."""

    def __init__(self, document=None):
        super().__init__(document)
        self.broken = False

    async def save_snapshot(self, snapshot):
        if self.broken:
            raise StorageError("disk full")
        return await super().save_snapshot(snapshot)


def make_session(ledger_document=None, today=date(2024, 4, 20), storage=None, ids=None):
    storage = storage or InMemoryLedgerStorage(ledger_document)
    audit_storage = InMemoryAuditStorage()
    kwargs = {"id_factory": ids} if ids else {}
    session = LedgerSession(
        storage=storage,
        audit_logger=AuditLogger(audit_storage),
        clock=lambda: today,
        **kwargs,
    )
    return session, storage, audit_storage


def event_types(audit_storage):
    return [event.event_type for event in audit_storage.events]


class TestLoad:
    """Tests for loading and first-run creation."""

    @pytest.mark.asyncio
    async def test_not_loaded(self):
        session, _, _ = make_session()
        assert session.is_loaded is False
        with pytest.raises(SessionNotLoadedError):
            session.snapshot

    @pytest.mark.asyncio
    async def test_first_run_creates_and_persists_defaults(self):
        session, storage, audit = make_session()
        snapshot = await session.load()
        assert snapshot.get_account("acc_checking").balance == Decimal("1000")
        assert storage.save_count == 1
        assert AuditEventType.SNAPSHOT_PERSISTED in event_types(audit)

    @pytest.mark.asyncio
    async def test_load_materializes_due_recurring(self, ids):
        session, _, _ = make_session(ids=ids)
        await session.load()
        document = session.snapshot.to_document()
        document["recurringRules"] = [RENT_RULE]

        session, storage, audit = make_session(document, ids=ids)
        snapshot = await session.load()

        assert len(snapshot.transactions) == 4
        assert snapshot.get_account("acc_checking").balance == Decimal("800")
        assert storage.save_count == 1
        assert AuditEventType.RECURRING_MATERIALIZED in event_types(audit)

    @pytest.mark.asyncio
    async def test_load_without_due_items_does_not_persist(self):
        session, storage, _ = make_session()
        await session.load()
        reloaded, _, _ = make_session(storage=storage)
        await reloaded.load()
        assert storage.save_count == 1


class TestReceiveSnapshot:
    """Tests for sync deliveries."""

    @pytest.mark.asyncio
    async def test_sync_delivery_is_topped_up_once(self, ids):
        session, storage, _ = make_session(ids=ids)
        await session.load()
        incoming = LedgerSnapshot.from_document({
            **session.snapshot.to_document(),
            "recurringRules": [RENT_RULE],
        })

        first = await session.receive_snapshot(incoming)
        second = await session.receive_snapshot(first)

        assert len(first.transactions) == 4
        assert second is first
        assert storage.save_count == 2


class TestMutate:
    """Tests for the mutation flow."""

    @pytest.mark.asyncio
    async def test_mutation_persisted_and_audited(self, ids):
        session, storage, audit = make_session(ids=ids)
        await session.load()

        snapshot = await session.mutate("transaction", "add", {
            "type": "expense",
            "amount": "25",
            "date": "2024-04-01",
            "accountId": "acc_cash",
            "categoryId": "cat_groceries",
        })

        assert session.snapshot is snapshot
        assert snapshot.get_account("acc_cash").balance == Decimal("-25")
        assert storage.document["transactions"][0]["id"] == "id_1"
        applied = [e for e in audit.events if e.event_type == AuditEventType.MUTATION_APPLIED]
        assert applied[0].entity_id == "id_1"

    @pytest.mark.asyncio
    async def test_added_rule_materializes_immediately(self, ids):
        session, _, _ = make_session(ids=ids)
        await session.load()
        snapshot = await session.mutate("recurring_rule", "add", RENT_RULE)
        assert len(snapshot.transactions) == 4

    @pytest.mark.asyncio
    async def test_invalid_payload_rejected_and_state_kept(self):
        session, storage, audit = make_session()
        await session.load()
        before = session.snapshot

        with pytest.raises(InvalidPayloadError):
            await session.mutate("transaction", "add", {
                "type": "transfer", "amount": "5", "date": "2024-04-01",
                "accountId": "acc_checking", "categoryId": "cat_rent",
            })

        assert session.snapshot is before
        assert storage.save_count == 1
        rejected = [e for e in audit.events if e.event_type == AuditEventType.MUTATION_REJECTED]
        assert rejected[0].entity_type == "transaction"
        assert rejected[0].error_code == "validation"

    @pytest.mark.asyncio
    async def test_conflicting_delete_rejected(self, ids):
        session, storage, audit = make_session(ids=ids)
        await session.load()
        await session.mutate("transaction", "add", {
            "type": "income", "amount": "10", "date": "2024-04-01", "accountId": "acc_cash",
        })
        before = session.snapshot
        saves = storage.save_count

        with pytest.raises(ConflictError):
            await session.mutate("account", "delete", {"id": "acc_cash"})

        assert session.snapshot is before
        assert storage.save_count == saves
        rejected = [e for e in audit.events if e.event_type == AuditEventType.MUTATION_REJECTED]
        assert rejected[0].error_code == "conflict"

    @pytest.mark.asyncio
    async def test_failed_persist_keeps_previous_snapshot(self, ids):
        storage = FailingLedgerStorage()
        session, _, audit = make_session(storage=storage, ids=ids)
        await session.load()
        before = session.snapshot
        storage.broken = True

        with pytest.raises(StorageError):
            await session.mutate("category", "add", {"name": "Books"})

        assert session.snapshot is before
        assert AuditEventType.PERSIST_FAILED in event_types(audit)

    @pytest.mark.asyncio
    async def test_concurrent_mutations_serialized(self, ids):
        """Two writers never start from the same base snapshot."""
        session, _, _ = make_session(ids=ids)
        await session.load()

        payload = {
            "type": "expense", "amount": "10", "date": "2024-04-02",
            "accountId": "acc_checking", "categoryId": "cat_groceries",
        }
        await asyncio.gather(*[
            session.mutate("transaction", "add", payload) for _ in range(5)
        ])

        assert len(session.snapshot.transactions) == 5
        assert session.snapshot.get_account("acc_checking").balance == Decimal("950")


class TestSettingsAndRefresh:
    """Tests for preference updates and refresh."""

    @pytest.mark.asyncio
    async def test_update_settings(self):
        session, storage, audit = make_session()
        await session.load()
        snapshot = await session.update_settings({"theme": "light"})
        assert snapshot.settings.theme == "light"
        assert storage.document["settings"]["theme"] == "light"
        assert AuditEventType.SETTINGS_UPDATED in event_types(audit)

    @pytest.mark.asyncio
    async def test_refresh_picks_up_new_day(self, ids):
        today = {"value": date(2024, 4, 20)}
        storage = InMemoryLedgerStorage()
        session = LedgerSession(storage, clock=lambda: today["value"], id_factory=ids)
        await session.load()
        await session.mutate("recurring_rule", "add", RENT_RULE)
        assert len(session.snapshot.transactions) == 4

        today["value"] = date(2024, 5, 15)
        snapshot = await session.refresh()
        assert len(snapshot.transactions) == 5

    def test_create_session_in_memory(self, monkeypatch):
        from moneymind.config import get_settings

        monkeypatch.delenv("MONEYMIND_STORAGE_LEDGER_PATH", raising=False)
        get_settings.cache_clear()
        session = create_session(is_student=True)
        assert isinstance(session, LedgerSession)
        assert session.is_loaded is False

    @pytest.mark.asyncio
    async def test_create_session_with_file(self, tmp_path):
        session = create_session(str(tmp_path / "ledger.json"))
        snapshot = await session.load()
        assert (tmp_path / "ledger.json").exists()
        assert snapshot.settings.default_account == "acc_checking"


class TestStartup:
    """Tests for startup checks and failure auditing."""

    @pytest.mark.asyncio
    async def test_unreadable_ledger_audited_as_system_error(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text("{not json", encoding="utf-8")
        audit_storage = InMemoryAuditStorage()
        session = LedgerSession(
            JsonFileLedgerStorage(path),
            audit_logger=AuditLogger(audit_storage),
        )

        with pytest.raises(StorageError):
            await session.load()

        assert session.is_loaded is False
        [event] = audit_storage.events
        assert event.event_type == AuditEventType.SYSTEM_ERROR
        assert event.details == {"storage": "JsonFileLedgerStorage"}

    def test_validate_all_settings_reports_bad_section(self, monkeypatch):
        monkeypatch.setenv("MONEYMIND_SERIES_MONTHS", "0")
        status = validate_all_settings()
        assert status["app"] is True
        assert status["storage"] is True
        assert status["engine"] is False
        assert "series_months" in status["engine_error"]

    def test_create_session_refuses_invalid_settings(self, monkeypatch):
        monkeypatch.setenv("TIMEZONE", "Mars/Olympus_Mons")
        with pytest.raises(ValueError, match="app"):
            create_session()

    def test_configure_logging_sets_root_level(self):
        root = logging.getLogger()
        previous = root.level
        try:
            configure_logging("warning")
            assert root.level == logging.WARNING
        finally:
            root.setLevel(previous)
