"""
Audit Logger

DESIGN DECISION: Every significant action on the ledger is logged.
This provides:
1. Traceability from an owner action to the snapshot it produced
2. Debugging capability when mutations are rejected
3. A record of what recurring expansion added on the owner's behalf

The audit logger:
- Is async to not block main flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
from typing import Optional
from uuid import UUID, uuid4

import structlog

from moneymind.config import get_settings
from moneymind.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity
from moneymind.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


def configure_logging(level: Optional[str] = None) -> None:
    """
    Route structured logs to stderr at the configured level.

    Call once at application startup; importing this module leaves the
    root logger alone.
    """
    level = (level or get_settings().app.log_level).upper()
    logging.basicConfig(format="%(message)s")
    logging.getLogger().setLevel(level)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and owner visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Audit trail failures never propagate to the caller
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_snapshot_loaded(
        self,
        counts: dict[str, int],
        correlation_id: UUID,
        source: str = "storage",
    ) -> None:
        """Log a snapshot arriving from storage or a sync delivery."""
        event = AuditEventBuilder.snapshot_loaded(
            counts=counts,
            correlation_id=correlation_id,
            source=source,
        )
        await self.log(event)

    async def log_recurring_materialized(
        self,
        count: int,
        rule_ids: list[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.recurring_materialized(
            count=count,
            rule_ids=rule_ids,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_recurring_rule_skipped(
        self,
        rule_id: Optional[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.recurring_rule_skipped(
            rule_id=rule_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_mutation_applied(
        self,
        entity_type: str,
        action: str,
        entity_id: Optional[str],
        correlation_id: UUID,
    ) -> None:
        """Log an accepted create/update/delete."""
        event = AuditEventBuilder.mutation_applied(
            entity_type=entity_type,
            action=action,
            entity_id=entity_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_mutation_rejected(
        self,
        entity_type: str,
        action: str,
        error_kind: str,
        error_message: str,
        correlation_id: UUID,
        entity_id: Optional[str] = None,
    ) -> None:
        """Log a create/update/delete refused by the engine."""
        event = AuditEventBuilder.mutation_rejected(
            entity_type=entity_type,
            action=action,
            error_kind=error_kind,
            error_message=error_message,
            correlation_id=correlation_id,
            entity_id=entity_id,
        )
        await self.log(event)

    async def log_settings_updated(
        self,
        fields: list[str],
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.settings_updated(
            fields=fields,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_snapshot_persisted(
        self,
        transaction_count: int,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.snapshot_persisted(
            transaction_count=transaction_count,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_persist_failed(
        self,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        event = AuditEventBuilder.persist_failed(
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of an owner action (e.g., adding a transaction).
    Pass it through all subsequent operations.
    """
    return uuid4()
