"""
Audit Models for MoneyMind

Every change to the ledger is logged for audit purposes.
This provides:
1. Traceability of which operation produced which snapshot
2. Debugging information when a mutation is rejected
3. A record of what recurring expansion materialized and skipped

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Snapshot lifecycle
    SNAPSHOT_LOADED = "snapshot_loaded"
    SNAPSHOT_RECEIVED = "snapshot_received"
    SNAPSHOT_PERSISTED = "snapshot_persisted"
    PERSIST_FAILED = "persist_failed"

    # Recurring expansion
    RECURRING_MATERIALIZED = "recurring_materialized"
    RECURRING_RULE_SKIPPED = "recurring_rule_skipped"

    # Mutations
    MUTATION_APPLIED = "mutation_applied"
    MUTATION_REJECTED = "mutation_rejected"
    SETTINGS_UPDATED = "settings_updated"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'account', 'recurring_rule')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., a mutation and its persist)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by the owner (as opposed to expansion or sync)?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_row(self) -> list:
        """
        Flatten to a row for tabular audit stores.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.mutation_applied("transaction", "add", txn_id, correlation_id)
        event = AuditEventBuilder.recurring_materialized(3, rule_ids, correlation_id)
    """

    @staticmethod
    def snapshot_loaded(
        counts: dict[str, int],
        correlation_id: UUID,
        source: str = "storage",
    ) -> AuditEvent:
        event_type = (
            AuditEventType.SNAPSHOT_LOADED
            if source == "storage"
            else AuditEventType.SNAPSHOT_RECEIVED
        )
        return AuditEvent(
            event_type=event_type,
            entity_type="snapshot",
            correlation_id=correlation_id,
            description=f"Ledger snapshot {'loaded' if source == 'storage' else 'received'} from {source}",
            details={"source": source, **counts},
        )

    @staticmethod
    def recurring_materialized(
        count: int,
        rule_ids: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_MATERIALIZED,
            entity_type="recurring_rule",
            correlation_id=correlation_id,
            description=f"{count} new recurring transaction(s) added",
            details={
                "count": count,
                "rule_ids": rule_ids,
            },
        )

    @staticmethod
    def recurring_rule_skipped(
        rule_id: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECURRING_RULE_SKIPPED,
            severity=AuditSeverity.WARNING,
            entity_type="recurring_rule",
            entity_id=rule_id,
            correlation_id=correlation_id,
            description=f"Recurring rule skipped: {rule_id or 'unknown'}",
        )

    @staticmethod
    def mutation_applied(
        entity_type: str,
        action: str,
        entity_id: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_APPLIED,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} {action} applied",
            details={"action": action},
            is_user_action=True,
        )

    @staticmethod
    def mutation_rejected(
        entity_type: str,
        action: str,
        error_kind: str,
        error_message: str,
        correlation_id: UUID,
        entity_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MUTATION_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} {action} rejected ({error_kind})",
            details={"action": action},
            error_code=error_kind,
            error_message=error_message,
            is_user_action=True,
        )

    @staticmethod
    def settings_updated(
        fields: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTINGS_UPDATED,
            entity_type="settings",
            correlation_id=correlation_id,
            description="Preferences updated",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def snapshot_persisted(
        transaction_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SNAPSHOT_PERSISTED,
            entity_type="snapshot",
            correlation_id=correlation_id,
            description="Ledger snapshot persisted",
            details={"transaction_count": transaction_count},
        )

    @staticmethod
    def persist_failed(
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSIST_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="snapshot",
            correlation_id=correlation_id,
            description="Ledger snapshot could not be persisted",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
