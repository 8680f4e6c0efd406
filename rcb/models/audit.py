"""
Audit Models for the Register of Cash in Bank

Every change to a register is logged for audit purposes:
1. Entries appended, rejected and withdrawn for editing
2. Schema and metadata edits
3. Automatic balance carry-forwards between quarters
4. Saves and save failures

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Period lifecycle
    PERIOD_LOADED = "period_loaded"
    PERIOD_CREATED = "period_created"

    # Register edits
    ENTRY_APPENDED = "entry_appended"
    ENTRY_REJECTED = "entry_rejected"
    ENTRY_WITHDRAWN = "entry_withdrawn"
    SCHEMA_CHANGED = "schema_changed"
    METADATA_UPDATED = "metadata_updated"

    # Automatic propagation
    BALANCE_CARRIED_FORWARD = "balance_carried_forward"

    # Persistence
    PERIOD_SAVED = "period_saved"
    SAVE_FAILED = "save_failed"
    LOAD_FAILED = "load_failed"


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

    Events are scoped to a period key rather than an entity id: the
    period is the unit everything in the register belongs to.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    period_key: Optional[str] = Field(
        default=None,
        description="Period the event belongs to, e.g. '2024-Q1'"
    )

    description: str = Field(
        ...,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(default_factory=dict)

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "period_key": self.period_key,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row for the audit worksheet.

        [event_id, timestamp, event_type, severity, period_key,
         description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.period_key or "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.entry_appended("2024-Q1", 3, "REF-001")
        event = AuditEventBuilder.save_failed("2024-Q1", "quota exceeded")
    """

    @staticmethod
    def period_loaded(period_key: str, entry_count: int, created: bool) -> AuditEvent:
        if created:
            return AuditEvent(
                event_type=AuditEventType.PERIOD_CREATED,
                period_key=period_key,
                description=f"Register {period_key} created with defaults",
            )
        return AuditEvent(
            event_type=AuditEventType.PERIOD_LOADED,
            period_key=period_key,
            description=f"Register {period_key} loaded ({entry_count} entries)",
            details={"entry_count": entry_count},
        )

    @staticmethod
    def entry_appended(period_key: str, index: int, reference: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_APPENDED,
            period_key=period_key,
            description=f"Entry {reference} appended at position {index}",
            details={"index": index, "reference": reference},
            is_user_action=True,
        )

    @staticmethod
    def entry_rejected(period_key: str, missing_fields: list[str]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_REJECTED,
            severity=AuditSeverity.WARNING,
            period_key=period_key,
            description=f"Entry rejected, missing: {', '.join(missing_fields)}",
            details={"missing_fields": missing_fields},
            is_user_action=True,
        )

    @staticmethod
    def entry_withdrawn(period_key: str, index: int, reference: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTRY_WITHDRAWN,
            period_key=period_key,
            description=f"Entry {reference} at position {index} pulled back for editing",
            details={"index": index, "reference": reference},
            is_user_action=True,
        )

    @staticmethod
    def schema_changed(period_key: str, action: str, kind: str, label: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SCHEMA_CHANGED,
            period_key=period_key,
            description=f"{kind} column {action}: {label}",
            details={"action": action, "kind": kind, "label": label},
            is_user_action=True,
        )

    @staticmethod
    def metadata_updated(period_key: str, changes: dict[str, Any]) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.METADATA_UPDATED,
            period_key=period_key,
            description=f"Header updated: {', '.join(sorted(changes))}",
            details={name: str(value) for name, value in changes.items()},
            is_user_action=True,
        )

    @staticmethod
    def balance_carried_forward(
        source_key: str,
        target_key: str,
        amount: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BALANCE_CARRIED_FORWARD,
            period_key=target_key,
            description=f"Balance {amount} carried forward from {source_key}",
            details={"source": source_key, "amount": amount},
        )

    @staticmethod
    def period_saved(period_key: str, entry_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERIOD_SAVED,
            period_key=period_key,
            description=f"Register {period_key} saved ({entry_count} entries)",
            details={"entry_count": entry_count},
        )

    @staticmethod
    def save_failed(period_key: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            period_key=period_key,
            description=f"Saving register {period_key} failed",
            error_message=error_message,
        )

    @staticmethod
    def load_failed(period_key: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOAD_FAILED,
            severity=AuditSeverity.ERROR,
            period_key=period_key,
            description=f"Loading register {period_key} failed",
            error_message=error_message,
        )
