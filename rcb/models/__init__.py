"""
Data Models Package

This package contains all Pydantic models used by the ledger engine.
All data held, persisted or exported by the register conforms to these schemas.
"""

from rcb.models.ledger import (
    AccountKind,
    ColumnSchema,
    EntryDraft,
    LedgerEntry,
    LedgerTotals,
    PeriodKey,
    PeriodMetadata,
    PeriodRecord,
    PeriodState,
    PeriodStatus,
    Quarter,
    ValidationIssue,
    ValidationResult,
    coerce_amount,
)
from rcb.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "AccountKind",
    "ColumnSchema",
    "EntryDraft",
    "LedgerEntry",
    "LedgerTotals",
    "PeriodKey",
    "PeriodMetadata",
    "PeriodRecord",
    "PeriodState",
    "PeriodStatus",
    "Quarter",
    "ValidationIssue",
    "ValidationResult",
    "coerce_amount",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
