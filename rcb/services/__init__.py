"""Services package."""

from rcb.services.storage import (
    AuditStorageInterface,
    ConnectionError,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsPeriodStorage,
    InMemoryAuditStorage,
    InMemoryPeriodStorage,
    PeriodStorageInterface,
    StorageError,
)

__all__ = [
    "AuditStorageInterface",
    "ConnectionError",
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsPeriodStorage",
    "InMemoryAuditStorage",
    "InMemoryPeriodStorage",
    "PeriodStorageInterface",
    "StorageError",
]
