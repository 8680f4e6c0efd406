"""
Storage Services Package

Provides abstract interfaces and concrete implementations for period storage.
Google Sheets is the shared backend; the in-memory backend serves tests and
local use.
"""

from rcb.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    PeriodStorageInterface,
    StorageError,
)
from rcb.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryPeriodStorage,
)
from rcb.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsPeriodStorage,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "PeriodStorageInterface",
    # Exceptions
    "ConnectionError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryPeriodStorage",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsPeriodStorage",
]
