"""
Abstract Storage Interface

DESIGN DECISION: The ledger engine never talks to a database directly.
It holds every period in memory and asks a persistence gateway to load or
save whole {schema, metadata, entries} triples. This allows us to:
1. Swap Google Sheets for a real database later
2. Use in-memory storage for testing
3. Keep the balance and carry-forward logic free of I/O

The period key string "<year>-<quarter>" is the only identifier that
crosses this boundary.
"""

from abc import ABC, abstractmethod
from typing import Optional

from rcb.models.audit import AuditEvent
from rcb.models.ledger import PeriodKey, PeriodRecord


class PeriodStorageInterface(ABC):
    """
    Abstract interface for period persistence.

    Any storage implementation (Google Sheets, PostgreSQL, etc.)
    must implement these methods.
    """

    @abstractmethod
    async def load(self, period_key: PeriodKey) -> Optional[PeriodRecord]:
        """
        Load a period's {schema, metadata, entries}.

        Args:
            period_key: The period to load

        Returns:
            The stored record, or None if the period was never saved.
            The engine treats None exactly like "not yet created".

        Raises:
            StorageError: If the backend cannot be read
        """
        pass

    @abstractmethod
    async def save(self, period_key: PeriodKey, record: PeriodRecord) -> bool:
        """
        Save a period's {schema, metadata, entries}, replacing what was there.

        Derived values (entry balances, totals) are not stored.

        Returns:
            True if saved successfully

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def list_periods(self) -> list[PeriodKey]:
        """
        List the periods that have been saved, oldest first.
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

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_period(self, period_key: str) -> list[AuditEvent]:
        """
        Get all events for one period, in chronological order.
        """
        pass

    @abstractmethod
    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
