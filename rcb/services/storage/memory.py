"""
In-Memory Storage Implementation

Keeps serialized payloads in dictionaries. Used for tests and for running
the ledger locally without Google credentials.

Records are stored as payloads (not model instances) so a load always
returns a fresh copy and never shares state with the controller.
"""

from typing import Any, Optional

from rcb.models.audit import AuditEvent
from rcb.models.ledger import PeriodKey, PeriodRecord
from rcb.services.storage.interface import (
    AuditStorageInterface,
    PeriodStorageInterface,
)


class InMemoryPeriodStorage(PeriodStorageInterface):
    """Dict-backed period storage keyed by the period key string."""

    def __init__(self):
        self._payloads: dict[str, dict[str, Any]] = {}
        self.save_count = 0

    async def load(self, period_key: PeriodKey) -> Optional[PeriodRecord]:
        payload = self._payloads.get(str(period_key))
        if payload is None:
            return None
        return PeriodRecord.from_payload(payload)

    async def save(self, period_key: PeriodKey, record: PeriodRecord) -> bool:
        self._payloads[str(period_key)] = record.to_payload()
        self.save_count += 1
        return True

    async def list_periods(self) -> list[PeriodKey]:
        return sorted(PeriodKey.parse(key) for key in self._payloads)


class InMemoryAuditStorage(AuditStorageInterface):
    """List-backed audit log."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event)
        return True

    async def get_events_by_period(self, period_key: str) -> list[AuditEvent]:
        events = [e for e in self._events if e.period_key == period_key]
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        events = sorted(self._events, key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
