"""
Shared fixtures for the ledger tests.

No real Google Sheets calls and no wall-clock waits: storage is in
memory and autosaves run only when a test fires them.
"""

import asyncio
from datetime import date

import pytest

from rcb.audit import AuditLogger
from rcb.config import LedgerSettings
from rcb.ledger.controller import LedgerController
from rcb.ledger.scheduler import SaveHandle, SaveScheduler
from rcb.models.ledger import EntryDraft, PeriodKey, PeriodRecord, Quarter
from rcb.services.storage import (
    InMemoryAuditStorage,
    InMemoryPeriodStorage,
    StorageError,
)


class ManualSaveHandle(SaveHandle):

    def __init__(self, delay, action):
        self.delay = delay
        self.action = action
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualSaveScheduler(SaveScheduler):
    """Collects scheduled saves; run_pending() fires the live ones."""

    def __init__(self):
        self.handles: list[ManualSaveHandle] = []

    def schedule(self, delay, action):
        handle = ManualSaveHandle(delay, action)
        self.handles.append(handle)
        return handle

    @property
    def active(self) -> list[ManualSaveHandle]:
        return [h for h in self.handles if not h.cancelled]

    async def run_pending(self) -> int:
        handles = self.active
        self.handles = []
        for handle in handles:
            await handle.action()
        return len(handles)


class FailingPeriodStorage(InMemoryPeriodStorage):
    """Saves fail while `failing` is set."""

    def __init__(self):
        super().__init__()
        self.failing = True

    async def save(self, period_key, record):
        if self.failing:
            raise StorageError("spreadsheet quota exceeded")
        return await super().save(period_key, record)


class BlockingPeriodStorage(InMemoryPeriodStorage):
    """Saves wait until `release` is set, to hold a save in flight."""

    def __init__(self):
        super().__init__()
        self.release = asyncio.Event()
        self.saved_records: list[PeriodRecord] = []

    async def save(self, period_key, record):
        await self.release.wait()
        self.saved_records.append(record)
        return await super().save(period_key, record)


class BlockingFailingPeriodStorage(BlockingPeriodStorage):
    """Saves wait until `release` is set, then fail."""

    async def save(self, period_key, record):
        await self.release.wait()
        raise StorageError("spreadsheet quota exceeded")


def make_draft(**overrides) -> EntryDraft:
    values = {
        "date": date(2024, 1, 15),
        "reference": "DV-2024-001",
        "payee": "Juan Dela Cruz",
        "particulars": "Office supplies",
    }
    values.update(overrides)
    return EntryDraft(**values)


@pytest.fixture
def ledger_settings() -> LedgerSettings:
    return LedgerSettings(
        max_accounts_per_kind=3,
        autosave_delay_seconds=2.0,
    )


@pytest.fixture
def storage() -> InMemoryPeriodStorage:
    return InMemoryPeriodStorage()


@pytest.fixture
def audit_storage() -> InMemoryAuditStorage:
    return InMemoryAuditStorage()


@pytest.fixture
def scheduler() -> ManualSaveScheduler:
    return ManualSaveScheduler()


@pytest.fixture
def controller(storage, audit_storage, scheduler, ledger_settings) -> LedgerController:
    return LedgerController(
        storage=storage,
        scheduler=scheduler,
        audit_logger=AuditLogger(audit_storage),
        settings=ledger_settings,
    )


@pytest.fixture
def q1() -> PeriodKey:
    return PeriodKey(year=2024, quarter=Quarter.Q1)


@pytest.fixture
def draft():
    """Factory for valid drafts; keyword arguments override fields."""
    return make_draft
