"""
Ledger Controller

Owns every period the user works with and keeps them consistent:
1. Loads a period on first visit (defaults when nothing is stored)
2. Applies schema, entry and header edits
3. Recomputes balances after every change
4. Carries each period's closing balance into the next period
5. Tracks unsaved changes and saves them, debounced

CONCURRENCY: single-threaded and cooperative. Every mutation runs to
completion synchronously, so in-memory state is consistent before any
save is awaited. A save works on a deep copy of the record; edits that
arrive while it is in flight are captured and saved afterwards.

Periods never interact except through carry_forward(), which only ever
writes the NEXT period's opening balance.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

import structlog

from rcb.audit import AuditLogger
from rcb.config import LedgerSettings, get_settings
from rcb.export import ExportSnapshot, build_export_snapshot
from rcb.ledger import schema as schema_ops
from rcb.ledger.aggregation import compute_totals
from rcb.ledger.balance import ending_balance, recompute_balances
from rcb.ledger.scheduler import AsyncioSaveScheduler, SaveHandle, SaveScheduler
from rcb.ledger.store import LedgerEntryStore
from rcb.models.audit import AuditEventBuilder
from rcb.models.ledger import (
    AccountKind,
    ColumnSchema,
    EntryDraft,
    LedgerEntry,
    LedgerTotals,
    PeriodKey,
    PeriodRecord,
    PeriodState,
    PeriodStatus,
    ValidationResult,
    coerce_amount,
)
from rcb.services.storage import InMemoryPeriodStorage, PeriodStorageInterface
from rcb.validation import EntryValidator


class LedgerError(Exception):
    """Base exception for ledger engine errors."""
    pass


class PeriodNotLoadedError(LedgerError):
    """A period must be opened before it can be edited or saved."""

    def __init__(self, period_key: PeriodKey):
        self.period_key = period_key
        super().__init__(f"Period {period_key} has not been opened")


class LedgerController:
    """
    The register engine behind the Financial > RCB screen.

    Read operations (entries, totals, snapshot) work on any period: a
    period that was never opened reads as an empty register with the
    default schema and whatever balance was carried into it. Nothing is
    kept for such a period except a carried balance. Edits and saves need
    open_period() first.
    """

    def __init__(
        self,
        storage: Optional[PeriodStorageInterface] = None,
        scheduler: Optional[SaveScheduler] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
        validator: Optional[EntryValidator] = None,
    ):
        self._settings = settings or get_settings().ledger
        self._storage = storage or InMemoryPeriodStorage()
        self._scheduler = scheduler or AsyncioSaveScheduler()
        self._audit = audit_logger or AuditLogger()
        self._validator = validator or EntryValidator()
        self._store = LedgerEntryStore(self._validator)

        self._status: dict[PeriodKey, PeriodStatus] = {}
        self._timers: dict[PeriodKey, SaveHandle] = {}
        self._resave: set[PeriodKey] = set()
        # Balances carried into periods that have not been loaded yet;
        # an entry is dropped when its period loads
        self._carried: dict[PeriodKey, Decimal] = {}
        self._active: Optional[PeriodKey] = None

        self._logger = structlog.get_logger(__name__)

    # =========================================================================
    # PERIODS
    # =========================================================================

    @property
    def active_period(self) -> Optional[PeriodKey]:
        return self._active

    @property
    def settings(self) -> LedgerSettings:
        return self._settings

    def _new_record(self) -> PeriodRecord:
        return PeriodRecord(columns=schema_ops.default_schema(self._settings))

    def _status_for(self, period_key: PeriodKey) -> PeriodStatus:
        if period_key not in self._status:
            self._status[period_key] = PeriodStatus()
        return self._status[period_key]

    def _peek(self, period_key: PeriodKey) -> PeriodRecord:
        """
        The period's record or, for a period never opened, a transient
        default record holding the balance carried into it.
        """
        if period_key in self._store:
            return self._store.get(period_key)
        record = self._new_record()
        if period_key in self._carried:
            record.metadata.opening_balance = self._carried[period_key]
        return record

    def _loaded(self, period_key: PeriodKey) -> PeriodRecord:
        if not self.is_loaded(period_key):
            raise PeriodNotLoadedError(period_key)
        return self._store.get(period_key)

    def is_loaded(self, period_key: PeriodKey) -> bool:
        return period_key in self._store

    @property
    def loaded_periods(self) -> list[PeriodKey]:
        """Periods held in memory, oldest first."""
        return self._store.keys()

    async def open_period(self, period_key: PeriodKey) -> PeriodRecord:
        """
        Make period_key the active period.

        On the first visit the record is loaded from storage; when nothing
        is stored, a default record is created and scheduled for saving.
        Either way the period's closing balance is then carried forward.

        Raises:
            StorageError: If loading fails. The period stays unvisited and
                no other period is affected.
        """
        if not self.is_loaded(period_key):
            await self._load(period_key)

        if self._active != period_key:
            self._logger.info(
                "period_opened",
                period_key=str(period_key),
                previous=str(self._active) if self._active else None,
            )
        self._active = period_key
        self.carry_forward(period_key)
        await self._audit.flush()
        return self._store.get(period_key)

    async def _load(self, period_key: PeriodKey) -> None:
        try:
            record = await self._storage.load(period_key)
        except Exception as e:
            await self._audit.log(AuditEventBuilder.load_failed(str(period_key), str(e)))
            raise

        created = record is None
        if created:
            record = self._new_record()
        if period_key in self._carried:
            record.metadata.opening_balance = self._carried.pop(period_key)

        recompute_balances(record.entries, record.metadata.opening_balance)
        self._store.put(period_key, record)

        status = self._status_for(period_key)
        status.state = PeriodState.CLEAN
        self._audit.record(AuditEventBuilder.period_loaded(
            str(period_key), len(record.entries), created
        ))

        if created:
            # Persist the default schema and metadata
            self._mark_dirty(period_key)

    # =========================================================================
    # CARRY-FORWARD
    # =========================================================================

    def carry_forward(self, period_key: PeriodKey) -> Decimal:
        """
        Write period_key's ending balance as the next period's opening balance.

        A next period that is loaded gets its balances recomputed and the
        change cascades onward; one that is not loaded yet keeps the amount
        until its first load. This is not a user edit: the target is never
        marked dirty. Writing the same balance twice changes nothing.

        Returns the carried amount.
        """
        record = self._peek(period_key)
        amount = ending_balance(record.entries, record.metadata.opening_balance)
        self._write_carried_balance(period_key, period_key.next(), amount)
        return amount

    def _write_carried_balance(
        self,
        source: PeriodKey,
        target: PeriodKey,
        amount: Decimal,
    ) -> None:
        if not self.is_loaded(target):
            if self._carried.get(target) == amount:
                return
            self._carried[target] = amount
            self._audit.record(AuditEventBuilder.balance_carried_forward(
                str(source), str(target), str(amount)
            ))
            return

        record = self._store.get(target)
        if record.metadata.opening_balance == amount:
            return
        record.metadata.opening_balance = amount
        recompute_balances(record.entries, amount)
        self._audit.record(AuditEventBuilder.balance_carried_forward(
            str(source), str(target), str(amount)
        ))
        self.carry_forward(target)

    # =========================================================================
    # COLUMN SCHEMA
    # =========================================================================

    async def get_schema(self, period_key: PeriodKey) -> ColumnSchema:
        """
        The period's columns.

        A period not loaded yet is loaded first (without becoming the
        active period). When nothing is stored for it, the default schema
        is created and scheduled for saving.
        """
        if not self.is_loaded(period_key):
            await self._load(period_key)
            self.carry_forward(period_key)
            await self._audit.flush()
        return self._store.get(period_key).columns

    def add_account(self, period_key: PeriodKey, kind: AccountKind, label: str) -> bool:
        """
        Add a sub-account column.

        Silently does nothing (returns False) once the kind already has
        max_accounts_per_kind columns, or when the label is already there.
        """
        kind = AccountKind(kind)
        columns = self._loaded(period_key).columns
        if len(columns.accounts(kind)) >= self._settings.max_accounts_per_kind:
            self._logger.debug(
                "column_cap_reached",
                period_key=str(period_key),
                kind=kind.value,
                limit=self._settings.max_accounts_per_kind,
            )
            return False
        if not schema_ops.add_account(columns, kind, label):
            return False
        self._schema_changed(period_key, "added", kind, label.strip())
        return True

    def rename_account(
        self,
        period_key: PeriodKey,
        kind: AccountKind,
        index: int,
        label: str,
    ) -> bool:
        kind = AccountKind(kind)
        columns = self._loaded(period_key).columns
        if not schema_ops.rename_account(columns, kind, index, label):
            return False
        self._schema_changed(period_key, "renamed", kind, label.strip())
        return True

    def remove_account(self, period_key: PeriodKey, kind: AccountKind, index: int) -> str:
        kind = AccountKind(kind)
        label = schema_ops.remove_account(self._loaded(period_key).columns, kind, index)
        self._schema_changed(period_key, "removed", kind, label)
        return label

    def _schema_changed(self, period_key: PeriodKey, action: str, kind: AccountKind, label: str) -> None:
        self._mark_dirty(period_key)
        self._audit.record(AuditEventBuilder.schema_changed(
            str(period_key), action, kind.value, label
        ))

    # =========================================================================
    # ENTRIES
    # =========================================================================

    def entries(self, period_key: PeriodKey) -> list[LedgerEntry]:
        """The period's entries in append order, balances up to date."""
        if not self.is_loaded(period_key):
            return []
        return self._store.list_entries(period_key)

    def append_entry(self, period_key: PeriodKey, draft: EntryDraft) -> ValidationResult:
        """
        Append a draft to the period.

        Returns the validation result. A rejected draft changes nothing.
        """
        record = self._loaded(period_key)
        result = self._store.append(period_key, draft)
        if not result.is_valid:
            self._audit.record(AuditEventBuilder.entry_rejected(
                str(period_key), result.missing_fields
            ))
            return result

        self._entries_changed(period_key)
        self._audit.record(AuditEventBuilder.entry_appended(
            str(period_key), len(record.entries) - 1, draft.reference
        ))
        return result

    def remove_entry(self, period_key: PeriodKey, index: int) -> LedgerEntry:
        """Remove and return the entry at index. Raises IndexError."""
        self._loaded(period_key)
        entry = self._store.remove_at(period_key, index)
        self._entries_changed(period_key)
        return entry

    def withdraw_entry(self, period_key: PeriodKey, index: int) -> EntryDraft:
        """
        First half of editing an entry: take it out of the register and
        return it as a prefilled draft. append_entry() puts it back.
        """
        entry = self.remove_entry(period_key, index)
        self._audit.record(AuditEventBuilder.entry_withdrawn(
            str(period_key), index, entry.reference
        ))
        return entry.to_draft()

    def _entries_changed(self, period_key: PeriodKey) -> None:
        record = self._store.get(period_key)
        recompute_balances(record.entries, record.metadata.opening_balance)
        self.carry_forward(period_key)
        self._mark_dirty(period_key)

    # =========================================================================
    # METADATA
    # =========================================================================

    def update_metadata(
        self,
        period_key: PeriodKey,
        fund: Optional[str] = None,
        sheet_no: Optional[str] = None,
        opening_balance: Optional[Any] = None,
    ) -> bool:
        """
        Explicit user edit of the period header.

        Arguments left as None are not changed. Returns True if anything
        changed. A new opening balance recomputes the register and is
        carried forward.
        """
        metadata = self._loaded(period_key).metadata
        changes: dict[str, Any] = {}

        if fund is not None and fund.strip() != metadata.fund:
            metadata.fund = fund.strip()
            changes["fund"] = metadata.fund
        if sheet_no is not None and sheet_no.strip() != metadata.sheet_no:
            metadata.sheet_no = sheet_no.strip()
            changes["sheet_no"] = metadata.sheet_no
        if opening_balance is not None:
            amount = coerce_amount(opening_balance)
            if amount != metadata.opening_balance:
                metadata.opening_balance = amount
                changes["opening_balance"] = amount

        if not changes:
            return False

        if "opening_balance" in changes:
            self._entries_changed(period_key)
        else:
            self._mark_dirty(period_key)
        self._audit.record(AuditEventBuilder.metadata_updated(str(period_key), changes))
        return True

    # =========================================================================
    # DERIVED VIEWS
    # =========================================================================

    def totals(self, period_key: PeriodKey) -> LedgerTotals:
        record = self._peek(period_key)
        return compute_totals(record.columns, record.entries, record.metadata.opening_balance)

    def snapshot(self, period_key: PeriodKey) -> ExportSnapshot:
        """Pre-formatted export view of the period. No I/O."""
        return build_export_snapshot(
            period_key,
            self._peek(period_key),
            max_columns=self._settings.max_accounts_per_kind,
        )

    # =========================================================================
    # SAVING
    # =========================================================================

    def status(self, period_key: PeriodKey) -> PeriodStatus:
        return self._status.get(period_key, PeriodStatus()).model_copy()

    def has_pending_autosave(self, period_key: PeriodKey) -> bool:
        return period_key in self._timers

    def _mark_dirty(self, period_key: PeriodKey) -> None:
        status = self._status_for(period_key)
        if status.state == PeriodState.SAVING:
            # Saved again once the in-flight save completes
            self._resave.add(period_key)
            return
        status.state = PeriodState.DIRTY
        self._schedule_autosave(period_key)

    def _schedule_autosave(self, period_key: PeriodKey) -> None:
        previous = self._timers.pop(period_key, None)
        if previous is not None:
            previous.cancel()

        async def autosave() -> None:
            self._timers.pop(period_key, None)
            await self.save_period(period_key)

        self._timers[period_key] = self._scheduler.schedule(
            self._settings.autosave_delay_seconds, autosave
        )

    async def save_period(self, period_key: PeriodKey) -> bool:
        """
        Save the period's {schema, metadata, entries}.

        Returns True when the period is saved (or had nothing to save).
        Returns False when a save is already in flight (a follow-up save
        is queued) or when the save failed. A failure leaves the period
        dirty with status.last_error set; it is retried by the next
        autosave, not in a loop.
        """
        if not self.is_loaded(period_key):
            raise PeriodNotLoadedError(period_key)
        status = self._status_for(period_key)
        if status.state == PeriodState.SAVING:
            self._resave.add(period_key)
            self._logger.debug("save_already_in_flight", period_key=str(period_key))
            return False
        if status.state == PeriodState.CLEAN:
            return True

        timer = self._timers.pop(period_key, None)
        if timer is not None:
            timer.cancel()

        record = self._store.get(period_key).model_copy(deep=True)
        status.state = PeriodState.SAVING

        try:
            await self._storage.save(period_key, record)
        except Exception as e:
            status.state = PeriodState.DIRTY
            status.last_error = str(e)
            if period_key in self._resave:
                # An edit arrived during the failed save
                self._resave.discard(period_key)
                self._schedule_autosave(period_key)
            self._audit.record(AuditEventBuilder.save_failed(str(period_key), str(e)))
            await self._audit.flush()
            return False

        status.last_error = None
        status.last_saved_at = datetime.utcnow()
        self._audit.record(AuditEventBuilder.period_saved(str(period_key), len(record.entries)))

        if period_key in self._resave:
            self._resave.discard(period_key)
            status.state = PeriodState.DIRTY
            self._schedule_autosave(period_key)
        else:
            status.state = PeriodState.CLEAN

        await self._audit.flush()
        return True

    async def save_all(self) -> dict[str, bool]:
        """Save every period with unsaved changes (e.g. before shutdown)."""
        results = {}
        for period_key, status in list(self._status.items()):
            if status.state == PeriodState.DIRTY:
                results[str(period_key)] = await self.save_period(period_key)
        return results

    def close(self) -> None:
        """Cancel pending autosaves. Unsaved changes stay unsaved."""
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
