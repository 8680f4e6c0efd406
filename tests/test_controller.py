"""
Tests for the ledger controller: periods, carry-forward and saving.

Autosaves are driven by ManualSaveScheduler, so nothing here waits on
the wall clock.
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from rcb.audit import AuditLogger
from rcb.ledger.controller import LedgerController, PeriodNotLoadedError
from rcb.models.audit import AuditEventType
from rcb.models.ledger import (
    AccountKind,
    EntryDraft,
    PeriodKey,
    PeriodState,
    Quarter,
)
from rcb.services.storage import InMemoryPeriodStorage, StorageError

from conftest import (
    BlockingFailingPeriodStorage,
    BlockingPeriodStorage,
    FailingPeriodStorage,
    ManualSaveScheduler,
)


def key(value: str) -> PeriodKey:
    return PeriodKey.parse(value)


class TestOpeningPeriods:
    """Tests for first visits and defaults."""

    @pytest.mark.asyncio
    async def test_new_period_gets_defaults(self, controller, q1):
        record = await controller.open_period(q1)

        assert controller.active_period == q1
        assert record.entries == []
        assert record.columns.mooe == ["Travelling Expenses", "Maintenance/Other Operating"]
        assert record.columns.co == ["Office Equipment"]
        assert record.columns.withholding == ["Type 1", "Type 2"]
        assert record.metadata.opening_balance == 0

    @pytest.mark.asyncio
    async def test_created_period_is_scheduled_for_saving(self, controller, scheduler, q1):
        await controller.open_period(q1)

        assert controller.status(q1).state == PeriodState.DIRTY
        assert controller.has_pending_autosave(q1)
        assert len(scheduler.active) == 1
        assert scheduler.active[0].delay == 2.0

    @pytest.mark.asyncio
    async def test_stored_period_loads_clean(self, storage, scheduler, ledger_settings, q1, draft):
        first = LedgerController(storage=storage, scheduler=scheduler, settings=ledger_settings)
        await first.open_period(q1)
        first.update_metadata(q1, fund="SK Fund", opening_balance="1,000")
        first.append_entry(q1, draft(deposit=500))
        assert await first.save_period(q1) is True

        second = LedgerController(
            storage=storage, scheduler=ManualSaveScheduler(), settings=ledger_settings
        )
        record = await second.open_period(q1)

        assert second.status(q1).state == PeriodState.CLEAN
        assert record.metadata.fund == "SK Fund"
        assert record.metadata.opening_balance == Decimal("1000")
        assert [e.balance for e in record.entries] == [Decimal("1500")]

    @pytest.mark.asyncio
    async def test_reopening_does_not_reload(self, controller, storage, q1, draft):
        await controller.open_period(q1)
        controller.append_entry(q1, draft())
        await controller.open_period(key("2024-Q2"))
        record = await controller.open_period(q1)
        assert len(record.entries) == 1
        assert controller.active_period == q1

    @pytest.mark.asyncio
    async def test_load_failure_leaves_period_unvisited(self, scheduler, ledger_settings, q1):
        class BrokenStorage(InMemoryPeriodStorage):
            async def load(self, period_key):
                raise StorageError("sheet unavailable")

        controller = LedgerController(
            storage=BrokenStorage(), scheduler=scheduler, settings=ledger_settings
        )
        with pytest.raises(StorageError):
            await controller.open_period(q1)

        assert not controller.is_loaded(q1)
        assert controller.active_period is None
        assert scheduler.handles == []

    @pytest.mark.asyncio
    async def test_edits_need_an_open_period(self, controller, q1, draft):
        with pytest.raises(PeriodNotLoadedError):
            controller.append_entry(q1, draft())
        with pytest.raises(PeriodNotLoadedError):
            controller.add_account(q1, AccountKind.MOOE, "Supplies")
        with pytest.raises(PeriodNotLoadedError):
            await controller.save_period(q1)

    def test_reads_work_on_unvisited_periods(self, controller, q1):
        assert controller.entries(q1) == []
        assert controller.totals(q1).ending_balance == 0
        assert controller.snapshot(q1).co_columns == ["Office Equipment"]
        assert controller.status(q1).state == PeriodState.NOT_VISITED
        assert controller.loaded_periods == []

    @pytest.mark.asyncio
    async def test_get_schema_creates_and_saves_defaults(self, controller, storage, scheduler, q1):
        schema = await controller.get_schema(q1)

        assert schema.co == ["Office Equipment"]
        assert controller.is_loaded(q1)
        assert controller.active_period is None
        assert controller.status(q1).state == PeriodState.DIRTY

        await scheduler.run_pending()
        stored = await storage.load(q1)
        assert stored.columns.withholding == ["Type 1", "Type 2"]

    @pytest.mark.asyncio
    async def test_get_schema_returns_stored_columns(self, storage, ledger_settings, q1):
        seed = LedgerController(
            storage=storage, scheduler=ManualSaveScheduler(), settings=ledger_settings
        )
        await seed.open_period(q1)
        seed.add_account(q1, AccountKind.CO, "Laptop")
        await seed.save_period(q1)

        controller = LedgerController(
            storage=storage, scheduler=ManualSaveScheduler(), settings=ledger_settings
        )
        assert (await controller.get_schema(q1)).co == ["Office Equipment", "Laptop"]
        assert controller.status(q1).state == PeriodState.CLEAN

    @pytest.mark.asyncio
    async def test_only_loaded_periods_are_kept(self, controller, q1, draft):
        await controller.open_period(q1)
        controller.append_entry(q1, draft(deposit=10))
        controller.totals(key("2024-Q3"))
        controller.entries(key("2024-Q4"))

        assert controller.loaded_periods == [q1]
        assert controller.totals(key("2024-Q2")).opening_balance == Decimal("10")

        await controller.open_period(key("2024-Q2"))
        assert controller.loaded_periods == [q1, key("2024-Q2")]


class TestEntries:
    """Tests for appending, removing and re-editing entries."""

    @pytest.mark.asyncio
    async def test_running_balance_scenario(self, controller, q1, draft):
        await controller.open_period(q1)
        controller.update_metadata(q1, opening_balance=Decimal("1000"))

        assert controller.append_entry(q1, draft(deposit=500)).is_valid
        assert controller.append_entry(q1, draft(reference="DV-2", withdrawal=200)).is_valid

        balances = [e.balance for e in controller.entries(q1)]
        assert balances == [Decimal("1500"), Decimal("1300")]
        assert controller.totals(q1).ending_balance == Decimal("1300")

    @pytest.mark.asyncio
    async def test_rejected_draft_changes_nothing(self, controller, scheduler, q1, draft):
        await controller.open_period(q1)
        await controller.save_period(q1)

        result = controller.append_entry(q1, draft(payee="", date=None, deposit=100))

        assert not result.is_valid
        assert set(result.missing_fields) == {"payee", "date"}
        assert controller.entries(q1) == []
        assert controller.status(q1).state == PeriodState.CLEAN
        assert scheduler.active == []

    @pytest.mark.asyncio
    async def test_entries_keep_append_order(self, controller, q1, draft):
        await controller.open_period(q1)
        controller.append_entry(q1, draft(date=date(2024, 3, 1), reference="late"))
        controller.append_entry(q1, draft(date=date(2024, 1, 1), reference="early"))
        assert [e.reference for e in controller.entries(q1)] == ["late", "early"]

    @pytest.mark.asyncio
    async def test_withdraw_and_reappend(self, controller, q1, draft):
        await controller.open_period(q1)
        controller.append_entry(q1, draft(reference="A", deposit=100))
        controller.append_entry(q1, draft(reference="B", deposit=50))

        pulled = controller.withdraw_entry(q1, 0)
        assert isinstance(pulled, EntryDraft)
        assert pulled.reference == "A"
        assert [e.reference for e in controller.entries(q1)] == ["B"]
        assert controller.entries(q1)[0].balance == Decimal("50")

        pulled.deposit = Decimal("120")
        controller.append_entry(q1, pulled)
        assert [e.reference for e in controller.entries(q1)] == ["B", "A"]
        assert controller.totals(q1).ending_balance == Decimal("170")

    @pytest.mark.asyncio
    async def test_remove_bad_index(self, controller, q1):
        await controller.open_period(q1)
        with pytest.raises(IndexError):
            controller.remove_entry(q1, 0)

    @pytest.mark.asyncio
    async def test_entries_returns_a_copy(self, controller, q1, draft):
        await controller.open_period(q1)
        controller.append_entry(q1, draft())
        controller.entries(q1).clear()
        assert len(controller.entries(q1)) == 1

    @pytest.mark.asyncio
    async def test_long_reference_and_payee_are_accepted(self, controller, q1, draft):
        await controller.open_period(q1)
        result = controller.append_entry(q1, draft(reference="R" * 201, payee="P" * 300))

        assert result.is_valid
        assert controller.entries(q1)[0].reference == "R" * 201
        assert controller.entries(q1)[0].payee == "P" * 300


class TestSchema:
    """Tests for the sub-account column operations."""

    @pytest.mark.asyncio
    async def test_fourth_column_is_ignored(self, controller, q1):
        await controller.open_period(q1)

        assert controller.add_account(q1, AccountKind.MOOE, "Supplies") is True
        assert controller.add_account(q1, AccountKind.MOOE, "Fuel") is False
        assert (await controller.get_schema(q1)).mooe == [
            "Travelling Expenses",
            "Maintenance/Other Operating",
            "Supplies",
        ]

    @pytest.mark.asyncio
    async def test_blank_and_duplicate_labels_are_ignored(self, controller, q1):
        await controller.open_period(q1)
        assert controller.add_account(q1, AccountKind.CO, "  ") is False
        assert controller.add_account(q1, AccountKind.CO, "Office Equipment") is False
        assert (await controller.get_schema(q1)).co == ["Office Equipment"]

    @pytest.mark.asyncio
    async def test_rename(self, controller, q1):
        await controller.open_period(q1)
        assert controller.rename_account(q1, AccountKind.WITHHOLDING, 1, "EWT") is True
        assert controller.rename_account(q1, AccountKind.WITHHOLDING, 0, "EWT") is False
        assert (await controller.get_schema(q1)).withholding == ["Type 1", "EWT"]
        with pytest.raises(IndexError):
            controller.rename_account(q1, AccountKind.WITHHOLDING, 5, "X")

    @pytest.mark.asyncio
    async def test_removed_column_drops_out_of_totals(self, controller, q1, draft):
        await controller.open_period(q1)
        controller.append_entry(
            q1, draft(withdrawal=100, mooe={"Travelling Expenses": 100})
        )

        label = controller.remove_account(q1, AccountKind.MOOE, 0)
        assert label == "Travelling Expenses"
        assert "Travelling Expenses" not in controller.totals(q1).mooe
        # The amount stays on the entry
        assert controller.entries(q1)[0].mooe == {"Travelling Expenses": Decimal("100")}

        controller.add_account(q1, AccountKind.MOOE, "Travelling Expenses")
        assert controller.totals(q1).mooe["Travelling Expenses"] == Decimal("100")

    @pytest.mark.asyncio
    async def test_schema_is_per_period(self, controller, q1):
        await controller.open_period(q1)
        controller.add_account(q1, AccountKind.CO, "Laptop")
        assert (await controller.get_schema(key("2024-Q2"))).co == ["Office Equipment"]

    @pytest.mark.asyncio
    async def test_schema_change_marks_dirty(self, controller, q1):
        await controller.open_period(q1)
        await controller.save_period(q1)
        controller.add_account(q1, AccountKind.CO, "Laptop")
        assert controller.status(q1).state == PeriodState.DIRTY

    @pytest.mark.asyncio
    async def test_long_label_is_audited_without_error(self, audit_storage, ledger_settings, q1):
        controller = LedgerController(
            storage=InMemoryPeriodStorage(),
            scheduler=ManualSaveScheduler(),
            audit_logger=AuditLogger(audit_storage),
            settings=ledger_settings,
        )
        await controller.open_period(q1)
        await controller.save_period(q1)
        label = "L" * 490

        assert controller.add_account(q1, AccountKind.CO, label) is True
        assert (await controller.get_schema(q1)).co == ["Office Equipment", label]
        assert controller.status(q1).state == PeriodState.DIRTY
        assert controller.has_pending_autosave(q1)

        await controller.save_period(q1)
        events = await audit_storage.get_events_by_period("2024-Q1")
        assert AuditEventType.SCHEMA_CHANGED in [e.event_type for e in events]


class TestMetadata:

    @pytest.mark.asyncio
    async def test_update_fund_and_sheet(self, controller, q1):
        await controller.open_period(q1)
        await controller.save_period(q1)

        assert controller.update_metadata(q1, fund=" SK Fund ", sheet_no="7") is True
        record = await controller.open_period(q1)
        assert record.metadata.fund == "SK Fund"
        assert record.metadata.sheet_no == "7"
        assert controller.status(q1).state == PeriodState.DIRTY

    @pytest.mark.asyncio
    async def test_no_change_returns_false(self, controller, q1):
        await controller.open_period(q1)
        await controller.save_period(q1)
        assert controller.update_metadata(q1) is False
        assert controller.update_metadata(q1, opening_balance="0") is False
        assert controller.status(q1).state == PeriodState.CLEAN

    @pytest.mark.asyncio
    async def test_long_header_survives_reload(self, storage, ledger_settings, q1):
        fund = "Sangguniang Kabataan Fund " * 10
        controller = LedgerController(
            storage=storage, scheduler=ManualSaveScheduler(), settings=ledger_settings
        )
        await controller.open_period(q1)
        assert controller.update_metadata(q1, fund=fund, sheet_no="S" * 80) is True
        assert await controller.save_period(q1) is True

        reloaded = LedgerController(
            storage=storage, scheduler=ManualSaveScheduler(), settings=ledger_settings
        )
        record = await reloaded.open_period(q1)

        assert record.metadata.fund == fund.strip()
        assert record.metadata.sheet_no == "S" * 80
        assert reloaded.status(q1).state == PeriodState.CLEAN


class TestCarryForward:
    """Tests for the closing balance -> next opening balance link."""

    @pytest.mark.asyncio
    async def test_closing_balance_opens_next_quarter(self, controller, q1, draft):
        await controller.open_period(q1)
        controller.update_metadata(q1, opening_balance=1000)
        controller.append_entry(q1, draft(deposit=500))
        controller.append_entry(q1, draft(withdrawal=200))

        q2 = await controller.open_period(key("2024-Q2"))
        assert q2.metadata.opening_balance == Decimal("1300")
        assert controller.totals(key("2024-Q2")).ending_balance == Decimal("1300")

    @pytest.mark.asyncio
    async def test_carry_into_unvisited_period_survives_load(self, controller, storage, q1, draft):
        q2 = key("2024-Q2")
        # Something stored for Q2 with a stale opening balance
        seed = LedgerController(
            storage=storage, scheduler=ManualSaveScheduler(),
            settings=controller.settings,
        )
        await seed.open_period(q2)
        seed.update_metadata(q2, opening_balance=5)
        await seed.save_period(q2)

        await controller.open_period(q1)
        controller.append_entry(q1, draft(deposit=250))
        assert controller.totals(q2).opening_balance == Decimal("250")

        record = await controller.open_period(q2)
        assert record.metadata.opening_balance == Decimal("250")

    @pytest.mark.asyncio
    async def test_fourth_quarter_rolls_into_next_year(self, controller, draft):
        q4 = key("2024-Q4")
        await controller.open_period(q4)
        controller.append_entry(q4, draft(deposit=75))

        assert controller.totals(key("2025-Q1")).opening_balance == Decimal("75")

    @pytest.mark.asyncio
    async def test_change_cascades_through_loaded_periods(self, controller, q1, draft):
        q2, q3 = key("2024-Q2"), key("2024-Q3")
        await controller.open_period(q1)
        await controller.open_period(q2)
        controller.append_entry(q2, draft(deposit=100))
        assert controller.totals(q3).opening_balance == Decimal("100")

        controller.update_metadata(q1, opening_balance=500)

        assert controller.totals(q2).opening_balance == Decimal("500")
        assert controller.entries(q2)[0].balance == Decimal("600")
        assert controller.totals(q3).opening_balance == Decimal("600")

    @pytest.mark.asyncio
    async def test_carry_does_not_mark_target_dirty(self, controller, q1, draft):
        q2 = key("2024-Q2")
        await controller.open_period(q1)
        await controller.open_period(q2)
        await controller.save_period(q2)

        controller.append_entry(q1, draft(deposit=10))

        assert controller.totals(q2).opening_balance == Decimal("10")
        assert controller.status(q2).state == PeriodState.CLEAN

    @pytest.mark.asyncio
    async def test_carry_is_idempotent(self, controller, audit_storage, q1, draft):
        await controller.open_period(q1)
        controller.append_entry(q1, draft(deposit=40))
        await controller.save_period(q1)

        before = await audit_storage.get_events_by_period("2024-Q2")
        assert controller.carry_forward(q1) == Decimal("40")
        assert controller.carry_forward(q1) == Decimal("40")
        await controller.open_period(q1)
        after = await audit_storage.get_events_by_period("2024-Q2")

        assert controller.totals(key("2024-Q2")).opening_balance == Decimal("40")
        assert len(after) == len(before)

    @pytest.mark.asyncio
    async def test_other_periods_are_untouched(self, controller, q1, draft):
        q3 = key("2024-Q3")
        await controller.open_period(q3)
        controller.update_metadata(q3, opening_balance=900)

        await controller.open_period(q1)
        controller.append_entry(q1, draft(deposit=5))

        assert controller.totals(q3).opening_balance == Decimal("900")


class TestSaving:
    """Tests for the dirty/saving state machine and debounced saves."""

    @pytest.mark.asyncio
    async def test_burst_of_edits_saves_once(self, controller, storage, scheduler, q1, draft):
        await controller.open_period(q1)
        for n in range(5):
            controller.append_entry(q1, draft(reference=f"DV-{n}", deposit=10))

        assert len(scheduler.active) == 1
        assert storage.save_count == 0

        assert await scheduler.run_pending() == 1
        assert storage.save_count == 1
        assert controller.status(q1).state == PeriodState.CLEAN
        assert not controller.has_pending_autosave(q1)

        stored = await storage.load(q1)
        assert len(stored.entries) == 5

    @pytest.mark.asyncio
    async def test_explicit_save_cancels_autosave(self, controller, storage, scheduler, q1):
        await controller.open_period(q1)
        assert await controller.save_period(q1) is True
        assert scheduler.active == []
        assert storage.save_count == 1

    @pytest.mark.asyncio
    async def test_clean_period_is_not_saved_again(self, controller, storage, q1):
        await controller.open_period(q1)
        await controller.save_period(q1)
        assert await controller.save_period(q1) is True
        assert storage.save_count == 1

    @pytest.mark.asyncio
    async def test_save_failure_keeps_changes(self, scheduler, ledger_settings, audit_storage, q1, draft):
        storage = FailingPeriodStorage()
        controller = LedgerController(
            storage=storage,
            scheduler=scheduler,
            audit_logger=AuditLogger(audit_storage),
            settings=ledger_settings,
        )
        await controller.open_period(q1)
        controller.append_entry(q1, draft(deposit=10))

        assert await controller.save_period(q1) is False
        status = controller.status(q1)
        assert status.state == PeriodState.DIRTY
        assert status.last_error == "spreadsheet quota exceeded"
        assert len(controller.entries(q1)) == 1

        events = await audit_storage.get_events_by_period("2024-Q1")
        assert AuditEventType.SAVE_FAILED in [e.event_type for e in events]

        storage.failing = False
        controller.append_entry(q1, draft(reference="DV-2"))
        assert await scheduler.run_pending() == 1
        status = controller.status(q1)
        assert status.state == PeriodState.CLEAN
        assert status.last_error is None
        assert status.last_saved_at is not None
        assert len((await storage.load(q1)).entries) == 2

    @pytest.mark.asyncio
    async def test_edit_during_save_is_saved_afterwards(self, scheduler, ledger_settings, q1, draft):
        storage = BlockingPeriodStorage()
        controller = LedgerController(
            storage=storage, scheduler=scheduler, settings=ledger_settings
        )
        await controller.open_period(q1)

        task = asyncio.create_task(controller.save_period(q1))
        await asyncio.sleep(0)
        assert controller.status(q1).state == PeriodState.SAVING

        controller.append_entry(q1, draft(deposit=10))
        assert controller.status(q1).state == PeriodState.SAVING
        assert await controller.save_period(q1) is False

        storage.release.set()
        assert await task is True

        # The in-flight save had the record as it was before the edit
        assert storage.saved_records[0].entries == []
        assert controller.status(q1).state == PeriodState.DIRTY
        assert len(scheduler.active) == 1

        await scheduler.run_pending()
        assert len(storage.saved_records[1].entries) == 1
        assert controller.status(q1).state == PeriodState.CLEAN

    @pytest.mark.asyncio
    async def test_edit_during_failed_save_is_rescheduled(self, scheduler, ledger_settings, q1, draft):
        storage = BlockingFailingPeriodStorage()
        controller = LedgerController(
            storage=storage, scheduler=scheduler, settings=ledger_settings
        )
        await controller.open_period(q1)

        task = asyncio.create_task(controller.save_period(q1))
        await asyncio.sleep(0)
        controller.append_entry(q1, draft(deposit=10))

        storage.release.set()
        assert await task is False

        status = controller.status(q1)
        assert status.state == PeriodState.DIRTY
        assert status.last_error == "spreadsheet quota exceeded"
        assert controller.has_pending_autosave(q1)
        assert len(scheduler.active) == 1

    @pytest.mark.asyncio
    async def test_save_all(self, controller, storage, q1):
        q2 = key("2024-Q2")
        await controller.open_period(q1)
        await controller.open_period(q2)

        results = await controller.save_all()

        assert results == {"2024-Q1": True, "2024-Q2": True}
        assert await storage.list_periods() == [q1, q2]

    @pytest.mark.asyncio
    async def test_close_cancels_autosaves(self, controller, scheduler, q1):
        await controller.open_period(q1)
        controller.close()
        assert scheduler.active == []
        assert controller.status(q1).state == PeriodState.DIRTY


class TestSnapshot:

    @pytest.mark.asyncio
    async def test_snapshot_of_open_period(self, controller, q1, draft):
        await controller.open_period(q1)
        controller.update_metadata(q1, fund="SK Fund", opening_balance=1000)
        controller.append_entry(q1, draft(deposit=500))

        snapshot = controller.snapshot(q1)

        assert snapshot.quarter == "1st"
        assert snapshot.fund == "SK Fund"
        assert snapshot.balance_brought_forward == "1,000.00"
        assert snapshot.entries[0].balance == "1,500.00"
        assert snapshot.totals_quarter.balance == "1,500.00"


@pytest.mark.asyncio
async def test_default_scheduler_autosave_can_be_cancelled(storage, ledger_settings):
    controller = LedgerController(storage=storage, settings=ledger_settings)
    q1 = PeriodKey(year=2024, quarter=Quarter.Q1)
    await controller.open_period(q1)
    controller.close()
    assert controller.status(q1).state == PeriodState.DIRTY


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
