"""
Tests for audit logging, entry validation and configuration.
"""

import pytest

from rcb.audit import AuditLogger
from rcb.config import LedgerSettings, get_settings, validate_all_settings
from rcb.ledger import schema as schema_ops
from rcb.models.audit import AuditEventBuilder, AuditEventType
from rcb.models.ledger import AccountKind, PeriodKey
from rcb.services.storage import InMemoryAuditStorage
from rcb.validation import EntryValidator

from conftest import make_draft


class BrokenAuditStorage(InMemoryAuditStorage):

    async def append_event(self, event):
        raise RuntimeError("audit sheet is read-only")


class TestAuditLogger:
    """Tests for local logging and queued persistence."""

    @pytest.mark.asyncio
    async def test_record_then_flush(self, audit_storage):
        audit = AuditLogger(audit_storage)
        audit.record(AuditEventBuilder.entry_appended("2024-Q1", 0, "DV-1"))
        audit.record(AuditEventBuilder.period_saved("2024-Q1", 1))

        assert audit.pending_count == 2
        assert await audit.flush() == 2
        assert audit.pending_count == 0

        events = await audit_storage.get_events_by_period("2024-Q1")
        assert [e.event_type for e in events] == [
            AuditEventType.ENTRY_APPENDED,
            AuditEventType.PERIOD_SAVED,
        ]

    @pytest.mark.asyncio
    async def test_log_writes_immediately(self, audit_storage):
        audit = AuditLogger(audit_storage)
        assert await audit.log(AuditEventBuilder.load_failed("2024-Q1", "timeout")) is True
        assert len(await audit_storage.get_recent_events()) == 1

    @pytest.mark.asyncio
    async def test_storage_failure_does_not_raise(self):
        audit = AuditLogger(BrokenAuditStorage())
        assert await audit.log(AuditEventBuilder.period_saved("2024-Q1", 0)) is False

        audit.record(AuditEventBuilder.period_saved("2024-Q1", 0))
        assert await audit.flush() == 0
        assert audit.pending_count == 0

    @pytest.mark.asyncio
    async def test_without_storage_only_logs_locally(self):
        audit = AuditLogger()
        audit.record(AuditEventBuilder.period_saved("2024-Q1", 0))
        assert audit.pending_count == 0
        assert await audit.log(AuditEventBuilder.period_saved("2024-Q1", 0)) is True
        assert await audit.flush() == 0


class TestEntryValidator:

    def test_complete_draft_is_valid(self):
        result = EntryValidator().validate(PeriodKey.parse("2024-Q1"), make_draft())
        assert result.is_valid
        assert result.issues == []
        assert result.period_key == "2024-Q1"

    def test_missing_fields_are_listed(self):
        draft = make_draft(date=None, reference="   ", payee="")
        result = EntryValidator().validate(PeriodKey.parse("2024-Q1"), draft)
        assert not result.is_valid
        assert result.missing_fields == ["date", "reference", "payee"]

    def test_amounts_are_never_rejected(self):
        draft = make_draft(deposit="oops", withdrawal=-50)
        assert EntryValidator().validate(PeriodKey.parse("2024-Q1"), draft).is_valid

    def test_summary(self):
        validator = EntryValidator()
        result = validator.validate(PeriodKey.parse("2024-Q1"), make_draft(payee=""))
        assert validator.get_user_friendly_summary(result) == "Please fill in: Name of payee."


class TestSchemaOperations:
    """The schema functions themselves do not cap columns."""

    def test_add_beyond_print_limit(self, ledger_settings):
        schema = schema_ops.default_schema(ledger_settings)
        for label in ("A", "B", "C"):
            assert schema_ops.add_account(schema, AccountKind.CO, label)
        assert len(schema.co) == 4

    def test_remove_returns_label(self):
        schema = schema_ops.default_schema()
        assert schema_ops.remove_account(schema, AccountKind.WITHHOLDING, 0) == "Type 1"
        assert schema.withholding == ["Type 2"]


class TestSettings:

    def test_ledger_defaults(self, monkeypatch):
        monkeypatch.delenv("RCB_MAX_ACCOUNTS_PER_KIND", raising=False)
        settings = LedgerSettings()
        assert settings.max_accounts_per_kind == 3
        assert settings.default_co_accounts == ["Office Equipment"]

    def test_ledger_settings_from_environment(self, monkeypatch):
        monkeypatch.setenv("RCB_MAX_ACCOUNTS_PER_KIND", "5")
        monkeypatch.setenv("RCB_AUTOSAVE_DELAY_SECONDS", "0.5")
        settings = LedgerSettings()
        assert settings.max_accounts_per_kind == 5
        assert settings.autosave_delay_seconds == 0.5

    def test_validate_all_settings_reports_missing_google_config(self, monkeypatch):
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)
        get_settings.cache_clear()

        results = validate_all_settings()

        assert results["ledger"] is True
        assert results["app"] is True
        assert results["google_sheets"] is False
        assert "google_sheets_error" in results


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
