"""
Ledger Entry Store

The period-keyed store of register records. One PeriodRecord per
PeriodKey; entries kept in the order they were appended, never re-sorted
by date.

Entries are never edited in place. Editing is remove_at() followed by an
append() of the prefilled draft, so the sequence the balance engine sees
is always a plain list of committed entries.
"""

from typing import Optional

from rcb.models.ledger import (
    EntryDraft,
    LedgerEntry,
    PeriodKey,
    PeriodRecord,
    ValidationResult,
)
from rcb.validation import EntryValidator


class LedgerEntryStore:
    """In-memory records of the periods that have been loaded."""

    def __init__(self, validator: Optional[EntryValidator] = None):
        self._records: dict[PeriodKey, PeriodRecord] = {}
        self._validator = validator or EntryValidator()

    def __contains__(self, period_key: PeriodKey) -> bool:
        return period_key in self._records

    def keys(self) -> list[PeriodKey]:
        return sorted(self._records)

    def get(self, period_key: PeriodKey) -> PeriodRecord:
        """Raises KeyError if the period is not in the store."""
        return self._records[period_key]

    def put(self, period_key: PeriodKey, record: PeriodRecord) -> None:
        self._records[period_key] = record

    def append(self, period_key: PeriodKey, draft: EntryDraft) -> ValidationResult:
        """
        Append a draft to the end of the period's entries.

        A draft without date, reference or payee is rejected: nothing is
        appended and the result lists what is missing.
        """
        result = self._validator.validate(period_key, draft)
        if result.is_valid:
            self.get(period_key).entries.append(LedgerEntry.from_draft(draft))
        return result

    def remove_at(self, period_key: PeriodKey, index: int) -> LedgerEntry:
        """Remove and return the entry at index. Raises IndexError."""
        return self.get(period_key).entries.pop(index)

    def list_entries(self, period_key: PeriodKey) -> list[LedgerEntry]:
        """The period's entries in append order (a copy of the sequence)."""
        return list(self.get(period_key).entries)
