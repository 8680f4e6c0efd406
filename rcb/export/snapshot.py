"""
Document Export Snapshot

Builds everything the external document template needs for one quarter's
Register of Cash in Bank, with every amount already formatted.

The snapshot performs NO file or network I/O: it is a pure function of
(period key, record). Rendering it into a document is someone else's job.

Formatting rules of the printed register:
- amounts are thousands-grouped with two decimals: "1,234.50"
- an amount that is exactly zero prints blank
- the "brought forward" row always prints "0.00" for zero amounts
- each family of sub-account columns has at most 3 columns on paper
"""

from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field

from rcb.ledger.aggregation import compute_totals
from rcb.models.ledger import (
    ZERO,
    AccountKind,
    LedgerEntry,
    LedgerTotals,
    PeriodKey,
    PeriodRecord,
    Quarter,
    coerce_amount,
)


DEFAULT_MAX_COLUMNS = 3

QUARTER_ORDINALS = {
    Quarter.Q1: "1st",
    Quarter.Q2: "2nd",
    Quarter.Q3: "3rd",
    Quarter.Q4: "4th",
}

QUARTER_MONTHS = {
    Quarter.Q1: "January - March",
    Quarter.Q2: "April - June",
    Quarter.Q3: "July - September",
    Quarter.Q4: "October - December",
}


def format_amount(value: Any, blank_zero: bool = True) -> str:
    """
    Format an amount the way the register prints it.

    >>> format_amount(Decimal("1234.5"))
    '1,234.50'
    >>> format_amount(0)
    ''
    >>> format_amount(0, blank_zero=False)
    '0.00'
    """
    amount = coerce_amount(value)
    if blank_zero and amount == ZERO:
        return ""
    return f"{amount:,.2f}"


# =============================================================================
# SNAPSHOT MODELS
# =============================================================================

class ExportRow(BaseModel):
    """One register line, every field a display string."""

    date: str
    reference: str
    payee: str
    particulars: str
    deposit: str
    withdrawal: str
    balance: str
    adv_officials: str
    adv_treasurer: str
    others: str
    mooe_values: list[str] = Field(default_factory=list)
    co_values: list[str] = Field(default_factory=list)
    withholding_values: list[str] = Field(default_factory=list)

    def values(self, kind: AccountKind) -> list[str]:
        return getattr(self, f"{AccountKind(kind).value}_values")


class ExportTotalsRow(BaseModel):
    """A totals line (brought forward, quarter totals or carried forward)."""

    deposit: str
    withdrawal: str
    balance: str
    adv_officials: str
    adv_treasurer: str
    others: str
    mooe_totals: list[str] = Field(default_factory=list)
    co_totals: list[str] = Field(default_factory=list)
    withholding_totals: list[str] = Field(default_factory=list)

    def values(self, kind: AccountKind) -> list[str]:
        return getattr(self, f"{AccountKind(kind).value}_totals")


class ExportSnapshot(BaseModel):
    """Pre-formatted view of one period for the document template."""

    period_key: str
    calendar_year: str
    quarter_code: str
    quarter: str
    quarter_months: str
    fund: str
    sheet_no: str

    max_columns: int = DEFAULT_MAX_COLUMNS
    mooe_columns: list[str] = Field(default_factory=list)
    co_columns: list[str] = Field(default_factory=list)
    withholding_columns: list[str] = Field(default_factory=list)

    balance_brought_forward: str
    totals_brought_forward: ExportTotalsRow
    entries: list[ExportRow] = Field(default_factory=list)
    totals_quarter: ExportTotalsRow
    totals_carried_forward: ExportTotalsRow

    def columns(self, kind: AccountKind) -> list[str]:
        return getattr(self, f"{AccountKind(kind).value}_columns")

    def has_column(self, kind: AccountKind, number: int) -> bool:
        """Is the 1-based column `number` of this kind printed?"""
        return len(self.columns(kind)) >= number

    def to_template_context(self) -> dict[str, Any]:
        """
        Flatten into the keys the register template uses:
        mooe_col_1, has_mooe_col_1, mooe_val_1, mooe_total_1, ...
        """
        context: dict[str, Any] = {
            "period_key": self.period_key,
            "calendar_year": self.calendar_year,
            "quarter_code": self.quarter_code,
            "quarter": self.quarter,
            "quarter_months": self.quarter_months,
            "fund": self.fund,
            "sheet_no": self.sheet_no,
            "balance_brought_forward": self.balance_brought_forward,
        }

        for kind in AccountKind:
            name = kind.value
            headers = self.columns(kind)
            context[f"{name}_colspan"] = len(headers)
            context[f"{name}_sub_columns"] = [
                {"header": header, "index": index, "type": name}
                for index, header in enumerate(headers)
            ]
            for n in range(1, self.max_columns + 1):
                context[f"{name}_col_{n}"] = headers[n - 1] if n <= len(headers) else ""
                context[f"has_{name}_col_{n}"] = self.has_column(kind, n)

        context["column_counts"] = {
            kind.value: len(self.columns(kind)) for kind in AccountKind
        }
        context["column_counts"]["total"] = sum(
            len(self.columns(kind)) for kind in AccountKind
        )

        context["entries"] = [self._row_context(row) for row in self.entries]
        context["totals_brought_forward"] = self._totals_context(
            self.totals_brought_forward, filler=format_amount(ZERO, blank_zero=False)
        )
        context["totals_quarter"] = self._totals_context(self.totals_quarter)
        context["totals_carried_forward"] = self._totals_context(self.totals_carried_forward)
        return context

    def _numbered(self, prefix: str, values: list[str], filler: str) -> dict[str, str]:
        return {
            f"{prefix}_{n}": values[n - 1] if n <= len(values) else filler
            for n in range(1, self.max_columns + 1)
        }

    def _row_context(self, row: ExportRow) -> dict[str, Any]:
        data = row.model_dump(exclude={"mooe_values", "co_values", "withholding_values"})
        for kind in AccountKind:
            values = row.values(kind)
            data[f"{kind.value}_values"] = [{"value": v} for v in values]
            data.update(self._numbered(f"{kind.value}_val", values, ""))
        return data

    def _totals_context(self, totals: ExportTotalsRow, filler: str = "") -> dict[str, Any]:
        data = totals.model_dump(exclude={"mooe_totals", "co_totals", "withholding_totals"})
        for kind in AccountKind:
            values = totals.values(kind)
            data[f"{kind.value}_totals"] = [{"value": v} for v in values]
            data.update(self._numbered(f"{kind.value}_total", values, filler))
        return data


# =============================================================================
# BUILDERS
# =============================================================================

def _entry_row(entry: LedgerEntry, headers: dict[str, list[str]]) -> ExportRow:
    return ExportRow(
        date=entry.date.isoformat(),
        reference=entry.reference,
        payee=entry.payee,
        particulars=entry.particulars,
        deposit=format_amount(entry.deposit),
        withdrawal=format_amount(entry.withdrawal),
        balance=format_amount(entry.balance),
        adv_officials=format_amount(entry.adv_officials),
        adv_treasurer=format_amount(entry.adv_treasurer),
        others=format_amount(entry.others),
        **{
            f"{kind.value}_values": [
                format_amount(entry.sub_accounts(kind).get(label))
                for label in headers[kind.value]
            ]
            for kind in AccountKind
        },
    )


def _totals_row(totals: LedgerTotals, headers: dict[str, list[str]]) -> ExportTotalsRow:
    return ExportTotalsRow(
        deposit=format_amount(totals.deposit),
        withdrawal=format_amount(totals.withdrawal),
        balance=format_amount(totals.ending_balance),
        adv_officials=format_amount(totals.adv_officials),
        adv_treasurer=format_amount(totals.adv_treasurer),
        others=format_amount(totals.others),
        **{
            f"{kind.value}_totals": [
                format_amount(totals.sub_accounts(kind).get(label))
                for label in headers[kind.value]
            ]
            for kind in AccountKind
        },
    )


def _brought_forward_row(opening: Decimal, headers: dict[str, list[str]]) -> ExportTotalsRow:
    zero = format_amount(ZERO, blank_zero=False)
    return ExportTotalsRow(
        deposit=zero,
        withdrawal=zero,
        balance=format_amount(opening, blank_zero=False),
        adv_officials=zero,
        adv_treasurer=zero,
        others=zero,
        **{
            f"{kind.value}_totals": [zero for _ in headers[kind.value]]
            for kind in AccountKind
        },
    )


def build_export_snapshot(
    period_key: PeriodKey,
    record: PeriodRecord,
    max_columns: int = DEFAULT_MAX_COLUMNS,
) -> ExportSnapshot:
    """
    Snapshot one period for export.

    Entry balances are taken as they are on the record, so callers pass a
    record whose balances the controller has already recomputed.
    """
    headers = {
        kind.value: record.columns.accounts(kind)[:max_columns]
        for kind in AccountKind
    }
    opening = record.metadata.opening_balance
    totals = compute_totals(record.columns, record.entries, opening)
    totals_row = _totals_row(totals, headers)

    return ExportSnapshot(
        period_key=str(period_key),
        calendar_year=str(period_key.year),
        quarter_code=period_key.quarter.value,
        quarter=QUARTER_ORDINALS[period_key.quarter],
        quarter_months=QUARTER_MONTHS[period_key.quarter],
        fund=record.metadata.fund,
        sheet_no=record.metadata.sheet_no,
        max_columns=max_columns,
        mooe_columns=headers[AccountKind.MOOE.value],
        co_columns=headers[AccountKind.CO.value],
        withholding_columns=headers[AccountKind.WITHHOLDING.value],
        balance_brought_forward=format_amount(opening, blank_zero=False),
        totals_brought_forward=_brought_forward_row(opening, headers),
        entries=[_entry_row(entry, headers) for entry in record.entries],
        totals_quarter=totals_row,
        totals_carried_forward=totals_row.model_copy(deep=True),
    )
