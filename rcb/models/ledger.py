"""
Core Data Models for the Register of Cash in Bank

These models define the strict schemas for everything the ledger engine
holds in memory, persists, and hands to the export step:
1. Period keys (fiscal year + quarter)
2. Column schemas (the dynamic sub-account columns of a period)
3. Ledger entries and the drafts they are edited through
4. Period metadata and the persisted {schema, metadata, entries} triple
5. Derived totals and per-period save status

DESIGN DECISION: Amounts are Decimal and every amount passes through
coerce_amount() on the way in. Malformed numeric input becomes 0, it never
raises. Arithmetic on the register must not fail because of a typo in a
form field.
"""

import datetime as dt
from decimal import Decimal, InvalidOperation
from enum import Enum
from functools import total_ordering
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
)


ZERO = Decimal("0")


def coerce_amount(value: Any) -> Decimal:
    """
    Convert any user-supplied amount to a finite Decimal.

    Accepts Decimal, int, float and strings with thousands separators
    ("1,500.50"). None, blanks, garbage, NaN and infinities all become 0.
    """
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)):
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            return ZERO
    elif isinstance(value, str):
        cleaned = value.replace(",", "").strip()
        if not cleaned:
            return ZERO
        try:
            amount = Decimal(cleaned)
        except InvalidOperation:
            return ZERO
    else:
        return ZERO

    if not amount.is_finite():
        return ZERO
    return amount


# =============================================================================
# ENUMS
# =============================================================================

class Quarter(str, Enum):
    """Fiscal quarters, in calendar order."""
    Q1 = "Q1"
    Q2 = "Q2"
    Q3 = "Q3"
    Q4 = "Q4"

    @property
    def number(self) -> int:
        return int(self.value[1])


class AccountKind(str, Enum):
    """
    The three families of dynamic sub-account columns on the register.
    """
    MOOE = "mooe"                # Maintenance and Other Operating Expenses
    CO = "co"                    # Capital Outlay
    WITHHOLDING = "withholding"  # Withholding tax types


class PeriodState(str, Enum):
    """
    View-level lifecycle of one period.

    not_visited -> clean -> dirty -> saving -> clean
    A failed save goes saving -> dirty.
    """
    NOT_VISITED = "not_visited"
    CLEAN = "clean"
    DIRTY = "dirty"
    SAVING = "saving"


# =============================================================================
# PERIOD KEY
# =============================================================================

@total_ordering
class PeriodKey(BaseModel):
    """
    Identifies one ledger instance: a fiscal year and a quarter.

    Immutable and hashable, so it can key the controller's period store.
    The string form "<year>-<quarter>" (e.g. "2024-Q3") is the only
    identifier used with the persistence gateway.
    """
    model_config = ConfigDict(frozen=True)

    year: int = Field(
        ...,
        ge=1,
        le=9999,
        description="Fiscal year"
    )
    quarter: Quarter = Field(
        ...,
        description="Quarter of the fiscal year"
    )

    @classmethod
    def parse(cls, value: str) -> "PeriodKey":
        """Parse a "<year>-<quarter>" string."""
        try:
            year, quarter = value.strip().split("-")
            return cls(year=int(year), quarter=Quarter(quarter.strip().upper()))
        except (AttributeError, ValueError) as e:
            raise ValueError(
                f"Invalid period key {value!r}, expected '<year>-Q<1-4>'"
            ) from e

    @property
    def ordinal(self) -> int:
        return self.year * 4 + self.quarter.number - 1

    def next(self) -> "PeriodKey":
        """The immediately succeeding period (Q4 rolls into Q1 of year+1)."""
        if self.quarter == Quarter.Q4:
            return PeriodKey(year=self.year + 1, quarter=Quarter.Q1)
        return PeriodKey(year=self.year, quarter=Quarter(f"Q{self.quarter.number + 1}"))

    def previous(self) -> "PeriodKey":
        if self.quarter == Quarter.Q1:
            return PeriodKey(year=self.year - 1, quarter=Quarter.Q4)
        return PeriodKey(year=self.year, quarter=Quarter(f"Q{self.quarter.number - 1}"))

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, PeriodKey):
            return NotImplemented
        return self.ordinal < other.ordinal

    def __str__(self) -> str:
        return f"{self.year}-{self.quarter.value}"


# =============================================================================
# COLUMN SCHEMA
# =============================================================================

class ColumnSchema(BaseModel):
    """
    The sub-account columns active for one period.

    Labels are distinct within each list. The per-kind cap is enforced by
    the controller, not here, so a stored schema is loaded as-is.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    mooe: list[str] = Field(
        default_factory=list,
        description="MOOE sub-account labels"
    )
    co: list[str] = Field(
        default_factory=list,
        description="Capital Outlay sub-account labels"
    )
    withholding: list[str] = Field(
        default_factory=list,
        description="Withholding tax type labels"
    )

    @field_validator("mooe", "co", "withholding", mode="before")
    @classmethod
    def distinct_labels(cls, v: Any) -> list[str]:
        """Drop blank and repeated labels, keeping first occurrences."""
        if not v:
            return []
        seen: list[str] = []
        for label in v:
            label = str(label).strip()
            if label and label not in seen:
                seen.append(label)
        return seen

    def accounts(self, kind: AccountKind) -> list[str]:
        return getattr(self, AccountKind(kind).value)


# =============================================================================
# ENTRIES
# =============================================================================

AMOUNT_FIELDS = ("deposit", "withdrawal", "adv_officials", "adv_treasurer", "others")


class EntryDraft(BaseModel):
    """
    An entry as the user edits it, before it joins the register.

    Nothing here is required: the store decides whether a draft can be
    appended. Editing an existing entry pulls it back into a draft.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    date: Optional[dt.date] = None
    reference: str = ""
    payee: str = ""
    particulars: str = ""

    deposit: Decimal = ZERO
    withdrawal: Decimal = ZERO

    mooe: dict[str, Decimal] = Field(default_factory=dict)
    co: dict[str, Decimal] = Field(default_factory=dict)
    adv_officials: Decimal = Field(
        default=ZERO,
        description="Advances to officials"
    )
    adv_treasurer: Decimal = Field(
        default=ZERO,
        description="Advances to treasurer"
    )
    others: Decimal = ZERO
    withholding: dict[str, Decimal] = Field(default_factory=dict)

    @field_validator("date", mode="before")
    @classmethod
    def blank_date_is_missing(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("reference", "payee", "particulars", mode="before")
    @classmethod
    def none_is_blank(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator(*AMOUNT_FIELDS, mode="before")
    @classmethod
    def coerce_amounts(cls, v: Any) -> Decimal:
        return coerce_amount(v)

    @field_validator("mooe", "co", "withholding", mode="before")
    @classmethod
    def coerce_sub_accounts(cls, v: Any) -> dict[str, Decimal]:
        if not isinstance(v, dict):
            return {}
        return {str(label): coerce_amount(amount) for label, amount in v.items()}

    def sub_accounts(self, kind: AccountKind) -> dict[str, Decimal]:
        return getattr(self, AccountKind(kind).value)


class LedgerEntry(EntryDraft):
    """
    One cash-affecting event on the register.

    balance is computed by the balance engine and is never taken from
    user input or from storage.
    """

    date: dt.date
    reference: str = Field(..., min_length=1)
    payee: str = Field(..., min_length=1)

    balance: Decimal = Field(
        default=ZERO,
        description="Running balance after this entry (computed)"
    )

    @field_validator("balance", mode="before")
    @classmethod
    def coerce_balance(cls, v: Any) -> Decimal:
        return coerce_amount(v)

    @classmethod
    def from_draft(cls, draft: EntryDraft) -> "LedgerEntry":
        return cls.model_validate(draft.model_dump())

    def to_draft(self) -> EntryDraft:
        return EntryDraft.model_validate(self.model_dump(exclude={"balance"}))


# =============================================================================
# PERIOD RECORD
# =============================================================================

class PeriodMetadata(BaseModel):
    """Header fields of one period's register."""
    model_config = ConfigDict(str_strip_whitespace=True)

    fund: str = Field(
        default="",
        description="Fund label printed on the register"
    )
    sheet_no: str = Field(
        default="",
        description="Sheet identifier"
    )
    opening_balance: Decimal = Field(
        default=ZERO,
        description="Balance brought forward from the previous period"
    )

    @field_validator("fund", "sheet_no", mode="before")
    @classmethod
    def none_is_blank(cls, v: Any) -> Any:
        return "" if v is None else v

    @field_validator("opening_balance", mode="before")
    @classmethod
    def coerce_opening(cls, v: Any) -> Decimal:
        return coerce_amount(v)


class PeriodRecord(BaseModel):
    """
    Everything one period owns: its schema, metadata and entries.

    This triple is the unit of persistence. Entry balances are derived
    and left out of the stored payload.
    """

    columns: ColumnSchema = Field(default_factory=ColumnSchema)
    metadata: PeriodMetadata = Field(default_factory=PeriodMetadata)
    entries: list[LedgerEntry] = Field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        """Serialize to plain JSON-compatible data for storage."""
        return {
            "schema": self.columns.model_dump(mode="json"),
            "metadata": self.metadata.model_dump(mode="json"),
            "entries": [
                entry.model_dump(mode="json", exclude={"balance"})
                for entry in self.entries
            ],
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "PeriodRecord":
        return cls(
            columns=ColumnSchema.model_validate(payload.get("schema") or {}),
            metadata=PeriodMetadata.model_validate(payload.get("metadata") or {}),
            entries=[
                LedgerEntry.model_validate(item)
                for item in payload.get("entries") or []
            ],
        )


# =============================================================================
# DERIVED MODELS
# =============================================================================

class LedgerTotals(BaseModel):
    """
    Totals of one period, recomputed from the current entries and schema.

    Never stored.
    """

    deposit: Decimal = ZERO
    withdrawal: Decimal = ZERO
    opening_balance: Decimal = ZERO
    ending_balance: Decimal = ZERO

    mooe: dict[str, Decimal] = Field(default_factory=dict)
    co: dict[str, Decimal] = Field(default_factory=dict)
    withholding: dict[str, Decimal] = Field(default_factory=dict)

    adv_officials: Decimal = ZERO
    adv_treasurer: Decimal = ZERO
    others: Decimal = ZERO

    def sub_accounts(self, kind: AccountKind) -> dict[str, Decimal]:
        return getattr(self, AccountKind(kind).value)


class PeriodStatus(BaseModel):
    """Save status of one period, for the caller's unsaved/error indicator."""

    state: PeriodState = PeriodState.NOT_VISITED
    last_error: Optional[str] = None
    last_saved_at: Optional[dt.datetime] = None

    @property
    def has_unsaved_changes(self) -> bool:
        return self.state in (PeriodState.DIRTY, PeriodState.SAVING)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        default="error",
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )


class ValidationResult(BaseModel):
    """Outcome of checking a draft before it is appended."""

    period_key: str
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def missing_fields(self) -> list[str]:
        return [issue.field for issue in self.issues if issue.issue_type == "missing"]
