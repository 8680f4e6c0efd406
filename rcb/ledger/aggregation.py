"""
Aggregation Engine

Totals of one period, computed from (schema, entries, opening balance).
Pure functions: no side effects, no persistence.

Sub-account totals follow the CURRENT schema:
- a schema label missing from an entry's map counts as 0 for that entry
- a label stored on an entry but no longer in the schema is left out

The second rule means removing a column also removes its amounts from the
totals (they stay on the entries and reappear if the column is added back).
This mirrors the printed register, which only has the schema's columns.
"""

from decimal import Decimal
from typing import Any, Iterable

from rcb.ledger.balance import ending_balance
from rcb.models.ledger import (
    ZERO,
    AccountKind,
    ColumnSchema,
    LedgerEntry,
    LedgerTotals,
    coerce_amount,
)


def sum_amounts(values: Iterable[Any]) -> Decimal:
    return sum((coerce_amount(v) for v in values), ZERO)


def sub_account_totals(
    labels: list[str],
    maps: list[dict[str, Decimal]],
) -> dict[str, Decimal]:
    """Sum each label across the entries' maps, in label order."""
    return {
        label: sum_amounts(m.get(label) for m in maps)
        for label in labels
    }


def compute_totals(
    schema: ColumnSchema,
    entries: list[LedgerEntry],
    opening_balance: Any,
) -> LedgerTotals:
    """Quarter totals of a register."""
    by_kind = {
        kind.value: sub_account_totals(
            schema.accounts(kind),
            [entry.sub_accounts(kind) for entry in entries],
        )
        for kind in AccountKind
    }

    return LedgerTotals(
        deposit=sum_amounts(e.deposit for e in entries),
        withdrawal=sum_amounts(e.withdrawal for e in entries),
        opening_balance=coerce_amount(opening_balance),
        ending_balance=ending_balance(entries, opening_balance),
        adv_officials=sum_amounts(e.adv_officials for e in entries),
        adv_treasurer=sum_amounts(e.adv_treasurer for e in entries),
        others=sum_amounts(e.others for e in entries),
        **by_kind,
    )


def orphaned_labels(schema: ColumnSchema, entries: list[LedgerEntry]) -> dict[str, list[str]]:
    """
    Labels that carry amounts on some entry but are not in the schema.

    These amounts are excluded from compute_totals(); callers can use this
    to warn before a column removal hides money from the totals.
    """
    result = {}
    for kind in AccountKind:
        current = set(schema.accounts(kind))
        found: list[str] = []
        for entry in entries:
            for label, amount in entry.sub_accounts(kind).items():
                if label not in current and amount != ZERO and label not in found:
                    found.append(label)
        if found:
            result[kind.value] = found
    return result
