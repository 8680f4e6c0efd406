"""
Balance Engine

Assigns every entry its running balance:

    balance[i] = balance[i-1] + deposit[i] - withdrawal[i]
    balance[-1] = opening balance of the period

The recomputation is total and idempotent. It runs after every insert,
removal and opening balance change, always over the whole sequence,
so there is no incremental state that could drift.
"""

from decimal import Decimal
from typing import Any, Iterable

from rcb.models.ledger import LedgerEntry, coerce_amount


def running_balances(
    entries: Iterable[LedgerEntry],
    opening_balance: Any,
) -> list[Decimal]:
    """The balance after each entry, without touching the entries."""
    balance = coerce_amount(opening_balance)
    balances = []
    for entry in entries:
        balance = balance + coerce_amount(entry.deposit) - coerce_amount(entry.withdrawal)
        balances.append(balance)
    return balances


def recompute_balances(
    entries: list[LedgerEntry],
    opening_balance: Any,
) -> list[LedgerEntry]:
    """
    Write the running balance onto each entry, in sequence order.

    Mutates and returns the same list. Never raises on bad amounts:
    coerce_amount() turns them into 0.
    """
    for entry, balance in zip(entries, running_balances(entries, opening_balance)):
        entry.balance = balance
    return entries


def ending_balance(entries: list[LedgerEntry], opening_balance: Any) -> Decimal:
    """
    Balance after the last entry, or the opening balance if there are none.

    Computed from the amounts rather than read from the last entry, so it
    is correct even for entries whose balances have not been recomputed.
    """
    balances = running_balances(entries, opening_balance)
    if not balances:
        return coerce_amount(opening_balance)
    return balances[-1]
