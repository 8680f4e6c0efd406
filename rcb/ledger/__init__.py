"""
Ledger engine package.

The balance, aggregation and schema engines plus the period store.
LedgerController lives in rcb.ledger.controller; it is not re-exported
here because it depends on rcb.export, which itself builds on these
engines.
"""

from rcb.ledger.aggregation import compute_totals, orphaned_labels
from rcb.ledger.balance import ending_balance, recompute_balances, running_balances
from rcb.ledger.scheduler import AsyncioSaveScheduler, SaveHandle, SaveScheduler
from rcb.ledger.store import LedgerEntryStore

__all__ = [
    "AsyncioSaveScheduler",
    "LedgerEntryStore",
    "SaveHandle",
    "SaveScheduler",
    "compute_totals",
    "ending_balance",
    "orphaned_labels",
    "recompute_balances",
    "running_balances",
]
