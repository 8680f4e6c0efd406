"""
Column Schema operations

Edits to the list of sub-account columns of one period. These functions
change the schema only; entries keep whatever sub-account maps they were
recorded with.

The per-kind column cap is NOT enforced here. It is a policy of the
controller (see LedgerController.add_account), so a schema loaded from
storage with more columns is still usable.
"""

from typing import Optional

from rcb.config import LedgerSettings
from rcb.models.ledger import AccountKind, ColumnSchema


def default_schema(settings: Optional[LedgerSettings] = None) -> ColumnSchema:
    settings = settings or LedgerSettings()
    return ColumnSchema(
        mooe=list(settings.default_mooe_accounts),
        co=list(settings.default_co_accounts),
        withholding=list(settings.default_withholding_types),
    )


def add_account(schema: ColumnSchema, kind: AccountKind, label: str) -> bool:
    """Append a label. Returns False (no change) for blank or repeated labels."""
    label = label.strip()
    accounts = schema.accounts(kind)
    if not label or label in accounts:
        return False
    accounts.append(label)
    return True


def rename_account(schema: ColumnSchema, kind: AccountKind, index: int, label: str) -> bool:
    """
    Replace the label at index.

    Returns False when the new label is blank or already used by another
    column of the same kind. Raises IndexError for a bad index.
    """
    accounts = schema.accounts(kind)
    current = accounts[index]
    label = label.strip()
    if not label or label == current:
        return False
    if label in accounts:
        return False
    accounts[index] = label
    return True


def remove_account(schema: ColumnSchema, kind: AccountKind, index: int) -> str:
    """Delete and return the label at index. Raises IndexError for a bad index."""
    return schema.accounts(kind).pop(index)
