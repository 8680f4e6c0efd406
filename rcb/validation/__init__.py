"""Validation package."""

from rcb.validation.validator import EntryValidator

__all__ = ["EntryValidator"]
