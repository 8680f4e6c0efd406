"""Audit logging package."""

from rcb.audit.logger import AuditLogger

__all__ = ["AuditLogger"]
