"""
Application wiring for the Register of Cash in Bank

This module ties together the storage backends, the audit logger and the
ledger controller. Callers (the web layer, scripts, tests) get a ready
controller from create_app_components() and never build storage clients
themselves.

DESIGN DECISION: A missing Google Sheets configuration is not fatal.
The ledger falls back to in-memory storage and says so loudly, so the
register can still be used (and exported) on a machine without
credentials.
"""

from typing import Optional

import structlog

from rcb.audit import AuditLogger
from rcb.config import get_settings
from rcb.ledger.controller import LedgerController
from rcb.ledger.scheduler import SaveScheduler
from rcb.services.storage import (
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    GoogleSheetsPeriodStorage,
    InMemoryAuditStorage,
    InMemoryPeriodStorage,
    PeriodStorageInterface,
)


logger = structlog.get_logger(__name__)


def create_storage(
    use_google_sheets: bool,
) -> tuple[PeriodStorageInterface, AuditLogger, Optional[GoogleSheetsClient]]:
    """
    Build the persistence gateway and audit logger.

    Returns:
        (period_storage, audit_logger, sheets_client)
    """
    if use_google_sheets:
        try:
            sheets_client = GoogleSheetsClient()
            return (
                GoogleSheetsPeriodStorage(sheets_client),
                AuditLogger(GoogleSheetsAuditStorage(sheets_client)),
                sheets_client,
            )
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("google_sheets_unavailable", error=str(e))

    return InMemoryPeriodStorage(), AuditLogger(InMemoryAuditStorage()), None


def create_app_components(
    use_storage: Optional[bool] = None,
    scheduler: Optional[SaveScheduler] = None,
) -> tuple[LedgerController, Optional[GoogleSheetsClient]]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use Google Sheets. Defaults to the
                    configured storage_backend.
        scheduler: Autosave scheduler; the asyncio one if omitted.

    Returns:
        (ledger_controller, sheets_client)
    """
    settings = get_settings()
    if use_storage is None:
        use_storage = settings.app.storage_backend == "google_sheets"

    storage, audit_logger, sheets_client = create_storage(use_storage)

    controller = LedgerController(
        storage=storage,
        scheduler=scheduler,
        audit_logger=audit_logger,
        settings=settings.ledger,
    )

    return controller, sheets_client
