"""
Audit Logger

DESIGN DECISION: Every change to a register is logged.
This provides:
1. Complete traceability of who changed which quarter
2. Debugging capability for balance questions
3. Compliance readiness for council audits

The audit logger:
- Logs locally (structlog) the moment an event happens
- Persists events to audit storage asynchronously
- Gracefully handles failures (doesn't crash the ledger if logging fails)

Register mutations are synchronous, so they use record(): the event is
logged locally at once and queued; flush() persists the queue the next
time the engine is already doing I/O (a load or a save).
"""

from typing import Optional

import structlog

from rcb.models.audit import AuditEvent
from rcb.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and council visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._pending: list[AuditEvent] = []
        self._logger = structlog.get_logger("rcb.audit")

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def _log_locally(self, event: AuditEvent) -> None:
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

    def record(self, event: AuditEvent) -> None:
        """
        Log an event from synchronous code.

        Logged locally now, persisted on the next flush().
        """
        self._log_locally(event)
        if self._storage:
            self._pending.append(event)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        self._log_locally(event)

        if self._storage:
            return await self._persist(event)

        return True

    async def flush(self) -> int:
        """
        Persist queued events.

        Returns the number of events written. Events that fail to persist
        are dropped after being logged, so a broken audit sheet cannot
        grow the queue without bound.
        """
        if not self._storage or not self._pending:
            return 0

        pending, self._pending = self._pending, []
        written = 0
        for event in pending:
            if await self._persist(event):
                written += 1
        return written

    async def _persist(self, event: AuditEvent) -> bool:
        try:
            return await self._storage.append_event(event)
        except Exception as e:
            # Log failure but don't raise
            self._logger.error(
                "audit_storage_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False
