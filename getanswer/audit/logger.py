"""
Audit Logger

DESIGN DECISION: Every balance change and pipeline step is logged.
The audit logger is also the pipeline's error channel: non-blocking
problems (a history entry that could not be saved, a refund that had
to be deferred) are reported here rather than raised.

The audit logger:
- Always logs locally as structured JSON
- Keeps the most recent events in memory so the UI can show warnings
"""

from collections import deque
from typing import Optional
from uuid import UUID

import structlog

from getanswer.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditSeverity,
)


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
    2. An in-memory ring of recent events (for the UI's warning banner)
    """

    def __init__(self, max_recent_events: int = 200):
        self._logger = structlog.get_logger("getanswer.audit")
        self._recent: deque[AuditEvent] = deque(maxlen=max_recent_events)

    async def log(self, event: AuditEvent) -> None:
        """Log an audit event."""
        self._recent.append(event)
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

    def recent_events(self, limit: Optional[int] = None) -> list[AuditEvent]:
        """Most recent events, newest first."""
        events = list(reversed(self._recent))
        return events[:limit] if limit is not None else events

    def warnings(self, correlation_id: Optional[UUID] = None) -> list[AuditEvent]:
        """Recent WARNING-or-worse events, optionally for one run."""
        return [
            event for event in self.recent_events()
            if event.severity in (AuditSeverity.WARNING, AuditSeverity.ERROR, AuditSeverity.CRITICAL)
            and (correlation_id is None or event.correlation_id == correlation_id)
        ]

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

