"""
Data Models Package

This package contains all Pydantic models used in GetAnswer.
All data flowing through the system must conform to these schemas.
"""

from getanswer.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from getanswer.models.history import HistoryEntry
from getanswer.models.ids import advance_id_floor, new_monotonic_id
from getanswer.models.ledger import (
    Transaction,
    TransactionKind,
    TransactionStatus,
    replay_balance,
)
from getanswer.models.pipeline import (
    ERROR_MESSAGES,
    ImageHandle,
    PipelineError,
    PipelineErrorKind,
    PipelinePhase,
    PipelineRun,
    PipelineWarning,
    PipelineWarningKind,
    QueryOutcome,
)
from getanswer.models.result import Failure, Result, Success

__all__ = [
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # History models
    "HistoryEntry",
    # Ids
    "advance_id_floor",
    "new_monotonic_id",
    # Ledger models
    "Transaction",
    "TransactionKind",
    "TransactionStatus",
    "replay_balance",
    # Pipeline models
    "ERROR_MESSAGES",
    "ImageHandle",
    "PipelineError",
    "PipelineErrorKind",
    "PipelinePhase",
    "PipelineRun",
    "PipelineWarning",
    "PipelineWarningKind",
    "QueryOutcome",
    # Outcomes
    "Failure",
    "Result",
    "Success",
]
