"""
Audit Models for GetAnswer

Every balance change and every pipeline step is logged as an audit event.
Events from one pipeline run share a correlation id, so a single query can
be followed from extraction through charge, answer and refund.

DESIGN DECISION: Audit events are append-only. We never modify them.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Ledger
    LEDGER_LOADED = "ledger_loaded"
    LEDGER_LOAD_FALLBACK = "ledger_load_fallback"
    CREDITS_DEDUCTED = "credits_deducted"
    CREDITS_ADDED = "credits_added"
    CREDITS_RESTORED = "credits_restored"
    INSUFFICIENT_CREDITS = "insufficient_credits"
    LEDGER_UNAVAILABLE = "ledger_unavailable"
    REFUND_PENDING = "refund_pending"

    # Extraction
    EXTRACTION_STARTED = "extraction_started"
    EXTRACTION_COMPLETED = "extraction_completed"
    EXTRACTION_FAILED = "extraction_failed"
    NO_TEXT_DETECTED = "no_text_detected"

    # Inference
    INFERENCE_STARTED = "inference_started"
    INFERENCE_COMPLETED = "inference_completed"
    INFERENCE_FAILED = "inference_failed"

    # Persistence
    HISTORY_SAVED = "history_saved"
    PERSISTENCE_WARNING = "persistence_warning"

    # Run lifecycle
    RUN_CANCELLED = "run_cancelled"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'history_entry', 'run')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - all events of one pipeline run
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one run)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.credits_deducted(tx_id, 2, "inference", 8, run_id)
        event = AuditEventBuilder.inference_failed("timeout", run_id)
    """

    @staticmethod
    def ledger_loaded(balance: int, transaction_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_LOADED,
            entity_type="ledger",
            description=f"Ledger loaded with balance {balance}",
            details={
                "balance": balance,
                "transaction_count": transaction_count,
            },
        )

    @staticmethod
    def ledger_load_fallback(default_balance: int, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_LOAD_FALLBACK,
            severity=AuditSeverity.WARNING,
            entity_type="ledger",
            description=f"Stored balance unreadable, using default {default_balance}",
            details={"default_balance": default_balance},
            error_message=error_message,
        )

    @staticmethod
    def credits_deducted(
        transaction_id: str,
        amount: int,
        reason: str,
        balance_after: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREDITS_DEDUCTED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Deducted {amount} credits for {reason}",
            details={
                "amount": amount,
                "reason": reason,
                "balance_after": balance_after,
            },
        )

    @staticmethod
    def credits_added(
        transaction_id: str,
        amount: int,
        reason: str,
        balance_after: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREDITS_ADDED,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Added {amount} credits ({reason})",
            details={
                "amount": amount,
                "reason": reason,
                "balance_after": balance_after,
            },
        )

    @staticmethod
    def credits_restored(
        transaction_id: str,
        reverses_id: str,
        amount: int,
        balance_after: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CREDITS_RESTORED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Restored {amount} credits from transaction {reverses_id}",
            details={
                "amount": amount,
                "reverses_id": reverses_id,
                "balance_after": balance_after,
            },
        )

    @staticmethod
    def insufficient_credits(
        required: int,
        balance: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSUFFICIENT_CREDITS,
            severity=AuditSeverity.WARNING,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=f"Charge of {required} refused with balance {balance}",
            details={"required": required, "balance": balance},
        )

    @staticmethod
    def ledger_unavailable(
        operation: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEDGER_UNAVAILABLE,
            severity=AuditSeverity.ERROR,
            entity_type="ledger",
            correlation_id=correlation_id,
            description=f"Ledger write failed during {operation}",
            details={"operation": operation},
            error_message=error_message,
        )

    @staticmethod
    def refund_pending(
        transaction_id: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REFUND_PENDING,
            severity=AuditSeverity.ERROR,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Refund of transaction {transaction_id} deferred",
            error_message=error_message,
        )

    @staticmethod
    def extraction_started(
        image_reference: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_STARTED,
            entity_type="run",
            correlation_id=correlation_id,
            description="Text extraction started",
            details={"image_reference": image_reference},
        )

    @staticmethod
    def extraction_completed(
        text_length: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_COMPLETED,
            entity_type="run",
            correlation_id=correlation_id,
            description=f"Extracted {text_length} characters of text",
            details={"text_length": text_length},
        )

    @staticmethod
    def extraction_failed(
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="run",
            correlation_id=correlation_id,
            description="Text extraction failed",
            error_message=error_message,
        )

    @staticmethod
    def no_text_detected(correlation_id: UUID) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NO_TEXT_DETECTED,
            severity=AuditSeverity.WARNING,
            entity_type="run",
            correlation_id=correlation_id,
            description="No text detected in image",
        )

    @staticmethod
    def inference_started(
        question_length: int,
        charged_transaction_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INFERENCE_STARTED,
            entity_type="run",
            correlation_id=correlation_id,
            description="Inference started",
            details={
                "question_length": question_length,
                "charged_transaction_id": charged_transaction_id,
            },
        )

    @staticmethod
    def inference_completed(
        answer_length: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INFERENCE_COMPLETED,
            entity_type="run",
            correlation_id=correlation_id,
            description=f"Answer received ({answer_length} characters)",
            details={"answer_length": answer_length},
        )

    @staticmethod
    def inference_failed(
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INFERENCE_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="run",
            correlation_id=correlation_id,
            description="Inference failed",
            error_message=error_message,
        )

    @staticmethod
    def history_saved(
        entry_id: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.HISTORY_SAVED,
            entity_type="history_entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description="Query saved to history",
        )

    @staticmethod
    def persistence_warning(
        entry_id: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSISTENCE_WARNING,
            severity=AuditSeverity.WARNING,
            entity_type="history_entry",
            entity_id=entry_id,
            correlation_id=correlation_id,
            description="Answer delivered but history could not be saved",
            error_message=error_message,
        )

    @staticmethod
    def run_cancelled(
        phase: str,
        refunded: bool,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RUN_CANCELLED,
            severity=AuditSeverity.WARNING,
            entity_type="run",
            correlation_id=correlation_id,
            description=f"Run cancelled during {phase}",
            details={"phase": phase, "refunded": refunded},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
