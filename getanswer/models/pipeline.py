"""
Query Pipeline Models

These models describe one run of the image -> text -> answer pipeline:
the image handed in, the phase the run is in, and what comes out
(an outcome on success, a classified error on failure).
"""

from enum import Enum
from pathlib import Path
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator

from getanswer.models.history import HistoryEntry


# =============================================================================
# ENUMS
# =============================================================================

class PipelinePhase(str, Enum):
    """
    Phases of a single run.

    FAILED is reachable from every phase except IDLE.
    """
    IDLE = "idle"
    EXTRACTING = "extracting"
    AWAITING_AUTHORIZATION = "awaiting_authorization"
    INFERRING = "inferring"
    PERSISTING = "persisting"
    DONE = "done"
    FAILED = "failed"


# Review-and-edit runs start at AWAITING_AUTHORIZATION with caller text
ALLOWED_TRANSITIONS: dict[PipelinePhase, frozenset[PipelinePhase]] = {
    PipelinePhase.IDLE: frozenset({
        PipelinePhase.EXTRACTING,
        PipelinePhase.AWAITING_AUTHORIZATION,
    }),
    PipelinePhase.EXTRACTING: frozenset({
        PipelinePhase.AWAITING_AUTHORIZATION,
        PipelinePhase.FAILED,
    }),
    PipelinePhase.AWAITING_AUTHORIZATION: frozenset({
        PipelinePhase.INFERRING,
        PipelinePhase.FAILED,
    }),
    PipelinePhase.INFERRING: frozenset({
        PipelinePhase.PERSISTING,
        PipelinePhase.FAILED,
    }),
    PipelinePhase.PERSISTING: frozenset({
        PipelinePhase.DONE,
        PipelinePhase.FAILED,
    }),
    PipelinePhase.DONE: frozenset(),
    PipelinePhase.FAILED: frozenset(),
}


class PipelineErrorKind(str, Enum):
    """Terminal failure classes reported to the caller."""
    INSUFFICIENT_CREDITS = "insufficient_credits"
    EXTRACTION_FAILED = "extraction_failed"
    NO_TEXT_DETECTED = "no_text_detected"
    INFERENCE_FAILED = "inference_failed"
    LEDGER_UNAVAILABLE = "ledger_unavailable"


class PipelineWarningKind(str, Enum):
    """Non-blocking problems attached to a successful run."""
    PERSISTENCE_WARNING = "persistence_warning"
    REFUND_PENDING = "refund_pending"


# User-facing text for each failure kind
ERROR_MESSAGES: dict[PipelineErrorKind, str] = {
    PipelineErrorKind.INSUFFICIENT_CREDITS: (
        "You don't have enough credits for this action. "
        "Watch an ad or buy a credit pack to continue."
    ),
    PipelineErrorKind.EXTRACTION_FAILED: (
        "We couldn't read this image. Please try again with a clearer photo."
    ),
    PipelineErrorKind.NO_TEXT_DETECTED: (
        "No question text was found in this image. "
        "Make sure the question is in focus and well lit."
    ),
    PipelineErrorKind.INFERENCE_FAILED: (
        "We couldn't get an answer right now. Your credits were refunded; "
        "please try again."
    ),
    PipelineErrorKind.LEDGER_UNAVAILABLE: (
        "Your credit balance couldn't be saved. Nothing was charged; "
        "please try again."
    ),
}


# =============================================================================
# INPUT
# =============================================================================

class ImageHandle(BaseModel):
    """
    Opaque handle to a picked or captured image.

    Either a local path/URI, raw bytes, or both.
    """
    model_config = ConfigDict(frozen=True)

    uri: Optional[str] = Field(
        default=None,
        description="Local file path or file:// URI of the image"
    )
    content: Optional[bytes] = Field(
        default=None,
        repr=False,
        description="Raw image bytes (takes precedence over uri)"
    )
    mime_type: Optional[str] = None

    @model_validator(mode='after')
    def require_source(self) -> 'ImageHandle':
        if self.uri is None and self.content is None:
            raise ValueError("Image handle needs a uri or content")
        return self

    @property
    def reference(self) -> Optional[str]:
        """Value stored as the history entry's image reference."""
        return self.uri

    def read_bytes(self) -> bytes:
        """Return the image bytes, reading the file if needed."""
        if self.content is not None:
            return self.content
        path = self.uri[len("file://"):] if self.uri.startswith("file://") else self.uri
        return Path(path).expanduser().read_bytes()


# =============================================================================
# OUTPUT
# =============================================================================

class PipelineError(Exception):
    """
    Terminal failure of one run.

    Carries the failure kind, a user-facing message and, where there
    was one, the underlying exception.
    """

    def __init__(
        self,
        kind: PipelineErrorKind,
        message: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.kind = kind
        self.cause = cause
        super().__init__(message or ERROR_MESSAGES[kind])

    @property
    def message(self) -> str:
        return str(self)

    @property
    def retryable(self) -> bool:
        """Everything except an empty wallet can be retried as-is."""
        return self.kind != PipelineErrorKind.INSUFFICIENT_CREDITS

    def __repr__(self) -> str:
        return f"PipelineError(kind={self.kind.value!r}, message={self.message!r})"


class PipelineWarning(BaseModel):
    """A problem that did not stop the run."""
    model_config = ConfigDict(frozen=True)

    kind: PipelineWarningKind
    message: str


class QueryOutcome(BaseModel):
    """Result of a successful run."""

    entry: HistoryEntry
    charged_transaction_id: Optional[str] = None
    warnings: list[PipelineWarning] = Field(default_factory=list)

    @property
    def answer(self) -> str:
        return self.entry.answer_text

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


# =============================================================================
# TRANSIENT RUN STATE
# =============================================================================

class PipelineRun(BaseModel):
    """
    State of one invocation.

    Created when the run starts and discarded when it ends.
    Never persisted and never shared between runs.
    """

    run_id: UUID = Field(default_factory=uuid4)
    input_image: Optional[ImageHandle] = None
    extracted_text: Optional[str] = None
    answer_text: Optional[str] = None
    charged_transaction_id: Optional[str] = None
    extraction_transaction_id: Optional[str] = None
    phase: PipelinePhase = PipelinePhase.IDLE
    error_kind: Optional[PipelineErrorKind] = None

    def advance(self, phase: PipelinePhase) -> None:
        """
        Move to the next phase.

        Raises:
            RuntimeError: If the run has ended or the move is not allowed
        """
        if self.phase in (PipelinePhase.DONE, PipelinePhase.FAILED):
            raise RuntimeError(f"Run {self.run_id} already ended in {self.phase.value}")
        if phase not in ALLOWED_TRANSITIONS[self.phase]:
            raise RuntimeError(
                f"Run {self.run_id} cannot go from {self.phase.value} to {phase.value}"
            )
        self.phase = phase

    def fail(self, kind: PipelineErrorKind) -> None:
        """Enter the FAILED phase with the given kind."""
        if self.phase == PipelinePhase.IDLE:
            raise RuntimeError("A run cannot fail before it has started")
        self.advance(PipelinePhase.FAILED)
        self.error_kind = kind
