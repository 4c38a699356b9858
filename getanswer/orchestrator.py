"""
Query Pipeline Orchestrator

This module ties together all the components and defines the
end-to-end flow of one query:

    image -> extract text -> charge credits -> AI answer -> save to history

DESIGN DECISION: The orchestrator enforces the boundaries:
- Credits are charged immediately before the step being paid for,
  never earlier
- A charge is refunded whenever the answer it paid for is not delivered
  (failure, empty answer, timeout or cancellation)
- Saving history is best-effort; a delivered answer is never refunded
- Every step is audited under the run's correlation id

Retry is caller-driven. Each run_query() call is a fresh run with its
own charge; the pipeline never retries a run on its own.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from getanswer.agents import AnswerEngine, GeminiTutorAgent, InferenceError
from getanswer.audit import AuditLogger
from getanswer.config import CreditSettings, get_settings
from getanswer.history import HistoryStore
from getanswer.ledger import (
    CreditLedger,
    InsufficientCreditsError,
    LedgerError,
    LedgerStore,
    LedgerUnavailableError,
)
from getanswer.models.audit import AuditEventBuilder
from getanswer.models.history import HistoryEntry
from getanswer.models.ledger import TransactionStatus
from getanswer.models.pipeline import (
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
from getanswer.services.ocr import ExtractionError, GoogleVisionTextExtractor, TextExtractor
from getanswer.services.storage import (
    InMemoryStorage,
    JsonFileStorage,
    KeyValueStorageInterface,
    StorageError,
)
from getanswer.validation import QuestionTextValidator

logger = structlog.get_logger(__name__)

INFERENCE_REASON = "inference"
EXTRACTION_REASON = "extraction"

REFUND_PENDING_MESSAGE = (
    "We couldn't get an answer right now. Your refund couldn't be saved yet "
    "and will be retried automatically."
)
PERSISTENCE_WARNING_MESSAGE = (
    "Your answer is ready, but it couldn't be saved to your history."
)
PENDING_REFUNDS_WARNING_MESSAGE = (
    "Some earlier refunds are still waiting to be saved and will be retried."
)


class QueryPipeline:
    """
    Orchestrates the image-to-answer flow.

    Flow:
    1. Extract → read the question text from the image (free by default)
    2. Authorize → charge inference_cost credits
    3. Infer → ask the AI for an answer
    4. Persist → add the query to history
    5. Done → return the answer

    Any failure after step 2 and before step 4 refunds the charge.
    A refund that cannot be written is kept as pending and retried by
    settle_pending_refunds() and at the start of every run.
    """

    def __init__(
        self,
        extractor: TextExtractor,
        answer_engine: AnswerEngine,
        ledger: CreditLedger,
        history: HistoryStore,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[CreditSettings] = None,
        validator: Optional[QuestionTextValidator] = None,
    ):
        self._extractor = extractor
        self._answer_engine = answer_engine
        self._ledger = ledger
        self._history = history
        self._audit_logger = audit_logger or AuditLogger()
        self._settings = settings or get_settings().credits
        self._validator = validator or QuestionTextValidator()

        # run_id -> charge not yet earned
        self._in_flight: dict[UUID, str] = {}
        # transaction_id -> correlation id of the run that charged it
        self._pending_refunds: dict[str, Optional[UUID]] = {}

    @property
    def in_flight_charges(self) -> dict[UUID, str]:
        """Charges of runs that are between authorization and persistence."""
        return dict(self._in_flight)

    @property
    def pending_refunds(self) -> list[str]:
        """Transaction ids whose refund is still waiting to be written."""
        return list(self._pending_refunds)

    # -------------------------------------------------------------------------
    # Public operations
    # -------------------------------------------------------------------------

    async def run_query(self, image: ImageHandle) -> Result[QueryOutcome, PipelineError]:
        """
        Run one complete query.

        Returns:
            Success(QueryOutcome) with the answer and any warnings, or
            Failure(PipelineError) classifying why the run ended
        """
        run = PipelineRun(input_image=image)
        await self._settle_before_run()

        extracted = await self._extract(run)
        if not extracted.ok:
            return extracted
        return await self._authorize_and_answer(run, image.reference)

    async def extract(self, image: ImageHandle) -> Result[str, PipelineError]:
        """
        Extract the question text only, so the user can review it.

        No inference credit is charged. Pass the (possibly edited) text
        to answer_text() to continue.
        """
        run = PipelineRun(input_image=image)
        await self._settle_before_run()
        return await self._extract(run)

    async def answer_text(
        self,
        text: str,
        image_reference: Optional[str] = None,
    ) -> Result[QueryOutcome, PipelineError]:
        """
        Answer caller-supplied question text.

        Empty text fails with NO_TEXT_DETECTED before anything is charged.
        """
        run = PipelineRun()
        await self._settle_before_run()

        run.advance(PipelinePhase.AWAITING_AUTHORIZATION)
        question = self._validator.normalize(text)
        if not question:
            await self._audit_logger.log(AuditEventBuilder.no_text_detected(run.run_id))
            return self._fail(run, PipelineErrorKind.NO_TEXT_DETECTED)

        run.extracted_text = question
        return await self._authorize_and_answer(run, image_reference)

    async def settle_pending_refunds(self) -> int:
        """
        Retry refunds that could not be written earlier.

        Returns:
            Number of refunds settled by this call
        """
        settled = 0
        for transaction_id, correlation_id in list(self._pending_refunds.items()):
            if await self._refund(transaction_id, correlation_id):
                settled += 1
        if settled:
            logger.info("pending_refunds_settled", count=settled)
        return settled

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def _settle_before_run(self) -> None:
        if self._pending_refunds:
            await self.settle_pending_refunds()

    async def _extract(self, run: PipelineRun) -> Result[str, PipelineError]:
        """Extracting → AwaitingAuthorization, or Failed."""
        run.advance(PipelinePhase.EXTRACTING)
        await self._audit_logger.log(
            AuditEventBuilder.extraction_started(run.input_image.reference, run.run_id)
        )

        if self._settings.meter_extraction:
            charged = await self._charge(run, self._settings.extraction_cost, EXTRACTION_REASON)
            if not charged.ok:
                return self._charge_failed(run, charged.error)
            run.extraction_transaction_id = charged.value

        try:
            raw = await self._extractor.extract_text(run.input_image)
        except asyncio.CancelledError:
            await self._refund_on_cancel(run, run.extraction_transaction_id)
            raise
        except ExtractionError as e:
            await self._audit_logger.log(
                AuditEventBuilder.extraction_failed(str(e), run.run_id)
            )
            await self._refund_extraction(run)
            return self._fail(run, PipelineErrorKind.EXTRACTION_FAILED, cause=e)
        except Exception as e:
            await self._audit_logger.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"phase": run.phase.value},
                correlation_id=run.run_id,
            )
            await self._refund_extraction(run)
            return self._fail(run, PipelineErrorKind.EXTRACTION_FAILED, cause=e)

        question = self._validator.normalize(raw)
        if not question:
            await self._audit_logger.log(AuditEventBuilder.no_text_detected(run.run_id))
            await self._refund_extraction(run)
            return self._fail(run, PipelineErrorKind.NO_TEXT_DETECTED)

        run.extracted_text = question
        run.advance(PipelinePhase.AWAITING_AUTHORIZATION)
        await self._audit_logger.log(
            AuditEventBuilder.extraction_completed(len(question), run.run_id)
        )
        return Success(question)

    async def _authorize_and_answer(
        self,
        run: PipelineRun,
        image_reference: Optional[str],
    ) -> Result[QueryOutcome, PipelineError]:
        """AwaitingAuthorization → Inferring → Persisting → Done, or Failed."""
        charged = await self._charge(run, self._settings.inference_cost, INFERENCE_REASON)
        if not charged.ok:
            return self._charge_failed(run, charged.error)

        transaction_id = charged.value
        run.charged_transaction_id = transaction_id
        run.advance(PipelinePhase.INFERRING)
        self._in_flight[run.run_id] = transaction_id

        try:
            answer = await self._infer(run)
        except asyncio.CancelledError:
            await self._refund_on_cancel(run, transaction_id)
            raise
        except (InferenceError, asyncio.TimeoutError) as e:
            return await self._inference_failed(run, e)
        except Exception as e:
            await self._audit_logger.log_error(
                error_type=type(e).__name__,
                error_message=str(e),
                details={"phase": run.phase.value},
                correlation_id=run.run_id,
            )
            return await self._inference_failed(run, e)
        finally:
            self._in_flight.pop(run.run_id, None)

        run.answer_text = answer
        run.advance(PipelinePhase.PERSISTING)
        entry, warnings = await self._persist(run, image_reference)

        if self._pending_refunds:
            warnings.append(PipelineWarning(
                kind=PipelineWarningKind.REFUND_PENDING,
                message=PENDING_REFUNDS_WARNING_MESSAGE,
            ))

        run.advance(PipelinePhase.DONE)
        return Success(QueryOutcome(
            entry=entry,
            charged_transaction_id=transaction_id,
            warnings=warnings,
        ))

    async def _infer(self, run: PipelineRun) -> str:
        """Call the answer engine, honoring the optional deadline."""
        await self._audit_logger.log(
            AuditEventBuilder.inference_started(
                len(run.extracted_text), run.charged_transaction_id, run.run_id
            )
        )

        call = self._answer_engine.answer(run.extracted_text)
        timeout = self._settings.inference_timeout_seconds
        if timeout:
            answer = await asyncio.wait_for(call, timeout)
        else:
            answer = await call

        answer = (answer or "").strip()
        if not answer:
            raise InferenceError("The AI returned an empty answer")

        await self._audit_logger.log(
            AuditEventBuilder.inference_completed(len(answer), run.run_id)
        )
        return answer

    async def _persist(
        self,
        run: PipelineRun,
        image_reference: Optional[str],
    ) -> tuple[HistoryEntry, list[PipelineWarning]]:
        """Save the completed query; a failure only produces a warning."""
        entry = HistoryEntry(
            image_reference=image_reference,
            extracted_text=run.extracted_text,
            answer_text=run.answer_text,
        )
        try:
            await self._history.append(entry)
        except StorageError as e:
            await self._audit_logger.log(
                AuditEventBuilder.persistence_warning(entry.id, str(e), run.run_id)
            )
            return entry, [PipelineWarning(
                kind=PipelineWarningKind.PERSISTENCE_WARNING,
                message=PERSISTENCE_WARNING_MESSAGE,
            )]

        await self._audit_logger.log(AuditEventBuilder.history_saved(entry.id, run.run_id))
        return entry, []

    # -------------------------------------------------------------------------
    # Charging and refunds
    # -------------------------------------------------------------------------

    async def _charge(
        self,
        run: PipelineRun,
        amount: int,
        reason: str,
    ) -> Result[str, LedgerError]:
        """
        Deduct credits for this run.

        The deduct runs as its own task. If the run is cancelled while
        it is being written, the charge is refunded once it lands.
        """
        charge = asyncio.ensure_future(self._ledger.deduct(amount, reason, run.run_id))
        try:
            return await asyncio.shield(charge)
        except asyncio.CancelledError:
            await asyncio.shield(self._refund_late_charge(run, charge))
            raise

    async def _refund_late_charge(self, run: PipelineRun, charge: asyncio.Future) -> None:
        outcome = await charge
        refunded = False
        if outcome.ok:
            refunded = await self._refund(outcome.value, run.run_id)
        await self._audit_logger.log(
            AuditEventBuilder.run_cancelled(run.phase.value, refunded, run.run_id)
        )

    async def _refund_on_cancel(self, run: PipelineRun, transaction_id: Optional[str]) -> None:
        refunded = False
        if transaction_id:
            refunded = await asyncio.shield(self._refund(transaction_id, run.run_id))
        await self._audit_logger.log(
            AuditEventBuilder.run_cancelled(run.phase.value, refunded, run.run_id)
        )

    async def _refund_extraction(self, run: PipelineRun) -> None:
        if run.extraction_transaction_id:
            await self._refund(run.extraction_transaction_id, run.run_id)

    async def _refund(self, transaction_id: str, correlation_id: Optional[UUID]) -> bool:
        """
        Restore one charge.

        Returns:
            True if the charge is refunded. A refund that could not be
            written is kept as pending and False is returned.
        """
        outcome = await self._ledger.restore(transaction_id, correlation_id)
        if outcome.ok:
            self._pending_refunds.pop(transaction_id, None)
            return True

        if isinstance(outcome.error, LedgerUnavailableError):
            self._pending_refunds[transaction_id] = correlation_id
            await self._audit_logger.log(
                AuditEventBuilder.refund_pending(transaction_id, str(outcome.error), correlation_id)
            )
            return False

        # Unknown id or already restored: nothing left to retry
        self._pending_refunds.pop(transaction_id, None)
        logger.warning(
            "refund_not_applied",
            transaction_id=transaction_id,
            reason=str(outcome.error),
        )
        original = self._ledger.find_transaction(transaction_id)
        return original is not None and original.status == TransactionStatus.FAILED

    async def _inference_failed(
        self,
        run: PipelineRun,
        error: BaseException,
    ) -> Failure[PipelineError]:
        await self._audit_logger.log(
            AuditEventBuilder.inference_failed(str(error) or type(error).__name__, run.run_id)
        )
        refunded = await self._refund(run.charged_transaction_id, run.run_id)
        return self._fail(
            run,
            PipelineErrorKind.INFERENCE_FAILED,
            message=None if refunded else REFUND_PENDING_MESSAGE,
            cause=error,
        )

    def _charge_failed(self, run: PipelineRun, error: LedgerError) -> Failure[PipelineError]:
        if isinstance(error, InsufficientCreditsError):
            return self._fail(run, PipelineErrorKind.INSUFFICIENT_CREDITS, cause=error)
        return self._fail(run, PipelineErrorKind.LEDGER_UNAVAILABLE, cause=error)

    def _fail(
        self,
        run: PipelineRun,
        kind: PipelineErrorKind,
        message: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ) -> Failure[PipelineError]:
        run.fail(kind)
        logger.info("pipeline_run_failed", run_id=str(run.run_id), error_kind=kind.value)
        return Failure(PipelineError(kind, message, cause))


@dataclass
class AppComponents:
    """Everything the app shell needs, wired to one storage backend."""
    storage: KeyValueStorageInterface
    ledger: CreditLedger
    history: HistoryStore
    audit_logger: AuditLogger
    pipeline: Optional[QueryPipeline] = None


def create_app_components(use_storage: bool = True) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to persist to the JSON data file.
                    Set to False for an in-memory session.

    Returns:
        AppComponents. `pipeline` is None when the Vision or Gemini
        API keys are not configured; the ledger and history still work.
    """
    audit_logger = AuditLogger()

    storage: Optional[KeyValueStorageInterface] = None
    if use_storage:
        try:
            storage = JsonFileStorage()
        except ValidationError as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", error=str(e))
    if storage is None:
        storage = InMemoryStorage()

    ledger = CreditLedger(LedgerStore(storage), audit_logger=audit_logger)
    history = HistoryStore(storage)

    pipeline = None
    try:
        pipeline = QueryPipeline(
            extractor=GoogleVisionTextExtractor(),
            answer_engine=GeminiTutorAgent(),
            ledger=ledger,
            history=history,
            audit_logger=audit_logger,
        )
    except ValidationError as e:
        logger.warning("capabilities_not_configured", error=str(e))

    return AppComponents(
        storage=storage,
        ledger=ledger,
        history=history,
        audit_logger=audit_logger,
        pipeline=pipeline,
    )
