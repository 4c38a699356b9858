"""Shared test fixtures for GetAnswer."""

from typing import Optional

import pytest

from fakes import FailingStorage, FakeAnswerEngine, FakeExtractor
from getanswer.agents import AnswerEngine
from getanswer.audit import AuditLogger
from getanswer.config import CreditSettings
from getanswer.history import HistoryStore
from getanswer.ledger import CreditLedger, LedgerStore
from getanswer.models.pipeline import ImageHandle
from getanswer.orchestrator import QueryPipeline
from getanswer.services.ocr import TextExtractor
from getanswer.validation import QuestionTextValidator


@pytest.fixture
def credit_settings():
    return CreditSettings(
        default_balance=10,
        inference_cost=2,
        extraction_cost=1,
        meter_extraction=False,
        max_transactions=500,
    )


@pytest.fixture
def storage():
    return FailingStorage()


@pytest.fixture
def audit_logger():
    return AuditLogger()


@pytest.fixture
def ledger(storage, audit_logger, credit_settings):
    return CreditLedger(LedgerStore(storage), audit_logger=audit_logger, settings=credit_settings)


@pytest.fixture
def history(storage):
    return HistoryStore(storage, max_items=50)


@pytest.fixture
def image():
    return ImageHandle(uri="file:///tmp/question.jpg", content=b"fake-image")


@pytest.fixture
def make_pipeline(ledger, history, audit_logger, credit_settings):
    """Build a pipeline around the shared ledger and history."""

    def _make(
        extractor: Optional[TextExtractor] = None,
        answer_engine: Optional[AnswerEngine] = None,
        settings: Optional[CreditSettings] = None,
    ) -> QueryPipeline:
        return QueryPipeline(
            extractor=extractor or FakeExtractor(),
            answer_engine=answer_engine or FakeAnswerEngine(),
            ledger=ledger,
            history=history,
            audit_logger=audit_logger,
            settings=settings or credit_settings,
            validator=QuestionTextValidator(max_chars=4000),
        )

    return _make
