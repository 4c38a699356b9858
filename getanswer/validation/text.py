"""
Extracted Text Validation

Text extraction gives us whatever characters it found in the photo.
Before that text is paid for and sent to the AI it is normalized here:

- Surrounding whitespace is stripped and runs of blank lines collapsed
- The extractor's "No text detected." placeholder counts as no text
- Very long text is truncated to max_question_chars

IMPORTANT: Validation never invents text. An empty result means the
run ends as NO_TEXT_DETECTED before any credit is charged.
"""

import re
from typing import Optional

import structlog

from getanswer.config import get_settings

logger = structlog.get_logger(__name__)

# Placeholder some extractors return instead of an empty string
NO_TEXT_SENTINEL = "No text detected."

_BLANK_LINES = re.compile(r"\n\s*\n+")
_TRAILING_SPACE = re.compile(r"[ \t]+\n")


class QuestionTextValidator:
    """
    Normalizes extracted question text.

    Usage:
        validator = QuestionTextValidator()
        question = validator.normalize(raw_text)
        if not question:
            ...  # no text detected
    """

    def __init__(self, max_chars: Optional[int] = None):
        self._max_chars = max_chars or get_settings().app.max_question_chars

    @property
    def max_chars(self) -> int:
        return self._max_chars

    @staticmethod
    def is_blank(raw: Optional[str]) -> bool:
        """True for None, whitespace-only text, or the no-text placeholder."""
        if raw is None:
            return True
        stripped = raw.strip()
        return not stripped or stripped == NO_TEXT_SENTINEL

    def normalize(self, raw: Optional[str]) -> str:
        """
        Clean up extracted text.

        Returns:
            The normalized question, or "" when there is no usable text
        """
        if self.is_blank(raw):
            return ""

        text = raw.replace("\r\n", "\n").replace("\r", "\n")
        text = _TRAILING_SPACE.sub("\n", text)
        text = _BLANK_LINES.sub("\n\n", text).strip()

        if len(text) > self._max_chars:
            logger.info(
                "question_text_truncated",
                original_length=len(text),
                max_chars=self._max_chars,
            )
            text = text[:self._max_chars].rstrip()
        return text
