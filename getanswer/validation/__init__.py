"""Text validation package."""

from getanswer.validation.text import NO_TEXT_SENTINEL, QuestionTextValidator

__all__ = [
    "NO_TEXT_SENTINEL",
    "QuestionTextValidator",
]
