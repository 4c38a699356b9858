"""
Answer Engine Interface

The pipeline only knows this interface. The production implementation
is the Gemini tutor agent; tests use fakes.
"""

from abc import ABC, abstractmethod


class InferenceError(Exception):
    """The AI could not produce an answer."""
    pass


class AnswerEngine(ABC):
    """Answers a question given as text."""

    @abstractmethod
    async def answer(self, question: str) -> str:
        """
        Answer a question.

        Returns:
            The answer text

        Raises:
            InferenceError: If no answer could be produced
        """
        pass
