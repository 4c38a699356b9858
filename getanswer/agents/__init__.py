"""AI Agents package."""

from getanswer.agents.interface import AnswerEngine, InferenceError
from getanswer.agents.tutor import TUTOR_PROMPT, GeminiTutorAgent

__all__ = [
    "AnswerEngine",
    "GeminiTutorAgent",
    "InferenceError",
    "TUTOR_PROMPT",
]
