"""
Tutor Agent

Answers a photographed exam question with Gemini.

BOUNDARIES:
- The agent only turns question text into answer text
- It knows nothing about credits; the pipeline charges before calling
  it and refunds if it fails
- Transient API errors are retried here; a failure that survives the
  retries is raised as InferenceError and the pipeline refunds
"""

from typing import Optional

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from getanswer.agents.interface import AnswerEngine, InferenceError
from getanswer.config import GeminiSettings, get_settings

TUTOR_PROMPT = (
    "You are an expert tutor. Provide a clear and well-structured answer "
    "to the following exam question:\n\n\"{question}\""
)

TRANSIENT_API_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.TooManyRequests,
)


class GeminiTutorAgent(AnswerEngine):
    """
    Answer engine backed by a Gemini model.

    RESPONSIBILITIES:
    - Wrap the question in the tutor prompt
    - Return the model's text, or raise InferenceError

    The model is never asked to continue a conversation; each question
    is answered on its own.
    """

    def __init__(self, settings: Optional[GeminiSettings] = None):
        self._settings = settings or get_settings().gemini
        self._configure_genai()

    def _configure_genai(self):
        """Configure Google Generative AI."""
        genai.configure(api_key=self._settings.api_key)
        self._model = genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config={
                "temperature": self._settings.temperature,
                "max_output_tokens": self._settings.max_tokens,
            }
        )

    def build_prompt(self, question: str) -> str:
        return TUTOR_PROMPT.format(question=question.strip())

    @retry(
        retry=retry_if_exception_type(TRANSIENT_API_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _generate(self, prompt: str):
        return await self._model.generate_content_async(prompt)

    async def answer(self, question: str) -> str:
        """
        Answer one exam question.

        Raises:
            InferenceError: If the API fails, the response is blocked,
                or the model returns no text
        """
        if not question.strip():
            raise InferenceError("Question is empty")

        try:
            response = await self._generate(self.build_prompt(question))
        except google_exceptions.GoogleAPIError as e:
            raise InferenceError(f"Gemini request failed: {e}")

        try:
            text = response.text
        except ValueError as e:
            # Raised when the response has no usable candidate (e.g. blocked)
            feedback = getattr(response, "prompt_feedback", None)
            raise InferenceError(f"Gemini returned no answer: {feedback or e}")

        text = (text or "").strip()
        if not text:
            raise InferenceError("Gemini returned an empty answer")
        return text
