"""
Text Extraction using Google Cloud Vision

DESIGN DECISION: We use DOCUMENT_TEXT_DETECTION rather than plain
TEXT_DETECTION. Exam questions are dense, multi-line text and document
detection keeps line order and paragraph breaks.

This service handles:
1. Preparing the image (decode check, orientation, resize)
2. Calling Vision with retries on transient API errors
3. Returning the full text annotation ("" when nothing was found)

It does NOT decide whether the text is a usable question; that is the
pipeline's job.
"""

import asyncio
from typing import Optional

from google.api_core import exceptions as google_exceptions
from google.cloud import vision
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from getanswer.config import VisionSettings, get_settings
from getanswer.models.pipeline import ImageHandle
from getanswer.services.image import ImagePreparationError, prepare_image
from getanswer.services.ocr.interface import ExtractionError, TextExtractor

TRANSIENT_API_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.TooManyRequests,
)


class GoogleVisionTextExtractor(TextExtractor):
    """
    Text extractor backed by the Google Cloud Vision API.

    Authenticates with an API key, like the mobile client does.
    """

    def __init__(self, settings: Optional[VisionSettings] = None):
        self._settings = settings or get_settings().vision
        self._client: Optional[vision.ImageAnnotatorClient] = None

    def _get_client(self) -> vision.ImageAnnotatorClient:
        """Get or create the Vision client."""
        if self._client is None:
            self._client = vision.ImageAnnotatorClient(
                client_options={"api_key": self._settings.api_key}
            )
        return self._client

    @retry(
        retry=retry_if_exception_type(TRANSIENT_API_ERRORS),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _detect_text(self, content: bytes) -> str:
        """Run document text detection (blocking)."""
        extra = {}
        if self._settings.language_hints_list:
            extra["image_context"] = vision.ImageContext(
                language_hints=self._settings.language_hints_list
            )

        response = self._get_client().document_text_detection(
            image=vision.Image(content=content),
            **extra,
        )
        if response.error.message:
            raise ExtractionError(f"Vision API error: {response.error.message}")
        return response.full_text_annotation.text or ""

    async def extract_text(self, image: ImageHandle) -> str:
        """
        Extract the text of a photographed question.

        Raises:
            ExtractionError: If the image is unreadable or the API call fails
        """
        try:
            raw = await asyncio.to_thread(image.read_bytes)
            content = prepare_image(raw, self._settings.max_image_dimension)
        except OSError as e:
            raise ExtractionError(f"Could not read image: {e}")
        except ImagePreparationError as e:
            raise ExtractionError(str(e))

        try:
            return await asyncio.to_thread(self._detect_text, content)
        except ExtractionError:
            raise
        except google_exceptions.GoogleAPIError as e:
            raise ExtractionError(f"Text detection failed: {e}")
