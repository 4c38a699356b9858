"""Text extraction services package."""

from getanswer.services.ocr.interface import ExtractionError, TextExtractor
from getanswer.services.ocr.vision_service import GoogleVisionTextExtractor

__all__ = [
    "ExtractionError",
    "GoogleVisionTextExtractor",
    "TextExtractor",
]
