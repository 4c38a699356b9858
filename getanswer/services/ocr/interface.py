"""
Text Extraction Interface

The pipeline only knows this interface. The production implementation
uses Google Cloud Vision; tests use fakes.
"""

from abc import ABC, abstractmethod

from getanswer.models.pipeline import ImageHandle


class ExtractionError(Exception):
    """Text could not be extracted from the image."""
    pass


class TextExtractor(ABC):
    """Reads the text of a photographed question."""

    @abstractmethod
    async def extract_text(self, image: ImageHandle) -> str:
        """
        Extract all text from an image.

        Returns:
            The detected text ("" if the image holds no text)

        Raises:
            ExtractionError: If the image could not be processed
        """
        pass
