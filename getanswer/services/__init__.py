"""Services package."""

from getanswer.services.image import (
    ImagePreparationError,
    ImageTooLargeError,
    UnreadableImageError,
    prepare_image,
)
from getanswer.services.ocr import (
    ExtractionError,
    GoogleVisionTextExtractor,
    TextExtractor,
)
from getanswer.services.storage import (
    InMemoryStorage,
    JsonFileStorage,
    KeyValueStorageInterface,
    StorageError,
    StorageUnavailableError,
)

__all__ = [
    # Image services
    "ImagePreparationError",
    "ImageTooLargeError",
    "UnreadableImageError",
    "prepare_image",
    # Text extraction
    "ExtractionError",
    "GoogleVisionTextExtractor",
    "TextExtractor",
    # Storage services
    "InMemoryStorage",
    "JsonFileStorage",
    "KeyValueStorageInterface",
    "StorageError",
    "StorageUnavailableError",
]
