"""Image services package."""

from getanswer.services.image.preprocess import (
    ImagePreparationError,
    ImageTooLargeError,
    UnreadableImageError,
    prepare_image,
)

__all__ = [
    "ImagePreparationError",
    "ImageTooLargeError",
    "UnreadableImageError",
    "prepare_image",
]
