"""
Image Preparation

Normalizes a picked or captured photo before it is sent for text
detection: checks it decodes, applies the EXIF orientation, converts to
RGB, downsizes very large photos and re-encodes as JPEG.

CRITICAL: An image that cannot be decoded is rejected here, before any
network call, so the user can pick another photo.
"""

from io import BytesIO
from typing import Optional

from PIL import Image, ImageOps, UnidentifiedImageError

from getanswer.config import get_settings


class ImagePreparationError(Exception):
    """Base exception for image preparation errors."""
    pass


class UnreadableImageError(ImagePreparationError):
    """Bytes are not a decodable image."""
    pass


class ImageTooLargeError(ImagePreparationError):
    """Image file exceeds the upload size limit."""
    pass


def prepare_image(
    data: bytes,
    max_dimension: int,
    max_bytes: Optional[int] = None,
) -> bytes:
    """
    Prepare image bytes for text detection.

    Args:
        data: Raw image file bytes
        max_dimension: Longest side, in pixels, of the prepared image
        max_bytes: Reject input larger than this (defaults to the app's upload limit)

    Returns:
        JPEG-encoded image bytes

    Raises:
        ImageTooLargeError: If the input is over the size limit
        UnreadableImageError: If the input is not a decodable image
    """
    limit = max_bytes if max_bytes is not None else get_settings().app.max_upload_size_bytes
    if len(data) > limit:
        raise ImageTooLargeError(
            f"Image is {len(data) / (1024 * 1024):.1f} MB; the limit is "
            f"{limit / (1024 * 1024):.0f} MB"
        )
    if not data:
        raise UnreadableImageError("Image is empty")

    try:
        img = Image.open(BytesIO(data))
        img.load()
        img = ImageOps.exif_transpose(img)
    except (UnidentifiedImageError, OSError) as e:
        raise UnreadableImageError(f"Could not decode image: {e}")

    if img.mode != "RGB":
        img = img.convert("RGB")

    if max(img.size) > max_dimension:
        img.thumbnail((max_dimension, max_dimension))

    out = BytesIO()
    img.save(out, format="JPEG", quality=90)
    return out.getvalue()
