"""Bitmap encoding for screenshots."""

import io
from enum import Enum

from PIL import Image

from gamewatch.errors import EncodeFailedError
from gamewatch.models import CaptureSource


class ImageFormat(Enum):
    """Supported output formats and their Pillow encoder names."""

    PNG = "PNG"
    JPEG = "JPEG"
    WEBP = "WEBP"

    @classmethod
    def from_name(cls, name: str) -> "ImageFormat":
        key = name.lower()
        if key == "png":
            return cls.PNG
        if key in ("jpg", "jpeg"):
            return cls.JPEG
        if key == "webp":
            return cls.WEBP
        raise EncodeFailedError(f"Unsupported image format: {name}")

    @property
    def lossy(self) -> bool:
        return self is not ImageFormat.PNG


def encode_image(image: Image.Image, fmt: str, quality: int = 90) -> bytes:
    """
    Encode a PIL image.

    Args:
        image: The bitmap to encode.
        fmt: ``png``, ``jpg``/``jpeg`` or ``webp``.
        quality: 1-100, used by the lossy formats only.
    """
    image_format = ImageFormat.from_name(fmt)
    if not 1 <= quality <= 100:
        raise EncodeFailedError(f"Quality must be between 1 and 100, got {quality}")

    if image_format is ImageFormat.JPEG and image.mode not in ("RGB", "L"):
        image = image.convert("RGB")  # JPEG has no alpha channel

    options = {"quality": quality} if image_format.lossy else {}
    buffer = io.BytesIO()
    try:
        image.save(buffer, format=image_format.value, **options)
    except (OSError, ValueError) as exc:
        raise EncodeFailedError(f"Cannot encode screenshot as {fmt}: {exc}") from exc
    return buffer.getvalue()


def encode(source: CaptureSource, fmt: str, quality: int = 90) -> bytes:
    """Grab the current bitmap from a capture handle and encode it."""
    try:
        image = source.grab()
    except Exception as exc:
        raise EncodeFailedError(f"Cannot grab window contents: {exc}") from exc
    return encode_image(image, fmt, quality)
