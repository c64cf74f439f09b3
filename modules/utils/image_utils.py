"""Utility helpers for encoded image payloads."""

from __future__ import annotations

import base64
import io
import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union

from PIL import Image, UnidentifiedImageError

DEFAULT_MIME_TYPE = "image/png"

_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/webp": ".webp",
    "image/gif": ".gif",
    "image/bmp": ".bmp",
}


@dataclass(frozen=True, slots=True)
class ImageData:
    """Encoded image bytes together with their media type."""

    data: bytes
    mime_type: str = DEFAULT_MIME_TYPE

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.to_base64()}"


def detect_mime_type(data: bytes, fallback: str = DEFAULT_MIME_TYPE) -> str:
    """Sniff the media type of encoded image bytes using Pillow."""
    try:
        with Image.open(io.BytesIO(data)) as image:
            image_format = image.format
    except (UnidentifiedImageError, OSError):
        return fallback
    if not image_format:
        return fallback
    return Image.MIME.get(image_format.upper(), fallback)


def load_image_file(path: Union[str, Path]) -> ImageData:
    """Read an uploaded image file, keeping its original encoding."""
    file_path = Path(path)
    data = file_path.read_bytes()
    guessed, _ = mimetypes.guess_type(file_path.name)
    return ImageData(data=data, mime_type=detect_mime_type(data, guessed or DEFAULT_MIME_TYPE))


def to_pil(image: ImageData) -> Image.Image:
    """Decode image data into a PIL image for display."""
    decoded = Image.open(io.BytesIO(image.data))
    decoded.load()
    return decoded


def generate_thumbnail(image: ImageData, max_size: Tuple[int, int] = (256, 256)) -> Image.Image:
    """Create a thumbnail suitable for history previews."""
    thumbnail = to_pil(image)
    thumbnail.thumbnail(max_size)
    return thumbnail


def extension_for(mime_type: str) -> str:
    """Return the file extension used when exporting ``mime_type``."""
    return _EXTENSIONS.get(mime_type.lower(), mimetypes.guess_extension(mime_type) or ".png")
