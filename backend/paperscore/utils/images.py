"""
Paper image helpers - upload compression, payload decoding and the per-paper scratch file.
"""

import io
import os
import base64
import binascii
import tempfile
from contextlib import contextmanager
from typing import Iterator

from PIL import Image, ImageOps, UnidentifiedImageError

from paperscore.config import logger

MAX_STORED_PAYLOAD_BYTES = 1024 * 1024  # a stored paper must stay under 1 MiB of base64


class ImageDecodeError(Exception):
    """A stored paper payload could not be turned back into an image."""


def compress_upload(file_bytes: bytes, max_side: int = 800, quality: int = 70) -> str:
    """Downscale an uploaded photo and return it as a JPEG data URI."""
    try:
        img = Image.open(io.BytesIO(file_bytes))
        img = ImageOps.exif_transpose(img)
    except (UnidentifiedImageError, OSError) as e:
        raise ImageDecodeError(f"Uploaded file is not a readable image: {e}")

    img = img.convert("RGB")
    img.thumbnail((max_side, max_side))

    buffer = io.BytesIO()
    img.save(buffer, format="JPEG", quality=quality, optimize=True)
    encoded = "data:image/jpeg;base64," + base64.b64encode(buffer.getvalue()).decode()

    if len(encoded.encode("utf-8")) > MAX_STORED_PAYLOAD_BYTES:
        raise ImageDecodeError("Compressed image is still larger than 1MB; upload a lower resolution photo")
    return encoded


def decode_payload(image_base64: str) -> bytes:
    """Decode a stored payload (plain base64 or data URI) into raw bytes."""
    b64 = image_base64 or ""
    if b64.startswith("data:"):
        b64 = b64.split(",", 1)[1] if "," in b64 else ""
    try:
        raw = base64.b64decode(b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Paper payload is not valid base64: {e}")
    if not raw:
        raise ImageDecodeError("Paper payload is empty")
    return raw


@contextmanager
def scratch_image(image_base64: str, prefix: str = "paper_") -> Iterator[str]:
    """
    Decode a paper payload into a temporary file and yield its path.

    The file is removed when the block exits, whether it succeeded, raised
    or returned early.
    """
    raw = decode_payload(image_base64)
    fd, path = tempfile.mkstemp(prefix=prefix, suffix=".img")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(raw)
        yield path
    finally:
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Could not remove scratch file {path}: {e}")


def normalize_for_recognition(path: str, quality: int = 85) -> bytes:
    """Open a scratch image, apply EXIF rotation and re-encode it as RGB JPEG bytes."""
    try:
        with Image.open(path) as img:
            img = ImageOps.exif_transpose(img)
            img = img.convert("RGB")
            buffer = io.BytesIO()
            img.save(buffer, format="JPEG", quality=quality)
    except (UnidentifiedImageError, OSError) as e:
        raise ImageDecodeError(f"Paper image could not be opened: {e}")
    return buffer.getvalue()
