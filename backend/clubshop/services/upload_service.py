# Overview: Catalog image uploads; validation with Pillow, persistence and release.

from __future__ import annotations

import base64
import binascii
import io
import logging
import os
import re
import secrets

from PIL import Image, UnidentifiedImageError

from ..extensions import store
from ..validation import ValidationError

logger = logging.getLogger(__name__)

UPLOADS_URL_PREFIX = "/uploads/"
SAFE_FILENAME_RE = re.compile(r"^[A-Za-z0-9._-]+$")
DATA_URL_RE = re.compile(r"^data:(image/[a-z0-9.+-]+);base64,([A-Za-z0-9+/=\s]+)$", re.IGNORECASE)

# Pillow format name -> file extension
ACCEPTED_FORMATS = {
    "PNG": "png",
    "JPEG": "jpg",
    "WEBP": "webp",
}


def is_safe_filename(filename: str) -> bool:
    return bool(filename) and bool(SAFE_FILENAME_RE.match(filename)) and filename not in {".", ".."}


def decode_data_url(data_url: str, max_bytes: int) -> bytes:
    """
    Decode a base64 image data URL.

    The encoded length is checked against max_bytes before anything is decoded.
    """
    match = DATA_URL_RE.match(str(data_url or "").strip())
    if not match:
        raise ValidationError("Image must be a PNG, JPEG or WEBP upload")

    encoded = "".join(match.group(2).split())
    if (len(encoded) * 3) // 4 > max_bytes + 2:
        raise ValidationError(f"Uploaded image must be under {max_bytes // (1024 * 1024)}MB")

    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError):
        raise ValidationError("Uploaded image is not valid base64")


def detect_image_format(data: bytes, max_bytes: int) -> str:
    """Return the file extension for well-formed image bytes of an accepted format."""
    if not data:
        raise ValidationError("Uploaded image is empty")
    if len(data) > max_bytes:
        raise ValidationError(f"Uploaded image must be under {max_bytes // (1024 * 1024)}MB")

    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = img.format
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError, ValueError, Image.DecompressionBombError):
        raise ValidationError("Uploaded file is not a readable image")

    if fmt not in ACCEPTED_FORMATS:
        raise ValidationError("Image must be a PNG, JPEG or WEBP upload")
    return ACCEPTED_FORMATS[fmt]


def save_image(data: bytes, item_id: str, max_bytes: int) -> str:
    """Validate and persist image bytes; returns the /uploads/ path for the record."""
    ext = detect_image_format(data, max_bytes)

    uploads_dir = store.uploads_dir
    os.makedirs(uploads_dir, exist_ok=True)
    filename = f"{item_id}-{secrets.token_hex(8)}.{ext}"
    with open(os.path.join(uploads_dir, filename), "wb") as fh:
        fh.write(data)
    return f"{UPLOADS_URL_PREFIX}{filename}"


def release_image(image_path: str | None) -> bool:
    """
    Delete a managed upload. Static or external images are never touched.

    Returns True if a file was removed.
    """
    path = str(image_path or "")
    if not path.startswith(UPLOADS_URL_PREFIX):
        return False

    filename = os.path.basename(path)
    if not is_safe_filename(filename) or path != f"{UPLOADS_URL_PREFIX}{filename}":
        return False

    absolute = os.path.join(store.uploads_dir, filename)
    if not os.path.exists(absolute):
        return False

    try:
        os.unlink(absolute)
    except OSError:
        # The catalog record is already gone; a stray file is harmless
        logger.warning("Could not delete uploaded image %s", absolute, exc_info=True)
        return False
    return True
