"""Validation, normalisation and hosting of couple photo uploads."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Optional

import pillow_heif
from flask import current_app, has_app_context
from PIL import Image, ImageOps, UnidentifiedImageError
from werkzeug.datastructures import FileStorage

from . import s3

pillow_heif.register_heif_opener()

LOGGER = logging.getLogger(__name__)
_WEBP_MIME = "image/webp"
_DEFAULT_MAX_BYTES = 10 * 1024 * 1024
_DEFAULT_MAX_WIDTH = 2048
_DEFAULT_THUMB_SIZE = 400
_DEFAULT_FOLDER = "wedding-photos"


class PhotoError(RuntimeError):
    """Base exception for photo processing failures."""


class PhotoValidationError(PhotoError):
    """Raised when an upload is missing, unreadable or too large."""


class PhotoTooLargeError(PhotoValidationError):
    """Raised when the raw upload exceeds the configured byte limit."""


class PhotoUploadError(PhotoError):
    """Raised when the image host rejects or cannot receive a rendition."""


@dataclass(frozen=True, slots=True)
class PhotoRenditions:
    photo_key: str
    photo_url: str
    thumb_key: str
    thumb_url: str


@dataclass(frozen=True, slots=True)
class EncodedPhoto:
    full: bytes
    thumb: bytes


def read_upload(storage: FileStorage | None, *, max_bytes: int | None = None) -> bytes:
    """Return the raw bytes of an upload, enforcing the byte limit."""
    if not isinstance(storage, FileStorage) or not (storage.filename or ""):
        raise PhotoValidationError("A photo is required.")
    storage.stream.seek(0)
    raw_bytes = storage.read()
    storage.stream.seek(0)
    if not raw_bytes:
        raise PhotoValidationError("The uploaded photo is empty.")
    size_cap = _resolve_max_bytes(max_bytes)
    if size_cap is not None and len(raw_bytes) > size_cap:
        raise PhotoTooLargeError(
            f"Image too large. Please upload a photo under {size_cap / (1024 * 1024):.1f} MB."
        )
    return raw_bytes


def encode_photo(
    raw_bytes: bytes,
    *,
    max_width: int = _DEFAULT_MAX_WIDTH,
    thumb_size: int = _DEFAULT_THUMB_SIZE,
    quality: int = 85,
    min_quality: int = 30,
    max_bytes: int | None = None,
) -> EncodedPhoto:
    """Produce an optimised WebP bounded by ``max_width`` and a square thumbnail."""
    try:
        image_handle = Image.open(io.BytesIO(raw_bytes))
    except UnidentifiedImageError as exc:
        raise PhotoValidationError("Please upload a JPEG, PNG, WebP or HEIC image.") from exc

    with image_handle as image:
        try:
            image.load()
            oriented = ImageOps.exif_transpose(image)
        except OSError as exc:
            raise PhotoValidationError("The uploaded photo could not be read.") from exc

        full_image = oriented.copy()
        full_image.thumbnail((max_width, max_width))
        thumb_image = ImageOps.fit(oriented, (thumb_size, thumb_size))

    full_bytes, smallest = _encode_with_limit(
        full_image,
        quality=quality,
        min_quality=min_quality,
        max_bytes=_resolve_max_bytes(max_bytes),
    )
    if full_bytes is None:
        if smallest is None:
            raise PhotoValidationError("The uploaded photo could not be converted.")
        raise PhotoTooLargeError("The photo is too large even after compression.")

    thumb_bytes = _image_to_webp_bytes(thumb_image, quality=80)
    if thumb_bytes is None:
        raise PhotoValidationError("The uploaded photo could not be converted.")

    return EncodedPhoto(full=full_bytes, thumb=thumb_bytes)


def store_couple_photo(
    storage: FileStorage | None,
    *,
    logger: Optional[logging.Logger] = None,
    max_bytes: int | None = None,
) -> PhotoRenditions:
    """Validate an upload and push its renditions to the image host."""
    log = logger or LOGGER
    config = current_app.config if has_app_context() else {}
    max_width = int(config.get("IMAGE_MAX_WIDTH", _DEFAULT_MAX_WIDTH))
    thumb_size = int(config.get("THUMBNAIL_SIZE", _DEFAULT_THUMB_SIZE))
    folder = config.get("S3_UPLOAD_FOLDER", _DEFAULT_FOLDER)
    if max_bytes is None:
        max_bytes = config.get("MAX_PHOTO_UPLOAD_BYTES")

    raw_bytes = read_upload(storage, max_bytes=max_bytes)
    encoded = encode_photo(
        raw_bytes, max_width=max_width, thumb_size=thumb_size, max_bytes=max_bytes
    )

    try:
        base_key = s3.allocate_key(folder, content_type=_WEBP_MIME)
        photo_key, photo_url = s3.upload_bytes(
            encoded.full,
            content_type=_WEBP_MIME,
            object_key=s3.optimized_key(base_key, max_width),
        )
        thumb_key, thumb_url = s3.upload_bytes(
            encoded.thumb,
            content_type=_WEBP_MIME,
            object_key=s3.thumbnail_key(base_key, thumb_size),
        )
    except s3.S3ConfigurationError as exc:
        log.error("S3 configuration missing; cannot store couple photos")
        raise PhotoUploadError("Image hosting is not configured.") from exc
    except s3.S3Error as exc:
        log.warning("Failed to upload couple photo to S3", exc_info=True)
        raise PhotoUploadError(f"Upload failed: {exc}") from exc

    log.info("Stored couple photo %s (%s bytes)", photo_key, len(encoded.full))
    return PhotoRenditions(
        photo_key=photo_key,
        photo_url=photo_url,
        thumb_key=thumb_key,
        thumb_url=thumb_url,
    )


def _encode_with_limit(
    image: Image.Image,
    *,
    quality: int,
    min_quality: int,
    max_bytes: int | None,
) -> tuple[Optional[bytes], Optional[bytes]]:
    """Return WebP bytes within ``max_bytes`` along with the smallest attempted payload."""
    best_payload: Optional[bytes] = None
    for level in _quality_candidates(quality, min_quality):
        payload = _image_to_webp_bytes(image, quality=level)
        if not payload:
            continue
        if best_payload is None or len(payload) < len(best_payload):
            best_payload = payload
        if max_bytes is None or len(payload) <= max_bytes:
            return payload, best_payload

    return (None, best_payload)


def _quality_candidates(start: int, minimum: int) -> list[int]:
    if start <= minimum:
        return [max(start, minimum)]

    levels: list[int] = []
    current = start
    while current > minimum:
        levels.append(current)
        current = max(minimum, current - 10)
    if not levels or levels[-1] != minimum:
        levels.append(minimum)
    return levels


def _image_to_webp_bytes(image: Image.Image, *, quality: int) -> Optional[bytes]:
    try:
        converted = image.convert("RGBA" if "A" in image.getbands() else "RGB")
    except (OSError, ValueError):
        return None

    buffer = io.BytesIO()
    try:
        converted.save(buffer, format="WEBP", quality=quality, method=6)
    except OSError:
        return None

    return buffer.getvalue()


def _resolve_max_bytes(value: int | None) -> Optional[int]:
    if value is None:
        return _DEFAULT_MAX_BYTES
    if value <= 0:
        return None
    return value
