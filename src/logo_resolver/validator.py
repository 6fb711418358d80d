"""Byte signature checks for the image formats a logo may come in."""

import io
import logging
import os
from typing import BinaryIO, Callable
from urllib.parse import urlparse

from .fetcher import Fetcher
from .models import ErrorKind, ImageFormat, ValidationOutcome


logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS: tuple[str, ...] = (".svg", ".png", ".jpg", ".jpeg")

EXTENSION_FORMATS: dict[str, ImageFormat] = {
    ".png": ImageFormat.PNG,
    ".jpg": ImageFormat.JPEG,
    ".jpeg": ImageFormat.JPEG,
    ".svg": ImageFormat.SVG,
}

CONTENT_TYPE_FORMATS: dict[str, ImageFormat] = {
    "image/svg+xml": ImageFormat.SVG,
    "image/png": ImageFormat.PNG,
    "image/jpeg": ImageFormat.JPEG,
    "image/jpg": ImageFormat.JPEG,
    "image/webp": ImageFormat.WEBP,
}

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
JPEG_START = b"\xff\xd8"
JPEG_END = b"\xff\xd9"
SVG_NAMESPACES = (
    'xmlns="http://www.w3.org/2000/svg"',
    "xmlns='http://www.w3.org/2000/svg'",
)


def url_extension(url: str) -> str:
    """Lower-cased extension of the URL path, ignoring query and fragment."""
    try:
        path = urlparse(url).path
    except ValueError:
        return ""
    return os.path.splitext(path)[1].lower()


def has_valid_extension(url: str) -> bool:
    return url_extension(url) in ALLOWED_EXTENSIONS


def normalize_content_type(content_type: str | None) -> str:
    if not content_type:
        return ""
    return content_type.split(";")[0].strip().lower()


def _is_png(buffer: BinaryIO) -> bool:
    return buffer.read(len(PNG_SIGNATURE)) == PNG_SIGNATURE


def _is_jpeg(buffer: BinaryIO) -> bool:
    if buffer.read(2) != JPEG_START:
        return False
    buffer.seek(-2, io.SEEK_END)
    return buffer.read(2) == JPEG_END


def _is_svg(buffer: BinaryIO) -> bool:
    text = buffer.read().decode("utf-8", errors="replace").lower()
    return "<svg" in text and any(ns in text for ns in SVG_NAMESPACES)


def _is_webp(buffer: BinaryIO) -> bool:
    header = buffer.read(12)
    return header[0:4] == b"RIFF" and header[8:12] == b"WEBP"


_SIGNATURE_CHECKS: dict[ImageFormat, Callable[[BinaryIO], bool]] = {
    ImageFormat.PNG: _is_png,
    ImageFormat.JPEG: _is_jpeg,
    ImageFormat.SVG: _is_svg,
    ImageFormat.WEBP: _is_webp,
}


def check_signature(data: bytes, image_format: ImageFormat) -> ValidationOutcome:
    """Confirm that ``data`` carries the magic bytes of ``image_format``."""
    with io.BytesIO(data) as buffer:
        try:
            matched = _SIGNATURE_CHECKS[image_format](buffer)
        except (OSError, ValueError) as e:
            # e.g. seeking before the start of a one-byte body
            return ValidationOutcome(
                False,
                failure_reason=f"Could not read {image_format.name} data: {e}",
                failure_kind=ErrorKind.SIGNATURE_MISMATCH,
            )

    if matched:
        return ValidationOutcome(True, detected_format=image_format)
    return ValidationOutcome(
        False,
        failure_reason=f"Invalid {image_format.name} signature",
        failure_kind=ErrorKind.SIGNATURE_MISMATCH,
    )


def inspect_bytes(data: bytes, content_type: str | None) -> ValidationOutcome:
    """Check ``data`` against the format its HTTP content type claims."""
    media_type = normalize_content_type(content_type)
    image_format = CONTENT_TYPE_FORMATS.get(media_type)
    if image_format is None:
        return ValidationOutcome(
            False,
            failure_reason=f"Not an image content-type: {media_type or 'missing'}",
            failure_kind=ErrorKind.CONTENT_TYPE_MISMATCH,
        )
    return check_signature(data, image_format)


def validate_bytes_for_content_type(data: bytes, content_type: str | None) -> bool:
    return inspect_bytes(data, content_type).valid


class FormatValidator:
    """Fetches image URLs and checks their bytes against the claimed extension."""

    def __init__(self, fetcher: Fetcher) -> None:
        self.fetcher = fetcher

    async def inspect_url(self, url: str) -> ValidationOutcome:
        if not url or not url.strip():
            return ValidationOutcome(
                False, failure_reason="URL is empty", failure_kind=ErrorKind.INPUT
            )

        extension = url_extension(url)
        if extension not in ALLOWED_EXTENSIONS:
            shown = repr(extension) if extension else "none"
            logger.debug(f"Rejecting {url} - invalid file extension: {shown}")
            return ValidationOutcome(
                False,
                failure_reason=f"Invalid file extension: {shown}",
                failure_kind=ErrorKind.INPUT,
            )

        response = await self.fetcher.get(url)
        if not response.ok:
            logger.debug(f"Rejecting {url} - request failed: {response.describe()}")
            return ValidationOutcome(
                False,
                failure_reason=f"Request failed: {response.describe()}",
                failure_kind=response.error_kind or ErrorKind.HTTP_STATUS,
            )

        outcome = check_signature(response.content, EXTENSION_FORMATS[extension])
        if outcome.valid:
            logger.debug(f"Valid {outcome.detected_format.name} image: {url}")
        else:
            logger.debug(f"Rejecting {url} - {outcome.failure_reason}")
        return outcome

    async def validate_by_url(self, url: str) -> bool:
        """True if ``url`` resolves to an image matching its extension."""
        outcome = await self.inspect_url(url)
        return outcome.valid
