"""Records shared by the resolution pipeline."""

from enum import Enum
from typing import NamedTuple

import httpx


class Classification(Enum):
    """How a seed reference is treated."""

    DIRECT_IMAGE = "direct_image"
    PAGE = "page"


class ExtractionStrategy(Enum):
    """Where in a page a candidate was found, in discovery order."""

    OPEN_GRAPH = "open_graph"
    LINK_REL = "link_rel"
    IMG_TAG = "img_tag"
    JSON_LD = "json_ld"


class ImageFormat(Enum):
    PNG = "png"
    JPEG = "jpeg"
    SVG = "svg"
    WEBP = "webp"


class ErrorKind(Enum):
    """Failure categories carried as data across component boundaries."""

    INPUT = "input"
    NETWORK = "network"
    HTTP_STATUS = "http_status"
    CONTENT_TYPE_MISMATCH = "content_type_mismatch"
    SIGNATURE_MISMATCH = "signature_mismatch"
    NO_CANDIDATES = "no_candidates"
    ARCHIVE_NOT_FOUND = "archive_not_found"
    TIMEOUT = "timeout"


class Candidate(NamedTuple):
    """An absolute image address discovered on a page, not yet validated."""

    url: str
    strategy: ExtractionStrategy
    rank: int


class FetchResult(NamedTuple):
    """Outcome of a single (possibly retried) HTTP request."""

    url: str
    status_code: int = 0
    headers: httpx.Headers | None = None
    content: bytes = b""
    final_url: str = ""
    error: str | None = None
    error_kind: ErrorKind | None = None
    attempts: int = 0
    # Charset declared by the response, or the one httpx settled on
    encoding: str = "utf-8"

    @property
    def ok(self) -> bool:
        """True for a 2xx response that was received without error."""
        return self.error is None and 200 <= self.status_code < 300

    @property
    def content_type(self) -> str:
        """Lower-cased media type without parameters, or empty string."""
        if self.headers is None:
            return ""
        raw = self.headers.get("Content-Type", "")
        return raw.split(";")[0].strip().lower()

    @property
    def text(self) -> str:
        if not self.content:
            return ""
        try:
            return self.content.decode(self.encoding, errors="replace")
        except LookupError:
            return self.content.decode("utf-8", errors="replace")

    def describe(self) -> str:
        """Short human-readable failure description."""
        if self.error:
            return self.error
        return f"HTTP {self.status_code}"


class ValidationOutcome(NamedTuple):
    valid: bool
    detected_format: ImageFormat | None = None
    failure_reason: str | None = None
    failure_kind: ErrorKind | None = None


class ResolutionResult(NamedTuple):
    """Terminal result of a resolution call.

    ``final_url`` is set only on success and ``reason`` only on failure.
    ``source_url`` is the seed or page that produced the result.
    """

    success: bool
    final_url: str | None = None
    source_url: str | None = None
    reason: str | None = None
    error_kind: ErrorKind | None = None
    attempts: int = 0

    @classmethod
    def succeeded(cls, final_url: str, source_url: str | None) -> "ResolutionResult":
        return cls(True, final_url=final_url, source_url=source_url)

    @classmethod
    def failed(
        cls,
        reason: str,
        source_url: str | None = None,
        error_kind: ErrorKind | None = None,
    ) -> "ResolutionResult":
        return cls(False, source_url=source_url, reason=reason, error_kind=error_kind)
