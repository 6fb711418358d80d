import json
import logging

from .fetcher import Fetcher
from .models import ErrorKind, ResolutionResult
from .validator import FormatValidator, has_valid_extension


logger = logging.getLogger(__name__)


class ArchiveResolver:
    """Looks up the closest Wayback Machine snapshot of an address."""

    ARCHIVE_ENDPOINT: str = "https://archive.org/wayback/available"

    def __init__(
        self,
        fetcher: Fetcher,
        validator: FormatValidator,
        endpoint: str | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.validator = validator
        self.endpoint = endpoint or self.ARCHIVE_ENDPOINT

    async def find_snapshot(self, original_url: str) -> ResolutionResult:
        """Closest archived replacement for ``original_url``.

        Archived image addresses are validated before being reported. Any
        other archived address is returned unchecked so the caller can treat
        it as a page.
        """
        logger.debug(f"Looking up archived copy of {original_url}")
        # httpx percent-encodes query parameters
        response = await self.fetcher.get(self.endpoint, params={"url": original_url})
        if not response.ok:
            return ResolutionResult.failed(
                f"Archive API {response.describe()}",
                source_url=original_url,
                error_kind=response.error_kind or ErrorKind.HTTP_STATUS,
            )

        try:
            payload = json.loads(response.content)
        except ValueError as e:
            return ResolutionResult.failed(
                f"Could not parse archive response: {e}",
                source_url=original_url,
                error_kind=ErrorKind.ARCHIVE_NOT_FOUND,
            )

        archived_url = self._closest_url(payload)
        if archived_url is None:
            return ResolutionResult.failed(
                "No archive snapshot found",
                source_url=original_url,
                error_kind=ErrorKind.ARCHIVE_NOT_FOUND,
            )

        if has_valid_extension(archived_url):
            outcome = await self.validator.inspect_url(archived_url)
            if not outcome.valid:
                return ResolutionResult.failed(
                    f"Archived copy is not a valid image: {outcome.failure_reason}",
                    source_url=original_url,
                    error_kind=ErrorKind.ARCHIVE_NOT_FOUND,
                )

        logger.info(f"Found archived copy of {original_url}: {archived_url}")
        return ResolutionResult.succeeded(archived_url, source_url=original_url)

    @staticmethod
    def _closest_url(payload: object) -> str | None:
        """``archived_snapshots.closest.url``, tolerating any other shape."""
        snapshots = payload.get("archived_snapshots") if isinstance(payload, dict) else None
        closest = snapshots.get("closest") if isinstance(snapshots, dict) else None
        url = closest.get("url") if isinstance(closest, dict) else None
        if not isinstance(url, str) or not url.strip():
            return None
        return url.strip()
