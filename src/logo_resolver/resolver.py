import asyncio
import logging
from urllib.parse import urlparse

from .archive import ArchiveResolver
from .extractor import extract_candidates
from .fetcher import Fetcher
from .models import (
    Candidate,
    Classification,
    ErrorKind,
    ResolutionResult,
    ValidationOutcome,
)
from .validator import (
    CONTENT_TYPE_FORMATS,
    FormatValidator,
    has_valid_extension,
    inspect_bytes,
)


logger = logging.getLogger(__name__)


class _ResolveContext:
    """State scoped to one ``resolve`` call."""

    def __init__(self, seed: str) -> None:
        self.seed = seed
        self.attempts = 0

    def next_attempt(self) -> int:
        self.attempts += 1
        return self.attempts


def _is_absolute_http(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


class LogoResolver:
    """Resolves a seed address to one validated, directly fetchable image.

    A seed that looks like an image is validated directly. Anything else is
    fetched as a page and its image candidates are tried one by one in rank
    order. When the live web fails, the Wayback Machine is consulted once
    for the seed.
    """

    def __init__(
        self,
        fetcher: Fetcher | None = None,
        *,
        archive_endpoint: str | None = None,
        archive_candidates: bool = False,
    ) -> None:
        self.fetcher = fetcher or Fetcher()
        self.validator = FormatValidator(self.fetcher)
        self.archive = ArchiveResolver(self.fetcher, self.validator, archive_endpoint)
        # Also look up failing candidate images in the archive
        self.archive_candidates = archive_candidates

    async def __aenter__(self) -> "LogoResolver":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.fetcher.aclose()

    @staticmethod
    def classify(url: str) -> Classification:
        if has_valid_extension(url):
            return Classification.DIRECT_IMAGE
        return Classification.PAGE

    async def is_valid_image_url(self, url: str) -> bool:
        return await self.validator.validate_by_url(url)

    async def resolve(self, seed: str, timeout: float | None = None) -> ResolutionResult:
        """Resolve ``seed`` to an image URL, never raising.

        ``timeout`` bounds the whole call in seconds. Cancellation of the
        calling task propagates as usual.
        """
        if not seed or not seed.strip():
            return ResolutionResult.failed("Empty URL", error_kind=ErrorKind.INPUT)

        url = seed.strip()
        if not _is_absolute_http(url):
            return ResolutionResult.failed(
                f"Malformed URL: {url}", source_url=url, error_kind=ErrorKind.INPUT
            )

        context = _ResolveContext(url)
        try:
            if timeout is None:
                result = await self._resolve(context)
            else:
                result = await asyncio.wait_for(self._resolve(context), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Resolution of {url} timed out after {timeout}s")
            result = ResolutionResult.failed(
                f"Timed out after {timeout}s",
                source_url=url,
                error_kind=ErrorKind.TIMEOUT,
            )

        if result.success:
            logger.info(
                f"Resolved {url} -> {result.final_url} ({context.attempts} validations)"
            )
        else:
            logger.info(f"Could not resolve {url}: {result.reason}")
        return result._replace(attempts=context.attempts)

    async def _resolve(self, context: _ResolveContext) -> ResolutionResult:
        if self.classify(context.seed) is Classification.DIRECT_IMAGE:
            return await self._resolve_direct(context)
        return await self._resolve_page(context)

    async def _resolve_direct(self, context: _ResolveContext) -> ResolutionResult:
        url = context.seed
        outcome = await self._inspect(context, url)
        if outcome.valid:
            return ResolutionResult.succeeded(url, source_url=url)

        archived = await self.archive.find_snapshot(url)
        if archived.success:
            return archived

        return ResolutionResult.failed(
            "Direct URL invalid and no archived copy found",
            source_url=url,
            error_kind=outcome.failure_kind,
        )

    async def _resolve_page(self, context: _ResolveContext) -> ResolutionResult:
        url = context.seed
        live = await self._extract_from_page(context, url)
        if live.success:
            return live

        archived = await self.archive.find_snapshot(url)
        if archived.success:
            if has_valid_extension(archived.final_url):
                # The archive already validated this image
                return archived
            from_archive = await self._extract_from_page(context, archived.final_url)
            if from_archive.success:
                return from_archive

        return ResolutionResult.failed(
            "Could not resolve an image from page or archive",
            source_url=url,
            error_kind=live.error_kind,
        )

    async def _extract_from_page(
        self, context: _ResolveContext, page_url: str
    ) -> ResolutionResult:
        """First valid candidate image on ``page_url``."""
        logger.debug(f"Fetching page: {page_url}")
        response = await self.fetcher.get(page_url)
        if not response.ok:
            return ResolutionResult.failed(
                f"Page fetch failed: {response.describe()}",
                source_url=page_url,
                error_kind=response.error_kind,
            )

        try:
            candidates = extract_candidates(response.text, response.final_url or page_url)
        except Exception as e:
            logger.error(f"HTML parsing failed for {page_url}: {e}")
            candidates = []

        if not candidates:
            return ResolutionResult.failed(
                "No image candidates found",
                source_url=page_url,
                error_kind=ErrorKind.NO_CANDIDATES,
            )

        last_failure = None
        for i, candidate in enumerate(candidates, 1):
            logger.debug(
                f"Trying candidate #{i} ({candidate.strategy.value}): {candidate.url}"
            )
            result = await self._validate_candidate(context, candidate)
            if result.success:
                logger.info(f"Selected image: {result.final_url} (candidate #{i})")
                return ResolutionResult.succeeded(result.final_url, source_url=page_url)
            last_failure = result

        return ResolutionResult.failed(
            "No valid image candidates found",
            source_url=page_url,
            error_kind=last_failure.error_kind,
        )

    async def _validate_candidate(
        self, context: _ResolveContext, candidate: Candidate
    ) -> ResolutionResult:
        if has_valid_extension(candidate.url):
            outcome = await self._inspect(context, candidate.url)
            if outcome.valid:
                return ResolutionResult.succeeded(candidate.url, source_url=candidate.url)
            if self.archive_candidates:
                archived = await self.archive.find_snapshot(candidate.url)
                if archived.success and has_valid_extension(archived.final_url):
                    return archived
        else:
            outcome = await self._sniff(context, candidate.url)
            if outcome.valid:
                return ResolutionResult.succeeded(candidate.url, source_url=candidate.url)

        return ResolutionResult.failed(
            outcome.failure_reason,
            source_url=candidate.url,
            error_kind=outcome.failure_kind,
        )

    async def _inspect(self, context: _ResolveContext, url: str) -> ValidationOutcome:
        attempt = context.next_attempt()
        logger.debug(f"[try #{attempt}] Validating URL: {url}")
        return await self.validator.inspect_url(url)

    async def _sniff(self, context: _ResolveContext, url: str) -> ValidationOutcome:
        """Validate an extensionless URL by its content type and bytes."""
        attempt = context.next_attempt()
        logger.debug(f"[try #{attempt}] Sniffing content type of: {url}")

        head = await self.fetcher.head(url)
        content_type = head.content_type if head.ok else ""
        if content_type not in CONTENT_TYPE_FORMATS:
            # Some servers block or misreport HEAD, let the GET decide
            content_type = ""

        response = await self.fetcher.get(url)
        if not response.ok:
            return ValidationOutcome(
                False,
                failure_reason=f"Fetch failed: {response.describe()}",
                failure_kind=response.error_kind,
            )
        return inspect_bytes(response.content, content_type or response.content_type)


# Process-wide resolver backing the tool functions, and the loop it serves
_default_resolver = None
_default_loop = None


def get_default_resolver() -> LogoResolver:
    """Get the shared resolver instance (singleton pattern).

    The resolver's connection pool belongs to the event loop that first
    uses it, so calling from a different running loop (a second
    ``asyncio.run()``) builds a fresh resolver for that loop.
    """
    global _default_resolver, _default_loop
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        loop = None

    if _default_resolver is None or (loop is not None and loop is not _default_loop):
        _default_resolver = LogoResolver()
        _default_loop = loop
    return _default_resolver


async def resolve_image(seed: str, timeout: float | None = None) -> ResolutionResult:
    """Resolve a final direct image URL from a page or URL.

    Extracts og:image, link icons, img tags and JSON-LD images from pages
    and falls back to the Internet Archive if needed.
    """
    return await get_default_resolver().resolve(seed, timeout=timeout)


async def is_valid_image_url(url: str) -> bool:
    """Check that the URL resolves to an image matching its extension (svg, png, jpg, jpeg)."""
    return await get_default_resolver().is_valid_image_url(url)
