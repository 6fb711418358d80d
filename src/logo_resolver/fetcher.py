import asyncio
import logging
from typing import Awaitable, Callable

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_incrementing,
)

from .models import ErrorKind, FetchResult


logger = logging.getLogger(__name__)

# Network-level failures worth another attempt
RETRYABLE_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
)


def _is_retryable_response(response: httpx.Response) -> bool:
    return response.status_code == 429 or response.status_code >= 500


def _last_outcome(state: RetryCallState) -> httpx.Response | BaseException:
    """Hand back whatever the final attempt produced instead of raising."""
    outcome = state.outcome
    if outcome.failed:
        return outcome.exception()
    return outcome.result()


class Fetcher:
    """Async HTTP client with a bounded linear-backoff retry policy.

    Failures never escape as exceptions: every outcome, including an
    exhausted retry budget, comes back as a ``FetchResult``.
    """

    # Pretend to be a desktop Chrome so sites serve the regular page
    DEFAULT_HEADERS: dict[str, str] = {
        "User-Agent": (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
            "AppleWebKit/537.36 (KHTML, like Gecko) "
            "Chrome/125.0 Safari/537.36"
        )
    }
    TIMEOUT: float = 20.0
    MAX_ATTEMPTS: int = 3
    # Delay before attempt n+1 is BACKOFF_STEP * n seconds
    BACKOFF_STEP: float = 0.2

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        max_attempts: int | None = None,
        backoff_step: float | None = None,
        timeout: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.max_attempts = max_attempts or self.MAX_ATTEMPTS
        self.backoff_step = self.BACKOFF_STEP if backoff_step is None else backoff_step
        self.timeout = timeout or self.TIMEOUT
        self._sleep = sleep
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            headers=self.DEFAULT_HEADERS,
            timeout=self.timeout,
            follow_redirects=True,
        )

    async def __aenter__(self) -> "Fetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(
        self,
        url: str,
        method: str = "GET",
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> FetchResult:
        """Issue a request, retrying network errors, 429 and 5xx responses."""
        request_headers = {**self.DEFAULT_HEADERS, **(headers or {})}
        attempts = 0

        async def send() -> httpx.Response:
            nonlocal attempts
            attempts += 1
            return await self._client.request(
                method, url, headers=request_headers, params=params
            )

        def log_retry(state: RetryCallState) -> None:
            outcome = state.outcome
            if outcome.failed:
                detail = repr(outcome.exception())
            else:
                detail = f"HTTP {outcome.result().status_code}"
            logger.debug(
                f"{method} {url} attempt {state.attempt_number} failed ({detail}), retrying"
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_incrementing(start=self.backoff_step, increment=self.backoff_step),
            retry=(
                retry_if_exception_type(RETRYABLE_ERRORS)
                | retry_if_result(_is_retryable_response)
            ),
            retry_error_callback=_last_outcome,
            before_sleep=log_retry,
            sleep=self._sleep,
        )

        try:
            outcome = await retrying(send)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            # Not retryable: bad scheme, malformed URL, redirect loop...
            logger.debug(f"{method} {url} failed: {e!r}")
            return FetchResult(
                url,
                error=f"{type(e).__name__}: {e}",
                error_kind=ErrorKind.NETWORK,
                attempts=attempts,
            )

        if isinstance(outcome, BaseException):
            logger.warning(f"{method} {url} gave up after {attempts} attempts: {outcome!r}")
            return FetchResult(
                url,
                error=f"{type(outcome).__name__}: {outcome}",
                error_kind=ErrorKind.NETWORK,
                attempts=attempts,
            )

        result = FetchResult(
            url,
            status_code=outcome.status_code,
            headers=outcome.headers,
            content=outcome.content,
            final_url=str(outcome.url),
            attempts=attempts,
            encoding=outcome.encoding or "utf-8",
        )
        if not result.ok:
            if _is_retryable_response(outcome):
                logger.warning(
                    f"{method} {url} gave up after {attempts} attempts: HTTP {outcome.status_code}"
                )
            result = result._replace(error_kind=ErrorKind.HTTP_STATUS)
        return result

    async def get(self, url: str, **kwargs) -> FetchResult:
        return await self.fetch(url, "GET", **kwargs)

    async def head(self, url: str, **kwargs) -> FetchResult:
        return await self.fetch(url, "HEAD", **kwargs)
