"""API Request Executor module.

Handles HTTP request execution with retry logic, rate limiting and response
processing for the catalog endpoints. Failures are raised as catalog errors
so callers never have to interpret a None.
"""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
import time
import urllib.parse
from enum import StrEnum
from typing import TYPE_CHECKING, Any

import aiohttp

from core.exceptions import CatalogRateLimitedError, CatalogUnavailableError

if TYPE_CHECKING:
    from services.api.api_base import EnhancedRateLimiter


# Constants
WAIT_TIME_LOG_THRESHOLD = 0.1
HTTP_TOO_MANY_REQUESTS = 429
HTTP_SERVER_ERROR = 500
API_RESPONSE_LOG_LIMIT = 500
DEFAULT_RETRY_AFTER = 60.0
MAX_RETRY_DELAY = 120.0
SECURE_RANDOM = secrets.SystemRandom()

RETRYABLE_ERRORS = (
    aiohttp.ClientConnectorError,
    aiohttp.ServerDisconnectedError,
    asyncio.TimeoutError,
)


class ResponseKind(StrEnum):
    """How a response body should be decoded."""

    JSON = "json"
    TEXT = "text"
    BYTES = "bytes"


class ApiRequestExecutor:
    """Executes HTTP requests with retry logic and rate limiting.

    Handles all low-level HTTP communication including:
    - Request preparation (headers, timeouts)
    - Rate limiting coordination
    - Retry with exponential backoff
    - Response decoding and status mapping
    """

    def __init__(
        self,
        *,
        rate_limiter: EnhancedRateLimiter,
        console_logger: logging.Logger,
        error_logger: logging.Logger,
        default_max_retries: int = 0,
        default_retry_delay: float = 1.0,
    ) -> None:
        """Initialize the API request executor.

        Args:
            rate_limiter: Moving-window limiter shared by every catalog request
            console_logger: Logger for info/debug messages
            error_logger: Logger for errors/warnings
            default_max_retries: Retry count for retryable failures
            default_retry_delay: Base delay between retries (seconds)
        """
        self.rate_limiter = rate_limiter
        self.console_logger = console_logger
        self.error_logger = error_logger
        self.default_max_retries = default_max_retries
        self.default_retry_delay = default_retry_delay

        # Session managed externally, set via set_session()
        self.session: aiohttp.ClientSession | None = None

        self.request_count = 0
        self.call_durations: list[float] = []

    def set_session(self, session: aiohttp.ClientSession | None) -> None:
        """Set the aiohttp session for making requests."""
        self.session = session

    async def get_json(
        self,
        url: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        """GET a URL and decode a JSON object body."""
        data = await self.execute_request(url, params, headers, ResponseKind.JSON)
        if not isinstance(data, dict):
            msg = f"Expected a JSON object from {url}, got {type(data).__name__}"
            raise CatalogUnavailableError(msg)
        return data

    async def get_text(
        self,
        url: str,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> str:
        """GET a URL and return the decoded text body."""
        return str(await self.execute_request(url, params, headers, ResponseKind.TEXT))

    async def get_bytes(self, url: str, headers: dict[str, str] | None = None) -> bytes:
        """GET a URL and return the raw body."""
        body = await self.execute_request(url, None, headers, ResponseKind.BYTES)
        return body if isinstance(body, bytes) else bytes(body)

    async def execute_request(
        self,
        url: str,
        params: dict[str, str] | None,
        headers: dict[str, str] | None,
        kind: ResponseKind,
        max_retries: int | None = None,
    ) -> Any:
        """Execute a request with rate limiting and retry logic.

        Args:
            url: Request URL
            params: Query parameters
            headers: Headers merged over the session defaults
            kind: How to decode the body
            max_retries: Override default retry count

        Returns:
            Decoded body (dict/list, str or bytes)

        Raises:
            CatalogRateLimitedError: On HTTP 429 once retries are exhausted
            CatalogUnavailableError: On any other network or HTTP failure

        """
        retries = max_retries if max_retries is not None else self.default_max_retries
        log_url = self._build_log_url(url, params)
        last_error: CatalogUnavailableError | None = None

        for attempt in range(retries + 1):
            try:
                return await self._execute_single_request(url, params, headers, kind, attempt, log_url)
            except CatalogUnavailableError as e:
                last_error = e
                retryable = isinstance(e, CatalogRateLimitedError) or (e.status or 0) >= HTTP_SERVER_ERROR
            except (TimeoutError, aiohttp.ClientError) as e:
                last_error = CatalogUnavailableError(f"{type(e).__name__}: {e}")
                last_error.__cause__ = e
                retryable = isinstance(e, RETRYABLE_ERRORS)

            if attempt >= retries or not retryable:
                break
            await self._backoff(attempt, retries, last_error)

        assert last_error is not None
        self._log_final_failure(log_url, last_error)
        raise last_error

    async def _backoff(self, attempt: int, max_retries: int, error: CatalogUnavailableError) -> None:
        if isinstance(error, CatalogRateLimitedError):
            delay = min(error.retry_after, MAX_RETRY_DELAY)
        else:
            delay = min(
                self.default_retry_delay * (2**attempt) * (0.8 + SECURE_RANDOM.random() * 0.4),
                MAX_RETRY_DELAY,
            )
        self.console_logger.warning(
            "%s, retrying %d/%d in %.2fs",
            error,
            attempt + 1,
            max_retries,
            delay,
        )
        await asyncio.sleep(delay)

    @staticmethod
    def _build_log_url(url: str, params: dict[str, str] | None) -> str:
        """Build URL string for logging purposes."""
        return url + (f"?{urllib.parse.urlencode(params or {}, safe=':/')}" if params else "")

    async def _execute_single_request(
        self,
        url: str,
        params: dict[str, str] | None,
        headers: dict[str, str] | None,
        kind: ResponseKind,
        attempt: int,
        log_url: str,
    ) -> Any:
        """Perform a single request attempt."""
        session = self._ensure_session()
        start_time = time.monotonic()

        wait_time = await self.rate_limiter.acquire()
        if wait_time > WAIT_TIME_LOG_THRESHOLD:
            self.console_logger.debug("Waited %.3fs for rate limiting", wait_time)

        self.request_count += 1
        async with session.get(url, params=params, headers=headers) as response:
            elapsed = time.monotonic() - start_time
            self.call_durations.append(elapsed)
            return await self._process_response(response, kind, attempt, log_url, elapsed)

    def _ensure_session(self) -> aiohttp.ClientSession:
        """Return the live session, raise if there is none."""
        if self.session is None or self.session.closed:
            msg = "HTTP session not initialized or closed"
            raise CatalogUnavailableError(msg)
        return self.session

    async def _process_response(
        self,
        response: aiohttp.ClientResponse,
        kind: ResponseKind,
        attempt: int,
        log_url: str,
        elapsed: float,
    ) -> Any:
        """Map the HTTP status to an error or decode the body."""
        status = response.status
        self.console_logger.debug(
            "Request (Attempt %d): %s - Status: %d (%.3fs)",
            attempt + 1,
            log_url,
            status,
            elapsed,
        )

        if status == HTTP_TOO_MANY_REQUESTS:
            retry_after = self._parse_retry_after(response.headers.get("Retry-After"))
            msg = f"Rate limited by catalog (retry after {retry_after:.0f}s)"
            raise CatalogRateLimitedError(msg, retry_after=retry_after)

        if not response.ok:
            snippet = await self._read_snippet(response)
            self.error_logger.warning(
                "Request failed with status %d. URL: %s. Snippet: %s",
                status,
                log_url,
                snippet,
            )
            msg = f"HTTP {status} from {log_url}"
            raise CatalogUnavailableError(msg, status=status)

        if kind is ResponseKind.BYTES:
            return await response.read()

        text = await response.text(encoding="utf-8", errors="ignore")
        if self.console_logger.isEnabledFor(logging.DEBUG):
            self.console_logger.debug("Response body: %s", text[:API_RESPONSE_LOG_LIMIT])
        if kind is ResponseKind.TEXT:
            return text

        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            msg = f"Invalid JSON from {log_url}: {e}"
            raise CatalogUnavailableError(msg, status=status) from e

    @staticmethod
    def _parse_retry_after(value: str | None) -> float:
        try:
            return max(0.0, float(value)) if value else DEFAULT_RETRY_AFTER
        except ValueError:
            return DEFAULT_RETRY_AFTER

    async def _read_snippet(self, response: aiohttp.ClientResponse) -> str:
        try:
            text: str = await response.text(encoding="utf-8", errors="ignore")
        except (OSError, ValueError, RuntimeError, aiohttp.ClientError) as e:
            self.error_logger.warning("Failed to read response body: %s", e)
            return f"[Error Reading Response: {e}]"
        return text[:API_RESPONSE_LOG_LIMIT]

    def _log_final_failure(self, log_url: str, exception: Exception) -> None:
        """Log the final failure after all retries exhausted."""
        self.error_logger.error(
            "Request failed for URL: %s. Last exception: %s",
            log_url,
            exception,
        )

    def get_stats(self) -> dict[str, Any]:
        """Summarize request counts and timings."""
        durations = self.call_durations
        return {
            "requests": self.request_count,
            "avg_duration": sum(durations) / len(durations) if durations else 0.0,
            "rate_limiter": self.rate_limiter.get_stats(),
        }
