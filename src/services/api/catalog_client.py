"""Catalog API client.

Search goes through the public search page: the results are embedded as
Next.js data in a ``__NEXT_DATA__`` script tag. Track details come from the
JSON API and need a bearer token, which the same page hands out as an
anonymous session.
"""

from __future__ import annotations

import asyncio
import json
import ssl
import time
import urllib.parse
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import aiohttp
import certifi
from bs4 import BeautifulSoup
from pydantic import ValidationError

from core.exceptions import CatalogNotFoundError, CatalogUnavailableError
from services.api.api_base import EnhancedRateLimiter
from services.api.catalog_models import CatalogTrack
from services.api.request_executor import ApiRequestExecutor

if TYPE_CHECKING:
    import logging

    from core.models.track_models import CatalogCandidate, CatalogConfig, FullCatalogTags
    from core.tracks.candidate_scorer import CandidateScorer

HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
DEFAULT_TOKEN_TTL = 3600
TOKEN_PROBE_QUERY = "test"
NEXT_DATA_ID = "__NEXT_DATA__"


@dataclass
class AnonymousToken:
    """Bearer token scraped from the search page's anonymous session."""

    access_token: str
    expires_in: int = DEFAULT_TOKEN_TTL
    obtained_at: float = field(default_factory=time.monotonic)

    def is_expired(self, margin_seconds: int) -> bool:
        return time.monotonic() - self.obtained_at >= self.expires_in - margin_seconds


def extract_next_data(html: str) -> dict[str, Any]:
    """Return the JSON embedded in a page's __NEXT_DATA__ script.

    Raises:
        CatalogUnavailableError: If the script is missing or is not valid JSON

    """
    script = BeautifulSoup(html, "html.parser").find("script", id=NEXT_DATA_ID)
    if script is None or not script.string:
        msg = "No __NEXT_DATA__ script found in catalog page"
        raise CatalogUnavailableError(msg)
    try:
        data = json.loads(script.string)
    except json.JSONDecodeError as e:
        msg = f"Error parsing __NEXT_DATA__: {e}"
        raise CatalogUnavailableError(msg) from e
    if not isinstance(data, dict):
        msg = "__NEXT_DATA__ is not a JSON object"
        raise CatalogUnavailableError(msg)
    return data


def _dig(data: Any, *path: str | int) -> Any:
    for step in path:
        if isinstance(step, int):
            if not isinstance(data, list) or len(data) <= step:
                return None
        elif not isinstance(data, dict):
            return None
        data = data[step] if isinstance(step, int) else data.get(step)
    return data


class CatalogClient:
    """Async client for catalog search, track details and artwork."""

    def __init__(
        self,
        config: CatalogConfig,
        scorer: CandidateScorer,
        console_logger: logging.Logger,
        error_logger: logging.Logger,
    ) -> None:
        """Initialize the catalog client.

        Args:
            config: Endpoint URLs, timeouts, rate limits and image sizes
            scorer: Scorer used to rank search results
            console_logger: Logger for info/debug messages
            error_logger: Logger for errors/warnings

        """
        self.config = config
        self.scorer = scorer
        self.console_logger = console_logger
        self.error_logger = error_logger

        self.rate_limiter = EnhancedRateLimiter(config.requests_per_window, config.window_seconds)
        self.executor = ApiRequestExecutor(
            rate_limiter=self.rate_limiter,
            console_logger=console_logger,
            error_logger=error_logger,
            default_max_retries=config.max_retries,
            default_retry_delay=config.retry_delay_seconds,
        )
        self.session: aiohttp.ClientSession | None = None
        self._token: AnonymousToken | None = None
        self._token_lock = asyncio.Lock()

    async def __aenter__(self) -> CatalogClient:
        await self.initialize()
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()

    async def initialize(self, force: bool = False) -> None:
        """Create the aiohttp ClientSession used by every request."""
        if force and self.session and not self.session.closed:
            await self.session.close()
            self.session = None

        if self.session is None:
            self.session = self._create_client_session()
            self.executor.set_session(self.session)
            self.console_logger.info("Catalog session initialized with User-Agent: %s", self.config.user_agent)

    def _create_client_session(self) -> aiohttp.ClientSession:
        """Create a new aiohttp ClientSession with certifi-backed SSL."""
        timeout = aiohttp.ClientTimeout(
            total=self.config.timeout_seconds,
            connect=self.config.connect_timeout_seconds,
            sock_connect=self.config.connect_timeout_seconds,
        )
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(limit_per_host=4, ttl_dns_cache=300, ssl=ssl_context)
        headers = {
            "User-Agent": self.config.user_agent,
            "Accept": "text/html,application/json;q=0.9,*/*;q=0.8",
            "Accept-Encoding": "gzip, deflate",
        }
        return aiohttp.ClientSession(timeout=timeout, connector=connector, headers=headers)

    async def close(self) -> None:
        """Close the session and log request statistics."""
        if self.session is None or self.session.closed:
            return

        stats = self.executor.get_stats()
        self.console_logger.info(
            "Catalog requests: %d | Avg Wait: %.3fs | Avg Duration: %.3fs",
            stats["requests"],
            stats["rate_limiter"]["avg_wait_time"],
            stats["avg_duration"],
        )
        await self.session.close()
        self.session = None
        self.executor.set_session(None)
        self.console_logger.info("Catalog session closed")

    # Search

    async def search_tracks(self, title: str, artist: str) -> list[CatalogTrack]:
        """Return the raw tracks of the first search results page for "artist title".

        Raises:
            CatalogUnavailableError: On network failure or an unreadable page

        """
        query = f"{artist} {title}".strip()
        html = await self.executor.get_text(
            self.config.search_url,
            params={"q": query, "per_page": str(self.config.search_overfetch)},
        )
        results = _dig(extract_next_data(html), "props", "pageProps", "dehydratedState", "queries", 0, "state", "data", "data")
        if results is None:
            msg = "Search results not found in __NEXT_DATA__"
            raise CatalogUnavailableError(msg)

        tracks: list[CatalogTrack] = []
        for item in results if isinstance(results, list) else []:
            try:
                tracks.append(CatalogTrack.model_validate(item))
            except ValidationError as e:
                item_id = item.get("track_id", item.get("id")) if isinstance(item, dict) else None
                self.console_logger.debug("Skipping unparseable search result %s: %s", item_id, e.error_count())
        self.console_logger.debug("Search '%s' returned %d tracks", query, len(tracks))
        return tracks

    async def search_candidates(
        self,
        title: str,
        artist: str,
        duration_hint_seconds: float | None,
        max_results: int,
        min_score: float,
    ) -> list[CatalogCandidate]:
        """Search and return scored candidates above min_score, best first."""
        tracks = await self.search_tracks(title, artist)
        candidates = [track.to_candidate(self.config.thumbnail_size) for track in tracks]
        return self.scorer.rank(title, artist, duration_hint_seconds, candidates, max_results, min_score)

    # Details

    async def get_track_details(self, catalog_id: int) -> FullCatalogTags:
        """Fetch one track from the JSON API.

        Raises:
            CatalogNotFoundError: If the id does not exist or is restricted
            CatalogUnavailableError: On any other failure

        """
        url = f"{self.config.api_base_url.rstrip('/')}/catalog/tracks/{catalog_id}"
        try:
            payload = await self._get_authorized_json(url)
        except CatalogUnavailableError as e:
            if e.status in {HTTP_NOT_FOUND, HTTP_FORBIDDEN}:
                raise CatalogNotFoundError(catalog_id) from e
            raise

        try:
            track = CatalogTrack.model_validate(payload)
        except ValidationError as e:
            msg = f"Unexpected track payload for {catalog_id}: {e.error_count()} errors"
            raise CatalogUnavailableError(msg) from e
        return track.to_full_tags(self.config.artwork_size)

    async def _get_authorized_json(self, url: str) -> dict[str, Any]:
        token = await self.get_token()
        try:
            return await self.executor.get_json(url, headers=self._auth_headers(token))
        except CatalogUnavailableError as e:
            if e.status != HTTP_UNAUTHORIZED:
                raise
        self.console_logger.debug("Catalog token rejected, refreshing")
        token = await self.get_token(force_refresh=True)
        return await self.executor.get_json(url, headers=self._auth_headers(token))

    @staticmethod
    def _auth_headers(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}", "Accept": "application/json"}

    async def get_token(self, force_refresh: bool = False) -> str:
        """Return a valid anonymous bearer token, scraping a new one when needed."""
        async with self._token_lock:
            margin = self.config.token_refresh_margin_seconds
            if not force_refresh and self._token and not self._token.is_expired(margin):
                return self._token.access_token

            html = await self.executor.get_text(self.config.search_url, params={"q": TOKEN_PROBE_QUERY})
            session = _dig(extract_next_data(html), "props", "pageProps", "anonSession")
            access_token = _dig(session, "access_token")
            if not isinstance(access_token, str) or not access_token:
                msg = "access_token not found in __NEXT_DATA__"
                raise CatalogUnavailableError(msg)

            expires_in = _dig(session, "expires_in")
            self._token = AnonymousToken(
                access_token=access_token,
                expires_in=expires_in if isinstance(expires_in, int) else DEFAULT_TOKEN_TTL,
            )
            self.console_logger.debug("Obtained anonymous catalog token (expires in %ds)", self._token.expires_in)
            return access_token

    # Artwork

    async def download_artwork(self, url: str) -> bytes:
        """Download cover image bytes.

        Raises:
            CatalogUnavailableError: On failure or an empty body

        """
        data = await self.executor.get_bytes(url, headers={"Accept": "image/*"})
        if not data:
            msg = f"Empty artwork response from {urllib.parse.urlsplit(url).netloc}"
            raise CatalogUnavailableError(msg)
        self.console_logger.debug("Downloaded artwork (%d bytes)", len(data))
        return data
