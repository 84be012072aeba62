"""
Async HTTP client for download-source manifests and catalog documents.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import aiohttp

from repack_sync import __version__
from repack_sync.exceptions import NetworkError
from repack_sync.models.manifest import Manifest, parse_manifest

log = logging.getLogger(__name__)


@dataclass
class FetchResponse:
    """A parsed JSON document plus the response metadata needed for revalidation."""

    data: Any
    status: int = 200
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def etag(self) -> Optional[str]:
        return self.headers.get("etag")

    @property
    def not_modified(self) -> bool:
        return self.status == 304


class ManifestClient:
    """
    Async client for fetching JSON documents with retries.

    Features:
    - Conditional requests through If-None-Match
    - Exponential backoff on connection errors, timeouts and 5xx responses
    - A single pooled session for the lifetime of the client
    """

    def __init__(
        self, timeout: int = 30, max_retries: int = 3, base_delay: float = 1.0
    ):
        """
        Initializes the client.

        Args:
            timeout: Total time budget of one request attempt, in seconds.
            max_retries: Attempts per request before giving up.
            base_delay: Base of the exponential backoff between attempts.
        """
        self.timeout = timeout
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "ManifestClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def _initialize_session(self) -> None:
        """Ensures an active aiohttp session is available with compression enabled."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=8,
                ttl_dns_cache=300,
                enable_cleanup_closed=True,
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                headers={
                    "User-Agent": f"repack-sync/{__version__}",
                    "Accept": "application/json",
                    "Accept-Encoding": "gzip, deflate",
                },
                timeout=aiohttp.ClientTimeout(
                    total=self.timeout, connect=min(15, self.timeout)
                ),
            )

    async def close(self) -> None:
        """Gracefully closes the aiohttp session."""
        if self._session and not self._session.closed:
            await self._session.close()

    async def _get_once(self, url: str, headers: dict[str, str]) -> FetchResponse:
        start_time = time.monotonic()
        async with self._session.get(url, headers=headers) as r:
            duration_ms = (time.monotonic() - start_time) * 1000
            log.debug(f"GET {url} -> {r.status} in {duration_ms:.0f} ms")

            response_headers = {k.lower(): v for k, v in r.headers.items()}
            if r.status == 304:
                return FetchResponse(None, r.status, response_headers)

            r.raise_for_status()
            text = await r.text()

        try:
            data = json.loads(text)
        except ValueError as e:
            # Not JSON at all; hand it to schema validation as-is
            log.debug(f"Response from {url} is not valid JSON: {e}")
            data = text
        return FetchResponse(data, r.status, response_headers)

    async def fetch(self, url: str, etag: Optional[str] = None) -> FetchResponse:
        """
        Fetches a JSON document, retrying transient failures.

        Args:
            url: The document URL.
            etag: A previously seen entity tag; when given, the server may answer
                304 and the returned response has `not_modified` set.

        Raises:
            NetworkError: If the request fails after all retries or with a 4xx.
        """
        await self._initialize_session()
        headers = {"If-None-Match": etag} if etag else {}

        for attempt in range(1, self.max_retries + 1):
            try:
                return await self._get_once(url, headers)
            except aiohttp.ClientResponseError as e:
                if e.status < 500:
                    raise NetworkError(
                        f"Request to {url} failed with HTTP {e.status}."
                    ) from e
                error = e
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                error = e

            log.warning(
                f"[yellow]Fetch attempt {attempt}/{self.max_retries} for {url} "
                f"failed: {str(error) or type(error).__name__}[/yellow]"
            )
            if attempt == self.max_retries:
                raise NetworkError(
                    f"Failed to fetch {url} after {self.max_retries} attempts."
                ) from error
            await asyncio.sleep(self.base_delay * 2 ** (attempt - 1))

        raise NetworkError(f"Fetching {url} failed unexpectedly.")

    async def fetch_manifest(
        self, url: str, etag: Optional[str] = None
    ) -> tuple[Optional[Manifest], FetchResponse]:
        """
        Fetches and validates a download-source manifest.

        Returns:
            The validated manifest (None when the server answered 304) and
            the raw response.

        Raises:
            NetworkError: If the manifest could not be fetched.
            ManifestValidationError: If the document does not match the schema.
        """
        response = await self.fetch(url, etag=etag)
        if response.not_modified:
            return None, response
        return parse_manifest(response.data), response
