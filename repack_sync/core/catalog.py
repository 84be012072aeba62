"""
Loads the reference catalog and the title-hash mapping used for matching.
"""

import logging
from typing import Any

from repack_sync.api.client import ManifestClient
from repack_sync.exceptions import NetworkError
from repack_sync.storage.cache import DocumentCache

from .matcher import CatalogIndex, CatalogMatcher

log = logging.getLogger(__name__)


class CatalogLoader:
    """
    Fetches both catalog documents through the file cache and builds a fresh
    matcher from them. A URL left unset yields an empty table.
    """

    def __init__(
        self,
        client: ManifestClient,
        cache: DocumentCache,
        catalog_url: str = "",
        title_hash_url: str = "",
    ):
        self.client = client
        self.cache = cache
        self.catalog_url = catalog_url
        self.title_hash_url = title_hash_url

    async def _load_document(self, url: str) -> dict[str, Any]:
        """Returns a cached document, revalidating or refetching it when stale."""
        cached = self.cache.get(url)
        if cached and cached.fresh:
            log.debug(f"Using cached catalog document for {url}")
            return cached.value

        response = await self.client.fetch(url, etag=cached.etag if cached else None)
        if response.not_modified and cached:
            log.debug(f"Catalog document unchanged at {url}")
            self.cache.touch(url)
            return cached.value

        if not isinstance(response.data, dict):
            raise NetworkError(f"Catalog document at {url} is not a JSON object.")

        self.cache.set(url, response.data, response.etag)
        return response.data

    async def load(self) -> CatalogMatcher:
        """Builds a matcher from the current catalog documents."""
        self.cache.cleanup_expired()

        title_hash_mapping: dict[str, list] = {}
        if self.title_hash_url:
            document = await self._load_document(self.title_hash_url)
            title_hash_mapping = {
                title_hash: ids
                for title_hash, ids in document.items()
                if isinstance(ids, list)
            }
            if dropped := len(document) - len(title_hash_mapping):
                log.warning(
                    f"[yellow]Ignored {dropped} title hashes without an id "
                    "list.[/yellow]"
                )

        index = CatalogIndex.empty()
        if self.catalog_url:
            index = CatalogIndex.from_document(
                await self._load_document(self.catalog_url)
            )

        log.info(
            f"Loaded catalog with {len(index)} entries and "
            f"{len(title_hash_mapping)} title hashes."
        )
        return CatalogMatcher(title_hash_mapping, index)
