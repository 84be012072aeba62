"""
Registers new download sources and refreshes existing ones.
"""

import logging
from datetime import timedelta

from repack_sync.api.client import ManifestClient
from repack_sync.exceptions import DuplicateSourceError
from repack_sync.models.records import DownloadSource, DownloadSourceStatus, utc_now
from repack_sync.storage.store import LevelStore

from .ids import IdAllocator
from .ingestor import RepackIngestor
from .matcher import CatalogMatcher

log = logging.getLogger(__name__)


async def find_source_by_url(store: LevelStore, url: str) -> DownloadSource | None:
    """Returns the stored source registered for exactly this URL, if any."""
    async for _, value in store.download_sources.iterate():
        if value.get("url") == url:
            return DownloadSource.from_record(value)
    return None


class SourceImporter:
    """
    Imports a manifest URL as a new download source together with all of its
    repacks. Imports into the same store must not run concurrently; the
    `SyncService` gate serializes them.
    """

    def __init__(
        self,
        store: LevelStore,
        client: ManifestClient,
        allocator: IdAllocator,
        ingestor: RepackIngestor,
    ):
        self.store = store
        self.client = client
        self.allocator = allocator
        self.ingestor = ingestor

    async def import_source(
        self,
        url: str,
        matcher: CatalogMatcher,
        fail_on_duplicate: bool = False,
    ) -> DownloadSource | None:
        """
        Fetches the manifest at `url` and stores it as a new source.

        Args:
            url: The manifest URL.
            matcher: Catalog matcher used for the source's repacks.
            fail_on_duplicate: Raise instead of returning None when the URL
                is already registered.

        Returns:
            The new source with its aggregated catalog ids, or None if the URL
            was already imported.

        Raises:
            DuplicateSourceError: If the URL exists and `fail_on_duplicate` is set.
            NetworkError: If the manifest could not be fetched.
            ManifestValidationError: If the manifest is malformed.
            StorageError: If writing the source or its repacks fails.
        """
        existing = await find_source_by_url(self.store, url)
        if existing:
            if fail_on_duplicate:
                raise DuplicateSourceError(
                    f"Download source with this URL already exists (id {existing.id})."
                )
            log.info(f"Skipping {url}: already imported as source {existing.id}.")
            return None

        manifest, response = await self.client.fetch_manifest(url)

        now = utc_now()
        source = DownloadSource(
            id=await self.allocator.next_id(self.store.download_sources),
            url=url,
            name=manifest.name,
            etag=response.etag,
            status=DownloadSourceStatus.UP_TO_DATE,
            download_count=len(manifest.downloads),
            object_ids=[],
            created_at=now,
            updated_at=now,
        )
        await self.store.download_sources.put(source.key, source.to_record())
        log.debug(f"Registered source {source.id} for {url}")

        try:
            source.object_ids = await self.ingestor.ingest(
                source, manifest.downloads, matcher
            )
        finally:
            # The ingestor consumed repack ids; drop the cached maxima so the
            # next import re-derives them from the store
            self.allocator.invalidate()

        log.info(
            f"[green]✓ Imported '{source.name}' with "
            f"{source.download_count} repacks.[/green]"
        )
        return source


class SourceRefresher:
    """
    Re-reads the manifest of a stored source and updates its mutable fields.
    Repacks are not re-ingested here; new entries go through
    `SourceSynchronizer`.
    """

    def __init__(self, store: LevelStore, client: ManifestClient):
        self.store = store
        self.client = client

    async def refresh(
        self, existing_source: DownloadSource, url: str
    ) -> DownloadSource:
        """
        Fetches the manifest at `url` and rewrites the source record.

        Name, entity tag, status and download count are replaced and the
        update timestamp advances; the id, URL, creation timestamp and catalog
        ids of `existing_source` are preserved.
        """
        manifest, response = await self.client.fetch_manifest(url)
        return await self.apply(
            existing_source, manifest.name, response.etag, len(manifest.downloads)
        )

    async def apply(
        self,
        existing_source: DownloadSource,
        name: str,
        etag: str | None,
        download_count: int,
    ) -> DownloadSource:
        """Writes the refreshed fields of a source whose manifest is at hand."""
        updated_at = utc_now()
        if updated_at <= existing_source.updated_at:
            updated_at = existing_source.updated_at + timedelta(microseconds=1)

        updated_source = existing_source.model_copy(
            update={
                "name": name,
                "etag": etag,
                "status": DownloadSourceStatus.UP_TO_DATE,
                "download_count": download_count,
                "updated_at": updated_at,
            }
        )
        await self.store.download_sources.put(
            updated_source.key, updated_source.to_record()
        )
        return updated_source
