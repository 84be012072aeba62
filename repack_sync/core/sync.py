"""
Keeps stored download sources in step with their remote manifests, and
exposes every source operation behind a single-flight gate.
"""

import asyncio
import logging
from pathlib import Path
from typing import Iterable, Optional

from repack_sync.api.client import ManifestClient
from repack_sync.exceptions import RepackSyncError, SourceNotFoundError
from repack_sync.models.config import SyncConfig
from repack_sync.models.records import DownloadSource, DownloadSourceStatus, Repack
from repack_sync.models.stats import SourceSyncResult, SyncReport
from repack_sync.storage.cache import DocumentCache
from repack_sync.storage.store import LevelStore

from .catalog import CatalogLoader
from .ids import IdAllocator
from .importer import SourceImporter, SourceRefresher
from .ingestor import RepackIngestor
from .matcher import CatalogMatcher

log = logging.getLogger(__name__)


class SourceSynchronizer:
    """
    Re-fetches manifests of stored sources and ingests the downloads that are
    not stored yet. A source that fails is marked errored and skipped.
    """

    def __init__(
        self,
        store: LevelStore,
        client: ManifestClient,
        allocator: IdAllocator,
        ingestor: RepackIngestor,
        refresher: SourceRefresher,
    ):
        self.store = store
        self.client = client
        self.allocator = allocator
        self.ingestor = ingestor
        self.refresher = refresher

    async def sync_source(
        self,
        source: DownloadSource,
        matcher: CatalogMatcher,
        revalidate: bool = True,
    ) -> SourceSyncResult:
        """
        Brings one source up to date.

        Args:
            source: The stored source.
            matcher: Catalog matcher for any new repacks.
            revalidate: Send the stored entity tag so an unchanged manifest
                answers 304 and is skipped.
        """
        result = SourceSyncResult(source_id=source.id, name=source.name)
        etag = source.etag if revalidate else None
        manifest, response = await self.client.fetch_manifest(source.url, etag=etag)

        if manifest is None:
            result.not_modified = True
            if source.status != DownloadSourceStatus.UP_TO_DATE:
                await self._set_status(source, DownloadSourceStatus.UP_TO_DATE)
            log.debug(f"Source '{source.name}' is unchanged.")
            return result

        # Repeated manifest entries are stored once per occurrence
        stored = await self.ingestor.stored_identities(source.id)
        new_downloads = []
        for download in manifest.downloads:
            if stored[download.identity] > 0:
                stored[download.identity] -= 1
            else:
                new_downloads.append(download)

        refreshed = await self.refresher.apply(
            source, manifest.name, response.etag, len(manifest.downloads)
        )
        if new_downloads:
            await self.ingestor.ingest(
                refreshed, new_downloads, matcher, merge_existing=True
            )
            result.match_stats = self.ingestor.last_stats
            log.info(
                f"[green]✓ {len(new_downloads)} new repacks from "
                f"'{refreshed.name}'.[/green]"
            )
        result.name = refreshed.name
        result.new_repacks = len(new_downloads)
        return result

    async def sync_all(self, matcher: CatalogMatcher) -> SyncReport:
        """Synchronizes every stored source in id order."""
        report = SyncReport()
        try:
            for source in await load_sources(self.store):
                try:
                    result = await self.sync_source(source, matcher)
                    report.match_stats.merge(result.match_stats)
                except RepackSyncError as e:
                    log.warning(
                        f"[yellow]⚠ Could not sync '{source.name}': {e}[/yellow]"
                    )
                    await self._mark_errored(source)
                    result = SourceSyncResult(
                        source_id=source.id, name=source.name, error=str(e)
                    )
                report.results.append(result)
        finally:
            self.allocator.invalidate()
        return report

    async def _mark_errored(self, source: DownloadSource) -> None:
        try:
            await self._set_status(source, DownloadSourceStatus.ERRORED)
        except RepackSyncError as e:
            log.error(f"Could not mark source {source.id} as errored: {e}")

    async def _set_status(
        self, source: DownloadSource, status: DownloadSourceStatus
    ) -> None:
        stored = await self.store.download_sources.get(source.key)
        if stored is None:
            return
        updated = DownloadSource.from_record(stored)
        updated.status = status
        await self.store.download_sources.put(updated.key, updated.to_record())


async def load_sources(store: LevelStore) -> list[DownloadSource]:
    sources = [
        DownloadSource.from_record(value)
        for value in await store.download_sources.values()
    ]
    return sorted(sources, key=lambda source: source.id)


async def load_repacks(
    store: LevelStore, source_id: Optional[int] = None
) -> list[Repack]:
    repacks = [
        Repack.from_record(value)
        for value in await store.repacks.values()
        if source_id is None or value.get("downloadSourceId") == source_id
    ]
    return sorted(repacks, key=lambda repack: repack.id)


class SyncService:
    """
    Wires the store, client, allocator and catalog together and serializes
    every operation that allocates ids. All writers of one database must go
    through a single instance.
    """

    def __init__(
        self,
        config: SyncConfig,
        client: Optional[ManifestClient] = None,
        store: Optional[LevelStore] = None,
    ):
        self.config = config
        self.store = store or LevelStore(config.database_file)
        self.client = client or ManifestClient(
            timeout=config.request_timeout, max_retries=config.max_retries
        )
        self.allocator = IdAllocator()
        self.ingestor = RepackIngestor(self.store, self.allocator)
        self.importer = SourceImporter(
            self.store, self.client, self.allocator, self.ingestor
        )
        self.refresher = SourceRefresher(self.store, self.client)
        self.synchronizer = SourceSynchronizer(
            self.store, self.client, self.allocator, self.ingestor, self.refresher
        )
        self.catalog_loader = CatalogLoader(
            self.client,
            DocumentCache(Path(config.config_path), config.cache_max_age_days),
            catalog_url=config.catalog_url,
            title_hash_url=config.title_hash_url,
        )
        self._gate = asyncio.Lock()

    async def __aenter__(self) -> "SyncService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.client.close()

    async def import_sources(
        self, urls: Iterable[str], fail_on_duplicate: bool = False
    ) -> list[Optional[DownloadSource]]:
        """
        Imports several manifest URLs in order with one catalog load. Stops at
        the first failure; sources imported before it stay stored.
        """
        async with self._gate:
            matcher = await self.catalog_loader.load()
            return [
                await self.importer.import_source(
                    url, matcher, fail_on_duplicate=fail_on_duplicate
                )
                for url in urls
            ]

    async def import_source(
        self, url: str, fail_on_duplicate: bool = False
    ) -> Optional[DownloadSource]:
        imported = await self.import_sources([url], fail_on_duplicate)
        return imported[0]

    async def refresh_source(self, source_id: int) -> DownloadSource:
        async with self._gate:
            source = await self.get_source(source_id)
            return await self.refresher.refresh(source, source.url)

    async def sync_all(self) -> SyncReport:
        async with self._gate:
            matcher = await self.catalog_loader.load()
            return await self.synchronizer.sync_all(matcher)

    async def repair_source(self, source_id: int) -> int:
        """
        Re-runs ingestion for a source whose repacks are missing, e.g. after a
        failed batch left the source record without items.

        Returns:
            The number of repacks added.
        """
        async with self._gate:
            source = await self.get_source(source_id)
            stored_count = await self.ingestor.count_for_source(source.id)
            if stored_count >= source.download_count:
                log.info(
                    f"Source '{source.name}' already has {stored_count} repacks; "
                    "nothing to repair."
                )
                return 0

            matcher = await self.catalog_loader.load()
            try:
                result = await self.synchronizer.sync_source(
                    source, matcher, revalidate=False
                )
            finally:
                self.allocator.invalidate()
            return result.new_repacks

    async def get_source(self, source_id: int) -> DownloadSource:
        stored = await self.store.download_sources.get(str(source_id))
        if stored is None:
            raise SourceNotFoundError(f"No download source with id {source_id}.")
        return DownloadSource.from_record(stored)

    async def list_sources(self) -> list[DownloadSource]:
        return await load_sources(self.store)

    async def list_repacks(self, source_id: Optional[int] = None) -> list[Repack]:
        return await load_repacks(self.store, source_id)

    async def find_incomplete_sources(self) -> list[tuple[DownloadSource, int]]:
        """Sources whose stored repack count is below their manifest's count."""
        incomplete = []
        for source in await self.list_sources():
            stored_count = await self.ingestor.count_for_source(source.id)
            if stored_count < source.download_count:
                incomplete.append((source, stored_count))
        return incomplete
