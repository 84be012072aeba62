"""
Turns manifest downloads into stored repacks.
"""

import logging
from collections import Counter
from typing import Iterable

from repack_sync.models.manifest import ManifestDownload
from repack_sync.models.records import DownloadSource, Repack, utc_now
from repack_sync.models.stats import MatchStats
from repack_sync.storage.store import LevelStore

from .ids import IdAllocator
from .matcher import CatalogMatcher

log = logging.getLogger(__name__)


class RepackIngestor:
    """
    Matches each download against the catalog, assigns repack ids and writes
    every repack of a source in one atomic batch.
    """

    def __init__(self, store: LevelStore, allocator: IdAllocator):
        self.store = store
        self.allocator = allocator
        self.last_stats = MatchStats()

    async def ingest(
        self,
        source: DownloadSource,
        downloads: Iterable[ManifestDownload],
        matcher: CatalogMatcher,
        merge_existing: bool = False,
    ) -> list[str]:
        """
        Stores the downloads as repacks of `source` and records the union of
        their catalog ids on the source. With `merge_existing`, the ids already
        recorded on the source are kept and the new ones appended.

        Repack ids are assigned in manifest order and are contiguous. If the
        batch write fails, no repack is stored while the source record stays.

        Returns:
            The matched catalog ids, de-duplicated in first-seen order.

        Raises:
            StorageError: If the batch write or the source update fails.
        """
        now = utc_now()
        object_ids_on_source: dict[str, None] = {}
        stats = MatchStats()
        batch = self.store.repacks.batch()

        for download in downloads:
            result = matcher.match(download.title)
            stats.record(result.kind)
            object_ids_on_source.update(dict.fromkeys(result.object_ids))

            repack = Repack(
                id=await self.allocator.next_id(self.store.repacks),
                object_ids=result.object_ids,
                title=download.title,
                uris=download.uris,
                file_size=download.file_size,
                repacker=source.name,
                upload_date=download.upload_date,
                download_source_id=source.id,
                created_at=now,
                updated_at=now,
            )
            batch.put(repack.key, repack.to_record())

        await batch.write()
        self.last_stats = stats

        log.info(
            f"Matching stats for {source.name}: Hash={stats.hash_matches}, "
            f"Fuzzy={stats.fuzzy_matches}, None={stats.no_matches}"
        )

        object_ids = list(object_ids_on_source)
        return await self._update_source_object_ids(source, object_ids, merge_existing)

    async def _update_source_object_ids(
        self, source: DownloadSource, object_ids: list[str], merge_existing: bool
    ) -> list[str]:
        """Writes the aggregated catalog ids to the stored source record."""
        stored = await self.store.download_sources.get(source.key)
        if stored is None:
            log.warning(
                f"[yellow]Source {source.id} disappeared before its catalog ids "
                "could be recorded.[/yellow]"
            )
            return object_ids
        updated = DownloadSource.from_record(stored)
        if merge_existing:
            object_ids = list(dict.fromkeys([*updated.object_ids, *object_ids]))
        updated.object_ids = object_ids
        await self.store.download_sources.put(updated.key, updated.to_record())
        return object_ids

    async def stored_identities(
        self, source_id: int
    ) -> Counter[tuple[str, tuple[str, ...]]]:
        """How many repacks with each title and locations a source already has."""
        identities: Counter[tuple[str, tuple[str, ...]]] = Counter()
        async for _, value in self.store.repacks.iterate():
            if value.get("downloadSourceId") == source_id:
                identities[Repack.from_record(value).identity] += 1
        return identities

    async def count_for_source(self, source_id: int) -> int:
        count = 0
        async for _, value in self.store.repacks.iterate():
            if value.get("downloadSourceId") == source_id:
                count += 1
        return count
