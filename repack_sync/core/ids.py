"""
Hands out monotonically increasing integer ids per store sublevel.
"""

import asyncio
import logging

from repack_sync.storage.store import Sublevel

log = logging.getLogger(__name__)


class IdAllocator:
    """
    Caches the last assigned id of each sublevel so the full scan for the
    current maximum runs once per batch instead of once per record.

    The cache only stays correct while every id is handed out through this
    allocator. Any write path that creates ids on its own, or a second
    process sharing the database, must be followed by `invalidate()`.
    """

    def __init__(self):
        self._last_ids: dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def _scan_max_id(self, sublevel: Sublevel) -> int:
        max_id = 0
        async for _, value in sublevel.iterate():
            record_id = value.get("id", 0)
            if isinstance(record_id, int) and record_id > max_id:
                max_id = record_id
        log.debug(f"Scanned '{sublevel.name}' for the highest id: {max_id}")
        return max_id

    async def next_id(self, sublevel: Sublevel) -> int:
        """Returns the next free id of a sublevel (1 for an empty one)."""
        async with self._lock:
            if sublevel.name not in self._last_ids:
                self._last_ids[sublevel.name] = await self._scan_max_id(sublevel)
            self._last_ids[sublevel.name] += 1
            return self._last_ids[sublevel.name]

    def invalidate(self) -> None:
        """Forgets every cached maximum; the next call per sublevel re-scans."""
        self._last_ids.clear()
