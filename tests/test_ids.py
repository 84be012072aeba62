import asyncio

import pytest

from repack_sync.core.ids import IdAllocator


@pytest.mark.asyncio
async def test_empty_sublevel_starts_at_one(store, allocator):
    assert await allocator.next_id(store.repacks) == 1


@pytest.mark.asyncio
async def test_first_id_follows_the_stored_maximum(store, allocator):
    for record_id in (3, 7, 5):
        await store.repacks.put(str(record_id), {"id": record_id})

    ids = [await allocator.next_id(store.repacks) for _ in range(4)]

    assert ids == [8, 9, 10, 11]


@pytest.mark.asyncio
async def test_maximum_is_numeric_not_key_order(store, allocator):
    await store.repacks.put("9", {"id": 9})
    await store.repacks.put("10", {"id": 10})

    assert await allocator.next_id(store.repacks) == 11


@pytest.mark.asyncio
async def test_scan_runs_once_until_invalidated(store, allocator):
    await store.repacks.put("2", {"id": 2})
    assert await allocator.next_id(store.repacks) == 3

    # Written behind the allocator's back; not seen until invalidation
    await store.repacks.put("100", {"id": 100})
    assert await allocator.next_id(store.repacks) == 4

    allocator.invalidate()
    assert await allocator.next_id(store.repacks) == 101


@pytest.mark.asyncio
async def test_sublevels_are_counted_independently(store, allocator):
    await store.repacks.put("5", {"id": 5})

    assert await allocator.next_id(store.repacks) == 6
    assert await allocator.next_id(store.download_sources) == 1


@pytest.mark.asyncio
async def test_concurrent_callers_get_distinct_ids(store):
    allocator = IdAllocator()
    await store.repacks.put("4", {"id": 4})

    ids = await asyncio.gather(
        *(allocator.next_id(store.repacks) for _ in range(10))
    )

    assert sorted(ids) == list(range(5, 15))
