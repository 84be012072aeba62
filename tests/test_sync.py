import pytest
import pytest_asyncio

from repack_sync.core.sync import SyncService
from repack_sync.exceptions import SourceNotFoundError, StorageError
from repack_sync.models.records import DownloadSourceStatus
from repack_sync.utils.normalize import hash_title

from .conftest import CATALOG_URL, TITLE_HASH_URL, make_manifest

ACME_URL = "https://example.test/acme.json"
OTHER_URL = "https://example.test/other.json"


@pytest_asyncio.fixture
async def service(config, client, store):
    client.serve(CATALOG_URL, {"w": [{"id": "1", "name": "Widget"}]}, etag='"c1"')
    client.serve(TITLE_HASH_URL, {hash_title("Gadget"): ["7"]})
    async with SyncService(config, client=client, store=store) as service:
        yield service


@pytest.mark.asyncio
async def test_import_sources_in_order(client, service):
    client.serve(ACME_URL, make_manifest("Acme", "Widget Pro"))
    client.serve(OTHER_URL, make_manifest("Other", "Gadget"))

    sources = await service.import_sources([ACME_URL, OTHER_URL, ACME_URL])

    assert [source.id for source in sources[:2]] == [1, 2]
    assert sources[0].object_ids == ["1"]
    assert sources[1].object_ids == ["7"]
    assert sources[2] is None


@pytest.mark.asyncio
async def test_sync_ingests_only_new_downloads(client, service, store):
    client.serve(ACME_URL, make_manifest("Acme", "Widget Pro"), etag='"v1"')
    await service.import_source(ACME_URL)
    client.serve(
        ACME_URL, make_manifest("Acme", "Widget Pro", "Gadget", "Other"), etag='"v2"'
    )

    report = await service.sync_all()

    assert report.new_repacks == 2
    assert report.failed == []
    assert report.match_stats.hash_matches == 1
    source = await service.get_source(1)
    assert source.download_count == 3
    assert source.etag == '"v2"'
    assert source.object_ids == ["1", "7"]
    repacks = await service.list_repacks(1)
    assert [repack.id for repack in repacks] == [1, 2, 3]
    assert [repack.title for repack in repacks] == ["Widget Pro", "Gadget", "Other"]


@pytest.mark.asyncio
async def test_unchanged_manifest_is_skipped(client, service):
    client.serve(ACME_URL, make_manifest("Acme", "Widget Pro"), etag='"v1"')
    imported = await service.import_source(ACME_URL)

    report = await service.sync_all()

    assert report.results[0].not_modified
    assert report.new_repacks == 0
    assert (await service.get_source(1)).updated_at == imported.updated_at
    assert (ACME_URL, '"v1"') in client.requests


@pytest.mark.asyncio
async def test_failing_source_is_marked_errored(client, service):
    client.serve(ACME_URL, make_manifest("Acme", "Widget Pro"), etag='"v1"')
    client.serve(OTHER_URL, make_manifest("Other", "Gadget"), etag='"o1"')
    await service.import_sources([ACME_URL, OTHER_URL])
    client.stop_serving(ACME_URL)
    client.serve(OTHER_URL, make_manifest("Other", "Gadget", "Widget"), etag='"o2"')

    report = await service.sync_all()

    assert [result.source_id for result in report.failed] == [1]
    assert report.new_repacks == 1
    assert (await service.get_source(1)).status == DownloadSourceStatus.ERRORED
    assert (await service.get_source(2)).status == DownloadSourceStatus.UP_TO_DATE


@pytest.mark.asyncio
async def test_errored_source_recovers_on_not_modified(client, service):
    client.serve(ACME_URL, make_manifest("Acme", "Widget Pro"), etag='"v1"')
    await service.import_source(ACME_URL)
    client.stop_serving(ACME_URL)
    await service.sync_all()
    client.serve(ACME_URL, make_manifest("Acme", "Widget Pro"), etag='"v1"')

    report = await service.sync_all()

    assert report.results[0].not_modified
    assert (await service.get_source(1)).status == DownloadSourceStatus.UP_TO_DATE


@pytest.mark.asyncio
async def test_refresh_source(client, service):
    client.serve(ACME_URL, make_manifest("Acme", "Widget Pro"))
    await service.import_source(ACME_URL)
    client.serve(ACME_URL, make_manifest("Acme II", "Widget Pro", "Gadget"))

    refreshed = await service.refresh_source(1)

    assert refreshed.name == "Acme II"
    assert refreshed.download_count == 2
    assert len(await service.list_repacks(1)) == 1


@pytest.mark.asyncio
async def test_unknown_source_raises(service):
    with pytest.raises(SourceNotFoundError):
        await service.refresh_source(42)
    with pytest.raises(SourceNotFoundError):
        await service.repair_source(42)


@pytest.mark.asyncio
async def test_repair_after_failed_batch(client, service, store, monkeypatch):
    client.serve(ACME_URL, make_manifest("Acme", "Widget Pro", "Gadget"))

    def fail(operations):
        raise StorageError("Batch write failed: disk full")

    monkeypatch.setattr(store, "execute_many", fail)
    with pytest.raises(StorageError):
        await service.import_source(ACME_URL)
    monkeypatch.undo()

    incomplete = await service.find_incomplete_sources()
    assert [(source.id, count) for source, count in incomplete] == [(1, 0)]

    assert await service.repair_source(1) == 2
    assert await service.repair_source(1) == 0
    assert await service.find_incomplete_sources() == []
    assert (await service.get_source(1)).object_ids == ["1", "7"]


@pytest.mark.asyncio
async def test_catalog_documents_are_cached(client, service):
    client.serve(ACME_URL, make_manifest("Acme", "Widget Pro"))
    client.serve(OTHER_URL, make_manifest("Other", "Gadget"))

    await service.import_source(ACME_URL)
    await service.import_source(OTHER_URL)

    assert client.requests_for(CATALOG_URL) == 1
    assert client.requests_for(TITLE_HASH_URL) == 1


@pytest.mark.asyncio
async def test_list_sources_in_id_order(client, service):
    for index in range(1, 12):
        url = f"https://example.test/{index}.json"
        client.serve(url, make_manifest(f"Source {index}"))
        await service.import_source(url)

    sources = await service.list_sources()

    assert [source.id for source in sources] == list(range(1, 12))


@pytest.mark.asyncio
async def test_repair_restores_repeated_manifest_entries(client, service, store):
    manifest = make_manifest("Acme", "Widget Pro")
    manifest["downloads"] *= 2
    client.serve(ACME_URL, manifest)
    await service.import_source(ACME_URL)
    for key in ("1", "2"):
        await store.repacks.delete(key)

    assert await service.repair_source(1) == 2
    assert len(await service.list_repacks(1)) == 2
    assert await service.find_incomplete_sources() == []


@pytest.mark.asyncio
async def test_sync_adds_only_extra_occurrences_of_an_entry(client, service):
    client.serve(ACME_URL, make_manifest("Acme", "Widget Pro"), etag='"v1"')
    await service.import_source(ACME_URL)
    manifest = make_manifest("Acme", "Widget Pro")
    manifest["downloads"] *= 3
    client.serve(ACME_URL, manifest, etag='"v2"')

    report = await service.sync_all()

    assert report.new_repacks == 2
    assert len(await service.list_repacks(1)) == 3


@pytest.mark.asyncio
async def test_status_write_failure_does_not_stop_the_run(
    client, service, monkeypatch
):
    client.serve(ACME_URL, make_manifest("Acme", "Widget Pro"), etag='"v1"')
    client.serve(OTHER_URL, make_manifest("Other", "Gadget"), etag='"o1"')
    await service.import_sources([ACME_URL, OTHER_URL])
    client.stop_serving(ACME_URL)
    client.serve(OTHER_URL, make_manifest("Other", "Gadget", "Widget"), etag='"o2"')

    async def fail(source, status):
        raise StorageError("Store write failed: database is locked")

    monkeypatch.setattr(service.synchronizer, "_set_status", fail)
    report = await service.sync_all()

    assert [result.source_id for result in report.failed] == [1]
    assert [result.new_repacks for result in report.results] == [0, 1]
