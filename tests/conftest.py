"""Shared fixtures: a real store in a temp directory and a scripted HTTP client."""

import copy
from typing import Any, Optional

import pytest

from repack_sync.api.client import FetchResponse, ManifestClient
from repack_sync.core.ids import IdAllocator
from repack_sync.core.importer import SourceImporter, SourceRefresher
from repack_sync.core.ingestor import RepackIngestor
from repack_sync.exceptions import NetworkError
from repack_sync.models.config import SyncConfig
from repack_sync.storage.store import LevelStore

CATALOG_URL = "https://catalog.test/games-by-letter.json"
TITLE_HASH_URL = "https://catalog.test/title-hashes.json"


def make_manifest(name: str, *titles: str) -> dict[str, Any]:
    """Builds a manifest document with one magnet link per title."""
    return {
        "name": name,
        "downloads": [
            {
                "title": title,
                "uris": [f"magnet:?xt=urn:btih:{index:040d}"],
                "uploadDate": "2024-01-01",
                "fileSize": "10 MB",
            }
            for index, title in enumerate(titles)
        ],
    }


class FakeManifestClient(ManifestClient):
    """Serves documents from memory and honours If-None-Match like a server."""

    def __init__(self):
        super().__init__(max_retries=1)
        self.documents: dict[str, tuple[Any, Optional[str]]] = {}
        self.requests: list[tuple[str, Optional[str]]] = []

    def serve(self, url: str, data: Any, etag: Optional[str] = None) -> None:
        self.documents[url] = (data, etag)

    def stop_serving(self, url: str) -> None:
        self.documents.pop(url, None)

    def requests_for(self, url: str) -> int:
        return sum(1 for requested, _ in self.requests if requested == url)

    async def fetch(self, url: str, etag: Optional[str] = None) -> FetchResponse:
        self.requests.append((url, etag))
        if url not in self.documents:
            raise NetworkError(f"Failed to fetch {url} after 1 attempts.")
        data, served_etag = self.documents[url]
        headers = {"etag": served_etag} if served_etag else {}
        if etag and etag == served_etag:
            return FetchResponse(None, 304, headers)
        return FetchResponse(copy.deepcopy(data), 200, headers)


@pytest.fixture
def store(tmp_path) -> LevelStore:
    return LevelStore(tmp_path / "repack_sync.sqlite")


@pytest.fixture
def client() -> FakeManifestClient:
    return FakeManifestClient()


@pytest.fixture
def allocator() -> IdAllocator:
    return IdAllocator()


@pytest.fixture
def ingestor(store, allocator) -> RepackIngestor:
    return RepackIngestor(store, allocator)


@pytest.fixture
def importer(store, client, allocator, ingestor) -> SourceImporter:
    return SourceImporter(store, client, allocator, ingestor)


@pytest.fixture
def refresher(store, client) -> SourceRefresher:
    return SourceRefresher(store, client)


@pytest.fixture
def config(tmp_path) -> SyncConfig:
    return SyncConfig(
        config_path=str(tmp_path),
        catalog_url=CATALOG_URL,
        title_hash_url=TITLE_HASH_URL,
    )
