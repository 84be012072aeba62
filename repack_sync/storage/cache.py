"""
A file-based JSON cache for catalog documents, keyed by URL.
Entries keep the server's entity tag so stale copies can be revalidated.
"""

import hashlib
import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any

log = logging.getLogger(__name__)


@dataclass
class CachedDocument:
    """A cached document and whether it is still within its time-to-live."""

    value: Any
    etag: str | None
    fresh: bool


class DocumentCache:
    """
    Manages a JSON-based file cache with TTL. Expired entries are kept until
    overwritten so a 304 response can revive them.
    """

    def __init__(self, cache_dir_path: Path, max_age_days: int = 1):
        """
        Initializes the cache.

        Args:
            cache_dir_path: The directory under which the cache folder is created.
            max_age_days: The maximum age of an entry in days before it is stale.
        """
        self.cache_dir = cache_dir_path / "cache"
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.max_age_seconds = max_age_days * 86400

    def _get_cache_path(self, url: str) -> Path:
        """Generates a safe filename for a given URL."""
        hashed_key = hashlib.sha256(url.encode("utf-8")).hexdigest()
        return self.cache_dir / f"{hashed_key}.json"

    def get(self, url: str) -> CachedDocument | None:
        """Returns the cached document for a URL, or None if it was never stored."""
        cache_path = self._get_cache_path(url)
        if not cache_path.is_file():
            return None

        try:
            age = time.time() - cache_path.stat().st_mtime
            with open(cache_path, encoding="utf-8") as f:
                payload = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            log.debug(f"Cache read failed for '{url}': {e}")
            return None

        return CachedDocument(
            value=payload.get("value"),
            etag=payload.get("etag"),
            fresh=age <= self.max_age_seconds,
        )

    def set(self, url: str, value: Any, etag: str | None = None) -> bool:
        """Saves a document to the cache."""
        cache_path = self._get_cache_path(url)
        payload = {"url": url, "etag": etag, "timestamp": time.time(), "value": value}
        try:
            with open(cache_path, "w", encoding="utf-8") as f:
                json.dump(payload, f)
            return True
        except (TypeError, OSError) as e:
            log.warning(f"Cache write failed for '{url}': {e}")
            return False

    def touch(self, url: str) -> None:
        """Marks a stale entry fresh again after a 304 response."""
        cache_path = self._get_cache_path(url)
        try:
            os.utime(cache_path)
        except OSError as e:
            log.debug(f"Could not refresh cache entry for '{url}': {e}")

    def cleanup_expired(self) -> int:
        """Removes entries older than twice the TTL and returns how many went."""
        now = time.time()
        cleaned_count = 0
        for cache_file in self.cache_dir.glob("*.json"):
            try:
                if now - cache_file.stat().st_mtime > 2 * self.max_age_seconds:
                    cache_file.unlink()
                    cleaned_count += 1
            except OSError as e:
                log.warning(
                    f"Failed to remove expired cache file {cache_file.name}: {e}"
                )
        if cleaned_count > 0:
            log.debug(f"Cache cleanup: removed {cleaned_count} expired entries.")
        return cleaned_count

    def clear(self) -> int:
        """Removes all items from the cache and returns how many were removed."""
        log.info("Clearing all cache entries...")
        removed = 0
        for cache_file in self.cache_dir.glob("*.json"):
            cache_file.unlink()
            removed += 1
        return removed
