"""
Core synchronization engine.

This package contains the primary logic. The `SyncService` acts as the
single-flight coordinator, delegating imports to the `SourceImporter`,
per-repack work to the `RepackIngestor`, and catalog lookups to the
`CatalogMatcher`.
"""

from .ids import IdAllocator
from .importer import SourceImporter, SourceRefresher
from .ingestor import RepackIngestor
from .matcher import CatalogEntry, CatalogIndex, CatalogMatcher, MatchResult
from .sync import SourceSynchronizer, SyncService

__all__ = [
    "CatalogEntry",
    "CatalogIndex",
    "CatalogMatcher",
    "IdAllocator",
    "MatchResult",
    "RepackIngestor",
    "SourceImporter",
    "SourceRefresher",
    "SourceSynchronizer",
    "SyncService",
]
