"""
Data Models Layer.

This package contains Pydantic models that define the core data structures
used throughout the application, such as configuration, manifests and records.
"""

from .config import SyncConfig
from .manifest import Manifest, ManifestDownload, parse_manifest
from .records import DownloadSource, DownloadSourceStatus, Repack
from .stats import MatchKind, MatchStats, SyncReport

__all__ = [
    "DownloadSource",
    "DownloadSourceStatus",
    "Manifest",
    "ManifestDownload",
    "MatchKind",
    "MatchStats",
    "Repack",
    "SyncConfig",
    "SyncReport",
    "parse_manifest",
]
