"""
Storage Layer.

This package handles all data persistence: the keyed record store, the
configuration file, and the catalog document cache.
"""

from .cache import DocumentCache
from .config_manager import ConfigManager
from .store import LevelStore, Sublevel, WriteBatch

__all__ = ["ConfigManager", "DocumentCache", "LevelStore", "Sublevel", "WriteBatch"]
