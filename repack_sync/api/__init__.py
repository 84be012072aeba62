"""
Network Layer.

This package handles all HTTP communication with download sources and
catalog document hosts.
"""

from .client import FetchResponse, ManifestClient

__all__ = ["FetchResponse", "ManifestClient"]
