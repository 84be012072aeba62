"""
Defines custom exceptions for the application to allow for more specific error handling.
"""


class RepackSyncError(Exception):
    """Base exception for all application-specific errors."""


class DuplicateSourceError(RepackSyncError):
    """Raised when importing a URL that is already registered as a download source."""


class ManifestValidationError(RepackSyncError):
    """Raised when a fetched manifest does not match the expected schema."""


class NetworkError(RepackSyncError):
    """Raised when a manifest or catalog document could not be fetched."""


class StorageError(RepackSyncError):
    """Raised when the local store rejects a read, write or batch."""


class SourceNotFoundError(RepackSyncError):
    """Raised when a download source id does not exist in the store."""


class ConfigurationError(RepackSyncError):
    """Raised for issues related to configuration loading or validation."""
