"""
Pydantic models describing the remote manifest document served by a download source.
"""

from typing import Any

from pydantic import BaseModel, Field, ValidationError
from pydantic.alias_generators import to_camel

from repack_sync.exceptions import ManifestValidationError


class ManifestDownload(BaseModel):
    """A single downloadable entry of a manifest."""

    title: str = Field(max_length=255)
    uris: list[str] = Field(min_length=1)
    upload_date: str = Field(max_length=255)
    file_size: str = Field(max_length=255)

    class Config:
        """Pydantic model configuration."""

        alias_generator = to_camel
        populate_by_name = True

    @property
    def identity(self) -> tuple[str, tuple[str, ...]]:
        """Title and locations, compared against already stored repacks."""
        return self.title, tuple(self.uris)


class Manifest(BaseModel):
    """The full manifest: a display name and its downloads."""

    name: str = Field(max_length=255)
    downloads: list[ManifestDownload]


def parse_manifest(data: Any) -> Manifest:
    """
    Validates a fetched document against the manifest schema.

    Raises:
        ManifestValidationError: If the document is malformed.
    """
    try:
        return Manifest.model_validate(data)
    except ValidationError as e:
        raise ManifestValidationError(f"Invalid manifest document:\n{e}") from e
