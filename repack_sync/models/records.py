"""
Pydantic models for the records persisted in the local store.
Field names are stored in camelCase so existing databases stay readable.
"""

from datetime import datetime, timezone
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    """Returns the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class DownloadSourceStatus(IntEnum):
    """Sync state of a download source."""

    UP_TO_DATE = 0
    ERRORED = 1


class StoredRecord(BaseModel):
    """Common (de)serialization for records kept in the store."""

    class Config:
        """Pydantic model configuration."""

        alias_generator = to_camel
        populate_by_name = True
        validate_assignment = True

    @property
    def key(self) -> str:
        """Store key of this record."""
        return str(self.id)

    def to_record(self) -> dict[str, Any]:
        """Serializes the model to the JSON document written to the store."""
        return self.model_dump(mode="json", by_alias=True)

    @classmethod
    def from_record(cls, value: dict[str, Any]):
        """Builds the model back from a stored JSON document."""
        return cls.model_validate(value)


class DownloadSource(StoredRecord):
    """A registered remote manifest origin."""

    id: int
    url: str
    name: str
    etag: str | None = None
    status: DownloadSourceStatus = DownloadSourceStatus.UP_TO_DATE
    download_count: int = 0
    object_ids: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class Repack(StoredRecord):
    """One downloadable entry belonging to a download source."""

    id: int
    object_ids: list[str] = Field(default_factory=list)
    title: str
    uris: list[str]
    file_size: str
    repacker: str
    upload_date: str
    download_source_id: int
    created_at: datetime
    updated_at: datetime

    @property
    def identity(self) -> tuple[str, tuple[str, ...]]:
        """Title and locations, used to detect entries already stored for a source."""
        return self.title, tuple(self.uris)
