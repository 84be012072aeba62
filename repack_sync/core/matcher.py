"""
Matches repack titles against the reference catalog.

Matching runs in two phases. A title whose sha256 appears in the title-hash
mapping resolves to those ids directly. Everything else is normalized and
compared against catalog names bucketed by first letter: prefix matches
first, then substring matches in either direction, then the substring test
across every bucket.
"""

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from repack_sync.models.stats import MatchKind
from repack_sync.utils.normalize import format_name, format_repack_name, hash_title

log = logging.getLogger(__name__)

TitleHashMapping = Mapping[str, list]


@dataclass(frozen=True)
class CatalogEntry:
    """A reference name with a stable identifier."""

    id: str
    name: str
    formatted_name: str


@dataclass(frozen=True)
class MatchResult:
    object_ids: list[str]
    kind: MatchKind


class CatalogIndex:
    """
    An immutable index of catalog entries keyed by the first character of
    their normalized name. Built once per import and shared by reference.
    """

    def __init__(self, buckets: Mapping[str, Iterable[CatalogEntry]]):
        self._buckets = MappingProxyType(
            {letter: tuple(entries) for letter, entries in buckets.items()}
        )

    @classmethod
    def from_entries(cls, entries: Iterable[CatalogEntry]) -> "CatalogIndex":
        """Buckets entries by the first character of their normalized name."""
        buckets: dict[str, list[CatalogEntry]] = {}
        for entry in entries:
            if entry.formatted_name:
                buckets.setdefault(entry.formatted_name[0], []).append(entry)
        return cls(buckets)

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "CatalogIndex":
        """
        Builds the index from a catalog document shaped
        ``{"a": [{"id": ..., "name": ...}, ...], ...}``.

        The document's letter keys are kept as given. Buckets that are not
        lists, entries without an id and entries whose name normalizes to
        nothing are skipped.
        """
        buckets: dict[str, list[CatalogEntry]] = {}
        skipped = 0
        for letter, games in document.items():
            if games is not None and not isinstance(games, list):
                skipped += 1
                continue
            bucket = buckets.setdefault(letter, [])
            for game in games or []:
                if not isinstance(game, Mapping) or "id" not in game:
                    skipped += 1
                    continue
                name = str(game.get("name", ""))
                formatted_name = format_name(name)
                # An empty name would substring-match every title
                if not formatted_name:
                    skipped += 1
                    continue
                bucket.append(
                    CatalogEntry(
                        id=str(game["id"]), name=name, formatted_name=formatted_name
                    )
                )
        if skipped:
            log.warning(
                f"[yellow]Skipped {skipped} malformed catalog entries.[/yellow]"
            )
        return cls(buckets)

    @classmethod
    def empty(cls) -> "CatalogIndex":
        return cls({})

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._buckets.values())

    def bucket(self, letter: str) -> tuple[CatalogEntry, ...]:
        return self._buckets.get(letter, ())

    def buckets(self) -> Iterable[tuple[CatalogEntry, ...]]:
        return self._buckets.values()


def _substring_match(key: str, entries: Iterable[CatalogEntry]) -> list[CatalogEntry]:
    return [
        entry
        for entry in entries
        if entry.formatted_name in key or key in entry.formatted_name
    ]


class CatalogMatcher:
    """Resolves a title to zero or more catalog ids."""

    def __init__(
        self,
        title_hash_mapping: TitleHashMapping | None = None,
        index: CatalogIndex | None = None,
    ):
        self.title_hash_mapping = title_hash_mapping or {}
        self.index = index or CatalogIndex.empty()

    def match_hash(self, title: str) -> list[str]:
        """Exact path: ids listed for the sha256 of the raw title."""
        ids = self.title_hash_mapping.get(hash_title(title))
        if not isinstance(ids, list):
            return []
        return [str(object_id) for object_id in ids]

    def match_fuzzy(self, title: str) -> list[str]:
        """Normalized prefix/substring comparison against the catalog index."""
        key = format_repack_name(title)
        if not key:
            return []

        entries = self.index.bucket(key[0])
        matches = [entry for entry in entries if key.startswith(entry.formatted_name)]

        if not matches:
            matches = _substring_match(key, entries)

        if not matches:
            for bucket in self.index.buckets():
                matches = _substring_match(key, bucket)
                if matches:
                    break

        return [entry.id for entry in matches]

    def match(self, title: str) -> MatchResult:
        object_ids = self.match_hash(title)
        if object_ids:
            return MatchResult(object_ids, MatchKind.HASH)

        object_ids = self.match_fuzzy(title)
        if object_ids:
            return MatchResult(object_ids, MatchKind.FUZZY)

        return MatchResult([], MatchKind.NONE)
