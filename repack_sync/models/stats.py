"""
Dataclasses for tracking matching and synchronization statistics.
"""

from dataclasses import dataclass, field
from enum import Enum


class MatchKind(str, Enum):
    """How a title resolved against the catalog."""

    HASH = "hash"
    FUZZY = "fuzzy"
    NONE = "none"


@dataclass
class MatchStats:
    """Tallies how the titles of one ingestion batch were matched."""

    hash_matches: int = 0
    fuzzy_matches: int = 0
    no_matches: int = 0

    def record(self, kind: MatchKind) -> None:
        if kind is MatchKind.HASH:
            self.hash_matches += 1
        elif kind is MatchKind.FUZZY:
            self.fuzzy_matches += 1
        else:
            self.no_matches += 1

    @property
    def total(self) -> int:
        return self.hash_matches + self.fuzzy_matches + self.no_matches

    def merge(self, other: "MatchStats") -> None:
        """Adds the counts of another batch to this one."""
        self.hash_matches += other.hash_matches
        self.fuzzy_matches += other.fuzzy_matches
        self.no_matches += other.no_matches


@dataclass
class SourceSyncResult:
    """Outcome of synchronizing one download source."""

    source_id: int
    name: str
    new_repacks: int = 0
    not_modified: bool = False
    error: str | None = None
    match_stats: MatchStats = field(default_factory=MatchStats)


@dataclass
class SyncReport:
    """Aggregated outcome of a full synchronization run."""

    results: list[SourceSyncResult] = field(default_factory=list)
    match_stats: MatchStats = field(default_factory=MatchStats)

    @property
    def new_repacks(self) -> int:
        return sum(result.new_repacks for result in self.results)

    @property
    def failed(self) -> list[SourceSyncResult]:
        return [result for result in self.results if result.error]
