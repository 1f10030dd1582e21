"""Cluster label cache with semantic (centroid) matching.

Clusters are matched by the cosine similarity of their embedding centroids
rather than by exact membership, so a label survives small membership
changes between detection runs. Three bands:

- below ``match_threshold`` (0.85): miss, a fresh label is needed
- between the thresholds: near match, show the cached label and refine it
- at or above ``exact_threshold`` (0.95): accept as-is
"""

import logging
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from enum import Enum

import numpy as np

from topicmap.config import settings

logger = logging.getLogger(__name__)


class MatchKind(str, Enum):
    """How a cluster centroid relates to the cache."""

    MISS = "miss"
    NEAR = "near"
    EXACT = "exact"


@dataclass
class CacheEntry:
    """A previously generated label and the centroid it was generated for."""

    keywords: list[str]  # Sorted member labels, informational
    centroid: list[float]  # Unit-length
    label: str
    last_used: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "keywords": self.keywords,
            "centroid": self.centroid,
            "label": self.label,
            "timestamp": self.last_used,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CacheEntry":
        """Create from a stored dictionary."""
        return cls(
            keywords=list(data.get("keywords", [])),
            centroid=[float(v) for v in data["centroid"]],
            label=data["label"],
            last_used=float(data.get("timestamp", 0.0)),
        )


@dataclass
class CacheMatch:
    """Best cache entry for a query centroid."""

    entry: CacheEntry
    similarity: float


class LabelCache:
    """
    In-memory label cache with LRU eviction.

    Created once per session and injected into whatever needs it; persistence
    is handled by a storage collaborator through ``to_dict``/``from_dict``.
    Linear scan matching is fine at the expected scale of hundreds of entries.
    """

    def __init__(
        self,
        capacity: int | None = None,
        match_threshold: float | None = None,
        exact_threshold: float | None = None,
        version: int | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.capacity = capacity or settings.label_cache_capacity
        self.match_threshold = (
            match_threshold if match_threshold is not None else settings.label_match_threshold
        )
        self.exact_threshold = (
            exact_threshold if exact_threshold is not None else settings.label_exact_threshold
        )
        self.version = version or settings.label_cache_version
        self._clock = clock
        self.entries: list[CacheEntry] = []

    def __len__(self) -> int:
        return len(self.entries)

    def find_best_match(
        self,
        centroid: Sequence[float],
        threshold: float | None = None,
    ) -> CacheMatch | None:
        """
        Find the most similar cached entry at or above a threshold.

        Equal similarities keep the entry seen first. Entries with a different
        dimension (e.g. after an embedding model change) are skipped.

        Args:
            centroid: Normalized centroid of the query cluster
            threshold: Minimum similarity (default: match threshold)

        Returns:
            Best match, or None if nothing passes the threshold
        """
        threshold = self.match_threshold if threshold is None else threshold
        if not self.entries:
            return None

        query = np.asarray(centroid, dtype=np.float64)
        query_norm = np.linalg.norm(query)
        if query_norm == 0:
            return None

        best: CacheMatch | None = None
        for entry in self.entries:
            if len(entry.centroid) != len(query):
                continue
            vec = np.asarray(entry.centroid, dtype=np.float64)
            denom = np.linalg.norm(vec) * query_norm
            if denom == 0:
                continue
            similarity = float(np.dot(vec, query) / denom)
            if similarity >= threshold and (best is None or similarity > best.similarity):
                best = CacheMatch(entry=entry, similarity=similarity)
        return best

    def classify(self, match: CacheMatch | None) -> MatchKind:
        """Place a match in the miss / near / exact band."""
        if match is None or match.similarity < self.match_threshold:
            return MatchKind.MISS
        if match.similarity >= self.exact_threshold:
            return MatchKind.EXACT
        return MatchKind.NEAR

    def lookup(self, centroid: Sequence[float]) -> tuple[MatchKind, CacheMatch | None]:
        """Find and classify the best match; hits are touched."""
        match = self.find_best_match(centroid)
        kind = self.classify(match)
        if match is not None:
            self.touch(match.entry)
        return kind, match

    def add_or_update(
        self,
        keywords: Iterable[str],
        centroid: Sequence[float],
        label: str,
    ) -> CacheEntry:
        """
        Store a label for a centroid.

        If an entry already exists within the exact band, it is updated in
        place so no two entries are mutually above that threshold.
        """
        now = self._clock()
        sorted_keywords = sorted(keywords)
        existing = self.find_best_match(centroid, threshold=self.exact_threshold)

        if existing is not None:
            existing.entry.label = label
            existing.entry.keywords = sorted_keywords
            existing.entry.last_used = now
            return existing.entry

        entry = CacheEntry(
            keywords=sorted_keywords,
            centroid=[float(v) for v in centroid],
            label=label,
            last_used=now,
        )
        self.entries.append(entry)
        self.evict()
        return entry

    def touch(self, entry: CacheEntry) -> None:
        """Mark an entry as recently used."""
        entry.last_used = self._clock()

    def evict(self) -> int:
        """Drop least recently used entries beyond capacity.

        Returns:
            Number of entries evicted
        """
        overflow = len(self.entries) - self.capacity
        if overflow <= 0:
            return 0
        # Stable sort: on equal timestamps the earlier insert goes first
        oldest = sorted(range(len(self.entries)), key=lambda i: self.entries[i].last_used)
        dropped = set(oldest[:overflow])
        self.entries = [e for i, e in enumerate(self.entries) if i not in dropped]
        logger.debug(f"Evicted {overflow} label cache entries")
        return overflow

    def clear(self) -> None:
        self.entries = []

    def to_dict(self) -> dict:
        """Serialize to the versioned storage shape."""
        self.evict()
        return {
            "version": self.version,
            "entries": [e.to_dict() for e in self.entries],
        }

    @classmethod
    def from_dict(cls, data: dict | None, **kwargs) -> "LabelCache":
        """
        Restore a cache from its stored shape.

        A missing payload, a version mismatch or malformed entries give an
        empty cache.
        """
        cache = cls(**kwargs)
        if not data:
            return cache

        if data.get("version") != cache.version:
            logger.warning(
                f"Label cache version mismatch ({data.get('version')} != {cache.version}), "
                "clearing cache"
            )
            return cache

        try:
            cache.entries = [CacheEntry.from_dict(e) for e in data.get("entries", [])]
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Malformed label cache payload, clearing cache: {e}")
            cache.entries = []
        cache.evict()
        return cache


def find_best_match(
    centroid: Sequence[float],
    cache: LabelCache,
    threshold: float = 0.85,
) -> CacheMatch | None:
    """Convenience function: best entry at or above ``threshold``."""
    return cache.find_best_match(centroid, threshold=threshold)


def add_or_update(
    cache: LabelCache,
    keywords: Iterable[str],
    centroid: Sequence[float],
    label: str,
) -> CacheEntry:
    """Convenience function: store or update a label for a centroid."""
    return cache.add_or_update(keywords, centroid, label)


def touch(cache: LabelCache, entry: CacheEntry) -> None:
    """Convenience function: refresh an entry's last-used timestamp."""
    cache.touch(entry)
