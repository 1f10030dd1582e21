"""Cluster labeling: cache lookup, background refinement and fresh generation.

Every detection run opens a new generation on the ``LabelBoard``. Each cluster
starts out showing its hub label; cached labels are swapped in immediately and
label service responses are swapped in whenever they arrive. A response that
belongs to an older generation is still cached, but only shown if some current
unlabeled cluster has a matching centroid.
"""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

import numpy as np

from topicmap.embeddings import compute_centroid, cosine_similarity
from topicmap.labels.cache import CacheEntry, LabelCache, MatchKind
from topicmap.labels.client import (
    HubLabelService,
    LabelRequest,
    LabelService,
    RefineRequest,
)
from topicmap.labels.storage import CacheStorage, save_cache
from topicmap.models import Cluster, ClusterResult

logger = logging.getLogger(__name__)


class LabelSource(str, Enum):
    """Where a displayed cluster label came from."""

    HUB = "hub"
    CACHE = "cache"
    SERVICE = "service"


@dataclass
class LabelCell:
    """Displayed label of one cluster within one detection generation."""

    cluster_id: int
    generation: int
    label: str
    source: LabelSource = LabelSource.HUB


class LabelBoard:
    """Versioned label cells for the current clustering."""

    def __init__(self) -> None:
        self.generation = 0
        self.cells: dict[int, LabelCell] = {}

    def reset(self, clusters: Mapping[int, Cluster]) -> int:
        """Open a new generation with every cluster showing its hub label."""
        self.generation += 1
        self.cells = {
            cid: LabelCell(cluster_id=cid, generation=self.generation, label=c.hub_label)
            for cid, c in clusters.items()
        }
        return self.generation

    def apply(
        self,
        cluster_id: int,
        generation: int,
        label: str,
        source: LabelSource,
    ) -> bool:
        """Swap in a label if the cell still exists in that generation."""
        cell = self.cells.get(cluster_id)
        if generation != self.generation or cell is None:
            return False
        cell.label = label
        cell.source = source
        return True

    def label_for(self, cluster_id: int) -> str | None:
        cell = self.cells.get(cluster_id)
        return cell.label if cell else None

    def labels(self) -> dict[int, str]:
        return {cid: cell.label for cid, cell in self.cells.items()}


@dataclass
class _Pending:
    """A cluster waiting on the label service in some generation."""

    cluster_id: int
    keywords: list[str]
    centroid: list[float] | None
    cached: CacheEntry | None = None  # Set for near matches awaiting refinement


@dataclass
class RefreshStats:
    exact: int = 0
    near: int = 0
    miss: int = 0


def cluster_keywords(cluster: Cluster) -> list[str]:
    """Hub label first, then the remaining members in sorted order."""
    rest = sorted(label for label in cluster.member_labels if label != cluster.hub_label)
    return [cluster.hub_label, *rest]


class ClusterLabeler:
    """
    Labels clusters using the label cache and an async label service.

    The cache and storage are injected so a session (or a test) owns their
    lifecycle. Service and storage failures never propagate: the affected
    clusters keep their hub labels and are not retried until the next
    generation.
    """

    def __init__(
        self,
        cache: LabelCache,
        service: LabelService | None = None,
        storage: CacheStorage | None = None,
    ) -> None:
        self.cache = cache
        self.service = service or HubLabelService()
        self.storage = storage
        self.board = LabelBoard()

        self._generate: dict[int, _Pending] = {}
        self._refine: dict[int, _Pending] = {}
        self._centroids: dict[int, list[float]] = {}
        self._failed: set[tuple[int, int]] = set()

    @property
    def generation(self) -> int:
        return self.board.generation

    @property
    def failed(self) -> set[int]:
        """Clusters of the current generation whose label request failed."""
        return {cid for gen, cid in self._failed if gen == self.board.generation}

    @property
    def pending(self) -> int:
        """Number of clusters queued for the next ``refresh``."""
        return len(self._generate) + len(self._refine)

    def set_clusters(
        self,
        result: ClusterResult,
        embeddings: Mapping[str, np.ndarray],
    ) -> RefreshStats:
        """
        Start a new generation for a detection result.

        Cached labels are applied synchronously; misses and near matches are
        queued for the next ``refresh``.

        Args:
            result: Clusters from the detector
            embeddings: Node id -> embedding, for centroids

        Returns:
            Cache hit/near/miss counts for this generation
        """
        generation = self.board.reset(result.clusters)
        self._generate = {}
        self._refine = {}
        self._centroids = {}
        self._failed.clear()

        stats = RefreshStats()
        for cid, cluster in sorted(result.clusters.items()):
            keywords = cluster_keywords(cluster)
            vectors = [embeddings[m] for m in sorted(cluster.members) if m in embeddings]
            if not vectors:
                self._generate[cid] = _Pending(cid, keywords, None)
                stats.miss += 1
                continue

            centroid = compute_centroid(vectors)
            self._centroids[cid] = centroid
            kind, match = self.cache.lookup(centroid)

            if kind == MatchKind.MISS or match is None:
                self._generate[cid] = _Pending(cid, keywords, centroid)
                stats.miss += 1
                continue

            self.board.apply(cid, generation, match.entry.label, LabelSource.CACHE)
            if kind == MatchKind.NEAR:
                self._refine[cid] = _Pending(cid, keywords, centroid, cached=match.entry)
                stats.near += 1
            else:
                stats.exact += 1

        if result.clusters:
            logger.info(
                f"Label cache: {stats.exact} exact hits, {stats.near} near-matches, "
                f"{stats.miss} misses (generation {generation})"
            )
        return stats

    async def refresh(self) -> dict[int, str]:
        """
        Run the queued label requests for the current generation.

        Generation and refinement run concurrently. Labels may arrive after a
        newer generation has started; those are cached and merged by centroid.

        Returns:
            The current displayed labels
        """
        generation = self.board.generation
        generate = [
            p for cid, p in self._generate.items() if (generation, cid) not in self._failed
        ]
        refine = [p for cid, p in self._refine.items() if (generation, cid) not in self._failed]
        self._generate = {}
        self._refine = {}

        if not generate and not refine:
            return self.board.labels()

        changed = await asyncio.gather(
            self._run_generate(generation, generate),
            self._run_refine(generation, refine),
        )
        if any(changed):
            self.persist()
        return self.board.labels()

    def persist(self) -> bool:
        """Write the cache to storage, if any; failures are logged by ``save_cache``."""
        if self.storage is None:
            return False
        return save_cache(self.storage, self.cache)

    def _mark_failed(self, generation: int, pending: list[_Pending]) -> None:
        for p in pending:
            self._failed.add((generation, p.cluster_id))

    async def _run_generate(self, generation: int, pending: list[_Pending]) -> bool:
        if not pending:
            return False
        requests = [LabelRequest(cluster_id=p.cluster_id, keywords=p.keywords) for p in pending]
        try:
            labels = await self.service.generate_labels(requests)
        except Exception as e:
            logger.warning(f"Label generation failed for {len(pending)} clusters: {e}")
            self._mark_failed(generation, pending)
            return False

        missing = [p for p in pending if not labels.get(p.cluster_id)]
        if missing:
            logger.warning(f"Label service returned no label for {len(missing)} clusters")
            self._mark_failed(generation, missing)

        cached = False
        for p in pending:
            label = labels.get(p.cluster_id)
            if not label:
                continue
            if p.centroid is not None:
                self.cache.add_or_update(p.keywords, p.centroid, label)
                cached = True
            self._show(generation, p, label)
        return cached

    async def _run_refine(self, generation: int, pending: list[_Pending]) -> bool:
        if not pending:
            return False
        requests = [
            RefineRequest(
                cluster_id=p.cluster_id,
                old_label=p.cached.label,
                old_keywords=list(p.cached.keywords),
                new_keywords=p.keywords,
            )
            for p in pending
            if p.cached is not None
        ]
        try:
            labels = await self.service.refine_labels(requests)
        except Exception as e:
            # Near matches already show the cached label
            logger.warning(f"Label refinement failed for {len(pending)} clusters: {e}")
            self._mark_failed(generation, pending)
            return False

        updated = False
        for p in pending:
            label = labels.get(p.cluster_id)
            if not label or p.cached is None:
                continue
            if label != p.cached.label:
                p.cached.label = label
                p.cached.keywords = sorted(p.keywords)
                self.cache.touch(p.cached)
                updated = True
            self._show(generation, p, label)
        return updated

    def _show(self, generation: int, pending: _Pending, label: str) -> None:
        """Display a label, merging stale responses by centroid."""
        if generation == self.board.generation:
            self.board.apply(pending.cluster_id, generation, label, LabelSource.SERVICE)
            return

        if pending.centroid is None:
            logger.debug(f"Dropping stale label for cluster {pending.cluster_id}")
            return

        for cid, centroid in self._centroids.items():
            cell = self.board.cells.get(cid)
            if cell is None or cell.source != LabelSource.HUB:
                continue
            # Embedding model changed between generations
            if len(centroid) != len(pending.centroid):
                continue
            if cosine_similarity(pending.centroid, centroid) >= self.cache.match_threshold:
                self.board.apply(cid, self.board.generation, label, LabelSource.SERVICE)
                logger.debug(f"Merged stale label '{label}' into cluster {cid}")
