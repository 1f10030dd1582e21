"""Cluster labels: semantic cache, storage, label service and labeling flow."""

from topicmap.labels.cache import CacheEntry, CacheMatch, LabelCache, MatchKind
from topicmap.labels.client import (
    HubLabelService,
    LabelRequest,
    LabelService,
    LabelServiceClient,
    RefineRequest,
)
from topicmap.labels.manager import ClusterLabeler, LabelBoard, LabelCell, LabelSource
from topicmap.labels.storage import (
    CacheStorage,
    JsonFileStorage,
    MemoryStorage,
    load_cache,
    save_cache,
)

__all__ = [
    # Cache
    "LabelCache",
    "CacheEntry",
    "CacheMatch",
    "MatchKind",
    # Storage
    "CacheStorage",
    "JsonFileStorage",
    "MemoryStorage",
    "load_cache",
    "save_cache",
    # Service
    "LabelService",
    "LabelServiceClient",
    "HubLabelService",
    "LabelRequest",
    "RefineRequest",
    # Labeling
    "ClusterLabeler",
    "LabelBoard",
    "LabelCell",
    "LabelSource",
]
