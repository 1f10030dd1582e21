"""Key-value persistence for the label cache.

The cache is stored as one serialized JSON document under a fixed key.
Storage failures of any kind never propagate: loading falls back to an empty cache and
saving reports failure through its return value.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Protocol

from topicmap.config import settings
from topicmap.labels.cache import LabelCache

logger = logging.getLogger(__name__)


class CacheStorage(Protocol):
    """Opaque get/set storage collaborator."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryStorage:
    """Process-local storage, mostly for tests and headless hosts."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage:
    """
    Key-value storage backed by a single JSON file.

    Writes go to a temporary sibling file that replaces the original, so a
    crash mid-write leaves the previous document intact.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else Path(settings.label_cache_path)
        self._lock = threading.Lock()

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Storage file {self.path} does not hold a JSON object")
        return data

    def _write_all(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f)
        tmp_path.replace(self.path)

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            try:
                data = self._read_all()
            except (OSError, ValueError) as e:
                logger.warning(f"Discarding unreadable storage file {self.path}: {e}")
                data = {}
            data[key] = value
            self._write_all(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._read_all()
            if key in data:
                del data[key]
                self._write_all(data)


def load_cache(
    storage: CacheStorage,
    key: str | None = None,
    **cache_kwargs,
) -> LabelCache:
    """
    Load the label cache from storage.

    Returns an empty cache if nothing is stored, the payload is unreadable or
    the schema version does not match.
    """
    key = key or settings.label_cache_key
    try:
        raw = storage.get(key)
    except Exception as e:
        logger.warning(f"Label cache storage unavailable, starting empty: {e}")
        return LabelCache(**cache_kwargs)

    if not raw:
        return LabelCache(**cache_kwargs)

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"Stored label cache is not valid JSON, starting empty: {e}")
        return LabelCache(**cache_kwargs)

    cache = LabelCache.from_dict(data, **cache_kwargs)
    logger.info(f"Loaded label cache with {len(cache)} entries")
    return cache


def save_cache(
    storage: CacheStorage,
    cache: LabelCache,
    key: str | None = None,
) -> bool:
    """
    Persist the label cache (LRU-trimmed to capacity).

    On a write failure the stored copy is removed so a stale or partial
    document is not reloaded later.

    Returns:
        True if the cache was written
    """
    key = key or settings.label_cache_key
    payload = json.dumps(cache.to_dict())
    try:
        storage.set(key, payload)
        return True
    except Exception as e:
        logger.warning(f"Failed to save label cache, clearing stored copy: {e}")
        try:
            storage.delete(key)
        except Exception as delete_error:
            logger.error(f"Failed to clear label cache storage: {delete_error}")
        return False
