"""Engine-scoped caches: derived blobs and ids known to be missing remotely."""
from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from core.logs import get_sync_logger

IMAGES = "images"
MISSING_IDS = "missing_ids"


class CacheService:
    """Namespaced key/value cache whose lifetime is the owning engine's."""

    def __init__(self) -> None:
        self._data: Dict[str, Dict[str, Any]] = {}
        self.logger = get_sync_logger("fieldsync.cache")

    def get(self, namespace: str, key: str, default: Any = None) -> Any:
        return self._data.get(namespace, {}).get(key, default)

    def set(self, namespace: str, key: str, value: Any = True) -> None:
        self._data.setdefault(namespace, {})[key] = value

    def contains(self, namespace: str, key: str) -> bool:
        return key in self._data.get(namespace, {})

    def evict(self, namespace: str, key: str) -> bool:
        bucket = self._data.get(namespace)
        if not bucket or key not in bucket:
            return False
        del bucket[key]
        self.logger.debug("Evicted %s from %s cache", key, namespace)
        return True

    def evict_many(self, namespace: str, keys: Iterable[str]) -> int:
        return sum(1 for key in keys if self.evict(namespace, key))

    def keys(self, namespace: str) -> list:
        return list(self._data.get(namespace, {}))

    def clear(self, namespace: Optional[str] = None) -> None:
        if namespace is None:
            self._data.clear()
        else:
            self._data.pop(namespace, None)

    # ------------------------------------------------------------------
    # ids the remote answered 404 for; skipped until cleared
    def mark_missing(self, entity: str, record_id: str) -> None:
        self.set(MISSING_IDS, f"{entity}:{record_id}")

    def is_missing(self, entity: str, record_id: str) -> bool:
        return self.contains(MISSING_IDS, f"{entity}:{record_id}")


__all__ = ["CacheService", "IMAGES", "MISSING_IDS"]
