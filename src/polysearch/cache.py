"""Response cache for aggregated search results.

Entries expire lazily after ``ttl_seconds`` and the default in-memory
storage evicts the least recently used entry once ``max_items`` is reached.
Any storage object implementing ``CacheStorage`` can be plugged in; when the
storage raises, the cache logs and behaves as a miss.
"""

from __future__ import annotations

import json
import logging
import math
import threading
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from cachetools import LRUCache

from polysearch.base import AggregateResponse

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 60
DEFAULT_MAX_ITEMS = 100


@dataclass(frozen=True)
class CacheEntry:
    value: AggregateResponse
    stored_at: float


class CacheStorage(Protocol):
    def get(self, key: str) -> CacheEntry | None: ...

    def set(self, key: str, entry: CacheEntry) -> None: ...

    def delete(self, key: str) -> None: ...


@dataclass(frozen=True)
class CacheConfig:
    ttl_seconds: float = DEFAULT_TTL_SECONDS
    max_items: int = DEFAULT_MAX_ITEMS
    per_page: int | None = None
    storage: CacheStorage | None = None
    enabled: bool = True

    def __post_init__(self) -> None:
        if not math.isfinite(self.ttl_seconds) or self.ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be a finite number > 0, got {self.ttl_seconds}")
        if self.max_items < 1:
            raise ValueError(f"max_items must be >= 1, got {self.max_items}")
        if self.per_page is not None and self.per_page < 1:
            raise ValueError(f"per_page must be >= 1, got {self.per_page}")

    @classmethod
    def disabled(cls) -> CacheConfig:
        return cls(enabled=False)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | bool) -> CacheConfig:
        """Build a config from the wire form: ``false`` or ``{"ttl": .., "maxItems": ..}``."""
        if data is False:
            return cls.disabled()
        if not isinstance(data, Mapping):
            raise ValueError("cache configuration must be an object or false")
        return cls(
            ttl_seconds=float(data.get("ttl", DEFAULT_TTL_SECONDS)),
            max_items=int(data.get("maxItems", DEFAULT_MAX_ITEMS)),
            per_page=int(data["perPage"]) if data.get("perPage") is not None else None,
        )


class MemoryStorage:
    """Bounded in-process storage with least-recently-used eviction.

    Expiry is not handled here; ``ResponseCache`` checks ``stored_at`` on read.
    """

    def __init__(self, max_items: int = DEFAULT_MAX_ITEMS) -> None:
        self._entries: LRUCache[str, CacheEntry] = LRUCache(maxsize=max(1, max_items))
        self._lock = threading.Lock()

    def get(self, key: str) -> CacheEntry | None:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[key] = entry

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class ResponseCache:
    def __init__(self, config: CacheConfig | None = None) -> None:
        self._config = config or CacheConfig()
        self._storage: CacheStorage | None = None
        if self._config.enabled:
            self._storage = self._config.storage or MemoryStorage(
                self._config.max_items
            )

    @property
    def enabled(self) -> bool:
        return self._storage is not None

    @property
    def per_page(self) -> int | None:
        return self._config.per_page

    @property
    def ttl_seconds(self) -> float:
        return self._config.ttl_seconds

    def get(self, key: str) -> AggregateResponse | None:
        if self._storage is None:
            return None

        try:
            entry = self._storage.get(key)
            if entry is None:
                return None
            if time.time() - entry.stored_at > self._config.ttl_seconds:
                self._storage.delete(key)
                return None
        except Exception:
            logger.warning("cache_get_failed key=%s", key, exc_info=True)
            return None

        return entry.value

    def set(self, key: str, value: AggregateResponse) -> None:
        if self._storage is None:
            return

        try:
            self._storage.set(key, CacheEntry(value=value, stored_at=time.time()))
        except Exception:
            logger.warning("cache_set_failed key=%s", key, exc_info=True)


def build_cache_key(
    *,
    scopes: Sequence[str],
    query: str,
    page: int,
    per_page: int,
    extra: Mapping[str, Any] | None = None,
) -> str:
    parts = ["polysearch", ",".join(scopes), query, str(page), str(per_page)]
    if extra:
        parts.append(json.dumps(dict(extra), sort_keys=True, default=str))
    return ":".join(parts)
