"""
Shared Index Cache

Thread-safe in-memory key/value store with per-item expiration and a bounded
item count, shared by chart repositories that load the same index.
"""

import logging
import threading
import time
from typing import Any, Dict, NamedTuple, Optional

from ..core.exceptions import RepositoryError

logger = logging.getLogger(__name__)


class CacheFullError(RepositoryError):
    """Raised when a new item is stored into a cache that holds max_items items"""
    pass


class _Item(NamedTuple):
    value: Any
    # Absolute monotonic expiry, 0 means the item never expires
    expires_at: float


class IndexMemoryCache:
    """In-memory cache for parsed repository indexes"""

    def __init__(self, max_items: int, default_ttl: float = 0):
        """
        Initialize the cache

        Args:
            max_items: Maximum number of items held, a non-positive value rejects all new items
            default_ttl: TTL in seconds used when set() is called with ttl=None
        """
        self.max_items = max_items
        self.default_ttl = default_ttl
        self._items: Dict[str, _Item] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    def _expiry(self, ttl: Optional[float]) -> float:
        if ttl is None:
            ttl = self.default_ttl
        return time.monotonic() + ttl if ttl > 0 else 0

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """
        Add an item, replacing any existing item under the same key

        Args:
            key: Cache key
            value: Value to store
            ttl: Time-to-live in seconds, zero means never expire

        Raises:
            CacheFullError: If the key is new and the cache is full
        """
        with self._lock:
            if key not in self._items and not self._has_room():
                raise CacheFullError("Cache is full")
            self._items[key] = _Item(value, self._expiry(ttl))

    def add(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """
        Add an item only if the key is not already present

        Raises:
            RepositoryError: If the key already exists
            CacheFullError: If the cache is full
        """
        with self._lock:
            if key in self._items and not self._is_expired(self._items[key]):
                raise RepositoryError(f"Item {key} already exists")
            if key not in self._items and not self._has_room():
                raise CacheFullError("Cache is full")
            self._items[key] = _Item(value, self._expiry(ttl))

    def get(self, key: str) -> Optional[Any]:
        """
        Get an item

        Args:
            key: Cache key

        Returns:
            The stored value, or None if the key is absent or expired
        """
        with self._lock:
            item = self._items.get(key)
            if item is None or self._is_expired(item):
                self._misses += 1
                return None
            self._hits += 1
            return item.value

    def delete(self, key: str) -> None:
        """Remove an item, no-op when absent"""
        with self._lock:
            self._items.pop(key, None)

    def set_expiration(self, key: str, ttl: float) -> None:
        """Reset the expiration of an existing item"""
        with self._lock:
            item = self._items.get(key)
            if item is not None:
                self._items[key] = item._replace(expires_at=self._expiry(ttl))

    def item_count(self) -> int:
        """Number of items, including expired items not yet cleaned up"""
        with self._lock:
            return len(self._items)

    def delete_expired(self) -> int:
        """
        Remove all expired items

        Returns:
            int: Number of removed items
        """
        with self._lock:
            expired = [key for key, item in self._items.items() if self._is_expired(item)]
            for key in expired:
                del self._items[key]
        if expired:
            logger.debug(f"Removed {len(expired)} expired index cache entries")
        return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def get_cache_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics

        Returns:
            Dict with cache statistics
        """
        with self._lock:
            lookups = self._hits + self._misses
            return {
                'items': len(self._items),
                'max_items': self.max_items,
                'hits': self._hits,
                'misses': self._misses,
                'hit_ratio': self._hits / lookups if lookups else 0.0,
            }

    def _has_room(self) -> bool:
        if self.max_items <= 0:
            return False
        if len(self._items) < self.max_items:
            return True
        # Reclaim expired slots before declaring the cache full
        for key in [k for k, item in self._items.items() if self._is_expired(item)]:
            del self._items[key]
        return len(self._items) < self.max_items

    @staticmethod
    def _is_expired(item: _Item) -> bool:
        return item.expires_at > 0 and item.expires_at < time.monotonic()
