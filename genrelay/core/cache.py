"""
In-process response cache: bounded LRU with per-entry TTL.

Per-process singleton (cold on every start, never shared across processes):
- Capacity: 100 entries by default, least-recently-used entry evicted first
- TTL: 5 minutes by default, overridable per entry
- Expired entries are purged lazily on access, no background sweep

The cache is advisory. Every public method degrades to "miss" / no-op on an
internal fault instead of raising into the caller.
"""
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from genrelay.core.errors import CacheError
from genrelay.core.logging import get_logger
from genrelay.core.metrics import (
    record_cache_eviction,
    record_cache_hit,
    record_cache_miss,
)

logger = get_logger(__name__)

DEFAULT_MAX_ENTRIES = 100
DEFAULT_TTL_SECONDS = 5 * 60


@dataclass
class CacheEntry:
    """One cached value with its TTL window."""
    key: str
    value: Any
    created_at: float
    expires_at: float
    hit_count: int = 0

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at


@dataclass(frozen=True)
class CacheStats:
    """Snapshot of cache counters. Derived, not authoritative."""
    hits: int
    misses: int
    evictions: int
    size: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "evictions": self.evictions,
            "size": self.size,
            "hit_rate": self.hit_rate,
        }


class ResponseCache:
    """
    LRU + TTL cache for remote call results.

    Recency is kept in an OrderedDict (most recent at the end), so get/set are
    O(1) amortized. A single lock guards the map; it is never held across I/O.
    """

    def __init__(
        self,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        default_ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        if default_ttl_seconds <= 0:
            raise ValueError("default_ttl_seconds must be > 0")

        self.max_entries = max_entries
        self.default_ttl_seconds = default_ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: str) -> Optional[Any]:
        """
        Get a cached value.

        Returns:
            Cached value if present and unexpired, None on miss or error
        """
        try:
            with self._lock:
                entry = self._entries.get(key)
                if entry is None:
                    self._misses += 1
                    hit = False
                elif entry.is_expired(self._clock()):
                    # Lazy eviction of the stale entry
                    del self._entries[key]
                    self._misses += 1
                    hit = False
                else:
                    entry.hit_count += 1
                    self._hits += 1
                    self._entries.move_to_end(key)
                    hit = True
                    value = entry.value
        except Exception as e:
            self._log_fault("get", key, e)
            return None

        if hit:
            record_cache_hit()
            logger.debug("cache_hit", key=key[:16])
            return value

        record_cache_miss()
        logger.debug("cache_miss", key=key[:16])
        return None

    def set(self, key: str, value: Any, ttl_seconds: Optional[float] = None) -> bool:
        """
        Insert or overwrite a value.

        Args:
            key: Cache key (a request fingerprint)
            value: Value to cache; None is not cacheable
            ttl_seconds: Entry TTL, defaults to default_ttl_seconds

        Returns:
            True if stored, False otherwise
        """
        if value is None:
            return False

        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        evicted_key: Optional[str] = None
        try:
            if ttl <= 0:
                raise CacheError(f"ttl_seconds must be > 0, got {ttl}")
            with self._lock:
                now = self._clock()
                if key in self._entries:
                    self._entries.move_to_end(key)
                elif len(self._entries) >= self.max_entries:
                    evicted_key, _ = self._entries.popitem(last=False)
                    self._evictions += 1
                self._entries[key] = CacheEntry(
                    key=key,
                    value=value,
                    created_at=now,
                    expires_at=now + ttl,
                )
        except Exception as e:
            self._log_fault("set", key, e)
            return False

        if evicted_key is not None:
            record_cache_eviction()
            logger.debug("cache_evicted", key=evicted_key[:16])
        return True

    def delete(self, key: str) -> bool:
        """Remove one entry. Returns whether it existed."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def has(self, key: str) -> bool:
        """Check for a live entry without touching stats or recency."""
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and not entry.is_expired(self._clock())

    def peek(self, key: str) -> Optional[CacheEntry]:
        """Return the raw entry (or None) without touching stats or recency."""
        with self._lock:
            return self._entries.get(key)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
                size=len(self._entries),
            )

    def clear(self) -> None:
        """Drop all entries. Counters are kept; see reset_stats()."""
        with self._lock:
            self._entries.clear()

    def reset_stats(self) -> None:
        with self._lock:
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _log_fault(self, operation: str, key: str, error: Exception) -> None:
        logger.error(
            "cache_error",
            operation=operation,
            key=key[:16] if isinstance(key, str) else None,
            error=str(error),
            error_type=type(error).__name__,
        )


_response_cache: Optional[ResponseCache] = None


def get_response_cache() -> ResponseCache:
    """Get the process-wide response cache."""
    global _response_cache
    if _response_cache is None:
        from genrelay.core.config import get_settings

        settings = get_settings()
        _response_cache = ResponseCache(
            max_entries=settings.cache_max_entries,
            default_ttl_seconds=settings.cache_ttl_seconds,
        )
    return _response_cache


def reset_response_cache() -> None:
    """Discard the process-wide cache (tests)."""
    global _response_cache
    _response_cache = None
