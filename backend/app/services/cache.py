"""
In-memory TTL cache for Meta API responses.

Absorbs duplicate requests within a short window so dashboards stay usable
under Graph API rate limits. One instance is created by the application at
startup and injected into request handlers.
"""
import logging
import threading
import time
from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Callable, Dict, Mapping, Optional, Union
from app.models import InsightsOptions
from app.services.meta_ads import normalize_account_id

logger = logging.getLogger(__name__)


class CacheTTL(IntEnum):
    """Cache lifetimes in seconds."""
    SHORT = 60        # today's data, still accumulating
    MEDIUM = 120      # default
    LONG = 300        # 90-day and maximum windows, largely settled
    VERY_LONG = 600   # mostly static data (account lists)


@dataclass(frozen=True)
class CacheEntry:
    key: str
    value: Any
    created_at: float
    expires_at: float


class ResponseCache:
    """
    TTL cache with a bounded number of entries.

    Expired entries are dropped when read, or all at once when the cache is
    full. If it is still full after that, the earliest-inserted entry is
    evicted (insertion order, not access order).
    """

    def __init__(self, max_entries: int = 100, clock: Callable[[], float] = time.monotonic):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if self._clock() > entry.expires_at:
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl: float = CacheTTL.MEDIUM) -> None:
        with self._lock:
            now = self._clock()
            if key not in self._entries and len(self._entries) >= self.max_entries:
                self._purge_expired(now)
                if len(self._entries) >= self.max_entries:
                    # Dicts keep insertion order, so the first key is the oldest
                    oldest = next(iter(self._entries))
                    del self._entries[oldest]
                    logger.debug(f"Cache full, evicted {oldest}")
            # Re-insert so an overwritten key counts as newest
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(
                key=key,
                value=value,
                created_at=now,
                expires_at=now + float(ttl),
            )

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Remove every expired entry. Returns how many were removed."""
        with self._lock:
            return self._purge_expired(self._clock())

    def invalidate_account(self, account_id: str) -> int:
        """Drop every entry cached for an ad account."""
        account_id = normalize_account_id(account_id)
        with self._lock:
            keys = [k for k in self._entries if k.split(":")[1:2] == [account_id]]
            for key in keys:
                del self._entries[key]
        if keys:
            logger.info(f"Invalidated {len(keys)} cached responses for {account_id}")
        return len(keys)

    def stats(self) -> Dict[str, int]:
        with self._lock:
            return {
                "size": len(self._entries),
                "max_entries": self.max_entries,
                "hits": self.hits,
                "misses": self.misses,
            }

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _purge_expired(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)


def build_cache_key(
    scope: str,
    account_id: str,
    options: Union[InsightsOptions, Mapping[str, Any]],
) -> str:
    """
    Deterministic cache key for a scoped insights request.

    Format: ``scope:account:window:level:breakdowns:entity_ids`` where window
    is the preset token or ``since-until``, and breakdowns and entity ids are
    sorted. Mapping key order in the caller never changes the key.
    """
    if not isinstance(options, InsightsOptions):
        options = InsightsOptions.model_validate(dict(options))
    parts = [
        scope,
        normalize_account_id(account_id),
        options.window_token,
        options.level.value,
        ",".join(sorted(options.breakdowns)),
        ",".join(sorted(options.entity_ids)),
    ]
    return ":".join(parts)
