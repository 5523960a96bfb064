"""
Process-lifetime cache for geocoding resolutions.

Keyed by the trimmed, lowercased original query. Stores either a positive
result or an explicit not-found marker so repeat misses are also free.
Constructed once at application start and injected into the resolver;
not shared across processes, so cold starts re-resolve.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

from flatlist.utils.text import cache_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GeocodeResult:
    latitude: float
    longitude: float
    display_name: str


@dataclass(frozen=True)
class CacheLookup:
    """Outcome of a cache read. ``hit`` with ``result=None`` is a cached miss."""
    hit: bool
    result: Optional[GeocodeResult] = None


class EvictionPolicy:
    """Decides which keys to drop once an entry is stored or read."""

    def touch(self, entries: OrderedDict, key: str) -> None:
        pass

    def evict(self, entries: OrderedDict) -> list[str]:
        return []


class UnboundedPolicy(EvictionPolicy):
    """Keep everything for the lifetime of the process."""


class LRUPolicy(EvictionPolicy):
    """Drop least-recently-used entries beyond ``max_entries``."""

    def __init__(self, max_entries: int):
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries

    def touch(self, entries: OrderedDict, key: str) -> None:
        entries.move_to_end(key)

    def evict(self, entries: OrderedDict) -> list[str]:
        evicted = []
        while len(entries) > self.max_entries:
            key, _ = entries.popitem(last=False)
            evicted.append(key)
        return evicted


class GeocodeCache:
    def __init__(self, policy: Optional[EvictionPolicy] = None):
        self.policy = policy or UnboundedPolicy()
        self._entries: OrderedDict[str, Optional[GeocodeResult]] = OrderedDict()
        self._hits = 0
        self._misses = 0

    def lookup(self, query: str) -> CacheLookup:
        key = cache_key(query)
        if key not in self._entries:
            self._misses += 1
            return CacheLookup(hit=False)

        self._hits += 1
        self.policy.touch(self._entries, key)
        result = self._entries[key]
        logger.debug(f"Geocode cache hit for '{key}' ({'found' if result else 'not found'})")
        return CacheLookup(hit=True, result=result)

    def store(self, query: str, result: Optional[GeocodeResult]) -> None:
        """Cache a resolution; ``None`` records an explicit not-found."""
        key = cache_key(query)
        self._entries[key] = result
        self.policy.touch(self._entries, key)
        for evicted in self.policy.evict(self._entries):
            logger.debug(f"Evicted geocode cache entry '{evicted}'")

    def clear(self) -> None:
        self._entries.clear()
        self._hits = 0
        self._misses = 0
        logger.info("Geocode cache cleared")

    def __len__(self) -> int:
        return len(self._entries)

    def stats(self) -> dict:
        negative = sum(1 for result in self._entries.values() if result is None)
        return {
            "total_entries": len(self._entries),
            "negative_entries": negative,
            "hits": self._hits,
            "misses": self._misses,
            "policy": type(self.policy).__name__,
        }


def build_geocode_cache(max_entries: int = 0) -> GeocodeCache:
    """Unbounded when ``max_entries`` is 0, LRU otherwise."""
    policy = LRUPolicy(max_entries) if max_entries > 0 else UnboundedPolicy()
    return GeocodeCache(policy=policy)
