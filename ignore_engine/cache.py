"""
Caching system for ignore verdicts
"""

from collections import OrderedDict
from typing import Any, Dict, Hashable, Optional, Set, Tuple
import threading

from .constants import MAX_CACHE_SIZE
from .rule_set import Verdict
from .utils import get_logger

logger = get_logger(__name__)

# Ordered ((rule_set_id, version), ...) of the rule sets behind a verdict
Versions = Tuple[Tuple[str, int], ...]


class LRUCache:
    """Thread-safe LRU cache implementation"""

    def __init__(self, max_size: int):
        self.max_size = max_size
        self._cache: OrderedDict = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    def get(self, key: Hashable) -> Optional[Any]:
        """Get value from cache"""
        with self._lock:
            if key in self._cache:
                self._cache.move_to_end(key)
                self._hits += 1
                return self._cache[key]
            self._misses += 1
            return None

    def put(self, key: Hashable, value: Any) -> Optional[Tuple[Hashable, Any]]:
        """
        Put value in cache

        Returns:
            The evicted (key, value) pair, if the put pushed one out
        """
        if self.max_size <= 0:
            return None
        with self._lock:
            if key in self._cache:
                self._cache[key] = value
                self._cache.move_to_end(key)
                return None
            self._cache[key] = value
            if len(self._cache) > self.max_size:
                self._evictions += 1
                return self._cache.popitem(last=False)
            return None

    def invalidate(self, key: Hashable) -> Optional[Any]:
        """Remove key from cache, returning its value if it was present"""
        with self._lock:
            return self._cache.pop(key, None)

    def record_miss(self):
        """Turn the last counted hit into a miss (stale entry found by the caller)"""
        with self._lock:
            self._hits -= 1
            self._misses += 1

    def clear(self):
        """Clear entire cache"""
        with self._lock:
            self._cache.clear()
            self._hits = 0
            self._misses = 0
            self._evictions = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""
        with self._lock:
            total = self._hits + self._misses
            hit_rate = (self._hits / total * 100) if total > 0 else 0
            return {
                'size': len(self._cache),
                'max_size': self.max_size,
                'hits': self._hits,
                'misses': self._misses,
                'evictions': self._evictions,
                'hit_rate': hit_rate
            }


class VerdictCache:
    """
    Memoizes verdicts keyed by (absolute path, is_directory)

    Each entry remembers the versions of the rule sets that produced it.
    A lookup only hits when those versions equal the caller's current
    versions, so a stale entry can never be returned even if an
    invalidation is missed.
    """

    def __init__(self, max_size: int = MAX_CACHE_SIZE):
        """
        Initialize cache

        Args:
            max_size: Maximum number of cached verdicts (0 disables caching)
        """
        self._entries = LRUCache(max_size)
        # rule set id -> cache keys that depend on it
        self._dependencies: Dict[str, Set[Hashable]] = {}
        self._dep_lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return self._entries.max_size > 0

    def get(self, key: Hashable, current_versions: Versions) -> Optional[Verdict]:
        """
        Get a cached verdict if it is still current

        Args:
            key: (absolute path, is_directory)
            current_versions: Versions of the rule sets that would be consulted now

        Returns:
            Cached verdict, or None on a miss or version mismatch
        """
        if not self.enabled:
            return None
        entry = self._entries.get(key)
        if entry is None:
            return None
        verdict, versions = entry
        if versions != current_versions:
            logger.trace(f"Stale verdict for {key}: {versions} != {current_versions}")
            self._entries.record_miss()
            if self._entries.invalidate(key) is not None:
                with self._dep_lock:
                    self._forget(key, versions)
            return None
        return verdict

    def put(self, key: Hashable, verdict: Verdict, contributing_versions: Versions):
        """
        Cache a verdict

        Args:
            key: (absolute path, is_directory)
            verdict: Verdict computed for key
            contributing_versions: Versions of every rule set consulted
        """
        if not self.enabled:
            return
        evicted = self._entries.put(key, (verdict, contributing_versions))
        with self._dep_lock:
            for rule_set_id, _ in contributing_versions:
                self._dependencies.setdefault(rule_set_id, set()).add(key)
            if evicted is not None:
                evicted_key, (_, evicted_versions) = evicted
                self._forget(evicted_key, evicted_versions)

    def _forget(self, key: Hashable, versions: Versions):
        """Drop key from the dependency index; caller holds _dep_lock"""
        for rule_set_id, _ in versions:
            keys = self._dependencies.get(rule_set_id)
            if keys is not None:
                keys.discard(key)
                if not keys:
                    del self._dependencies[rule_set_id]

    def invalidate(self, rule_set_id: str) -> int:
        """
        Drop every cached verdict that depends on a rule set

        Args:
            rule_set_id: Id of the rule set that changed or went away

        Returns:
            Number of dropped entries
        """
        dropped = 0
        with self._dep_lock:
            keys = self._dependencies.pop(rule_set_id, set())
            for key in keys:
                entry = self._entries.invalidate(key)
                if entry is not None:
                    dropped += 1
                    self._forget(key, entry[1])
        if dropped:
            logger.debug(f"Invalidated {dropped} cached verdicts for {rule_set_id}")
        return dropped

    def clear(self):
        """Clear all cached verdicts and statistics"""
        self._entries.clear()
        with self._dep_lock:
            self._dependencies.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        """
        Get cache statistics

        Returns:
            Dictionary with entry stats and dependency tracking counts
        """
        with self._dep_lock:
            dep_count = sum(len(keys) for keys in self._dependencies.values())
            tracked = len(self._dependencies)
        stats = self._entries.get_stats()
        stats['dependencies'] = {
            'tracked_rule_sets': tracked,
            'total_dependencies': dep_count,
        }
        return stats
