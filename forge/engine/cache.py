"""
forge.engine.cache — In-Memory TTL Cache for Leaderboards
==========================================================

Leaderboard queries rank every active user, so their results are cached
in memory.  Each entry carries an expiry and a set of tags; an XP award
invalidates by tag (``leaderboard``, ``user:<id>``) instead of flushing
everything.

Usage::

    cache = LeaderboardCache()
    page = cache.get_or_load(
        "leaderboard:all-time:all:50:0",
        lambda: query_page(...),
        ttl=300,
        tags={"leaderboard", "all-time"},
    )
    cache.invalidate_tags({"leaderboard"})
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class _Entry:
    value: Any
    expires_at: float
    tags: frozenset[str] = field(default_factory=frozenset)


class LeaderboardCache:
    """Thread-safe TTL cache with tag- and prefix-based invalidation."""

    def __init__(self, default_ttl: float = 300.0, clock: Callable[[], float] = time.monotonic) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, _Entry] = {}
        self._default_ttl = default_ttl
        self._clock = clock
        self._hits = 0
        self._misses = 0
        # Bumped by every invalidation; a load that straddles one is not stored.
        self._generation = 0

    # -------------------------------------------------------------------
    # Reads / writes
    # -------------------------------------------------------------------
    def get(self, key: str) -> Any | None:
        """Return the cached value, or ``None`` when missing or expired."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if entry.expires_at <= now:
                del self._entries[key]
                self._misses += 1
                return None
            self._hits += 1
            return entry.value

    def set(
        self,
        key: str,
        value: Any,
        ttl: float | None = None,
        tags: Iterable[str] = (),
    ) -> None:
        expires_at = self._clock() + (ttl if ttl is not None else self._default_ttl)
        with self._lock:
            self._entries[key] = _Entry(value, expires_at, frozenset(tags))

    def has(self, key: str) -> bool:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            return entry is not None and entry.expires_at > now

    def delete(self, key: str) -> bool:
        with self._lock:
            self._generation += 1
            return self._entries.pop(key, None) is not None

    def get_or_load(
        self,
        key: str,
        loader: Callable[[], Any],
        ttl: float | None = None,
        tags: Iterable[str] = (),
    ) -> Any:
        """Return the cached value for *key*, calling *loader* on a miss.

        The loader runs outside the lock; two concurrent misses may both
        load, and the last writer wins.  A result loaded while an
        invalidation ran is returned to the caller but not cached, and so
        is ``None``.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        with self._lock:
            generation = self._generation
        value = loader()
        expires_at = self._clock() + (ttl if ttl is not None else self._default_ttl)
        with self._lock:
            if self._generation != generation:
                logger.debug("Discarded %s load that raced an invalidation", key)
            elif value is not None:
                self._entries[key] = _Entry(value, expires_at, frozenset(tags))
        return value

    # -------------------------------------------------------------------
    # Invalidation
    # -------------------------------------------------------------------
    def invalidate_tags(self, tags: Iterable[str]) -> int:
        """Drop every entry carrying any of *tags*.  Returns the count dropped."""
        wanted = set(tags)
        with self._lock:
            self._generation += 1
            doomed = [k for k, e in self._entries.items() if e.tags & wanted]
            for key in doomed:
                del self._entries[key]
        if doomed:
            logger.debug("Invalidated %d cache entries for tags %s", len(doomed), sorted(wanted))
        return len(doomed)

    def invalidate_prefix(self, prefix: str) -> int:
        with self._lock:
            self._generation += 1
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._generation += 1
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def cleanup_expired(self) -> int:
        """Evict expired entries.  Returns the count evicted."""
        now = self._clock()
        with self._lock:
            doomed = [k for k, e in self._entries.items() if e.expires_at <= now]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total, 3) if total else 0.0,
                "keys": sorted(self._entries),
            }
