"""Bounded, time-expiring cache of analysis verdicts.

Eviction is strictly first-in-first-out: reading an entry never moves it,
so under capacity pressure the oldest insert goes first even if it was just
read. Expiry is lazy and happens on lookup.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable, Sequence

    from contentguard.ml.aggregator import Verdict
    from contentguard.ml.nsfw_classifier import ClassProbability

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS: float = 300.0
DEFAULT_MAX_ENTRIES: int = 10


@dataclass(frozen=True)
class CacheEntry:
    key: Hashable
    verdict: Verdict
    predictions: tuple[ClassProbability, ...]
    created_at: float


@dataclass(frozen=True)
class CacheStats:
    size: int
    max_size: int
    hits: int
    misses: int
    evictions: int


def _describe(key: Hashable) -> str:
    return str(key)[:50]


class ResultCache:
    """FIFO cache keyed by caller-supplied image identity (no normalization)."""

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")

        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock

        self._lock = threading.Lock()
        # dicts keep insertion order, and re-assigning a key keeps its slot.
        self._entries: dict[Hashable, CacheEntry] = {}
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    # -- Public API ---------------------------------------------------------

    def get(self, key: Hashable) -> CacheEntry | None:
        """Return the cached entry, or None if absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if self._clock() - entry.created_at >= self._ttl:
                del self._entries[key]
                self._misses += 1
                logger.debug("Expired cache entry for %s", _describe(key))
                return None

            self._hits += 1
            logger.info("Cache hit for image: %s", _describe(key))
            return entry

    def set(self, key: Hashable, verdict: Verdict, predictions: Sequence[ClassProbability] = ()) -> CacheEntry:
        """Store a verdict, evicting the oldest insert if the cache is full."""
        with self._lock:
            if len(self._entries) >= self._max_entries:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
                self._evictions += 1
                logger.info("Evicted oldest cache entry %s", _describe(oldest))

            entry = CacheEntry(
                key=key,
                verdict=verdict,
                predictions=tuple(predictions),
                created_at=self._clock(),
            )
            self._entries[key] = entry
            logger.info("Cached result for image: %s", _describe(key))
            return entry

    def clear(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._entries.clear()
            logger.info("Image cache cleared")

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                max_size=self._max_entries,
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
            )

    def keys(self) -> list[Hashable]:
        """Keys in insertion (eviction) order. Expired entries stay until looked up."""
        with self._lock:
            return list(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries
