"""
personaflux — Interaction Pattern Cache

In-process TTL cache for stage-1 patterns, owned by the controller.

Key strategy: SHA256(event ids in order + time window) → deterministic.
Entries older than the TTL are treated as misses and dropped on read; when
the cache is full the oldest insertion is evicted.

Single-process, best-effort state. Not shared across workers.
"""

from __future__ import annotations

import hashlib
from collections import OrderedDict
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

import structlog

from personaflux.primitives.common import Clock, utc_now
from personaflux.systems.evolution.types import (
    EvolutionEvent,
    InteractionPattern,
    TimeWindow,
)

logger = structlog.get_logger(system="evolution.cache")


@dataclass
class CacheEntry:
    """A cached pattern with its insertion time."""

    pattern: InteractionPattern
    stored_at: datetime
    hit_count: int = 0


class PatternCache:
    """
    Bounded TTL cache of InteractionPattern keyed by the event-id sequence
    and window. Tracks hits and misses for observability.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_size: int,
        clock: Clock = utc_now,
    ) -> None:
        self._ttl_seconds = ttl_seconds
        self._max_size = max_size
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self._hit_count = 0
        self._miss_count = 0

    @staticmethod
    def compute_key(events: Sequence[EvolutionEvent], time_window: TimeWindow) -> str:
        joined = "_".join(e.id for e in events)
        digest = hashlib.sha256(f"{joined}:{time_window.value}".encode()).hexdigest()
        return f"pattern:{time_window.value}:{digest}"

    def get(self, key: str) -> InteractionPattern | None:
        entry = self._entries.get(key)
        if entry is None:
            self._miss_count += 1
            return None

        age = (self._clock() - entry.stored_at).total_seconds()
        if age >= self._ttl_seconds:
            del self._entries[key]
            self._miss_count += 1
            logger.debug("pattern_cache_expired", key=key, age_s=round(age, 1))
            return None

        entry.hit_count += 1
        self._hit_count += 1
        return entry.pattern.model_copy(deep=True)

    def put(self, key: str, pattern: InteractionPattern) -> None:
        if key in self._entries:
            del self._entries[key]
        self._entries[key] = CacheEntry(
            pattern=pattern.model_copy(deep=True), stored_at=self._clock()
        )
        while len(self._entries) > self._max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("pattern_cache_evicted", key=evicted)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def stats(self) -> dict[str, float]:
        lookups = self._hit_count + self._miss_count
        return {
            "size": len(self._entries),
            "hits": self._hit_count,
            "misses": self._miss_count,
            "hit_rate": self._hit_count / lookups if lookups else 0.0,
        }
