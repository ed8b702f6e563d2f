"""
Unit tests for the interaction pattern cache.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from personaflux.systems.evolution.cache import PatternCache
from personaflux.systems.evolution.patterns import analyze_interaction_patterns
from personaflux.systems.evolution.types import (
    EvolutionEvent,
    InteractionPattern,
    InteractionType,
    TimeWindow,
)

START = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class ManualClock:
    """A clock the test advances by hand."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def make_event(event_id: str) -> EvolutionEvent:
    return EvolutionEvent(
        id=event_id,
        interaction_type=InteractionType.LEARNING,
        message_count=4,
        timestamp=START,
    )


def make_pattern(total: int = 1) -> InteractionPattern:
    return InteractionPattern(total_interactions=total)


class TestCacheKey:
    def test_same_ids_same_key(self):
        a = [make_event("e1"), make_event("e2")]
        b = [make_event("e1"), make_event("e2")]
        assert PatternCache.compute_key(a, TimeWindow.WEEKLY) == PatternCache.compute_key(
            b, TimeWindow.WEEKLY
        )

    def test_order_and_window_matter(self):
        events = [make_event("e1"), make_event("e2")]
        weekly = PatternCache.compute_key(events, TimeWindow.WEEKLY)
        assert weekly != PatternCache.compute_key(list(reversed(events)), TimeWindow.WEEKLY)
        assert weekly != PatternCache.compute_key(events, TimeWindow.MONTHLY)


class TestPatternCache:
    def test_hit_within_ttl(self):
        clock = ManualClock(START)
        cache = PatternCache(ttl_seconds=60, max_size=10, clock=clock)
        events = [make_event("e1")]
        pattern = analyze_interaction_patterns(events)
        cache.put("k", pattern)
        clock.advance(59)
        assert cache.get("k") == pattern
        assert cache.stats["hits"] == 1

    def test_expires_at_ttl(self):
        clock = ManualClock(START)
        cache = PatternCache(ttl_seconds=60, max_size=10, clock=clock)
        cache.put("k", make_pattern())
        clock.advance(60)
        assert cache.get("k") is None
        assert len(cache) == 0
        assert cache.stats["misses"] == 1

    def test_evicts_oldest_when_full(self):
        cache = PatternCache(ttl_seconds=60, max_size=2, clock=ManualClock(START))
        cache.put("a", make_pattern(1))
        cache.put("b", make_pattern(2))
        cache.put("c", make_pattern(3))
        assert len(cache) == 2
        assert cache.get("a") is None
        assert cache.get("c").total_interactions == 3

    def test_returned_pattern_is_a_copy(self):
        cache = PatternCache(ttl_seconds=60, max_size=10, clock=ManualClock(START))
        cache.put("k", make_pattern(5))
        first = cache.get("k")
        first.total_interactions = 99
        assert cache.get("k").total_interactions == 5

    def test_clear(self):
        cache = PatternCache(ttl_seconds=60, max_size=10, clock=ManualClock(START))
        cache.put("k", make_pattern())
        cache.clear()
        assert len(cache) == 0
        assert cache.get("k") is None

    def test_hit_rate(self):
        cache = PatternCache(ttl_seconds=60, max_size=10, clock=ManualClock(START))
        assert cache.stats["hit_rate"] == 0.0
        cache.put("k", make_pattern())
        cache.get("k")
        cache.get("missing")
        assert cache.stats["hit_rate"] == 0.5
