"""
personaflux — Interaction Pattern Analyzer

Stage 1 of the evolution pipeline. Reduces a batch of events into an
InteractionPattern: frequency, categorical distributions, engagement
metrics, first-half/second-half trends and time-of-day/weekday/season
histograms.

Pure functions of their inputs. Caching is the controller's concern.
Every metric is defined for an empty batch (all zeros), so nothing here
can divide by zero.
"""

from __future__ import annotations

import enum
import statistics
from collections import Counter
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

import structlog

from personaflux.systems.evolution.types import (
    ENGAGEMENT_VALUES,
    TIME_WINDOW_DAYS,
    EngagementLevel,
    EvolutionEvent,
    InteractionMode,
    InteractionPattern,
    InteractionType,
    Season,
    TimeWindow,
)

logger = structlog.get_logger(system="evolution.patterns")

# Unique-tag count is measured against at most this many events
_MAX_EXPECTED_TOPICS = 20


def analyze_interaction_patterns(
    events: Sequence[EvolutionEvent],
    time_window: TimeWindow = TimeWindow.WEEKLY,
) -> InteractionPattern:
    """Aggregate a batch of events into an InteractionPattern."""
    total = len(events)
    window_days = TIME_WINDOW_DAYS.get(time_window, 7)

    if total == 0:
        return empty_interaction_pattern(time_window=time_window)

    pattern = InteractionPattern(
        actor_id=events[0].actor_id,
        agent_id=events[0].agent_id,
        time_window=time_window,
        total_interactions=total,
        average_session_length=statistics.fmean(e.duration for e in events),
        interaction_frequency=total / window_days,
        type_distribution=_distribution(events, InteractionType, lambda e: e.interaction_type),
        mode_distribution=_distribution(events, InteractionMode, lambda e: e.interaction_mode),
        engagement_distribution=_distribution(
            events, EngagementLevel, lambda e: e.engagement_level
        ),
        average_engagement=statistics.fmean(
            ENGAGEMENT_VALUES[e.engagement_level] for e in events
        ),
        response_time_variance=statistics.pvariance([e.metadata.response_time for e in events]),
        topic_diversity=topic_diversity(events),
        engagement_trend=half_split_trend(
            events, lambda e: ENGAGEMENT_VALUES[e.engagement_level]
        ),
        complexity_trend=half_split_trend(events, lambda e: e.topic_complexity),
        satisfaction_trend=half_split_trend(
            [e for e in events if e.user_satisfaction is not None],
            lambda e: e.user_satisfaction or 0.0,
        ),
        preferred_time_slots=_histogram(events, 24, lambda ts: ts.hour),
        weekday_pattern=_histogram(events, 7, lambda ts: ts.weekday()),
        seasonal_pattern=_seasonal_pattern(events),
    )

    logger.debug(
        "interaction_pattern_analyzed",
        total_interactions=total,
        time_window=time_window.value,
        average_engagement=round(pattern.average_engagement, 3),
    )
    return pattern


def empty_interaction_pattern(
    actor_id: str = "",
    agent_id: str = "",
    time_window: TimeWindow = TimeWindow.WEEKLY,
) -> InteractionPattern:
    """The all-zero pattern used for empty batches and failure results."""
    return InteractionPattern(actor_id=actor_id, agent_id=agent_id, time_window=time_window)


# ─── Metrics ──────────────────────────────────────────────────────────────────


def topic_diversity(events: Sequence[EvolutionEvent]) -> float:
    """Unique topic tags relative to min(N, 20), capped at 1."""
    if not events:
        return 0.0
    unique = {tag for e in events for tag in e.metadata.topic_tags}
    expected = min(len(events), _MAX_EXPECTED_TOPICS)
    return min(len(unique) / expected, 1.0)


def half_split_trend(
    events: Sequence[EvolutionEvent],
    value: Callable[[EvolutionEvent], float],
) -> float:
    """
    Mean of the chronologically later half minus mean of the earlier half.
    Fewer than two events means no trend.
    """
    if len(events) < 2:
        return 0.0
    ordered = sorted(events, key=lambda e: e.timestamp)
    mid = len(ordered) // 2
    first = statistics.fmean(value(e) for e in ordered[:mid])
    second = statistics.fmean(value(e) for e in ordered[mid:])
    return second - first


def season_for(moment: datetime) -> Season:
    month = moment.month
    if 3 <= month <= 5:
        return Season.SPRING
    if 6 <= month <= 8:
        return Season.SUMMER
    if 9 <= month <= 11:
        return Season.AUTUMN
    return Season.WINTER


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _distribution(
    events: Sequence[EvolutionEvent],
    members: type[enum.Enum],
    key: Callable[[EvolutionEvent], enum.Enum],
) -> dict[Any, float]:
    counts = Counter(key(e) for e in events)
    total = len(events)
    return {member: counts.get(member, 0) / total for member in members}


def _histogram(
    events: Sequence[EvolutionEvent],
    buckets: int,
    bucket_of: Callable[[datetime], int],
) -> list[float]:
    counts = [0] * buckets
    for e in events:
        counts[bucket_of(e.timestamp)] += 1
    total = len(events)
    return [c / total for c in counts]


def _seasonal_pattern(events: Sequence[EvolutionEvent]) -> dict[Season, float]:
    counts = Counter(season_for(e.timestamp) for e in events)
    total = len(events)
    return {season: counts.get(season, 0) / total for season in Season}
