"""
personaflux — Raw Adjustment Calculator

Stage 2 of the evolution pipeline. Turns events plus their aggregate pattern
into unclamped per-trait deltas:

  composite = quality(messages, duration, satisfaction)
              × mode multiplier × engagement multiplier × time decay
  delta[t] += weight[type][t] × composite
              × (1 + 0.2·emotional_intensity + 0.15·topic_complexity)

The summed deltas are then scaled by an interaction-frequency factor and
normalised so no single trait moves by more than MAX_SINGLE_BATCH_ADJUSTMENT.

An event whose interaction type has no weight row contributes nothing; a
warning is logged and returned so the controller can surface it.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from personaflux.config import EventDecayConfig, EvolutionConfig
from personaflux.systems.evolution.types import (
    ALL_TRAITS,
    MAX_SINGLE_BATCH_ADJUSTMENT,
    OPTIMAL_DAILY_FREQUENCY,
    EvolutionEvent,
    InteractionPattern,
    Trait,
    zero_traits,
)

logger = structlog.get_logger(system="evolution.adjustment")

_SECONDS_PER_DAY = 86_400.0
# Duration at which the duration factor reaches 1.0
_REFERENCE_DURATION_S = 1800.0
_REFERENCE_MESSAGE_COUNT = 10.0

_MAX_MESSAGE_FACTOR = 1.5
_MAX_DURATION_FACTOR = 1.2
_MIN_EVENT_WEIGHT = 0.1
_MAX_EVENT_WEIGHT = 2.0

_EMOTIONAL_BOOST = 0.2
_COMPLEXITY_BOOST = 0.15

_MAX_FREQUENCY_FACTOR = 1.5


@dataclass
class RawAdjustment:
    """Output of stage 2. `deltas` always carries every trait."""

    deltas: dict[Trait, float] = field(default_factory=zero_traits)
    warnings: list[str] = field(default_factory=list)
    mean_event_weight: float = 0.0
    frequency_factor: float = 1.0


def calculate_raw_adjustment(
    events: Sequence[EvolutionEvent],
    pattern: InteractionPattern,
    config: EvolutionConfig,
    now: datetime,
) -> RawAdjustment:
    """Compute per-trait raw deltas for a batch of events."""
    result = RawAdjustment()
    deltas = result.deltas
    composite_weights: list[float] = []

    for event in events:
        base_weights = config.interaction_weights.get(event.interaction_type)
        if base_weights is None:
            logger.warning(
                "weight_row_missing",
                interaction_type=event.interaction_type.value,
                event_id=event.id,
            )
            result.warnings.append(
                f"No trait weights configured for interaction type "
                f"'{event.interaction_type.value}' (event {event.id} skipped)"
            )
            continue

        composite = (
            event_quality_weight(event)
            * config.mode_multipliers.get(event.interaction_mode, 1.0)
            * config.engagement_multipliers.get(event.engagement_level, 1.0)
            * time_decay_weight(event.timestamp, now, config.time_decay.event_decay)
        )
        composite_weights.append(composite)

        boost = (
            1.0
            + event.emotional_intensity * _EMOTIONAL_BOOST
            + event.topic_complexity * _COMPLEXITY_BOOST
        )
        for trait in ALL_TRAITS:
            deltas[trait] += base_weights.get(trait, 0.0) * composite * boost

    result.frequency_factor = frequency_adjustment(pattern.interaction_frequency)
    for trait in ALL_TRAITS:
        deltas[trait] *= result.frequency_factor

    normalize_adjustments(deltas)

    if composite_weights:
        result.mean_event_weight = sum(composite_weights) / len(composite_weights)

    logger.debug(
        "raw_adjustment_calculated",
        event_count=len(events),
        frequency_factor=round(result.frequency_factor, 4),
        max_adjustment=round(max(deltas.values()), 4),
        min_adjustment=round(min(deltas.values()), 4),
    )
    return result


# ─── Weights ──────────────────────────────────────────────────────────────────


def event_quality_weight(event: EvolutionEvent) -> float:
    """
    Evidence quality of one event, in [0.1, 2.0].

    Product of a message-count factor (capped at 1.5), a duration factor
    against a 30-minute reference (capped at 1.2) and, when reported, a
    satisfaction factor of 0.5 + satisfaction.
    """
    weight = min(event.message_count / _REFERENCE_MESSAGE_COUNT, _MAX_MESSAGE_FACTOR)
    weight *= min(event.duration / _REFERENCE_DURATION_S, _MAX_DURATION_FACTOR)
    if event.user_satisfaction is not None:
        weight *= 0.5 + event.user_satisfaction
    return max(_MIN_EVENT_WEIGHT, min(weight, _MAX_EVENT_WEIGHT))


def time_decay_weight(timestamp: datetime, now: datetime, decay: EventDecayConfig) -> float:
    """Exponential half-life decay from `now`, floored at decay.minimum_weight."""
    # Future timestamps count as fresh rather than amplified
    age_days = max(0.0, (now - timestamp).total_seconds() / _SECONDS_PER_DAY)
    return max(decay.minimum_weight, 0.5 ** (age_days / decay.half_life_days))


def frequency_adjustment(frequency: float) -> float:
    """
    Scale factor from interactions per day against the optimal reference.
    Below the reference: 0.5 → 1.0 linearly. Above: logarithmic, capped at 1.5.
    """
    ratio = frequency / OPTIMAL_DAILY_FREQUENCY
    if ratio <= 1:
        return 0.5 + 0.5 * ratio
    return min(1.0 + 0.2 * math.log(ratio), _MAX_FREQUENCY_FACTOR)


def normalize_adjustments(deltas: dict[Trait, float]) -> None:
    """Scale all deltas uniformly (in place) so max |delta| ≤ the batch cap."""
    if not deltas:
        return
    largest = max(abs(v) for v in deltas.values())
    if largest > MAX_SINGLE_BATCH_ADJUSTMENT:
        scale = MAX_SINGLE_BATCH_ADJUSTMENT / largest
        for trait in deltas:
            deltas[trait] *= scale
