"""
personaflux — Baseline Anchoring

Stage 3 of the evolution pipeline. Pulls raw deltas back toward the
configured neutral baseline so personality drifts rather than lurches.

  pull     = -(current - baseline) × age_strength(age) × decay_influence(age)
  adaptive = sign(current - baseline) × min(learning_rate × |distance|, max_shift)
             (only once the agent is past its stabilisation period and the
             distance exceeds the adaptation threshold)
  anchored = raw + pull + adaptive

Young agents are anchored weakly (0.6× strength under a week), mature ones
strongly (1.2× from 30 days on), with a linear ramp between.
"""

from __future__ import annotations

import math
from collections.abc import Mapping

import structlog

from personaflux.config import BaselineAnchoringConfig
from personaflux.systems.evolution.types import ALL_TRAITS, Trait

logger = structlog.get_logger(system="evolution.anchoring")

_YOUNG_AGE_DAYS = 7
_MATURE_AGE_DAYS = 30
_YOUNG_STRENGTH_FACTOR = 0.6
_MATURE_STRENGTH_FACTOR = 1.2


def apply_baseline_anchoring(
    raw: Mapping[Trait, float],
    current: Mapping[Trait, float],
    agent_age_days: float,
    config: BaselineAnchoringConfig,
) -> dict[Trait, float]:
    """Return anchored deltas for every trait."""
    strength = age_adjusted_strength(agent_age_days, config.anchoring_strength)
    influence = time_decay_influence(agent_age_days, config)

    anchored: dict[Trait, float] = {}
    for trait in ALL_TRAITS:
        current_value = current[trait]
        baseline = config.personality_baseline[trait]
        pull = -(current_value - baseline) * strength * influence
        adaptive = adaptive_adjustment(current_value, baseline, agent_age_days, config)
        anchored[trait] = raw.get(trait, 0.0) + pull + adaptive

    logger.debug(
        "baseline_anchoring_applied",
        agent_age_days=agent_age_days,
        strength=round(strength, 4),
        influence=round(influence, 4),
        average_effect=round(average_anchoring_effect(raw, anchored), 4),
    )
    return anchored


def age_adjusted_strength(agent_age_days: float, base_strength: float) -> float:
    if agent_age_days < _YOUNG_AGE_DAYS:
        return base_strength * _YOUNG_STRENGTH_FACTOR
    if agent_age_days < _MATURE_AGE_DAYS:
        ramp = (agent_age_days - _YOUNG_AGE_DAYS) / (_MATURE_AGE_DAYS - _YOUNG_AGE_DAYS)
        return base_strength * (_YOUNG_STRENGTH_FACTOR + (1.0 - _YOUNG_STRENGTH_FACTOR) * ramp)
    return base_strength * _MATURE_STRENGTH_FACTOR


def time_decay_influence(agent_age_days: float, config: BaselineAnchoringConfig) -> float:
    """How much the baseline still matters at this age. Never below minimum_influence."""
    decay = config.time_decay
    rate = decay.decay_rate
    if decay.decay_function == "linear":
        value = 1.0 - rate * agent_age_days
    elif decay.decay_function == "exponential":
        value = math.exp(-rate * agent_age_days)
    elif decay.decay_function == "logarithmic":
        value = 1.0 - rate * math.log(agent_age_days + 1.0)
    else:
        return 1.0
    return max(decay.minimum_influence, value)


def adaptive_adjustment(
    current_value: float,
    baseline: float,
    agent_age_days: float,
    config: BaselineAnchoringConfig,
) -> float:
    """Drift term that lets a settled agent keep part of its long-standing offset."""
    adaptive = config.adaptive
    if agent_age_days < adaptive.stabilization_period_days:
        return 0.0

    distance = current_value - baseline
    if abs(distance) <= adaptive.adaptation_threshold:
        return 0.0

    direction = 1.0 if distance > 0 else -1.0
    return direction * min(adaptive.learning_rate * abs(distance), adaptive.max_baseline_shift)


def average_anchoring_effect(
    raw: Mapping[Trait, float],
    anchored: Mapping[Trait, float],
) -> float:
    """Mean relative change anchoring made to each non-zero raw delta."""
    effects = []
    for trait in ALL_TRAITS:
        before = raw.get(trait, 0.0)
        after = anchored.get(trait, 0.0)
        effects.append(abs(after - before) / abs(before) if before != 0 else 0.0)
    return sum(effects) / len(effects)
