"""
personaflux — Evolution Limiter

Stage 4 of the evolution pipeline. A fixed cascade of clamps; every step can
only shrink a delta's magnitude, never grow it or flip its sign:

  1. Simultaneous-change cap  — keep only the top-K deltas by magnitude
  2. Elasticity               — × (1 - change_resistance) × volatility
  3. Absolute bounds          — stop at the trait's [min_value, max_value]
  4. Cumulative caps          — daily, weekly, monthly headroom
  5. Emergency brake          — hard per-trait ceiling
  6. Dead zone                — |delta| < MINIMUM_TRAIT_CHANGE snaps to 0

Deterministic and stateless; identical inputs give identical outputs.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field

import structlog

from personaflux.config import EvolutionLimits
from personaflux.systems.evolution.types import (
    ALL_TRAITS,
    LIMIT_DAILY,
    LIMIT_EMERGENCY_BRAKE,
    LIMIT_MAX_VALUE,
    LIMIT_MIN_VALUE,
    LIMIT_MONTHLY,
    LIMIT_SIMULTANEOUS_CHANGES,
    LIMIT_WEEKLY,
    MINIMUM_TRAIT_CHANGE,
    RecentChanges,
    Trait,
)

logger = structlog.get_logger(system="evolution.limiter")


@dataclass
class LimitOutcome:
    limited: dict[Trait, float]
    applied_limits: list[str] = field(default_factory=list)

    @property
    def nonzero_changes(self) -> int:
        return sum(1 for v in self.limited.values() if v != 0.0)


def trait_tag(trait: Trait, limit: str) -> str:
    return f"{trait.value}: {limit}"


def apply_evolution_limits(
    anchored: Mapping[Trait, float],
    current: Mapping[Trait, float],
    recent: RecentChanges,
    limits: EvolutionLimits,
) -> LimitOutcome:
    """Run the full clamp cascade over anchored deltas."""
    deltas = {trait: anchored.get(trait, 0.0) for trait in ALL_TRAITS}
    applied: list[str] = []

    # 1. Global simultaneous-change cap
    max_changes = limits.global_constraints.max_simultaneous_changes
    changing = sum(1 for v in deltas.values() if abs(v) >= MINIMUM_TRAIT_CHANGE)
    if changing > max_changes:
        # sorted() is stable, so ties keep trait declaration order
        ranked = sorted(ALL_TRAITS, key=lambda t: abs(deltas[t]), reverse=True)
        for trait in ranked[max_changes:]:
            deltas[trait] = 0.0
        applied.append(LIMIT_SIMULTANEOUS_CHANGES)

    periods = (
        (LIMIT_DAILY, limits.daily.max_change, recent.daily),
        (LIMIT_WEEKLY, limits.weekly.max_change, recent.weekly),
        (LIMIT_MONTHLY, limits.monthly.max_change, recent.monthly),
    )
    brake = limits.global_constraints.emergency_brake

    for trait in ALL_TRAITS:
        delta = deltas[trait]
        if delta == 0.0:
            continue
        trait_limit = limits.trait_limits[trait]
        current_value = current[trait]

        # 2. Elasticity
        delta *= (1.0 - trait_limit.change_resistance) * trait_limit.volatility

        # 3. Absolute bounds, only in the direction of motion
        new_value = current_value + delta
        if delta < 0 and new_value < trait_limit.min_value:
            delta = min(0.0, max(delta, trait_limit.min_value - current_value))
            applied.append(trait_tag(trait, LIMIT_MIN_VALUE))
        elif delta > 0 and new_value > trait_limit.max_value:
            delta = max(0.0, min(delta, trait_limit.max_value - current_value))
            applied.append(trait_tag(trait, LIMIT_MAX_VALUE))

        # 4. Cumulative caps
        for tag, cap, changes in periods:
            if delta == 0.0:
                break
            used = abs(changes.get(trait, 0.0))
            if used + abs(delta) > cap:
                headroom = max(0.0, cap - used)
                delta = math.copysign(min(abs(delta), headroom), delta)
                applied.append(trait_tag(trait, tag))

        # 5. Emergency brake
        if abs(delta) > brake:
            delta = math.copysign(brake, delta)
            applied.append(trait_tag(trait, LIMIT_EMERGENCY_BRAKE))

        deltas[trait] = delta

    # 6. Dead zone
    for trait in ALL_TRAITS:
        if abs(deltas[trait]) < MINIMUM_TRAIT_CHANGE:
            deltas[trait] = 0.0

    outcome = LimitOutcome(limited=deltas, applied_limits=applied)
    logger.debug(
        "evolution_limits_applied",
        applied_limits_count=len(applied),
        nonzero_changes=outcome.nonzero_changes,
    )
    return outcome
