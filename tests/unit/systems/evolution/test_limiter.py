"""
Unit tests for the evolution limiter clamp cascade.

Default per-trait elasticity factors used below:
  openness      (1 - 0.3) * 0.6 = 0.42
  extraversion  (1 - 0.2) * 0.7 = 0.56
  creativity    (1 - 0.2) * 0.8 = 0.64
"""

from __future__ import annotations

import pytest

from personaflux.config import DailyLimits, EvolutionLimits, GlobalConstraints, TraitLimit
from personaflux.primitives.personality import DEFAULT_TRAITS
from personaflux.systems.evolution.limiter import apply_evolution_limits, trait_tag
from personaflux.systems.evolution.types import (
    ALL_TRAITS,
    LIMIT_DAILY,
    LIMIT_EMERGENCY_BRAKE,
    LIMIT_MAX_VALUE,
    LIMIT_MIN_VALUE,
    LIMIT_SIMULTANEOUS_CHANGES,
    LIMIT_WEEKLY,
    RecentChanges,
    Trait,
    zero_traits,
)


# ─── Fixtures ─────────────────────────────────────────────────────────────────


def make_deltas(**values: float) -> dict[Trait, float]:
    deltas = zero_traits()
    for name, value in values.items():
        deltas[Trait(name)] = value
    return deltas


def make_current(**values: float) -> dict[Trait, float]:
    current = dict(DEFAULT_TRAITS)
    for name, value in values.items():
        current[Trait(name)] = value
    return current


def make_recent(**daily: float) -> RecentChanges:
    return RecentChanges(daily=make_deltas(**daily))


def limit(anchored, current=None, recent=None, limits=None):
    return apply_evolution_limits(
        anchored,
        current or make_current(),
        recent or RecentChanges(),
        limits or EvolutionLimits(),
    )


# ─── Cascade Steps ────────────────────────────────────────────────────────────


class TestNoChange:
    def test_zero_in_zero_out(self):
        outcome = limit(zero_traits())
        assert all(v == 0.0 for v in outcome.limited.values())
        assert outcome.applied_limits == []
        assert outcome.nonzero_changes == 0


class TestSimultaneousChanges:
    def test_keeps_only_largest(self):
        limits = EvolutionLimits(global_constraints=GlobalConstraints(max_simultaneous_changes=1))
        anchored = make_deltas(openness=0.05, extraversion=0.1, empathy=0.02, curiosity=0.02)
        outcome = limit(anchored, limits=limits)
        assert outcome.nonzero_changes == 1
        assert outcome.limited[Trait.EXTRAVERSION] == pytest.approx(0.1 * 0.56)
        assert LIMIT_SIMULTANEOUS_CHANGES in outcome.applied_limits

    def test_ties_keep_declaration_order(self):
        limits = EvolutionLimits(global_constraints=GlobalConstraints(max_simultaneous_changes=1))
        anchored = make_deltas(creativity=0.05, openness=0.05)
        outcome = limit(anchored, limits=limits)
        assert outcome.limited[Trait.OPENNESS] == pytest.approx(0.05 * 0.42)
        assert outcome.limited[Trait.CREATIVITY] == 0.0

    def test_delta_at_threshold_counts_toward_cap(self):
        limits = EvolutionLimits(
            trait_limits={
                trait: TraitLimit(
                    min_value=0.0, max_value=1.0, change_resistance=0.0, volatility=1.0
                )
                for trait in ALL_TRAITS
            },
            global_constraints=GlobalConstraints(max_simultaneous_changes=1),
        )
        outcome = limit(make_deltas(openness=0.1, empathy=0.001), limits=limits)
        assert outcome.nonzero_changes == 1
        assert outcome.limited[Trait.OPENNESS] == pytest.approx(0.1)
        assert outcome.limited[Trait.EMPATHY] == 0.0
        assert LIMIT_SIMULTANEOUS_CHANGES in outcome.applied_limits

    def test_under_cap_not_tagged(self):
        outcome = limit(make_deltas(openness=0.05, extraversion=0.05))
        assert LIMIT_SIMULTANEOUS_CHANGES not in outcome.applied_limits


class TestElasticity:
    def test_resistance_and_volatility(self):
        outcome = limit(make_deltas(openness=0.1, creativity=-0.1))
        assert outcome.limited[Trait.OPENNESS] == pytest.approx(0.042)
        assert outcome.limited[Trait.CREATIVITY] == pytest.approx(-0.064)
        assert outcome.applied_limits == []


class TestBounds:
    def test_stops_at_max_value(self):
        outcome = limit(make_deltas(openness=0.1), current=make_current(openness=0.89))
        assert outcome.limited[Trait.OPENNESS] == pytest.approx(0.01)
        assert trait_tag(Trait.OPENNESS, LIMIT_MAX_VALUE) in outcome.applied_limits

    def test_stops_at_min_value(self):
        outcome = limit(make_deltas(openness=-0.1), current=make_current(openness=0.11))
        assert outcome.limited[Trait.OPENNESS] == pytest.approx(-0.01)
        assert "openness: min value" in outcome.applied_limits

    def test_already_outside_bounds_does_not_move_further(self):
        outcome = limit(make_deltas(openness=0.1), current=make_current(openness=0.95))
        assert outcome.limited[Trait.OPENNESS] == 0.0
        assert trait_tag(Trait.OPENNESS, LIMIT_MAX_VALUE) in outcome.applied_limits

    def test_already_outside_bounds_may_move_back(self):
        outcome = limit(make_deltas(openness=-0.1), current=make_current(openness=0.95))
        assert outcome.limited[Trait.OPENNESS] == pytest.approx(-0.042)
        assert trait_tag(Trait.OPENNESS, LIMIT_MIN_VALUE) not in outcome.applied_limits


class TestCumulativeCaps:
    def test_daily_headroom(self):
        outcome = limit(make_deltas(openness=0.1), recent=make_recent(openness=0.14))
        assert outcome.limited[Trait.OPENNESS] == pytest.approx(0.01)
        assert trait_tag(Trait.OPENNESS, LIMIT_DAILY) in outcome.applied_limits

    def test_exhausted_daily_budget_zeroes_without_sign_flip(self):
        outcome = limit(make_deltas(openness=0.1), recent=make_recent(openness=0.2))
        assert outcome.limited[Trait.OPENNESS] == 0.0
        assert trait_tag(Trait.OPENNESS, LIMIT_DAILY) in outcome.applied_limits

    def test_negative_delta_keeps_sign(self):
        outcome = limit(make_deltas(openness=-0.1), recent=make_recent(openness=0.14))
        assert outcome.limited[Trait.OPENNESS] == pytest.approx(-0.01)

    def test_weekly_cap(self):
        recent = RecentChanges(weekly=make_deltas(extraversion=0.39))
        outcome = limit(make_deltas(extraversion=0.1), recent=recent)
        assert outcome.limited[Trait.EXTRAVERSION] == pytest.approx(0.01)
        assert trait_tag(Trait.EXTRAVERSION, LIMIT_WEEKLY) in outcome.applied_limits

    def test_tightened_daily_cap_never_increases_magnitude(self):
        anchored = make_deltas(openness=0.2, extraversion=-0.2, creativity=0.15)
        recent = make_recent(openness=0.05, extraversion=0.05)
        loose = limit(anchored, recent=recent)
        tight = limit(
            anchored,
            recent=recent,
            limits=EvolutionLimits(daily=DailyLimits(max_change=0.06)),
        )
        for trait in ALL_TRAITS:
            assert abs(tight.limited[trait]) <= abs(loose.limited[trait])
            assert abs(tight.limited[trait]) <= 0.06
        assert tight.applied_limits


class TestEmergencyBrakeAndDeadZone:
    def test_emergency_brake(self):
        limits = EvolutionLimits(global_constraints=GlobalConstraints(emergency_brake=0.01))
        outcome = limit(make_deltas(openness=0.1), limits=limits)
        assert outcome.limited[Trait.OPENNESS] == pytest.approx(0.01)
        assert trait_tag(Trait.OPENNESS, LIMIT_EMERGENCY_BRAKE) in outcome.applied_limits

    def test_dead_zone_snaps_without_tag(self):
        outcome = limit(make_deltas(openness=0.002))
        assert outcome.limited[Trait.OPENNESS] == 0.0
        assert outcome.applied_limits == []


# ─── Properties ───────────────────────────────────────────────────────────────


class TestProperties:
    @pytest.mark.parametrize("value", [0.3, -0.3, 0.05, -0.05, 0.0015])
    def test_never_grows_or_flips(self, value):
        anchored = {trait: value for trait in ALL_TRAITS}
        outcome = limit(anchored, current=make_current(openness=0.88, agreeableness=0.21))
        for trait in ALL_TRAITS:
            out = outcome.limited[trait]
            assert abs(out) <= abs(value)
            assert out == 0.0 or (out > 0) == (value > 0)

    def test_deterministic(self):
        anchored = make_deltas(openness=0.1, empathy=-0.07, playfulness=0.2)
        recent = make_recent(playfulness=0.1)
        first = limit(anchored, recent=recent)
        second = limit(anchored, recent=recent)
        assert first.limited == second.limited
        assert first.applied_limits == second.applied_limits

    def test_input_not_mutated(self):
        anchored = make_deltas(openness=0.1)
        limit(anchored)
        assert anchored[Trait.OPENNESS] == 0.1
