"""
personaflux — Configuration System

All configuration is Pydantic-validated and loaded from:
1. Built-in defaults (the tables below)
2. A YAML file (deep-merged over the defaults)
3. Environment variables (overrides)

Trait-keyed tables must cover every Trait; a missing entry is rejected at
construction time. Numeric ranges are checked separately by
`validate_config`, which produces an errors/warnings report.
"""

from __future__ import annotations

import enum
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from personaflux.primitives.personality import (
    ALL_TRAITS,
    DEFAULT_TRAITS,
    EngagementLevel,
    InteractionMode,
    InteractionType,
    Trait,
)

T = Trait

# ─── Default Tables ───────────────────────────────────────────────
# Weight range: -1.0 to 1.0. Positive strengthens the trait.

DEFAULT_INTERACTION_WEIGHTS: dict[InteractionType, dict[Trait, float]] = {
    InteractionType.CASUAL_CHAT: {
        T.OPENNESS: 0.1, T.CONSCIENTIOUSNESS: 0.0, T.EXTRAVERSION: 0.2,
        T.AGREEABLENESS: 0.15, T.NEUROTICISM: -0.1, T.CREATIVITY: 0.05,
        T.EMPATHY: 0.1, T.CURIOSITY: 0.1, T.PLAYFULNESS: 0.2, T.INTELLIGENCE: 0.05,
    },
    InteractionType.EMOTIONAL_SUPPORT: {
        T.OPENNESS: 0.15, T.CONSCIENTIOUSNESS: 0.2, T.EXTRAVERSION: 0.0,
        T.AGREEABLENESS: 0.3, T.NEUROTICISM: -0.2, T.CREATIVITY: 0.1,
        T.EMPATHY: 0.4, T.CURIOSITY: 0.05, T.PLAYFULNESS: -0.1, T.INTELLIGENCE: 0.1,
    },
    InteractionType.LEARNING: {
        T.OPENNESS: 0.3, T.CONSCIENTIOUSNESS: 0.3, T.EXTRAVERSION: 0.05,
        T.AGREEABLENESS: 0.1, T.NEUROTICISM: 0.0, T.CREATIVITY: 0.2,
        T.EMPATHY: 0.1, T.CURIOSITY: 0.4, T.PLAYFULNESS: 0.1, T.INTELLIGENCE: 0.35,
    },
    InteractionType.CREATIVE_WORK: {
        T.OPENNESS: 0.4, T.CONSCIENTIOUSNESS: 0.2, T.EXTRAVERSION: 0.1,
        T.AGREEABLENESS: 0.05, T.NEUROTICISM: 0.1, T.CREATIVITY: 0.5,
        T.EMPATHY: 0.15, T.CURIOSITY: 0.3, T.PLAYFULNESS: 0.25, T.INTELLIGENCE: 0.2,
    },
    InteractionType.PROBLEM_SOLVING: {
        T.OPENNESS: 0.2, T.CONSCIENTIOUSNESS: 0.35, T.EXTRAVERSION: 0.0,
        T.AGREEABLENESS: 0.05, T.NEUROTICISM: -0.15, T.CREATIVITY: 0.25,
        T.EMPATHY: 0.05, T.CURIOSITY: 0.3, T.PLAYFULNESS: 0.0, T.INTELLIGENCE: 0.4,
    },
    InteractionType.ENTERTAINMENT: {
        T.OPENNESS: 0.15, T.CONSCIENTIOUSNESS: -0.1, T.EXTRAVERSION: 0.3,
        T.AGREEABLENESS: 0.2, T.NEUROTICISM: -0.2, T.CREATIVITY: 0.2,
        T.EMPATHY: 0.1, T.CURIOSITY: 0.15, T.PLAYFULNESS: 0.4, T.INTELLIGENCE: 0.05,
    },
    InteractionType.DEEP_CONVERSATION: {
        T.OPENNESS: 0.35, T.CONSCIENTIOUSNESS: 0.2, T.EXTRAVERSION: 0.1,
        T.AGREEABLENESS: 0.2, T.NEUROTICISM: 0.0, T.CREATIVITY: 0.25,
        T.EMPATHY: 0.3, T.CURIOSITY: 0.4, T.PLAYFULNESS: 0.05, T.INTELLIGENCE: 0.3,
    },
    InteractionType.SKILL_PRACTICE: {
        T.OPENNESS: 0.2, T.CONSCIENTIOUSNESS: 0.4, T.EXTRAVERSION: 0.0,
        T.AGREEABLENESS: 0.1, T.NEUROTICISM: -0.1, T.CREATIVITY: 0.15,
        T.EMPATHY: 0.05, T.CURIOSITY: 0.25, T.PLAYFULNESS: 0.1, T.INTELLIGENCE: 0.3,
    },
    InteractionType.STORYTELLING: {
        T.OPENNESS: 0.25, T.CONSCIENTIOUSNESS: 0.1, T.EXTRAVERSION: 0.2,
        T.AGREEABLENESS: 0.15, T.NEUROTICISM: 0.0, T.CREATIVITY: 0.4,
        T.EMPATHY: 0.25, T.CURIOSITY: 0.2, T.PLAYFULNESS: 0.3, T.INTELLIGENCE: 0.15,
    },
    InteractionType.ROUTINE_CHECK: {
        T.OPENNESS: 0.0, T.CONSCIENTIOUSNESS: 0.15, T.EXTRAVERSION: 0.05,
        T.AGREEABLENESS: 0.1, T.NEUROTICISM: -0.05, T.CREATIVITY: 0.0,
        T.EMPATHY: 0.05, T.CURIOSITY: 0.0, T.PLAYFULNESS: 0.0, T.INTELLIGENCE: 0.05,
    },
}

DEFAULT_MODE_MULTIPLIERS: dict[InteractionMode, float] = {
    InteractionMode.QUICK: 0.3,
    InteractionMode.NORMAL: 1.0,
    InteractionMode.EXTENDED: 1.5,
    InteractionMode.DEEP: 2.0,
}

DEFAULT_ENGAGEMENT_MULTIPLIERS: dict[EngagementLevel, float] = {
    EngagementLevel.LOW: 0.4,
    EngagementLevel.MEDIUM: 1.0,
    EngagementLevel.HIGH: 1.6,
    EngagementLevel.INTENSE: 2.2,
}


def _require_all(table: dict[Any, Any], members: tuple[enum.Enum, ...], name: str) -> None:
    missing = [m.value for m in members if m not in table]
    if missing:
        raise ValueError(f"{name} is missing entries for: {', '.join(missing)}")


# ─── Limits ───────────────────────────────────────────────────────


class DailyLimits(BaseModel):
    max_change: float = 0.15
    max_events: int = 20
    cooling_period_hours: float = 2.0


class PeriodLimits(BaseModel):
    max_change: float
    max_cumulative_change: float


class TraitLimit(BaseModel):
    min_value: float
    max_value: float
    change_resistance: float     # 0 = no resistance, 1 = frozen
    volatility: float            # Multiplier on the resisted delta


class GlobalConstraints(BaseModel):
    max_simultaneous_changes: int = 5
    stability_threshold: float = 0.02
    emergency_brake: float = 0.3


def _default_trait_limits() -> dict[Trait, TraitLimit]:
    table = {
        T.OPENNESS: (0.1, 0.9, 0.3, 0.6),
        T.CONSCIENTIOUSNESS: (0.15, 0.95, 0.5, 0.4),
        T.EXTRAVERSION: (0.05, 0.95, 0.2, 0.7),
        T.AGREEABLENESS: (0.2, 0.9, 0.4, 0.5),
        T.NEUROTICISM: (0.1, 0.8, 0.6, 0.3),
        T.CREATIVITY: (0.1, 0.95, 0.2, 0.8),
        T.EMPATHY: (0.15, 0.9, 0.4, 0.5),
        T.CURIOSITY: (0.1, 0.95, 0.25, 0.75),
        T.PLAYFULNESS: (0.05, 0.95, 0.15, 0.85),
        T.INTELLIGENCE: (0.2, 0.95, 0.7, 0.25),
    }
    return {
        trait: TraitLimit(
            min_value=lo, max_value=hi, change_resistance=resistance, volatility=volatility
        )
        for trait, (lo, hi, resistance, volatility) in table.items()
    }


class EvolutionLimits(BaseModel):
    daily: DailyLimits = Field(default_factory=DailyLimits)
    weekly: PeriodLimits = Field(
        default_factory=lambda: PeriodLimits(max_change=0.4, max_cumulative_change=0.5)
    )
    monthly: PeriodLimits = Field(
        default_factory=lambda: PeriodLimits(max_change=0.7, max_cumulative_change=0.8)
    )
    trait_limits: dict[Trait, TraitLimit] = Field(default_factory=_default_trait_limits)
    global_constraints: GlobalConstraints = Field(default_factory=GlobalConstraints)

    @field_validator("trait_limits")
    @classmethod
    def _cover_all_traits(cls, value: dict[Trait, TraitLimit]) -> dict[Trait, TraitLimit]:
        _require_all(value, ALL_TRAITS, "trait_limits")
        return value


# ─── Baseline Anchoring ───────────────────────────────────────────


class AnchoringDecayConfig(BaseModel):
    decay_rate: float = 0.05
    decay_function: Literal["linear", "exponential", "logarithmic"] = "exponential"
    minimum_influence: float = 0.1


class AdaptiveBaselineConfig(BaseModel):
    learning_rate: float = 0.01
    adaptation_threshold: float = 0.1
    max_baseline_shift: float = 0.2
    stabilization_period_days: int = 14


class BaselineAnchoringConfig(BaseModel):
    personality_baseline: dict[Trait, float] = Field(
        default_factory=lambda: dict(DEFAULT_TRAITS)
    )
    anchoring_strength: float = 0.3
    time_decay: AnchoringDecayConfig = Field(default_factory=AnchoringDecayConfig)
    adaptive: AdaptiveBaselineConfig = Field(default_factory=AdaptiveBaselineConfig)

    @field_validator("personality_baseline")
    @classmethod
    def _cover_all_traits(cls, value: dict[Trait, float]) -> dict[Trait, float]:
        _require_all(value, ALL_TRAITS, "personality_baseline")
        return value


# ─── Time Decay / Performance / Logging ───────────────────────────


class EventDecayConfig(BaseModel):
    half_life_days: float = 7.0
    minimum_weight: float = 0.05


class CacheExpiryConfig(BaseModel):
    interaction_patterns_s: float = 3600.0


class TimeDecayConfig(BaseModel):
    event_decay: EventDecayConfig = Field(default_factory=EventDecayConfig)
    cache_expiry: CacheExpiryConfig = Field(default_factory=CacheExpiryConfig)


class PerformanceConfig(BaseModel):
    cache_enabled: bool = True
    max_cache_size: int = 1000
    max_events_per_calculation: int = 200
    # Advisory only: the engine does not enforce it, callers wrap with their own timeout
    timeout_ms: int = 10_000
    batch_size: int = 100


class LoggingConfig(BaseModel):
    level: str = "INFO"
    format: str = "console"  # "console" | "json"


# ─── Root Configuration ──────────────────────────────────────────


class EvolutionConfig(BaseSettings):
    """
    Root configuration. Loads from YAML, overridable by env vars.
    """

    model_config = SettingsConfigDict(
        env_prefix="PERSONAFLUX_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    interaction_weights: dict[InteractionType, dict[Trait, float]] = Field(
        default_factory=lambda: {k: dict(v) for k, v in DEFAULT_INTERACTION_WEIGHTS.items()}
    )
    mode_multipliers: dict[InteractionMode, float] = Field(
        default_factory=lambda: dict(DEFAULT_MODE_MULTIPLIERS)
    )
    engagement_multipliers: dict[EngagementLevel, float] = Field(
        default_factory=lambda: dict(DEFAULT_ENGAGEMENT_MULTIPLIERS)
    )
    limits: EvolutionLimits = Field(default_factory=EvolutionLimits)
    baseline_anchoring: BaselineAnchoringConfig = Field(default_factory=BaselineAnchoringConfig)
    time_decay: TimeDecayConfig = Field(default_factory=TimeDecayConfig)
    performance: PerformanceConfig = Field(default_factory=PerformanceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("interaction_weights")
    @classmethod
    def _rows_cover_all_traits(
        cls, value: dict[InteractionType, dict[Trait, float]]
    ) -> dict[InteractionType, dict[Trait, float]]:
        # Absent rows are reported by validate_config; a present row must be complete.
        for interaction_type, row in value.items():
            _require_all(row, ALL_TRAITS, f"interaction_weights.{interaction_type.value}")
        return value

    @field_validator("mode_multipliers")
    @classmethod
    def _cover_all_modes(cls, value: dict[InteractionMode, float]) -> dict[InteractionMode, float]:
        _require_all(value, tuple(InteractionMode), "mode_multipliers")
        return value

    @field_validator("engagement_multipliers")
    @classmethod
    def _cover_all_levels(
        cls, value: dict[EngagementLevel, float]
    ) -> dict[EngagementLevel, float]:
        _require_all(value, tuple(EngagementLevel), "engagement_multipliers")
        return value


# ─── Validation Report ───────────────────────────────────────────


class ConfigIssue(BaseModel):
    field: str
    message: str
    severity: Literal["warning", "error", "critical"] = "error"
    suggestion: str | None = None


class ConfigValidationReport(BaseModel):
    is_valid: bool
    errors: list[ConfigIssue] = Field(default_factory=list)
    warnings: list[ConfigIssue] = Field(default_factory=list)
    summary: str = ""


class InvalidConfigError(ValueError):
    """Raised when a configuration fails range validation."""

    def __init__(self, report: ConfigValidationReport) -> None:
        self.report = report
        details = "; ".join(f"{e.field}: {e.message}" for e in report.errors)
        super().__init__(f"{report.summary} ({details})")


# Above this batch size the report emits a performance warning
_LARGE_BATCH_SIZE = 500


def validate_config(config: EvolutionConfig) -> ConfigValidationReport:
    """
    Range-check every numeric field. Weights must be in [-1, 1], rates in
    [0, 1], limits strictly positive. Interaction types with no weight row are
    errors: such events would silently contribute nothing.
    """
    errors: list[ConfigIssue] = []
    warnings: list[ConfigIssue] = []

    def rate(field: str, value: float) -> None:
        if not 0.0 <= value <= 1.0:
            errors.append(ConfigIssue(
                field=field,
                message=f"must be between 0 and 1, got {value}",
            ))

    def positive(field: str, value: float) -> None:
        if value <= 0:
            errors.append(ConfigIssue(
                field=field,
                message=f"must be greater than 0, got {value}",
            ))

    # Weights
    for interaction_type in InteractionType:
        row = config.interaction_weights.get(interaction_type)
        if row is None:
            errors.append(ConfigIssue(
                field=f"interaction_weights.{interaction_type.value}",
                message="no trait weight row for this interaction type",
                suggestion="add a complete row; events of this type would otherwise be ignored",
            ))
            continue
        for trait, weight in row.items():
            if not -1.0 <= weight <= 1.0:
                errors.append(ConfigIssue(
                    field=f"interaction_weights.{interaction_type.value}.{trait.value}",
                    message=f"weight must be between -1 and 1, got {weight}",
                    suggestion="adjust the weight into range",
                ))

    for mode, value in config.mode_multipliers.items():
        positive(f"mode_multipliers.{mode.value}", value)
    for level, value in config.engagement_multipliers.items():
        positive(f"engagement_multipliers.{level.value}", value)

    # Limits
    limits = config.limits
    positive("limits.daily.max_change", limits.daily.max_change)
    rate("limits.daily.max_change", limits.daily.max_change)
    positive("limits.daily.max_events", limits.daily.max_events)
    for name, period in (("weekly", limits.weekly), ("monthly", limits.monthly)):
        positive(f"limits.{name}.max_change", period.max_change)
        positive(f"limits.{name}.max_cumulative_change", period.max_cumulative_change)
        if period.max_change > period.max_cumulative_change:
            warnings.append(ConfigIssue(
                field=f"limits.{name}",
                message="max_change exceeds max_cumulative_change",
                severity="warning",
            ))
    for trait, tl in limits.trait_limits.items():
        prefix = f"limits.trait_limits.{trait.value}"
        rate(f"{prefix}.min_value", tl.min_value)
        rate(f"{prefix}.max_value", tl.max_value)
        rate(f"{prefix}.change_resistance", tl.change_resistance)
        rate(f"{prefix}.volatility", tl.volatility)
        if tl.min_value > tl.max_value:
            errors.append(ConfigIssue(
                field=prefix,
                message=f"min_value {tl.min_value} exceeds max_value {tl.max_value}",
            ))
    gc = limits.global_constraints
    positive("limits.global_constraints.max_simultaneous_changes", gc.max_simultaneous_changes)
    positive("limits.global_constraints.emergency_brake", gc.emergency_brake)
    rate("limits.global_constraints.stability_threshold", gc.stability_threshold)

    # Anchoring
    anchoring = config.baseline_anchoring
    rate("baseline_anchoring.anchoring_strength", anchoring.anchoring_strength)
    rate("baseline_anchoring.time_decay.decay_rate", anchoring.time_decay.decay_rate)
    rate("baseline_anchoring.time_decay.minimum_influence", anchoring.time_decay.minimum_influence)
    rate("baseline_anchoring.adaptive.learning_rate", anchoring.adaptive.learning_rate)
    rate(
        "baseline_anchoring.adaptive.adaptation_threshold",
        anchoring.adaptive.adaptation_threshold,
    )
    rate("baseline_anchoring.adaptive.max_baseline_shift", anchoring.adaptive.max_baseline_shift)
    if anchoring.adaptive.stabilization_period_days < 0:
        errors.append(ConfigIssue(
            field="baseline_anchoring.adaptive.stabilization_period_days",
            message="must not be negative",
        ))
    for trait, value in anchoring.personality_baseline.items():
        rate(f"baseline_anchoring.personality_baseline.{trait.value}", value)

    # Time decay
    positive("time_decay.event_decay.half_life_days", config.time_decay.event_decay.half_life_days)
    rate("time_decay.event_decay.minimum_weight", config.time_decay.event_decay.minimum_weight)
    positive(
        "time_decay.cache_expiry.interaction_patterns_s",
        config.time_decay.cache_expiry.interaction_patterns_s,
    )

    # Performance
    perf = config.performance
    positive("performance.max_cache_size", perf.max_cache_size)
    positive("performance.max_events_per_calculation", perf.max_events_per_calculation)
    positive("performance.timeout_ms", perf.timeout_ms)
    positive("performance.batch_size", perf.batch_size)
    if perf.batch_size > _LARGE_BATCH_SIZE:
        warnings.append(ConfigIssue(
            field="performance.batch_size",
            message=f"large batch size may hurt latency, got {perf.batch_size}",
            severity="warning",
            suggestion="consider 100-200",
        ))

    is_valid = not errors
    summary = (
        f"configuration valid with {len(warnings)} warning(s)"
        if is_valid
        else f"configuration invalid: {len(errors)} error(s), {len(warnings)} warning(s)"
    )
    return ConfigValidationReport(
        is_valid=is_valid, errors=errors, warnings=warnings, summary=summary
    )


# ─── Loading ─────────────────────────────────────────────────────


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def merge_configs(base: EvolutionConfig, override: dict[str, Any]) -> EvolutionConfig:
    """Return a new config with a partial (possibly nested) override applied."""
    merged = _deep_merge(base.model_dump(mode="json"), override)
    return EvolutionConfig(**merged)


def load_config(config_path: str | Path | None = None) -> EvolutionConfig:
    """
    Load configuration from a YAML file, then apply environment variable
    overrides. Raises InvalidConfigError if range validation fails.
    """
    raw: dict[str, Any] = EvolutionConfig().model_dump(mode="json")

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                raw = _deep_merge(raw, yaml.safe_load(f) or {})

    if log_level := os.environ.get("PERSONAFLUX_LOGGING__LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level
    if log_format := os.environ.get("PERSONAFLUX_LOGGING__FORMAT"):
        raw.setdefault("logging", {})["format"] = log_format
    if cache_enabled := os.environ.get("PERSONAFLUX_PERFORMANCE__CACHE_ENABLED"):
        raw.setdefault("performance", {})["cache_enabled"] = (
            cache_enabled.lower() in ("true", "1", "yes")
        )
    if max_events := os.environ.get("PERSONAFLUX_PERFORMANCE__MAX_EVENTS_PER_CALCULATION"):
        raw.setdefault("performance", {})["max_events_per_calculation"] = int(max_events)

    config = EvolutionConfig(**raw)
    report = validate_config(config)
    if not report.is_valid:
        raise InvalidConfigError(report)
    return config
