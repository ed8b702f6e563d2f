"""
personaflux — Evolution Types

All data types flowing through the evolution pipeline: time windows, the
event record produced by the upstream classifier, the derived interaction
pattern, and the result bundle returned to callers. Trait and interaction
enums live in personaflux.primitives.personality and are re-exported here.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from pydantic import Field, field_validator

from personaflux.primitives.common import (
    EvolutionBaseModel,
    Identified,
    ensure_utc,
    new_id,
    utc_now,
)
from personaflux.primitives.personality import (
    ALL_TRAITS,
    DEFAULT_TRAITS,
    EngagementLevel,
    InteractionMode,
    InteractionType,
    Trait,
)


# ─── Enums ────────────────────────────────────────────────────────────────────


class TimeWindow(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"


class Season(str, enum.Enum):
    SPRING = "spring"
    SUMMER = "summer"
    AUTUMN = "autumn"
    WINTER = "winter"


# ─── Constants ────────────────────────────────────────────────────────────────

ALGORITHM_VERSION = "2.4.0-pipeline"

# Deltas below this magnitude are snapped to zero by the limiter
MINIMUM_TRAIT_CHANGE = 0.001

# A single batch never moves any trait by more than this before limiting
MAX_SINGLE_BATCH_ADJUSTMENT = 0.3

# Interactions per day treated as the neutral frequency reference
OPTIMAL_DAILY_FREQUENCY = 5.0

TIME_WINDOW_DAYS: dict[TimeWindow, int] = {
    TimeWindow.DAILY: 1,
    TimeWindow.WEEKLY: 7,
    TimeWindow.MONTHLY: 30,
    TimeWindow.QUARTERLY: 90,
}

ENGAGEMENT_VALUES: dict[EngagementLevel, float] = {
    EngagementLevel.LOW: 0.25,
    EngagementLevel.MEDIUM: 0.5,
    EngagementLevel.HIGH: 0.75,
    EngagementLevel.INTENSE: 1.0,
}

# Applied-limit tags. Per-trait tags are rendered as "<trait>: <tag>".
LIMIT_SIMULTANEOUS_CHANGES = "simultaneous changes"
LIMIT_MIN_VALUE = "min value"
LIMIT_MAX_VALUE = "max value"
LIMIT_DAILY = "daily limit"
LIMIT_WEEKLY = "weekly limit"
LIMIT_MONTHLY = "monthly limit"
LIMIT_EMERGENCY_BRAKE = "emergency brake"


def zero_traits() -> dict[Trait, float]:
    return {trait: 0.0 for trait in ALL_TRAITS}


# ─── Errors ───────────────────────────────────────────────────────────────────


class EvolutionError(Exception):
    """Base class for failures inside the evolution pipeline."""


class EvolutionInputError(EvolutionError):
    """Caller-supplied events, traits or context failed validation."""


# ─── Events ───────────────────────────────────────────────────────────────────


class InteractionMetadata(EvolutionBaseModel):
    """Extra context attached to an event by the classifier."""

    message_length: float = 0.0
    response_time: float = 0.0            # Average response time in ms
    topic_tags: list[str] = Field(default_factory=list)
    mood_indicators: list[str] = Field(default_factory=list)
    skills_used: list[str] = Field(default_factory=list)
    context_switches: int = 0
    user_initiated: bool = False
    feedback_given: bool = False
    special_events: list[str] = Field(default_factory=list)


class EvolutionEvent(EvolutionBaseModel):
    """
    One classified interaction. Produced upstream, consumed once, never
    mutated by the pipeline.
    """

    model_config = {"populate_by_name": True, "from_attributes": True, "frozen": True}

    id: str = Field(default_factory=new_id)
    agent_id: str = ""
    actor_id: str = ""
    interaction_type: InteractionType
    interaction_mode: InteractionMode = InteractionMode.NORMAL
    engagement_level: EngagementLevel = EngagementLevel.MEDIUM
    duration: float = Field(default=0.0, ge=0.0)          # Seconds
    message_count: int = Field(default=0, ge=0)
    topic_complexity: float = Field(default=0.0, ge=0.0, le=1.0)
    emotional_intensity: float = Field(default=0.0, ge=0.0, le=1.0)
    user_satisfaction: float | None = Field(default=None, ge=0.0, le=1.0)
    metadata: InteractionMetadata = Field(default_factory=InteractionMetadata)
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _normalise_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)


# ─── Pattern ──────────────────────────────────────────────────────────────────


class InteractionPattern(EvolutionBaseModel):
    """Aggregate statistics over a set of events within a time window."""

    actor_id: str = ""
    agent_id: str = ""
    time_window: TimeWindow = TimeWindow.WEEKLY

    # Frequency
    total_interactions: int = 0
    average_session_length: float = 0.0     # Seconds
    interaction_frequency: float = 0.0      # Interactions per day

    # Distributions (each sums to 1 when total_interactions > 0)
    type_distribution: dict[InteractionType, float] = Field(default_factory=dict)
    mode_distribution: dict[InteractionMode, float] = Field(default_factory=dict)
    engagement_distribution: dict[EngagementLevel, float] = Field(default_factory=dict)

    # Engagement metrics
    average_engagement: float = 0.0
    response_time_variance: float = 0.0
    topic_diversity: float = 0.0

    # Trends (second half mean minus first half mean)
    engagement_trend: float = 0.0
    complexity_trend: float = 0.0
    satisfaction_trend: float = 0.0

    # Time histograms
    preferred_time_slots: list[float] = Field(default_factory=lambda: [0.0] * 24)
    weekday_pattern: list[float] = Field(default_factory=lambda: [0.0] * 7)
    seasonal_pattern: dict[Season, float] = Field(
        default_factory=lambda: {season: 0.0 for season in Season}
    )

    @property
    def primary_type(self) -> InteractionType | None:
        """The most frequent interaction type, or None for an empty pattern."""
        if not self.type_distribution or self.total_interactions == 0:
            return None
        return max(self.type_distribution, key=lambda t: self.type_distribution[t])


# ─── Recent Changes ───────────────────────────────────────────────────────────


class RecentChanges(EvolutionBaseModel):
    """Per-trait cumulative change over the last day, week and month."""

    daily: dict[Trait, float] = Field(default_factory=zero_traits)
    weekly: dict[Trait, float] = Field(default_factory=zero_traits)
    monthly: dict[Trait, float] = Field(default_factory=zero_traits)


# ─── Context ──────────────────────────────────────────────────────────────────


class AgentContext(EvolutionBaseModel):
    id: str
    current_traits: dict[Trait, float] = Field(default_factory=lambda: dict(DEFAULT_TRAITS))
    created_at: datetime
    last_evolution_at: datetime | None = None

    @field_validator("created_at")
    @classmethod
    def _normalise_created_at(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class ActorContext(EvolutionBaseModel):
    id: str = ""
    interaction_history: list[InteractionPattern] = Field(default_factory=list)
    preferences: dict[str, Any] = Field(default_factory=dict)


class EnvironmentContext(EvolutionBaseModel):
    time_of_day: str = "afternoon"     # morning | afternoon | evening | night
    day_of_week: int = Field(default=0, ge=0, le=6)
    season: Season = Season.SPRING
    is_holiday: bool = False


class SystemStateContext(EvolutionBaseModel):
    server_load: float = 0.0
    api_quota_remaining: int = 0
    experimental_features: list[str] = Field(default_factory=list)


class EvolutionContext(EvolutionBaseModel):
    """
    Everything the controller needs beyond events and traits. Only `agent`
    feeds the numeric pipeline (its creation time gives the agent age).
    """

    agent: AgentContext | None = None
    actor: ActorContext = Field(default_factory=ActorContext)
    environment: EnvironmentContext = Field(default_factory=EnvironmentContext)
    system_state: SystemStateContext = Field(default_factory=SystemStateContext)


# ─── Results ──────────────────────────────────────────────────────────────────


class AdjustmentMetadata(EvolutionBaseModel):
    original_values: dict[Trait, float] = Field(default_factory=dict)
    raw_changes: dict[Trait, float] = Field(default_factory=zero_traits)
    anchored_changes: dict[Trait, float] = Field(default_factory=zero_traits)
    limited_changes: dict[Trait, float] = Field(default_factory=zero_traits)
    stability_score: float = 1.0
    interaction_weight: float = 0.0      # Mean composite event weight
    anchoring_strength: float = 0.0      # Age-adjusted anchoring strength used


class PersonalityAdjustment(EvolutionBaseModel):
    """Final per-trait deltas with provenance."""

    trait_changes: dict[Trait, float] = Field(default_factory=zero_traits)
    confidence: float = 0.0
    reason: str = ""
    applied_limits: list[str] = Field(default_factory=list)
    metadata: AdjustmentMetadata = Field(default_factory=AdjustmentMetadata)


class EvolutionResult(EvolutionBaseModel):
    """
    The return bundle of one evolution pass. Same shape on success and
    failure so callers can handle both uniformly.
    """

    success: bool
    agent_id: str
    evolution_id: str = Field(default_factory=new_id)

    personality_adjustment: PersonalityAdjustment = Field(default_factory=PersonalityAdjustment)
    new_traits: dict[Trait, float] = Field(default_factory=dict)

    processed_events: list[EvolutionEvent] = Field(default_factory=list)
    interaction_pattern: InteractionPattern = Field(default_factory=InteractionPattern)

    processing_time_ms: float = 0.0
    events_processed: int = 0

    timestamp: datetime = Field(default_factory=utc_now)
    algorithm_version: str = ALGORITHM_VERSION
    config_snapshot: str = ""

    warnings: list[str] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class CalculationDetails(EvolutionBaseModel):
    interaction_weight: float = 0.0
    baseline_anchoring: float = 0.0
    limit_applications: list[str] = Field(default_factory=list)
    final_score: float = 0.0


class EvolutionHistoryEntry(Identified):
    """Audit record of one applied evolution, built for the caller to persist."""

    agent_id: str
    actor_id: str = ""
    before_traits: dict[Trait, float]
    after_traits: dict[Trait, float]
    trigger_event_ids: list[str] = Field(default_factory=list)
    calculation_details: CalculationDetails = Field(default_factory=CalculationDetails)
    timestamp: datetime = Field(default_factory=utc_now)
    algorithm_version: str = ALGORITHM_VERSION
    is_manual_trigger: bool = False
    notes: str | None = None
