"""
personaflux — Evolution Service

The controller of the personality evolution pipeline. Validates input,
preprocesses events, runs the four pure stages and assembles the result:

  analyze_interaction_patterns  — stage 1 (cached by event ids + window)
  calculate_raw_adjustment      — stage 2
  apply_baseline_anchoring      — stage 3
  get_recent_changes            — awaited from the external store
  apply_evolution_limits        — stage 4

Interface:
  process_evolution()    — one full evolution pass for one agent
  analyze_patterns()     — cached stage 1 on its own
  build_history_entry()  — audit record for a successful result
  stats / health()       — rolling statistics
  clear_cache()          — drop cached patterns
  get_config()           — plain-dict snapshot of the active config

All mutable state (pattern cache, rolling statistics) lives here; the stages
themselves are stateless. process_evolution() never raises: every failure is
returned as a result with success=False.

The service does not serialise calls for the same agent. It reads one
current_traits snapshot per call, so concurrent calls for one agent can race
on the persisted vector; callers must hold a per-agent lock around
read-evolve-write.
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

import structlog
from pydantic import ValidationError

from personaflux.config import EvolutionConfig, InvalidConfigError, validate_config
from personaflux.primitives.common import Clock, clamp, new_id, utc_now
from personaflux.systems.evolution.adjustment import calculate_raw_adjustment
from personaflux.systems.evolution.anchoring import (
    age_adjusted_strength,
    apply_baseline_anchoring,
)
from personaflux.systems.evolution.cache import PatternCache
from personaflux.systems.evolution.limiter import apply_evolution_limits
from personaflux.systems.evolution.patterns import (
    analyze_interaction_patterns,
    empty_interaction_pattern,
)
from personaflux.systems.evolution.store import (
    InMemoryRecentChangesStore,
    RecentChangesStore,
)
from personaflux.systems.evolution.types import (
    ALGORITHM_VERSION,
    ALL_TRAITS,
    AdjustmentMetadata,
    CalculationDetails,
    EvolutionContext,
    EvolutionEvent,
    EvolutionHistoryEntry,
    EvolutionInputError,
    EvolutionResult,
    InteractionPattern,
    PersonalityAdjustment,
    TimeWindow,
    Trait,
    zero_traits,
)

logger = structlog.get_logger(system="evolution")

# Weight of the newest sample in the rolling averages
_EMA_ALPHA = 0.1
_SECONDS_PER_DAY = 86_400

# Confidence heuristic
_BASE_CONFIDENCE = 0.5
_FULL_EVIDENCE_EVENTS = 10
_EVENT_COUNT_WEIGHT = 0.2
_ENGAGEMENT_WEIGHT = 0.2
_DIVERSITY_WEIGHT = 0.1
_LIMIT_PENALTY = 0.05


class EvolutionService:
    """
    Orchestrates one evolution pass per call and owns the pattern cache and
    processing statistics for its lifetime.
    """

    system_id: str = "evolution"

    def __init__(
        self,
        config: EvolutionConfig | None = None,
        store: RecentChangesStore | None = None,
        clock: Clock = utc_now,
    ) -> None:
        self._config = config if config is not None else EvolutionConfig()

        report = validate_config(self._config)
        if not report.is_valid:
            raise InvalidConfigError(report)
        for issue in report.warnings:
            logger.warning("config_warning", field=issue.field, message=issue.message)

        self._clock = clock
        self._store: RecentChangesStore = (
            store if store is not None else InMemoryRecentChangesStore(clock=clock)
        )
        self._cache = PatternCache(
            ttl_seconds=self._config.time_decay.cache_expiry.interaction_patterns_s,
            max_size=self._config.performance.max_cache_size,
            clock=clock,
        )
        self._config_snapshot = self._config.model_dump_json()

        # Rolling statistics
        self._total_processed: int = 0
        self._average_processing_time_ms: float = 0.0
        self._cache_hit_rate: float = 0.0
        self._error_count: int = 0

        logger.info(
            "evolution_service_initialized",
            algorithm_version=ALGORITHM_VERSION,
            cache_enabled=self._config.performance.cache_enabled,
        )

    @property
    def store(self) -> RecentChangesStore:
        return self._store

    # ─── Main Entry Point ─────────────────────────────────────────────────────

    async def process_evolution(
        self,
        agent_id: str,
        actor_id: str,
        events: Sequence[EvolutionEvent | Mapping[str, Any]],
        current_traits: Mapping[Trait | str, float],
        context: EvolutionContext | Mapping[str, Any] | None,
    ) -> EvolutionResult:
        """
        Run the full pipeline for one agent and return the result bundle.

        Never raises. Invalid input, store failures and unexpected errors
        all come back as success=False with the input traits echoed.
        """
        started = time.perf_counter()
        evolution_id = new_id()
        warnings: list[str] = []
        log = logger.bind(evolution_id=evolution_id, agent_id=agent_id)

        log.info(
            "evolution_started",
            event_count=len(events) if isinstance(events, Sequence) else 0,
        )

        try:
            traits, ctx = self._validate_input(events, current_traits, context)

            processed, dropped = self._preprocess_events(events)
            if dropped:
                warnings.append(f"{dropped} malformed event(s) dropped during preprocessing")
            if not processed:
                return self._neutral_result(
                    evolution_id, agent_id, actor_id, traits, warnings, started
                )

            pattern = self.analyze_patterns(processed, TimeWindow.WEEKLY)

            now = self._clock()
            raw = calculate_raw_adjustment(processed, pattern, self._config, now)
            warnings.extend(raw.warnings)

            assert ctx.agent is not None
            age_days = self._agent_age_days(ctx.agent.created_at, now)
            anchored = apply_baseline_anchoring(
                raw.deltas, traits, age_days, self._config.baseline_anchoring
            )

            recent = await self._store.get_recent_changes(agent_id)
            outcome = apply_evolution_limits(anchored, traits, recent, self._config.limits)

            new_traits = {
                trait: clamp(traits[trait] + outcome.limited[trait]) for trait in ALL_TRAITS
            }
            confidence = calculate_confidence(
                len(processed), pattern, len(outcome.applied_limits)
            )

            adjustment = PersonalityAdjustment(
                trait_changes=dict(outcome.limited),
                confidence=confidence,
                reason=adjustment_reason(len(processed), pattern),
                applied_limits=list(outcome.applied_limits),
                metadata=AdjustmentMetadata(
                    original_values=dict(traits),
                    raw_changes=dict(raw.deltas),
                    anchored_changes=dict(anchored),
                    limited_changes=dict(outcome.limited),
                    stability_score=stability_score(outcome.limited),
                    interaction_weight=raw.mean_event_weight,
                    anchoring_strength=age_adjusted_strength(
                        age_days, self._config.baseline_anchoring.anchoring_strength
                    ),
                ),
            )

            elapsed_ms = (time.perf_counter() - started) * 1000
            self._record_processing(elapsed_ms)

            log.info(
                "evolution_completed",
                processing_time_ms=round(elapsed_ms, 2),
                events_processed=len(processed),
                confidence=round(confidence, 3),
                applied_limits_count=len(outcome.applied_limits),
            )

            return EvolutionResult(
                success=True,
                agent_id=agent_id,
                evolution_id=evolution_id,
                personality_adjustment=adjustment,
                new_traits=new_traits,
                processed_events=processed,
                interaction_pattern=pattern,
                processing_time_ms=elapsed_ms,
                events_processed=len(processed),
                timestamp=now,
                algorithm_version=ALGORITHM_VERSION,
                config_snapshot=self._config_snapshot,
                warnings=warnings,
            )

        except Exception as exc:
            self._error_count += 1
            log.error(
                "evolution_failed",
                error=str(exc),
                error_type=type(exc).__name__,
                actor_id=actor_id,
            )
            return self._failure_result(
                evolution_id, agent_id, actor_id, current_traits, warnings, str(exc), started
            )

    # ─── Stage 1 (cached) ─────────────────────────────────────────────────────

    def analyze_patterns(
        self,
        events: Sequence[EvolutionEvent],
        time_window: TimeWindow = TimeWindow.WEEKLY,
    ) -> InteractionPattern:
        """Stage 1 with the TTL cache in front when caching is enabled."""
        if not self._config.performance.cache_enabled:
            return analyze_interaction_patterns(events, time_window)

        key = PatternCache.compute_key(events, time_window)
        cached = self._cache.get(key)
        self._update_cache_hit_rate(cached is not None)
        if cached is not None:
            logger.debug("pattern_cache_hit", key=key)
            return cached

        pattern = analyze_interaction_patterns(events, time_window)
        self._cache.put(key, pattern)
        return pattern

    # ─── Validation & Preprocessing ───────────────────────────────────────────

    def _validate_input(
        self,
        events: Sequence[Any] | None,
        current_traits: Mapping[Trait | str, float] | None,
        context: EvolutionContext | Mapping[str, Any] | None,
    ) -> tuple[dict[Trait, float], EvolutionContext]:
        if not events:
            raise EvolutionInputError("Evolution events must not be empty")

        if not current_traits:
            raise EvolutionInputError("Current personality traits must not be empty")

        traits: dict[Trait, float] = {}
        for key, value in current_traits.items():
            try:
                trait = Trait(key)
            except ValueError:
                raise EvolutionInputError(f"Unknown trait '{key}'") from None
            if (
                isinstance(value, bool)
                or not isinstance(value, (int, float))
                or not 0.0 <= value <= 1.0
            ):
                raise EvolutionInputError(
                    f"Trait '{trait.value}' must be a number within [0, 1], got {value!r}"
                )
            traits[trait] = float(value)

        missing = [t.value for t in ALL_TRAITS if t not in traits]
        if missing:
            raise EvolutionInputError(f"Current traits missing: {', '.join(missing)}")

        if context is None:
            raise EvolutionInputError("Evolution context must not be empty")
        if isinstance(context, EvolutionContext):
            ctx = context
        else:
            try:
                ctx = EvolutionContext.model_validate(context)
            except ValidationError as exc:
                raise EvolutionInputError(f"Invalid evolution context: {exc}") from exc
        if ctx.agent is None:
            raise EvolutionInputError("Evolution context is missing the agent record")

        return traits, ctx

    def _preprocess_events(
        self,
        events: Sequence[EvolutionEvent | Mapping[str, Any]],
    ) -> tuple[list[EvolutionEvent], int]:
        """
        Coerce, drop malformed entries, order newest first and truncate.
        Returns (events, dropped_count).
        """
        valid: list[EvolutionEvent] = []
        dropped = 0
        for raw in events:
            if isinstance(raw, EvolutionEvent):
                valid.append(raw)
                continue
            if not isinstance(raw, Mapping):
                dropped += 1
                continue
            try:
                valid.append(EvolutionEvent.model_validate(raw))
            except ValidationError as exc:
                dropped += 1
                logger.debug("event_dropped", error_count=exc.error_count())

        valid.sort(key=lambda e: e.timestamp, reverse=True)
        return valid[: self._config.performance.max_events_per_calculation], dropped

    @staticmethod
    def _agent_age_days(created_at: datetime, now: datetime) -> int:
        """Whole days since creation; never negative."""
        return max(0, int((now - created_at).total_seconds() // _SECONDS_PER_DAY))

    # ─── Result Builders ──────────────────────────────────────────────────────

    def _neutral_result(
        self,
        evolution_id: str,
        agent_id: str,
        actor_id: str,
        traits: dict[Trait, float],
        warnings: list[str],
        started: float,
    ) -> EvolutionResult:
        warnings.append("No valid interaction events to process")
        elapsed_ms = (time.perf_counter() - started) * 1000
        self._record_processing(elapsed_ms)
        return EvolutionResult(
            success=True,
            agent_id=agent_id,
            evolution_id=evolution_id,
            personality_adjustment=PersonalityAdjustment(
                reason="No valid interaction events",
                metadata=AdjustmentMetadata(original_values=dict(traits), stability_score=1.0),
            ),
            new_traits=dict(traits),
            interaction_pattern=empty_interaction_pattern(actor_id, agent_id),
            processing_time_ms=elapsed_ms,
            events_processed=0,
            timestamp=self._clock(),
            config_snapshot=self._config_snapshot,
            warnings=warnings,
        )

    def _failure_result(
        self,
        evolution_id: str,
        agent_id: str,
        actor_id: str,
        current_traits: Mapping[Any, Any] | None,
        warnings: list[str],
        error: str,
        started: float,
    ) -> EvolutionResult:
        echoed = _echo_traits(current_traits)
        return EvolutionResult(
            success=False,
            agent_id=agent_id,
            evolution_id=evolution_id,
            personality_adjustment=PersonalityAdjustment(
                trait_changes=zero_traits(),
                confidence=0.0,
                reason="Evolution failed",
                metadata=AdjustmentMetadata(original_values=echoed, stability_score=0.0),
            ),
            new_traits=echoed,
            interaction_pattern=empty_interaction_pattern(actor_id, agent_id),
            processing_time_ms=(time.perf_counter() - started) * 1000,
            events_processed=0,
            timestamp=self._clock(),
            config_snapshot=self._config_snapshot,
            warnings=warnings,
            errors=[error],
        )

    def build_history_entry(
        self,
        result: EvolutionResult,
        actor_id: str = "",
        is_manual_trigger: bool = False,
        notes: str | None = None,
    ) -> EvolutionHistoryEntry:
        """Audit record for a successful result, for the caller to persist."""
        if not result.success:
            raise EvolutionInputError("Cannot build a history entry for a failed evolution")
        adjustment = result.personality_adjustment
        return EvolutionHistoryEntry(
            agent_id=result.agent_id,
            actor_id=actor_id,
            before_traits=dict(adjustment.metadata.original_values),
            after_traits=dict(result.new_traits),
            trigger_event_ids=[e.id for e in result.processed_events],
            calculation_details=CalculationDetails(
                interaction_weight=adjustment.metadata.interaction_weight,
                baseline_anchoring=adjustment.metadata.anchoring_strength,
                limit_applications=list(adjustment.applied_limits),
                final_score=adjustment.confidence,
            ),
            timestamp=result.timestamp,
            algorithm_version=result.algorithm_version,
            is_manual_trigger=is_manual_trigger,
            notes=notes,
        )

    # ─── Statistics ───────────────────────────────────────────────────────────

    def _record_processing(self, elapsed_ms: float) -> None:
        self._total_processed += 1
        self._average_processing_time_ms = (
            self._average_processing_time_ms * (1 - _EMA_ALPHA) + elapsed_ms * _EMA_ALPHA
        )

    def _update_cache_hit_rate(self, hit: bool) -> None:
        self._cache_hit_rate = (
            self._cache_hit_rate * (1 - _EMA_ALPHA) + (1.0 if hit else 0.0) * _EMA_ALPHA
        )

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "total_processed": self._total_processed,
            "average_processing_time_ms": self._average_processing_time_ms,
            "cache_hit_rate": self._cache_hit_rate,
            "error_count": self._error_count,
            "cache": self._cache.stats,
        }

    async def health(self) -> dict[str, Any]:
        return {
            "status": "healthy",
            "algorithm_version": ALGORITHM_VERSION,
            "total_processed": self._total_processed,
            "error_count": self._error_count,
            "cache_size": len(self._cache),
        }

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("pattern_cache_cleared")

    def get_config(self) -> dict[str, Any]:
        return self._config.model_dump(mode="json")


# ─── Scoring ──────────────────────────────────────────────────────────────────


def calculate_confidence(
    event_count: int,
    pattern: InteractionPattern,
    applied_limits_count: int,
) -> float:
    """More evidence and engagement raise confidence; each applied limit lowers it."""
    confidence = (
        _BASE_CONFIDENCE
        + min(event_count / _FULL_EVIDENCE_EVENTS, 1.0) * _EVENT_COUNT_WEIGHT
        + pattern.average_engagement * _ENGAGEMENT_WEIGHT
        + pattern.topic_diversity * _DIVERSITY_WEIGHT
        - applied_limits_count * _LIMIT_PENALTY
    )
    return clamp(confidence)


def stability_score(deltas: Mapping[Trait, float]) -> float:
    """1 minus the mean absolute delta. 1.0 means nothing moved."""
    if not deltas:
        return 1.0
    mean_change = sum(abs(v) for v in deltas.values()) / len(deltas)
    return max(0.0, 1.0 - mean_change)


def adjustment_reason(event_count: int, pattern: InteractionPattern) -> str:
    primary = pattern.primary_type
    if pattern.average_engagement > 0.7:
        engagement = "high"
    elif pattern.average_engagement > 0.4:
        engagement = "medium"
    else:
        engagement = "low"
    return (
        f"Based on {event_count} interaction event(s); primary type "
        f"{primary.value if primary else 'unknown'}; {engagement} engagement"
    )


def _echo_traits(current_traits: Mapping[Any, Any] | None) -> dict[Trait, float]:
    """Best-effort copy of caller traits for failure results."""
    echoed: dict[Trait, float] = {}
    if not isinstance(current_traits, Mapping):
        return echoed
    for key, value in current_traits.items():
        try:
            echoed[Trait(key)] = float(value)
        except (TypeError, ValueError):
            continue
    return echoed
