"""
personaflux — Evolution (Personality Drift Pipeline)

Turns a batch of classified interactions into small, bounded changes to an
agent's trait vector. Four pure stages run under one controller:

  Pattern Analyzer     — aggregate statistics over the batch
  Raw Adjustment       — weighted per-trait deltas
  Baseline Anchoring   — pull back toward the neutral baseline
  Evolution Limiter    — elasticity, bounds, cumulative caps, brake

Guard rails:
  - Stages never mutate their inputs; the controller owns all state
  - Every step of the limiter only shrinks a delta
  - Resulting traits always stay within [0, 1]
  - Callers persist results and serialise writes per agent

Public interface:
  EvolutionService            — main service class
  EvolutionResult             — result of one evolution pass
  InMemoryRecentChangesStore  — process-local cumulative-change store
"""

from personaflux.systems.evolution.service import EvolutionService
from personaflux.systems.evolution.store import (
    InMemoryRecentChangesStore,
    RecentChangesStore,
)
from personaflux.systems.evolution.types import (
    ALGORITHM_VERSION,
    AgentContext,
    EngagementLevel,
    EvolutionContext,
    EvolutionError,
    EvolutionEvent,
    EvolutionHistoryEntry,
    EvolutionInputError,
    EvolutionResult,
    InteractionMode,
    InteractionPattern,
    InteractionType,
    PersonalityAdjustment,
    RecentChanges,
    TimeWindow,
    Trait,
)

__all__ = [
    "EvolutionService",
    "InMemoryRecentChangesStore",
    "RecentChangesStore",
    "ALGORITHM_VERSION",
    "AgentContext",
    "EngagementLevel",
    "EvolutionContext",
    "EvolutionError",
    "EvolutionEvent",
    "EvolutionHistoryEntry",
    "EvolutionInputError",
    "EvolutionResult",
    "InteractionMode",
    "InteractionPattern",
    "InteractionType",
    "PersonalityAdjustment",
    "RecentChanges",
    "TimeWindow",
    "Trait",
]
