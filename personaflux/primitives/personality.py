"""
personaflux — Personality Primitives

The closed trait enumeration and the interaction classification vocabulary
shared by configuration and the evolution pipeline.
"""

from __future__ import annotations

import enum


class Trait(str, enum.Enum):
    """The ten personality dimensions. Values live in [0, 1]."""

    OPENNESS = "openness"
    CONSCIENTIOUSNESS = "conscientiousness"
    EXTRAVERSION = "extraversion"
    AGREEABLENESS = "agreeableness"
    NEUROTICISM = "neuroticism"
    CREATIVITY = "creativity"
    EMPATHY = "empathy"
    CURIOSITY = "curiosity"
    PLAYFULNESS = "playfulness"
    INTELLIGENCE = "intelligence"


# Iteration order everywhere; also the tie-break order when ranking deltas.
ALL_TRAITS: tuple[Trait, ...] = tuple(Trait)

DEFAULT_TRAITS: dict[Trait, float] = {trait: 0.5 for trait in ALL_TRAITS}


class InteractionType(str, enum.Enum):
    CASUAL_CHAT = "casual_chat"
    EMOTIONAL_SUPPORT = "emotional_support"
    LEARNING = "learning"
    CREATIVE_WORK = "creative_work"
    PROBLEM_SOLVING = "problem_solving"
    ENTERTAINMENT = "entertainment"
    DEEP_CONVERSATION = "deep_conversation"
    SKILL_PRACTICE = "skill_practice"
    STORYTELLING = "storytelling"
    ROUTINE_CHECK = "routine_check"


class InteractionMode(str, enum.Enum):
    QUICK = "quick"          # < 2 minutes
    NORMAL = "normal"        # 2–10 minutes
    EXTENDED = "extended"    # 10–30 minutes
    DEEP = "deep"            # > 30 minutes


class EngagementLevel(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    INTENSE = "intense"
