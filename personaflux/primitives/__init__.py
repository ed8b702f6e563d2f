"""
personaflux — Shared Primitives
"""

from personaflux.primitives.common import (
    Clock,
    EvolutionBaseModel,
    Identified,
    clamp,
    ensure_utc,
    fixed_clock,
    new_id,
    utc_now,
)

__all__ = [
    "Clock",
    "EvolutionBaseModel",
    "Identified",
    "clamp",
    "ensure_utc",
    "fixed_clock",
    "new_id",
    "utc_now",
]
