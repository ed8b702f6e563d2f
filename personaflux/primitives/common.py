"""
personaflux — Common Primitives

Shared base classes and utilities used across the evolution pipeline.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

from pydantic import BaseModel, Field
from ulid import ULID

# Injectable time source. Everything that reads "now" takes one of these.
Clock = Callable[[], datetime]


def new_id() -> str:
    """Generate a new ULID string. Time-sortable, globally unique."""
    return str(ULID())


def utc_now() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def fixed_clock(moment: datetime) -> Clock:
    """A clock that always returns the same instant. Used for replay and tests."""
    pinned = ensure_utc(moment)
    return lambda: pinned


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))


# ─── Base Models ──────────────────────────────────────────────────


class EvolutionBaseModel(BaseModel):
    """Base model for all personaflux records."""

    model_config = {"populate_by_name": True, "from_attributes": True}


class Identified(EvolutionBaseModel):
    """Mixin for models with ULID IDs."""

    id: str = Field(default_factory=new_id)
