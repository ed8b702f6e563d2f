"""
personaflux — Recent Changes Store

The limiter's cumulative caps need to know how far each trait has already
moved over the last day, week and month. That history lives outside the
engine; this module defines the read contract the controller awaits, plus a
process-local implementation for single-node deployments and tests.

The engine only reads. Recording the changes a caller actually applied is
the caller's job (InMemoryRecentChangesStore.record_changes).
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Protocol

import structlog

from personaflux.primitives.common import Clock, ensure_utc, utc_now
from personaflux.systems.evolution.types import RecentChanges, Trait, zero_traits

logger = structlog.get_logger(system="evolution.store")

_DAY = timedelta(days=1)
_WEEK = timedelta(days=7)
_MONTH = timedelta(days=30)


class RecentChangesStore(Protocol):
    async def get_recent_changes(self, agent_id: str) -> RecentChanges:
        """Return cumulative per-trait change magnitudes for the agent."""
        ...


@dataclass
class _ChangeRecord:
    at: datetime
    deltas: dict[Trait, float]


class InMemoryRecentChangesStore:
    """
    Keeps every applied change per agent and sums absolute deltas over the
    trailing 1/7/30-day windows on read. Records older than a month are
    pruned on every read and write for that agent.
    """

    def __init__(self, clock: Clock = utc_now) -> None:
        self._clock = clock
        self._records: dict[str, list[_ChangeRecord]] = defaultdict(list)

    async def record_changes(
        self,
        agent_id: str,
        changes: Mapping[Trait, float],
        at: datetime | None = None,
    ) -> None:
        moment = ensure_utc(at) if at is not None else self._clock()
        self._prune(agent_id, self._clock())
        self._records[agent_id].append(
            _ChangeRecord(at=moment, deltas={Trait(t): float(v) for t, v in changes.items()})
        )
        logger.debug(
            "changes_recorded",
            agent_id=agent_id,
            traits_changed=sum(1 for v in changes.values() if v != 0.0),
        )

    async def get_recent_changes(self, agent_id: str) -> RecentChanges:
        now = self._clock()
        daily, weekly, monthly = zero_traits(), zero_traits(), zero_traits()

        for record in self._prune(agent_id, now):
            age = now - record.at
            for trait, delta in record.deltas.items():
                magnitude = abs(delta)
                monthly[trait] += magnitude
                if age <= _WEEK:
                    weekly[trait] += magnitude
                if age <= _DAY:
                    daily[trait] += magnitude

        return RecentChanges(daily=daily, weekly=weekly, monthly=monthly)

    def record_count(self, agent_id: str) -> int:
        return len(self._records.get(agent_id, []))

    def _prune(self, agent_id: str, now: datetime) -> list[_ChangeRecord]:
        """Drop records older than the monthly window; returns the live list."""
        records = self._records.get(agent_id)
        if records is None:
            return []
        kept = [r for r in records if now - r.at <= _MONTH]
        self._records[agent_id] = kept
        return kept

    def clear(self, agent_id: str | None = None) -> None:
        if agent_id is None:
            self._records.clear()
        else:
            self._records.pop(agent_id, None)
