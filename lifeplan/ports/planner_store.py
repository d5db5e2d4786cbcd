"""Planner store port — abstract interface for rule and instance persistence.

Core modules depend on this protocol, never on a specific database.
Uniqueness of (user_id, rule_id, logical_day) is enforced by the store;
the core holds no locks.
"""

from __future__ import annotations

from datetime import date
from typing import Protocol

from lifeplan.data.models import DailySnapshot, Instance, Profile, RecurrenceRule


class StoreError(Exception):
    """Raised when any storage operation fails."""


class PlannerStore(Protocol):
    """Abstract persistence interface used by core modules."""

    async def list_active_rules(self, user_id: str) -> list[RecurrenceRule]: ...

    async def list_instances(
        self, user_id: str, start_day: date, end_day: date
    ) -> list[Instance]: ...

    async def insert_instances_ignoring_duplicates(
        self, instances: list[Instance]
    ) -> int: ...

    async def expire_pending_instances(self, user_id: str, day: date) -> int: ...

    async def save_snapshot(self, snapshot: DailySnapshot) -> None: ...

    async def list_profiles(
        self, user_ids: list[str] | None = None
    ) -> list[Profile]: ...
