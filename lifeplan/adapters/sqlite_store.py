"""SQLite adapter — implements PlannerStore on top of PlannerDB.

PlannerDB is synchronous (stdlib sqlite3), so every call runs in a worker
thread via asyncio.to_thread. Driver errors surface as StoreError.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from datetime import date
from typing import Any, Callable

from lifeplan.data.db import PlannerDB
from lifeplan.data.models import DailySnapshot, Instance, Profile, RecurrenceRule
from lifeplan.ports.planner_store import StoreError

logger = logging.getLogger(__name__)


class SQLiteStore:
    """Async PlannerStore backed by a local SQLite file."""

    def __init__(self, db: PlannerDB | None = None) -> None:
        self._db = db if db is not None else PlannerDB()

    @property
    def db(self) -> PlannerDB:
        return self._db

    async def _run(self, operation: str, func: Callable[..., Any], *args: Any) -> Any:
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as exc:
            logger.error("SQLite %s failed: %s", operation, exc)
            raise StoreError(f"{operation} failed: {exc}") from exc

    async def list_active_rules(self, user_id: str) -> list[RecurrenceRule]:
        return await self._run("list_active_rules", self._db.list_active_rules, user_id)

    async def list_instances(
        self, user_id: str, start_day: date, end_day: date
    ) -> list[Instance]:
        return await self._run(
            "list_instances", self._db.list_instances, user_id, start_day, end_day,
        )

    async def insert_instances_ignoring_duplicates(self, instances: list[Instance]) -> int:
        return await self._run(
            "insert_instances", self._db.insert_instances_ignoring_duplicates, instances,
        )

    async def expire_pending_instances(self, user_id: str, day: date) -> int:
        return await self._run(
            "expire_pending_instances", self._db.expire_pending_instances, user_id, day,
        )

    async def save_snapshot(self, snapshot: DailySnapshot) -> None:
        await self._run("save_snapshot", self._db.save_snapshot, snapshot)

    async def list_profiles(self, user_ids: list[str] | None = None) -> list[Profile]:
        return await self._run("list_profiles", self._db.list_profiles, user_ids)
