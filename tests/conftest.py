"""Shared test fixtures and configuration.

Sets up environment variables before any lifeplan imports, and provides
temp-database fixtures plus an in-memory PlannerStore.
"""

import os

# Patch env vars BEFORE any lifeplan imports
os.environ.setdefault("DATABASE_PATH", "data/test-unused.db")
os.environ.setdefault("DEFAULT_TIMEZONE", "UTC")
os.environ.setdefault("MAX_RANGE_DAYS", "366")
os.environ.setdefault("BATCH_MAX_RANGE_DAYS", "30")

from datetime import date, datetime, timezone

import pytest

from lifeplan.data.models import DailySnapshot, Instance, Profile, RecurrenceRule


class InMemoryStore:
    """PlannerStore kept in dicts, with the same uniqueness rule as SQLite."""

    def __init__(self) -> None:
        self.rules: list[RecurrenceRule] = []
        self.instances: dict[tuple[str, str, date], Instance] = {}
        self.snapshots: dict[tuple[str, date], DailySnapshot] = {}
        self.profiles: dict[str, Profile] = {}
        self.insert_calls = 0
        self._next_id = 1

    def add_rule(self, rule: RecurrenceRule) -> RecurrenceRule:
        self.rules.append(rule)
        return rule

    def add_instance(self, inst: Instance) -> Instance:
        inst.id = self._next_id
        self._next_id += 1
        self.instances[(inst.user_id, inst.rule_id, inst.logical_day)] = inst
        return inst

    async def list_active_rules(self, user_id):
        return [r for r in self.rules if r.user_id == user_id and r.is_live]

    async def list_instances(self, user_id, start_day, end_day):
        return sorted(
            (i for i in self.instances.values()
             if i.user_id == user_id and start_day <= i.logical_day <= end_day),
            key=lambda i: (i.logical_day, i.rule_id),
        )

    async def insert_instances_ignoring_duplicates(self, instances):
        self.insert_calls += 1
        inserted = 0
        for inst in instances:
            key = (inst.user_id, inst.rule_id, inst.logical_day)
            if key in self.instances:
                continue
            self.add_instance(inst)
            inserted += 1
        return inserted

    async def expire_pending_instances(self, user_id, day):
        expired = 0
        for inst in self.instances.values():
            if inst.user_id == user_id and inst.logical_day == day and inst.status == "pending":
                inst.status = "skipped"
                expired += 1
        return expired

    async def save_snapshot(self, snapshot):
        self.snapshots[(snapshot.user_id, snapshot.snapshot_date)] = snapshot

    async def list_profiles(self, user_ids=None):
        if user_ids is None:
            users = sorted({r.user_id for r in self.rules if r.deleted_at is None})
        else:
            users = list(dict.fromkeys(user_ids))
        return [self.profiles.get(uid, Profile(user_id=uid)) for uid in users]


def make_rule(
    rule_id: str = "r1",
    rule_type: str = "daily",
    config: dict | None = None,
    user_id: str = "u1",
    owner_id: str | None = None,
    created_at: datetime | None = None,
    **kwargs,
) -> RecurrenceRule:
    return RecurrenceRule(
        id=rule_id,
        user_id=user_id,
        owner_id=owner_id or f"task-{rule_id}",
        rule_type=rule_type,
        config=config or {},
        created_at=created_at or datetime(2023, 12, 1, 9, 0, tzinfo=timezone.utc),
        **kwargs,
    )


@pytest.fixture
def memory_store():
    """Return an empty in-memory PlannerStore."""
    return InMemoryStore()


@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite DB path."""
    return str(tmp_path / "test_planner.db")


@pytest.fixture
def planner_db(tmp_db_path):
    """Return a PlannerDB instance backed by a temp file."""
    from lifeplan.data.db import PlannerDB
    return PlannerDB(db_path=tmp_db_path)


@pytest.fixture
def sqlite_store(planner_db):
    """Return a SQLiteStore wrapping the temp PlannerDB."""
    from lifeplan.adapters.sqlite_store import SQLiteStore
    return SQLiteStore(planner_db)
