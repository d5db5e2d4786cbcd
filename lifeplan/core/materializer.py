"""
LifePlan — Instance Materializer.

Makes sure every due occurrence of every live rule has an Instance row for a
requested range of logical days. Safe to call speculatively before any read
that needs up-to-date instances: it only inserts what is missing, and a
concurrent caller inserting the same row first is not an error.

This module is storage-agnostic: it depends on the PlannerStore protocol.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import TYPE_CHECKING

from lifeplan.config import settings
from lifeplan.core.logical_day import coerce_logical_date, get_zone
from lifeplan.core.recurrence import InvalidRuleConfig, UnknownSchedule, schedule_for_rule
from lifeplan.data.models import STATUS_PENDING, Instance

if TYPE_CHECKING:
    from lifeplan.ports.planner_store import PlannerStore

logger = logging.getLogger(__name__)


@dataclass
class EnsureResult:
    """What a single ensure call did."""

    staged: int = 0                  # rows this call tried to insert
    inserted: int = 0                # rows that were actually new
    skipped_rules: list[str] = field(default_factory=list)


def plan_instances(
    rules: list,
    existing: list[Instance],
    user_id: str,
    start: date,
    end: date,
    timezone: str | None,
) -> tuple[list[Instance], list[str]]:
    """Compute the missing instances for a range. Pure; no I/O.

    Returns (instances to insert, ids of rules that were skipped).
    """
    present = {inst.key for inst in existing}
    staged: list[Instance] = []
    skipped: list[str] = []

    for rule in rules:
        try:
            schedule = schedule_for_rule(rule, timezone)
        except InvalidRuleConfig as exc:
            logger.warning("Skipping rule %s: %s", rule.id, exc)
            skipped.append(rule.id)
            continue

        if isinstance(schedule, UnknownSchedule):
            logger.warning(
                "Rule %s has unrecognized type %r, treating as never due",
                rule.id, schedule.rule_type,
            )
            skipped.append(rule.id)
            continue

        try:
            days = schedule.occurrences(start, end)
        except (TypeError, ValueError) as exc:
            logger.warning("Skipping rule %s, expansion failed: %s", rule.id, exc)
            skipped.append(rule.id)
            continue

        for day in days:
            key = (rule.id, day)
            if key in present:
                continue
            present.add(key)
            staged.append(
                Instance(
                    user_id=user_id,
                    rule_id=rule.id,
                    owner_id=rule.owner_id,
                    logical_day=day,
                    status=STATUS_PENDING,
                )
            )

    return staged, skipped


async def ensure_instances_for_range(
    store: PlannerStore,
    user_id: str,
    start_day: date | str,
    end_day: date | str,
    timezone: str | None = None,
) -> EnsureResult:
    """Insert the missing instances of the user's live rules in [start_day, end_day].

    Idempotent. Read failures abort before anything is written; insert
    conflicts on (user_id, rule_id, logical_day) are absorbed by the store.

    Raises:
        ValueError: malformed dates, or a span longer than MAX_RANGE_DAYS.
        StoreError: the store failed to read or write.
    """
    start = coerce_logical_date(start_day)
    end = coerce_logical_date(end_day)
    if end < start:
        logger.debug("Empty range %s..%s for user %s", start, end, user_id)
        return EnsureResult()

    span = (end - start).days + 1
    if span > settings.MAX_RANGE_DAYS:
        raise ValueError(
            f"Range {start}..{end} spans {span} days; the limit is {settings.MAX_RANGE_DAYS}"
        )

    zone_key = get_zone(timezone).key

    rules, existing = await asyncio.gather(
        store.list_active_rules(user_id),
        store.list_instances(user_id, start, end),
    )
    if not rules:
        return EnsureResult()

    staged, skipped = plan_instances(rules, existing, user_id, start, end, zone_key)

    inserted = 0
    if staged:
        inserted = await store.insert_instances_ignoring_duplicates(staged)

    logger.info(
        "Ensured instances for user %s %s..%s: %d staged, %d inserted, %d rule(s) skipped",
        user_id, start, end, len(staged), inserted, len(skipped),
    )
    return EnsureResult(staged=len(staged), inserted=inserted, skipped_rules=skipped)


async def ensure_instances_for_day(
    store: PlannerStore,
    user_id: str,
    day: date | str,
    timezone: str | None = None,
) -> EnsureResult:
    """Single-day convenience wrapper around ensure_instances_for_range."""
    return await ensure_instances_for_range(store, user_id, day, day, timezone)
