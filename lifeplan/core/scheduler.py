"""
LifePlan — Daily Jobs.

Ensure-instances batch: pre-generates instances for many users at once
(nightly warm-up, backfills after an outage).

End-of-day: for each user, closes out *their* yesterday. Pending instances
become "skipped" and a DailySnapshot is written for analytics.

Both jobs keep going when one user fails and report the failures instead.
This module is storage-agnostic: it depends on the PlannerStore protocol.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone as dt_timezone
from typing import TYPE_CHECKING

from lifeplan.config import settings
from lifeplan.core.logical_day import coerce_logical_date, resolve_logical_date
from lifeplan.core.materializer import ensure_instances_for_range
from lifeplan.data.models import STATUS_SKIPPED, DailySnapshot

if TYPE_CHECKING:
    from lifeplan.data.models import Profile
    from lifeplan.ports.planner_store import PlannerStore

logger = logging.getLogger(__name__)


def _profile_timezone(profile: Profile) -> str:
    return profile.timezone or settings.DEFAULT_TIMEZONE


# ---------------------------------------------------------------------------
# Ensure-instances batch
# ---------------------------------------------------------------------------


async def ensure_instances_for_users(
    store: PlannerStore,
    start_day: date | str,
    end_day: date | str,
    user_ids: list[str] | None = None,
    dry_run: bool = False,
) -> dict:
    """Run ensure_instances_for_range for every selected user.

    user_ids=None selects every user that has live rules.

    Raises ValueError when end precedes start or the span exceeds
    BATCH_MAX_RANGE_DAYS.
    """
    start = coerce_logical_date(start_day)
    end = coerce_logical_date(end_day)
    diff_days = (end - start).days
    if diff_days < 0:
        raise ValueError("end_day must not be before start_day")
    if diff_days > settings.BATCH_MAX_RANGE_DAYS:
        raise ValueError(
            f"Date range cannot exceed {settings.BATCH_MAX_RANGE_DAYS} days"
        )

    profiles = await store.list_profiles(user_ids)

    if dry_run:
        return {
            "dry_run": True,
            "users": len(profiles),
            "start_day": start.isoformat(),
            "end_day": end.isoformat(),
            "days": diff_days + 1,
        }

    results = {
        "dry_run": False,
        "processed_users": 0,
        "created_instances": 0,
        "errors": [],
    }
    for profile in profiles:
        try:
            outcome = await ensure_instances_for_range(
                store, profile.user_id, start, end, _profile_timezone(profile),
            )
        except Exception as exc:
            logger.error("Ensure-instances failed for user %s: %s", profile.user_id, exc)
            results["errors"].append(f"User {profile.user_id}: {exc}")
            continue
        results["processed_users"] += 1
        results["created_instances"] += outcome.inserted

    logger.info(
        "Ensure-instances %s..%s: %d user(s), %d instance(s) created, %d error(s)",
        start, end, results["processed_users"], results["created_instances"],
        len(results["errors"]),
    )
    return results


# ---------------------------------------------------------------------------
# End-of-day
# ---------------------------------------------------------------------------


async def close_day_for_user(
    store: PlannerStore,
    user_id: str,
    day: date,
) -> tuple[DailySnapshot, int]:
    """Expire the day's pending instances and store the day's snapshot.

    Returns the snapshot and the number of instances that were expired.
    """
    expired = await store.expire_pending_instances(user_id, day)
    instances = await store.list_instances(user_id, day, day)
    snapshot = DailySnapshot(
        user_id=user_id,
        snapshot_date=day,
        instances_total=len(instances),
        instances_done=sum(1 for inst in instances if inst.is_done),
        instances_skipped=sum(1 for inst in instances if inst.status == STATUS_SKIPPED),
    )
    await store.save_snapshot(snapshot)
    logger.info(
        "Closed %s for user %s: %d expired, %d/%d done",
        day, user_id, expired, snapshot.instances_done, snapshot.instances_total,
    )
    return snapshot, expired


async def run_end_of_day(
    store: PlannerStore,
    now: datetime | None = None,
    user_ids: list[str] | None = None,
) -> dict:
    """Close out yesterday for every user, yesterday being in the user's own zone."""
    if now is None:
        now = datetime.now(dt_timezone.utc)

    profiles = await store.list_profiles(user_ids)
    results = {
        "expired_instances": 0,
        "snapshots_created": 0,
        "errors": [],
    }
    for profile in profiles:
        yesterday = resolve_logical_date(now, _profile_timezone(profile)) - timedelta(days=1)
        try:
            _, expired = await close_day_for_user(store, profile.user_id, yesterday)
        except Exception as exc:
            logger.error("End-of-day failed for user %s: %s", profile.user_id, exc)
            results["errors"].append(f"User {profile.user_id}: {exc}")
            continue
        results["expired_instances"] += expired
        results["snapshots_created"] += 1

    logger.info(
        "End-of-day: %d snapshot(s), %d instance(s) expired, %d error(s)",
        results["snapshots_created"], results["expired_instances"], len(results["errors"]),
    )
    return results
