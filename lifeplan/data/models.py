"""
LifePlan — Data Models.

Recurrence rules belong to a single template (a habit or a recurring
transaction) and are expanded into dated instances, one per logical day.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime

OWNER_HABIT = "habit"
OWNER_TRANSACTION = "transaction"

STATUS_PENDING = "pending"
STATUS_DONE = "done"
STATUS_COMPLETED = "completed"
STATUS_SKIPPED = "skipped"

# "completed" is the legacy spelling still present in older rows
DONE_STATUSES = frozenset({STATUS_DONE, STATUS_COMPLETED})
INSTANCE_STATUSES = frozenset({STATUS_PENDING, STATUS_DONE, STATUS_COMPLETED, STATUS_SKIPPED})


@dataclass
class Profile:
    """A user's scheduling preferences."""

    user_id: str
    timezone: str = ""             # IANA key, empty means "use the default"


@dataclass
class RecurrenceRule:
    """A cadence attached to one habit or recurring-transaction template.

    Rules are never edited in place: a new cadence replaces the old rule so
    instances keep pointing at the rule that produced them.
    """

    id: str
    user_id: str
    owner_id: str                     # template the rule belongs to
    rule_type: str                    # "daily" | "weekly" | "rrule" | future types
    config: dict = field(default_factory=dict)
    created_at: datetime | None = None
    owner_kind: str = OWNER_HABIT
    deleted_at: datetime | None = None
    active: bool = True

    @property
    def is_live(self) -> bool:
        return self.deleted_at is None and self.active


@dataclass
class Instance:
    """A concrete dated occurrence of a rule.

    At most one instance exists per (user_id, rule_id, logical_day).
    """

    user_id: str
    rule_id: str
    logical_day: date
    owner_id: str = ""
    status: str = STATUS_PENDING
    id: int | None = None
    created_at: datetime | None = None

    @property
    def key(self) -> tuple[str, date]:
        return (self.rule_id, self.logical_day)

    @property
    def is_done(self) -> bool:
        return self.status in DONE_STATUSES


@dataclass
class DailySnapshot:
    """End-of-day totals for one user and one logical day."""

    user_id: str
    snapshot_date: date
    instances_total: int = 0
    instances_done: int = 0
    instances_skipped: int = 0
