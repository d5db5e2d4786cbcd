"""
LifePlan — Planner Database.

SQLite storage for profiles, recurrence rules, materialized instances and
end-of-day snapshots. The UNIQUE(user_id, rule_id, logical_day) constraint on
instances is the only serialization point between concurrent materializers.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path
from uuid import uuid4

from lifeplan.data.models import (
    INSTANCE_STATUSES,
    OWNER_HABIT,
    STATUS_PENDING,
    STATUS_SKIPPED,
    DailySnapshot,
    Instance,
    Profile,
    RecurrenceRule,
)

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _to_text(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _from_text(value: str | None) -> datetime | None:
    if not value:
        return None
    return datetime.fromisoformat(value)


class PlannerDB:
    """SQLite-backed storage for rules and their instances."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from lifeplan.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create tables if they don't exist, and migrate schema."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS profiles (
                    user_id   TEXT PRIMARY KEY,
                    timezone  TEXT NOT NULL DEFAULT ''
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS recurrence_rules (
                    id          TEXT PRIMARY KEY,
                    user_id     TEXT NOT NULL,
                    owner_id    TEXT NOT NULL,
                    rule_type   TEXT NOT NULL,
                    rule_config TEXT NOT NULL DEFAULT '{}',
                    created_at  TEXT NOT NULL,
                    deleted_at  TEXT,
                    owner_kind  TEXT NOT NULL DEFAULT 'habit',
                    active      INTEGER NOT NULL DEFAULT 1
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS instances (
                    id          INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id     TEXT NOT NULL,
                    rule_id     TEXT NOT NULL,
                    owner_id    TEXT NOT NULL DEFAULT '',
                    logical_day TEXT NOT NULL,
                    status      TEXT NOT NULL DEFAULT 'pending',
                    created_at  TEXT NOT NULL,
                    UNIQUE (user_id, rule_id, logical_day)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS daily_snapshots (
                    user_id           TEXT NOT NULL,
                    snapshot_date     TEXT NOT NULL,
                    instances_total   INTEGER NOT NULL DEFAULT 0,
                    instances_done    INTEGER NOT NULL DEFAULT 0,
                    instances_skipped INTEGER NOT NULL DEFAULT 0,
                    updated_at        TEXT NOT NULL,
                    UNIQUE (user_id, snapshot_date)
                )
            """)
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_instances_user_day "
                "ON instances (user_id, logical_day)"
            )
            # Migrate existing DBs: add new columns if missing
            existing_cols = {
                row[1]
                for row in conn.execute("PRAGMA table_info(recurrence_rules)").fetchall()
            }
            if "owner_kind" not in existing_cols:
                conn.execute(
                    "ALTER TABLE recurrence_rules ADD COLUMN owner_kind TEXT NOT NULL DEFAULT 'habit'"
                )
            if "active" not in existing_cols:
                conn.execute(
                    "ALTER TABLE recurrence_rules ADD COLUMN active INTEGER NOT NULL DEFAULT 1"
                )
        logger.debug("Planner tables initialized at %s", self._db_path)

    @staticmethod
    def _row_to_rule(row: sqlite3.Row) -> RecurrenceRule:
        try:
            config = json.loads(row["rule_config"] or "{}")
        except json.JSONDecodeError:
            # Raw text is kept so schedule_for_rule rejects it as non-dict
            logger.warning("Rule %s has unreadable config", row["id"])
            config = row["rule_config"]
        return RecurrenceRule(
            id=row["id"],
            user_id=row["user_id"],
            owner_id=row["owner_id"],
            rule_type=row["rule_type"],
            config=config,
            created_at=_from_text(row["created_at"]),
            owner_kind=row["owner_kind"],
            deleted_at=_from_text(row["deleted_at"]),
            active=bool(row["active"]),
        )

    @staticmethod
    def _row_to_instance(row: sqlite3.Row) -> Instance:
        return Instance(
            id=row["id"],
            user_id=row["user_id"],
            rule_id=row["rule_id"],
            owner_id=row["owner_id"],
            logical_day=date.fromisoformat(row["logical_day"]),
            status=row["status"],
            created_at=_from_text(row["created_at"]),
        )

    # -- profiles ----------------------------------------------------------

    def upsert_profile(self, user_id: str, timezone: str = "") -> Profile:
        """Create or update a user's profile."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO profiles (user_id, timezone) VALUES (?, ?)
                ON CONFLICT(user_id) DO UPDATE SET timezone = excluded.timezone
                """,
                (user_id, timezone),
            )
        logger.info("Profile saved for user %s (timezone %r)", user_id, timezone)
        return Profile(user_id=user_id, timezone=timezone)

    def get_profile(self, user_id: str) -> Profile | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM profiles WHERE user_id = ?", (user_id,)
            ).fetchone()
        if row is None:
            return None
        return Profile(user_id=row["user_id"], timezone=row["timezone"])

    def list_profiles(self, user_ids: list[str] | None = None) -> list[Profile]:
        """Return profiles for the given users, or for every user with live rules.

        Users without a profile row get an empty timezone.
        """
        with self._connect() as conn:
            if user_ids is None:
                rows = conn.execute(
                    """
                    SELECT DISTINCT r.user_id AS user_id,
                           COALESCE(p.timezone, '') AS timezone
                    FROM recurrence_rules r
                    LEFT JOIN profiles p ON p.user_id = r.user_id
                    WHERE r.deleted_at IS NULL AND r.active = 1
                    ORDER BY r.user_id
                    """
                ).fetchall()
                return [Profile(user_id=r["user_id"], timezone=r["timezone"]) for r in rows]

            if not user_ids:
                return []
            placeholders = ", ".join("?" for _ in user_ids)
            rows = conn.execute(
                f"SELECT * FROM profiles WHERE user_id IN ({placeholders})",
                list(user_ids),
            ).fetchall()
        found = {r["user_id"]: r["timezone"] for r in rows}
        return [Profile(user_id=uid, timezone=found.get(uid, "")) for uid in dict.fromkeys(user_ids)]

    # -- rules -------------------------------------------------------------

    def add_rule(
        self,
        user_id: str,
        owner_id: str,
        rule_type: str,
        config: dict | None = None,
        owner_kind: str = OWNER_HABIT,
        created_at: datetime | None = None,
        rule_id: str | None = None,
    ) -> RecurrenceRule:
        """Insert a new rule for a template."""
        rule = RecurrenceRule(
            id=rule_id or _new_id(),
            user_id=user_id,
            owner_id=owner_id,
            rule_type=rule_type,
            config=dict(config or {}),
            created_at=created_at or _now(),
            owner_kind=owner_kind,
        )
        with self._connect() as conn:
            self._insert_rule(conn, rule)
        logger.info("Rule added: %s (%s) for %s %s", rule.id, rule_type, owner_kind, owner_id)
        return rule

    @staticmethod
    def _insert_rule(conn: sqlite3.Connection, rule: RecurrenceRule) -> None:
        conn.execute(
            """
            INSERT INTO recurrence_rules
                (id, user_id, owner_id, rule_type, rule_config,
                 created_at, deleted_at, owner_kind, active)
            VALUES (?, ?, ?, ?, ?, ?, NULL, ?, ?)
            """,
            (
                rule.id, rule.user_id, rule.owner_id, rule.rule_type,
                json.dumps(rule.config), _to_text(rule.created_at),
                rule.owner_kind, int(rule.active),
            ),
        )

    def get_rule(self, rule_id: str) -> RecurrenceRule | None:
        """Fetch a single rule by ID, deleted or not."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM recurrence_rules WHERE id = ?", (rule_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_rule(row)

    def list_active_rules(self, user_id: str) -> list[RecurrenceRule]:
        """Return the user's rules that are neither soft-deleted nor paused."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM recurrence_rules
                WHERE user_id = ? AND deleted_at IS NULL AND active = 1
                ORDER BY created_at, id
                """,
                (user_id,),
            ).fetchall()
        return [self._row_to_rule(r) for r in rows]

    def soft_delete_rule(self, rule_id: str) -> bool:
        """Soft-delete a rule. Its instances are kept."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE recurrence_rules SET deleted_at = ? WHERE id = ? AND deleted_at IS NULL",
                (_to_text(_now()), rule_id),
            )
        deleted = cursor.rowcount > 0
        if deleted:
            logger.info("Rule %s soft-deleted", rule_id)
        return deleted

    def soft_delete_rules_for_owner(self, owner_id: str) -> int:
        """Soft-delete every live rule of a removed template."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE recurrence_rules SET deleted_at = ? WHERE owner_id = ? AND deleted_at IS NULL",
                (_to_text(_now()), owner_id),
            )
        if cursor.rowcount:
            logger.info("Soft-deleted %d rule(s) of template %s", cursor.rowcount, owner_id)
        return cursor.rowcount

    def set_rule_active(self, rule_id: str, active: bool) -> bool:
        """Pause or resume a rule."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE recurrence_rules SET active = ? WHERE id = ? AND deleted_at IS NULL",
                (int(active), rule_id),
            )
        updated = cursor.rowcount > 0
        if updated:
            logger.info("Rule %s %s", rule_id, "resumed" if active else "paused")
        return updated

    def replace_rule(
        self,
        rule_id: str,
        rule_type: str,
        config: dict | None = None,
        created_at: datetime | None = None,
    ) -> RecurrenceRule:
        """Swap a rule's cadence by soft-deleting it and inserting a successor."""
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM recurrence_rules WHERE id = ? AND deleted_at IS NULL",
                (rule_id,),
            ).fetchone()
            if row is None:
                raise ValueError(f"Rule {rule_id} not found")
            old = self._row_to_rule(row)
            new = RecurrenceRule(
                id=_new_id(),
                user_id=old.user_id,
                owner_id=old.owner_id,
                rule_type=rule_type,
                config=dict(config or {}),
                created_at=created_at or _now(),
                owner_kind=old.owner_kind,
                active=old.active,
            )
            conn.execute(
                "UPDATE recurrence_rules SET deleted_at = ? WHERE id = ?",
                (_to_text(_now()), rule_id),
            )
            self._insert_rule(conn, new)
        logger.info("Rule %s replaced by %s (%s)", rule_id, new.id, rule_type)
        return new

    # -- instances ---------------------------------------------------------

    def list_instances(self, user_id: str, start_day: date, end_day: date) -> list[Instance]:
        """Return the user's instances with start_day <= logical_day <= end_day."""
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT * FROM instances
                WHERE user_id = ? AND logical_day >= ? AND logical_day <= ?
                ORDER BY logical_day, id
                """,
                (user_id, start_day.isoformat(), end_day.isoformat()),
            ).fetchall()
        return [self._row_to_instance(r) for r in rows]

    def insert_instances_ignoring_duplicates(self, instances: list[Instance]) -> int:
        """Insert instances, skipping rows that already exist. Returns rows inserted."""
        if not instances:
            return 0
        now = _to_text(_now())
        with self._connect() as conn:
            cursor = conn.executemany(
                """
                INSERT OR IGNORE INTO instances
                    (user_id, rule_id, owner_id, logical_day, status, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        inst.user_id, inst.rule_id, inst.owner_id,
                        inst.logical_day.isoformat(), inst.status,
                        _to_text(inst.created_at) or now,
                    )
                    for inst in instances
                ],
            )
        inserted = max(cursor.rowcount, 0)
        logger.debug("Inserted %d of %d instance(s)", inserted, len(instances))
        return inserted

    def get_instance(self, instance_id: int) -> Instance | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM instances WHERE id = ?", (instance_id,)
            ).fetchone()
        if row is None:
            return None
        return self._row_to_instance(row)

    def set_instance_status(self, instance_id: int, status: str) -> bool:
        """Record a user's check-off (or un-check) of an instance."""
        if status not in INSTANCE_STATUSES:
            raise ValueError(f"Unknown instance status {status!r}")
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE instances SET status = ? WHERE id = ?",
                (status, instance_id),
            )
        return cursor.rowcount > 0

    def expire_pending_instances(self, user_id: str, day: date) -> int:
        """Mark the day's still-pending instances as skipped."""
        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE instances SET status = ? WHERE user_id = ? AND logical_day = ? AND status = ?",
                (STATUS_SKIPPED, user_id, day.isoformat(), STATUS_PENDING),
            )
        if cursor.rowcount:
            logger.info("Expired %d pending instance(s) for %s on %s", cursor.rowcount, user_id, day)
        return cursor.rowcount

    # -- snapshots ---------------------------------------------------------

    def save_snapshot(self, snapshot: DailySnapshot) -> None:
        """Insert or overwrite the snapshot for (user_id, snapshot_date)."""
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO daily_snapshots
                    (user_id, snapshot_date, instances_total, instances_done,
                     instances_skipped, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(user_id, snapshot_date) DO UPDATE SET
                    instances_total = excluded.instances_total,
                    instances_done = excluded.instances_done,
                    instances_skipped = excluded.instances_skipped,
                    updated_at = excluded.updated_at
                """,
                (
                    snapshot.user_id, snapshot.snapshot_date.isoformat(),
                    snapshot.instances_total, snapshot.instances_done,
                    snapshot.instances_skipped, _to_text(_now()),
                ),
            )

    def get_snapshot(self, user_id: str, day: date) -> DailySnapshot | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM daily_snapshots WHERE user_id = ? AND snapshot_date = ?",
                (user_id, day.isoformat()),
            ).fetchone()
        if row is None:
            return None
        return DailySnapshot(
            user_id=row["user_id"],
            snapshot_date=date.fromisoformat(row["snapshot_date"]),
            instances_total=row["instances_total"],
            instances_done=row["instances_done"],
            instances_skipped=row["instances_skipped"],
        )
