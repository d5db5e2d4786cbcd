"""
LifePlan — Recurrence schedules.

Turns a rule's (rule_type, config) pair into a schedule that can answer
"which days in this range is the rule due on?".

Supported rule types:
  * daily  — every day
  * weekly — config {"days": ["MO", "TH"], "interval": 2}; without "days" the
             rule repeats on the weekday it was created on
  * rrule  — config {"rrule": "FREQ=MONTHLY;BYMONTHDAY=1", "start": "YYYY-MM-DD"}

Any other rule type parses to UnknownSchedule, which is never due. Newer rule
types written by a newer client must not break an older materializer.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta

from dateutil.rrule import rrulestr

from lifeplan.core.logical_day import days_in_range, parse_logical_date, resolve_logical_date
from lifeplan.data.models import RecurrenceRule

logger = logging.getLogger(__name__)

RULE_DAILY = "daily"
RULE_WEEKLY = "weekly"
RULE_RRULE = "rrule"

WEEKDAY_CODES = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")

# Frequencies offered when creating a recurring transaction
FREQUENCIES = ("daily", "weekly", "biweekly", "monthly", "quarterly", "yearly")
_FREQ_TO_RRULE = {
    "daily": "DAILY",
    "weekly": "WEEKLY",
    "biweekly": "WEEKLY",
    "monthly": "MONTHLY",
    "quarterly": "MONTHLY",
    "yearly": "YEARLY",
}
_RRULE_TO_FREQ = {"DAILY": "daily", "WEEKLY": "weekly", "MONTHLY": "monthly", "YEARLY": "yearly"}

# UNTIL=20240103T000000Z -> UNTIL=20240103T000000; expansion runs on naive local dates
_UTC_UNTIL_RE = re.compile(r"(UNTIL=\d{8}(?:T\d{6})?)Z", re.IGNORECASE)


class InvalidRuleConfig(ValueError):
    """Raised when a known rule type carries an unusable config payload."""


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DailySchedule:
    """Due every day."""

    def occurrences(self, start: date, end: date) -> list[date]:
        return days_in_range(start, end)

    def is_due(self, day: date) -> bool:
        return True


@dataclass(frozen=True)
class WeeklySchedule:
    """Due on a set of weekdays (Monday = 0), every *interval* weeks."""

    weekdays: frozenset[int]
    anchor: date
    interval: int = 1

    def is_due(self, day: date) -> bool:
        if day.weekday() not in self.weekdays:
            return False
        if self.interval == 1:
            return True
        anchor_monday = self.anchor - timedelta(days=self.anchor.weekday())
        weeks = (day - anchor_monday).days // 7
        return weeks % self.interval == 0

    def occurrences(self, start: date, end: date) -> list[date]:
        return [d for d in days_in_range(start, end) if self.is_due(d)]


@dataclass(frozen=True)
class RRuleSchedule:
    """An RFC 5545 recurrence starting on *anchor*."""

    rrule: str
    anchor: date

    def _rule(self):
        text = _UTC_UNTIL_RE.sub(r"\1", self.rrule)
        return rrulestr(text, dtstart=datetime.combine(self.anchor, time()))

    def occurrences(self, start: date, end: date) -> list[date]:
        if end < start:
            return []
        hits = self._rule().between(
            datetime.combine(start, time()),
            datetime.combine(end, time()),
            inc=True,
        )
        return [hit.date() for hit in hits]

    def is_due(self, day: date) -> bool:
        return bool(self.occurrences(day, day))


@dataclass
class UnknownSchedule:
    """A rule type this version does not understand. Never due."""

    rule_type: str
    config: dict = field(default_factory=dict)

    def occurrences(self, start: date, end: date) -> list[date]:
        return []

    def is_due(self, day: date) -> bool:
        return False


Schedule = DailySchedule | WeeklySchedule | RRuleSchedule | UnknownSchedule


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _parse_weekday(token: object) -> int:
    if isinstance(token, bool):
        raise InvalidRuleConfig(f"Invalid weekday: {token!r}")
    if isinstance(token, int):
        if 0 <= token <= 6:
            return token
        raise InvalidRuleConfig(f"Weekday out of range: {token}")
    if isinstance(token, str):
        code = token.strip().upper()[:2]
        if code in WEEKDAY_CODES:
            return WEEKDAY_CODES.index(code)
    raise InvalidRuleConfig(f"Invalid weekday: {token!r}")


def _parse_interval(raw: object) -> int:
    try:
        interval = int(raw)
    except (TypeError, ValueError):
        raise InvalidRuleConfig(f"Invalid interval: {raw!r}") from None
    if interval < 1:
        raise InvalidRuleConfig(f"Interval must be >= 1, got {interval}")
    return interval


def creation_day(rule: RecurrenceRule, timezone: str | None) -> date | None:
    """Logical date the rule was created on, in the owner's timezone."""
    if rule.created_at is None:
        return None
    return resolve_logical_date(rule.created_at, timezone)


def schedule_for_rule(rule: RecurrenceRule, timezone: str | None = None) -> Schedule:
    """Build the schedule for a rule.

    Raises InvalidRuleConfig when a daily/weekly/rrule config is malformed.
    """
    config = rule.config or {}
    if not isinstance(config, dict):
        if rule.rule_type in (RULE_DAILY, RULE_WEEKLY, RULE_RRULE):
            raise InvalidRuleConfig(f"Rule {rule.id} config must be an object")
        return UnknownSchedule(rule_type=rule.rule_type)

    if rule.rule_type == RULE_DAILY:
        return DailySchedule()

    if rule.rule_type == RULE_WEEKLY:
        created = creation_day(rule, timezone)
        raw_days = config.get("days")
        if raw_days:
            if isinstance(raw_days, (str, int)):
                raw_days = [raw_days]
            if not isinstance(raw_days, (list, tuple, set)):
                raise InvalidRuleConfig(f"Weekly rule {rule.id} has invalid days: {raw_days!r}")
            weekdays = frozenset(_parse_weekday(token) for token in raw_days)
        elif created is not None:
            weekdays = frozenset({created.weekday()})
        else:
            raise InvalidRuleConfig(f"Weekly rule {rule.id} has no days and no creation date")
        interval = _parse_interval(config.get("interval", 1))
        anchor = created if created is not None else date(1970, 1, 5)  # a Monday
        return WeeklySchedule(weekdays=weekdays, anchor=anchor, interval=interval)

    if rule.rule_type == RULE_RRULE:
        text = config.get("rrule")
        if not text or not isinstance(text, str):
            raise InvalidRuleConfig(f"RRULE rule {rule.id} has no 'rrule' string")
        if "DTSTART" in text.upper():
            raise InvalidRuleConfig(f"RRULE rule {rule.id} must not carry its own DTSTART")
        if config.get("start"):
            try:
                anchor = parse_logical_date(config["start"])
            except ValueError as exc:
                raise InvalidRuleConfig(str(exc)) from None
        else:
            anchor = creation_day(rule, timezone)
            if anchor is None:
                raise InvalidRuleConfig(f"RRULE rule {rule.id} has no start date")
        schedule = RRuleSchedule(rrule=text.strip(), anchor=anchor)
        try:
            schedule._rule()
        except (ValueError, TypeError) as exc:
            raise InvalidRuleConfig(f"RRULE rule {rule.id}: {exc}") from None
        return schedule

    return UnknownSchedule(rule_type=rule.rule_type, config=dict(config))


# ---------------------------------------------------------------------------
# RRULE helpers for recurring transactions
# ---------------------------------------------------------------------------


@dataclass
class RRuleConfig:
    """The subset of RRULE the finance screens let users pick."""

    freq: str
    interval: int | None = None
    bymonthday: int | None = None
    byday: str | None = None


def build_rrule(
    freq: str,
    interval: int | None = None,
    bymonthday: int | None = None,
    byday: str | None = None,
) -> str:
    """Build an RRULE string from a friendly frequency name.

    biweekly and quarterly are shorthands for INTERVAL=2 weekly and
    INTERVAL=3 monthly; an explicit interval is ignored for them.
    """
    if freq not in _FREQ_TO_RRULE:
        raise ValueError(f"Unknown frequency {freq!r}; expected one of {', '.join(FREQUENCIES)}")

    parts = [f"FREQ={_FREQ_TO_RRULE[freq]}"]
    if freq == "biweekly":
        parts.append("INTERVAL=2")
    elif freq == "quarterly":
        parts.append("INTERVAL=3")
    elif interval and interval > 1:
        parts.append(f"INTERVAL={interval}")

    if bymonthday:
        parts.append(f"BYMONTHDAY={bymonthday}")
    if byday:
        byday = byday.strip().upper()
        for code in byday.split(","):
            if code not in WEEKDAY_CODES:
                raise ValueError(f"Invalid BYDAY value: {code!r}")
        parts.append(f"BYDAY={byday}")

    return ";".join(parts)


def parse_rrule(text: str) -> RRuleConfig:
    """Parse an RRULE string back into an RRuleConfig.

    Unknown FREQ values read as monthly, matching what the finance screens
    have always shown for them.
    """
    fields: dict[str, str] = {}
    for part in text.strip().removeprefix("RRULE:").split(";"):
        if "=" not in part:
            continue
        key, value = part.split("=", 1)
        fields[key.strip().upper()] = value.strip()

    config = RRuleConfig(freq=_RRULE_TO_FREQ.get(fields.get("FREQ", "").upper(), "monthly"))
    if "INTERVAL" in fields:
        config.interval = int(fields["INTERVAL"])
    if "BYMONTHDAY" in fields:
        config.bymonthday = int(fields["BYMONTHDAY"])
    if "BYDAY" in fields:
        config.byday = fields["BYDAY"]

    if config.freq == "weekly" and config.interval == 2:
        config.freq = "biweekly"
        config.interval = None
    elif config.freq == "monthly" and config.interval == 3:
        config.freq = "quarterly"
        config.interval = None
    return config


def next_occurrence(rrule: str, after: date, anchor: date | None = None) -> date | None:
    """First occurrence strictly after *after* (None if the rule has ended)."""
    schedule = RRuleSchedule(rrule=rrule, anchor=anchor or after)
    hit = schedule._rule().after(datetime.combine(after, time()), inc=False)
    return hit.date() if hit is not None else None


def next_occurrences(rrule: str, start: date, count: int = 3) -> list[date]:
    """Preview the next *count* occurrences after *start*."""
    result: list[date] = []
    current = start
    for _ in range(count):
        hit = next_occurrence(rrule, current, anchor=start)
        if hit is None:
            break
        result.append(hit)
        current = hit
    return result
