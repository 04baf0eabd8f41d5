# ============================================================================
# SCHEDULE SPEC PARSER
# ============================================================================
# EPOCH: 1 - DETECTION ENGINE
# STATUS: Core - Schedule grammar and APScheduler triggers
# PURPOSE: Validate multi-cron / interval specs and compute fire times
# LAST_REVIEWED: 29 SEP 2026
# EXPORTS: parse_schedule, validate_schedule, build_trigger, compute_next_run,
#          IntervalSpec, IntervalSpecTrigger, resolve_timezone
# DEPENDENCIES: apscheduler
# ============================================================================
"""
Schedule Spec Parser

Two grammars share the cron_schedule field:

Multi-cron:
    "0 0,8,12,16,20 * * * || 30 6 * * 1"
    Any number of 5-field cron expressions joined by "||". Fires when any
    segment matches.

Interval:
    "interval:<unit>:<value>:<anchor>[|offset=<n>][|times=HH:MM,...]"

    unit     minute (1-60), hour (1-24), day (1-7)
    anchor   ISO-8601 instant; runs fire at anchor + k * period, k >= 0
    offset   minutes to ADD to local time to get UTC (UTC+8 is -480).
             Only sets the zone for times=; periods stay absolute.
    times    day unit only. 1-6 strictly increasing HH:MM values. Runs fire
             on days anchor_date + k * value at each listed time, never
             before the anchor instant.

Examples:
    interval:hour:6:2024-01-01T00:00:00Z
    interval:day:1:2024-01-01T00:00:00Z|offset=-480|times=08:00,20:00

Usage:
    validate_schedule(spec, "Asia/Shanghai")      # raises ConfigValidationError
    trigger = build_trigger(spec, "Asia/Shanghai")
    next_run = compute_next_run(spec, "Asia/Shanghai")
"""

import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import List, Optional, Tuple, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger

from core.errors import ConfigValidationError


# ============================================================================
# GRAMMAR CONSTANTS
# ============================================================================

CRON_SEPARATOR = "||"
INTERVAL_PREFIX = "interval:"
META_SEPARATOR = "|"

UNIT_RANGES = {
    "minute": (1, 60),
    "hour": (1, 24),
    "day": (1, 7),
}

UNIT_SECONDS = {
    "minute": 60,
    "hour": 3600,
    "day": 86400,
}

MAX_DAILY_RUNS = 6

_TIME_PATTERN = re.compile(r"^\d{2}:\d{2}$")

FIELD = "cron_schedule"

# Crontab weekday numbering: 0 (and 7) is Sunday
CRONTAB_WEEKDAYS = ["sun", "mon", "tue", "wed", "thu", "fri", "sat"]


# ============================================================================
# PARSED FORMS
# ============================================================================

@dataclass(frozen=True)
class IntervalSpec:
    """Parsed interval schedule."""
    unit: str
    value: int
    anchor: datetime
    offset_minutes: Optional[int] = None
    times: Tuple[Tuple[int, int], ...] = ()

    @property
    def period(self) -> timedelta:
        return timedelta(seconds=UNIT_SECONDS[self.unit] * self.value)

    def times_zone(self, default_tz: tzinfo) -> tzinfo:
        """Zone in which times= are read."""
        if self.offset_minutes is None:
            return default_tz
        return timezone(timedelta(minutes=-self.offset_minutes))


def _invalid(message: str, spec: str) -> ConfigValidationError:
    return ConfigValidationError(f"Invalid schedule: {message}", field=FIELD, value=spec)


def resolve_timezone(name: str) -> ZoneInfo:
    """
    Resolve an IANA timezone name.

    Raises:
        ConfigValidationError: unknown zone
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError, TypeError):
        raise ConfigValidationError(f"Unknown timezone: {name}", field="timezone", value=name)


def is_interval_spec(spec: str) -> bool:
    return spec.strip().startswith(INTERVAL_PREFIX)


def split_cron_schedules(spec: str) -> List[str]:
    return [part.strip() for part in spec.split(CRON_SEPARATOR) if part.strip()]


def _parse_anchor(raw: str, spec: str) -> datetime:
    text = raw.strip()
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        anchor = datetime.fromisoformat(text)
    except ValueError:
        raise _invalid(f"unparseable anchor {raw!r}", spec)
    if anchor.tzinfo is None:
        anchor = anchor.replace(tzinfo=timezone.utc)
    return anchor


def _parse_times(raw: str, spec: str) -> Tuple[Tuple[int, int], ...]:
    values = [item.strip() for item in raw.split(",") if item.strip()]
    if not values:
        raise _invalid("times= is empty", spec)
    if len(values) > MAX_DAILY_RUNS:
        raise _invalid(f"at most {MAX_DAILY_RUNS} times per day", spec)

    parsed = []
    for value in values:
        if not _TIME_PATTERN.match(value):
            raise _invalid(f"malformed time {value!r}", spec)
        hour, minute = int(value[:2]), int(value[3:])
        if hour > 23 or minute > 59:
            raise _invalid(f"malformed time {value!r}", spec)
        parsed.append((hour, minute))

    for previous, current in zip(parsed, parsed[1:]):
        if current <= previous:
            raise _invalid("times must be strictly increasing", spec)
    return tuple(parsed)


def parse_interval_spec(spec: str) -> IntervalSpec:
    """
    Parse an interval spec.

    Raises:
        ConfigValidationError: any part of the spec is invalid
    """
    text = spec.strip()
    head, *meta_parts = text.split(META_SEPARATOR)

    parts = head.split(":")
    if len(parts) < 4 or parts[0] != "interval":
        raise _invalid("expected interval:<unit>:<value>:<anchor>", spec)

    unit, raw_value = parts[1], parts[2]
    # The anchor itself contains ':' separators
    raw_anchor = ":".join(parts[3:])

    if unit not in UNIT_RANGES:
        raise _invalid(f"unknown unit {unit!r}", spec)

    if not re.fullmatch(r"\d+", raw_value):
        raise _invalid(f"value must be an integer, got {raw_value!r}", spec)
    value = int(raw_value)
    low, high = UNIT_RANGES[unit]
    if not low <= value <= high:
        raise _invalid(f"{unit} value must be between {low} and {high}", spec)

    anchor = _parse_anchor(raw_anchor, spec)

    offset_minutes = None
    times: Tuple[Tuple[int, int], ...] = ()
    for meta in meta_parts:
        meta = meta.strip()
        if meta.startswith("offset="):
            raw_offset = meta[len("offset="):]
            if not re.fullmatch(r"[+-]?\d+", raw_offset.strip()):
                raise _invalid(f"offset must be numeric, got {raw_offset!r}", spec)
            offset_minutes = int(raw_offset)
            if abs(offset_minutes) >= 24 * 60:
                raise _invalid(f"offset must be within +/-1439 minutes, got {offset_minutes}", spec)
        elif meta.startswith("times="):
            if unit != "day":
                raise _invalid("times= is only allowed with the day unit", spec)
            times = _parse_times(meta[len("times="):], spec)
        elif meta:
            raise _invalid(f"unknown option {meta!r}", spec)

    return IntervalSpec(
        unit=unit,
        value=value,
        anchor=anchor,
        offset_minutes=offset_minutes,
        times=times,
    )


def _weekday_number(token: str) -> int:
    token = token.lower()
    if token in CRONTAB_WEEKDAYS:
        return CRONTAB_WEEKDAYS.index(token)
    if not token.isdigit() or int(token) > 7:
        raise ValueError(f"invalid weekday {token!r}")
    return int(token) % 7


def crontab_day_of_week(expr: str) -> str:
    """
    Translate a crontab day-of-week field into weekday names.

    APScheduler 3 numbers Monday as 0; crontab numbers Sunday as 0 (or 7).
    Names mean the same thing in both, so the field is expanded to names.
    """
    if expr in ("*", "?"):
        return "*"

    days = set()
    for item in expr.split(","):
        base, _, raw_step = item.partition("/")
        step = int(raw_step) if raw_step else 1
        if step < 1:
            raise ValueError(f"invalid step in {item!r}")

        if base == "*":
            first, last = 0, 6
        elif "-" in base:
            low, high = base.split("-", 1)
            first, last = _weekday_number(low), _weekday_number(high)
            # "1-7" and "mon-sun" end on Sunday
            if last == 0 and first > 0:
                last = 7
            if first > last:
                raise ValueError(f"invalid weekday range {base!r}")
        else:
            first = _weekday_number(base)
            last = 6 if raw_step else first

        days.update(day % 7 for day in range(first, last + 1, step))

    return ",".join(CRONTAB_WEEKDAYS[day] for day in sorted(days))


def parse_cron_schedules(spec: str, tz: tzinfo) -> List[CronTrigger]:
    """
    Parse a multi-cron spec into one CronTrigger per segment.

    Raises:
        ConfigValidationError: empty spec, wrong field count, or bad cron
    """
    segments = split_cron_schedules(spec)
    if not segments:
        raise _invalid("schedule is empty", spec)

    triggers = []
    for segment in segments:
        fields = segment.split()
        if len(fields) != 5:
            raise _invalid(f"cron segment {segment!r} must have 5 fields", spec)
        minute, hour, day, month, day_of_week = fields
        try:
            triggers.append(CronTrigger(
                minute=minute,
                hour=hour,
                day=day,
                month=month,
                day_of_week=crontab_day_of_week(day_of_week),
                timezone=tz,
            ))
        except ValueError as e:
            raise _invalid(f"cron segment {segment!r}: {e}", spec)
    return triggers


def parse_schedule(spec: str, tz: tzinfo) -> Union[IntervalSpec, List[CronTrigger]]:
    if spec is None or not spec.strip():
        raise _invalid("schedule is empty", spec)
    if is_interval_spec(spec):
        return parse_interval_spec(spec)
    return parse_cron_schedules(spec, tz)


def validate_schedule(spec: str, timezone_name: str) -> None:
    """Raise ConfigValidationError if spec or timezone is invalid."""
    parse_schedule(spec, resolve_timezone(timezone_name))


# ============================================================================
# INTERVAL TRIGGER
# ============================================================================

class IntervalSpecTrigger(BaseTrigger):
    """
    APScheduler trigger for interval specs.

    Period units behave like IntervalTrigger anchored at spec.anchor.
    Day units with times= fire at fixed times of day on every value-th day.
    """

    def __init__(self, spec: IntervalSpec, tz: tzinfo):
        self.spec = spec
        self.timezone = tz

    def get_next_fire_time(self, previous_fire_time, now):
        if self.spec.times:
            if previous_fire_time is not None:
                return self._next_pinned(previous_fire_time, inclusive=False)
            return self._next_pinned(now, inclusive=True)
        return self._next_period(previous_fire_time, now)

    def _next_period(self, previous_fire_time, now):
        anchor = self.spec.anchor
        period = self.spec.period
        if previous_fire_time is not None:
            return previous_fire_time + period
        if now <= anchor:
            return anchor
        elapsed = (now - anchor).total_seconds()
        steps = math.ceil(elapsed / period.total_seconds())
        return anchor + period * steps

    def _next_pinned(self, after: datetime, inclusive: bool) -> Optional[datetime]:
        zone = self.spec.times_zone(self.timezone)
        anchor = self.spec.anchor
        floor = max(after, anchor)

        anchor_date = anchor.astimezone(zone).date()
        days_since = (floor.astimezone(zone).date() - anchor_date).days
        steps = max(0, -(-days_since // self.spec.value))
        day = anchor_date + timedelta(days=steps * self.spec.value)

        # The first aligned day may be exhausted; the next one never is
        for _ in range(2):
            for candidate in self._day_candidates(day, zone):
                if candidate < anchor:
                    continue
                if candidate > after or (inclusive and candidate == after):
                    return candidate
            day = day + timedelta(days=self.spec.value)
        return None

    def _day_candidates(self, day: date, zone: tzinfo) -> List[datetime]:
        return [
            datetime(day.year, day.month, day.day, hour, minute, tzinfo=zone)
            for hour, minute in self.spec.times
        ]

    def __str__(self):
        return f"interval[{self.spec.unit}={self.spec.value}]"

    def __repr__(self):
        return f"<IntervalSpecTrigger ({self.spec!r})>"


# ============================================================================
# TRIGGER FACTORY
# ============================================================================

def build_trigger(spec: str, timezone_name: str) -> BaseTrigger:
    """
    Build the APScheduler trigger for a schedule spec.

    Multiple cron segments are combined with OrTrigger (earliest wins).
    """
    tz = resolve_timezone(timezone_name)
    parsed = parse_schedule(spec, tz)
    if isinstance(parsed, IntervalSpec):
        return IntervalSpecTrigger(parsed, tz)
    if len(parsed) == 1:
        return parsed[0]
    return OrTrigger(parsed)


def compute_next_run(spec: str, timezone_name: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Next fire time strictly from the spec; None if it never fires again."""
    tz = resolve_timezone(timezone_name)
    trigger = build_trigger(spec, timezone_name)
    return trigger.get_next_fire_time(None, now or datetime.now(tz))


__all__ = [
    "CRON_SEPARATOR",
    "INTERVAL_PREFIX",
    "UNIT_RANGES",
    "MAX_DAILY_RUNS",
    "IntervalSpec",
    "IntervalSpecTrigger",
    "resolve_timezone",
    "is_interval_spec",
    "split_cron_schedules",
    "crontab_day_of_week",
    "parse_interval_spec",
    "parse_cron_schedules",
    "parse_schedule",
    "validate_schedule",
    "build_trigger",
    "compute_next_run",
]
