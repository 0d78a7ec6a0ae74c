"""
Schedule interpretation.

Turns a job's schedule and run history into display text: a human-readable
schedule description, an estimated next run, and relative-time labels. Every
function here is total; malformed input degrades to raw text or ``None``.
"""

from __future__ import annotations

import json
import re
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Optional

from .models import AtSchedule, CronSchedule, EverySchedule, Job, OpaqueSchedule, Schedule

NO_SCHEDULE = "No schedule"
CRON_WEEKDAY_ABBREV = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]
LOCAL_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")
UTC = timezone.utc


def _ensure_aware_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count > 1 else ''}"


def format_local(value: datetime, display_tz: Optional[tzinfo] = None) -> str:
    try:
        local = value.astimezone(display_tz) if display_tz is not None else value.astimezone()
    except (OverflowError, OSError, ValueError):
        return value.isoformat()
    return local.strftime(LOCAL_TIME_FORMAT)


def describe_interval(every_ms: float) -> str:
    seconds = int(every_ms // 1000)
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        return f"Every {_plural(days, 'day')}"
    if hours > 0:
        return f"Every {_plural(hours, 'hour')}"
    if minutes > 0:
        return f"Every {_plural(minutes, 'minute')}"
    return f"Every {_plural(seconds, 'second')}"


def _weekday_label(dow: str) -> str:
    # Sunday-first numbering; anything unrecognised is shown as written.
    match = LEADING_INT_RE.match(dow)
    if match:
        index = int(match.group(1))
        if 0 <= index < len(CRON_WEEKDAY_ABBREV):
            return CRON_WEEKDAY_ABBREV[index]
    return dow


def describe_cron(expr: str, tz: Optional[str] = None) -> str:
    parts = expr.split()
    if len(parts) < 5:
        return expr

    minute, hour, dom, month, dow = parts[:5]

    if minute == "0" and hour != "*" and dom == "*" and month == "*" and dow == "*":
        result = f"Daily at {hour}:00"
    elif minute != "*" and hour != "*" and dom == "*" and month == "*" and dow != "*":
        result = f"{_weekday_label(dow)} at {hour}:{minute.rjust(2, '0')}"
    elif minute != "*" and hour != "*" and dom == "*" and month == "*" and dow == "*":
        result = f"Daily at {hour}:{minute.rjust(2, '0')}"
    else:
        result = expr

    if tz:
        result += f" ({tz.split('/')[-1]})"
    return result


def _raw_text(raw: object) -> str:
    try:
        return json.dumps(raw, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError):
        return str(raw)


def describe(schedule: Optional[Schedule], display_tz: Optional[tzinfo] = None) -> str:
    if schedule is None:
        return NO_SCHEDULE
    if isinstance(schedule, EverySchedule):
        return describe_interval(schedule.every_ms)
    if isinstance(schedule, CronSchedule):
        return describe_cron(schedule.expr, schedule.tz)
    if isinstance(schedule, AtSchedule):
        return f"Once at {format_local(schedule.at, display_tz)}"
    if isinstance(schedule, OpaqueSchedule):
        return _raw_text(schedule.raw)
    raise TypeError(f"Unhandled schedule type: {type(schedule).__name__}")


def next_run(job: Job, now: datetime) -> Optional[datetime]:
    """Estimate the next run of ``job``.

    Interval schedules are anchored on the last run and are not clamped to
    ``now``, so an overdue job yields a time in the past. Cron schedules are
    never evaluated and always yield ``None``.
    """
    schedule = job.schedule
    if not job.enabled or schedule is None:
        return None
    now = _ensure_aware_utc(now)
    if isinstance(schedule, EverySchedule):
        if job.last_run is None:
            return None
        try:
            return _ensure_aware_utc(job.last_run) + timedelta(milliseconds=schedule.every_ms)
        except OverflowError:
            return None
    if isinstance(schedule, AtSchedule):
        at = _ensure_aware_utc(schedule.at)
        return at if at > now else None
    if isinstance(schedule, (CronSchedule, OpaqueSchedule)):
        return None
    raise TypeError(f"Unhandled schedule type: {type(schedule).__name__}")


def relative_label(target: datetime, now: datetime) -> str:
    diff = _ensure_aware_utc(target) - _ensure_aware_utc(now)
    minutes = abs(diff) // timedelta(minutes=1)
    hours = minutes // 60
    days = hours // 24

    if days > 0:
        text = f"{days}d"
    elif hours > 0:
        text = f"{hours}h"
    elif minutes > 0:
        text = f"{minutes}m"
    else:
        text = "<1m"

    return f"{text} ago" if diff < timedelta(0) else f"in {text}"
