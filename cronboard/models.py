"""
Manifest data model.

Manifests arrive as JSON written by whatever reports job state, so parsing is
lenient: malformed schedules become opaque, unparsable timestamps become
absent, and job entries without an id are dropped.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .errors import ManifestError

logger = logging.getLogger(__name__)
UTC = timezone.utc


class RunStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"


VALID_STATUSES = {status.value for status in RunStatus}


@dataclass(frozen=True)
class EverySchedule:
    every_ms: Union[int, float]


@dataclass(frozen=True)
class CronSchedule:
    expr: str
    tz: Optional[str] = None


@dataclass(frozen=True)
class AtSchedule:
    at: datetime


@dataclass(frozen=True)
class OpaqueSchedule:
    """A schedule of unknown kind, or a known kind missing its fields."""

    raw: Any


Schedule = Union[EverySchedule, CronSchedule, AtSchedule, OpaqueSchedule]


@dataclass(frozen=True)
class RunRecord:
    at: Optional[datetime]
    status: Optional[RunStatus]
    duration_ms: Optional[float] = None


@dataclass(frozen=True)
class Job:
    id: str
    enabled: bool
    schedule: Optional[Schedule]
    name: Optional[str] = None
    last_run: Optional[datetime] = None
    last_status: Optional[RunStatus] = None
    last_duration_ms: Optional[float] = None
    category: Optional[str] = None
    runs: Tuple[RunRecord, ...] = ()
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def display_name(self) -> str:
        return self.name or self.id


@dataclass(frozen=True)
class Manifest:
    jobs: Tuple[Job, ...]
    updated_at: Optional[datetime] = None
    raw: Any = field(default=None, compare=False, repr=False)

    def find_job(self, job_id: str) -> Optional[Job]:
        return find_job(self.jobs, job_id)


def find_job(jobs: Sequence[Job], job_id: str) -> Optional[Job]:
    # Ids are assumed unique; the first match wins.
    for job in jobs:
        if job.id == job_id:
            return job
    return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string or epoch milliseconds into an aware UTC datetime."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=UTC)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text[-1] in {"Z", "z"}:
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def format_timestamp(value: datetime) -> str:
    """Render like JavaScript's Date.toISOString(): UTC, milliseconds, Z suffix."""
    return value.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_finite_number(value: Any) -> bool:
    # Integers of any size are finite; math.isfinite would overflow on huge ones.
    if isinstance(value, float):
        return math.isfinite(value)
    return _is_number(value)


def _optional_number(value: Any) -> Optional[float]:
    return value if _is_number(value) else None


def _optional_str(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


def parse_status(value: Any) -> Optional[RunStatus]:
    if isinstance(value, str) and value in VALID_STATUSES:
        return RunStatus(value)
    return None


def parse_schedule(raw: Any) -> Optional[Schedule]:
    # Empty containers still count as a (malformed) schedule.
    if raw is None or (not raw and not isinstance(raw, (dict, list))):
        return None
    if not isinstance(raw, dict):
        return OpaqueSchedule(raw)

    kind = raw.get("kind")
    if kind == "every" and _is_finite_number(raw.get("everyMs")):
        return EverySchedule(every_ms=raw["everyMs"])
    if kind == "cron" and isinstance(raw.get("expr"), str):
        return CronSchedule(expr=raw["expr"], tz=_optional_str(raw.get("tz")))
    if kind == "at":
        at = parse_timestamp(raw.get("at"))
        if at is not None:
            return AtSchedule(at=at)
    return OpaqueSchedule(raw)


def parse_run(raw: Dict[str, Any]) -> RunRecord:
    return RunRecord(
        at=parse_timestamp(raw.get("at")),
        status=parse_status(raw.get("status")),
        duration_ms=_optional_number(raw.get("durationMs")),
    )


def parse_job(raw: Dict[str, Any]) -> Job:
    job_id = raw.get("id")
    if job_id is None or job_id == "":
        raise ManifestError("Job entry has no id.")

    runs_raw = raw.get("runs")
    runs: Tuple[RunRecord, ...] = ()
    if isinstance(runs_raw, list):
        runs = tuple(parse_run(item) for item in runs_raw if isinstance(item, dict))

    return Job(
        id=str(job_id),
        name=_optional_str(raw.get("name")),
        enabled=bool(raw.get("enabled", False)),
        schedule=parse_schedule(raw.get("schedule")),
        last_run=parse_timestamp(raw.get("lastRun")),
        last_status=parse_status(raw.get("lastStatus")),
        last_duration_ms=_optional_number(raw.get("lastDurationMs")),
        category=_optional_str(raw.get("category")),
        runs=runs,
        raw=raw,
    )


def manifest_jobs_payload(payload: Any) -> List[Any]:
    """Return the raw job list of a manifest document (or of a bare job array)."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict) and isinstance(payload.get("jobs"), list):
        return payload["jobs"]
    raise ManifestError('Manifest must be an object with a "jobs" list, or a list of jobs.')


def parse_manifest(payload: Any) -> Manifest:
    jobs: List[Job] = []
    for idx, item in enumerate(manifest_jobs_payload(payload)):
        if not isinstance(item, dict):
            logger.warning("Skipping jobs[%s]: not an object.", idx)
            continue
        try:
            jobs.append(parse_job(item))
        except ManifestError as exc:
            logger.warning("Skipping jobs[%s]: %s", idx, exc)

    updated_at = parse_timestamp(payload.get("updatedAt")) if isinstance(payload, dict) else None
    return Manifest(jobs=tuple(jobs), updated_at=updated_at, raw=payload)
