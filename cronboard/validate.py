"""
Manifest validation.

The interpreter renders anything it is given; this module reports what a
manifest author probably got wrong. Problems are returned as messages naming
the offending field, in document order.
"""

from __future__ import annotations

from typing import Any, List, Set
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import croniter

from .errors import ManifestError
from .models import VALID_STATUSES, manifest_jobs_payload, parse_timestamp

VALID_KINDS = {"every", "cron", "at"}
CRON_FIELD_COUNT = 5


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _validate_timezone(name: Any, field_path: str) -> List[str]:
    if not isinstance(name, str) or not name:
        return [f"{field_path} must be a non-empty string."]
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return [f'{field_path} "{name}" is not a known IANA timezone.']
    return []


def validate_schedule(raw: Any, field_path: str) -> List[str]:
    if raw is None:
        return []
    if not isinstance(raw, dict):
        return [f"{field_path} must be an object."]

    kind = raw.get("kind")
    if not isinstance(kind, str) or kind not in VALID_KINDS:
        return [f'{field_path}.kind must be one of {sorted(VALID_KINDS)}, got {kind!r}.']

    if kind == "every":
        if not _is_positive_int(raw.get("everyMs")):
            return [f"{field_path}.everyMs must be a positive integer."]
        return []

    if kind == "at":
        if parse_timestamp(raw.get("at")) is None:
            return [f"{field_path}.at must be an ISO-8601 timestamp or epoch milliseconds."]
        return []

    problems: List[str] = []
    expr = raw.get("expr")
    if not isinstance(expr, str) or not expr.strip():
        problems.append(f"{field_path}.expr must be a non-empty string.")
    elif len(expr.split()) != CRON_FIELD_COUNT:
        problems.append(f'{field_path}.expr "{expr}" must have {CRON_FIELD_COUNT} fields.')
    elif not croniter.is_valid(expr):
        problems.append(f'{field_path}.expr "{expr}" is not a valid cron expression.')
    if raw.get("tz") is not None:
        problems.extend(_validate_timezone(raw["tz"], f"{field_path}.tz"))
    return problems


def _validate_status(value: Any, field_path: str) -> List[str]:
    if value is None or (isinstance(value, str) and value in VALID_STATUSES):
        return []
    return [f"{field_path} must be one of {sorted(VALID_STATUSES)}, got {value!r}."]


def _validate_timestamp(value: Any, field_path: str) -> List[str]:
    if value is None or parse_timestamp(value) is not None:
        return []
    return [f"{field_path} is not a valid timestamp."]


def _validate_runs(raw: Any, field_path: str) -> List[str]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        return [f"{field_path} must be a list."]
    problems: List[str] = []
    for idx, run in enumerate(raw):
        run_path = f"{field_path}[{idx}]"
        if not isinstance(run, dict):
            problems.append(f"{run_path} must be an object.")
            continue
        if run.get("at") is None:
            problems.append(f"{run_path}.at is missing.")
        problems.extend(_validate_timestamp(run.get("at"), f"{run_path}.at"))
        if run.get("status") is None:
            problems.append(f"{run_path}.status is missing.")
        problems.extend(_validate_status(run.get("status"), f"{run_path}.status"))
    return problems


def validate_job(raw: Any, field_path: str, seen_ids: Set[str]) -> List[str]:
    if not isinstance(raw, dict):
        return [f"{field_path} must be an object."]

    problems: List[str] = []
    job_id = raw.get("id")
    if job_id is None or job_id == "":
        problems.append(f"{field_path}.id is missing.")
    else:
        key = str(job_id)
        if key in seen_ids:
            problems.append(f'{field_path}.id "{key}" duplicates an earlier job; lookups use the first.')
        seen_ids.add(key)

    if "enabled" in raw and not isinstance(raw["enabled"], bool):
        problems.append(f"{field_path}.enabled must be true or false.")
    problems.extend(validate_schedule(raw.get("schedule"), f"{field_path}.schedule"))
    problems.extend(_validate_timestamp(raw.get("lastRun"), f"{field_path}.lastRun"))
    problems.extend(_validate_status(raw.get("lastStatus"), f"{field_path}.lastStatus"))
    problems.extend(_validate_runs(raw.get("runs"), f"{field_path}.runs"))
    return problems


def validate_manifest(payload: Any) -> List[str]:
    try:
        jobs = manifest_jobs_payload(payload)
    except ManifestError as exc:
        return [str(exc)]

    problems: List[str] = []
    seen_ids: Set[str] = set()
    for idx, raw in enumerate(jobs):
        problems.extend(validate_job(raw, f"jobs[{idx}]", seen_ids))
    return problems
