"""
Plain-text dashboard rendering.

Rendering is a pure function of the job list, the selected filter and the
current time. ``Dashboard`` holds the last successfully loaded manifest and
keeps showing it when a refresh fails.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone, tzinfo
from typing import Dict, List, Optional, Sequence

from .errors import SourceError
from .models import Job, Manifest, RunRecord, RunStatus
from .schedule import describe, format_local, next_run, relative_label
from .sources import SourceChain

logger = logging.getLogger(__name__)
UTC = timezone.utc

FILTERS = ("all", "active", "failed", "disabled")
RECENT_RUNS = 10
RULE = "=" * 80
DETAIL_LABEL_WIDTH = 14
RUN_MARKERS = {RunStatus.SUCCESS: "✓", RunStatus.FAILURE: "✗"}


def is_active(job: Job) -> bool:
    return job.enabled and job.last_status is RunStatus.SUCCESS


def is_failed(job: Job) -> bool:
    return job.last_status is RunStatus.FAILURE


def filter_jobs(jobs: Sequence[Job], selected: str = "all") -> List[Job]:
    if selected == "active":
        return [job for job in jobs if is_active(job)]
    if selected == "failed":
        return [job for job in jobs if is_failed(job)]
    if selected == "disabled":
        return [job for job in jobs if not job.enabled]
    return list(jobs)


def job_stats(jobs: Sequence[Job]) -> Dict[str, int]:
    return {
        "total": len(jobs),
        "active": sum(1 for job in jobs if is_active(job)),
        "failed": sum(1 for job in jobs if is_failed(job)),
        "disabled": sum(1 for job in jobs if not job.enabled),
    }


def job_status(job: Job) -> str:
    if not job.enabled:
        return "disabled"
    if job.last_status is None:
        return "pending"
    return job.last_status.value


def format_ms(value: float) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return f"{value}ms"


def run_markers(runs: Sequence[RunRecord]) -> str:
    return "".join(RUN_MARKERS.get(run.status, "·") for run in runs[:RECENT_RUNS])


def render_stats(jobs: Sequence[Job]) -> str:
    stats = job_stats(jobs)
    return (
        f"Total: {stats['total']}  Active: {stats['active']}  "
        f"Failed: {stats['failed']}  Disabled: {stats['disabled']}"
    )


def render_card(job: Job, now: datetime, display_tz: Optional[tzinfo] = None) -> str:
    lines = [
        f"[{job_status(job)}] {job.display_name}",
        f"  id: {job.id}",
        f"  {describe(job.schedule, display_tz)}",
    ]
    markers = run_markers(job.runs)
    if markers:
        lines.append(f"  runs: {markers}")

    meta = [f"Last: {relative_label(job.last_run, now) if job.last_run else 'Never'}"]
    upcoming = next_run(job, now)
    if upcoming is not None and job.enabled:
        meta.append(f"Next: {relative_label(upcoming, now)}")
    lines.append("  " + " | ".join(meta))
    return "\n".join(lines)


def render_board(
    jobs: Sequence[Job],
    selected: str,
    now: datetime,
    display_tz: Optional[tzinfo] = None,
) -> str:
    lines = [RULE, render_stats(jobs), RULE]
    visible = filter_jobs(jobs, selected)

    if not visible:
        if not jobs:
            lines.extend(["No jobs loaded", "Load a manifest file or connect to an API"])
        else:
            lines.extend(["No matching jobs", "Try a different filter"])
        return "\n".join(lines)

    for idx, job in enumerate(visible):
        if idx:
            lines.append("")
        lines.append(render_card(job, now, display_tz))
    return "\n".join(lines)


def _detail_row(label: str, value: str) -> str:
    return f"{label.ljust(DETAIL_LABEL_WIDTH)} {value}"


def render_detail(job: Job, display_tz: Optional[tzinfo] = None) -> str:
    lines = [
        job.display_name,
        RULE,
        _detail_row("ID", job.id),
        _detail_row("Status", job_status(job)),
        _detail_row("Schedule", describe(job.schedule, display_tz)),
        _detail_row("Last Run", format_local(job.last_run, display_tz) if job.last_run else "Never"),
    ]
    if job.last_duration_ms:
        lines.append(_detail_row("Last Duration", format_ms(job.last_duration_ms)))
    if job.category:
        lines.append(_detail_row("Category", job.category))

    recent = job.runs[:RECENT_RUNS]
    if recent:
        lines.extend(["", "Recent Runs"])
        for run in recent:
            when = format_local(run.at, display_tz) if run.at else "unknown time"
            if run.duration_ms:
                outcome = format_ms(run.duration_ms)
            else:
                outcome = run.status.value if run.status else "unknown"
            lines.append(f"  {RUN_MARKERS.get(run.status, '·')} {when}  {outcome}")
    return "\n".join(lines)


class Dashboard:
    """The currently displayed manifest; refresh failures keep the previous one."""

    def __init__(self, display_tz: Optional[tzinfo] = None) -> None:
        self.display_tz = display_tz
        self.manifest: Optional[Manifest] = None
        self.source: Optional[str] = None
        self.loaded_at: Optional[datetime] = None

    @property
    def jobs(self) -> Sequence[Job]:
        return self.manifest.jobs if self.manifest is not None else ()

    def load(self, manifest: Manifest, source: Optional[str] = None, at: Optional[datetime] = None) -> None:
        self.manifest = manifest
        self.source = source
        self.loaded_at = at or datetime.now(tz=UTC)

    def refresh(self, chain: SourceChain) -> bool:
        try:
            manifest, source = chain.load()
        except SourceError as exc:
            logger.warning("Keeping previously loaded manifest: %s", exc)
            return False
        self.load(manifest, source)
        return True

    def find_job(self, job_id: str) -> Optional[Job]:
        if self.manifest is None:
            return None
        return self.manifest.find_job(job_id)

    def render(self, selected: str = "all", now: Optional[datetime] = None) -> str:
        now = now or datetime.now(tz=UTC)
        board = render_board(self.jobs, selected, now, self.display_tz)
        if self.loaded_at is None:
            return board
        updated = f"Updated {format_local(self.loaded_at, self.display_tz)}"
        if self.source:
            updated += f" from {self.source}"
        return f"{board}\n{RULE}\n{updated}"
