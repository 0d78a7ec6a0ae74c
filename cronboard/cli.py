"""
cronboard command line.

Runs the manifest store, pushes manifests to it, and renders the job board.
"""

from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path
from typing import Any, List, Optional

from .client import StoreClient
from .config import DEFAULT_CONFIG, Settings, load_settings
from .dashboard import FILTERS, Dashboard, render_detail
from .errors import ConfigError, CronboardError
from .jsonio import read_json
from .log import LOGGER_NAME, setup_logging
from .models import parse_manifest
from .schedule import describe
from .sources import build_chain
from .store import serve
from .validate import validate_manifest

logger = logging.getLogger(LOGGER_NAME)


def _read_manifest_file(manifest_path: Path) -> Any:
    if not manifest_path.exists():
        raise CronboardError(f"Manifest file not found: {manifest_path}")
    try:
        return read_json(manifest_path)
    except (OSError, ValueError) as exc:
        raise CronboardError(f"Failed to read JSON in {manifest_path}: {exc}") from exc


def store_endpoint(settings: Settings) -> str:
    if settings.dashboard.api_url:
        return settings.dashboard.api_url
    return f"http://{settings.store.host}:{settings.store.port}/state"


def command_serve(settings: Settings, host: Optional[str], port: Optional[int]) -> int:
    serve(settings.store, host=host, port=port)
    return 0


def command_push(settings: Settings, manifest_path: Path, endpoint: Optional[str]) -> int:
    payload = _read_manifest_file(manifest_path)
    if not isinstance(payload, dict):
        raise CronboardError("Manifest to push must be a JSON object.")
    client = StoreClient(
        endpoint or store_endpoint(settings),
        auth_token=settings.store.auth_token,
        timeout_ms=settings.dashboard.timeout_ms,
    )
    result = client.push(payload)
    print(f"Stored manifest at {client.url}: {result.get('jobCount', 0)} job(s).")
    return 0


def _load_dashboard(settings: Settings, manifest_path: Optional[Path]) -> Dashboard:
    dashboard = Dashboard(display_tz=settings.dashboard.timezone)
    dashboard.refresh(build_chain(settings.dashboard, manifest_file=manifest_path))
    return dashboard


def command_show(settings: Settings, selected: str, manifest_path: Optional[Path]) -> int:
    dashboard = _load_dashboard(settings, manifest_path)
    print(dashboard.render(selected))
    return 0 if dashboard.manifest is not None else 1


def command_watch(settings: Settings, selected: str, interval: int, iterations: int) -> int:
    dashboard = Dashboard(display_tz=settings.dashboard.timezone)
    chain = build_chain(settings.dashboard)
    logger.info("Polling for manifest updates every %ss.", interval)

    cycle = 0
    try:
        while True:
            cycle += 1
            dashboard.refresh(chain)
            print(dashboard.render(selected), flush=True)
            if iterations and cycle >= iterations:
                break
            time.sleep(interval)
    except KeyboardInterrupt:
        logger.info("Stopped watching.")
    return 0


def command_job(settings: Settings, job_id: str, manifest_path: Optional[Path]) -> int:
    dashboard = _load_dashboard(settings, manifest_path)
    if dashboard.manifest is None:
        raise CronboardError("No manifest could be loaded.")
    job = dashboard.find_job(job_id)
    if job is None:
        raise CronboardError(f'Unknown job "{job_id}".')
    print(render_detail(job, display_tz=settings.dashboard.timezone))
    return 0


def command_validate(settings: Settings, manifest_path: Path) -> int:
    payload = _read_manifest_file(manifest_path)
    problems = validate_manifest(payload)
    if problems:
        print(f"Manifest has {len(problems)} problem(s): {manifest_path}")
        for problem in problems:
            print(f"- {problem}")
        return 1

    manifest = parse_manifest(payload)
    enabled_count = sum(1 for job in manifest.jobs if job.enabled)
    print(f"Manifest valid: {manifest_path}")
    print(f"Total jobs: {len(manifest.jobs)}")
    print(f"Enabled jobs: {enabled_count}")
    for job in manifest.jobs:
        print(f"- {job.id}: {describe(job.schedule, settings.dashboard.timezone)}")
    return 0


def _add_config(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", default=argparse.SUPPRESS, help=f"Path to config (default: {DEFAULT_CONFIG})")


def _add_filter(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--filter", choices=FILTERS, default="all", help="Which jobs to show (default: all)")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="cronboard job status board and manifest store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG,
        help=f"Path to cronboard YAML config (default: {DEFAULT_CONFIG})",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the manifest store")
    _add_config(serve_parser)
    serve_parser.add_argument("--host", help="Bind address (default: store.host)")
    serve_parser.add_argument("--port", type=int, help="Bind port (default: store.port)")

    push_parser = subparsers.add_parser("push", help="Upload a manifest file to the store")
    _add_config(push_parser)
    push_parser.add_argument("--manifest", required=True, help="Manifest JSON file to upload")
    push_parser.add_argument("--endpoint", help="Store URL (default: dashboard.api_url or store host/port)")

    show_parser = subparsers.add_parser("show", help="Render the job board once")
    _add_config(show_parser)
    _add_filter(show_parser)
    show_parser.add_argument("--manifest", help="Read this manifest file instead of the configured sources")

    watch_parser = subparsers.add_parser("watch", help="Poll for manifest updates and re-render")
    _add_config(watch_parser)
    _add_filter(watch_parser)
    watch_parser.add_argument("--interval", type=int, help="Polling interval in seconds (default: refresh_seconds)")
    watch_parser.add_argument("--iterations", type=int, default=0, help="Stop after N refreshes (default: forever)")

    job_parser = subparsers.add_parser("job", help="Show details for one job")
    _add_config(job_parser)
    job_parser.add_argument("job_id", help="Job id")
    job_parser.add_argument("--manifest", help="Read this manifest file instead of the configured sources")

    validate_parser = subparsers.add_parser("validate", help="Check a manifest file for problems")
    _add_config(validate_parser)
    validate_parser.add_argument("--manifest", required=True, help="Manifest JSON file to check")

    return parser.parse_args(argv)


def _optional_path(value: Optional[str]) -> Optional[Path]:
    return Path(value).resolve() if value else None


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    config_path = Path(args.config or DEFAULT_CONFIG).resolve()

    try:
        settings = load_settings(config_path)
    except ConfigError as exc:
        setup_logging().error(str(exc))
        return 1
    setup_logging(settings.log_file)

    try:
        if args.command == "serve":
            return command_serve(settings, host=args.host, port=args.port)
        if args.command == "push":
            return command_push(settings, Path(args.manifest).resolve(), endpoint=args.endpoint)
        if args.command == "show":
            return command_show(settings, args.filter, _optional_path(args.manifest))
        if args.command == "watch":
            interval = args.interval if args.interval is not None else settings.dashboard.refresh_seconds
            if interval <= 0:
                raise CronboardError("--interval must be >= 1")
            if args.iterations < 0:
                raise CronboardError("--iterations must be >= 0")
            return command_watch(settings, args.filter, interval=interval, iterations=args.iterations)
        if args.command == "job":
            return command_job(settings, args.job_id, _optional_path(args.manifest))
        if args.command == "validate":
            return command_validate(settings, Path(args.manifest).resolve())
        raise CronboardError(f"Unsupported command: {args.command}")
    except CronboardError as exc:
        logger.error(str(exc))
        return 1
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected error: %s", exc)
        return 1

