"""
Manifest sources.

The dashboard reads its manifest from an ordered chain of sources and uses the
first one that answers: the store API when one is configured, otherwise a
local manifest file, then a remote raw copy. The last good manifest is cached
locally and serves as the final fallback.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, List, Optional, Sequence, Tuple
from urllib import request as urllib_request
from urllib.parse import urlsplit

from .client import StoreClient
from .config import DEFAULT_TIMEOUT_MS, DashboardSettings
from .errors import ManifestError, SourceError, StoreClientError
from .jsonio import atomic_write_json, read_json
from .models import Manifest, parse_manifest

logger = logging.getLogger(__name__)


def _require_jobs(payload: Any, origin: str) -> Any:
    if not isinstance(payload, dict) or not isinstance(payload.get("jobs"), list):
        raise SourceError(f'{origin} has no "jobs" list.')
    return payload


def cache_busted(url: str) -> str:
    separator = "&" if urlsplit(url).query else "?"
    return f"{url}{separator}t={int(time.time() * 1000)}"


class ManifestSource:
    name = "source"

    def fetch(self) -> Any:
        """Return the raw manifest payload or raise SourceError."""
        raise NotImplementedError


class ApiSource(ManifestSource):
    name = "api"

    def __init__(self, url: str, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> None:
        self.client = StoreClient(url, timeout_ms=timeout_ms)

    def fetch(self) -> Any:
        try:
            return self.client.fetch()
        except StoreClientError as exc:
            raise SourceError(str(exc)) from exc


class FileSource(ManifestSource):
    name = "file"

    def __init__(self, path: Path) -> None:
        self.path = path

    def fetch(self) -> Any:
        if not self.path.exists():
            raise SourceError(f"Manifest file not found: {self.path}")
        try:
            payload = read_json(self.path)
        except (OSError, ValueError) as exc:
            raise SourceError(f"Failed to read manifest file {self.path}: {exc}") from exc
        return _require_jobs(payload, str(self.path))


class RemoteSource(ManifestSource):
    name = "remote"

    def __init__(self, url: str, timeout_ms: int = DEFAULT_TIMEOUT_MS) -> None:
        self.url = url
        self.timeout_ms = timeout_ms

    def fetch(self) -> Any:
        req = urllib_request.Request(url=cache_busted(self.url), method="GET")
        try:
            with urllib_request.urlopen(req, timeout=max(0.1, self.timeout_ms / 1000.0)) as response:
                body = response.read()
        except OSError as exc:
            raise SourceError(f"Remote manifest fetch failed: {exc}") from exc
        try:
            payload = json.loads(body)
        except ValueError as exc:
            raise SourceError(f"Remote manifest at {self.url} is not JSON.") from exc
        return _require_jobs(payload, self.url)


class CacheSource(ManifestSource):
    name = "cache"

    def __init__(self, path: Path) -> None:
        self.path = path

    def fetch(self) -> Any:
        if not self.path.exists():
            raise SourceError("No cached manifest.")
        try:
            return read_json(self.path)
        except (OSError, ValueError) as exc:
            raise SourceError(f"Failed to load cached manifest: {exc}") from exc

    def store(self, payload: Any) -> None:
        try:
            atomic_write_json(self.path, payload)
        except OSError as exc:
            logger.warning("Failed to cache manifest at %s: %s", self.path, exc)


class SourceChain:
    def __init__(self, sources: Sequence[ManifestSource], cache: Optional[CacheSource] = None) -> None:
        self.sources = list(sources)
        self.cache = cache

    def load(self) -> Tuple[Manifest, str]:
        failures: List[str] = []
        for source in self.sources:
            try:
                payload = source.fetch()
                manifest = parse_manifest(payload)
            except (SourceError, ManifestError) as exc:
                logger.warning("Manifest source %s failed: %s", source.name, exc)
                failures.append(source.name)
                continue
            if self.cache is not None and source is not self.cache:
                self.cache.store(payload)
            logger.info("Loaded %s job(s) from %s.", len(manifest.jobs), source.name)
            return manifest, source.name
        raise SourceError(f"No manifest source succeeded (tried: {', '.join(failures) or 'none'}).")


def build_chain(settings: DashboardSettings, manifest_file: Optional[Path] = None) -> SourceChain:
    if manifest_file is not None:
        return SourceChain([FileSource(manifest_file)])

    cache = CacheSource(settings.cache_file)

    sources: List[ManifestSource] = []
    if settings.api_url:
        sources.append(ApiSource(settings.api_url, timeout_ms=settings.timeout_ms))
    else:
        sources.append(FileSource(settings.manifest_file))
        if settings.remote_url:
            sources.append(RemoteSource(settings.remote_url, timeout_ms=settings.timeout_ms))
    sources.append(cache)
    return SourceChain(sources, cache=cache)
