from __future__ import annotations

from typing import Optional


class CronboardError(Exception):
    """Base error for cronboard."""


class ConfigError(CronboardError):
    """Config validation error."""


class ManifestError(CronboardError):
    """A document does not have the shape of a manifest."""


class SourceError(CronboardError):
    """A manifest source could not produce a manifest."""


class StoreClientError(CronboardError):
    """The manifest store rejected a request or could not be reached."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status
