"""
Client for the manifest store, used by whatever reports job state.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional
from urllib import error as urllib_error
from urllib import request as urllib_request

from .config import DEFAULT_TIMEOUT_MS
from .errors import StoreClientError
from .store import AUTH_HEADER

logger = logging.getLogger(__name__)


def _non_empty(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = value.strip()
    return text if text else None


def state_url(endpoint: str) -> str:
    """Accept either the store root or its /state URL."""
    base = endpoint.rstrip("/")
    if base.endswith("/state"):
        return base
    return base + "/state"


def _error_field(body: bytes) -> Optional[str]:
    try:
        payload = json.loads(body)
    except ValueError:
        return None
    if isinstance(payload, dict) and isinstance(payload.get("error"), str):
        return payload["error"]
    return None


class StoreClient:
    def __init__(
        self,
        endpoint: str,
        auth_token: Optional[str] = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
    ) -> None:
        self.url = state_url(endpoint)
        self.auth_token = _non_empty(auth_token)
        self.timeout_ms = timeout_ms if timeout_ms > 0 else DEFAULT_TIMEOUT_MS

    def _send(self, req: urllib_request.Request) -> Any:
        try:
            with urllib_request.urlopen(req, timeout=max(0.1, self.timeout_ms / 1000.0)) as response:
                body = response.read()
        except urllib_error.HTTPError as exc:
            detail = _error_field(exc.read()) or exc.reason
            raise StoreClientError(f"Store returned HTTP {exc.code}: {detail}", status=exc.code) from exc
        except urllib_error.URLError as exc:
            raise StoreClientError(f"Store unreachable at {self.url}: {exc.reason}") from exc
        except OSError as exc:
            raise StoreClientError(f"Store request to {self.url} failed: {exc}") from exc

        try:
            return json.loads(body)
        except ValueError as exc:
            raise StoreClientError(f"Store returned a non-JSON body from {self.url}.") from exc

    def fetch(self) -> Any:
        req = urllib_request.Request(url=self.url, method="GET", headers={"Accept": "application/json"})
        return self._send(req)

    def push(self, manifest: Dict[str, Any]) -> Dict[str, Any]:
        if not self.auth_token:
            raise StoreClientError("No auth token configured for pushing to the store.")
        data = json.dumps(manifest, ensure_ascii=False).encode("utf-8")
        headers = {"Content-Type": "application/json", AUTH_HEADER: self.auth_token}
        req = urllib_request.Request(url=self.url, data=data, method="POST", headers=headers)
        result = self._send(req)
        if not isinstance(result, dict):
            raise StoreClientError(f"Store returned an unexpected response from {self.url}.")
        logger.info("Pushed manifest to %s (jobCount=%s).", self.url, result.get("jobCount"))
        return result
