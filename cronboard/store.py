"""
Manifest store service.

A single-slot, last-write-wins register served over HTTP. Readers GET the
latest manifest; writers POST a replacement behind a shared-secret header.
The stored document is returned exactly as written apart from the
``updatedAt`` stamp added on write.
"""

from __future__ import annotations

import hmac
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from flask import Flask, Response, request

from . import __version__
from .config import StoreSettings
from .jsonio import atomic_write_json, read_json
from .models import format_timestamp

logger = logging.getLogger(__name__)
UTC = timezone.utc

STATE_KEY = "jobs"
SERVICE_NAME = "cronboard-store"
AUTH_HEADER = "X-Auth-Token"
CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": f"Content-Type, {AUTH_HEADER}",
}
ENDPOINTS = {
    "GET /state": "Get current cron job state",
    "POST /state": f"Update cron job state (requires {AUTH_HEADER})",
}


class StateBackend:
    """Holds at most one JSON document per key; writes replace atomically."""

    def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    def put(self, key: str, value: Any) -> None:
        raise NotImplementedError


class MemoryStateBackend(StateBackend):
    """Process-local storage; contents are lost on restart."""

    def __init__(self) -> None:
        self._values: Dict[str, Any] = {}

    def get(self, key: str) -> Optional[Any]:
        return self._values.get(key)

    def put(self, key: str, value: Any) -> None:
        self._values[key] = value


class FileStateBackend(StateBackend):
    """One JSON file per key beside ``state_file``, replaced via os.replace."""

    def __init__(self, state_file: Path) -> None:
        self.state_file = state_file

    def _path(self, key: str) -> Path:
        if key == STATE_KEY:
            return self.state_file
        return self.state_file.with_name(f"{self.state_file.stem}.{key}{self.state_file.suffix}")

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        return read_json(path)

    def put(self, key: str, value: Any) -> None:
        atomic_write_json(self._path(key), value, indent=None)


def build_backend(settings: StoreSettings) -> StateBackend:
    if settings.backend == "file":
        return FileStateBackend(settings.state_file)
    return MemoryStateBackend()


def json_response(data: Any, status: int = 200) -> Response:
    body = json.dumps(data, indent=2, ensure_ascii=False, allow_nan=False)
    return Response(body, status=status, mimetype="application/json")


def _reject_constant(token: str) -> Any:
    # NaN and Infinity are accepted by the json module but are not JSON.
    raise ValueError(f"Invalid JSON constant: {token}")


def _token_matches(provided: Optional[str], expected: str) -> bool:
    if provided is None:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def job_count(document: Dict[str, Any]) -> int:
    jobs = document.get("jobs")
    return len(jobs) if isinstance(jobs, list) else 0


def create_app(settings: StoreSettings, backend: Optional[StateBackend] = None) -> Flask:
    app = Flask(__name__)
    state = backend if backend is not None else build_backend(settings)
    app.extensions["cronboard_state"] = state

    if settings.uses_default_token:
        logger.warning("Store is using the default auth token; set store.auth_token or CRONBOARD_AUTH_TOKEN.")

    @app.before_request
    def handle_preflight() -> Optional[Response]:
        if request.method == "OPTIONS":
            return Response(status=204)
        return None

    @app.after_request
    def add_cors_headers(response: Response) -> Response:
        response.headers.update(CORS_HEADERS)
        return response

    @app.route("/state", methods=["GET"])
    def read_state() -> Response:
        document = state.get(STATE_KEY)
        if document is None:
            return json_response({"jobs": [], "error": "No state available"}, 404)
        return json_response(document)

    @app.route("/state", methods=["POST"])
    def write_state() -> Response:
        if not _token_matches(request.headers.get(AUTH_HEADER), settings.auth_token):
            logger.warning("Rejected state update from %s: bad or missing token.", request.remote_addr)
            return json_response({"error": "Unauthorized"}, 401)

        try:
            document = json.loads(request.get_data(), parse_constant=_reject_constant)
        except ValueError:
            return json_response({"error": "Invalid JSON"}, 400)
        if not isinstance(document, dict):
            return json_response({"error": "Invalid JSON"}, 400)

        document["updatedAt"] = format_timestamp(datetime.now(tz=UTC))
        state.put(STATE_KEY, document)
        count = job_count(document)
        logger.info("Stored manifest with %s job(s).", count)
        return json_response({"success": True, "jobCount": count})

    @app.route("/", methods=["GET"])
    def service_info() -> Response:
        return json_response(
            {
                "service": SERVICE_NAME,
                "version": __version__,
                "endpoints": ENDPOINTS,
                "dashboard": settings.dashboard_url,
            }
        )

    @app.errorhandler(404)
    @app.errorhandler(405)
    def not_found(_: Exception) -> Response:
        return json_response({"error": "Not found"}, 404)

    @app.errorhandler(500)
    def internal_error(exc: Exception) -> Response:
        logger.error("Store request failed: %s", exc)
        return json_response({"error": "Internal error"}, 500)

    return app


def serve(settings: StoreSettings, host: Optional[str] = None, port: Optional[int] = None) -> None:
    app = create_app(settings)
    bind_host = host or settings.host
    bind_port = port or settings.port
    logger.info("Manifest store listening on http://%s:%s (backend=%s)", bind_host, bind_port, settings.backend)
    app.run(host=bind_host, port=bind_port)
