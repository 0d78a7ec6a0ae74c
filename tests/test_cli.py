from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from cronboard import cli


def _base_manifest() -> dict:
    return {
        "jobs": [
            {
                "id": "backup",
                "name": "Backup",
                "enabled": True,
                "schedule": {"kind": "every", "everyMs": 60000},
                "lastStatus": "success",
            },
            {
                "id": "report",
                "enabled": False,
                "schedule": {"kind": "cron", "expr": "0 9 * * *"},
                "lastStatus": "failure",
            },
        ]
    }


def _write_manifest(tmp_path: Path, payload: object) -> Path:
    path = tmp_path / "live-manifest.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def _write_config(tmp_path: Path, config: dict) -> Path:
    path = tmp_path / "cronboard.yaml"
    path.write_text(yaml.safe_dump(config, sort_keys=False), encoding="utf-8")
    return path


def _config_args(tmp_path: Path) -> list:
    config_path = _write_config(
        tmp_path,
        {"dashboard": {"timezone": "UTC", "cache_file": "cache/manifest.json"}},
    )
    return ["--config", str(config_path)]


def test_validate_reports_summary(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    manifest_path = _write_manifest(tmp_path, _base_manifest())
    assert cli.main(_config_args(tmp_path) + ["validate", "--manifest", str(manifest_path)]) == 0
    out = capsys.readouterr().out
    assert "Manifest valid:" in out
    assert "Total jobs: 2" in out
    assert "Enabled jobs: 1" in out
    assert "- backup: Every 1 minute" in out
    assert "- report: Daily at 9:00" in out


def test_validate_reports_problems(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    manifest_path = _write_manifest(tmp_path, {"jobs": [{"id": "x", "schedule": {"kind": "cron", "expr": "bad"}}]})
    assert cli.main(_config_args(tmp_path) + ["validate", "--manifest", str(manifest_path)]) == 1
    out = capsys.readouterr().out
    assert "Manifest has 1 problem(s)" in out
    assert 'jobs[0].schedule.expr "bad" must have 5 fields.' in out


def test_validate_missing_file_fails(tmp_path: Path) -> None:
    assert cli.main(_config_args(tmp_path) + ["validate", "--manifest", str(tmp_path / "absent.json")]) == 1


def test_config_option_accepted_after_subcommand(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    manifest_path = _write_manifest(tmp_path, _base_manifest())
    args = ["validate", "--manifest", str(manifest_path)] + _config_args(tmp_path)
    assert cli.main(args) == 0
    assert "Total jobs: 2" in capsys.readouterr().out


def test_show_renders_filtered_board(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    manifest_path = _write_manifest(tmp_path, _base_manifest())
    args = _config_args(tmp_path) + ["show", "--filter", "disabled", "--manifest", str(manifest_path)]
    assert cli.main(args) == 0
    out = capsys.readouterr().out
    assert "Total: 2  Active: 1  Failed: 1  Disabled: 1" in out
    assert "[disabled] report" in out
    assert "Backup" not in out
    assert "from file" in out


def test_show_without_any_manifest_fails(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(_config_args(tmp_path) + ["show"]) == 1
    assert "No jobs loaded" in capsys.readouterr().out


def test_show_uses_configured_manifest_and_fills_cache(tmp_path: Path) -> None:
    _write_manifest(tmp_path, _base_manifest())
    assert cli.main(_config_args(tmp_path) + ["show"]) == 0
    cached = json.loads((tmp_path / "cache" / "manifest.json").read_text(encoding="utf-8"))
    assert cached == _base_manifest()


def test_job_detail(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    manifest_path = _write_manifest(tmp_path, _base_manifest())
    assert cli.main(_config_args(tmp_path) + ["job", "backup", "--manifest", str(manifest_path)]) == 0
    out = capsys.readouterr().out
    assert out.splitlines()[0] == "Backup"
    assert "Schedule       Every 1 minute" in out


def test_unknown_job_fails(tmp_path: Path) -> None:
    manifest_path = _write_manifest(tmp_path, _base_manifest())
    assert cli.main(_config_args(tmp_path) + ["job", "nope", "--manifest", str(manifest_path)]) == 1


def test_watch_stops_after_iterations(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    _write_manifest(tmp_path, _base_manifest())
    assert cli.main(_config_args(tmp_path) + ["watch", "--interval", "1", "--iterations", "1"]) == 0
    assert "[success] Backup" in capsys.readouterr().out


def test_watch_rejects_bad_interval(tmp_path: Path) -> None:
    assert cli.main(_config_args(tmp_path) + ["watch", "--interval", "0"]) == 1


def test_push_sends_manifest_to_store(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys) -> None:
    manifest_path = _write_manifest(tmp_path, _base_manifest())
    pushed = {}

    class _Client:
        def __init__(self, endpoint, auth_token=None, timeout_ms=0):
            self.url = endpoint
            pushed["token"] = auth_token

        def push(self, manifest):
            pushed["manifest"] = manifest
            return {"success": True, "jobCount": len(manifest["jobs"])}

    monkeypatch.setattr(cli, "StoreClient", _Client)
    monkeypatch.setenv("CRONBOARD_AUTH_TOKEN", "env-token")

    args = _config_args(tmp_path) + ["push", "--manifest", str(manifest_path), "--endpoint", "http://store:1/state"]
    assert cli.main(args) == 0
    assert pushed == {"token": "env-token", "manifest": _base_manifest()}
    assert "Stored manifest at http://store:1/state: 2 job(s)." in capsys.readouterr().out


def test_push_rejects_bare_job_list(tmp_path: Path) -> None:
    manifest_path = _write_manifest(tmp_path, _base_manifest()["jobs"])
    assert cli.main(_config_args(tmp_path) + ["push", "--manifest", str(manifest_path)]) == 1


def test_invalid_config_fails(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, {"store": {"backend": "redis"}})
    assert cli.main(["--config", str(config_path), "show"]) == 1
