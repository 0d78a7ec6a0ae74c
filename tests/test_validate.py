from __future__ import annotations

from cronboard.validate import validate_manifest, validate_schedule


def _base_manifest() -> dict:
    return {
        "jobs": [
            {
                "id": "backup",
                "enabled": True,
                "schedule": {"kind": "every", "everyMs": 60000},
                "lastRun": "2024-06-01T11:30:00Z",
                "lastStatus": "success",
                "runs": [{"at": "2024-06-01T11:30:00Z", "status": "success", "durationMs": 12}],
            },
            {
                "id": "report",
                "enabled": False,
                "schedule": {"kind": "cron", "expr": "30 14 * * 1", "tz": "America/New_York"},
            },
            {"id": "launch", "enabled": True, "schedule": {"kind": "at", "at": "2030-01-01T00:00:00Z"}},
            {"id": "manual", "enabled": True},
        ]
    }


def test_valid_manifest_has_no_problems() -> None:
    assert validate_manifest(_base_manifest()) == []


def test_bare_job_list_is_accepted() -> None:
    assert validate_manifest(_base_manifest()["jobs"]) == []


def test_manifest_without_jobs_list() -> None:
    problems = validate_manifest({"jobs": "backup"})
    assert len(problems) == 1
    assert '"jobs" list' in problems[0]


def test_schedule_problems_are_reported() -> None:
    assert validate_schedule({"kind": "hourly"}, "s") == ["s.kind must be one of ['at', 'cron', 'every'], got 'hourly'."]
    assert validate_schedule({"kind": "every", "everyMs": 0}, "s") == ["s.everyMs must be a positive integer."]
    assert validate_schedule({"kind": "every", "everyMs": True}, "s") == ["s.everyMs must be a positive integer."]
    assert validate_schedule({"kind": "at", "at": "later"}, "s") == [
        "s.at must be an ISO-8601 timestamp or epoch milliseconds."
    ]
    assert validate_schedule({"kind": "cron"}, "s") == ["s.expr must be a non-empty string."]
    assert validate_schedule({"kind": "cron", "expr": "0 9 * *"}, "s") == ['s.expr "0 9 * *" must have 5 fields.']
    assert validate_schedule({"kind": "cron", "expr": "99 9 * * *"}, "s") == [
        's.expr "99 9 * * *" is not a valid cron expression.'
    ]
    assert validate_schedule({"kind": "cron", "expr": "0 9 * * *", "tz": "Nowhere/City"}, "s") == [
        's.tz "Nowhere/City" is not a known IANA timezone.'
    ]
    assert validate_schedule("daily", "s") == ["s must be an object."]
    assert validate_schedule(None, "s") == []


def test_job_problems_are_reported_in_order() -> None:
    manifest = {
        "jobs": [
            {"id": "a", "enabled": "yes", "lastStatus": "running", "lastRun": "nope"},
            {"id": "a"},
            {"name": "anonymous"},
            "junk",
            {"id": "b", "runs": [{"status": "success"}, "x"]},
        ]
    }
    assert validate_manifest(manifest) == [
        "jobs[0].enabled must be true or false.",
        "jobs[0].lastRun is not a valid timestamp.",
        "jobs[0].lastStatus must be one of ['failure', 'success'], got 'running'.",
        'jobs[1].id "a" duplicates an earlier job; lookups use the first.',
        "jobs[2].id is missing.",
        "jobs[3] must be an object.",
        "jobs[4].runs[0].at is missing.",
        "jobs[4].runs[1] must be an object.",
    ]


def test_unhashable_status_does_not_crash() -> None:
    problems = validate_manifest({"jobs": [{"id": "a", "lastStatus": ["success"]}]})
    assert problems == ["jobs[0].lastStatus must be one of ['failure', 'success'], got ['success']."]
