"""HTTP tests for /time-entries."""

from datetime import datetime, timedelta


def _iso(value: datetime) -> str:
    return value.isoformat()


def _project_and_task(client, headers, task_rate=50):
    project = client.post("/projects", json={"name": "Website"}, headers=headers).json()
    task = client.post(
        "/tasks",
        json={"name": "Design", "projectId": project["id"], "hourlyRate": task_rate},
        headers=headers,
    ).json()
    return project, task


def test_requires_authentication(client):
    response = client.get("/time-entries")

    assert response.status_code == 401
    assert response.json()["error"]["code"] == "AUTH_TOKEN_REQUIRED"
    assert response.headers["www-authenticate"] == "Bearer"


def test_task_rate_scenario_end_to_end(client, auth_headers):
    """User rate 20, task rate 50: one hour earns 50.00."""
    project, task = _project_and_task(client, auth_headers)

    started = client.post(
        "/time-entries/start",
        json={"projectId": project["id"], "taskId": task["id"]},
        headers=auth_headers,
    )
    assert started.status_code == 201
    entry = started.json()
    assert entry["hourlyRateSnapshot"] == 50
    assert entry["isRunning"] is True

    end_time = datetime.fromisoformat(entry["startTime"]) + timedelta(seconds=3600)
    stopped = client.post(
        f"/time-entries/{entry['id']}/stop",
        json={"endTime": _iso(end_time)},
        headers=auth_headers,
    )
    assert stopped.status_code == 200
    assert stopped.json()["duration"] == 3600

    earnings = client.get("/reports/earnings", headers=auth_headers).json()
    assert f"${earnings['totalEarnings']:.2f}" == "$50.00"

    export = client.get("/reports/export", headers=auth_headers)
    assert '"50.00","50.00"' in export.text.splitlines()[1]


def test_start_without_body(client, auth_headers):
    response = client.post("/time-entries/start", headers=auth_headers)

    assert response.status_code == 201
    assert response.json()["hourlyRateSnapshot"] == 20
    assert response.json()["projectId"] is None


def test_second_start_is_rejected(client, auth_headers):
    client.post("/time-entries/start", headers=auth_headers)

    response = client.post("/time-entries/start", headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "TIMER_ALREADY_RUNNING"


def test_current_timer(client, auth_headers):
    assert client.get("/time-entries/current", headers=auth_headers).json() == {"timeEntry": None}

    entry = client.post("/time-entries/start", headers=auth_headers).json()

    current = client.get("/time-entries/current", headers=auth_headers).json()
    assert current["timeEntry"]["id"] == entry["id"]


def test_stop_without_body_and_twice(client, auth_headers):
    entry = client.post("/time-entries/start", headers=auth_headers).json()

    first = client.post(f"/time-entries/{entry['id']}/stop", headers=auth_headers)
    assert first.status_code == 200
    assert first.json()["isRunning"] is False

    second = client.post(f"/time-entries/{entry['id']}/stop", headers=auth_headers)
    assert second.status_code == 400
    assert second.json()["error"]["code"] == "TIMER_NOT_RUNNING"


def test_manual_entry_validation(client, auth_headers):
    start = datetime(2024, 5, 1, 9, 0)

    bad = client.post(
        "/time-entries",
        json={"startTime": _iso(start), "endTime": _iso(start)},
        headers=auth_headers,
    )
    assert bad.status_code == 400
    assert bad.json()["error"]["code"] == "VALIDATION_ERROR"

    good = client.post(
        "/time-entries",
        json={"startTime": _iso(start), "endTime": _iso(start + timedelta(seconds=1))},
        headers=auth_headers,
    )
    assert good.status_code == 201
    assert good.json()["duration"] == 1


def test_update_with_hours(client, auth_headers):
    start = datetime(2024, 5, 1, 9, 0)
    entry = client.post(
        "/time-entries",
        json={"startTime": _iso(start), "endTime": _iso(start + timedelta(minutes=10))},
        headers=auth_headers,
    ).json()

    response = client.put(f"/time-entries/{entry['id']}", json={"hours": 2}, headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["duration"] == 7200
    assert response.json()["endTime"].startswith("2024-05-01T11:00:00")


def test_entries_are_private(client, auth_headers, other_headers):
    entry = client.post("/time-entries/start", headers=auth_headers).json()

    for method, path in [
        ("post", f"/time-entries/{entry['id']}/stop"),
        ("put", f"/time-entries/{entry['id']}"),
        ("delete", f"/time-entries/{entry['id']}"),
    ]:
        kwargs = {"json": {}} if method == "put" else {}
        response = getattr(client, method)(path, headers=other_headers, **kwargs)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "TIME_ENTRY_NOT_FOUND"

    assert client.get("/time-entries", headers=other_headers).json()["pagination"]["total"] == 0


def test_list_filters(client, auth_headers):
    project, _ = _project_and_task(client, auth_headers)
    start = datetime(2024, 5, 1, 9, 0)
    client.post(
        "/time-entries",
        json={"startTime": _iso(start), "endTime": _iso(start + timedelta(hours=1)), "projectId": project["id"]},
        headers=auth_headers,
    )
    client.post("/time-entries/start", headers=auth_headers)

    by_project = client.get("/time-entries", params={"projectId": project["id"]}, headers=auth_headers).json()
    running = client.get("/time-entries", params={"isRunning": "true"}, headers=auth_headers).json()

    assert by_project["pagination"]["total"] == 1
    assert by_project["entries"][0]["project"]["name"] == "Website"
    assert running["pagination"]["total"] == 1
    assert running["entries"][0]["isRunning"] is True


def test_delete_publishes_id_only(client, auth_headers, notifier):
    entry = client.post("/time-entries/start", headers=auth_headers).json()

    response = client.delete(f"/time-entries/{entry['id']}", headers=auth_headers)

    assert response.status_code == 200
    room, event, payload = notifier.events[-1]
    assert event == "time-entry-deleted"
    assert payload == {"id": entry["id"]}
    assert room.startswith("user-")


def test_end_time_rejected_on_running_entry(client, auth_headers):
    entry = client.post("/time-entries/start", headers=auth_headers).json()
    end_time = datetime.fromisoformat(entry["startTime"]) + timedelta(hours=1)

    response = client.put(f"/time-entries/{entry['id']}", json={"endTime": _iso(end_time)}, headers=auth_headers)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
    current = client.get("/time-entries/current", headers=auth_headers).json()["timeEntry"]
    assert current["endTime"] is None
    assert current["duration"] is None
