"""Tests for the tasks HTTP interface."""

import pytest
from fastapi.testclient import TestClient

from src.core.errors import PersistenceError


@pytest.mark.unit
def test_health_endpoint_returns_healthy(client: TestClient) -> None:
    """Test that health endpoint returns healthy status."""
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.unit
def test_owner_header_is_required(client: TestClient, patched_db) -> None:
    """Test that requests without an owner are rejected."""
    response = client.get("/tasks")

    assert response.status_code == 422


@pytest.mark.unit
def test_create_and_list_tasks(client: TestClient, patched_db, owner_headers, sample_task_data) -> None:
    """Test creating a plain task and listing it back."""
    response = client.post("/tasks", json=sample_task_data, headers=owner_headers)

    assert response.status_code == 201
    created = response.json()
    assert created["title"] == "Dentist"
    assert created["status"] == "todo"

    listed = client.get("/tasks", headers=owner_headers).json()
    assert [task["id"] for task in listed] == [created["id"]]


@pytest.mark.unit
def test_validation_error_maps_to_422(client: TestClient, patched_db, owner_headers) -> None:
    """Test that invalid task fields produce an ErrorResponse body."""
    response = client.post("/tasks", json={"title": "", "due_date": "2026-01-07"}, headers=owner_headers)

    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "ERR_VALIDATION"
    assert "Title is required" in body["message"]


@pytest.mark.unit
def test_invalid_date_query_maps_to_422(client: TestClient, patched_db, owner_headers) -> None:
    response = client.get("/tasks", params={"start": "January"}, headers=owner_headers)

    assert response.status_code == 422
    assert response.json()["code"] == "ERR_VALIDATION"


@pytest.mark.unit
def test_foreign_task_maps_to_404(client: TestClient, patched_db, owner_headers, sample_task_data) -> None:
    """Test that another user's task looks missing."""
    created = client.post("/tasks", json=sample_task_data, headers=owner_headers).json()

    response = client.patch(f"/tasks/{created['id']}", json={"title": "Mine"}, headers={"X-Owner-Id": "user-2"})

    assert response.status_code == 404
    assert response.json()["code"] == "ERR_NOT_FOUND"


@pytest.mark.unit
def test_persistence_error_maps_to_502(client: TestClient, patched_db, owner_headers, monkeypatch) -> None:
    """Test that store failures surface as bad gateway."""

    async def failing_list_records(**kwargs):
        raise PersistenceError("database is locked")

    monkeypatch.setattr("src.core.db_client.list_records", failing_list_records)

    response = client.get("/tasks", headers=owner_headers)

    assert response.status_code == 502
    assert response.json()["code"] == "ERR_PERSISTENCE"


@pytest.mark.unit
def test_toggle_complete_and_delete(client: TestClient, patched_db, owner_headers, sample_task_data) -> None:
    created = client.post("/tasks", json=sample_task_data, headers=owner_headers).json()

    toggled = client.post(f"/tasks/{created['id']}/toggle", headers=owner_headers).json()
    assert toggled["status"] == "done"

    toggled_back = client.post(f"/tasks/{created['id']}/toggle", headers=owner_headers).json()
    assert toggled_back["status"] == "todo"

    completed = client.post(f"/tasks/{created['id']}/complete", headers=owner_headers).json()
    assert completed["status"] == "done"
    assert completed["completed_at"] is not None

    deleted = client.delete(f"/tasks/{created['id']}", headers=owner_headers)
    assert deleted.json() == {"deleted": created["id"]}
    assert client.get("/tasks", headers=owner_headers).json() == []


@pytest.mark.unit
def test_series_endpoints(client: TestClient, patched_db, owner_headers, sample_series_data) -> None:
    """Test the series lifecycle over HTTP."""
    response = client.post("/tasks/series", json=sample_series_data, headers=owner_headers)

    assert response.status_code == 201
    created = response.json()
    assert created["description"] == "every Mon, Wed"
    assert created["occurrence_count"] == len(created["occurrence_ids"]) > 0

    view = client.get(f"/tasks/series/{created['series_id']}", headers=owner_headers).json()
    assert view["template"]["id"] == created["template_id"]
    assert len(view["occurrences"]) == created["occurrence_count"]

    completed = client.post(f"/tasks/series/{created['series_id']}/complete", headers=owner_headers).json()
    assert completed == {"completed": created["occurrence_count"]}

    extended = client.post(f"/tasks/series/{created['series_id']}/extend", headers=owner_headers).json()
    assert extended == {"created": 0}

    deleted = client.delete(f"/tasks/series/{created['series_id']}", headers=owner_headers).json()
    assert deleted == {"deleted": created["occurrence_count"] + 1}

    missing = client.get(f"/tasks/series/{created['series_id']}", headers=owner_headers)
    assert missing.status_code == 404


@pytest.mark.unit
def test_empty_weekdays_rejected(client: TestClient, patched_db, owner_headers) -> None:
    response = client.post("/tasks/series", json={"title": "Never", "recurrence_days": []}, headers=owner_headers)

    assert response.status_code == 422
    assert patched_db.all_records("tasks") == []


@pytest.mark.unit
def test_template_cannot_be_deleted_alone(client: TestClient, patched_db, owner_headers, sample_series_data) -> None:
    created = client.post("/tasks/series", json=sample_series_data, headers=owner_headers).json()

    response = client.delete(f"/tasks/{created['template_id']}", headers=owner_headers)

    assert response.status_code == 422


@pytest.mark.unit
def test_calendar_views(client: TestClient, patched_db, owner_headers) -> None:
    """Test the month grid and day view endpoints."""
    for title, start, end in [("Standup", "09:00", "10:00"), ("Review", "09:30", "10:30"), ("Laundry", None, None)]:
        client.post(
            "/tasks",
            json={"title": title, "due_date": "2026-01-07", "start_time": start, "end_time": end},
            headers=owner_headers,
        )

    grid = client.get("/tasks/calendar/2026/1", headers=owner_headers).json()
    assert len(grid) == 31
    assert len(grid["2026-01-07"]) == 3

    day = client.get("/tasks/day/2026-01-07", headers=owner_headers).json()
    assert [task["title"] for task in day["all_day"]] == ["Laundry"]
    assert [(entry["task"]["title"], entry["column_count"]) for entry in day["timed"]] == [
        ("Standup", 2),
        ("Review", 2),
    ]

    assert client.get("/tasks/day/07-01-2026", headers=owner_headers).status_code == 422
    assert client.get("/tasks/calendar/2026/13", headers=owner_headers).status_code == 422


@pytest.mark.unit
def test_series_ids_with_filter_characters(client: TestClient, patched_db, owner_headers) -> None:
    """Test that odd series ids are treated as unknown ids, not as filter syntax."""
    for series_id in ["it's", "a && b", "(x || y)"]:
        assert client.delete(f"/tasks/series/{series_id}", headers=owner_headers).json() == {"deleted": 0}
        assert client.post(f"/tasks/series/{series_id}/complete", headers=owner_headers).json() == {"completed": 0}
        assert client.get(f"/tasks/series/{series_id}", headers=owner_headers).status_code == 404
