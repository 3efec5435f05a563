"""Tests for the JSON API."""
from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from timekeeper.main import app

from conftest import signup


def entry_payload(**overrides):
    data = {
        "description": "Wrote tests",
        "start_time": datetime.now().replace(microsecond=0).isoformat(),
        "duration": 3600,
        "is_billable": True,
        "tags": [],
    }
    data.update(overrides)
    return data


def test_health(client):
    response = client.get("/api/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": True}


def test_requires_sign_in(client):
    assert client.get("/api/projects").status_code == 401
    assert client.get("/api/time-entries").status_code == 401


class TestProjects:
    def test_admin_crud(self, admin):
        client_id = admin.post("/api/clients", json={"name": "Acme"}).json()["id"]
        response = admin.post("/api/projects", json={"name": "Website", "client_id": client_id})
        assert response.status_code == 201
        project = response.json()
        assert project["client_name"] == "Acme"
        assert project["version"] == 1

        response = admin.patch(f"/api/projects/{project['id']}", json={"description": "New site", "version": 1})
        assert response.status_code == 200
        assert response.json()["description"] == "New site"
        assert response.json()["version"] == 2

        response = admin.patch(f"/api/projects/{project['id']}", json={"name": "Stale", "version": 1})
        assert response.status_code == 409

        assert admin.post(f"/api/projects/{project['id']}/archive").status_code == 200
        assert admin.get("/api/projects").json() == []

        assert admin.delete(f"/api/projects/{project['id']}").status_code == 204
        assert admin.get(f"/api/projects/{project['id']}").status_code == 404

    def test_unknown_client(self, admin):
        response = admin.post("/api/projects", json={"name": "Website", "client_id": "missing"})
        assert response.status_code == 404

    def test_validation(self, admin):
        assert admin.post("/api/projects", json={"name": ""}).status_code == 422

    def test_employees_cannot_write(self, employee):
        assert employee.post("/api/projects", json={"name": "Website"}).status_code == 403
        assert employee.get("/api/projects").status_code == 200

    def test_update_missing(self, admin):
        assert admin.patch("/api/projects/missing", json={"name": "x"}).status_code == 404


class TestTasks:
    def test_billable_task_needs_rate(self, admin):
        project_id = admin.post("/api/projects", json={"name": "Website"}).json()["id"]
        response = admin.post("/api/tasks", json={"name": "Design", "project_id": project_id, "is_billable": True})
        assert response.status_code == 422

        response = admin.post(
            "/api/tasks",
            json={"name": "Design", "project_id": project_id, "is_billable": True, "hourly_rate": 80},
        )
        assert response.status_code == 201
        tasks = admin.get(f"/api/projects/{project_id}/tasks").json()
        assert [t["name"] for t in tasks] == ["Design"]


class TestTags:
    def test_create_rename_delete(self, employee):
        tag = employee.post("/api/tags", json={"name": "Design"}).json()
        response = employee.patch(f"/api/tags/{tag['id']}", json={"name": "UX"})
        assert response.status_code == 200
        assert response.json()["name"] == "UX"
        assert employee.delete(f"/api/tags/{tag['id']}").status_code == 204
        assert employee.get("/api/tags").json() == []


class TestTimeEntries:
    def test_create_list_update_delete(self, employee):
        response = employee.post("/api/time-entries", json=entry_payload())
        assert response.status_code == 201
        entry = response.json()
        assert entry["duration"] == 3600

        assert [e["id"] for e in employee.get("/api/time-entries").json()] == [entry["id"]]

        response = employee.patch(f"/api/time-entries/{entry['id']}", json={"duration": 1800})
        assert response.json()["duration"] == 1800
        assert employee.patch(f"/api/time-entries/{entry['id']}", json={}).status_code == 400

        assert employee.delete(f"/api/time-entries/{entry['id']}").status_code == 204
        assert employee.get(f"/api/time-entries/{entry['id']}").status_code == 404

    def test_date_range(self, employee):
        base = datetime(2024, 1, 10, 9, 0)
        for days in (0, 1, 5):
            employee.post("/api/time-entries", json=entry_payload(start_time=(base + timedelta(days=days)).isoformat()))
        response = employee.get(
            "/api/time-entries",
            params={"start": base.isoformat(), "end": (base + timedelta(days=1)).isoformat()},
        )
        assert len(response.json()) == 2

    def test_entries_are_private(self, employee, app_db):
        entry = employee.post("/api/time-entries", json=entry_payload()).json()
        with TestClient(app) as other:
            signup(other, "employee", email="other@example.com")
            assert other.get(f"/api/time-entries/{entry['id']}").status_code == 404
            assert other.get("/api/time-entries").json() == []

    def test_rejects_blank_description(self, employee):
        assert employee.post("/api/time-entries", json=entry_payload(description="  ")).status_code == 422


class TestSummary:
    def test_uses_own_rate(self, employee):
        employee.post("/api/time-entries", json=entry_payload(duration=10800))
        employee.post("/api/time-entries", json=entry_payload(duration=3600, is_billable=False))
        data = employee.get("/api/stats/summary", params={"period": "today"}).json()
        assert data["total_duration"] == 14400
        assert data["billable_duration"] == 10800
        assert data["billable_percentage"] == pytest.approx(75.0)
        assert data["earnings"] == pytest.approx(75.0)  # 3h at the employee rate of 25
        assert data["entry_count"] == 2
        assert data["invalid_entries"] == 0

    def test_unknown_period(self, employee):
        assert employee.get("/api/stats/summary", params={"period": "decade"}).status_code == 400


class TestUsers:
    def test_me(self, employee):
        data = employee.get("/api/users/me").json()
        assert data["email"] == "employee@example.com"
        assert data["role"] == "employee"
        assert "password_hash" not in data

    def test_admin_manages_users(self, admin, app_db):
        with TestClient(app) as other:
            signup(other, "employee", email="worker@example.com")
            worker_id = other.get("/api/users/me").json()["id"]

            assert len(admin.get("/api/users").json()) == 2
            assert [u["email"] for u in admin.get("/api/users", params={"role": "employee"}).json()] == [
                "worker@example.com"
            ]

            response = admin.patch(f"/api/users/{worker_id}", json={"hourly_rate": 40, "is_active": False})
            assert response.status_code == 200
            assert response.json()["hourly_rate"] == 40

            # a deactivated account is signed out on its next request
            assert other.get("/api/users/me").status_code == 401

    def test_employee_cannot_list_users(self, employee):
        assert employee.get("/api/users").status_code == 403


def test_sample_data(admin, employee):
    assert admin.post("/api/admin/sample-data").json() == {"added": 20}
    assert len(employee.get("/api/projects").json()) == 4
    assert len(admin.get("/api/clients/client-1/projects").json()) == 2
    assert admin.delete("/api/admin/sample-data").json() == {"removed": 20}
    assert employee.post("/api/admin/sample-data").status_code == 403


class TestPatchValidation:
    def test_nulls_and_blanks_on_required_project_fields(self, admin):
        project_id = admin.post("/api/projects", json={"name": "Website"}).json()["id"]
        assert admin.patch(f"/api/projects/{project_id}", json={"name": None}).status_code == 422
        assert admin.patch(f"/api/projects/{project_id}", json={"name": "   "}).status_code == 422
        assert admin.patch(f"/api/projects/{project_id}", json={"is_archived": None}).status_code == 422

        # optional columns can still be cleared
        response = admin.patch(f"/api/projects/{project_id}", json={"description": None})
        assert response.status_code == 200
        assert admin.get(f"/api/projects/{project_id}").json()["name"] == "Website"

    def test_time_entry_description_stays_filled(self, employee):
        entry = employee.post("/api/time-entries", json=entry_payload()).json()
        for body in ({"description": None}, {"description": "  "}, {"duration": None}, {"tags": None}):
            assert employee.patch(f"/api/time-entries/{entry['id']}", json=body).status_code == 422
        assert employee.get(f"/api/time-entries/{entry['id']}").json()["description"] == "Wrote tests"

        response = employee.patch(f"/api/time-entries/{entry['id']}", json={"project_id": None, "end_time": None})
        assert response.status_code == 200

    def test_other_records(self, admin):
        client_id = admin.post("/api/clients", json={"name": "Acme"}).json()["id"]
        assert admin.patch(f"/api/clients/{client_id}", json={"name": None}).status_code == 422
        assert admin.patch(f"/api/clients/{client_id}", json={"email": "nope"}).status_code == 422

        tag_id = admin.post("/api/tags", json={"name": "Design"}).json()["id"]
        assert admin.patch(f"/api/tags/{tag_id}", json={"name": " "}).status_code == 422

        me = admin.get("/api/users/me").json()["id"]
        assert admin.patch(f"/api/users/{me}", json={"is_active": None}).status_code == 422
        assert admin.patch(f"/api/users/{me}", json={"name": ""}).status_code == 422
