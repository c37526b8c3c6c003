"""Tests for the scheduling sync endpoints."""

import pytest

from workforce_sync.tests.factories import add_centre, csv_lines, json_route, timeout_route


WINDOW = {"start_date": "2026-10-12", "end_date": "2026-10-18"}


@pytest.fixture
def seeded(session, platform_routes):
    add_centre(session)
    session.commit()
    platform_routes["/api/employees"] = json_route([
        {"id": "E1", "firstName": "Ana", "lastName": "López"},
    ])
    platform_routes["/api/assignments"] = json_route([
        {"id": 10, "employeeId": "E1", "date": "2026-10-15", "hours": 8},
    ])


class TestSyncJobEndpoints:
    """Tests for running, listing and cancelling sync jobs."""

    def test_run_full_sync(self, client, seeded):
        """Test a manual sync returns its finalized log."""
        response = client.post("/api/sync/jobs", json=dict(WINDOW, entity_kind="full"))

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "completed"
        assert data["trigger_source"] == "manual"
        assert data["inserted_rows"] == 2
        assert data["completed_at"] is not None

    def test_partial_sync(self, client, seeded, platform_routes):
        """Test a failing platform call ends the job partial."""
        platform_routes["/api/absences"] = timeout_route

        data = client.post("/api/sync/jobs", json=dict(WINDOW, entity_kind="full")).json()

        assert data["status"] == "partial"
        assert data["errors"][-1]["kind"] == "absence_sync"

    def test_invalid_window(self, client, seeded):
        """Test an inverted window answers 400 before any job is logged."""
        response = client.post(
            "/api/sync/jobs",
            json={"entity_kind": "full", "start_date": "2026-10-18", "end_date": "2026-10-12"},
        )

        assert response.status_code == 400
        assert client.get("/api/sync/jobs").json()["items"] == []

    def test_lookback_beyond_limit(self, client, seeded):
        """Test a lookback longer than the configured maximum answers 400."""
        response = client.post("/api/sync/jobs", json={"entity_kind": "full", "days_back": 366})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"
        assert "between 1 and 365" in response.json()["error"]["message"]
        assert client.get("/api/sync/jobs").json()["items"] == []

    def test_list_get_and_export(self, client, seeded):
        """Test finished jobs are listed, fetched and exported."""
        job = client.post("/api/sync/jobs", json=dict(WINDOW, entity_kind="employees")).json()

        listed = client.get("/api/sync/jobs", params={"status": "completed"}).json()
        assert [item["id"] for item in listed["items"]] == [job["id"]]
        assert client.get("/api/sync/jobs", params={"entity_kind": "absences"}).json()["items"] == []
        assert client.get(f"/api/sync/jobs/{job['id']}").json()["entity_kind"] == "employees"

        export = client.get("/api/sync/jobs/export.csv")
        assert export.status_code == 200
        assert "sync_jobs.csv" in export.headers["content-disposition"]
        lines = csv_lines(export.content)
        assert lines[0].startswith("ID,Inicio,Fin,Entidad")
        assert lines[1].startswith(job["id"])

    def test_cancel_finished_job(self, client, seeded):
        """Test a finalized job cannot be cancelled."""
        job = client.post("/api/sync/jobs", json=dict(WINDOW, entity_kind="employees")).json()

        response = client.post(f"/api/sync/jobs/{job['id']}/cancel")

        assert response.status_code == 409
        assert response.json()["error"]["code"] == "job_already_finalized"

    def test_asesoria_cannot_sync(self, client):
        """Test payroll advisors are not allowed to run syncs."""
        response = client.post("/api/sync/jobs", json={"entity_kind": "full"}, headers={"X-User-Role": "asesoria"})

        assert response.status_code == 403
