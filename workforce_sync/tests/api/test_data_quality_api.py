"""Tests for the data quality endpoints."""

from datetime import date

import pytest

from workforce_sync.tests.factories import add_employee, add_schedule, csv_lines


WINDOW = {"start": "2026-10-01", "end": "2026-10-31"}


@pytest.fixture
def seeded(session):
    add_schedule(session, add_employee(session), date(2026, 10, 5))
    add_employee(session, first_name="Suelto", centre_code=None)
    session.commit()


class TestDataQualityEndpoints:
    """Tests for recalculating, listing, resolving and exporting issues."""

    def test_recalculate_is_idempotent(self, client, seeded):
        """Test a second recalculation refreshes instead of creating."""
        first = client.post("/api/data-quality/recalculate", json=WINDOW).json()
        second = client.post("/api/data-quality/recalculate", json=WINDOW).json()

        assert first["created"] == 2
        assert first["by_kind"]["PLAN_SIN_REAL"] == 1
        assert (second["created"], second["refreshed"]) == (0, 2)
        assert len(client.get("/api/data-quality/issues").json()["items"]) == 2

    def test_inverted_window(self, client):
        """Test an end before the start answers 400."""
        response = client.post("/api/data-quality/recalculate", json={"start": "2026-10-31", "end": "2026-10-01"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"

    def test_resolve_and_filter(self, client, seeded):
        """Test a resolved issue moves from pending to resolved."""
        client.post("/api/data-quality/recalculate", json=WINDOW)
        [issue] = client.get("/api/data-quality/issues", params={"kind": "EMPLEADO_SIN_CENTRO"}).json()["items"]

        resolved = client.post(f"/api/data-quality/issues/{issue['id']}/resolve")

        assert resolved.status_code == 200
        assert resolved.json()["resolved"] is True
        pending = client.get("/api/data-quality/issues", params={"status": "pending"}).json()["items"]
        assert [i["kind"] for i in pending] == ["PLAN_SIN_REAL"]
        again = client.post(f"/api/data-quality/issues/{issue['id']}/resolve")
        assert again.status_code == 400

    def test_export(self, client, seeded):
        """Test issues export as CSV with readable kinds."""
        client.post("/api/data-quality/recalculate", json=WINDOW)

        response = client.get("/api/data-quality/issues/export.csv", params={"severity": "media"})

        assert response.status_code == 200
        lines = csv_lines(response.content)
        assert lines[0] == "Tipo,Severidad,Empleado,Centro,Periodo,Estado,Detalle,Detectada"
        assert len(lines) == 2
        assert lines[1].startswith("Horas planificadas sin nómina,media,Ana García,C001")

    def test_franchisee_reads_but_cannot_recalculate(self, client):
        """Test franchisees have read-only access."""
        headers = {"X-User-Role": "franquiciado"}

        assert client.get("/api/data-quality/issues", headers=headers).status_code == 200
        assert client.post("/api/data-quality/recalculate", json=WINDOW, headers=headers).status_code == 403
