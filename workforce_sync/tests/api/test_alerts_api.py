"""Tests for the alert endpoints."""

from workforce_sync.tests.factories import csv_lines


COVERAGE_RULE = {
    "name": "Cobertura semanal",
    "kind": "PLANIFICACION_VACIA",
    "threshold": 80,
    "operator": "menor_que",
    "centre_code": "C001",
}


class TestAlertEndpoints:
    """Tests for rules, evaluation and notifications."""

    def test_create_and_list_rules(self, client):
        """Test a created rule is listed with its parsed operator."""
        response = client.post("/api/alerts/rules", json=COVERAGE_RULE)

        assert response.status_code == 201
        rule = response.json()
        assert rule["operator"] == "<"
        assert rule["period"] == "ultima_semana"
        assert rule["channels"] == ["inapp"]
        assert [r["id"] for r in client.get("/api/alerts/rules").json()["items"]] == [rule["id"]]

    def test_email_rule_requires_recipients(self, client):
        """Test an email rule without recipients answers 400."""
        response = client.post("/api/alerts/rules", json=dict(COVERAGE_RULE, channels=["email"]))

        assert response.status_code == 400

    def test_evaluate_and_read_notifications(self, client):
        """Test evaluation creates notifications that can be marked read and exported."""
        client.post("/api/alerts/rules", json=COVERAGE_RULE)

        evaluation = client.post("/api/alerts/evaluate", params={"today": "2026-10-19"}).json()

        assert (evaluation["evaluated"], evaluation["triggered"]) == (1, 1)
        [notification] = client.get("/api/alerts/notifications", params={"unread_only": True}).json()["items"]
        assert notification["severity"] == "critica"
        assert notification["detail"]["valor_actual"] == 0.0
        assert notification["centre_code"] == "C001"

        read = client.post(f"/api/alerts/notifications/{notification['id']}/read")
        assert read.json()["read"] is True
        assert client.get("/api/alerts/notifications", params={"unread_only": True}).json()["items"] == []

        lines = csv_lines(client.get("/api/alerts/notifications/export.csv").content)
        assert lines[0] == "Fecha,Tipo,Severidad,Título,Mensaje,Centro,Canales,Leída"
        assert lines[1].endswith(",sí")

    def test_roles(self, client):
        """Test franchisees read notifications but cannot manage rules; advisors see nothing."""
        assert client.get("/api/alerts/notifications", headers={"X-User-Role": "franquiciado"}).status_code == 200
        assert client.post(
            "/api/alerts/rules",
            json=COVERAGE_RULE,
            headers={"X-User-Role": "franquiciado"},
        ).status_code == 403
        assert client.get("/api/alerts/notifications", headers={"X-User-Role": "asesoria"}).status_code == 403
