"""Tests for CSV exports."""

import csv
import io
from datetime import date

from sqlalchemy import select

from workforce_sync.models.alert import AlertKind, AlertNotification
from workforce_sync.models.data_quality_issue import DataQualityIssue, IssueKind, IssueSeverity
from workforce_sync.models.sync_job_log import SyncEntityKind, SyncJobLog, SyncJobStatus, SyncTrigger
from workforce_sync.services.export_service import ExportService
from workforce_sync.tests.factories import add_employee, csv_lines


def read_rows(content: bytes):
    return list(csv.DictReader(io.StringIO(content.decode("utf-8-sig"))))


class TestExportService:
    """Tests for the exported headers and cells."""

    def test_sync_logs(self, session):
        """Test sync logs export their counters, window and first error."""
        log = SyncJobLog(
            entity_kind=SyncEntityKind.SCHEDULES,
            trigger_source=SyncTrigger.CRON,
            params={"start_date": "2026-10-12", "end_date": "2026-10-18", "centre_code": "C001"},
            errors=[{"kind": "schedule", "message": "Unknown employee E2"}],
            phase_results=[],
        )
        session.add(log)
        session.flush()
        log.finalize(SyncJobStatus.PARTIAL)

        content = ExportService(session).export_sync_logs([log])

        assert content.startswith(b"\xef\xbb\xbf")
        assert csv_lines(content)[0].startswith("ID,Inicio,Fin,Entidad,Origen,Estado,Desde,Hasta,Centro")
        [row] = read_rows(content)
        assert row["Entidad"] == "schedules"
        assert row["Origen"] == "cron"
        assert row["Estado"] == "partial"
        assert row["Desde"] == "2026-10-12"
        assert row["Primer error"] == "Unknown employee E2"

    def test_issues(self, session):
        """Test issues export labels, employee names and status text."""
        employee = add_employee(session, first_name="Ana")
        session.add_all([
            DataQualityIssue(
                kind=IssueKind.PLAN_SIN_REAL,
                severity=IssueSeverity.MEDIA,
                employee_id=employee.id,
                centre_code="C001",
                period_start=date(2026, 10, 1),
                period_end=date(2026, 10, 31),
                detail={"horas_planificadas": 8.0},
            ),
            DataQualityIssue(
                kind=IssueKind.EMPLEADO_SIN_CENTRO,
                severity=IssueSeverity.ALTA,
                period_start=date(2026, 10, 1),
                period_end=date(2026, 10, 31),
                resolved=True,
            ),
        ])
        session.flush()
        issues = list(session.execute(select(DataQualityIssue)).scalars())

        content = ExportService(session).export_issues(issues)

        assert csv_lines(content)[0] == "Tipo,Severidad,Empleado,Centro,Periodo,Estado,Detalle,Detectada"
        rows = {row["Tipo"]: row for row in read_rows(content)}
        planned = rows["Horas planificadas sin nómina"]
        assert planned["Empleado"] == "Ana García"
        assert planned["Severidad"] == "media"
        assert planned["Periodo"] == "2026-10-01 - 2026-10-31"
        assert planned["Estado"] == "Pendiente"
        assert planned["Detalle"] == '{"horas_planificadas": 8.0}'
        assert rows["Empleado sin centro"]["Estado"] == "Resuelta"
        assert rows["Empleado sin centro"]["Empleado"] == ""

    def test_notifications(self, session):
        """Test notifications export channels and the read flag."""
        notification = AlertNotification(
            kind=AlertKind.ABSENTISMO_ALTO,
            severity=IssueSeverity.CRITICA,
            title="Absentismo elevado en C001",
            message="La tasa de absentismo es 20.00%",
            centre_code="C001",
            channels=["inapp", "email"],
            detail={},
        )
        session.add(notification)
        session.flush()

        content = ExportService(session).export_notifications([notification])

        assert csv_lines(content)[0] == "Fecha,Tipo,Severidad,Título,Mensaje,Centro,Canales,Leída"
        [row] = read_rows(content)
        assert row["Tipo"] == "ABSENTISMO_ALTO"
        assert row["Canales"] == "inapp, email"
        assert row["Leída"] == "no"

    def test_empty_export_has_headers_only(self, session):
        """Test exporting nothing still yields the header row."""
        content = ExportService(session).export_notifications([])

        assert len(csv_lines(content)) == 1
