"""Service for CSV exports of sync logs, data quality issues and notifications."""

import json
import logging
from typing import Any, Dict, List, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from workforce_sync.models.alert import AlertNotification
from workforce_sync.models.data_quality_issue import DataQualityIssue
from workforce_sync.models.employee import Employee
from workforce_sync.models.sync_job_log import SyncJobLog
from workforce_sync.utils.csv_parser import generate_csv_content

logger = logging.getLogger(__name__)


SYNC_LOG_HEADERS: Dict[str, str] = {
    "id": "ID",
    "started_at": "Inicio",
    "completed_at": "Fin",
    "entity_kind": "Entidad",
    "trigger_source": "Origen",
    "status": "Estado",
    "start_date": "Desde",
    "end_date": "Hasta",
    "centre_code": "Centro",
    "total_rows": "Total",
    "inserted_rows": "Insertados",
    "updated_rows": "Actualizados",
    "skipped_rows": "Omitidos",
    "error_rows": "Errores",
    "first_error": "Primer error",
}

DQ_ISSUE_HEADERS: Dict[str, str] = {
    "kind": "Tipo",
    "severity": "Severidad",
    "employee": "Empleado",
    "centre_code": "Centro",
    "period": "Periodo",
    "status": "Estado",
    "detail": "Detalle",
    "created_at": "Detectada",
}

NOTIFICATION_HEADERS: Dict[str, str] = {
    "created_at": "Fecha",
    "kind": "Tipo",
    "severity": "Severidad",
    "title": "Título",
    "message": "Mensaje",
    "centre_code": "Centro",
    "channels": "Canales",
    "read": "Leída",
}


def _json_cell(value: Any) -> str:
    if not value:
        return ""
    return json.dumps(value, ensure_ascii=False, sort_keys=True, default=str)


class ExportService:
    """
    Service for CSV exports of the pipeline read models.

    Exported columns mirror stored attributes under human-readable headers.
    """

    def __init__(self, session: Session):
        """Initialize with database session."""
        self.session = session

    def export_sync_logs(self, logs: Sequence[SyncJobLog]) -> bytes:
        rows: List[Dict[str, Any]] = []
        for log in logs:
            params = log.params or {}
            errors = log.errors or []
            rows.append({
                "id": str(log.id),
                "started_at": log.started_at,
                "completed_at": log.completed_at,
                "entity_kind": log.entity_kind,
                "trigger_source": log.trigger_source,
                "status": log.status,
                "start_date": params.get("start_date"),
                "end_date": params.get("end_date"),
                "centre_code": params.get("centre_code"),
                "total_rows": log.total_rows,
                "inserted_rows": log.inserted_rows,
                "updated_rows": log.updated_rows,
                "skipped_rows": log.skipped_rows,
                "error_rows": log.error_rows,
                "first_error": errors[0].get("message") if errors else None,
            })
        return self._render(rows, SYNC_LOG_HEADERS, "sync logs")

    def export_issues(self, issues: Sequence[DataQualityIssue]) -> bytes:
        names = self._employee_names({i.employee_id for i in issues if i.employee_id is not None})
        rows = [
            {
                "kind": issue.kind.label,
                "severity": issue.severity,
                "employee": names.get(issue.employee_id, str(issue.employee_id)) if issue.employee_id else None,
                "centre_code": issue.centre_code,
                "period": f"{issue.period_start.isoformat()} - {issue.period_end.isoformat()}",
                "status": "Resuelta" if issue.resolved else "Pendiente",
                "detail": _json_cell(issue.detail),
                "created_at": issue.created_at,
            }
            for issue in issues
        ]
        return self._render(rows, DQ_ISSUE_HEADERS, "data quality issues")

    def export_notifications(self, notifications: Sequence[AlertNotification]) -> bytes:
        rows = [
            {
                "created_at": n.created_at,
                "kind": n.kind,
                "severity": n.severity,
                "title": n.title,
                "message": n.message,
                "centre_code": n.centre_code,
                "channels": n.channels or [],
                "read": n.read,
            }
            for n in notifications
        ]
        return self._render(rows, NOTIFICATION_HEADERS, "alert notifications")

    def _employee_names(self, employee_ids: set) -> Dict[Any, str]:
        if not employee_ids:
            return {}
        employees = self.session.execute(
            select(Employee).where(Employee.id.in_(employee_ids))
        ).scalars()
        return {employee.id: employee.display_name for employee in employees}

    @staticmethod
    def _render(rows: List[Dict[str, Any]], headers: Dict[str, str], label: str) -> bytes:
        content = generate_csv_content(rows, fields=list(headers), headers=headers)
        logger.info(f"Exported {len(rows)} {label}", extra={"rows": len(rows)})
        return content
