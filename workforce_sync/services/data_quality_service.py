"""
Data Quality Rule Engine

Audits the reconciled store for inconsistencies between planned and paid
hours, atypical cost per hour and employees without a centre. Findings are
kept as open DataQualityIssue records until someone resolves them.
"""

import logging
import math
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import Session

from workforce_sync.config.settings import DataQualitySettings, get_settings
from workforce_sync.data.workforce_repository import WorkforceRepository
from workforce_sync.models.base import utcnow
from workforce_sync.models.data_quality_issue import (
    DataQualityIssue,
    IssueKind,
    IssueSeverity,
)
from workforce_sync.utils.errors import ValidationError, create_not_found_error

logger = logging.getLogger(__name__)


# =============================================================================
# Results
# =============================================================================

@dataclass
class Finding:
    """One rule hit before it is stored as an issue."""

    kind: IssueKind
    severity: IssueSeverity
    detail: Dict[str, Any]
    employee_id: Optional[uuid.UUID] = None
    centre_code: Optional[str] = None


@dataclass
class RecalculationResult:
    """Outcome of one recalculation run."""

    period_start: date
    period_end: date
    centre_code: Optional[str] = None
    created: int = 0
    refreshed: int = 0
    by_kind: Dict[str, int] = field(default_factory=dict)
    rule_errors: Dict[str, str] = field(default_factory=dict)

    @property
    def issues_detected(self) -> int:
        return self.created + self.refreshed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period_start": self.period_start.isoformat(),
            "period_end": self.period_end.isoformat(),
            "centre_code": self.centre_code,
            "issues_detected": self.issues_detected,
            "created": self.created,
            "refreshed": self.refreshed,
            "by_kind": dict(self.by_kind),
            "rule_errors": dict(self.rule_errors),
        }


@dataclass
class IssueFilters:
    """Filters for listing issues."""

    start: Optional[date] = None
    end: Optional[date] = None
    centre_code: Optional[str] = None
    severity: Optional[IssueSeverity] = None
    kind: Optional[IssueKind] = None
    status: str = "all"  # 'all', 'pending' or 'resolved'
    limit: int = 500
    offset: int = 0


# =============================================================================
# Engine
# =============================================================================

class DataQualityEngine:
    """
    Runs the data quality rules over a date window.

    Each rule runs inside its own savepoint: a failing rule is rolled back,
    logged and reported in ``rule_errors`` while the others still run.
    """

    def __init__(self, session: Session, settings: Optional[DataQualitySettings] = None):
        self.session = session
        self.settings = settings or get_settings().data_quality
        self.repository = WorkforceRepository(session)

    @property
    def rules(self) -> List[Tuple[IssueKind, Callable[[date, date, Optional[str]], List[Finding]]]]:
        return [
            (IssueKind.PLAN_SIN_REAL, self._planned_without_payroll),
            (IssueKind.REAL_SIN_PLAN, self._payroll_without_schedule),
            (IssueKind.COSTE_ATIPICO, self._atypical_cost),
            (IssueKind.EMPLEADO_SIN_CENTRO, self._employee_without_centre),
        ]

    def recalculate(
        self,
        start: date,
        end: date,
        centre_code: Optional[str] = None,
    ) -> RecalculationResult:
        """
        Evaluate every rule over [start, end] and upsert open issues.

        Raises:
            ValidationError: If the window is inverted
        """
        if end < start:
            raise ValidationError(message="Period end must not be before period start")

        result = RecalculationResult(period_start=start, period_end=end, centre_code=centre_code)

        for kind, rule in self.rules:
            try:
                with self.session.begin_nested():
                    findings = rule(start, end, centre_code)
                    created, refreshed = self._store(findings, start, end)
                    self.session.flush()
            except Exception as e:
                logger.exception(
                    f"Data quality rule {kind.value} failed: {str(e)}",
                    extra={"rule": kind.value},
                )
                result.rule_errors[kind.value] = str(e)
                continue

            result.created += created
            result.refreshed += refreshed
            result.by_kind[kind.value] = created + refreshed

        logger.info(
            f"Data quality recalculated for {start} - {end}: "
            f"{result.created} new, {result.refreshed} refreshed, "
            f"{len(result.rule_errors)} rule errors",
            extra={"centre_code": centre_code, **result.by_kind},
        )
        return result

    # -------------------------------------------------------------------------
    # Severity helpers
    # -------------------------------------------------------------------------

    def severity_for_gap(self, gap_hours: float) -> IssueSeverity:
        """Map an hour gap to a severity using the configured thresholds."""
        thresholds = self.settings.hour_gap_thresholds
        for level in (IssueSeverity.CRITICA, IssueSeverity.ALTA, IssueSeverity.MEDIA):
            limit = thresholds.get(level.value)
            if limit is not None and gap_hours >= limit:
                return level
        return IssueSeverity.BAJA

    def severity_for_z(self, z_score: float) -> IssueSeverity:
        magnitude = abs(z_score)
        if magnitude >= self.settings.outlier_critical_z:
            return IssueSeverity.CRITICA
        if magnitude >= self.settings.outlier_high_z:
            return IssueSeverity.ALTA
        return IssueSeverity.MEDIA

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------

    def _planned_without_payroll(self, start: date, end: date, centre_code: Optional[str]) -> List[Finding]:
        planned = self.repository.planned_hours_by_employee(start, end, centre_code)
        payroll = self.repository.payroll_by_employee(start, end, centre_code)
        centres = self.repository.employee_centres(set(planned))

        findings = []
        for employee_id, planned_hours in planned.items():
            if planned_hours <= 0:
                continue
            totals = payroll.get(employee_id)
            if totals is not None and totals.worked_hours > 0:
                continue
            findings.append(Finding(
                kind=IssueKind.PLAN_SIN_REAL,
                severity=self.severity_for_gap(planned_hours),
                employee_id=employee_id,
                centre_code=centres.get(employee_id),
                detail={
                    "horas_planificadas": round(planned_hours, 2),
                    "horas_reales": 0.0,
                    "diferencia": round(planned_hours, 2),
                },
            ))
        return findings

    def _payroll_without_schedule(self, start: date, end: date, centre_code: Optional[str]) -> List[Finding]:
        planned = self.repository.planned_hours_by_employee(start, end, centre_code)
        payroll = self.repository.payroll_by_employee(start, end, centre_code)
        centres = self.repository.employee_centres(set(payroll))

        findings = []
        for employee_id, totals in payroll.items():
            if totals.worked_hours <= 0 or employee_id in planned:
                continue
            findings.append(Finding(
                kind=IssueKind.REAL_SIN_PLAN,
                severity=self.severity_for_gap(totals.worked_hours),
                employee_id=employee_id,
                centre_code=centres.get(employee_id),
                detail={
                    "horas_planificadas": 0.0,
                    "horas_reales": round(totals.worked_hours, 2),
                    "diferencia": round(totals.worked_hours, 2),
                },
            ))
        return findings

    def _atypical_cost(self, start: date, end: date, centre_code: Optional[str]) -> List[Finding]:
        payroll = self.repository.payroll_by_employee(start, end, centre_code)
        centres = self.repository.employee_centres(set(payroll))

        by_centre: Dict[str, List[Tuple[uuid.UUID, float]]] = defaultdict(list)
        for employee_id, totals in payroll.items():
            centre = centres.get(employee_id)
            rate = totals.cost_per_hour
            if centre and rate is not None:
                by_centre[centre].append((employee_id, rate))

        k = self.settings.outlier_std_devs
        findings = []
        for centre, rates in by_centre.items():
            if len(rates) < self.settings.outlier_min_population:
                continue
            values = [rate for _, rate in rates]
            mean = sum(values) / len(values)
            std_dev = math.sqrt(sum((v - mean) ** 2 for v in values) / len(values))
            if std_dev <= 0:
                continue

            for employee_id, rate in rates:
                z_score = (rate - mean) / std_dev
                if abs(z_score) <= k:
                    continue
                findings.append(Finding(
                    kind=IssueKind.COSTE_ATIPICO,
                    severity=self.severity_for_z(z_score),
                    employee_id=employee_id,
                    centre_code=centre,
                    detail={
                        "coste_hora": round(rate, 2),
                        "media_centro": round(mean, 2),
                        "desviacion_tipica": round(std_dev, 2),
                        "z_score": round(z_score, 2),
                        "rango": [round(mean - k * std_dev, 2), round(mean + k * std_dev, 2)],
                    },
                ))
        return findings

    def _employee_without_centre(self, start: date, end: date, centre_code: Optional[str]) -> List[Finding]:
        # Employees without a centre cannot fall under a centre filter
        if centre_code:
            return []
        return [
            Finding(
                kind=IssueKind.EMPLEADO_SIN_CENTRO,
                severity=IssueSeverity.ALTA,
                employee_id=employee.id,
                detail={"empleado": employee.display_name},
            )
            for employee in self.repository.active_employees_without_centre(start, end)
        ]

    # -------------------------------------------------------------------------
    # Storage
    # -------------------------------------------------------------------------

    def _store(self, findings: List[Finding], start: date, end: date) -> Tuple[int, int]:
        created = refreshed = 0
        for finding in findings:
            issue = self._find_open_issue(finding, start, end)
            if issue is None:
                self.session.add(DataQualityIssue(
                    kind=finding.kind,
                    severity=finding.severity,
                    employee_id=finding.employee_id,
                    centre_code=finding.centre_code,
                    period_start=start,
                    period_end=end,
                    detail=finding.detail,
                ))
                created += 1
            else:
                issue.severity = finding.severity
                issue.detail = finding.detail
                issue.centre_code = finding.centre_code
                issue.updated_at = utcnow()
                refreshed += 1
        return created, refreshed

    def _find_open_issue(self, finding: Finding, start: date, end: date) -> Optional[DataQualityIssue]:
        query = select(DataQualityIssue).where(
            DataQualityIssue.kind == finding.kind,
            DataQualityIssue.period_start == start,
            DataQualityIssue.period_end == end,
            DataQualityIssue.resolved.is_(False),
        )
        if finding.employee_id is not None:
            query = query.where(DataQualityIssue.employee_id == finding.employee_id)
        else:
            query = query.where(
                DataQualityIssue.employee_id.is_(None),
                DataQualityIssue.centre_code == finding.centre_code,
            )
        return self.session.execute(query.limit(1)).scalar_one_or_none()

    # -------------------------------------------------------------------------
    # Issue management
    # -------------------------------------------------------------------------

    def get_issue(self, issue_id: uuid.UUID) -> DataQualityIssue:
        issue = self.session.get(DataQualityIssue, issue_id)
        if issue is None:
            raise create_not_found_error("Data quality issue", issue_id)
        return issue

    def resolve(self, issue_id: uuid.UUID, user_id: Optional[uuid.UUID] = None) -> DataQualityIssue:
        """
        Close an open issue.

        Raises:
            NotFoundError: If the issue does not exist
            ValidationError: If the issue is already resolved
        """
        issue = self.get_issue(issue_id)
        if issue.resolved:
            raise ValidationError(
                message="Issue is already resolved",
                details={"issue_id": str(issue_id)},
            )

        issue.resolved = True
        issue.resolved_at = utcnow()
        issue.resolved_by = user_id
        self.session.flush()

        logger.info(
            f"Data quality issue {issue_id} resolved",
            extra={"issue_id": str(issue_id), "kind": issue.kind.value},
        )
        return issue

    def list_issues(self, filters: Optional[IssueFilters] = None) -> List[DataQualityIssue]:
        filters = filters or IssueFilters()
        query = select(DataQualityIssue)

        if filters.start is not None:
            query = query.where(DataQualityIssue.period_start >= filters.start)
        if filters.end is not None:
            query = query.where(DataQualityIssue.period_end <= filters.end)
        if filters.centre_code:
            query = query.where(DataQualityIssue.centre_code == filters.centre_code)
        if filters.severity is not None:
            query = query.where(DataQualityIssue.severity == filters.severity)
        if filters.kind is not None:
            query = query.where(DataQualityIssue.kind == filters.kind)

        if filters.status == "pending":
            query = query.where(DataQualityIssue.resolved.is_(False))
        elif filters.status == "resolved":
            query = query.where(DataQualityIssue.resolved.is_(True))

        query = query.order_by(DataQualityIssue.created_at.desc()).limit(filters.limit).offset(filters.offset)
        return list(self.session.execute(query).scalars())
