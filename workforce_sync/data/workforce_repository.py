"""Workforce repository for aggregate queries over the reconciled store."""

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Dict, List, Optional, Set

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from workforce_sync.models.data_quality_issue import DataQualityIssue, IssueSeverity
from workforce_sync.models.employee import (
    AbsenceEntry,
    Employee,
    PayrollPeriod,
    ScheduleEntry,
)


@dataclass
class PayrollTotals:
    """Payroll figures of one employee summed over a window."""

    worked_hours: float = 0.0
    total_cost: float = 0.0

    @property
    def cost_per_hour(self) -> Optional[float]:
        if self.worked_hours <= 0:
            return None
        return self.total_cost / self.worked_hours


class WorkforceRepository:
    """
    Repository for aggregate workforce queries.

    Every query takes an inclusive date window and an optional centre
    filter applied through the employee's centre code.
    """

    def __init__(self, session: Session):
        """Initialize repository with database session."""
        self.session = session

    @staticmethod
    def _scope(stmt, centre_code: Optional[str]):
        if centre_code:
            stmt = stmt.where(Employee.centre_code == centre_code)
        return stmt

    # =========================================================================
    # Schedules
    # =========================================================================

    def planned_hours_by_employee(
        self,
        start: date,
        end: date,
        centre_code: Optional[str] = None,
    ) -> Dict[uuid.UUID, float]:
        """Sum of planned hours per employee with at least one schedule entry in the window."""
        stmt = (
            select(ScheduleEntry.employee_id, func.sum(ScheduleEntry.planned_hours))
            .join(Employee, Employee.id == ScheduleEntry.employee_id)
            .where(ScheduleEntry.work_date >= start, ScheduleEntry.work_date <= end)
            .group_by(ScheduleEntry.employee_id)
        )
        stmt = self._scope(stmt, centre_code)
        return {
            employee_id: float(total or 0.0)
            for employee_id, total in self.session.execute(stmt)
        }

    def schedule_days(
        self,
        start: date,
        end: date,
        centre_code: Optional[str] = None,
    ) -> Set[date]:
        """Distinct dates in the window holding at least one schedule entry."""
        stmt = (
            select(ScheduleEntry.work_date)
            .join(Employee, Employee.id == ScheduleEntry.employee_id)
            .where(ScheduleEntry.work_date >= start, ScheduleEntry.work_date <= end)
            .distinct()
        )
        stmt = self._scope(stmt, centre_code)
        return set(self.session.execute(stmt).scalars())

    # =========================================================================
    # Payroll
    # =========================================================================

    def payroll_by_employee(
        self,
        start: date,
        end: date,
        centre_code: Optional[str] = None,
    ) -> Dict[uuid.UUID, PayrollTotals]:
        """Payroll totals per employee over periods overlapping the window."""
        stmt = (
            select(
                PayrollPeriod.employee_id,
                func.sum(PayrollPeriod.worked_hours),
                func.sum(PayrollPeriod.total_cost),
            )
            .join(Employee, Employee.id == PayrollPeriod.employee_id)
            .where(PayrollPeriod.period_start <= end, PayrollPeriod.period_end >= start)
            .group_by(PayrollPeriod.employee_id)
        )
        stmt = self._scope(stmt, centre_code)
        return {
            employee_id: PayrollTotals(
                worked_hours=float(worked or 0.0),
                total_cost=float(cost or 0.0),
            )
            for employee_id, worked, cost in self.session.execute(stmt)
        }

    # =========================================================================
    # Absences
    # =========================================================================

    def absence_hours(
        self,
        start: date,
        end: date,
        centre_code: Optional[str] = None,
    ) -> float:
        """Total absence hours in the window."""
        stmt = (
            select(func.coalesce(func.sum(AbsenceEntry.hours), 0.0))
            .join(Employee, Employee.id == AbsenceEntry.employee_id)
            .where(AbsenceEntry.absence_date >= start, AbsenceEntry.absence_date <= end)
        )
        stmt = self._scope(stmt, centre_code)
        return float(self.session.execute(stmt).scalar() or 0.0)

    # =========================================================================
    # Employees
    # =========================================================================

    def employee_centres(self, employee_ids: Set[uuid.UUID]) -> Dict[uuid.UUID, Optional[str]]:
        """Centre code of each given employee."""
        if not employee_ids:
            return {}
        stmt = select(Employee.id, Employee.centre_code).where(Employee.id.in_(employee_ids))
        return {employee_id: centre for employee_id, centre in self.session.execute(stmt)}

    def active_employees_without_centre(self, start: date, end: date) -> List[Employee]:
        """Employees active at some point of the window with no centre assigned."""
        stmt = (
            select(Employee)
            .where(
                or_(Employee.centre_code.is_(None), Employee.centre_code == ""),
                or_(Employee.active_from.is_(None), Employee.active_from <= end),
                or_(Employee.active_to.is_(None), Employee.active_to >= start),
            )
            .order_by(Employee.last_name, Employee.first_name)
        )
        return list(self.session.execute(stmt).scalars())

    # =========================================================================
    # Data quality
    # =========================================================================

    def open_issue_count(
        self,
        severity: IssueSeverity,
        created_since: datetime,
        centre_code: Optional[str] = None,
    ) -> int:
        """Count unresolved issues of a severity created at or after a moment."""
        stmt = select(func.count(DataQualityIssue.id)).where(
            and_(
                DataQualityIssue.resolved.is_(False),
                DataQualityIssue.severity == severity,
                DataQualityIssue.created_at >= created_since,
            )
        )
        if centre_code:
            stmt = stmt.where(DataQualityIssue.centre_code == centre_code)
        return int(self.session.execute(stmt).scalar() or 0)
