"""Typed rows and reconcile targets for each entity the pipeline writes."""

import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from workforce_sync.models.employee import (
    AbsenceEntry,
    Centre,
    Employee,
    PayrollPeriod,
    RecordSource,
    ScheduleEntry,
)
from workforce_sync.services.identity_store import IdentityMappingStore
from workforce_sync.utils.errors import NotFoundError


DEFAULT_ABSENCE_TYPE = "Ausencia"
DEFAULT_ABSENCE_HOURS = 8.0


def _apply_present(instance: Any, values: Dict[str, Any]) -> None:
    """Copy non-null values onto a model; nulls never clear stored data."""
    for name, value in values.items():
        if value is not None:
            setattr(instance, name, value)


# =============================================================================
# Rows
# =============================================================================

@dataclass
class CentreRow:
    code: str
    name: str
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    franchisee_name: Optional[str] = None
    franchisee_email: Optional[str] = None
    seating_capacity: Optional[int] = None
    square_meters: Optional[float] = None
    opening_date: Optional[date] = None
    scheduling_service_id: Optional[str] = None
    scheduling_business_id: Optional[str] = None


@dataclass
class EmployeeRow:
    external_scheduling_id: str
    first_name: str
    last_name: Optional[str] = None
    email: Optional[str] = None
    centre_code: Optional[str] = None
    active_from: Optional[date] = None
    active_to: Optional[date] = None


@dataclass
class ScheduleRow:
    employee_ref: str
    work_date: date
    service_id: str
    planned_hours: float = 0.0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    assignment_type: Optional[str] = None
    external_id: Optional[str] = None


@dataclass
class AbsenceRow:
    employee_ref: str
    absence_date: date
    absence_type: str = DEFAULT_ABSENCE_TYPE
    hours: float = DEFAULT_ABSENCE_HOURS
    reason: Optional[str] = None
    external_id: Optional[str] = None


@dataclass
class PayrollRow:
    employee_ref: str
    period_start: date
    period_end: date
    worked_hours: Optional[float] = None
    vacation_hours: Optional[float] = None
    training_hours: Optional[float] = None
    total_cost: Optional[float] = None


# =============================================================================
# Targets
# =============================================================================

class CentreTarget:
    """Centres keyed by their site code."""

    entity = "centres"

    def __init__(self, source: RecordSource = RecordSource.IMPORTED):
        self.source = source

    def natural_key(self, row: CentreRow) -> str:
        return row.code

    def find_existing(self, session: Session, row: CentreRow) -> Optional[Centre]:
        return session.execute(
            select(Centre).where(Centre.code == row.code)
        ).scalar_one_or_none()

    def _values(self, row: CentreRow) -> Dict[str, Any]:
        return {
            "name": row.name,
            "address": row.address,
            "city": row.city,
            "state": row.state,
            "postal_code": row.postal_code,
            "country": row.country,
            "franchisee_name": row.franchisee_name,
            "franchisee_email": row.franchisee_email,
            "seating_capacity": row.seating_capacity,
            "square_meters": row.square_meters,
            "opening_date": row.opening_date,
            "scheduling_service_id": row.scheduling_service_id,
            "scheduling_business_id": row.scheduling_business_id,
        }

    def create(self, session: Session, row: CentreRow) -> Centre:
        centre = Centre(code=row.code, source=self.source, active=True)
        _apply_present(centre, self._values(row))
        session.add(centre)
        return centre

    def update(self, session: Session, existing: Centre, row: CentreRow) -> Centre:
        _apply_present(existing, self._values(row))
        return existing


class _EmployeeResolvingTarget:
    """Base for targets whose rows reference an employee by external identifier."""

    def __init__(self, identity_store: IdentityMappingStore, scheduling_ids_only: bool = True):
        self.identity_store = identity_store
        self.scheduling_ids_only = scheduling_ids_only
        self._resolved: Dict[str, uuid.UUID] = {}

    def resolve_employee(self, employee_ref: str) -> uuid.UUID:
        """
        Map an external employee reference to the internal ID.

        Raises:
            NotFoundError: If no employee holds the identifier.
        """
        cached = self._resolved.get(employee_ref)
        if cached is not None:
            return cached

        if self.scheduling_ids_only:
            employee = self.identity_store.find_by_scheduling_id(employee_ref)
        else:
            employee = self.identity_store.find_by_any(employee_ref)
        if employee is None:
            raise NotFoundError(
                message=f"Unknown employee identifier: {employee_ref}",
                details={"identifier": employee_ref},
            )

        self._resolved[employee_ref] = employee.id
        return employee.id


class EmployeeTarget:
    """Employees keyed by their scheduling platform ID."""

    entity = "employees"

    def __init__(self, identity_store: IdentityMappingStore, source: RecordSource = RecordSource.SYNCHRONIZED):
        self.identity_store = identity_store
        self.source = source

    def natural_key(self, row: EmployeeRow) -> str:
        return row.external_scheduling_id

    def find_existing(self, session: Session, row: EmployeeRow) -> Optional[Employee]:
        return self.identity_store.find_by_scheduling_id(row.external_scheduling_id)

    def create(self, session: Session, row: EmployeeRow) -> Employee:
        employee = Employee(
            first_name=row.first_name,
            last_name=row.last_name,
            email=row.email,
            centre_code=row.centre_code,
            active_from=row.active_from,
            active_to=row.active_to,
            source=self.source,
        )
        session.add(employee)
        session.flush()
        return self.identity_store.upsert_identity(
            employee.id,
            external_scheduling_id=row.external_scheduling_id,
        )

    def update(self, session: Session, existing: Employee, row: EmployeeRow) -> Employee:
        _apply_present(existing, {
            "first_name": row.first_name,
            "last_name": row.last_name,
            "email": row.email,
            "centre_code": row.centre_code,
            "active_from": row.active_from,
            "active_to": row.active_to,
        })
        return existing


class ScheduleTarget(_EmployeeResolvingTarget):
    """Schedule entries keyed by (employee, work_date, service)."""

    entity = "schedules"

    def __init__(self, identity_store: IdentityMappingStore, source: RecordSource = RecordSource.SYNCHRONIZED):
        super().__init__(identity_store)
        self.source = source

    def natural_key(self, row: ScheduleRow) -> str:
        return f"{row.employee_ref}:{row.work_date.isoformat()}:{row.service_id}"

    def find_existing(self, session: Session, row: ScheduleRow) -> Optional[ScheduleEntry]:
        employee_id = self.resolve_employee(row.employee_ref)
        return session.execute(
            select(ScheduleEntry).where(
                ScheduleEntry.employee_id == employee_id,
                ScheduleEntry.work_date == row.work_date,
                ScheduleEntry.service_id == row.service_id,
            )
        ).scalar_one_or_none()

    def create(self, session: Session, row: ScheduleRow) -> ScheduleEntry:
        entry = ScheduleEntry(
            employee_id=self.resolve_employee(row.employee_ref),
            work_date=row.work_date,
            service_id=row.service_id,
            start_time=row.start_time,
            end_time=row.end_time,
            planned_hours=row.planned_hours,
            assignment_type=row.assignment_type,
            external_id=row.external_id,
            source=self.source,
        )
        session.add(entry)
        return entry

    def update(self, session: Session, existing: ScheduleEntry, row: ScheduleRow) -> ScheduleEntry:
        existing.planned_hours = row.planned_hours
        _apply_present(existing, {
            "start_time": row.start_time,
            "end_time": row.end_time,
            "assignment_type": row.assignment_type,
            "external_id": row.external_id,
        })
        return existing


class AbsenceTarget(_EmployeeResolvingTarget):
    """Absence entries keyed by (employee, date, type)."""

    entity = "absences"

    def __init__(self, identity_store: IdentityMappingStore, source: RecordSource = RecordSource.SYNCHRONIZED):
        super().__init__(identity_store)
        self.source = source

    def natural_key(self, row: AbsenceRow) -> str:
        return f"{row.employee_ref}:{row.absence_date.isoformat()}:{row.absence_type}"

    def find_existing(self, session: Session, row: AbsenceRow) -> Optional[AbsenceEntry]:
        employee_id = self.resolve_employee(row.employee_ref)
        return session.execute(
            select(AbsenceEntry).where(
                AbsenceEntry.employee_id == employee_id,
                AbsenceEntry.absence_date == row.absence_date,
                AbsenceEntry.absence_type == row.absence_type,
            )
        ).scalar_one_or_none()

    def create(self, session: Session, row: AbsenceRow) -> AbsenceEntry:
        entry = AbsenceEntry(
            employee_id=self.resolve_employee(row.employee_ref),
            absence_date=row.absence_date,
            absence_type=row.absence_type,
            hours=row.hours,
            reason=row.reason,
            external_id=row.external_id,
            source=self.source,
        )
        session.add(entry)
        return entry

    def update(self, session: Session, existing: AbsenceEntry, row: AbsenceRow) -> AbsenceEntry:
        existing.hours = row.hours
        _apply_present(existing, {
            "reason": row.reason,
            "external_id": row.external_id,
        })
        return existing


class PayrollTarget(_EmployeeResolvingTarget):
    """
    Payroll periods keyed by (employee, period_start, period_end).

    The employee reference may be a payroll code or a scheduling ID.
    """

    entity = "payrolls"

    def __init__(self, identity_store: IdentityMappingStore, source: RecordSource = RecordSource.IMPORTED):
        super().__init__(identity_store, scheduling_ids_only=False)
        self.source = source

    def natural_key(self, row: PayrollRow) -> str:
        return f"{row.employee_ref}:{row.period_start.isoformat()}:{row.period_end.isoformat()}"

    def find_existing(self, session: Session, row: PayrollRow) -> Optional[PayrollPeriod]:
        employee_id = self.resolve_employee(row.employee_ref)
        return session.execute(
            select(PayrollPeriod).where(
                PayrollPeriod.employee_id == employee_id,
                PayrollPeriod.period_start == row.period_start,
                PayrollPeriod.period_end == row.period_end,
            )
        ).scalar_one_or_none()

    def create(self, session: Session, row: PayrollRow) -> PayrollPeriod:
        if row.period_end < row.period_start:
            raise ValueError(f"Period ends ({row.period_end}) before it starts ({row.period_start})")
        payroll = PayrollPeriod(
            employee_id=self.resolve_employee(row.employee_ref),
            period_start=row.period_start,
            period_end=row.period_end,
            worked_hours=row.worked_hours or 0.0,
            vacation_hours=row.vacation_hours or 0.0,
            training_hours=row.training_hours or 0.0,
            total_cost=row.total_cost or 0.0,
            source=self.source,
        )
        session.add(payroll)
        return payroll

    def update(self, session: Session, existing: PayrollPeriod, row: PayrollRow) -> PayrollPeriod:
        _apply_present(existing, {
            "worked_hours": row.worked_hours,
            "vacation_hours": row.vacation_hours,
            "training_hours": row.training_hours,
            "total_cost": row.total_cost,
        })
        return existing
