"""SQLAlchemy models for centres, employees and their time/cost records."""

import enum
import uuid
from datetime import date, datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from workforce_sync.models.base import Base, utcnow


class RecordSource(enum.Enum):
    """Provenance of a stored record."""

    MANUAL = "manual"
    IMPORTED = "imported"
    SYNCHRONIZED = "synchronized"


class Centre(Base):
    """
    Operating location (restaurant) that employees are assigned to.

    A centre takes part in scheduling synchronization only when it is
    active and carries a scheduling service identifier.
    """

    __tablename__ = "centres"

    # Primary Key
    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    # Basic Information
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Address Fields
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    city: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    state: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    postal_code: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    country: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Operational Fields
    opening_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    seating_capacity: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    square_meters: Mapped[Optional[float]] = mapped_column(
        Numeric(10, 2, asdecimal=False),
        nullable=True,
    )
    franchisee_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    franchisee_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Scheduling platform identifiers
    scheduling_service_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
    )
    scheduling_business_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Status
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    source: Mapped[RecordSource] = mapped_column(
        Enum(RecordSource, name="record_source"),
        nullable=False,
        default=RecordSource.MANUAL,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    @property
    def is_syncable(self) -> bool:
        """Whether the centre takes part in scheduling synchronization."""
        return bool(self.active and self.scheduling_service_id)

    def __repr__(self) -> str:
        return f"<Centre(id={self.id}, code={self.code}, name={self.name})>"


class Employee(Base):
    """
    Internal employee record.

    The internal ID is generated once and never changes. The external
    scheduling ID and the payroll code are each bound to at most one
    record; bindings are managed through the identity mapping store.
    """

    __tablename__ = "employees"

    # Primary Key
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # Personal Information
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Assignment
    centre_code: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        index=True,
    )

    # Cross-system identifiers
    external_scheduling_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        unique=True,
        nullable=True,
    )
    payroll_code: Mapped[Optional[str]] = mapped_column(
        String(100),
        unique=True,
        nullable=True,
    )

    # Employment window
    active_from: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    active_to: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    source: Mapped[RecordSource] = mapped_column(
        Enum(RecordSource, name="record_source"),
        nullable=False,
        default=RecordSource.MANUAL,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    # Relationships
    schedules: Mapped[List["ScheduleEntry"]] = relationship(
        "ScheduleEntry",
        back_populates="employee",
        cascade="all, delete-orphan",
    )
    absences: Mapped[List["AbsenceEntry"]] = relationship(
        "AbsenceEntry",
        back_populates="employee",
        cascade="all, delete-orphan",
    )
    payrolls: Mapped[List["PayrollPeriod"]] = relationship(
        "PayrollPeriod",
        back_populates="employee",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_employees_name", "last_name", "first_name"),
    )

    @property
    def display_name(self) -> str:
        """Full name for listings and exports."""
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    def is_active_on(self, day: date) -> bool:
        """Check whether the employment window covers the given day."""
        if self.active_from and day < self.active_from:
            return False
        if self.active_to and day > self.active_to:
            return False
        return True

    def __repr__(self) -> str:
        return (
            f"<Employee("
            f"id={self.id}, "
            f"name={self.display_name}, "
            f"external_scheduling_id={self.external_scheduling_id}, "
            f"payroll_code={self.payroll_code})>"
        )


class ScheduleEntry(Base):
    """Planned shift for an employee on a given day and service."""

    __tablename__ = "schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    service_id: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    start_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    planned_hours: Mapped[float] = mapped_column(
        Numeric(6, 2, asdecimal=False),
        nullable=False,
        default=0.0,
    )
    assignment_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    external_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    source: Mapped[RecordSource] = mapped_column(
        Enum(RecordSource, name="record_source"),
        nullable=False,
        default=RecordSource.MANUAL,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    employee: Mapped["Employee"] = relationship("Employee", back_populates="schedules")

    __table_args__ = (
        UniqueConstraint("employee_id", "work_date", "service_id", name="uq_schedules_natural_key"),
        Index("idx_schedules_work_date", "work_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<ScheduleEntry(employee_id={self.employee_id}, "
            f"work_date={self.work_date}, hours={self.planned_hours})>"
        )


class AbsenceEntry(Base):
    """Absence of an employee on a given day."""

    __tablename__ = "absences"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    absence_date: Mapped[date] = mapped_column(Date, nullable=False)
    absence_type: Mapped[str] = mapped_column(String(100), nullable=False, default="Ausencia")
    hours: Mapped[float] = mapped_column(
        Numeric(6, 2, asdecimal=False),
        nullable=False,
        default=8.0,
    )
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    external_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    source: Mapped[RecordSource] = mapped_column(
        Enum(RecordSource, name="record_source"),
        nullable=False,
        default=RecordSource.MANUAL,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    employee: Mapped["Employee"] = relationship("Employee", back_populates="absences")

    __table_args__ = (
        UniqueConstraint("employee_id", "absence_date", "absence_type", name="uq_absences_natural_key"),
        Index("idx_absences_date", "absence_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<AbsenceEntry(employee_id={self.employee_id}, "
            f"date={self.absence_date}, type={self.absence_type})>"
        )


class PayrollPeriod(Base):
    """Payroll figures for an employee over a pay period."""

    __tablename__ = "payrolls"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    worked_hours: Mapped[float] = mapped_column(
        Numeric(8, 2, asdecimal=False),
        nullable=False,
        default=0.0,
    )
    vacation_hours: Mapped[float] = mapped_column(
        Numeric(8, 2, asdecimal=False),
        nullable=False,
        default=0.0,
    )
    training_hours: Mapped[float] = mapped_column(
        Numeric(8, 2, asdecimal=False),
        nullable=False,
        default=0.0,
    )
    total_cost: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False),
        nullable=False,
        default=0.0,
    )

    source: Mapped[RecordSource] = mapped_column(
        Enum(RecordSource, name="record_source"),
        nullable=False,
        default=RecordSource.IMPORTED,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
    )

    employee: Mapped["Employee"] = relationship("Employee", back_populates="payrolls")

    __table_args__ = (
        UniqueConstraint("employee_id", "period_start", "period_end", name="uq_payrolls_natural_key"),
        Index("idx_payrolls_period", "period_start", "period_end"),
    )

    @property
    def cost_per_hour(self) -> Optional[float]:
        """Total cost divided by worked hours, when hours were worked."""
        if not self.worked_hours:
            return None
        return float(self.total_cost) / float(self.worked_hours)

    def __repr__(self) -> str:
        return (
            f"<PayrollPeriod(employee_id={self.employee_id}, "
            f"period={self.period_start}..{self.period_end})>"
        )
