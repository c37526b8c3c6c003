"""DataQualityIssue model for findings of the data quality rules."""

import enum
import uuid
from datetime import date, datetime
from typing import Any, Dict, Optional

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    Index,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from workforce_sync.models.base import Base, JSONType, utcnow


class IssueKind(enum.Enum):
    """Data quality rules."""

    PLAN_SIN_REAL = "PLAN_SIN_REAL"
    REAL_SIN_PLAN = "REAL_SIN_PLAN"
    COSTE_ATIPICO = "COSTE_ATIPICO"
    EMPLEADO_SIN_CENTRO = "EMPLEADO_SIN_CENTRO"

    @property
    def label(self) -> str:
        return ISSUE_KIND_LABELS[self]


ISSUE_KIND_LABELS = {
    IssueKind.PLAN_SIN_REAL: "Horas planificadas sin nómina",
    IssueKind.REAL_SIN_PLAN: "Horas trabajadas sin planificación",
    IssueKind.COSTE_ATIPICO: "Coste/hora atípico",
    IssueKind.EMPLEADO_SIN_CENTRO: "Empleado sin centro",
}


class IssueSeverity(enum.Enum):
    """Severity scale shared by data quality issues and alerts."""

    CRITICA = "critica"
    ALTA = "alta"
    MEDIA = "media"
    BAJA = "baja"


class DataQualityIssue(Base):
    """
    A data quality finding.

    While open, the engine refreshes its detail and severity on each
    recalculation. Only an explicit resolve action closes it.
    """

    __tablename__ = "dq_issues"

    # Primary Key
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    kind: Mapped[IssueKind] = mapped_column(
        Enum(IssueKind, name="dq_issue_kind"),
        nullable=False,
    )
    severity: Mapped[IssueSeverity] = mapped_column(
        Enum(IssueSeverity, name="issue_severity"),
        nullable=False,
    )

    # Subject of the finding
    employee_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True, index=True)
    centre_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)

    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)

    detail: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    # Resolution
    resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    resolved_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

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

    __table_args__ = (
        Index("idx_dq_issues_key", "kind", "employee_id", "period_start", "period_end"),
        Index("idx_dq_issues_open", "resolved", "severity"),
    )

    def __repr__(self) -> str:
        return (
            f"<DataQualityIssue(id={self.id}, kind={self.kind.value if self.kind else None}, "
            f"severity={self.severity.value if self.severity else None}, resolved={self.resolved})>"
        )
