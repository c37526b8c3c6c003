"""SyncJobLog model recording every scheduling synchronization run."""

import enum
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    DateTime,
    Enum,
    Index,
    Integer,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from workforce_sync.models.base import Base, JSONType, utcnow
from workforce_sync.utils.errors import JobAlreadyFinalizedError


class SyncEntityKind(enum.Enum):
    """What a sync job pulls from the scheduling platform."""

    EMPLOYEES = "employees"
    SCHEDULES = "schedules"
    ABSENCES = "absences"
    FULL = "full"


class SyncTrigger(enum.Enum):
    """Who started a sync job."""

    MANUAL = "manual"
    CRON = "cron"


class SyncJobStatus(enum.Enum):
    """Lifecycle of a sync job: running, then exactly one terminal state."""

    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class SyncJobLog(Base):
    """
    Audit record of a synchronization run.

    Created in ``running`` when the job starts and finalized exactly once.
    A finalized log is never mutated again.
    """

    __tablename__ = "sync_job_logs"

    # Primary Key
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    entity_kind: Mapped[SyncEntityKind] = mapped_column(
        Enum(SyncEntityKind, name="sync_entity_kind"),
        nullable=False,
    )
    trigger_source: Mapped[SyncTrigger] = mapped_column(
        Enum(SyncTrigger, name="sync_trigger"),
        nullable=False,
        default=SyncTrigger.MANUAL,
    )
    triggered_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)

    # Date range, lookback days and centre filter the job ran with
    params: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    status: Mapped[SyncJobStatus] = mapped_column(
        Enum(SyncJobStatus, name="sync_job_status"),
        nullable=False,
        default=SyncJobStatus.RUNNING,
    )

    # Row counters
    total_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    inserted_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Ordered structured errors: kind, identifier, centre, message
    errors: Mapped[List[Dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    # Per centre and entity counters
    phase_results: Mapped[List[Dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)

    # Timestamps
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    __table_args__ = (
        Index("idx_sync_job_logs_started", "started_at"),
        Index("idx_sync_job_logs_status", "status"),
    )

    @property
    def is_finalized(self) -> bool:
        return self.status != SyncJobStatus.RUNNING

    def finalize(
        self,
        status: SyncJobStatus,
        counters: Optional[Dict[str, int]] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        phase_results: Optional[List[Dict[str, Any]]] = None,
        completed_at: Optional[datetime] = None,
    ) -> None:
        """
        Move the log to its terminal state.

        Raises:
            JobAlreadyFinalizedError: If the log already left ``running``.
            ValueError: If ``status`` is not a terminal state.
        """
        if self.is_finalized:
            raise JobAlreadyFinalizedError(
                message=f"Sync job {self.id} already finalized as {self.status.value}",
                details={"job_id": str(self.id), "status": self.status.value},
            )
        if status == SyncJobStatus.RUNNING:
            raise ValueError("A sync job cannot be finalized as running")

        if counters:
            self.total_rows = counters.get("total", 0)
            self.inserted_rows = counters.get("inserted", 0)
            self.updated_rows = counters.get("updated", 0)
            self.skipped_rows = counters.get("skipped", 0)
            self.error_rows = counters.get("errors", 0)
        if errors is not None:
            # Reassign so the JSON column is flagged dirty
            self.errors = list(errors)
        if phase_results is not None:
            self.phase_results = list(phase_results)

        self.status = status
        self.completed_at = completed_at or utcnow()

    def __repr__(self) -> str:
        return (
            f"<SyncJobLog(id={self.id}, entity={self.entity_kind.value if self.entity_kind else None}, "
            f"status={self.status.value if self.status else None})>"
        )
