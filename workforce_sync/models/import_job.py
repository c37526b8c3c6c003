"""ImportJob model for tracking executed file imports."""

import enum
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Integer,
    String,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from workforce_sync.models.base import Base, JSONType, utcnow


class FileKind(enum.Enum):
    """Kinds of spreadsheet accepted by the importer."""

    RESTAURANT = "restaurant"
    PAYROLL = "payroll"


class ImportStrategy(enum.Enum):
    """How rows are written when a record with the same natural key exists."""

    INSERT = "insert"
    UPSERT = "upsert"
    SKIP = "skip"


class ImportJobStatus(enum.Enum):
    """Status values for import job processing."""

    PROCESSING = "processing"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"


class ImportJob(Base):
    """
    Log of a single executed file import.

    Created when the write phase starts and closed with the counters
    returned by the batch reconciler.
    """

    __tablename__ = "import_jobs"

    # Primary Key
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # Who ran it
    created_by_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
        index=True,
    )

    # File information
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_kind: Mapped[FileKind] = mapped_column(
        Enum(FileKind, name="file_kind"),
        nullable=False,
    )
    strategy: Mapped[ImportStrategy] = mapped_column(
        Enum(ImportStrategy, name="import_strategy"),
        nullable=False,
        default=ImportStrategy.UPSERT,
    )
    forced: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Status
    status: Mapped[ImportJobStatus] = mapped_column(
        Enum(ImportJobStatus, name="import_job_status"),
        nullable=False,
        default=ImportJobStatus.PROCESSING,
        index=True,
    )

    # Row counters
    total_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    inserted_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Mapping used and per-row failures
    column_mapping: Mapped[Optional[Dict[str, Any]]] = mapped_column(
        JSONType,
        nullable=True,
        default=None,
    )
    error_details: Mapped[Optional[List[Dict[str, Any]]]] = mapped_column(
        JSONType,
        nullable=True,
        default=None,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<ImportJob(id={self.id}, file_name={self.file_name}, "
            f"status={self.status.value if self.status else None})>"
        )
