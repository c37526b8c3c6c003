"""MappingProfile model for saved column mapping snapshots."""

import uuid
from datetime import datetime
from typing import Dict

from sqlalchemy import (
    DateTime,
    Enum,
    Index,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from workforce_sync.models.base import Base, JSONType, utcnow
from workforce_sync.models.import_job import FileKind


class MappingProfile(Base):
    """
    Named snapshot of a column mapping owned by a user.

    Saving a profile under an existing name replaces the snapshot.
    """

    __tablename__ = "mapping_profiles"

    # Primary Key
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    file_kind: Mapped[FileKind] = mapped_column(
        Enum(FileKind, name="file_kind"),
        nullable=False,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Raw column -> canonical field
    column_mappings: Mapped[Dict[str, str]] = mapped_column(
        JSONType,
        nullable=False,
        default=dict,
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

    __table_args__ = (
        UniqueConstraint("user_id", "file_kind", "name", name="uq_mapping_profile_user_kind_name"),
        Index("idx_mapping_profiles_user_kind", "user_id", "file_kind"),
    )

    def __repr__(self) -> str:
        return (
            f"<MappingProfile(id={self.id}, name={self.name}, "
            f"file_kind={self.file_kind.value if self.file_kind else None})>"
        )
