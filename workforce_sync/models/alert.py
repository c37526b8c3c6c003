"""Alert rule and notification models."""

import enum
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from workforce_sync.models.base import Base, JSONType, utcnow
from workforce_sync.models.data_quality_issue import IssueSeverity


class AlertKind(enum.Enum):
    """Metrics an alert rule can watch."""

    ABSENTISMO_ALTO = "ABSENTISMO_ALTO"
    COSTE_EXCESIVO = "COSTE_EXCESIVO"
    DQ_CRITICA = "DQ_CRITICA"
    PLANIFICACION_VACIA = "PLANIFICACION_VACIA"


class AlertOperator(enum.Enum):
    """Comparison between the measured metric and the rule threshold."""

    GREATER_THAN = ">"
    LESS_THAN = "<"
    EQUAL_TO = "="

    @classmethod
    def parse(cls, value: str) -> "AlertOperator":
        """Accept symbols as well as the named operators used by rule editors."""
        aliases = {
            "mayor_que": cls.GREATER_THAN,
            "menor_que": cls.LESS_THAN,
            "igual_a": cls.EQUAL_TO,
            "gt": cls.GREATER_THAN,
            "lt": cls.LESS_THAN,
            "eq": cls.EQUAL_TO,
        }
        key = value.strip()
        if key in aliases:
            return aliases[key]
        return cls(key)

    def compare(self, measured: float, threshold: float) -> bool:
        if self is AlertOperator.GREATER_THAN:
            return measured > threshold
        if self is AlertOperator.LESS_THAN:
            return measured < threshold
        return abs(measured - threshold) < 1e-9


class AlertPeriod(enum.Enum):
    """Lookback window a rule is evaluated over."""

    ULTIMO_DIA = "ultimo_dia"
    ULTIMA_SEMANA = "ultima_semana"
    ULTIMO_MES = "ultimo_mes"


class AlertChannel(enum.Enum):
    """Delivery channels for notifications."""

    INAPP = "inapp"
    EMAIL = "email"


class AlertRule(Base):
    """Threshold rule evaluated periodically against reconciled data."""

    __tablename__ = "alert_rules"

    # Primary Key
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    kind: Mapped[AlertKind] = mapped_column(
        Enum(AlertKind, name="alert_kind"),
        nullable=False,
    )
    centre_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    threshold: Mapped[float] = mapped_column(Float, nullable=False)
    operator: Mapped[AlertOperator] = mapped_column(
        Enum(AlertOperator, name="alert_operator"),
        nullable=False,
        default=AlertOperator.GREATER_THAN,
    )
    period: Mapped[AlertPeriod] = mapped_column(
        Enum(AlertPeriod, name="alert_period"),
        nullable=False,
        default=AlertPeriod.ULTIMA_SEMANA,
    )

    # Channel values and recipient emails
    channels: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=lambda: ["inapp"])
    recipients: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
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
    def enabled_channels(self) -> List[AlertChannel]:
        return [AlertChannel(value) for value in (self.channels or [])]

    def __repr__(self) -> str:
        return f"<AlertRule(id={self.id}, name={self.name}, kind={self.kind.value if self.kind else None})>"


class AlertNotification(Base):
    """
    One firing of an alert rule.

    Immutable once created, except for the read flag.
    """

    __tablename__ = "alert_notifications"

    # Primary Key
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    rule_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("alert_rules.id", ondelete="SET NULL"),
        nullable=True,
    )
    kind: Mapped[AlertKind] = mapped_column(
        Enum(AlertKind, name="alert_kind"),
        nullable=False,
    )
    severity: Mapped[IssueSeverity] = mapped_column(
        Enum(IssueSeverity, name="issue_severity"),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    detail: Mapped[Dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    centre_code: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    channels: Mapped[List[str]] = mapped_column(JSONType, nullable=False, default=list)

    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("idx_alert_notifications_unread", "read", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<AlertNotification(id={self.id}, kind={self.kind.value if self.kind else None}, "
            f"read={self.read})>"
        )
