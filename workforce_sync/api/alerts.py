"""API endpoints for alert rules, evaluation and notifications."""

import uuid
from datetime import date, datetime
from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from workforce_sync.database.database import get_db
from workforce_sync.models.alert import AlertKind, AlertOperator, AlertPeriod
from workforce_sync.models.data_quality_issue import IssueSeverity
from workforce_sync.services.alert_service import AlertEvaluator
from workforce_sync.services.export_service import ExportService
from workforce_sync.utils.auth import CurrentUser, UserRole, require_roles


require_alert_read = require_roles(UserRole.ADMIN, UserRole.GESTOR, UserRole.FRANQUICIADO)
require_alert_admin = require_roles(UserRole.ADMIN, UserRole.GESTOR)


# =============================================================================
# Request/Response Models
# =============================================================================

class CreateRuleRequest(BaseModel):
    """Alert rule definition."""

    name: str = Field(..., min_length=1, max_length=255)
    kind: AlertKind
    threshold: float
    operator: str = Field(default=">", description="'>', '<', '=' or a named alias such as 'mayor_que'")
    period: AlertPeriod = Field(default=AlertPeriod.ULTIMA_SEMANA)
    centre_code: Optional[str] = Field(None, description="Watch one centre; all centres when omitted")
    channels: List[str] = Field(default_factory=lambda: ["inapp"])
    recipients: List[str] = Field(default_factory=list, description="Email recipients")


class RuleResponse(BaseModel):
    id: uuid.UUID
    name: str
    kind: AlertKind
    threshold: float
    operator: AlertOperator
    period: AlertPeriod
    centre_code: Optional[str] = None
    channels: List[str] = Field(default_factory=list)
    recipients: List[str] = Field(default_factory=list)
    active: bool
    created_by: Optional[uuid.UUID] = None
    created_at: datetime

    class Config:
        from_attributes = True


class RuleListResponse(BaseModel):
    items: List[RuleResponse]


class RuleOutcomeInfo(BaseModel):
    rule_id: uuid.UUID
    kind: AlertKind
    value: Optional[float] = None
    triggered: bool
    notification_id: Optional[uuid.UUID] = None
    error: Optional[str] = None
    dispatch_errors: List[str] = Field(default_factory=list)


class EvaluationResponse(BaseModel):
    evaluated: int
    triggered: int
    outcomes: List[RuleOutcomeInfo] = Field(default_factory=list)


class NotificationResponse(BaseModel):
    id: uuid.UUID
    rule_id: Optional[uuid.UUID] = None
    kind: AlertKind
    severity: IssueSeverity
    title: str
    message: str
    detail: Dict[str, Any] = Field(default_factory=dict)
    centre_code: Optional[str] = None
    channels: List[str] = Field(default_factory=list)
    read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class NotificationListResponse(BaseModel):
    items: List[NotificationResponse]
    limit: int
    offset: int


# =============================================================================
# Router
# =============================================================================

alerts_router = APIRouter(
    prefix="/api/alerts",
    tags=["Alerts"],
)


@alerts_router.post(
    "/rules",
    response_model=RuleResponse,
    status_code=201,
    summary="Create Alert Rule",
)
async def create_rule(
    request: CreateRuleRequest,
    current_user: Annotated[CurrentUser, Depends(require_alert_admin)],
    session: Annotated[Session, Depends(get_db)],
) -> RuleResponse:
    rule = AlertEvaluator(session).create_rule(
        name=request.name,
        kind=request.kind,
        threshold=request.threshold,
        operator=request.operator,
        period=request.period,
        centre_code=request.centre_code,
        channels=request.channels,
        recipients=request.recipients,
        created_by=current_user.id,
    )
    return RuleResponse.model_validate(rule)


@alerts_router.get(
    "/rules",
    response_model=RuleListResponse,
    summary="List Alert Rules",
)
async def list_rules(
    current_user: Annotated[CurrentUser, Depends(require_alert_read)],
    session: Annotated[Session, Depends(get_db)],
    active_only: bool = False,
) -> RuleListResponse:
    rules = AlertEvaluator(session).list_rules(active_only=active_only)
    return RuleListResponse(items=[RuleResponse.model_validate(rule) for rule in rules])


@alerts_router.post(
    "/evaluate",
    response_model=EvaluationResponse,
    summary="Evaluate Alert Rules",
    description="Measure every active rule over its period and record notifications.",
)
def evaluate_rules(
    current_user: Annotated[CurrentUser, Depends(require_alert_admin)],
    session: Annotated[Session, Depends(get_db)],
    today: Optional[date] = Query(None, description="Reference day the rule periods end on"),
) -> EvaluationResponse:
    """
    Evaluate every active rule.

    A rule whose measurement fails is reported with its error and does not
    stop the remaining rules.
    """
    result = AlertEvaluator(session).evaluate_all(today=today)
    return EvaluationResponse(**result.to_dict())


@alerts_router.get(
    "/notifications",
    response_model=NotificationListResponse,
    summary="List Notifications",
)
async def list_notifications(
    current_user: Annotated[CurrentUser, Depends(require_alert_read)],
    session: Annotated[Session, Depends(get_db)],
    unread_only: bool = False,
    centre_code: Optional[str] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> NotificationListResponse:
    notifications = AlertEvaluator(session).list_notifications(
        unread_only=unread_only,
        centre_code=centre_code,
        limit=limit,
        offset=offset,
    )
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(n) for n in notifications],
        limit=limit,
        offset=offset,
    )


@alerts_router.get(
    "/notifications/export.csv",
    summary="Export Notifications",
    description="Download the notifications as CSV.",
)
async def export_notifications(
    current_user: Annotated[CurrentUser, Depends(require_alert_read)],
    session: Annotated[Session, Depends(get_db)],
    unread_only: bool = False,
    centre_code: Optional[str] = None,
    limit: Annotated[int, Query(ge=1, le=10000)] = 5000,
) -> StreamingResponse:
    notifications = AlertEvaluator(session).list_notifications(
        unread_only=unread_only,
        centre_code=centre_code,
        limit=limit,
    )
    content = ExportService(session).export_notifications(notifications)
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=alert_notifications.csv"},
    )


@alerts_router.post(
    "/notifications/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark Notification Read",
)
async def mark_notification_read(
    notification_id: uuid.UUID,
    current_user: Annotated[CurrentUser, Depends(require_alert_read)],
    session: Annotated[Session, Depends(get_db)],
) -> NotificationResponse:
    notification = AlertEvaluator(session).mark_read(notification_id)
    return NotificationResponse.model_validate(notification)
