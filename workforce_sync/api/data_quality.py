"""API endpoints for data quality recalculation and issue management."""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from workforce_sync.database.database import get_db
from workforce_sync.models.data_quality_issue import IssueKind, IssueSeverity
from workforce_sync.services.data_quality_service import DataQualityEngine, IssueFilters
from workforce_sync.services.export_service import ExportService
from workforce_sync.utils.auth import CurrentUser, UserRole, require_roles


require_quality_read = require_roles(UserRole.ADMIN, UserRole.GESTOR, UserRole.FRANQUICIADO, UserRole.ASESORIA)
require_quality_write = require_roles(UserRole.ADMIN, UserRole.GESTOR)


class IssueStatusFilter(str, Enum):
    ALL = "all"
    PENDING = "pending"
    RESOLVED = "resolved"


# =============================================================================
# Request/Response Models
# =============================================================================

class RecalculateRequest(BaseModel):
    """Window to recalculate, both ends inclusive."""

    start: date
    end: date
    centre_code: Optional[str] = Field(None, description="Restrict the rules to one centre")


class RecalculateResponse(BaseModel):
    period_start: date
    period_end: date
    centre_code: Optional[str] = None
    issues_detected: int
    created: int
    refreshed: int
    by_kind: Dict[str, int] = Field(default_factory=dict)
    rule_errors: Dict[str, str] = Field(default_factory=dict)


class IssueResponse(BaseModel):
    """Data quality issue."""

    id: uuid.UUID
    kind: IssueKind
    severity: IssueSeverity
    employee_id: Optional[uuid.UUID] = None
    centre_code: Optional[str] = None
    period_start: date
    period_end: date
    detail: Dict[str, Any] = Field(default_factory=dict)
    resolved: bool
    resolved_at: Optional[datetime] = None
    resolved_by: Optional[uuid.UUID] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class IssueListResponse(BaseModel):
    items: List[IssueResponse]
    limit: int
    offset: int


# =============================================================================
# Router
# =============================================================================

data_quality_router = APIRouter(
    prefix="/api/data-quality",
    tags=["Data Quality"],
)


def _filters(
    start: Optional[date],
    end: Optional[date],
    centre_code: Optional[str],
    severity: Optional[IssueSeverity],
    kind: Optional[IssueKind],
    status: IssueStatusFilter,
    limit: int,
    offset: int = 0,
) -> IssueFilters:
    return IssueFilters(
        start=start,
        end=end,
        centre_code=centre_code,
        severity=severity,
        kind=kind,
        status=status.value,
        limit=limit,
        offset=offset,
    )


@data_quality_router.post(
    "/recalculate",
    response_model=RecalculateResponse,
    summary="Recalculate Data Quality",
    description="Run every rule over the window and upsert the open issues.",
)
def recalculate_data_quality(
    request: RecalculateRequest,
    current_user: Annotated[CurrentUser, Depends(require_quality_write)],
    session: Annotated[Session, Depends(get_db)],
) -> RecalculateResponse:
    """
    Recalculate issues.

    Running the same window twice refreshes the open issues instead of
    duplicating them. A failing rule is reported in ``rule_errors`` and does
    not stop the other rules.
    """
    result = DataQualityEngine(session).recalculate(request.start, request.end, request.centre_code)
    return RecalculateResponse(**result.to_dict())


@data_quality_router.get(
    "/issues",
    response_model=IssueListResponse,
    summary="List Data Quality Issues",
)
async def list_issues(
    current_user: Annotated[CurrentUser, Depends(require_quality_read)],
    session: Annotated[Session, Depends(get_db)],
    start: Optional[date] = None,
    end: Optional[date] = None,
    centre_code: Optional[str] = None,
    severity: Optional[IssueSeverity] = None,
    kind: Optional[IssueKind] = None,
    status: IssueStatusFilter = IssueStatusFilter.ALL,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> IssueListResponse:
    filters = _filters(start, end, centre_code, severity, kind, status, limit, offset)
    issues = DataQualityEngine(session).list_issues(filters)
    return IssueListResponse(
        items=[IssueResponse.model_validate(issue) for issue in issues],
        limit=limit,
        offset=offset,
    )


@data_quality_router.get(
    "/issues/export.csv",
    summary="Export Data Quality Issues",
    description="Download the filtered issues as CSV.",
)
async def export_issues(
    current_user: Annotated[CurrentUser, Depends(require_quality_read)],
    session: Annotated[Session, Depends(get_db)],
    start: Optional[date] = None,
    end: Optional[date] = None,
    centre_code: Optional[str] = None,
    severity: Optional[IssueSeverity] = None,
    kind: Optional[IssueKind] = None,
    status: IssueStatusFilter = IssueStatusFilter.ALL,
    limit: Annotated[int, Query(ge=1, le=10000)] = 5000,
) -> StreamingResponse:
    filters = _filters(start, end, centre_code, severity, kind, status, limit)
    issues = DataQualityEngine(session).list_issues(filters)
    content = ExportService(session).export_issues(issues)
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=data_quality_issues.csv"},
    )


@data_quality_router.post(
    "/issues/{issue_id}/resolve",
    response_model=IssueResponse,
    summary="Resolve Data Quality Issue",
)
async def resolve_issue(
    issue_id: uuid.UUID,
    current_user: Annotated[CurrentUser, Depends(require_quality_write)],
    session: Annotated[Session, Depends(get_db)],
) -> IssueResponse:
    issue = DataQualityEngine(session).resolve(issue_id, user_id=current_user.id)
    return IssueResponse.model_validate(issue)
