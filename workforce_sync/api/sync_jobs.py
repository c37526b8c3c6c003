"""API endpoints for scheduling platform synchronization jobs."""

import uuid
from datetime import date, datetime
from typing import Annotated, Any, Dict, Generator, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from workforce_sync.database.database import get_db
from workforce_sync.models.sync_job_log import (
    SyncEntityKind,
    SyncJobLog,
    SyncJobStatus,
    SyncTrigger,
)
from workforce_sync.services.export_service import ExportService
from workforce_sync.services.scheduling_client import SchedulingApiClient
from workforce_sync.services.sync_orchestrator import (
    SyncOrchestrator,
    SyncRequest,
    build_scheduling_client,
)
from workforce_sync.utils.auth import CurrentUser, UserRole, require_roles


require_sync_permission = require_roles(UserRole.ADMIN, UserRole.GESTOR)


def get_scheduling_client() -> Generator[SchedulingApiClient, None, None]:
    """Dependency that provides a configured scheduling platform client."""
    with build_scheduling_client() as client:
        yield client


# =============================================================================
# Request/Response Models
# =============================================================================

class SyncJobRequest(BaseModel):
    """Manual synchronization request."""

    entity_kind: SyncEntityKind = Field(default=SyncEntityKind.FULL)
    # Upper bound comes from SyncSettings.max_days_back, checked when the window is resolved
    days_back: Optional[int] = Field(None, ge=1, description="Lookback ending today")
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    centre_code: Optional[str] = Field(None, description="Restrict the run to one centre")


class SyncJobResponse(BaseModel):
    """Sync job log."""

    id: uuid.UUID
    entity_kind: SyncEntityKind
    trigger_source: SyncTrigger
    triggered_by: Optional[uuid.UUID] = None
    status: SyncJobStatus
    params: Dict[str, Any] = Field(default_factory=dict)
    total_rows: int
    inserted_rows: int
    updated_rows: int
    skipped_rows: int
    error_rows: int
    errors: List[Dict[str, Any]] = Field(default_factory=list)
    phase_results: List[Dict[str, Any]] = Field(default_factory=list)
    started_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SyncJobListResponse(BaseModel):
    items: List[SyncJobResponse]
    limit: int
    offset: int


# =============================================================================
# Router
# =============================================================================

sync_jobs_router = APIRouter(
    prefix="/api/sync",
    tags=["Scheduling Sync"],
)


@sync_jobs_router.post(
    "/jobs",
    response_model=SyncJobResponse,
    summary="Run Sync Job",
    description="Pull employees, schedules and absences from the scheduling platform.",
)
def run_sync_job(
    request: SyncJobRequest,
    current_user: Annotated[CurrentUser, Depends(require_sync_permission)],
    session: Annotated[Session, Depends(get_db)],
    client: Annotated[SchedulingApiClient, Depends(get_scheduling_client)],
) -> SyncJobResponse:
    """
    Run a manual sync to completion.

    The returned log is already finalized: ``completed``, ``partial`` when
    some calls or rows failed, or ``failed``.
    """
    log = SyncOrchestrator(session, client).run(
        SyncRequest(
            entity_kind=request.entity_kind,
            days_back=request.days_back,
            start_date=request.start_date,
            end_date=request.end_date,
            centre_code=request.centre_code,
        ),
        trigger=SyncTrigger.MANUAL,
        triggered_by=current_user.id,
    )
    return SyncJobResponse.model_validate(log)


@sync_jobs_router.get(
    "/jobs",
    response_model=SyncJobListResponse,
    summary="List Sync Jobs",
)
async def list_sync_jobs(
    current_user: Annotated[CurrentUser, Depends(require_sync_permission)],
    session: Annotated[Session, Depends(get_db)],
    status: Optional[SyncJobStatus] = None,
    entity_kind: Optional[SyncEntityKind] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> SyncJobListResponse:
    logs = SyncOrchestrator(session).list_jobs(
        status=status,
        entity_kind=entity_kind,
        limit=limit,
        offset=offset,
    )
    return SyncJobListResponse(
        items=[SyncJobResponse.model_validate(log) for log in logs],
        limit=limit,
        offset=offset,
    )


@sync_jobs_router.get(
    "/jobs/export.csv",
    summary="Export Sync Jobs",
    description="Download the sync job logs as CSV.",
)
async def export_sync_jobs(
    current_user: Annotated[CurrentUser, Depends(require_sync_permission)],
    session: Annotated[Session, Depends(get_db)],
    status: Optional[SyncJobStatus] = None,
    entity_kind: Optional[SyncEntityKind] = None,
    limit: Annotated[int, Query(ge=1, le=10000)] = 1000,
) -> StreamingResponse:
    logs: List[SyncJobLog] = SyncOrchestrator(session).list_jobs(
        status=status,
        entity_kind=entity_kind,
        limit=limit,
    )
    content = ExportService(session).export_sync_logs(logs)
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=sync_jobs.csv"},
    )


@sync_jobs_router.get(
    "/jobs/{job_id}",
    response_model=SyncJobResponse,
    summary="Get Sync Job",
)
async def get_sync_job(
    job_id: uuid.UUID,
    current_user: Annotated[CurrentUser, Depends(require_sync_permission)],
    session: Annotated[Session, Depends(get_db)],
) -> SyncJobResponse:
    return SyncJobResponse.model_validate(SyncOrchestrator(session).get_job(job_id))


@sync_jobs_router.post(
    "/jobs/{job_id}/cancel",
    response_model=SyncJobResponse,
    summary="Cancel Sync Job",
    description="Mark a running job failed; it stops before its next chunk.",
)
async def cancel_sync_job(
    job_id: uuid.UUID,
    current_user: Annotated[CurrentUser, Depends(require_sync_permission)],
    session: Annotated[Session, Depends(get_db)],
) -> SyncJobResponse:
    log = SyncOrchestrator(session).cancel(job_id, cancelled_by=current_user.id)
    return SyncJobResponse.model_validate(log)
