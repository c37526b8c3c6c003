"""API endpoints for the two-phase spreadsheet import and mapping profiles."""

import uuid
from datetime import datetime
from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from workforce_sync.database.database import get_db
from workforce_sync.models.import_job import FileKind, ImportJob, ImportJobStatus, ImportStrategy
from workforce_sync.services.import_service import (
    MAX_STORED_ERRORS,
    ImportFile,
    ImportRequest,
    ImportService,
)
from workforce_sync.utils.auth import CurrentUser, UserRole, require_roles


# Violations returned inline; the full list stays available through a re-preview
MAX_RETURNED_VIOLATIONS = 1000

require_import_permission = require_roles(UserRole.ADMIN, UserRole.GESTOR, UserRole.ASESORIA)


# =============================================================================
# Request/Response Models
# =============================================================================

class ImportPayload(BaseModel):
    """Parsed spreadsheet sent by the client."""

    file_kind: FileKind = Field(..., description="Kind of spreadsheet")
    file_name: str = Field(..., min_length=1, max_length=255)
    headers: Optional[List[str]] = Field(
        None,
        description="Header row in file order (defaults to the keys of the rows)",
    )
    rows: List[Dict[str, Any]] = Field(..., description="Rows keyed by raw header")
    column_mapping: Optional[Dict[str, str]] = Field(
        None,
        description="Explicit raw column -> canonical field mapping",
    )
    profile_name: Optional[str] = Field(
        None,
        description="Saved mapping profile to apply when no explicit mapping is given",
    )

    def to_upload(self) -> ImportFile:
        return ImportFile.from_parsed(
            file_kind=self.file_kind,
            file_name=self.file_name,
            rows=self.rows,
            headers=self.headers,
        )


class ExecuteImportPayload(ImportPayload):
    """Parsed spreadsheet plus write options."""

    strategy: ImportStrategy = Field(default=ImportStrategy.UPSERT)
    force_non_critical: bool = Field(
        default=False,
        description="Discard values with non-critical violations and import the rows",
    )


class ViolationInfo(BaseModel):
    row: int
    field: str
    message: str
    value: Optional[str] = None
    severity: str
    code: str


class ValidationReportInfo(BaseModel):
    """Validation outcome over every row."""

    total_rows: int
    clean_rows: int
    dirty_rows: int
    critical: int
    non_critical: int
    can_import: bool
    can_force: bool
    violations: List[ViolationInfo] = Field(default_factory=list)


class PreviewResponse(BaseModel):
    """Mapping and validation preview. Nothing was written."""

    mapping: Dict[str, str]
    unmapped_headers: List[str] = Field(default_factory=list)
    missing_required: List[str] = Field(default_factory=list)
    can_import: bool
    can_force: bool
    report: Optional[ValidationReportInfo] = None
    sample_rows: List[Dict[str, Optional[str]]] = Field(default_factory=list)


class ImportJobResponse(BaseModel):
    """Executed import log."""

    id: uuid.UUID
    file_name: str
    file_kind: FileKind
    strategy: ImportStrategy
    forced: bool
    status: ImportJobStatus
    total_rows: int
    inserted_rows: int
    updated_rows: int
    skipped_rows: int
    error_rows: int
    column_mapping: Optional[Dict[str, str]] = None
    error_details: Optional[List[Dict[str, Any]]] = None
    created_by_user_id: Optional[uuid.UUID] = None
    created_at: datetime
    completed_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ExecuteResponse(BaseModel):
    """Outcome of the write phase."""

    job: ImportJobResponse
    report: ValidationReportInfo


class ImportJobListResponse(BaseModel):
    items: List[ImportJobResponse]
    limit: int
    offset: int


class SaveProfileRequest(BaseModel):
    """Named snapshot of a column mapping."""

    file_kind: FileKind
    name: str = Field(..., min_length=1, max_length=100)
    column_mappings: Dict[str, str] = Field(..., description="Raw column -> canonical field")


class MappingProfileResponse(BaseModel):
    id: uuid.UUID
    name: str
    file_kind: FileKind
    column_mappings: Dict[str, str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class MappingProfileListResponse(BaseModel):
    items: List[MappingProfileResponse]


# =============================================================================
# Router
# =============================================================================

imports_router = APIRouter(
    prefix="/api/imports",
    tags=["Imports"],
)


@imports_router.post(
    "/preview",
    response_model=PreviewResponse,
    summary="Preview Import",
    description="Resolve the column mapping and validate every row without writing.",
)
def preview_import(
    payload: ImportPayload,
    current_user: Annotated[CurrentUser, Depends(require_import_permission)],
    session: Annotated[Session, Depends(get_db)],
) -> PreviewResponse:
    """
    Preview an import.

    - Uses the explicit mapping, else the named profile, else auto-detection
    - Lists required fields left unmapped instead of failing
    - Reports every critical and non-critical violation
    """
    service = ImportService(session)
    preview = service.preview(
        payload.to_upload(),
        column_mapping=payload.column_mapping,
        profile_name=payload.profile_name,
        user_id=current_user.id,
    )

    report = None
    if preview.report is not None:
        report = ValidationReportInfo(**preview.report.to_dict(max_violations=MAX_RETURNED_VIOLATIONS))

    return PreviewResponse(
        mapping=preview.mapping,
        unmapped_headers=preview.unmapped_headers,
        missing_required=preview.missing_required,
        can_import=preview.can_import,
        can_force=preview.can_force,
        report=report,
        sample_rows=preview.sample_rows,
    )


@imports_router.post(
    "/execute",
    response_model=ExecuteResponse,
    summary="Execute Import",
    description="Validate and write the rows, recording the run as an import job.",
)
def execute_import(
    payload: ExecuteImportPayload,
    current_user: Annotated[CurrentUser, Depends(require_import_permission)],
    session: Annotated[Session, Depends(get_db)],
) -> ExecuteResponse:
    """
    Execute an import.

    Critical violations block the import. Non-critical violations block it
    too unless ``force_non_critical`` is set, in which case the offending
    values are discarded. Row failures during the write are recorded on the
    job and do not abort the remaining rows.
    """
    service = ImportService(session)
    outcome = service.execute(
        payload.to_upload(),
        ImportRequest(
            strategy=payload.strategy,
            force_non_critical=payload.force_non_critical,
        ),
        user_id=current_user.id,
        column_mapping=payload.column_mapping,
        profile_name=payload.profile_name,
    )
    return ExecuteResponse(
        job=ImportJobResponse.model_validate(outcome.job),
        report=ValidationReportInfo(**outcome.report.to_dict(max_violations=MAX_STORED_ERRORS)),
    )


@imports_router.get(
    "/jobs",
    response_model=ImportJobListResponse,
    summary="List Import Jobs",
)
async def list_import_jobs(
    current_user: Annotated[CurrentUser, Depends(require_import_permission)],
    session: Annotated[Session, Depends(get_db)],
    file_kind: Optional[FileKind] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> ImportJobListResponse:
    jobs = ImportService(session).list_jobs(file_kind=file_kind, limit=limit, offset=offset)
    return ImportJobListResponse(
        items=[ImportJobResponse.model_validate(job) for job in jobs],
        limit=limit,
        offset=offset,
    )


@imports_router.get(
    "/jobs/{job_id}",
    response_model=ImportJobResponse,
    summary="Get Import Job",
)
async def get_import_job(
    job_id: uuid.UUID,
    current_user: Annotated[CurrentUser, Depends(require_import_permission)],
    session: Annotated[Session, Depends(get_db)],
) -> ImportJobResponse:
    job: ImportJob = ImportService(session).get_job(job_id)
    return ImportJobResponse.model_validate(job)


# =============================================================================
# Mapping Profiles
# =============================================================================

@imports_router.post(
    "/profiles",
    response_model=MappingProfileResponse,
    summary="Save Mapping Profile",
    description="Save a named column mapping; an existing profile with the same name is replaced.",
)
async def save_mapping_profile(
    request: SaveProfileRequest,
    current_user: Annotated[CurrentUser, Depends(require_import_permission)],
    session: Annotated[Session, Depends(get_db)],
) -> MappingProfileResponse:
    profile = ImportService(session).save_profile(
        user_id=current_user.id,
        file_kind=request.file_kind,
        name=request.name,
        column_mappings=request.column_mappings,
    )
    return MappingProfileResponse.model_validate(profile)


@imports_router.get(
    "/profiles",
    response_model=MappingProfileListResponse,
    summary="List Mapping Profiles",
)
async def list_mapping_profiles(
    current_user: Annotated[CurrentUser, Depends(require_import_permission)],
    session: Annotated[Session, Depends(get_db)],
    file_kind: Optional[FileKind] = None,
) -> MappingProfileListResponse:
    profiles = ImportService(session).list_profiles(current_user.id, file_kind=file_kind)
    return MappingProfileListResponse(
        items=[MappingProfileResponse.model_validate(p) for p in profiles],
    )


@imports_router.get(
    "/profiles/{file_kind}/{name}",
    response_model=MappingProfileResponse,
    summary="Get Mapping Profile",
)
async def get_mapping_profile(
    file_kind: FileKind,
    name: str,
    current_user: Annotated[CurrentUser, Depends(require_import_permission)],
    session: Annotated[Session, Depends(get_db)],
) -> MappingProfileResponse:
    profile = ImportService(session).get_profile(current_user.id, file_kind, name)
    return MappingProfileResponse.model_validate(profile)
