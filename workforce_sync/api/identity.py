"""API endpoints for binding external identifiers to employees."""

import uuid
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from workforce_sync.database.database import get_db
from workforce_sync.models.employee import Employee
from workforce_sync.services.identity_store import IdentityAssignment, IdentityMappingStore
from workforce_sync.utils.auth import CurrentUser, UserRole, require_roles
from workforce_sync.utils.errors import create_not_found_error


require_identity_permission = require_roles(UserRole.ADMIN, UserRole.GESTOR)


# =============================================================================
# Request/Response Models
# =============================================================================

class IdentityUpdateRequest(BaseModel):
    """Identifiers to bind; omitted identifiers are left untouched."""

    external_scheduling_id: Optional[str] = Field(None, max_length=100)
    payroll_code: Optional[str] = Field(None, max_length=50)
    replace: bool = Field(
        default=False,
        description="Release the employee's current identifiers of these kinds first",
    )


class BulkAssignmentItem(IdentityUpdateRequest):
    employee_id: uuid.UUID


class BulkIdentityRequest(BaseModel):
    assignments: List[BulkAssignmentItem] = Field(..., min_length=1, max_length=5000)


class EmployeeIdentityResponse(BaseModel):
    """External identifiers bound to an employee."""

    id: uuid.UUID
    first_name: str
    last_name: Optional[str] = None
    centre_code: Optional[str] = None
    external_scheduling_id: Optional[str] = None
    payroll_code: Optional[str] = None

    class Config:
        from_attributes = True


class AssignmentOutcomeInfo(BaseModel):
    employee_id: uuid.UUID
    status: str
    message: Optional[str] = None
    identifier_kind: Optional[str] = None
    value: Optional[str] = None


class BulkIdentityResponse(BaseModel):
    total: int
    assigned: int
    conflicts: int
    errors: int
    outcomes: List[AssignmentOutcomeInfo] = Field(default_factory=list)


# =============================================================================
# Router
# =============================================================================

identity_router = APIRouter(
    prefix="/api/employees",
    tags=["Employee Identity"],
)


@identity_router.get(
    "/identity/resolve",
    response_model=EmployeeIdentityResponse,
    summary="Resolve Identifier",
    description="Find the employee bound to a scheduling ID, payroll code or internal ID.",
)
async def resolve_identifier(
    current_user: Annotated[CurrentUser, Depends(require_identity_permission)],
    session: Annotated[Session, Depends(get_db)],
    identifier: str = Query(..., min_length=1),
) -> EmployeeIdentityResponse:
    employee: Optional[Employee] = IdentityMappingStore(session).find_by_any(identifier)
    if employee is None:
        raise create_not_found_error("Employee", identifier)
    return EmployeeIdentityResponse.model_validate(employee)


@identity_router.post(
    "/identity/bulk",
    response_model=BulkIdentityResponse,
    summary="Bulk Assign Identifiers",
)
async def bulk_assign_identifiers(
    request: BulkIdentityRequest,
    current_user: Annotated[CurrentUser, Depends(require_identity_permission)],
    session: Annotated[Session, Depends(get_db)],
) -> BulkIdentityResponse:
    """
    Apply many assignments independently.

    Conflicting rows are reported and skipped; the rest are applied. A
    value requested for two employees in the same batch goes to the first.
    """
    assignments = [
        IdentityAssignment(
            employee_id=item.employee_id,
            external_scheduling_id=item.external_scheduling_id,
            payroll_code=item.payroll_code,
            replace=item.replace,
        )
        for item in request.assignments
    ]
    result = IdentityMappingStore(session).bulk_assign(assignments)
    return BulkIdentityResponse(**result.to_dict())


@identity_router.put(
    "/{employee_id}/identity",
    response_model=EmployeeIdentityResponse,
    summary="Update Employee Identity",
)
async def update_employee_identity(
    employee_id: uuid.UUID,
    request: IdentityUpdateRequest,
    current_user: Annotated[CurrentUser, Depends(require_identity_permission)],
    session: Annotated[Session, Depends(get_db)],
) -> EmployeeIdentityResponse:
    """
    Bind external identifiers to an employee.

    Fails with 409 when an identifier belongs to another employee, or when
    the employee holds a different value and ``replace`` is not set.
    """
    store = IdentityMappingStore(session)
    if request.replace:
        employee = store.reassign_identity(
            employee_id,
            external_scheduling_id=request.external_scheduling_id,
            payroll_code=request.payroll_code,
        )
    else:
        employee = store.upsert_identity(
            employee_id,
            external_scheduling_id=request.external_scheduling_id,
            payroll_code=request.payroll_code,
        )
    return EmployeeIdentityResponse.model_validate(employee)


@identity_router.delete(
    "/{employee_id}/identity/{identifier_kind}",
    response_model=EmployeeIdentityResponse,
    summary="Release Employee Identifier",
)
async def release_employee_identifier(
    employee_id: uuid.UUID,
    identifier_kind: str,
    current_user: Annotated[CurrentUser, Depends(require_identity_permission)],
    session: Annotated[Session, Depends(get_db)],
) -> EmployeeIdentityResponse:
    employee = IdentityMappingStore(session).release_identity(employee_id, identifier_kind)
    return EmployeeIdentityResponse.model_validate(employee)
