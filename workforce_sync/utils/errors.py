"""
Error types raised by the services and rendered by the API.

Every error serializes as ``{"error": {"message", "code", "details"?,
"field_errors"?}}``; ``status_code`` picks the HTTP status.
"""

from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Dict, List, Optional


@dataclass
class FieldError:
    """A problem with one named input field (mapping target, rule setting, ...)."""

    field: str
    message: str
    code: str = "invalid"

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "message": self.message, "code": self.code}


@dataclass
class ErrorResponse:
    message: str
    status_code: int
    error_code: str
    details: Optional[Dict[str, Any]] = None
    field_errors: List[FieldError] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"message": self.message, "code": self.error_code}
        if self.details:
            body["details"] = self.details
        if self.field_errors:
            body["field_errors"] = [error.to_dict() for error in self.field_errors]
        return {"error": body}


class APIError(Exception):
    """Root of every error the API turns into a structured response."""

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR
    error_code: str = "internal_error"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        field_errors: Optional[List[FieldError]] = None,
    ):
        self.message = message or type(self).message
        self.details = details
        self.field_errors = field_errors or []
        super().__init__(self.message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            message=self.message,
            status_code=self.status_code,
            error_code=self.error_code,
            details=self.details,
            field_errors=self.field_errors,
        )


class ValidationError(APIError):
    """Input that no retry will fix: bad windows, rule settings or configuration."""

    status_code: int = HTTPStatus.BAD_REQUEST
    error_code: str = "validation_error"
    message: str = "Request validation failed"


class MappingError(APIError):
    """Required canonical fields have no mapped column."""

    status_code: int = HTTPStatus.BAD_REQUEST
    error_code: str = "mapping_error"
    message: str = "Column mapping is missing required fields"

    def __init__(self, missing_fields: List[str], message: Optional[str] = None):
        self.missing_fields = list(missing_fields)
        super().__init__(
            message=message or f"Required fields not mapped: {', '.join(self.missing_fields)}",
            details={"missing_fields": self.missing_fields},
            field_errors=[
                FieldError(field=name, message="No column mapped to this field", code="unmapped")
                for name in self.missing_fields
            ],
        )


class ImportBlockedError(APIError):
    """Validation found violations that prevent the import from running."""

    status_code: int = HTTPStatus.UNPROCESSABLE_ENTITY
    error_code: str = "import_blocked"
    message: str = "Import blocked by validation errors"

    def __init__(self, report: Any, message: Optional[str] = None):
        self.report = report
        summary = report.summary()
        if message is None:
            if summary["critical"]:
                message = f"Import blocked: {summary['critical']} critical validation errors"
            else:
                message = (
                    f"Import blocked: {summary['non_critical']} non-critical validation "
                    f"errors (force the import to discard the offending values)"
                )
        super().__init__(message=message, details={"validation": report.to_dict()})


class NotFoundError(APIError):
    """Exception for resource not found."""

    status_code: int = HTTPStatus.NOT_FOUND
    error_code: str = "not_found"
    message: str = "Resource not found"


class ForbiddenError(APIError):
    """Exception for authorization failures."""

    status_code: int = HTTPStatus.FORBIDDEN
    error_code: str = "forbidden"
    message: str = "Access denied"


class IdentityConflictError(APIError):
    """An external identifier is already bound to a different employee."""

    status_code: int = HTTPStatus.CONFLICT
    error_code: str = "identity_conflict"
    message: str = "Identifier already bound to another employee"

    def __init__(
        self,
        identifier_kind: str,
        value: str,
        current_holder: Any,
        requested_holder: Any,
        message: Optional[str] = None,
    ):
        self.identifier_kind = identifier_kind
        self.value = value
        self.current_holder = current_holder
        self.requested_holder = requested_holder
        super().__init__(
            message=message or f"{identifier_kind} '{value}' is already bound to employee {current_holder}",
            details={
                "identifier_kind": identifier_kind,
                "value": value,
                "current_holder": str(current_holder) if current_holder is not None else None,
                "requested_holder": str(requested_holder),
            },
            field_errors=[
                FieldError(field=identifier_kind, message="This identifier is already in use", code="duplicate")
            ],
        )


class JobAlreadyFinalizedError(APIError):
    """A sync job log was finalized and cannot change anymore."""

    status_code: int = HTTPStatus.CONFLICT
    error_code: str = "job_already_finalized"
    message: str = "Job has already been finalized"


class SchedulingApiError(APIError):
    """The external scheduling platform rejected or failed a request."""

    status_code: int = HTTPStatus.BAD_GATEWAY
    error_code: str = "scheduling_api_error"
    message: str = "Scheduling platform request failed"

    def __init__(
        self,
        message: Optional[str] = None,
        status: Optional[int] = None,
        path: Optional[str] = None,
    ):
        self.status = status
        self.path = path
        details = {}
        if status is not None:
            details["upstream_status"] = status
        if path:
            details["path"] = path
        super().__init__(message=message, details=details or None)


class SchedulingAuthError(SchedulingApiError):
    """Credentials were rejected by the scheduling platform (401/403)."""

    error_code: str = "scheduling_auth_error"
    message: str = "Scheduling platform rejected the session credentials"


class SchedulingUnavailableError(SchedulingApiError):
    """The scheduling platform stayed unreachable after all retries."""

    error_code: str = "scheduling_unavailable"
    message: str = "Scheduling platform unavailable"


def create_not_found_error(resource_type: str, identifier: Any) -> NotFoundError:
    """NotFoundError naming the resource type and the identifier that was looked up."""
    return NotFoundError(
        message=f"{resource_type} not found",
        details={"resource_type": resource_type, "identifier": str(identifier)},
    )
