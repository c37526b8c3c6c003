"""
Identity mapping between internal employees and external system identifiers.

Each employee may be bound to one scheduling platform ID and one payroll
code; each identifier value belongs to at most one employee. Bindings are
never overwritten implicitly: reassigning an identifier means releasing it
first.
"""

import logging
import threading
import uuid
import zlib
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from workforce_sync.models.employee import Employee
from workforce_sync.utils.errors import (
    APIError,
    IdentityConflictError,
    ValidationError,
    create_not_found_error,
)

logger = logging.getLogger(__name__)


SCHEDULING_ID = "external_scheduling_id"
PAYROLL_CODE = "payroll_code"
IDENTIFIER_KINDS = (SCHEDULING_ID, PAYROLL_CODE)


# =============================================================================
# Striped Locks
# =============================================================================

_LOCK_STRIPES = 64
_stripes = [threading.Lock() for _ in range(_LOCK_STRIPES)]


def _stripe_index(kind: str, value: str) -> int:
    return zlib.crc32(f"{kind}:{value}".encode("utf-8")) % _LOCK_STRIPES


@contextmanager
def _identifier_locks(identifiers: Dict[str, str]) -> Iterator[None]:
    """Hold the lock stripes of every identifier, acquired in index order."""
    indexes = sorted({_stripe_index(kind, value) for kind, value in identifiers.items()})
    acquired: List[threading.Lock] = []
    try:
        for index in indexes:
            _stripes[index].acquire()
            acquired.append(_stripes[index])
        yield
    finally:
        for lock in reversed(acquired):
            lock.release()


# =============================================================================
# Bulk Assignment Types
# =============================================================================

@dataclass
class IdentityAssignment:
    """Requested identifiers for one employee."""

    employee_id: uuid.UUID
    external_scheduling_id: Optional[str] = None
    payroll_code: Optional[str] = None
    # Release the employee's current identifiers before binding new ones
    replace: bool = False

    def requested(self) -> Dict[str, str]:
        values = {
            SCHEDULING_ID: (self.external_scheduling_id or "").strip(),
            PAYROLL_CODE: (self.payroll_code or "").strip(),
        }
        return {kind: value for kind, value in values.items() if value}


@dataclass
class AssignmentOutcome:
    """Result of applying one assignment."""

    employee_id: uuid.UUID
    status: str
    message: Optional[str] = None
    identifier_kind: Optional[str] = None
    value: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "employee_id": str(self.employee_id),
            "status": self.status,
            "message": self.message,
            "identifier_kind": self.identifier_kind,
            "value": self.value,
        }


@dataclass
class BulkAssignResult:
    """Per-row outcomes of a bulk identity assignment."""

    outcomes: List[AssignmentOutcome] = field(default_factory=list)

    @property
    def assigned(self) -> int:
        return sum(1 for o in self.outcomes if o.status == "assigned")

    @property
    def conflicts(self) -> List[AssignmentOutcome]:
        return [o for o in self.outcomes if o.status == "conflict"]

    @property
    def errors(self) -> List[AssignmentOutcome]:
        return [o for o in self.outcomes if o.status == "error"]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": len(self.outcomes),
            "assigned": self.assigned,
            "conflicts": len(self.conflicts),
            "errors": len(self.errors),
            "outcomes": [o.to_dict() for o in self.outcomes],
        }


# =============================================================================
# Identity Mapping Store
# =============================================================================

class IdentityMappingStore:
    """Binds external identifiers to internal employee records."""

    def __init__(self, session: Session):
        self.session = session

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def get_employee(self, internal_id: uuid.UUID) -> Employee:
        employee = self.session.get(Employee, internal_id)
        if employee is None:
            raise create_not_found_error("Employee", internal_id)
        return employee

    def find_by_scheduling_id(self, value: str) -> Optional[Employee]:
        return self.session.execute(
            select(Employee).where(Employee.external_scheduling_id == value)
        ).scalar_one_or_none()

    def find_by_payroll_code(self, value: str) -> Optional[Employee]:
        return self.session.execute(
            select(Employee).where(Employee.payroll_code == value)
        ).scalar_one_or_none()

    def find_by_any(self, identifier: str) -> Optional[Employee]:
        """
        Resolve an identifier from any system.

        Checks the scheduling ID first, then the payroll code, then the
        internal ID when the value parses as a UUID.
        """
        identifier = identifier.strip()
        if not identifier:
            return None

        employee = self.find_by_scheduling_id(identifier)
        if employee is not None:
            return employee

        employee = self.find_by_payroll_code(identifier)
        if employee is not None:
            return employee

        try:
            internal_id = uuid.UUID(identifier)
        except ValueError:
            return None
        return self.session.get(Employee, internal_id)

    def _find_holder(self, kind: str, value: str) -> Optional[Employee]:
        if kind == SCHEDULING_ID:
            return self.find_by_scheduling_id(value)
        return self.find_by_payroll_code(value)

    # -------------------------------------------------------------------------
    # Binding
    # -------------------------------------------------------------------------

    def upsert_identity(
        self,
        internal_id: uuid.UUID,
        external_scheduling_id: Optional[str] = None,
        payroll_code: Optional[str] = None,
    ) -> Employee:
        """
        Bind external identifiers to an employee.

        Binding a value the employee already holds is a no-op.

        Raises:
            NotFoundError: If the employee does not exist.
            IdentityConflictError: If an identifier belongs to another
                employee, or the employee already holds a different value
                for that identifier kind.
        """
        employee = self.get_employee(internal_id)
        requested = IdentityAssignment(
            employee_id=internal_id,
            external_scheduling_id=external_scheduling_id,
            payroll_code=payroll_code,
        ).requested()
        if not requested:
            return employee

        with _identifier_locks(requested):
            changes: Dict[str, str] = {}
            for kind, value in requested.items():
                holder = self._find_holder(kind, value)
                if holder is not None and holder.id != employee.id:
                    raise IdentityConflictError(kind, value, holder.id, employee.id)

                current = getattr(employee, kind)
                if current == value:
                    continue
                if current is not None:
                    raise IdentityConflictError(
                        kind,
                        value,
                        employee.id,
                        employee.id,
                        message=(
                            f"Employee {employee.id} is already bound to {kind} '{current}'; "
                            f"release it before assigning '{value}'"
                        ),
                    )
                changes[kind] = value

            if not changes:
                return employee

            try:
                with self.session.begin_nested():
                    for kind, value in changes.items():
                        setattr(employee, kind, value)
                    self.session.flush()
            except IntegrityError:
                # Another transaction bound the identifier first
                for kind, value in changes.items():
                    holder = self._find_holder(kind, value)
                    if holder is not None and holder.id != internal_id:
                        raise IdentityConflictError(kind, value, holder.id, internal_id)
                raise

        logger.info(
            f"Bound identifiers to employee {internal_id}",
            extra={"employee_id": str(internal_id), "identifiers": changes},
        )
        return employee

    def release_identity(self, internal_id: uuid.UUID, kind: str) -> Employee:
        """
        Unbind one identifier kind from an employee.

        Raises:
            NotFoundError: If the employee does not exist.
            ValidationError: If the identifier kind is unknown.
        """
        if kind not in IDENTIFIER_KINDS:
            raise ValidationError(
                message=f"Unknown identifier kind: {kind}",
                details={"allowed": list(IDENTIFIER_KINDS)},
            )

        employee = self.get_employee(internal_id)
        previous = getattr(employee, kind)
        if previous is None:
            return employee

        with _identifier_locks({kind: previous}):
            setattr(employee, kind, None)
            self.session.flush()

        logger.info(
            f"Released {kind} '{previous}' from employee {internal_id}",
            extra={"employee_id": str(internal_id), "identifier_kind": kind},
        )
        return employee

    def reassign_identity(
        self,
        internal_id: uuid.UUID,
        external_scheduling_id: Optional[str] = None,
        payroll_code: Optional[str] = None,
    ) -> Employee:
        """Release the employee's current identifiers of the given kinds, then bind the new values."""
        if external_scheduling_id is not None:
            self.release_identity(internal_id, SCHEDULING_ID)
        if payroll_code is not None:
            self.release_identity(internal_id, PAYROLL_CODE)
        return self.upsert_identity(
            internal_id,
            external_scheduling_id=external_scheduling_id,
            payroll_code=payroll_code,
        )

    # -------------------------------------------------------------------------
    # Bulk
    # -------------------------------------------------------------------------

    def bulk_assign(self, assignments: List[IdentityAssignment]) -> BulkAssignResult:
        """
        Apply many assignments, each independently.

        A value requested for more than one employee within the batch is a
        conflict for every row after the first one requesting it. Each row
        runs in its own savepoint so a failing row leaves the others intact.
        """
        result = BulkAssignResult()
        first_claim: Dict[Tuple[str, str], uuid.UUID] = {}

        for assignment in assignments:
            duplicate: Optional[Tuple[str, str]] = None
            for kind, value in assignment.requested().items():
                owner = first_claim.get((kind, value))
                if owner is not None and owner != assignment.employee_id:
                    duplicate = (kind, value)
                    break
                first_claim[(kind, value)] = assignment.employee_id

            if duplicate is not None:
                kind, value = duplicate
                result.outcomes.append(AssignmentOutcome(
                    employee_id=assignment.employee_id,
                    status="conflict",
                    message=f"{kind} '{value}' requested for more than one employee in this batch",
                    identifier_kind=kind,
                    value=value,
                ))
                continue

            try:
                with self.session.begin_nested():
                    if assignment.replace:
                        self.reassign_identity(
                            assignment.employee_id,
                            external_scheduling_id=assignment.external_scheduling_id,
                            payroll_code=assignment.payroll_code,
                        )
                    else:
                        self.upsert_identity(
                            assignment.employee_id,
                            external_scheduling_id=assignment.external_scheduling_id,
                            payroll_code=assignment.payroll_code,
                        )
            except IdentityConflictError as e:
                result.outcomes.append(AssignmentOutcome(
                    employee_id=assignment.employee_id,
                    status="conflict",
                    message=e.message,
                    identifier_kind=e.identifier_kind,
                    value=e.value,
                ))
                continue
            except APIError as e:
                result.outcomes.append(AssignmentOutcome(
                    employee_id=assignment.employee_id,
                    status="error",
                    message=e.message,
                ))
                continue

            result.outcomes.append(AssignmentOutcome(
                employee_id=assignment.employee_id,
                status="assigned",
            ))

        logger.info(
            f"Bulk identity assignment: {result.assigned} assigned, "
            f"{len(result.conflicts)} conflicts, {len(result.errors)} errors",
        )
        return result
