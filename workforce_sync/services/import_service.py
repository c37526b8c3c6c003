"""Service for two-phase spreadsheet imports and saved mapping profiles."""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from workforce_sync.config.settings import ImportSettings, get_settings
from workforce_sync.models.base import utcnow
from workforce_sync.models.import_job import (
    FileKind,
    ImportJob,
    ImportJobStatus,
    ImportStrategy,
)
from workforce_sync.models.mapping_profile import MappingProfile
from workforce_sync.services.batch_reconciler import BatchReconciler, BatchResult
from workforce_sync.services.column_mapping import (
    RawRow,
    apply_mapping,
    auto_detect_mapping,
    check_mapping,
    check_mapping_targets,
    missing_required_fields,
)
from workforce_sync.services.identity_store import IdentityMappingStore
from workforce_sync.services.import_validation import ValidationReport, validate_for_kind
from workforce_sync.services.reconcile_targets import (
    CentreRow,
    CentreTarget,
    PayrollRow,
    PayrollTarget,
)
from workforce_sync.utils.csv_parser import parse_date, parse_float, parse_integer
from workforce_sync.utils.errors import ValidationError, create_not_found_error

logger = logging.getLogger(__name__)

MAX_STORED_ERRORS = 500


@dataclass
class ImportFile:
    """A parsed upload: header row plus rows keyed by raw header."""

    file_kind: FileKind
    file_name: str
    headers: List[str]
    rows: List[RawRow]

    @classmethod
    def from_parsed(
        cls,
        file_kind: FileKind,
        file_name: str,
        rows: Sequence[Dict[str, Any]],
        headers: Optional[Sequence[str]] = None,
    ) -> "ImportFile":
        """Build from parser output; headers default to the keys in first-seen order."""
        if headers is None:
            seen: Dict[str, None] = {}
            for row in rows:
                for key in row:
                    seen.setdefault(str(key), None)
            headers = list(seen)
        return cls(
            file_kind=file_kind,
            file_name=file_name,
            headers=list(headers),
            rows=[RawRow.from_mapping(row) for row in rows],
        )


@dataclass
class ImportRequest:
    """Options for the write phase."""

    strategy: ImportStrategy = ImportStrategy.UPSERT
    force_non_critical: bool = False


@dataclass
class ImportPreview:
    """Outcome of the preview phase. Nothing is written."""

    mapping: Dict[str, str]
    unmapped_headers: List[str]
    missing_required: List[str]
    report: Optional[ValidationReport] = None
    sample_rows: List[Dict[str, Optional[str]]] = field(default_factory=list)

    @property
    def can_import(self) -> bool:
        return not self.missing_required and self.report is not None and self.report.can_import(False)

    @property
    def can_force(self) -> bool:
        return not self.missing_required and self.report is not None and self.report.can_import(True)


@dataclass
class ImportOutcome:
    """Outcome of the write phase."""

    job: ImportJob
    result: BatchResult
    report: ValidationReport


# =============================================================================
# Row conversion
# =============================================================================

def _date_or_none(value: Optional[str]):
    if value is None:
        return None
    parsed, _ = parse_date(value)
    return parsed


def to_centre_row(values: Dict[str, Optional[str]]) -> CentreRow:
    """Convert a validated restaurant row into a typed centre row."""
    email = values.get("franchisee_email")
    return CentreRow(
        code=values["site_number"],
        name=values["nombre"],
        address=values.get("direccion"),
        city=values.get("ciudad"),
        state=values.get("state"),
        postal_code=values.get("postal_code"),
        country=values.get("pais"),
        franchisee_name=values.get("franchisee_name"),
        franchisee_email=email.lower() if email else None,
        seating_capacity=parse_integer(values.get("seating_capacity")),
        square_meters=parse_float(values.get("square_meters")),
        opening_date=_date_or_none(values.get("opening_date")),
        scheduling_service_id=values.get("scheduling_service_id"),
        scheduling_business_id=values.get("scheduling_business_id"),
    )


def to_payroll_row(values: Dict[str, Optional[str]]) -> PayrollRow:
    """Convert a validated payroll row into a typed payroll row."""
    return PayrollRow(
        employee_ref=values["employee_id"],
        period_start=_date_or_none(values["periodo_inicio"]),
        period_end=_date_or_none(values["periodo_fin"]),
        worked_hours=parse_float(values.get("horas_trabajadas")),
        vacation_hours=parse_float(values.get("horas_vacaciones")),
        training_hours=parse_float(values.get("horas_formacion")),
        total_cost=parse_float(values.get("coste_total")),
    )


ROW_CONVERTERS = {
    FileKind.RESTAURANT: to_centre_row,
    FileKind.PAYROLL: to_payroll_row,
}


class ImportService:
    """
    Service for spreadsheet imports.

    Provides functionality for:
    - Resolving a column mapping (explicit, saved profile or auto-detected)
    - Previewing validation results without writing
    - Executing the import through the batch reconciler
    - Recording every executed import as an ImportJob
    - Saving and loading mapping profiles per user
    """

    def __init__(self, session: Session, settings: Optional[ImportSettings] = None):
        """Initialize with database session."""
        self.session = session
        self.settings = settings or get_settings().imports

    # -------------------------------------------------------------------------
    # Mapping
    # -------------------------------------------------------------------------

    def resolve_mapping(
        self,
        upload: ImportFile,
        column_mapping: Optional[Dict[str, str]] = None,
        profile_name: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> Dict[str, str]:
        """
        Pick the mapping for an upload.

        An explicit mapping wins, then a saved profile (restricted to the
        columns present in the file), then auto-detection.
        """
        if column_mapping:
            return dict(column_mapping)

        if profile_name:
            if user_id is None:
                raise ValidationError(message="A user is required to load a mapping profile")
            profile = self.get_profile(user_id, upload.file_kind, profile_name)
            headers = set(upload.headers)
            return {
                column: target
                for column, target in profile.column_mappings.items()
                if column in headers
            }

        return auto_detect_mapping(upload.headers, upload.file_kind)

    def _check_size(self, upload: ImportFile) -> None:
        if not upload.rows:
            raise ValidationError(message="File has no data rows")
        if len(upload.rows) > self.settings.max_rows:
            raise ValidationError(
                message=f"File has {len(upload.rows)} rows, maximum allowed is {self.settings.max_rows}"
            )

    def _mapped_rows(self, upload: ImportFile, mapping: Dict[str, str]) -> List[Dict[str, Optional[str]]]:
        return [apply_mapping(row, mapping) for row in upload.rows]

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    def preview(
        self,
        upload: ImportFile,
        column_mapping: Optional[Dict[str, str]] = None,
        profile_name: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> ImportPreview:
        """
        Resolve the mapping and validate every row without writing.

        When required fields are unmapped the preview carries them in
        ``missing_required`` and no validation report.
        """
        self._check_size(upload)
        mapping = self.resolve_mapping(upload, column_mapping, profile_name, user_id)
        check_mapping_targets(mapping, upload.file_kind)

        unmapped = [header for header in upload.headers if header not in mapping]
        missing = missing_required_fields(mapping, upload.file_kind)
        if missing:
            return ImportPreview(mapping=mapping, unmapped_headers=unmapped, missing_required=missing)

        check_mapping(mapping, upload.file_kind, upload.headers)
        report = validate_for_kind(self._mapped_rows(upload, mapping), upload.file_kind)
        return ImportPreview(
            mapping=mapping,
            unmapped_headers=unmapped,
            missing_required=[],
            report=report,
            sample_rows=report.rows[:self.settings.preview_rows],
        )

    def execute(
        self,
        upload: ImportFile,
        request: ImportRequest,
        user_id: Optional[uuid.UUID] = None,
        column_mapping: Optional[Dict[str, str]] = None,
        profile_name: Optional[str] = None,
    ) -> ImportOutcome:
        """
        Validate and write an upload.

        Raises:
            MappingError: If the mapping is invalid or misses required fields
            ImportBlockedError: If validation does not allow the import
        """
        self._check_size(upload)
        mapping = self.resolve_mapping(upload, column_mapping, profile_name, user_id)
        check_mapping(mapping, upload.file_kind, upload.headers)

        report = validate_for_kind(self._mapped_rows(upload, mapping), upload.file_kind)
        sanitized = report.sanitized_rows(force=request.force_non_critical)

        job = ImportJob(
            created_by_user_id=user_id,
            file_name=upload.file_name,
            file_kind=upload.file_kind,
            strategy=request.strategy,
            forced=request.force_non_critical,
            status=ImportJobStatus.PROCESSING,
            total_rows=len(sanitized),
            column_mapping=mapping,
        )
        self.session.add(job)
        self.session.flush()

        logger.info(
            f"Import {job.id} started: {upload.file_name} ({upload.file_kind.value}, "
            f"{len(sanitized)} rows, strategy={request.strategy.value})",
            extra={"import_job_id": str(job.id), "file_kind": upload.file_kind.value},
        )

        convert = ROW_CONVERTERS[upload.file_kind]
        typed_rows = [convert(values) for values in sanitized]
        target = self._target_for(upload.file_kind)

        reconciler = BatchReconciler(self.session, chunk_size=self.settings.chunk_size)
        result = reconciler.reconcile(target, typed_rows, request.strategy)

        self._finalize_job(job, result)
        self.session.flush()

        logger.info(
            f"Import {job.id} finished with status {job.status.value}",
            extra={"import_job_id": str(job.id), **result.counters()},
        )
        return ImportOutcome(job=job, result=result, report=report)

    def _target_for(self, file_kind: FileKind):
        if file_kind == FileKind.RESTAURANT:
            return CentreTarget()
        return PayrollTarget(IdentityMappingStore(self.session))

    @staticmethod
    def _finalize_job(job: ImportJob, result: BatchResult) -> None:
        job.total_rows = result.total
        job.inserted_rows = result.inserted
        job.updated_rows = result.updated
        job.skipped_rows = result.skipped
        job.error_rows = result.errored
        job.error_details = [e.to_dict() for e in result.row_errors[:MAX_STORED_ERRORS]] or None
        job.completed_at = utcnow()

        if result.errored == 0:
            job.status = ImportJobStatus.COMPLETED
        elif result.succeeded > 0:
            job.status = ImportJobStatus.COMPLETED_WITH_ERRORS
        else:
            job.status = ImportJobStatus.FAILED

    # -------------------------------------------------------------------------
    # Import log
    # -------------------------------------------------------------------------

    def get_job(self, job_id: uuid.UUID) -> ImportJob:
        job = self.session.get(ImportJob, job_id)
        if job is None:
            raise create_not_found_error("Import job", job_id)
        return job

    def list_jobs(
        self,
        file_kind: Optional[FileKind] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[ImportJob]:
        query = select(ImportJob).order_by(ImportJob.created_at.desc())
        if file_kind is not None:
            query = query.where(ImportJob.file_kind == file_kind)
        return list(self.session.execute(query.limit(limit).offset(offset)).scalars())

    # -------------------------------------------------------------------------
    # Mapping profiles
    # -------------------------------------------------------------------------

    def save_profile(
        self,
        user_id: uuid.UUID,
        file_kind: FileKind,
        name: str,
        column_mappings: Dict[str, str],
    ) -> MappingProfile:
        """Save a mapping snapshot; an existing profile with the same name is replaced."""
        name = (name or "").strip()
        if not name:
            raise ValidationError(message="Profile name is required")
        if not column_mappings:
            raise ValidationError(message="Profile must map at least one column")
        check_mapping_targets(column_mappings, file_kind)

        profile = self._find_profile(user_id, file_kind, name)
        if profile is None:
            profile = MappingProfile(
                user_id=user_id,
                file_kind=file_kind,
                name=name,
                column_mappings=dict(column_mappings),
            )
            self.session.add(profile)
        else:
            profile.column_mappings = dict(column_mappings)
            profile.updated_at = utcnow()

        self.session.flush()
        logger.info(
            f"Mapping profile '{name}' saved for {file_kind.value}",
            extra={"user_id": str(user_id), "profile_id": str(profile.id)},
        )
        return profile

    def get_profile(self, user_id: uuid.UUID, file_kind: FileKind, name: str) -> MappingProfile:
        profile = self._find_profile(user_id, file_kind, name)
        if profile is None:
            raise create_not_found_error("Mapping profile", name)
        return profile

    def list_profiles(self, user_id: uuid.UUID, file_kind: Optional[FileKind] = None) -> List[MappingProfile]:
        query = select(MappingProfile).where(MappingProfile.user_id == user_id)
        if file_kind is not None:
            query = query.where(MappingProfile.file_kind == file_kind)
        return list(self.session.execute(query.order_by(MappingProfile.name)).scalars())

    def _find_profile(self, user_id: uuid.UUID, file_kind: FileKind, name: str) -> Optional[MappingProfile]:
        return self.session.execute(
            select(MappingProfile).where(
                MappingProfile.user_id == user_id,
                MappingProfile.file_kind == file_kind,
                MappingProfile.name == name,
            )
        ).scalar_one_or_none()
