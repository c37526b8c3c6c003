"""Tests for the two-phase import service."""

import uuid
from datetime import date

import pytest
from sqlalchemy import func, select

from workforce_sync.config.settings import ImportSettings
from workforce_sync.models.employee import Centre, PayrollPeriod
from workforce_sync.models.import_job import FileKind, ImportJob, ImportJobStatus, ImportStrategy
from workforce_sync.services.import_service import ImportFile, ImportRequest, ImportService
from workforce_sync.tests.factories import add_employee
from workforce_sync.utils.errors import ImportBlockedError, MappingError, NotFoundError, ValidationError


USER_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")

RESTAURANT_ROWS = [
    {"Site": "001", "Name": "Centro Sol", "City": "Madrid", "Email Franquiciado": "ana@example.com"},
    {"Site": "002", "Name": "Centro Luna", "City": "Sevilla", "Email Franquiciado": ""},
]


@pytest.fixture
def service(session):
    return ImportService(session, ImportSettings(chunk_size=1, max_rows=10, preview_rows=1))


def restaurant_file(rows=None) -> ImportFile:
    return ImportFile.from_parsed(FileKind.RESTAURANT, "centros.xlsx", rows or RESTAURANT_ROWS)


# =============================================================================
# Preview
# =============================================================================

class TestPreview:
    """Tests for the validation-only phase."""

    def test_preview_writes_nothing(self, session, service):
        """Test previewing reports mapping and validation without touching the store."""
        preview = service.preview(restaurant_file())

        assert preview.mapping == {
            "Site": "site_number",
            "Name": "nombre",
            "City": "ciudad",
            "Email Franquiciado": "franchisee_email",
        }
        assert preview.can_import is True
        assert preview.report.total_rows == 2
        assert len(preview.sample_rows) == 1
        assert session.execute(select(func.count(Centre.id))).scalar_one() == 0
        assert session.execute(select(func.count(ImportJob.id))).scalar_one() == 0

    def test_preview_lists_missing_required_fields(self, service):
        """Test unmapped required fields are reported instead of raised."""
        preview = service.preview(restaurant_file([{"Name": "Centro", "Otra": "x"}]))

        assert preview.missing_required == ["site_number"]
        assert preview.unmapped_headers == ["Otra"]
        assert preview.report is None
        assert preview.can_import is False

    def test_empty_file_rejected(self, service):
        """Test uploads without data rows are rejected."""
        with pytest.raises(ValidationError):
            service.preview(ImportFile(FileKind.RESTAURANT, "empty.csv", ["Site"], []))

    def test_too_many_rows_rejected(self, service):
        """Test the configured row limit is enforced."""
        rows = [{"Site": str(i), "Name": f"C{i}"} for i in range(11)]

        with pytest.raises(ValidationError):
            service.preview(restaurant_file(rows))


# =============================================================================
# Execute
# =============================================================================

class TestExecute:
    """Tests for the write phase."""

    def test_upsert_twice_inserts_once(self, session, service):
        """Test re-importing the same file updates instead of inserting."""
        first = service.execute(restaurant_file(), ImportRequest(), user_id=USER_ID)
        second = service.execute(restaurant_file(), ImportRequest(), user_id=USER_ID)

        assert first.job.status == ImportJobStatus.COMPLETED
        assert (first.job.inserted_rows, first.job.updated_rows) == (2, 0)
        assert (second.job.inserted_rows, second.job.updated_rows) == (0, 2)
        assert session.execute(select(func.count(Centre.id))).scalar_one() == 2

        centre = session.execute(select(Centre).where(Centre.code == "001")).scalar_one()
        assert centre.city == "Madrid"
        assert centre.franchisee_email == "ana@example.com"

    def test_job_records_mapping_and_user(self, service):
        """Test the import log keeps who imported what with which mapping."""
        outcome = service.execute(restaurant_file(), ImportRequest(strategy=ImportStrategy.SKIP), user_id=USER_ID)

        job = outcome.job
        assert job.created_by_user_id == USER_ID
        assert job.file_name == "centros.xlsx"
        assert job.strategy == ImportStrategy.SKIP
        assert job.column_mapping["Site"] == "site_number"
        assert job.completed_at is not None
        assert job.total_rows == job.inserted_rows + job.updated_rows + job.skipped_rows + job.error_rows

    def test_critical_violations_block_without_writing(self, session, service):
        """Test a blocked import creates neither rows nor a job."""
        rows = [
            {"Site": "001", "Name": "A"},
            {"Site": "002", "Name": ""},
            {"Site": "001", "Name": "C"},
        ]

        with pytest.raises(ImportBlockedError) as exc_info:
            service.execute(restaurant_file(rows), ImportRequest(force_non_critical=True))

        validation = exc_info.value.details["validation"]
        assert validation["critical"] == 2
        assert validation["non_critical"] == 0
        assert session.execute(select(func.count(Centre.id))).scalar_one() == 0
        assert session.execute(select(func.count(ImportJob.id))).scalar_one() == 0

    def test_non_critical_requires_force(self, session, service):
        """Test forcing discards only the offending values."""
        rows = [{"Site": "001", "Name": "A", "Email Franquiciado": "broken"}]

        with pytest.raises(ImportBlockedError):
            service.execute(restaurant_file(rows), ImportRequest())

        outcome = service.execute(restaurant_file(rows), ImportRequest(force_non_critical=True))

        assert outcome.job.forced is True
        centre = session.execute(select(Centre).where(Centre.code == "001")).scalar_one()
        assert centre.franchisee_email is None

    def test_overflowing_number_is_a_violation(self, session, service):
        """Test a number too large for a float is dropped like any malformed value."""
        rows = [{"Site": "001", "Name": "A", "Capacidad": "1e400", "Metros": "1e400"}]

        with pytest.raises(ImportBlockedError):
            service.execute(restaurant_file(rows), ImportRequest())

        outcome = service.execute(restaurant_file(rows), ImportRequest(force_non_critical=True))

        assert outcome.job.status == ImportJobStatus.COMPLETED
        centre = session.execute(select(Centre).where(Centre.code == "001")).scalar_one()
        assert centre.seating_capacity is None
        assert centre.square_meters is None

    def test_missing_required_mapping_raises(self, service):
        """Test execute refuses a mapping without required fields."""
        with pytest.raises(MappingError):
            service.execute(restaurant_file(), ImportRequest(), column_mapping={"Name": "nombre"})

    def test_payroll_rows_with_unknown_employee(self, session, service):
        """Test unresolvable employees fail their row only."""
        employee = add_employee(session, payroll_code="NOM-1")
        rows = [
            {
                "employee_id": "NOM-1",
                "periodo_inicio": "01/10/2026",
                "periodo_fin": "31/10/2026",
                "horas_trabajadas": "160",
                "coste_total": "2.400,50",
            },
            {
                "employee_id": "GHOST",
                "periodo_inicio": "01/10/2026",
                "periodo_fin": "31/10/2026",
            },
        ]
        upload = ImportFile.from_parsed(FileKind.PAYROLL, "nominas.csv", rows)

        outcome = service.execute(upload, ImportRequest())

        assert outcome.job.status == ImportJobStatus.COMPLETED_WITH_ERRORS
        assert (outcome.job.inserted_rows, outcome.job.error_rows) == (1, 1)
        assert outcome.job.error_details[0]["row"] == 2
        assert "GHOST" in outcome.job.error_details[0]["message"]

        payroll = session.execute(select(PayrollPeriod)).scalar_one()
        assert payroll.employee_id == employee.id
        assert payroll.period_start == date(2026, 10, 1)
        assert payroll.total_cost == pytest.approx(2400.5)

    def test_every_row_failing_marks_job_failed(self, service):
        """Test a job where no row succeeds is failed."""
        rows = [{"employee_id": "GHOST", "periodo_inicio": "01/10/2026", "periodo_fin": "31/10/2026"}]
        upload = ImportFile.from_parsed(FileKind.PAYROLL, "nominas.csv", rows)

        outcome = service.execute(upload, ImportRequest())

        assert outcome.job.status == ImportJobStatus.FAILED

    def test_list_and_get_jobs(self, service):
        """Test executed imports are listed newest first."""
        outcome = service.execute(restaurant_file(), ImportRequest())

        assert service.get_job(outcome.job.id) is outcome.job
        assert [job.id for job in service.list_jobs(file_kind=FileKind.RESTAURANT)] == [outcome.job.id]
        assert service.list_jobs(file_kind=FileKind.PAYROLL) == []
        with pytest.raises(NotFoundError):
            service.get_job(uuid.uuid4())


# =============================================================================
# Mapping profiles
# =============================================================================

class TestMappingProfiles:
    """Tests for saved mapping profiles."""

    def test_profile_drives_mapping(self, session, service):
        """Test a saved profile replaces auto-detection."""
        service.save_profile(USER_ID, FileKind.RESTAURANT, "Franquicia", {
            "Codigo Tienda": "site_number",
            "Nombre Tienda": "nombre",
            "Columna Antigua": "ciudad",
        })
        rows = [{"Codigo Tienda": "900", "Nombre Tienda": "Centro Perfil"}]
        upload = ImportFile.from_parsed(FileKind.RESTAURANT, "centros.csv", rows)

        outcome = service.execute(upload, ImportRequest(), user_id=USER_ID, profile_name="Franquicia")

        # Columns absent from the file are dropped from the profile mapping
        assert outcome.job.column_mapping == {"Codigo Tienda": "site_number", "Nombre Tienda": "nombre"}
        assert session.execute(select(Centre.name).where(Centre.code == "900")).scalar_one() == "Centro Perfil"

    def test_saving_again_replaces(self, service):
        """Test a profile saved twice under one name keeps the latest mapping."""
        service.save_profile(USER_ID, FileKind.PAYROLL, "Gestoría", {"Empleado": "employee_id"})
        service.save_profile(USER_ID, FileKind.PAYROLL, "Gestoría", {"Trabajador": "employee_id"})

        profiles = service.list_profiles(USER_ID, FileKind.PAYROLL)

        assert len(profiles) == 1
        assert profiles[0].column_mappings == {"Trabajador": "employee_id"}

    def test_profiles_are_per_user(self, service):
        """Test another user's profile is not visible."""
        service.save_profile(USER_ID, FileKind.RESTAURANT, "Mio", {"Site": "site_number"})

        with pytest.raises(NotFoundError):
            service.get_profile(uuid.uuid4(), FileKind.RESTAURANT, "Mio")

    def test_unknown_field_rejected(self, service):
        """Test profiles cannot target fields the file kind lacks."""
        with pytest.raises(MappingError):
            service.save_profile(USER_ID, FileKind.RESTAURANT, "Malo", {"X": "salario"})
