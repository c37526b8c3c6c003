"""Tests for import row validation."""

import pytest

from workforce_sync.models.import_job import FileKind
from workforce_sync.services.import_validation import (
    ViolationSeverity,
    validate_for_kind,
    validate_rows,
)
from workforce_sync.utils.errors import ImportBlockedError


class TestValidateRows:
    """Tests for validate_rows."""

    def test_null_required_and_duplicate_are_critical(self):
        """Test a missing required value and a repeated key block the import."""
        rows = [
            {"site_number": "001", "nombre": "Centro A"},
            {"site_number": "002", "nombre": ""},
            {"site_number": "001", "nombre": "Centro C"},
        ]

        report = validate_for_kind(rows, FileKind.RESTAURANT)

        assert len(report.critical) == 2
        assert len(report.non_critical) == 0
        assert report.dirty_rows == [2, 3]
        assert report.clean_rows == [1]
        assert report.can_import() is False
        assert report.can_import(force=True) is False
        with pytest.raises(ImportBlockedError):
            report.sanitized_rows(force=True)

    def test_duplicate_reported_once_per_extra_occurrence(self):
        """Test N occurrences of a key produce N-1 duplicate violations."""
        rows = [{"site_number": "001", "nombre": f"Centro {i}"} for i in range(4)]

        report = validate_for_kind(rows, FileKind.RESTAURANT)

        duplicates = [v for v in report.violations if v.code == "duplicate"]
        assert [v.row for v in duplicates] == [2, 3, 4]
        assert all(v.value == "001" for v in duplicates)

    def test_composite_key_duplicates(self):
        """Test payroll duplicates are detected on employee and period together."""
        base = {"employee_id": "E1", "periodo_inicio": "01/10/2026", "periodo_fin": "31/10/2026"}
        other_period = {**base, "periodo_inicio": "01/11/2026", "periodo_fin": "30/11/2026"}

        report = validate_for_kind([base, other_period, dict(base)], FileKind.PAYROLL)

        duplicates = [v for v in report.violations if v.code == "duplicate"]
        assert len(duplicates) == 1
        assert duplicates[0].row == 3
        assert duplicates[0].field == "employee_id+periodo_inicio+periodo_fin"
        assert duplicates[0].value == "E1 | 01/10/2026 | 31/10/2026"

    def test_sentinels_count_as_missing(self):
        """Test spreadsheet sentinels in required fields are treated as empty."""
        report = validate_for_kind([{"site_number": "#N/D", "nombre": "X"}], FileKind.RESTAURANT)

        assert [v.code for v in report.critical] == ["required"]

    def test_malformed_optional_fields_are_non_critical(self):
        """Test bad email, date and number in optional fields only warn."""
        rows = [{
            "site_number": "001",
            "nombre": "Centro",
            "franchisee_email": "not-an-email",
            "opening_date": "someday",
            "seating_capacity": "many",
        }]

        report = validate_for_kind(rows, FileKind.RESTAURANT)

        assert not report.critical
        assert {v.code for v in report.non_critical} == {"invalid_email", "invalid_date", "invalid_number"}
        assert all(v.severity == ViolationSeverity.NON_CRITICAL for v in report.violations)
        assert report.can_import() is False
        assert report.can_import(force=True) is True

    def test_force_discards_offending_values(self):
        """Test forcing nulls the fields with non-critical violations."""
        rows = [
            {"site_number": "001", "nombre": "A", "franchisee_email": "bad"},
            {"site_number": "002", "nombre": "B", "franchisee_email": "ok@example.com"},
        ]

        sanitized = validate_for_kind(rows, FileKind.RESTAURANT).sanitized_rows(force=True)

        assert sanitized[0]["franchisee_email"] is None
        assert sanitized[1]["franchisee_email"] == "ok@example.com"

    def test_malformed_required_date_is_critical(self):
        """Test format problems in required fields block the import."""
        rows = [{"employee_id": "E1", "periodo_inicio": "yesterday", "periodo_fin": "31/10/2026"}]

        report = validate_for_kind(rows, FileKind.PAYROLL)

        assert [v.code for v in report.critical] == ["invalid_date"]

    def test_clean_batch(self):
        """Test a clean batch imports without forcing."""
        report = validate_rows(
            [{"a": "1"}, {"a": "2"}],
            required_fields=["a"],
            unique_keys=[("a",)],
        )

        assert report.violations == []
        assert report.summary() == {
            "total_rows": 2,
            "clean_rows": 2,
            "dirty_rows": 0,
            "critical": 0,
            "non_critical": 0,
        }
        assert report.sanitized_rows() == [{"a": "1"}, {"a": "2"}]
