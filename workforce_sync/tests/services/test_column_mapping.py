"""Tests for column mapping resolution."""

import pytest

from workforce_sync.models.import_job import FileKind
from workforce_sync.services.column_mapping import (
    RawRow,
    apply_mapping,
    auto_detect_mapping,
    check_mapping,
    check_mapping_targets,
    missing_required_fields,
)
from workforce_sync.utils.errors import MappingError


# =============================================================================
# Auto-detection
# =============================================================================

class TestAutoDetectMapping:
    """Tests for alias-based header detection."""

    def test_exact_aliases_are_matched_case_insensitively(self):
        """Test headers matching an alias map to their canonical field."""
        mapping = auto_detect_mapping(["Site Number", "Name", "City"], FileKind.RESTAURANT)

        assert mapping == {
            "Site Number": "site_number",
            "Name": "nombre",
            "City": "ciudad",
        }

    def test_exact_match_beats_earlier_partial_match(self):
        """Test a partial header listed first does not steal a field an exact header claims."""
        # "codigo_centro" contains the alias "codigo" but "code" is an exact alias
        mapping = auto_detect_mapping(["codigo_centro", "code", "nombre"], FileKind.RESTAURANT)

        assert mapping["code"] == "site_number"
        assert "codigo_centro" not in mapping

    def test_partial_match_used_when_no_exact_alias(self):
        """Test substring matching for headers without an exact alias."""
        mapping = auto_detect_mapping(["Horas Trabajadas Mes"], FileKind.PAYROLL)

        assert mapping == {"Horas Trabajadas Mes": "horas_trabajadas"}

    def test_each_field_claimed_once(self):
        """Test the first header wins when two headers match the same field."""
        mapping = auto_detect_mapping(["name", "nombre"], FileKind.RESTAURANT)

        assert mapping == {"name": "nombre"}

    def test_unknown_headers_are_omitted(self):
        """Test headers without any alias match stay unmapped."""
        mapping = auto_detect_mapping(["site", "zzz"], FileKind.RESTAURANT)

        assert "zzz" not in mapping


# =============================================================================
# Mapping checks
# =============================================================================

class TestCheckMapping:
    """Tests for mapping validation before rows are read."""

    def test_missing_required_fields_are_listed(self):
        """Test required fields without a column are reported."""
        missing = missing_required_fields({"Nombre": "nombre"}, FileKind.RESTAURANT)

        assert missing == ["site_number"]

    def test_check_mapping_raises_with_missing_fields(self):
        """Test a mapping without required fields is rejected."""
        with pytest.raises(MappingError) as exc_info:
            check_mapping({"empleado": "employee_id"}, FileKind.PAYROLL)

        assert exc_info.value.missing_fields == ["periodo_inicio", "periodo_fin"]
        assert exc_info.value.details == {"missing_fields": ["periodo_inicio", "periodo_fin"]}

    def test_unknown_target_rejected(self):
        """Test mapping onto a field the file kind does not have."""
        with pytest.raises(MappingError) as exc_info:
            check_mapping_targets({"Col": "salary"}, FileKind.RESTAURANT)

        assert "salary" in exc_info.value.message

    def test_two_columns_on_one_field_rejected(self):
        """Test two columns cannot target the same field."""
        with pytest.raises(MappingError) as exc_info:
            check_mapping_targets({"A": "nombre", "B": "nombre"}, FileKind.RESTAURANT)

        assert "both mapped" in exc_info.value.message

    def test_mapped_column_must_exist_in_headers(self):
        """Test mapped columns absent from the header row are rejected."""
        mapping = {"Site": "site_number", "Name": "nombre"}

        with pytest.raises(MappingError) as exc_info:
            check_mapping(mapping, FileKind.RESTAURANT, headers=["Site"])

        assert "Name" in exc_info.value.message

    def test_valid_mapping_passes(self):
        """Test a complete mapping raises nothing."""
        check_mapping({"Site": "site_number", "Name": "nombre"}, FileKind.RESTAURANT, ["Site", "Name"])


class TestApplyMapping:
    """Tests for projecting raw rows onto canonical fields."""

    def test_projects_and_stringifies(self):
        """Test raw cells are stringified and keyed by canonical field."""
        row = RawRow.from_mapping({"Site": 101, "Name": "Gran Vía", "Extra": "x", "Empty": None})

        values = apply_mapping(row, {"Site": "site_number", "Name": "nombre", "Empty": "ciudad"})

        assert values == {"site_number": "101", "nombre": "Gran Vía", "ciudad": None}
