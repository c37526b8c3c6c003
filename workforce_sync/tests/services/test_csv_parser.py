"""Tests for spreadsheet cell parsing and CSV generation helpers."""

import enum
from datetime import date
from decimal import Decimal

import pytest

from workforce_sync.utils.csv_parser import (
    format_csv_value,
    generate_csv_content,
    normalize_cell,
    parse_date,
    parse_decimal,
    parse_integer,
)


class _Colour(enum.Enum):
    RED = "rojo"


class TestCellParsing:
    """Tests for cell normalization and typed parsing."""

    @pytest.mark.parametrize("raw", [None, "", "   ", "#N/D", "#N/A", "N/A"])
    def test_blank_and_sentinel_cells_become_none(self, raw):
        """Test empty values and spreadsheet sentinels normalize to None."""
        assert normalize_cell(raw) is None

    def test_values_are_stripped(self):
        """Test surrounding whitespace is removed."""
        assert normalize_cell("  Madrid ") == "Madrid"
        assert normalize_cell(42) == "42"

    def test_dates_are_day_first(self):
        """Test ambiguous dates are read day-first."""
        assert parse_date("03/04/2026") == (date(2026, 4, 3), None)
        assert parse_date("2026-04-03") == (date(2026, 4, 3), None)

    def test_invalid_date_reports_error(self):
        """Test unparseable dates return an error message."""
        parsed, error = parse_date("31/31/2026")
        assert parsed is None
        assert "Could not parse date" in error

    @pytest.mark.parametrize("raw, expected", [
        ("1.234,56", Decimal("1234.56")),
        ("1,234.56", Decimal("1234.56")),
        ("12,5", Decimal("12.5")),
        ("€ 30", Decimal("30")),
    ])
    def test_decimal_notations(self, raw, expected):
        """Test both European and English number notations."""
        assert parse_decimal(raw) == (expected, None)

    def test_invalid_decimal(self):
        """Test non-numeric cells return an error."""
        parsed, error = parse_decimal("abc")
        assert parsed is None
        assert error == "Invalid number: abc"

    @pytest.mark.parametrize("raw", ["1e400", "-1e400", "NaN", "Infinity"])
    def test_non_finite_decimal(self, raw):
        """Test values that do not fit a finite float are rejected."""
        parsed, error = parse_decimal(raw)
        assert parsed is None
        assert error == f"Invalid number: {raw}"
        assert parse_integer(raw) is None

    def test_integer_truncates(self):
        """Test integer cells accept decimal notation."""
        assert parse_integer("120,7") == 120
        assert parse_integer(None) is None


class TestCsvGeneration:
    """Tests for CSV rendering."""

    def test_values_are_formatted(self):
        """Test enums, booleans and lists render readably."""
        assert format_csv_value(_Colour.RED) == "rojo"
        assert format_csv_value(True) == "sí"
        assert format_csv_value(False) == "no"
        assert format_csv_value(["inapp", "email"]) == "inapp, email"
        assert format_csv_value(None) == ""

    def test_content_has_bom_and_labels(self):
        """Test output is UTF-8 with BOM and uses the header labels."""
        content = generate_csv_content(
            [{"code": "C1", "active": True}],
            fields=["code", "active"],
            headers={"code": "Código", "active": "Activo"},
        )

        assert content.startswith(b"\xef\xbb\xbf")
        assert content.decode("utf-8-sig").splitlines() == ["Código,Activo", "C1,sí"]
