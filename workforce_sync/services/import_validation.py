"""
Row validation for spreadsheet imports.

Classifies every problem found in a mapped batch as critical (blocks the
import) or non-critical (blocks unless the user forces the import, in
which case the offending optional values are discarded).
"""

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from workforce_sync.models.import_job import FileKind
from workforce_sync.services.column_mapping import get_file_kind_rules
from workforce_sync.utils.csv_parser import (
    normalize_cell,
    parse_date,
    parse_decimal,
    validate_email,
)
from workforce_sync.utils.errors import ImportBlockedError


class ViolationSeverity(enum.Enum):
    """How a violation affects the import."""

    CRITICAL = "critical"
    NON_CRITICAL = "non_critical"


@dataclass
class Violation:
    """A single problem found in one row."""

    row: int
    field: str
    message: str
    severity: ViolationSeverity
    value: Optional[str] = None
    code: str = "invalid"

    @property
    def is_critical(self) -> bool:
        return self.severity == ViolationSeverity.CRITICAL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "row": self.row,
            "field": self.field,
            "message": self.message,
            "value": self.value,
            "severity": self.severity.value,
            "code": self.code,
        }


@dataclass
class ValidationReport:
    """
    Outcome of validating a batch of mapped rows.

    Row numbers are 1-based positions in the submitted batch.
    """

    rows: List[Dict[str, Optional[str]]] = field(default_factory=list)
    violations: List[Violation] = field(default_factory=list)

    @property
    def total_rows(self) -> int:
        return len(self.rows)

    @property
    def critical(self) -> List[Violation]:
        return [v for v in self.violations if v.is_critical]

    @property
    def non_critical(self) -> List[Violation]:
        return [v for v in self.violations if not v.is_critical]

    @property
    def has_critical(self) -> bool:
        return any(v.is_critical for v in self.violations)

    @property
    def dirty_rows(self) -> List[int]:
        return sorted({v.row for v in self.violations})

    @property
    def clean_rows(self) -> List[int]:
        dirty = set(self.dirty_rows)
        return [number for number in range(1, self.total_rows + 1) if number not in dirty]

    def can_import(self, force: bool = False) -> bool:
        """Critical violations always block; non-critical ones block unless forced."""
        if self.has_critical:
            return False
        if self.non_critical and not force:
            return False
        return True

    def sanitized_rows(self, force: bool = False) -> List[Dict[str, Optional[str]]]:
        """
        Rows ready for the write phase.

        With ``force`` every field carrying a non-critical violation is set
        to None.

        Raises:
            ImportBlockedError: If the report does not allow the import.
        """
        if not self.can_import(force):
            raise ImportBlockedError(self)

        rows = [dict(row) for row in self.rows]
        for violation in self.non_critical:
            rows[violation.row - 1][violation.field] = None
        return rows

    def summary(self) -> Dict[str, int]:
        return {
            "total_rows": self.total_rows,
            "clean_rows": len(self.clean_rows),
            "dirty_rows": len(self.dirty_rows),
            "critical": len(self.critical),
            "non_critical": len(self.non_critical),
        }

    def to_dict(self, max_violations: Optional[int] = None) -> Dict[str, Any]:
        violations = self.violations if max_violations is None else self.violations[:max_violations]
        return {
            **self.summary(),
            "can_import": self.can_import(False),
            "can_force": self.can_import(True),
            "violations": [v.to_dict() for v in violations],
        }


def normalize_rows(rows: Sequence[Dict[str, Any]]) -> List[Dict[str, Optional[str]]]:
    """Apply cell normalization (blanks and sentinels become None) to every value."""
    return [{key: normalize_cell(value) for key, value in row.items()} for row in rows]


def validate_rows(
    rows: Sequence[Dict[str, Any]],
    required_fields: Sequence[str],
    unique_keys: Sequence[Tuple[str, ...]] = (),
    email_fields: Sequence[str] = (),
    date_fields: Sequence[str] = (),
    number_fields: Sequence[str] = (),
) -> ValidationReport:
    """
    Validate mapped rows.

    - Null required field: critical.
    - Uniqueness key repeated within the batch: one critical per row after
      the first occurrence (rows with a null key component are not checked).
    - Malformed email, date or number: non-critical in optional fields,
      critical in required ones.

    Args:
        rows: Rows keyed by canonical field
        required_fields: Fields that must hold a value
        unique_keys: Field tuples that must be unique within the batch
        email_fields: Fields validated as email addresses
        date_fields: Fields validated as dates
        number_fields: Fields validated as numbers

    Returns:
        ValidationReport with the normalized rows and all violations
    """
    normalized = normalize_rows(rows)
    report = ValidationReport(rows=normalized)
    required = set(required_fields)
    seen_keys: Dict[Tuple[str, ...], Dict[Tuple[Optional[str], ...], int]] = {
        tuple(key): {} for key in unique_keys
    }

    def severity_for(field_name: str) -> ViolationSeverity:
        return ViolationSeverity.CRITICAL if field_name in required else ViolationSeverity.NON_CRITICAL

    for index, row in enumerate(normalized):
        row_number = index + 1

        for field_name in required_fields:
            if row.get(field_name) is None:
                report.violations.append(Violation(
                    row=row_number,
                    field=field_name,
                    message=f"Required field '{field_name}' is missing or empty",
                    severity=ViolationSeverity.CRITICAL,
                    code="required",
                ))

        for key in unique_keys:
            key = tuple(key)
            values = tuple(row.get(name) for name in key)
            if any(value is None for value in values):
                continue
            first_row = seen_keys[key].get(values)
            if first_row is None:
                seen_keys[key][values] = row_number
                continue
            report.violations.append(Violation(
                row=row_number,
                field="+".join(key),
                message=f"Duplicate value for {' + '.join(key)} (first seen in row {first_row})",
                severity=ViolationSeverity.CRITICAL,
                value=" | ".join(values),
                code="duplicate",
            ))

        for field_name in email_fields:
            value = row.get(field_name)
            if value is None:
                continue
            is_valid, error_msg = validate_email(value)
            if not is_valid:
                report.violations.append(Violation(
                    row=row_number,
                    field=field_name,
                    message=error_msg,
                    severity=severity_for(field_name),
                    value=value,
                    code="invalid_email",
                ))

        for field_name in date_fields:
            value = row.get(field_name)
            if value is None:
                continue
            _, error_msg = parse_date(value)
            if error_msg:
                report.violations.append(Violation(
                    row=row_number,
                    field=field_name,
                    message=error_msg,
                    severity=severity_for(field_name),
                    value=value,
                    code="invalid_date",
                ))

        for field_name in number_fields:
            value = row.get(field_name)
            if value is None:
                continue
            _, error_msg = parse_decimal(value)
            if error_msg:
                report.violations.append(Violation(
                    row=row_number,
                    field=field_name,
                    message=error_msg,
                    severity=severity_for(field_name),
                    value=value,
                    code="invalid_number",
                ))

    return report


def validate_for_kind(rows: Sequence[Dict[str, Any]], file_kind: FileKind) -> ValidationReport:
    """Validate mapped rows with the rules of a file kind."""
    rules = get_file_kind_rules(file_kind)
    return validate_rows(
        rows,
        required_fields=rules.required_fields,
        unique_keys=rules.unique_keys,
        email_fields=rules.email_fields,
        date_fields=rules.date_fields,
        number_fields=rules.number_fields,
    )
