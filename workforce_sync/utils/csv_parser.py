"""Cell parsing and CSV generation utilities for imports and exports."""

import csv
import io
import math
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


# Spreadsheet placeholders that mean "no value"
NULL_SENTINELS = frozenset({"#N/D", "#N/A", "N/A"})

EMAIL_PATTERN = re.compile(r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$')

DATE_FORMATS = [
    "%Y-%m-%d",
    "%d/%m/%Y",
    "%d-%m-%Y",
    "%Y/%m/%d",
    "%d.%m.%Y",
    "%Y%m%d",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
]


def normalize_column_name(name: str) -> str:
    """Normalize a column name for matching: lowercase, trimmed, whitespace runs as '_'."""
    return re.sub(r"\s+", "_", name.lower().strip())


def normalize_cell(value: Any) -> Optional[str]:
    """
    Normalize a raw cell value.

    Empty strings, whitespace, None and spreadsheet sentinels all become
    None; anything else is returned as a stripped string.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text or text in NULL_SENTINELS:
        return None
    return text


def validate_email(value: str) -> Tuple[bool, Optional[str]]:
    """Validate email format."""
    if not value:
        return True, None

    if EMAIL_PATTERN.match(value):
        return True, None
    return False, "Invalid email format"


def parse_date(value: str) -> Tuple[Optional[date], Optional[str]]:
    """
    Parse a date string into a date object.

    Day-first formats win over month-first ones: payroll and restaurant
    spreadsheets are produced with Spanish locale settings.
    """
    if not value or value.strip() == "":
        return None, None

    for fmt in DATE_FORMATS:
        try:
            parsed = datetime.strptime(value.strip(), fmt)
            return parsed.date(), None
        except ValueError:
            continue

    return None, f"Could not parse date: {value}. Expected format: YYYY-MM-DD"


def parse_decimal(value: str) -> Tuple[Optional[Decimal], Optional[str]]:
    """
    Parse a decimal value from string.

    Accepts currency symbols and both '1,234.56' and '1.234,56' notations.
    """
    if not value or value.strip() == "":
        return None, None

    cleaned = re.sub(r'[$€£¥\s]', '', value.strip())
    if "," in cleaned and "." in cleaned:
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif "," in cleaned:
        cleaned = cleaned.replace(",", ".")

    try:
        parsed = Decimal(cleaned)
    except InvalidOperation:
        return None, f"Invalid number: {value}"
    # Reject values that overflow a float (e.g. "1e400")
    if not parsed.is_finite() or not math.isfinite(float(parsed)):
        return None, f"Invalid number: {value}"
    return parsed, None


def parse_float(value: Optional[str], default: Optional[float] = None) -> Optional[float]:
    """Parse a number cell, returning ``default`` when the cell is empty or invalid."""
    if value is None:
        return default
    parsed, error = parse_decimal(value)
    if error or parsed is None:
        return default
    return float(parsed)


def parse_integer(value: Optional[str]) -> Optional[int]:
    """Parse an integer cell; decimal notations are truncated."""
    number = parse_float(value)
    return int(number) if number is not None else None


def format_csv_value(value: Any) -> str:
    """Render a Python value for a CSV cell."""
    if value is None:
        return ""
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, bool):
        return "sí" if value else "no"
    if isinstance(value, (list, tuple)):
        return ", ".join(format_csv_value(item) for item in value)
    return str(value)


def generate_csv_content(
    data: List[Dict[str, Any]],
    fields: List[str],
    headers: Optional[Dict[str, str]] = None,
    include_headers: bool = True,
    delimiter: str = ",",
) -> bytes:
    """
    Generate CSV content from a list of dictionaries.

    Args:
        data: Rows to write
        fields: Keys to include (in order)
        headers: Optional human readable header per key
        include_headers: Whether to include a header row
        delimiter: CSV delimiter character

    Returns:
        CSV content as UTF-8 bytes with BOM so spreadsheets detect the encoding
    """
    output = io.StringIO()
    writer = csv.writer(output, delimiter=delimiter)

    if include_headers:
        labels = headers or {}
        writer.writerow([labels.get(name, name) for name in fields])

    for row in data:
        writer.writerow([format_csv_value(row.get(name)) for name in fields])

    return output.getvalue().encode("utf-8-sig")
