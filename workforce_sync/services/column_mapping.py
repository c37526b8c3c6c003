"""
Column mapping resolution for spreadsheet imports.

Maps the raw header row of an uploaded file onto the canonical fields of
the selected file kind using per-kind alias dictionaries.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from workforce_sync.models.import_job import FileKind
from workforce_sync.utils.csv_parser import normalize_column_name
from workforce_sync.utils.errors import MappingError


# =============================================================================
# Alias Dictionaries
# =============================================================================

# Declaration order matters: on ties the first canonical field wins
RESTAURANT_ALIASES: Dict[str, List[str]] = {
    "site_number": ["site_number", "site", "codigo", "code", "site_code"],
    "nombre": ["name", "nombre", "restaurant_name", "nom", "restaurant"],
    "direccion": ["address", "direccion", "dirección", "addr", "direcció"],
    "ciudad": ["city", "ciudad", "town", "localidad"],
    "state": ["state", "provincia", "region", "estado"],
    "pais": ["country", "pais", "país", "nation"],
    "postal_code": ["postal_code", "zip", "cp", "codigo_postal", "postcode"],
    "franchisee_name": ["franchisee_name", "franquiciado", "franchisee", "owner_name"],
    "franchisee_email": ["franchisee_email", "email_franquiciado", "owner_email", "franchisee_mail"],
    "seating_capacity": ["seating_capacity", "capacidad", "asientos", "capacity"],
    "square_meters": ["square_meters", "metros", "m2", "area", "surface"],
    "opening_date": ["opening_date", "fecha_apertura", "apertura", "opening"],
    "scheduling_service_id": ["scheduling_service_id", "service_id", "id_servicio", "servicio"],
    "scheduling_business_id": ["scheduling_business_id", "business_id", "id_negocio"],
}

PAYROLL_ALIASES: Dict[str, List[str]] = {
    "employee_id": ["employee_id", "empleado", "id", "trabajador", "codtrabajador"],
    "periodo_inicio": ["periodo_inicio", "inicio", "fecha_inicio", "desde", "start"],
    "periodo_fin": ["periodo_fin", "fin", "fecha_fin", "hasta", "end"],
    "horas_trabajadas": ["horas_trabajadas", "trabajadas", "horas"],
    "horas_vacaciones": ["horas_vacaciones", "vacaciones", "vacation", "holidays"],
    "horas_formacion": ["horas_formacion", "formacion", "formación", "training"],
    "coste_total": ["coste_total", "coste", "cost", "total", "importe"],
}


@dataclass(frozen=True)
class FileKindRules:
    """Field rules applied to one kind of import file."""

    aliases: Dict[str, List[str]]
    required_fields: Tuple[str, ...]
    unique_keys: Tuple[Tuple[str, ...], ...]
    email_fields: Tuple[str, ...] = ()
    date_fields: Tuple[str, ...] = ()
    number_fields: Tuple[str, ...] = ()

    @property
    def canonical_fields(self) -> List[str]:
        return list(self.aliases.keys())


FILE_KIND_RULES: Dict[FileKind, FileKindRules] = {
    FileKind.RESTAURANT: FileKindRules(
        aliases=RESTAURANT_ALIASES,
        required_fields=("site_number", "nombre"),
        unique_keys=(("site_number",),),
        email_fields=("franchisee_email",),
        date_fields=("opening_date",),
        number_fields=("seating_capacity", "square_meters"),
    ),
    FileKind.PAYROLL: FileKindRules(
        aliases=PAYROLL_ALIASES,
        required_fields=("employee_id", "periodo_inicio", "periodo_fin"),
        unique_keys=(("employee_id", "periodo_inicio", "periodo_fin"),),
        date_fields=("periodo_inicio", "periodo_fin"),
        number_fields=("horas_trabajadas", "horas_vacaciones", "horas_formacion", "coste_total"),
    ),
}


def get_file_kind_rules(file_kind: FileKind) -> FileKindRules:
    """Return the field rules for a file kind."""
    return FILE_KIND_RULES[file_kind]


# =============================================================================
# Raw Rows
# =============================================================================

@dataclass
class RawRow:
    """One row of an uploaded file, keyed by raw header, as produced by the file parser."""

    values: Dict[str, Optional[str]] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RawRow":
        """Build a row from parser output, stringifying non-null cells."""
        return cls(values={
            str(key): (None if value is None else str(value))
            for key, value in data.items()
        })

    def get(self, column: str) -> Optional[str]:
        return self.values.get(column)


# =============================================================================
# Resolution
# =============================================================================

def _normalized_aliases(aliases: Dict[str, List[str]]) -> Dict[str, List[str]]:
    return {
        canonical: [normalize_column_name(alias) for alias in alias_list]
        for canonical, alias_list in aliases.items()
    }


def resolve_column_mapping(
    headers: Sequence[str],
    aliases: Dict[str, List[str]],
) -> Dict[str, str]:
    """
    Map raw headers to canonical fields.

    Exact alias membership is checked for every header first; only headers
    without an exact hit fall back to a bidirectional substring match.
    Each canonical field is assigned to at most one header (first header
    wins) and a field claimed by an exact match is never claimed again by
    a partial one. Unmapped headers are omitted.

    Args:
        headers: Raw header strings in file order
        aliases: Canonical field -> accepted aliases, in priority order

    Returns:
        Dict mapping raw header -> canonical field
    """
    normalized_aliases = _normalized_aliases(aliases)
    lowered_aliases = {
        canonical: [alias.lower().strip() for alias in alias_list]
        for canonical, alias_list in aliases.items()
    }

    mapping: Dict[str, str] = {}
    claimed: set = set()
    unmatched: List[Tuple[str, str]] = []

    # Pass 1: exact alias membership
    for header in headers:
        if header in mapping:
            continue
        normalized = normalize_column_name(header)
        lowered = header.lower().strip()

        hit = None
        for canonical in aliases:
            if canonical in claimed:
                continue
            if normalized in normalized_aliases[canonical] or lowered in lowered_aliases[canonical]:
                hit = canonical
                break

        if hit is not None:
            mapping[header] = hit
            claimed.add(hit)
        else:
            unmatched.append((header, normalized))

    # Pass 2: bidirectional substring match for the rest
    for header, normalized in unmatched:
        if not normalized:
            continue
        for canonical in aliases:
            if canonical in claimed:
                continue
            if any(
                alias and (alias in normalized or normalized in alias)
                for alias in normalized_aliases[canonical]
            ):
                mapping[header] = canonical
                claimed.add(canonical)
                break

    return mapping


def auto_detect_mapping(headers: Sequence[str], file_kind: FileKind) -> Dict[str, str]:
    """Resolve headers against the alias dictionary of a file kind."""
    return resolve_column_mapping(headers, get_file_kind_rules(file_kind).aliases)


def missing_required_fields(mapping: Dict[str, str], file_kind: FileKind) -> List[str]:
    """List required canonical fields that no column is mapped to."""
    mapped_fields = set(mapping.values())
    return [
        name for name in get_file_kind_rules(file_kind).required_fields
        if name not in mapped_fields
    ]


def check_mapping_targets(mapping: Dict[str, str], file_kind: FileKind) -> None:
    """
    Reject unknown canonical fields and fields targeted by two columns.

    Raises:
        MappingError: On the first problem found.
    """
    rules = get_file_kind_rules(file_kind)

    unknown = sorted({target for target in mapping.values() if target not in rules.aliases})
    if unknown:
        raise MappingError(
            missing_fields=[],
            message=f"Unknown fields for {file_kind.value} import: {', '.join(unknown)}",
        )

    seen: Dict[str, str] = {}
    for column, target in mapping.items():
        if target in seen:
            raise MappingError(
                missing_fields=[],
                message=f"Columns '{seen[target]}' and '{column}' are both mapped to '{target}'",
            )
        seen[target] = column


def check_mapping(
    mapping: Dict[str, str],
    file_kind: FileKind,
    headers: Optional[Sequence[str]] = None,
) -> None:
    """
    Reject a mapping before any row is validated or written.

    Raises:
        MappingError: If required fields are unmapped, a canonical field is
            unknown, two columns target the same field, or a mapped column
            is not in the header row.
    """
    check_mapping_targets(mapping, file_kind)

    if headers is not None:
        header_set = set(headers)
        absent = [column for column in mapping if column not in header_set]
        if absent:
            raise MappingError(
                missing_fields=[],
                message=f"Mapped columns not present in file: {', '.join(absent)}",
            )

    missing = missing_required_fields(mapping, file_kind)
    if missing:
        raise MappingError(missing_fields=missing)


def apply_mapping(raw_row: RawRow, mapping: Dict[str, str]) -> Dict[str, Optional[str]]:
    """Project a raw row onto canonical fields."""
    return {target: raw_row.get(column) for column, target in mapping.items()}
