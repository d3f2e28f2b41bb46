"""Personnel (personal) entity."""

from __future__ import annotations

from datetime import date
from typing import Any

from ..models.raw_row import RawRow
from ..models.rules import Severity
from ..validation.formats import (
    EMAIL_PATTERN,
    NATIONAL_ID_PATTERN,
    is_valid_cuil,
    is_valid_date,
    is_valid_phone,
    match_choice,
    matches,
    normalize_national_id,
    normalize_space,
)
from .base import (
    EntityDefinition,
    ParentLink,
    ReferenceField,
    alias_map,
    check,
    choices,
    custom,
    date_value,
    pattern,
    reference,
    required,
    unique_in_batch,
    unique_in_store,
)

PERSONNEL_TYPES = ("Conductor", "Administrativo", "Mecánico", "Supervisor", "Otro")
DRIVER_TYPE = "Conductor"
# 種別の列が空のとき
DEFAULT_TYPE = "Otro"
INITIAL_CATEGORY = "Inicial"


def _is_driver(row: RawRow) -> bool:
    text = row.text("type")
    return text is not None and match_choice(text, PERSONNEL_TYPES) == DRIVER_TYPE


def _driver_has_license(row: RawRow) -> bool:
    return not _is_driver(row) or not row.is_empty("license_number")


def _national_id_format(value: str) -> bool:
    return matches(NATIONAL_ID_PATTERN, normalize_national_id(value))


def _employment_periods(type_text: str | None) -> list[dict[str, str]]:
    """First employment period, starting on the import date."""
    category = match_choice(type_text, PERSONNEL_TYPES) if type_text else None
    return [{"start_date": date.today().isoformat(), "category": category or INITIAL_CATEGORY}]


def _build_fields(row: RawRow) -> dict[str, Any]:
    type_text = row.text("type")
    email = row.text("email")
    return {
        "first_name": normalize_space(row.text("first_name") or ""),
        "last_name": normalize_space(row.text("last_name") or ""),
        "national_id": normalize_national_id(row.text("national_id") or ""),
        "tax_id": row.text("tax_id"),
        "type": match_choice(type_text, PERSONNEL_TYPES) if type_text else DEFAULT_TYPE,
        "file_number": row.text("file_number"),
        "license_number": row.text("license_number"),
        "email": email.lower() if email else None,
        "phone": row.text("phone"),
        "birth_date": date_value(row, "birth_date"),
        "address": row.text("address"),
        "notes": row.text("notes"),
        "employment_periods": _employment_periods(type_text),
    }


PERSONNEL = EntityDefinition(
    name="personnel",
    table="personnel",
    natural_key="national_id",
    display_column="national_id",
    rules=(
        required("first_name", "First name"),
        required("last_name", "Last name"),
        required("national_id", "DNI"),
        check("national_id", _national_id_format, "Invalid DNI format (7 or 8 digits)"),
        unique_in_batch("national_id", "DNI"),
        unique_in_store("national_id", "DNI"),
        check("tax_id", is_valid_cuil, "Invalid CUIL (expected NN-NNNNNNNN-N)"),
        choices("type", PERSONNEL_TYPES, "Personnel type"),
        required("company", "Company"),
        reference("company", "company", "Company"),
        pattern("email", EMAIL_PATTERN, "Invalid email"),
        check("phone", is_valid_phone, "Phone should have 8 to 15 digits", Severity.WARNING),
        check("birth_date", is_valid_date, "Invalid birth date"),
        custom("license_number", _driver_has_license, "Drivers must have a license number"),
    ),
    build_fields=_build_fields,
    key_normalizer=normalize_national_id,
    aliases=alias_map(
        first_name=("nombre", "first name"),
        last_name=("apellido", "last name"),
        national_id=("dni", "documento"),
        tax_id=("cuil",),
        type=("tipo", "cargo"),
        company=("empresa", "empresa id", "empresaid", "company id"),
        file_number=("legajo", "numero legajo", "numero de legajo"),
        license_number=("licencia", "licencia conducir", "licenciaconducir", "licencia de conducir"),
        email=("correo", "mail"),
        phone=("telefono", "tel"),
        birth_date=("fecha nacimiento", "fechanacimiento", "fecha de nacimiento"),
        address=("direccion", "domicilio"),
        notes=("observaciones", "notas"),
        activate=("activar",),
    ),
    references={"company": ReferenceField(entity="company", column="company_id")},
    parent=ParentLink(via_field="company", parent_table="companies", collection="staff"),
    insert_only=frozenset({"employment_periods"}),
)
