"""Company (empresa) entity."""

from __future__ import annotations

from typing import Any

from ..models.raw_row import RawRow
from ..models.rules import Severity
from ..validation.formats import (
    EMAIL_PATTERN,
    is_valid_cuit,
    is_valid_phone,
    match_choice,
    normalize_space,
)
from .base import (
    EntityDefinition,
    alias_map,
    check,
    choices,
    pattern,
    required,
    unique_in_batch,
    unique_in_store,
)

COMPANY_TYPES = ("Propia", "Subcontratada")


def _build_fields(row: RawRow) -> dict[str, Any]:
    type_text = row.text("type")
    email = row.text("email")
    return {
        "name": normalize_space(row.text("name") or ""),
        "tax_id": row.text("tax_id"),
        "type": match_choice(type_text, COMPANY_TYPES) if type_text else None,
        "email": email.lower() if email else None,
        "phone": row.text("phone"),
    }


COMPANY = EntityDefinition(
    name="company",
    table="companies",
    natural_key="name",
    display_column="name",
    rules=(
        required("name", "Name"),
        unique_in_batch("name", "Company name"),
        unique_in_store("name", "Company name"),
        required("type", "Type"),
        choices("type", COMPANY_TYPES, "Type"),
        check("tax_id", is_valid_cuit, "Invalid CUIT"),
        pattern("email", EMAIL_PATTERN, "Invalid email"),
        check("phone", is_valid_phone, "Phone should have 8 to 15 digits", Severity.WARNING),
    ),
    build_fields=_build_fields,
    key_normalizer=normalize_space,
    aliases=alias_map(
        name=("nombre", "razon social", "empresa"),
        tax_id=("cuit",),
        type=("tipo",),
        email=("correo", "mail"),
        phone=("telefono", "tel"),
        activate=("activar",),
    ),
)
