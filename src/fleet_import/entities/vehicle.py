"""Vehicle (vehiculo) entity."""

from __future__ import annotations

from typing import Any

from ..models.raw_row import RawRow
from ..models.rules import Severity
from ..validation.formats import (
    PLATE_PATTERN,
    is_valid_date,
    is_valid_year,
    match_choice,
    matches,
    normalize_plate,
)
from .base import (
    EntityDefinition,
    ParentLink,
    ReferenceField,
    alias_map,
    check,
    choices,
    date_value,
    reference,
    required,
    unique_in_batch,
    unique_in_store,
)

VEHICLE_TYPES = ("Camión", "Acoplado", "Semirremolque", "Bitren", "Furgón", "Utilitario")
# 書類の有効期限 (seguro / VTV / ruta / SENASA)
DOCUMENT_EXPIRY_FIELDS = ("insurance_expiry", "vtv_expiry", "route_expiry", "senasa_expiry")


def _year(row: RawRow) -> int | None:
    text = row.text("year")
    if text is None:
        return None
    try:
        return int(float(text))
    except (ValueError, OverflowError):
        return None


def _build_fields(row: RawRow) -> dict[str, Any]:
    type_text = row.text("type")
    return {
        "plate": normalize_plate(row.text("plate") or ""),
        "type": match_choice(type_text, VEHICLE_TYPES) if type_text else None,
        "brand": row.text("brand"),
        "model": row.text("model"),
        "year": _year(row),
        **{name: date_value(row, name) for name in DOCUMENT_EXPIRY_FIELDS},
    }


def _plate_format(value: str) -> bool:
    return matches(PLATE_PATTERN, normalize_plate(value))


VEHICLE = EntityDefinition(
    name="vehicle",
    table="vehicles",
    natural_key="plate",
    display_column="plate",
    rules=(
        required("plate", "Plate"),
        check("plate", _plate_format, "Invalid plate format (expected AAA999 or AA999AA)"),
        unique_in_batch("plate", "Plate"),
        unique_in_store("plate", "Plate"),
        required("type", "Vehicle type"),
        choices("type", VEHICLE_TYPES, "Vehicle type"),
        required("company", "Company"),
        reference("company", "company", "Company"),
        check("year", is_valid_year, "Year outside 1950 and next year", Severity.WARNING),
        check("insurance_expiry", is_valid_date, "Invalid insurance expiry date"),
        check("vtv_expiry", is_valid_date, "Invalid VTV expiry date"),
        check("route_expiry", is_valid_date, "Invalid route permit expiry date"),
        check("senasa_expiry", is_valid_date, "Invalid SENASA expiry date"),
    ),
    build_fields=_build_fields,
    key_normalizer=normalize_plate,
    aliases=alias_map(
        plate=("dominio", "patente", "patente faltante", "patentefaltante"),
        type=("tipo",),
        brand=("marca",),
        model=("modelo",),
        year=("anio", "año", "ano"),
        company=("empresa", "empresa id", "empresaid", "company id"),
        insurance_expiry=("vencimiento seguro", "seguro vencimiento", "venc seguro"),
        vtv_expiry=("vencimiento vtv", "vtv vencimiento", "venc vtv"),
        route_expiry=("vencimiento ruta", "ruta vencimiento", "venc ruta"),
        senasa_expiry=("vencimiento senasa", "senasa vencimiento", "venc senasa"),
        activate=("activar",),
    ),
    references={"company": ReferenceField(entity="company", column="company_id")},
    parent=ParentLink(via_field="company", parent_table="companies", collection="fleet"),
)
