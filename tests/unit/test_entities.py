from __future__ import annotations

import pytest

from fleet_import.entities import get_entity, list_entities
from fleet_import.entities.base import EntityDefinition, required, unique_in_store
from fleet_import.entities.personnel import DEFAULT_TYPE
from fleet_import.models.raw_row import RawRow


def test_registry_lists_all_entities():
    assert sorted(list_entities()) == ["company", "personnel", "vehicle"]


def test_unique_in_store_only_on_natural_key():
    with pytest.raises(ValueError, match="natural key 'code'"):
        EntityDefinition(
            name="thing",
            table="things",
            natural_key="code",
            display_column="label",
            rules=(required("code", "Code"), unique_in_store("label", "Label")),
            build_fields=lambda row: {},
        )


def test_vehicle_document_expiry_columns():
    vehicle = get_entity("vehicle")
    assert vehicle.resolve_field("Vencimiento VTV") == "vtv_expiry"
    assert vehicle.resolve_field("Vencimiento Seguro") == "insurance_expiry"
    assert vehicle.resolve_field("Vencimiento SENASA") == "senasa_expiry"
    row = RawRow.from_mapping(1, {"plate": "ABC123", "vtv_expiry": "31/12/2025", "route_expiry": None})
    fields = vehicle.build_fields(row)
    assert str(fields["vtv_expiry"]) == "2025-12-31"
    assert fields["route_expiry"] is None


def test_personnel_defaults_and_extra_columns():
    personnel = get_entity("personnel")
    assert personnel.resolve_field("Dirección") == "address"
    assert personnel.resolve_field("Observaciones") == "notes"
    row = RawRow.from_mapping(
        1,
        {"first_name": "Ana", "last_name": "Gómez", "national_id": "30123456",
         "address": "Av. Siempreviva 742", "notes": "turno noche"},
    )
    fields = personnel.build_fields(row)
    assert fields["type"] == DEFAULT_TYPE == "Otro"
    assert fields["address"] == "Av. Siempreviva 742"
    assert fields["notes"] == "turno noche"
    (period,) = fields["employment_periods"]
    assert period["category"] == "Inicial"
    assert "employment_periods" in personnel.insert_only
