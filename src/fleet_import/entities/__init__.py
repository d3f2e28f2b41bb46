"""Entity registry.

Rule sets, tables and natural keys are a pure function of the entity type;
callers look definitions up by name.
"""

from __future__ import annotations

from .base import ACTIVATE_FIELD, EntityDefinition, ParentLink, ReferenceField
from .company import COMPANY
from .personnel import PERSONNEL
from .vehicle import VEHICLE

__all__ = [
    "ACTIVATE_FIELD",
    "EntityDefinition",
    "ParentLink",
    "ReferenceField",
    "UnknownEntityError",
    "get_entity",
    "list_entities",
]

_REGISTRY: dict[str, EntityDefinition] = {
    COMPANY.name: COMPANY,
    VEHICLE.name: VEHICLE,
    PERSONNEL.name: PERSONNEL,
}


class UnknownEntityError(KeyError):
    pass


def get_entity(entity_type: str) -> EntityDefinition:
    try:
        return _REGISTRY[entity_type]
    except KeyError:
        raise UnknownEntityError(
            f"unknown entity type '{entity_type}' (known: {sorted(_REGISTRY)})"
        ) from None


def list_entities() -> list[str]:
    return sorted(_REGISTRY)
