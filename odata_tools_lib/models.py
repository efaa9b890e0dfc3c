"""
Data models for the OData metadata the tool catalog is generated from.
"""

from typing import Dict, List, Optional
from pydantic import BaseModel

from .constants import BINARY_TYPE_MARKERS, BINARY_TYPE_NAMES, EDM_SCHEMA_TYPES


class EntityProperty(BaseModel):
    name: str
    type: str  # OData type string (e.g., "Edm.String")
    nullable: bool = True
    is_key: bool = False
    description: Optional[str] = None

    def get_schema_type(self) -> str:
        """JSON-Schema primitive for this property; unknown types become string."""
        return EDM_SCHEMA_TYPES.get(self.type, "string")

    def is_binary(self) -> bool:
        type_name = self.type.lower()
        return any(marker in type_name for marker in BINARY_TYPE_MARKERS) or type_name in BINARY_TYPE_NAMES


class NavigationProperty(BaseModel):
    name: str
    type: str  # "NS.Target" or "Collection(NS.Target)"
    nullable: bool = True
    description: Optional[str] = None

    @property
    def is_collection(self) -> bool:
        return self.type.startswith("Collection(")

    @property
    def target_type(self) -> str:
        if self.is_collection:
            return self.type[len("Collection("):-1]
        return self.type


class EntityType(BaseModel):
    name: str
    namespace: Optional[str] = None
    properties: List[EntityProperty] = []
    key_properties: List[str] = []
    navigation_properties: List[NavigationProperty] = []
    description: Optional[str] = None

    @property
    def full_name(self) -> str:
        return f"{self.namespace}.{self.name}" if self.namespace else self.name

    def get_key_properties(self) -> List[EntityProperty]:
        return [prop for prop in self.properties if prop.name in self.key_properties]

    def get_property(self, name: str) -> Optional[EntityProperty]:
        return next((prop for prop in self.properties if prop.name == name), None)

    def missing_key_properties(self) -> List[str]:
        """Key names that have no matching property declaration."""
        declared = {prop.name for prop in self.properties}
        return [name for name in self.key_properties if name not in declared]

    def has_binary_properties(self) -> bool:
        return any(prop.is_binary() for prop in self.properties)


class EntitySet(BaseModel):
    name: str
    entity_type: str  # fully qualified entity type name
    description: Optional[str] = None


class ODataMetadata(BaseModel):
    entity_types: Dict[str, EntityType] = {}
    entity_sets: Dict[str, EntitySet] = {}
    service_url: str = ""
    namespace: Optional[str] = None

    def get_entity_type(self, type_name: str) -> Optional[EntityType]:
        """Look up an entity type by full name, falling back to the short name."""
        if type_name in self.entity_types:
            return self.entity_types[type_name]
        short_name = type_name.split('.')[-1]
        return next((et for et in self.entity_types.values() if et.name == short_name), None)

    def find_entity_set(self, entity_type: EntityType) -> Optional[EntitySet]:
        """First entity set whose element type is the given entity type."""
        for entity_set in self.entity_sets.values():
            if entity_set.entity_type in (entity_type.full_name, entity_type.name):
                return entity_set
        return None
