"""
JSON-Schema input schemas for generated tools.
"""

from typing import Any, Dict, List

from .models import EntityProperty, EntityType, NavigationProperty

ETAG_PARAMETER = "etag"

_FORMATS = {
    "Edm.Guid": "uuid",
    "Edm.DateTimeOffset": "date-time",
    "Edm.DateTime": "date-time",
    "Edm.Date": "date",
    "Edm.TimeOfDay": "time",
}

QUERY_OPTION_SCHEMAS: Dict[str, Dict[str, Any]] = {
    "$filter": {"type": "string", "description": "OData filter expression, e.g. \"Name eq 'Contoso'\""},
    "$orderby": {"type": "string", "description": "Sort order, e.g. \"Name desc\""},
    "$select": {"type": "string", "description": "Comma-separated list of properties to return"},
    "$expand": {"type": "string", "description": "Comma-separated navigation properties to expand"},
    "$top": {"type": "integer", "minimum": 0, "description": "Maximum number of entities to return"},
    "$skip": {"type": "integer", "minimum": 0, "description": "Number of entities to skip"},
    "$count": {"type": "boolean", "description": "Include the total number of matching entities"},
    "$search": {"type": "string", "description": "Free-text search expression"},
}


def property_schema(prop: EntityProperty) -> Dict[str, Any]:
    schema: Dict[str, Any] = {
        "type": prop.get_schema_type(),
        "description": prop.description or f"{prop.name} ({prop.type})",
    }
    if prop.type in _FORMATS:
        schema["format"] = _FORMATS[prop.type]
    if prop.is_binary():
        schema["contentEncoding"] = "base64"
    return schema


def _object_schema(properties: Dict[str, Any], required: List[str], strict: bool = False) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "object", "properties": properties}
    if required:
        schema["required"] = required
    if strict:
        schema["additionalProperties"] = False
    return schema


def _query_options(*names: str) -> Dict[str, Any]:
    return {name: dict(QUERY_OPTION_SCHEMAS[name]) for name in names}


def _key_properties(entity_type: EntityType) -> Dict[str, Any]:
    return {prop.name: property_schema(prop) for prop in entity_type.get_key_properties()}


def _etag_schema() -> Dict[str, Any]:
    return {
        "type": "string",
        "description": "Concurrency token (ETag). Fetched automatically when omitted.",
    }


def create_schema(entity_type: EntityType) -> Dict[str, Any]:
    properties = {prop.name: property_schema(prop) for prop in entity_type.properties}
    required = [prop.name for prop in entity_type.properties
                if prop.name in entity_type.key_properties or not prop.nullable]
    return _object_schema(properties, required)


def read_schema(entity_type: EntityType) -> Dict[str, Any]:
    properties = _key_properties(entity_type)
    properties.update(_query_options("$select"))
    return _object_schema(properties, list(entity_type.key_properties))


def update_schema(entity_type: EntityType) -> Dict[str, Any]:
    properties = _key_properties(entity_type)
    for prop in entity_type.properties:
        if prop.name not in entity_type.key_properties:
            properties[prop.name] = property_schema(prop)
    properties[ETAG_PARAMETER] = _etag_schema()
    return _object_schema(properties, list(entity_type.key_properties), strict=True)


def delete_schema(entity_type: EntityType) -> Dict[str, Any]:
    properties = _key_properties(entity_type)
    properties[ETAG_PARAMETER] = _etag_schema()
    return _object_schema(properties, list(entity_type.key_properties))


def navigation_schema(entity_type: EntityType, navigation: NavigationProperty) -> Dict[str, Any]:
    properties = _key_properties(entity_type)
    if navigation.is_collection:
        properties.update(_query_options("$filter", "$orderby", "$select", "$expand", "$top", "$skip", "$count"))
    else:
        properties.update(_query_options("$select", "$expand"))
    return _object_schema(properties, list(entity_type.key_properties))


def list_schema() -> Dict[str, Any]:
    return _object_schema(_query_options(*QUERY_OPTION_SCHEMAS), [])


def query_schema(entity_sets: List[str]) -> Dict[str, Any]:
    collection: Dict[str, Any] = {"type": "string", "description": "Name of the entity set to query"}
    if entity_sets:
        collection["enum"] = list(entity_sets)
    properties = {"entitySet": collection}
    properties.update(_query_options(*QUERY_OPTION_SCHEMAS))
    return _object_schema(properties, ["entitySet"])
