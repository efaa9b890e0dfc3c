"""
OData Tools Library - generates a catalog of callable tools from OData metadata
and translates tool invocations into OData requests.
"""

from .models import (
    EntityProperty,
    EntityType,
    EntitySet,
    NavigationProperty,
    ODataMetadata
)
from .tools import OperationKind, ToolCategory, ToolDefinition
from .policy import GenerationPolicy, parse_operation_codes
from .context import CallerIdentity, ToolInvocationContext
from .results import ToolResult
from .keys import encode_key, is_string_key
from .metadata_parser import MetadataParser
from .catalog_builder import ToolCatalogBuilder
from .translator import RequestTranslator
from .registry import ToolCatalog, ToolRegistry
from .bridge import ODataToolsBridge

__all__ = [
    'EntityProperty',
    'EntityType',
    'EntitySet',
    'NavigationProperty',
    'ODataMetadata',
    'OperationKind',
    'ToolCategory',
    'ToolDefinition',
    'GenerationPolicy',
    'parse_operation_codes',
    'CallerIdentity',
    'ToolInvocationContext',
    'ToolResult',
    'encode_key',
    'is_string_key',
    'MetadataParser',
    'ToolCatalogBuilder',
    'RequestTranslator',
    'ToolCatalog',
    'ToolRegistry',
    'ODataToolsBridge',
]
