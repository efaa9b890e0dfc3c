"""
Tool definitions produced by the catalog builder.

A tool does not carry a callable. Its ``operation_kind`` selects one of the fixed
handlers on the request translator, and its ``binding`` holds the typed context
that handler needs (entity set, key names, default selection and so on).
"""

from collections import Counter
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field

from .constants import MAX_TOOL_NAME_LENGTH, TOOL_VERSION


class OperationKind(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    QUERY = "query"
    NAVIGATE = "navigate"
    LIST = "list"


class ToolCategory(str, Enum):
    CRUD = "crud"
    QUERY = "query"
    NAVIGATION = "navigation"
    ENTITY_SET = "entity_set"


class EntityBinding(BaseModel):
    """Context for create/read/update/delete on a single entity type."""
    kind: Literal["entity"] = "entity"
    entity_type: str
    entity_set: Optional[str] = None
    key_properties: List[str] = []
    property_names: List[str] = []
    required_properties: List[str] = []


class NavigationBinding(BaseModel):
    kind: Literal["navigation"] = "navigation"
    entity_type: str
    entity_set: Optional[str] = None
    key_properties: List[str] = []
    navigation_property: str
    target_entity_type: str
    is_collection: bool = False
    max_expand_depth: Optional[int] = None


class CollectionBinding(BaseModel):
    kind: Literal["collection"] = "collection"
    entity_type: str
    entity_set: str
    property_names: List[str] = []
    # Precomputed $select applied when the caller selects nothing; None means no default
    default_select: Optional[List[str]] = None
    default_page_size: int
    max_expand_depth: Optional[int] = None


class QueryBinding(BaseModel):
    kind: Literal["query"] = "query"
    entity_sets: List[str] = []
    max_expand_depth: Optional[int] = None


ToolBinding = Annotated[
    Union[EntityBinding, NavigationBinding, CollectionBinding, QueryBinding],
    Field(discriminator="kind"),
]


class ToolDefinition(BaseModel):
    name: str
    description: str
    category: ToolCategory
    operation_kind: OperationKind
    target_entity_type: Optional[str] = None
    target_collection: Optional[str] = None
    input_schema: Dict[str, Any] = {}
    required_scopes: List[str] = []
    required_roles: List[str] = []
    binding: Optional[ToolBinding] = None
    version: str = TOOL_VERSION
    is_deprecated: bool = False
    deprecation_message: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)

    def get_validation_errors(self, max_name_length: int = MAX_TOOL_NAME_LENGTH) -> List[str]:
        label = self.name or "<unnamed>"
        problems = []
        if not self.name or not self.name.strip():
            problems.append("Tool name is required")
        elif len(self.name) > max_name_length:
            problems.append(f"Tool '{label}' name exceeds {max_name_length} characters")
        if not self.description or not self.description.strip():
            problems.append(f"Tool '{label}' is missing a description")
        if not self.input_schema:
            problems.append(f"Tool '{label}' is missing an input schema")
        if self.binding is None:
            problems.append(f"Tool '{label}' has no handler binding")
        if self.is_deprecated and not self.deprecation_message:
            problems.append(f"Tool '{label}' is deprecated but has no deprecation message")
        return problems

    def __str__(self) -> str:
        return f"{self.name} ({self.category.value}/{self.operation_kind.value}): {self.description}"


def validate_catalog(tools: List[ToolDefinition], max_name_length: int = MAX_TOOL_NAME_LENGTH) -> List[str]:
    """Collect per-tool problems plus duplicate names across the catalog."""
    problems = []
    for tool in tools:
        problems.extend(tool.get_validation_errors(max_name_length))
    for name, count in Counter(tool.name for tool in tools).items():
        if count > 1:
            problems.append(f"Duplicate tool name '{name}' ({count} definitions)")
    return problems
