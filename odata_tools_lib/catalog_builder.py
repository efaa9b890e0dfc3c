"""
Builds the tool catalog from OData metadata and a generation policy.
"""

import sys
from datetime import datetime
from typing import Iterator, List, Optional, Tuple

from . import schemas
from .constants import QUERY_TOOL_BASE_NAME
from .exceptions import CatalogValidationError
from .models import EntitySet, EntityType, NavigationProperty, ODataMetadata
from .policy import GenerationPolicy
from .tools import (
    CollectionBinding,
    EntityBinding,
    NavigationBinding,
    OperationKind,
    QueryBinding,
    ToolCategory,
    ToolDefinition,
    validate_catalog,
)

CRUD_VERBS = [
    (OperationKind.CREATE, "create", "Creates a new {name} entity"),
    (OperationKind.READ, "get", "Retrieves a {name} entity by its key"),
    (OperationKind.UPDATE, "update", "Updates an existing {name} entity"),
    (OperationKind.DELETE, "delete", "Deletes a {name} entity"),
]


class ToolCatalogBuilder:
    """Single-pass generator of tool definitions for one metadata model."""

    def __init__(self, policy: Optional[GenerationPolicy] = None, verbose: bool = False):
        self.policy = policy or GenerationPolicy.default()
        self.verbose = verbose

    def _log_verbose(self, message: str):
        """Prints message to stderr only if verbose mode is enabled."""
        if self.verbose:
            timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
            print(f"[{timestamp} Builder VERBOSE] {message}", file=sys.stderr)

    def build(self, metadata: ODataMetadata) -> List[ToolDefinition]:
        """Generate, validate and return the ordered tool list."""
        self.policy.ensure_valid()
        tools: List[ToolDefinition] = []
        seen_names = set()

        for tool in self._generate(metadata):
            if self._limit_reached(tools):
                self._log_verbose(f"Reached max_tool_count={self.policy.max_tool_count}; stopping generation.")
                break
            if tool.name in seen_names:
                self._log_verbose(f"Skipping tool '{tool.name}': name already generated.")
                continue
            seen_names.add(tool.name)
            tools.append(tool)

        problems = validate_catalog(tools, self.policy.max_tool_name_length)
        if problems:
            raise CatalogValidationError(problems)
        self._log_verbose(f"Generated {len(tools)} tools.")
        return tools

    def _limit_reached(self, tools: List[ToolDefinition]) -> bool:
        return self.policy.max_tool_count is not None and len(tools) >= self.policy.max_tool_count

    def _generate(self, metadata: ODataMetadata) -> Iterator[ToolDefinition]:
        included = []
        for entity_type in metadata.entity_types.values():
            if not self.policy.should_include_entity_type(entity_type):
                self._log_verbose(f"Entity type {entity_type.full_name} excluded by policy.")
                continue
            missing = entity_type.missing_key_properties()
            if missing:
                print(f"ERROR: Skipping entity type {entity_type.full_name}: key properties "
                      f"{', '.join(missing)} are not declared.", file=sys.stderr)
                continue
            included.append(entity_type)

            if not entity_type.key_properties:
                self._log_verbose(f"Entity type {entity_type.full_name} has no key; "
                                  "skipping CRUD and navigation tools.")
                continue
            entity_set = metadata.find_entity_set(entity_type)
            try:
                entity_tools = list(self._crud_tools(entity_type, entity_set))
                entity_tools += self._navigation_tools(metadata, entity_type, entity_set)
            except (ValueError, TypeError) as e:
                print(f"ERROR: Skipping entity type {entity_type.full_name}: {e}", file=sys.stderr)
                continue
            yield from entity_tools

        yield from self._list_tools(metadata, included)
        yield from self._query_tools(metadata, included)

    def _crud_tools(self, entity_type: EntityType, entity_set: Optional[EntitySet]) -> Iterator[ToolDefinition]:
        if not self.policy.generate_crud_tools:
            return
        schema_builders = {
            OperationKind.CREATE: schemas.create_schema,
            OperationKind.READ: schemas.read_schema,
            OperationKind.UPDATE: schemas.update_schema,
            OperationKind.DELETE: schemas.delete_schema,
        }
        binding = EntityBinding(
            entity_type=entity_type.full_name,
            entity_set=entity_set.name if entity_set else None,
            key_properties=list(entity_type.key_properties),
            property_names=[prop.name for prop in entity_type.properties],
            required_properties=[prop.name for prop in entity_type.properties
                                 if prop.name in entity_type.key_properties or not prop.nullable],
        )
        for kind, verb, description in CRUD_VERBS:
            if not self.policy.should_include_operation(kind):
                continue
            yield ToolDefinition(
                name=self.policy.format_tool_name(f"{verb}_{entity_type.name.lower()}"),
                description=description.format(name=entity_type.name),
                category=ToolCategory.CRUD,
                operation_kind=kind,
                target_entity_type=entity_type.full_name,
                target_collection=binding.entity_set,
                input_schema=schema_builders[kind](entity_type),
                required_scopes=self.policy.get_combined_scopes(kind, entity_type),
                required_roles=list(self.policy.default_required_roles),
                binding=binding,
                version=self.policy.tool_version,
            )

    def _navigation_tools(self, metadata: ODataMetadata, entity_type: EntityType,
                          entity_set: Optional[EntitySet]) -> Iterator[ToolDefinition]:
        if (not self.policy.generate_navigation_tools
                or self.policy.max_navigation_depth == 0
                or not self.policy.should_include_operation(OperationKind.NAVIGATE)):
            return
        for navigation in entity_type.navigation_properties:
            target = metadata.get_entity_type(navigation.target_type)
            if target is not None and not self.policy.should_include_entity_type(target):
                self._log_verbose(f"Skipping navigation {entity_type.name}.{navigation.name}: "
                                  f"target {target.full_name} excluded by policy.")
                continue
            yield self._navigation_tool(entity_type, entity_set, navigation)

    def _navigation_tool(self, entity_type: EntityType, entity_set: Optional[EntitySet],
                         navigation: NavigationProperty) -> ToolDefinition:
        target = navigation.target_type
        description = f"Navigates from {entity_type.name} to {navigation.name}"
        if navigation.is_collection:
            description += f" (collection of {target.split('.')[-1]})"
        return ToolDefinition(
            name=self.policy.format_tool_name(
                f"navigate_{entity_type.name.lower()}_{navigation.name.lower()}"),
            description=description,
            category=ToolCategory.NAVIGATION,
            operation_kind=OperationKind.NAVIGATE,
            target_entity_type=target,
            target_collection=entity_set.name if entity_set else None,
            input_schema=schemas.navigation_schema(entity_type, navigation),
            required_scopes=self.policy.get_combined_scopes(OperationKind.NAVIGATE, entity_type),
            required_roles=list(self.policy.default_required_roles),
            binding=NavigationBinding(
                entity_type=entity_type.full_name,
                entity_set=entity_set.name if entity_set else None,
                key_properties=list(entity_type.key_properties),
                navigation_property=navigation.name,
                target_entity_type=target,
                is_collection=navigation.is_collection,
                max_expand_depth=self.policy.max_navigation_depth,
            ),
            version=self.policy.tool_version,
        )

    def _default_select(self, entity_type: EntityType) -> Optional[List[str]]:
        if not self.policy.exclude_binary_fields_by_default or not entity_type.has_binary_properties():
            return None
        selected = [prop.name for prop in entity_type.properties if not prop.is_binary()]
        if not selected or len(selected) == len(entity_type.properties):
            return None
        return selected

    @staticmethod
    def _included_sets(metadata: ODataMetadata, included: List[EntityType]) -> List[Tuple[EntitySet, EntityType]]:
        """Entity sets whose entity type survived the policy, in metadata order."""
        included_names = {et.full_name for et in included} | {et.name for et in included}
        pairs = []
        for entity_set in metadata.entity_sets.values():
            entity_type = metadata.get_entity_type(entity_set.entity_type)
            if entity_type is not None and entity_set.entity_type in included_names:
                pairs.append((entity_set, entity_type))
        return pairs

    def _list_tools(self, metadata: ODataMetadata, included: List[EntityType]) -> Iterator[ToolDefinition]:
        if (not self.policy.generate_entity_set_tools
                or not self.policy.should_include_operation(OperationKind.LIST)):
            return
        for entity_set, entity_type in self._included_sets(metadata, included):
            default_select = self._default_select(entity_type)
            description = (f"Lists entities from the {entity_set.name} collection "
                           "with optional filtering and pagination")
            if default_select is not None:
                omitted = [prop.name for prop in entity_type.properties if prop.is_binary()]
                description += (f". Binary/stream fields ({', '.join(omitted)}) are omitted "
                                "unless explicitly requested with $select")

            yield ToolDefinition(
                name=self.policy.format_tool_name(f"list_{entity_set.name.lower()}"),
                description=description,
                category=ToolCategory.ENTITY_SET,
                operation_kind=OperationKind.LIST,
                target_entity_type=entity_type.full_name,
                target_collection=entity_set.name,
                input_schema=schemas.list_schema(),
                required_scopes=self.policy.get_combined_scopes(OperationKind.LIST, entity_type),
                required_roles=list(self.policy.default_required_roles),
                binding=CollectionBinding(
                    entity_type=entity_type.full_name,
                    entity_set=entity_set.name,
                    property_names=[prop.name for prop in entity_type.properties],
                    default_select=default_select,
                    default_page_size=self.policy.default_page_size,
                    max_expand_depth=self.policy.max_navigation_depth,
                ),
                version=self.policy.tool_version,
            )

    def _query_tools(self, metadata: ODataMetadata, included: List[EntityType]) -> Iterator[ToolDefinition]:
        if (not self.policy.generate_query_tools
                or not self.policy.should_include_operation(OperationKind.QUERY)):
            return
        entity_sets = [entity_set.name for entity_set, _ in self._included_sets(metadata, included)]
        if not entity_sets:
            self._log_verbose("No entity sets left to query; skipping the query tool.")
            return
        yield ToolDefinition(
            name=self.policy.format_tool_name(QUERY_TOOL_BASE_NAME),
            description="Executes advanced OData queries with full $filter, $orderby, $select, and $expand support",
            category=ToolCategory.QUERY,
            operation_kind=OperationKind.QUERY,
            input_schema=schemas.query_schema(entity_sets),
            required_scopes=self.policy.get_combined_scopes(OperationKind.QUERY),
            required_roles=list(self.policy.default_required_roles),
            binding=QueryBinding(entity_sets=entity_sets, max_expand_depth=self.policy.max_navigation_depth),
            version=self.policy.tool_version,
        )
