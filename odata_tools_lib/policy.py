"""
Generation policy: which entity types and operations become tools, how they are
named, and what callers must hold to use them.
"""

import re
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set
from pydantic import BaseModel

from .constants import (
    DEFAULT_MAX_NAVIGATION_DEPTH,
    DEFAULT_PAGE_SIZE,
    MAX_TOOL_NAME_LENGTH,
    TOOL_VERSION,
)
from .exceptions import PolicyValidationError
from .models import EntityType
from .tools import OperationKind

OPERATION_CODES = {
    'C': [OperationKind.CREATE],
    'G': [OperationKind.READ],
    'U': [OperationKind.UPDATE],
    'D': [OperationKind.DELETE],
    'F': [OperationKind.LIST, OperationKind.QUERY],
    'N': [OperationKind.NAVIGATE],
    'R': [OperationKind.READ, OperationKind.LIST, OperationKind.QUERY, OperationKind.NAVIGATE],
}

_INVALID_NAME_CHARS = re.compile(r'[^A-Za-z0-9_-]')


def parse_operation_codes(codes: str) -> Set[OperationKind]:
    """Expand letter codes such as 'CRUD' or 'R' into operation kinds."""
    kinds: Set[OperationKind] = set()
    for letter in codes.upper():
        if letter in (' ', ','):
            continue
        if letter not in OPERATION_CODES:
            raise ValueError(f"Unknown operation code '{letter}'. Valid codes: {''.join(OPERATION_CODES)}")
        kinds.update(OPERATION_CODES[letter])
    return kinds


def matches_pattern(names: Iterable[str], patterns: Iterable[str]) -> bool:
    """True if any name matches any shell-style pattern (exact names match too)."""
    names = [n for n in names if n]
    return any(fnmatchcase(name, pattern) for pattern in patterns for name in names)


class GenerationPolicy(BaseModel):
    included_entity_types: Set[str] = set()
    excluded_entity_types: Set[str] = set()
    included_operations: Set[OperationKind] = set()
    excluded_operations: Set[OperationKind] = set()

    generate_crud_tools: bool = True
    generate_query_tools: bool = True
    generate_navigation_tools: bool = True
    generate_entity_set_tools: bool = True

    tool_name_prefix: str = ""
    tool_name_suffix: str = ""
    max_tool_name_length: int = MAX_TOOL_NAME_LENGTH

    max_tool_count: Optional[int] = None
    max_navigation_depth: int = DEFAULT_MAX_NAVIGATION_DEPTH
    exclude_binary_fields_by_default: bool = True
    default_page_size: int = DEFAULT_PAGE_SIZE

    default_required_scopes: List[str] = []
    default_required_roles: List[str] = []
    entity_required_scopes: Dict[str, List[str]] = {}
    operation_required_scopes: Dict[OperationKind, List[str]] = {}

    tool_version: str = TOOL_VERSION

    @classmethod
    def default(cls) -> "GenerationPolicy":
        return cls()

    @classmethod
    def read_only(cls) -> "GenerationPolicy":
        return cls(
            included_operations={
                OperationKind.READ, OperationKind.QUERY, OperationKind.NAVIGATE, OperationKind.LIST,
            },
        )

    @classmethod
    def performance(cls) -> "GenerationPolicy":
        return cls(
            generate_navigation_tools=False,
            max_tool_count=50,
            max_navigation_depth=2,
            exclude_binary_fields_by_default=True,
        )

    @classmethod
    def from_file(cls, path: str) -> "GenerationPolicy":
        return cls.model_validate_json(Path(path).read_text(encoding="utf-8"))

    def should_include_entity_type(self, entity_type: EntityType) -> bool:
        names = (entity_type.full_name, entity_type.name)
        if matches_pattern(names, self.excluded_entity_types):
            return False
        return not self.included_entity_types or matches_pattern(names, self.included_entity_types)

    def should_include_operation(self, kind: OperationKind) -> bool:
        if kind in self.excluded_operations:
            return False
        return not self.included_operations or kind in self.included_operations

    def get_combined_scopes(self, kind: OperationKind, entity_type: Optional[EntityType] = None) -> List[str]:
        """Union of default, entity-specific and operation-specific scopes, first occurrence wins."""
        scopes = list(self.default_required_scopes)
        if entity_type is not None:
            scopes += self.entity_required_scopes.get(entity_type.full_name, [])
            if entity_type.full_name != entity_type.name:
                scopes += self.entity_required_scopes.get(entity_type.name, [])
        scopes += self.operation_required_scopes.get(kind, [])
        return list(dict.fromkeys(scopes))

    def format_tool_name(self, base_name: str) -> str:
        """Apply prefix/suffix and keep the result within the maximum name length."""
        full_name = _INVALID_NAME_CHARS.sub('_', f"{self.tool_name_prefix}{base_name}{self.tool_name_suffix}")
        if len(full_name) <= self.max_tool_name_length:
            return full_name

        max_base = self.max_tool_name_length - len(self.tool_name_prefix) - len(self.tool_name_suffix)
        if max_base <= 0:
            return full_name[:self.max_tool_name_length]
        return _INVALID_NAME_CHARS.sub('_', f"{self.tool_name_prefix}{base_name[:max_base]}{self.tool_name_suffix}")

    def get_validation_errors(self) -> List[str]:
        problems = []
        for name in sorted(self.included_entity_types & self.excluded_entity_types):
            problems.append(f"Entity type '{name}' is both included and excluded")
        for kind in sorted(self.included_operations & self.excluded_operations, key=lambda k: k.value):
            problems.append(f"Operation '{kind.value}' is both included and excluded")
        if self.max_tool_count is not None and self.max_tool_count <= 0:
            problems.append("max_tool_count must be greater than zero")
        if self.max_navigation_depth < 0:
            problems.append("max_navigation_depth cannot be negative")
        if self.default_page_size <= 0:
            problems.append("default_page_size must be greater than zero")
        if self.max_tool_name_length <= 0:
            problems.append("max_tool_name_length must be greater than zero")
        return problems

    def ensure_valid(self) -> None:
        problems = self.get_validation_errors()
        if problems:
            raise PolicyValidationError(problems)
