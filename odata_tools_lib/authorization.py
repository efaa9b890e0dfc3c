"""
Scope and role checks that decide which tools a caller may see and invoke.
"""

from typing import Iterable, List

from .context import CallerIdentity
from .tools import ToolDefinition


def _intersects(held: Iterable[str], required: Iterable[str]) -> bool:
    required = {value.lower() for value in required}
    if not required:
        return True
    return any(value.lower() in required for value in held)


def is_authorized(tool: ToolDefinition, caller: CallerIdentity) -> bool:
    """A caller needs one of the tool's scopes and one of its roles, when either is set."""
    return (_intersects(caller.scopes, tool.required_scopes)
            and _intersects(caller.roles, tool.required_roles))


def filter_tools_for_caller(tools: Iterable[ToolDefinition], caller: CallerIdentity) -> List[ToolDefinition]:
    return [tool for tool in tools if is_authorized(tool, caller)]
