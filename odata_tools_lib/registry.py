"""
Published tool catalog and the invocation entry point.
"""

import asyncio
import sys
import time
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Optional

from .authorization import filter_tools_for_caller, is_authorized
from .catalog_builder import ToolCatalogBuilder
from .constants import DEFAULT_MAX_EXECUTION_SECONDS
from .context import CallerIdentity, ToolInvocationContext
from .models import ODataMetadata
from .results import ToolResult
from .tools import ToolDefinition
from .translator import RequestTranslator


class ToolCatalog:
    """Immutable snapshot of generated tools, indexed by name."""

    def __init__(self, tools: Iterable[ToolDefinition]):
        self.tools = tuple(tools)
        self.by_name = MappingProxyType({tool.name: tool for tool in self.tools})

    def __len__(self) -> int:
        return len(self.tools)

    def __contains__(self, name: str) -> bool:
        return name in self.by_name

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self.by_name.get(name)

    def names(self) -> List[str]:
        return [tool.name for tool in self.tools]


class ToolRegistry:
    """Holds the currently published catalog and dispatches invocations against it.

    The catalog reference is replaced on refresh, never mutated; an invocation
    keeps the snapshot it looked its tool up in.
    """

    def __init__(self, translator: RequestTranslator, builder: Optional[ToolCatalogBuilder] = None,
                 default_timeout: float = DEFAULT_MAX_EXECUTION_SECONDS, verbose: bool = False):
        self.translator = translator
        self.builder = builder or ToolCatalogBuilder(verbose=verbose)
        self.default_timeout = default_timeout
        self.verbose = verbose
        self._catalog = ToolCatalog(())

    def _log_verbose(self, message: str):
        """Prints message to stderr only if verbose mode is enabled."""
        if self.verbose:
            timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
            print(f"[{timestamp} Registry VERBOSE] {message}", file=sys.stderr)

    @property
    def catalog(self) -> ToolCatalog:
        return self._catalog

    def publish(self, tools: Iterable[ToolDefinition]) -> ToolCatalog:
        catalog = ToolCatalog(tools)
        self._catalog = catalog
        self._log_verbose(f"Published catalog with {len(catalog)} tools.")
        return catalog

    def refresh(self, metadata: ODataMetadata) -> ToolCatalog:
        """Rebuild from new metadata; the old catalog stays live until the build succeeds."""
        return self.publish(self.builder.build(metadata))

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._catalog.get(name)

    def list_tools(self, caller: Optional[CallerIdentity] = None) -> List[ToolDefinition]:
        return filter_tools_for_caller(self._catalog.tools, caller or CallerIdentity.anonymous())

    async def invoke(self, name: str, parameters: Optional[Dict[str, Any]] = None,
                     caller: Optional[CallerIdentity] = None, auth_token: Optional[str] = None,
                     timeout: Optional[float] = None,
                     cancellation: Optional[asyncio.Event] = None) -> ToolResult:
        started = time.monotonic()
        caller = caller or CallerIdentity.anonymous()
        context = ToolInvocationContext(
            caller=caller,
            auth_token=auth_token,
            service_base_url=self.translator.base_url,
            max_execution_time=timeout if timeout is not None else self.default_timeout,
        )
        if cancellation is not None:
            context.cancellation = cancellation

        tool = self._catalog.get(name)
        if tool is None:
            result = ToolResult.not_found(f"Tool '{name}' does not exist.")
        elif not is_authorized(tool, caller):
            self._log_verbose(f"Caller {caller.user_id or '<anonymous>'} denied access to '{name}'.")
            result = ToolResult.unauthorized(f"Caller is not authorized to invoke '{name}'.")
        else:
            context.binding = tool.binding
            return await self.translator.execute(tool, parameters, context)

        result.correlation_id = context.correlation_id
        result.execution_duration_ms = (time.monotonic() - started) * 1000
        result.completed_at = datetime.now(timezone.utc)
        return result
