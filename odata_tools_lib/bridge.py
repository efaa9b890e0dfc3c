"""
Publishes the generated tool catalog to MCP clients.
"""

import asyncio
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import httpx
import mcp.types as types
from mcp.server import Server
from mcp.server.stdio import stdio_server

from .catalog_builder import ToolCatalogBuilder
from .constants import DEFAULT_MAX_EXECUTION_SECONDS
from .context import CallerIdentity
from .exceptions import ToolCallFailed
from .metadata_parser import MetadataParser
from .models import ODataMetadata
from .policy import GenerationPolicy
from .registry import ToolRegistry
from .tools import ToolDefinition
from .translator import RequestTranslator


class ODataToolsBridge:
    """Wires metadata parsing, catalog generation and invocation into an MCP server."""

    def __init__(self, service_url: str, auth: Optional[Tuple[str, str]] = None,
                 auth_token: Optional[str] = None, policy: Optional[GenerationPolicy] = None,
                 caller: Optional[CallerIdentity] = None, timeout: float = DEFAULT_MAX_EXECUTION_SECONDS,
                 mcp_name: str = "odata-tools", verbose: bool = False,
                 metadata: Optional[ODataMetadata] = None, http_client: Optional[httpx.AsyncClient] = None):
        self.service_url = service_url.rstrip('/')
        self.auth_token = auth_token
        self.caller = caller or CallerIdentity.anonymous()
        self.verbose = verbose
        self.parser = MetadataParser(self.service_url, auth, verbose=verbose, auth_token=auth_token)
        self.metadata = metadata if metadata is not None else self.parser.parse()

        self.builder = ToolCatalogBuilder(policy, verbose=verbose)
        self.translator = RequestTranslator(self.service_url, client=http_client, auth=auth, verbose=verbose)
        self.registry = ToolRegistry(self.translator, self.builder, default_timeout=timeout, verbose=verbose)
        self.registry.refresh(self.metadata)
        if not self.registry.catalog.tools:
            print("WARNING: No tools were generated; check entity filters and policy.", file=sys.stderr)

        self.server = Server(mcp_name)
        self._register_handlers()

    def _log_verbose(self, message: str):
        """Prints message to stderr only if verbose mode is enabled."""
        if self.verbose:
            timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
            print(f"[{timestamp} Bridge VERBOSE] {message}", file=sys.stderr)

    @staticmethod
    def to_mcp_tool(tool: ToolDefinition) -> types.Tool:
        return types.Tool(name=tool.name, description=tool.description, inputSchema=tool.input_schema)

    def _register_handlers(self):
        @self.server.list_tools()
        async def list_tools() -> List[types.Tool]:
            return [self.to_mcp_tool(tool) for tool in self.registry.list_tools(self.caller)]

        @self.server.call_tool()
        async def call_tool(name: str, arguments: Optional[Dict[str, Any]]) -> List[types.TextContent]:
            outcome = await self.call_tool(name, arguments)
            if outcome.isError:
                # The server turns a raised exception into a result with isError set.
                raise ToolCallFailed(outcome.content[0].text)
            return outcome.content

    async def call_tool(self, name: str, arguments: Optional[Dict[str, Any]]) -> types.CallToolResult:
        self._log_verbose(f"Invoking tool '{name}'")
        result = await self.registry.invoke(name, arguments or {}, caller=self.caller, auth_token=self.auth_token)
        return types.CallToolResult(
            content=[types.TextContent(type="text", text=result.to_json())],
            isError=not result.is_success,
        )

    def refresh_metadata(self):
        """Re-read $metadata and swap in a freshly built catalog."""
        self.metadata = self.parser.parse()
        catalog = self.registry.refresh(self.metadata)
        self._log_verbose(f"Catalog refreshed: {len(catalog)} tools.")

    async def serve_stdio(self):
        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(read_stream, write_stream, self.server.create_initialization_options())
        finally:
            await self.translator.aclose()

    def run(self):
        """Run the MCP server over stdio."""
        self._log_verbose(f"Starting OData tools bridge for service: {self.service_url}")
        self._log_verbose(f"MCP Server Name: {self.server.name}")
        asyncio.run(self.serve_stdio())
