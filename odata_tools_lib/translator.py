"""
Request translation: turns a tool invocation into an OData HTTP request and maps
the response back into a ToolResult.
"""

import asyncio
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple
import httpx

from .constants import ETAG_BODY_FIELD, ETAG_PARAMETER_ALIASES, USER_AGENT
from .context import ToolInvocationContext
from .exceptions import ToolStateError, ToolTimeoutError, ToolValidationError
from .keys import encode_key, key_path_segment
from .query import build_query_options, encode_query_params
from .results import ToolResult, result_from_response
from .tools import (
    CollectionBinding,
    EntityBinding,
    NavigationBinding,
    OperationKind,
    QueryBinding,
    ToolDefinition,
)

SINGLE_NAVIGATION_OPTIONS = ("select", "expand")
COLLECTION_NAVIGATION_OPTIONS = ("filter", "orderby", "select", "expand", "top", "skip", "count")


def _pick_options(parameters: Dict[str, Any], names: Iterable[str]) -> Dict[str, Any]:
    names = set(names)
    return {key: value for key, value in parameters.items() if key.lstrip('$') in names}


def _unwrap_parameters(parameters: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a nested {"parameters": {...}} wrapper some clients send."""
    wrapped = parameters.get("parameters")
    if not isinstance(wrapped, dict):
        return dict(parameters)
    merged = {key: value for key, value in parameters.items() if key != "parameters"}
    merged.update(wrapped)
    return merged


def _supplied_etag(parameters: Dict[str, Any]) -> Optional[str]:
    for alias in ETAG_PARAMETER_ALIASES:
        value = parameters.get(alias)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


class RequestTranslator:
    """Executes tools against an OData service, one fixed handler per operation kind."""

    def __init__(self, base_url: str, client: Optional[httpx.AsyncClient] = None,
                 auth: Optional[Tuple[str, str]] = None, verbose: bool = False):
        self.base_url = base_url.rstrip('/')
        self.verbose = verbose
        if auth and not (isinstance(auth, tuple) and len(auth) == 2):
            raise ValueError("Auth must be a (username, password) tuple")
        self._auth = auth
        self._client = client
        self._handlers = {
            OperationKind.CREATE: self.create_entity,
            OperationKind.READ: self.read_entity,
            OperationKind.UPDATE: self.update_entity,
            OperationKind.DELETE: self.delete_entity,
            OperationKind.QUERY: self.query_entities,
            OperationKind.NAVIGATE: self.navigate,
            OperationKind.LIST: self.list_entities,
        }

    @property
    def client(self) -> httpx.AsyncClient:
        """The shared async client, created on first use."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                auth=self._auth,
                headers={
                    'Accept': 'application/json',
                    'User-Agent': USER_AGENT,
                    'Content-Type': 'application/json',
                },
            )
        return self._client

    async def aclose(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _log_verbose(self, message: str):
        """Prints message to stderr only if verbose mode is enabled."""
        if self.verbose:
            timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S.%f')[:-3]
            print(f"[{timestamp} Translator VERBOSE] {message}", file=sys.stderr)

    async def execute(self, tool: ToolDefinition, parameters: Optional[Dict[str, Any]],
                      context: ToolInvocationContext) -> ToolResult:
        """Run the handler for the tool's operation kind and stamp timing and correlation data."""
        started = time.monotonic()
        if context.binding is None:
            context.binding = tool.binding
        if not context.service_base_url:
            context.service_base_url = self.base_url

        try:
            handler = self._handlers.get(tool.operation_kind)
            if handler is None:
                raise NotImplementedError(f"No handler for operation kind '{tool.operation_kind}'")
            result = await handler(context, dict(parameters or {}))
        except Exception as e:
            if not isinstance(e, (ToolValidationError, ToolTimeoutError)):
                print(f"ERROR: Tool '{tool.name}' failed [{context.correlation_id}]: "
                      f"{type(e).__name__}: {e}", file=sys.stderr)
            result = ToolResult.from_exception(e)

        result.correlation_id = context.correlation_id
        result.execution_duration_ms = (time.monotonic() - started) * 1000
        result.completed_at = datetime.now(timezone.utc)
        self._log_verbose(f"Tool '{tool.name}' finished with status {result.status_code} "
                          f"in {result.execution_duration_ms:.1f} ms")
        return result

    # --- HTTP plumbing ---

    def _url(self, entity_set: str, key_predicate: Optional[str] = None, navigation: Optional[str] = None) -> str:
        url = f"{self.base_url}/{entity_set}"
        if key_predicate is not None:
            url += f"({key_path_segment(key_predicate)})"
        if navigation:
            url += f"/{navigation}"
        return url

    async def _send(self, context: ToolInvocationContext, method: str, url: str,
                    params: Optional[Dict[str, str]] = None, json_body: Any = None,
                    etag: Optional[str] = None) -> httpx.Response:
        """Issue one request, racing it against the deadline and cancellation.

        The losing request task is cancelled and awaited, which closes its
        connection before the call returns.
        """
        if context.is_cancelled():
            raise ToolTimeoutError("Invocation was cancelled", cancelled=True)
        if context.is_deadline_exceeded():
            raise ToolTimeoutError("Invocation deadline exceeded before the request was sent")
        remaining = context.remaining_seconds()

        if params:
            url = f"{url}?{encode_query_params(params)}"
        headers = {'X-Correlation-ID': context.correlation_id}
        if context.auth_token:
            headers['Authorization'] = f"Bearer {context.auth_token}"
        if etag:
            headers['If-Match'] = etag
        self._log_verbose(f"{method} {url}")

        request = asyncio.ensure_future(
            self.client.request(method, url, headers=headers, json=json_body, timeout=remaining))
        cancelled = asyncio.ensure_future(context.cancellation.wait())
        try:
            done, _ = await asyncio.wait({request, cancelled}, timeout=remaining,
                                         return_when=asyncio.FIRST_COMPLETED)
        finally:
            cancelled.cancel()
            if not request.done():
                request.cancel()
                await asyncio.wait({request})

        if request in done:
            return request.result()
        if context.is_cancelled():
            raise ToolTimeoutError(f"Invocation was cancelled during {method} request", cancelled=True)
        raise ToolTimeoutError(f"{method} request exceeded the invocation deadline")

    def _response_data(self, response: httpx.Response, warnings: List[str]) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            warnings.append("Response body was not JSON; returning raw content.")
            return {"content": response.text[:500]}

    def _result(self, response: httpx.Response, action: str,
                warnings: Optional[List[str]] = None) -> ToolResult:
        warnings = warnings if warnings is not None else []
        data = self._response_data(response, warnings) if response.is_success else None
        return result_from_response(response, action, data=data, warnings=warnings)

    async def _prefetch_etag(self, context: ToolInvocationContext, url: str,
                             warnings: List[str]) -> Optional[str]:
        """Best-effort read of the entity's current ETag.

        Any failure is reported as a warning and the mutation goes ahead without
        If-Match; only the caller's deadline or cancellation stops the call.
        """
        try:
            response = await self._send(context, "GET", url)
        except ToolTimeoutError:
            raise
        except Exception as e:
            self._warn(warnings, f"Could not fetch ETag ({type(e).__name__}: {e}); sending request without If-Match.")
            return None

        if not response.is_success:
            self._warn(warnings, f"Could not fetch ETag (HTTP {response.status_code}); "
                                 "sending request without If-Match.")
            return None

        etag = None
        if response.content:
            try:
                body = response.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                etag = body.get(ETAG_BODY_FIELD)
        etag = etag or response.headers.get('ETag')
        if not etag:
            self._log_verbose(f"No ETag returned for {url}; service may not use optimistic concurrency.")
        return etag

    def _warn(self, warnings: List[str], message: str):
        warnings.append(message)
        print(f"WARNING: {message}", file=sys.stderr)

    @staticmethod
    def _binding(context: ToolInvocationContext, expected: type):
        if not isinstance(context.binding, expected):
            raise ToolStateError(
                f"Tool binding {type(context.binding).__name__} cannot be used with a {expected.__name__} handler")
        return context.binding

    @staticmethod
    def _entity_set(binding) -> str:
        if not binding.entity_set:
            raise ToolValidationError(f"No entity set is available for entity type {binding.entity_type}")
        return binding.entity_set

    # --- Handlers ---

    async def create_entity(self, context: ToolInvocationContext, parameters: Dict[str, Any]) -> ToolResult:
        binding = self._binding(context, EntityBinding)
        entity_set = self._entity_set(binding)
        data = _unwrap_parameters(parameters)
        body = {key: value for key, value in data.items() if value is not None and not key.startswith('$')}

        missing = [name for name in binding.required_properties if name not in body]
        if missing:
            raise ToolValidationError(f"Missing required properties: {', '.join(missing)}")

        response = await self._send(context, "POST", self._url(entity_set), json_body=body)
        return self._result(response, f"create {binding.entity_type} entity")

    async def read_entity(self, context: ToolInvocationContext, parameters: Dict[str, Any]) -> ToolResult:
        binding = self._binding(context, EntityBinding)
        entity_set = self._entity_set(binding)
        key = encode_key(binding.key_properties, parameters)
        options = build_query_options(_pick_options(parameters, ("select",)))

        response = await self._send(context, "GET", self._url(entity_set, key), params=options)
        return self._result(response, f"read {binding.entity_type} entity with key {key}")

    async def update_entity(self, context: ToolInvocationContext, parameters: Dict[str, Any]) -> ToolResult:
        binding = self._binding(context, EntityBinding)
        entity_set = self._entity_set(binding)
        data = _unwrap_parameters(parameters)
        key = encode_key(binding.key_properties, data)
        etag = _supplied_etag(data)

        body = {
            name: value for name, value in data.items()
            if name not in binding.key_properties
            and name not in ETAG_PARAMETER_ALIASES
            and not name.startswith(('@', '$'))
        }
        unknown = [name for name in body if name not in binding.property_names]
        if unknown:
            raise ToolValidationError(f"Unknown properties for {binding.entity_type}: {', '.join(unknown)}")
        if not body:
            raise ToolValidationError("No properties provided to update.")

        url = self._url(entity_set, key)
        warnings: List[str] = []
        if etag is None:
            etag = await self._prefetch_etag(context, url, warnings)

        response = await self._send(context, "PATCH", url, json_body=body, etag=etag)
        return self._result(response, f"update {binding.entity_type} entity with key {key}", warnings)

    async def delete_entity(self, context: ToolInvocationContext, parameters: Dict[str, Any]) -> ToolResult:
        binding = self._binding(context, EntityBinding)
        entity_set = self._entity_set(binding)
        key = encode_key(binding.key_properties, parameters)
        etag = _supplied_etag(parameters)

        url = self._url(entity_set, key)
        warnings: List[str] = []
        if etag is None:
            etag = await self._prefetch_etag(context, url, warnings)

        response = await self._send(context, "DELETE", url, etag=etag)
        result = self._result(response, f"delete {binding.entity_type} entity with key {key}", warnings)
        if result.is_success and result.data is None:
            result.data = {"message": f"{binding.entity_type} entity with key {key} deleted"}
        return result

    async def navigate(self, context: ToolInvocationContext, parameters: Dict[str, Any]) -> ToolResult:
        binding = self._binding(context, NavigationBinding)
        entity_set = self._entity_set(binding)
        key = encode_key(binding.key_properties, parameters)
        allowed = COLLECTION_NAVIGATION_OPTIONS if binding.is_collection else SINGLE_NAVIGATION_OPTIONS
        options = build_query_options(_pick_options(parameters, allowed), binding.max_expand_depth)

        url = self._url(entity_set, key, binding.navigation_property)
        response = await self._send(context, "GET", url, params=options)
        return self._result(
            response, f"navigate from {binding.entity_type} ({key}) to {binding.navigation_property}")

    async def list_entities(self, context: ToolInvocationContext, parameters: Dict[str, Any]) -> ToolResult:
        binding = self._binding(context, CollectionBinding)
        options = build_query_options(parameters, binding.max_expand_depth)
        if "$select" not in options and binding.default_select:
            options["$select"] = ",".join(binding.default_select)
        if "$top" not in options:
            options["$top"] = str(binding.default_page_size)

        response = await self._send(context, "GET", self._url(binding.entity_set), params=options)
        return self._result(response, f"list {binding.entity_set}")

    async def query_entities(self, context: ToolInvocationContext, parameters: Dict[str, Any]) -> ToolResult:
        binding = self._binding(context, QueryBinding)
        entity_set = parameters.get("entitySet") or parameters.get("entity_set")
        if not isinstance(entity_set, str) or not entity_set.strip():
            raise ToolValidationError("The entitySet parameter is required.")
        entity_set = entity_set.strip()
        if entity_set not in binding.entity_sets:
            raise ToolValidationError(f"Unknown entity set '{entity_set}'.")
        options = build_query_options(parameters, binding.max_expand_depth)

        response = await self._send(context, "GET", self._url(entity_set), params=options)
        return self._result(response, f"query {entity_set}")
