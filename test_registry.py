#!/usr/bin/env python3
"""Unit tests for catalog publication and the invocation entry point."""

import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from odata_tools_lib.catalog_builder import ToolCatalogBuilder
from odata_tools_lib.context import CallerIdentity
from odata_tools_lib.exceptions import PolicyValidationError
from odata_tools_lib.policy import GenerationPolicy
from odata_tools_lib.registry import ToolRegistry
from odata_tools_lib.translator import RequestTranslator
from sample_models import BASE_URL, FakeService, customer_only_metadata, make_client, make_response, sample_metadata


def make_registry(policy=None):
    service = FakeService()
    translator = RequestTranslator(BASE_URL, client=make_client(service))
    registry = ToolRegistry(translator, ToolCatalogBuilder(policy))
    registry.refresh(sample_metadata())
    return registry, service


class TestPublication(unittest.TestCase):

    def test_refresh_publishes_catalog(self):
        registry, _ = make_registry()
        self.assertIn("get_customer", registry.catalog)
        self.assertEqual(registry.get("get_customer").target_collection, "Customers")
        self.assertIsNone(registry.get("missing"))

    def test_refresh_swaps_snapshot(self):
        registry, _ = make_registry()
        before = registry.catalog
        after = registry.refresh(customer_only_metadata())
        self.assertIsNot(before, after)
        self.assertIs(registry.catalog, after)
        self.assertIn("list_orders", before)
        self.assertNotIn("list_orders", after)

    def test_catalog_is_read_only(self):
        registry, _ = make_registry()
        with self.assertRaises(TypeError):
            registry.catalog.by_name["x"] = None

    def test_failed_refresh_keeps_previous_catalog(self):
        registry, _ = make_registry()
        before = registry.catalog
        registry.builder = ToolCatalogBuilder(GenerationPolicy(default_page_size=0))
        with self.assertRaises(PolicyValidationError):
            registry.refresh(sample_metadata())
        self.assertIs(registry.catalog, before)

    def test_list_tools_filters_by_caller(self):
        policy = GenerationPolicy(operation_required_scopes={"delete": ["admin"]})
        registry, _ = make_registry(policy)
        anonymous = {tool.name for tool in registry.list_tools()}
        admin = {tool.name for tool in registry.list_tools(CallerIdentity(scopes=frozenset({"admin"})))}
        self.assertNotIn("delete_customer", anonymous)
        self.assertIn("get_customer", anonymous)
        self.assertIn("delete_customer", admin)


class TestInvoke(unittest.IsolatedAsyncioTestCase):

    async def test_unknown_tool(self):
        registry, service = make_registry()
        with patch("odata_tools_lib.registry.time") as clock:
            clock.monotonic.side_effect = [10.0, 10.25]
            result = await registry.invoke("drop_database", {})
        self.assertEqual((result.error_code, result.status_code), ("NOT_FOUND", 404))
        self.assertIn("drop_database", result.error_message)
        self.assertIsNotNone(result.correlation_id)
        self.assertEqual(result.execution_duration_ms, 250.0)
        self.assertEqual(service.requests, [])

    async def test_unauthorized_caller_is_rejected_before_any_request(self):
        registry, service = make_registry(GenerationPolicy(default_required_roles=["clerk"]))
        before = datetime.now(timezone.utc)
        with patch("odata_tools_lib.registry.time") as clock:
            clock.monotonic.side_effect = [3.0, 3.5]
            result = await registry.invoke("get_customer", {"Id": 7}, caller=CallerIdentity(roles=frozenset({"guest"})))
        self.assertEqual((result.error_code, result.status_code), ("UNAUTHORIZED", 401))
        self.assertEqual(result.to_dict()["executionDurationMs"], 500.0)
        self.assertGreaterEqual(result.completed_at, before)
        self.assertEqual(service.requests, [])

    async def test_authorized_invocation_reaches_service(self):
        registry, service = make_registry(GenerationPolicy(default_required_roles=["clerk"]))
        service.queue(make_response(200, {"Id": 7}))
        result = await registry.invoke("get_customer", {"Id": 7}, caller=CallerIdentity(roles=frozenset({"clerk"})),
                                       auth_token="tkn", timeout=5)
        self.assertTrue(result.is_success)
        [request] = service.requests
        self.assertEqual(request.headers["Authorization"], "Bearer tkn")
        self.assertLessEqual(request.extensions["timeout"]["read"], 5)
        await registry.translator.aclose()


if __name__ == "__main__":
    unittest.main()
