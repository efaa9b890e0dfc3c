#!/usr/bin/env python3
"""Unit tests for caller identity and scope/role authorization."""

import unittest

from odata_tools_lib.authorization import filter_tools_for_caller, is_authorized
from odata_tools_lib.context import CallerIdentity
from odata_tools_lib.tools import OperationKind, ToolCategory, ToolDefinition


def tool(name="t", scopes=(), roles=()):
    return ToolDefinition(name=name, description="d", category=ToolCategory.QUERY,
                          operation_kind=OperationKind.QUERY, input_schema={"type": "object"},
                          required_scopes=list(scopes), required_roles=list(roles),
                          binding={"kind": "query"})


class TestIsAuthorized(unittest.TestCase):

    def test_unrestricted_tool_allows_anonymous(self):
        self.assertTrue(is_authorized(tool(), CallerIdentity.anonymous()))

    def test_any_required_scope_is_enough(self):
        caller = CallerIdentity(scopes=frozenset({"orders.write"}))
        self.assertTrue(is_authorized(tool(scopes=["orders.read", "orders.write"]), caller))
        self.assertFalse(is_authorized(tool(scopes=["admin"]), caller))

    def test_scope_match_ignores_case(self):
        caller = CallerIdentity(scopes=frozenset({"Orders.Read"}))
        self.assertTrue(is_authorized(tool(scopes=["orders.read"]), caller))

    def test_scopes_and_roles_both_required(self):
        restricted = tool(scopes=["api"], roles=["admin"])
        self.assertFalse(is_authorized(restricted, CallerIdentity(scopes=frozenset({"api"}))))
        self.assertFalse(is_authorized(restricted, CallerIdentity(roles=frozenset({"admin"}))))
        self.assertTrue(is_authorized(restricted, CallerIdentity(scopes=frozenset({"api"}),
                                                                 roles=frozenset({"ADMIN"}))))

    def test_filter_tools_for_caller(self):
        tools = [tool("open"), tool("admin_only", roles=["admin"])]
        names = [t.name for t in filter_tools_for_caller(tools, CallerIdentity.anonymous())]
        self.assertEqual(names, ["open"])


class TestCallerIdentity(unittest.TestCase):

    def test_from_claims(self):
        caller = CallerIdentity.from_claims({"sub": "u1", "scp": "orders.read orders.write",
                                             "roles": ["admin", "user"]})
        self.assertEqual(caller.user_id, "u1")
        self.assertEqual(caller.scopes, {"orders.read", "orders.write"})
        self.assertEqual(caller.roles, {"admin", "user"})

    def test_empty_claims(self):
        self.assertEqual(CallerIdentity.from_claims({}), CallerIdentity.anonymous())


if __name__ == "__main__":
    unittest.main()
