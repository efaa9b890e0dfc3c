#!/usr/bin/env python3
"""Tests for command-line policy and caller resolution."""

import json
import os
import tempfile
import unittest
from unittest.mock import patch

from odata_tools import build_policy, create_parser, resolve_caller, split_list
from odata_tools_lib.tools import OperationKind


def parse(*argv):
    return create_parser().parse_args(["https://example.com/odata", *argv])


class TestPolicyFlags(unittest.TestCase):

    def test_defaults(self):
        args = parse()
        self.assertEqual(args.service_url_pos, "https://example.com/odata")
        self.assertEqual(args.timeout, 300)
        policy = build_policy(args)
        self.assertEqual(policy.default_page_size, 20)
        self.assertEqual(policy.included_operations, set())

    def test_read_only_preset(self):
        policy = build_policy(parse("--read-only"))
        self.assertFalse(policy.should_include_operation(OperationKind.DELETE))
        self.assertTrue(policy.should_include_operation(OperationKind.LIST))

    def test_presets_are_mutually_exclusive(self):
        with self.assertRaises(SystemExit), patch("sys.stderr"):
            parse("--read-only", "--performance")

    def test_entity_and_operation_overrides(self):
        policy = build_policy(parse("--entities", "Product*, Order", "--exclude-entities", "OrderAudit",
                                    "--disable", "D", "--no-navigation", "--tool-prefix", "erp_",
                                    "--max-tools", "10", "--page-size", "50", "--no-binary-exclusion",
                                    "--default-scopes", "api.read api.write"))
        self.assertEqual(policy.included_entity_types, {"Product*", "Order"})
        self.assertEqual(policy.excluded_entity_types, {"OrderAudit"})
        self.assertEqual(policy.excluded_operations, {OperationKind.DELETE})
        self.assertFalse(policy.generate_navigation_tools)
        self.assertEqual(policy.tool_name_prefix, "erp_")
        self.assertEqual(policy.max_tool_count, 10)
        self.assertEqual(policy.default_page_size, 50)
        self.assertFalse(policy.exclude_binary_fields_by_default)
        self.assertEqual(policy.default_required_scopes, ["api.read", "api.write"])

    def test_unknown_operation_code(self):
        with self.assertRaises(ValueError):
            build_policy(parse("--enable", "CX"))

    def test_policy_file_with_flag_override(self):
        with tempfile.NamedTemporaryFile("w", suffix=".json", delete=False) as handle:
            json.dump({"tool_name_prefix": "file_", "max_navigation_depth": 1}, handle)
        try:
            policy = build_policy(parse("--policy-file", handle.name, "--tool-prefix", "cli_"))
        finally:
            os.unlink(handle.name)
        self.assertEqual(policy.tool_name_prefix, "cli_")
        self.assertEqual(policy.max_navigation_depth, 1)


class TestCaller(unittest.TestCase):

    def test_flags_win_over_environment(self):
        env = {"ODATA_CALLER_SCOPES": "env.scope", "ODATA_CALLER_ROLES": "env-role"}
        with patch.dict(os.environ, env, clear=False):
            caller = resolve_caller(parse("--caller-scopes", "a,b"))
        self.assertEqual(caller.scopes, {"a", "b"})
        self.assertEqual(caller.roles, {"env-role"})

    def test_split_list(self):
        self.assertEqual(split_list("a, b  c,,d"), ["a", "b", "c", "d"])
        self.assertEqual(split_list(None), [])


if __name__ == "__main__":
    unittest.main()
