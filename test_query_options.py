#!/usr/bin/env python3
"""
Tests for query option construction and encoding.
Spaces must be encoded as %20 rather than + for OData backends.
"""

import unittest

from odata_tools_lib.exceptions import ToolValidationError
from odata_tools_lib.query import build_query_options, encode_query_params, expand_depth


class TestQueryParamEncoding(unittest.TestCase):
    """Test query parameter encoding for OData compatibility."""

    def test_encode_query_params_function(self):
        test_cases = [
            ({"$filter": "Program eq 'TEST'"}, "$filter=Program%20eq%20%27TEST%27"),
            ({"$filter": "substringof('REST', Class) eq true"},
             "$filter=substringof%28%27REST%27%2C%20Class%29%20eq%20true"),
            ({"$top": 10}, "$top=10"),
            ({"$filter": "Program eq 'TEST'", "$top": 10},
             "$filter=Program%20eq%20%27TEST%27&$top=10"),
        ]
        for input_params, expected in test_cases:
            with self.subTest(input_params=input_params):
                self.assertEqual(encode_query_params(input_params), expected)

    def test_no_plus_in_filter_values(self):
        for filter_expr in ["Program eq 'TEST PROGRAM'", "contains(Title, 'Test Program') eq true"]:
            with self.subTest(filter_expr=filter_expr):
                encoded_value = encode_query_params({"$filter": filter_expr}).split("=", 1)[1]
                self.assertIn("%20", encoded_value)
                self.assertNotIn("+", encoded_value)


class TestBuildQueryOptions(unittest.TestCase):

    def test_dollar_and_bare_names_are_accepted(self):
        options = build_query_options({"filter": "A eq 1", "$top": "5", "skip": 10, "$count": "true"})
        self.assertEqual(options, {"$filter": "A eq 1", "$top": "5", "$skip": "10", "$count": "true"})

    def test_canonical_order_and_unknown_keys(self):
        options = build_query_options({"$top": 1, "Id": 3, "$search": "blue", "$select": ["Id", "Name"]})
        self.assertEqual(list(options), ["$select", "$top", "$search"])
        self.assertEqual(options["$select"], "Id,Name")

    def test_blank_values_are_dropped(self):
        self.assertEqual(build_query_options({"$filter": "  ", "$top": "", "$count": False}), {})

    def test_invalid_paging_values(self):
        for parameters in ({"$top": "ten"}, {"$top": -1}, {"$skip": True}, {"$skip": 1.5j}):
            with self.subTest(parameters=parameters):
                with self.assertRaises(ToolValidationError):
                    build_query_options(parameters)

    def test_non_string_filter_is_rejected(self):
        with self.assertRaises(ToolValidationError):
            build_query_options({"$filter": 42})


class TestExpandDepth(unittest.TestCase):

    def test_depths(self):
        cases = [
            ("Orders", 1),
            ("Orders,Address", 1),
            ("Orders/Lines", 2),
            ("Orders($select=Id;$expand=Lines)", 2),
            ("Orders($expand=Lines($expand=Product)),Address", 3),
        ]
        for expand, depth in cases:
            with self.subTest(expand=expand):
                self.assertEqual(expand_depth(expand), depth)

    def test_max_depth_is_enforced(self):
        self.assertIn("$expand", build_query_options({"$expand": "Orders/Lines"}, max_expand_depth=2))
        with self.assertRaises(ToolValidationError):
            build_query_options({"$expand": "Orders/Lines/Product"}, max_expand_depth=2)


if __name__ == "__main__":
    unittest.main()
