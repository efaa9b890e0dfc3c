#!/usr/bin/env python3
"""
OData tool catalog server.

Reads an OData service's metadata, generates a catalog of tools (CRUD, navigation,
collection listing and a general query tool) and serves them to MCP clients.
"""

import argparse
import json
import os
import re
import signal
import sys
import traceback
from typing import Any, Dict, List, Optional
from dotenv import load_dotenv

from odata_tools_lib import CallerIdentity, GenerationPolicy, ODataToolsBridge, parse_operation_codes
from odata_tools_lib.constants import DEFAULT_MAX_EXECUTION_SECONDS

# Load environment variables from .env file
load_dotenv()


def split_list(value: Optional[str]) -> List[str]:
    """Split a comma- or space-separated option value."""
    if not value:
        return []
    return [item for item in re.split(r'[,\s]+', value) if item]


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Expose an OData service as a catalog of MCP tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--service", dest="service_via_flag", help="URL of the OData service (overrides positional argument and ODATA_URL env var)")
    parser.add_argument("service_url_pos", nargs='?', help="URL of the OData service (alternative to --service flag or env var)")

    parser.add_argument("-u", "--user", help="Username for basic authentication (overrides ODATA_USER env var)")
    parser.add_argument("-p", "--password", help="Password for basic authentication (overrides ODATA_PASS env var)")
    parser.add_argument("--token", help="Bearer token forwarded on every request (overrides ODATA_TOKEN env var)")

    parser.add_argument("--policy-file", help="JSON file with generation policy settings; flags below override it")
    preset = parser.add_mutually_exclusive_group()
    preset.add_argument("--read-only", action="store_true", help="Only generate read, list, query and navigation tools")
    preset.add_argument("--performance", action="store_true", help="Use the performance preset (no navigation tools, max 50 tools)")

    parser.add_argument("--entities", help="Comma-separated entity types to include. Supports wildcards: 'Product*,Order*'")
    parser.add_argument("--exclude-entities", help="Comma-separated entity types to exclude (wins over --entities)")
    parser.add_argument("--enable", help="Operation codes to generate: C=create G=get U=update D=delete F=list/query N=navigate R=read-only (e.g. 'CGU')")
    parser.add_argument("--disable", help="Operation codes to suppress, same letters as --enable")
    parser.add_argument("--no-navigation", action="store_true", help="Do not generate navigation tools")
    parser.add_argument("--no-list-tools", action="store_true", help="Do not generate per-collection list tools")
    parser.add_argument("--no-query-tool", action="store_true", help="Do not generate the general odata_query tool")

    parser.add_argument("--tool-prefix", help="Prefix added to every tool name")
    parser.add_argument("--tool-suffix", help="Suffix added to every tool name")
    parser.add_argument("--max-tools", type=int, help="Stop generating after this many tools")
    parser.add_argument("--max-navigation-depth", type=int, help="Maximum $expand/navigation depth (0 disables navigation tools)")
    parser.add_argument("--page-size", type=int, help="Default $top applied by list tools (default: 20)")
    parser.add_argument("--no-binary-exclusion", action="store_true", help="Include binary/stream fields in default list selections")

    parser.add_argument("--default-scopes", help="Scopes every generated tool requires (any one of them)")
    parser.add_argument("--default-roles", help="Roles every generated tool requires (any one of them)")
    parser.add_argument("--caller-scopes", help="Scopes held by the MCP client (overrides ODATA_CALLER_SCOPES env var)")
    parser.add_argument("--caller-roles", help="Roles held by the MCP client (overrides ODATA_CALLER_ROLES env var)")

    parser.add_argument("--timeout", type=float, default=DEFAULT_MAX_EXECUTION_SECONDS, help="Per-call deadline in seconds (default: 300)")
    parser.add_argument("--trace", action="store_true", help="Build the catalog, print all tools and their schemas, then exit")
    parser.add_argument("-v", "--verbose", "--debug", dest="verbose", action="store_true", help="Enable verbose output to stderr")
    return parser


def build_policy(args: argparse.Namespace) -> GenerationPolicy:
    """Start from a preset or policy file and apply command-line overrides."""
    if args.policy_file:
        policy = GenerationPolicy.from_file(args.policy_file)
    elif args.read_only:
        policy = GenerationPolicy.read_only()
    elif args.performance:
        policy = GenerationPolicy.performance()
    else:
        policy = GenerationPolicy.default()

    overrides: Dict[str, Any] = {}
    if args.policy_file and args.read_only:
        overrides["included_operations"] = GenerationPolicy.read_only().included_operations
    if args.entities:
        overrides["included_entity_types"] = set(split_list(args.entities))
    if args.exclude_entities:
        overrides["excluded_entity_types"] = set(split_list(args.exclude_entities))
    if args.enable:
        overrides["included_operations"] = parse_operation_codes(args.enable)
    if args.disable:
        overrides["excluded_operations"] = parse_operation_codes(args.disable)
    if args.no_navigation:
        overrides["generate_navigation_tools"] = False
    if args.no_list_tools:
        overrides["generate_entity_set_tools"] = False
    if args.no_query_tool:
        overrides["generate_query_tools"] = False
    if args.tool_prefix is not None:
        overrides["tool_name_prefix"] = args.tool_prefix
    if args.tool_suffix is not None:
        overrides["tool_name_suffix"] = args.tool_suffix
    if args.max_tools is not None:
        overrides["max_tool_count"] = args.max_tools
    if args.max_navigation_depth is not None:
        overrides["max_navigation_depth"] = args.max_navigation_depth
    if args.page_size is not None:
        overrides["default_page_size"] = args.page_size
    if args.no_binary_exclusion:
        overrides["exclude_binary_fields_by_default"] = False
    if args.default_scopes:
        overrides["default_required_scopes"] = split_list(args.default_scopes)
    if args.default_roles:
        overrides["default_required_roles"] = split_list(args.default_roles)

    if not overrides:
        return policy
    return GenerationPolicy.model_validate({**policy.model_dump(), **overrides})


def resolve_caller(args: argparse.Namespace) -> CallerIdentity:
    scopes = args.caller_scopes if args.caller_scopes is not None else os.getenv("ODATA_CALLER_SCOPES")
    roles = args.caller_roles if args.caller_roles is not None else os.getenv("ODATA_CALLER_ROLES")
    return CallerIdentity(
        user_id=args.user or os.getenv("ODATA_USER") or os.getenv("ODATA_USERNAME"),
        scopes=frozenset(split_list(scopes)),
        roles=frozenset(split_list(roles)),
    )


def print_trace_info(bridge: ODataToolsBridge):
    """Print the generated catalog: service summary, policy and every tool's schema."""
    policy = bridge.builder.policy
    print("=" * 80)
    print("🔍 OData Tools Trace Information")
    print("=" * 80)

    print(f"\n🌐 Service URL: {bridge.service_url}")
    print(f"🔧 MCP Name: {bridge.server.name}")
    print(f"📝 Tool Prefix/Suffix: '{policy.tool_name_prefix}' / '{policy.tool_name_suffix}'")
    print(f"🎯 Included Entities: {', '.join(sorted(policy.included_entity_types)) or 'all'}")
    print(f"🚫 Excluded Entities: {', '.join(sorted(policy.excluded_entity_types)) or 'none'}")
    print(f"📏 Max Tools: {policy.max_tool_count or 'unlimited'}, Navigation Depth: {policy.max_navigation_depth}, "
          f"Page Size: {policy.default_page_size}")
    print(f"🔐 Caller Scopes: {', '.join(sorted(bridge.caller.scopes)) or 'none'}; "
          f"Roles: {', '.join(sorted(bridge.caller.roles)) or 'none'}")

    print(f"\n📊 Metadata Summary:")
    print(f"   • Entity Types: {len(bridge.metadata.entity_types)}")
    print(f"   • Entity Sets: {len(bridge.metadata.entity_sets)}")

    tools = bridge.registry.catalog.tools
    visible = {tool.name for tool in bridge.registry.list_tools(bridge.caller)}
    print(f"\n🛠️ Generated Tools ({len(tools)} total, {len(visible)} visible to this caller):")
    for tool in tools:
        marker = "✅" if tool.name in visible else "🔒"
        print(f"\n{marker} {tool.name} [{tool.category.value}/{tool.operation_kind.value}]")
        print(f"   📚 {tool.description}")
        if tool.target_collection:
            print(f"   📁 Collection: {tool.target_collection}")
        if tool.required_scopes or tool.required_roles:
            print(f"   🔑 Scopes: {tool.required_scopes}  Roles: {tool.required_roles}")
        schema = tool.input_schema
        required = set(schema.get("required", []))
        for name, prop in schema.get("properties", {}).items():
            req_str = "required" if name in required else "optional"
            print(f"      • {name}: {prop.get('type', 'any')} ({req_str})")

    print("\n" + "=" * 80)
    print("✅ Trace complete - catalog built successfully but server not started")
    print("=" * 80)


def main():
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    # Priority: --service flag > Positional argument > Environment Variable > .env file
    service_url = args.service_via_flag or args.service_url_pos
    if service_url is None:
        service_url = os.getenv("ODATA_URL") or os.getenv("ODATA_SERVICE_URL")
        if service_url and args.verbose: print("[VERBOSE] Using ODATA_URL from environment.", file=sys.stderr)
    if not service_url:
        print("ERROR: OData service URL not provided.", file=sys.stderr)
        print("Provide it via the --service flag, as a positional argument, or ODATA_URL environment variable.", file=sys.stderr)
        parser.print_help(file=sys.stderr)
        sys.exit(1)

    user = args.user if args.user is not None else (os.getenv("ODATA_USER") or os.getenv("ODATA_USERNAME"))
    password = args.password if args.password is not None else (os.getenv("ODATA_PASS") or os.getenv("ODATA_PASSWORD"))
    auth = (user, password) if user and password else None
    token = args.token if args.token is not None else os.getenv("ODATA_TOKEN")
    if args.verbose:
        if auth:
            print(f"[VERBOSE] Using basic authentication for user: {user}", file=sys.stderr)
        elif token:
            print("[VERBOSE] Using bearer token authentication.", file=sys.stderr)
        else:
            print("[VERBOSE] No authentication provided or configured. Attempting anonymous access.", file=sys.stderr)

    try:
        policy = build_policy(args)
    except ValueError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(2)

    def signal_handler(sig, frame):
        print(f"\n{signal.Signals(sig).name} received, shutting down server...", file=sys.stderr)
        sys.exit(0)
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    try:
        bridge = ODataToolsBridge(
            service_url,
            auth,
            auth_token=token,
            policy=policy,
            caller=resolve_caller(args),
            timeout=args.timeout,
            verbose=args.verbose,
        )
        if args.trace:
            print_trace_info(bridge)
            if args.verbose:
                print(json.dumps(policy.model_dump(mode="json"), indent=2), file=sys.stderr)
            sys.exit(0)

        bridge.run()
    except Exception as e:
        print(f"\n--- FATAL ERROR ---", file=sys.stderr)
        print(f"An unexpected error occurred during startup or runtime: {e}", file=sys.stderr)
        traceback.print_exc(file=sys.stderr)
        print("-------------------", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
