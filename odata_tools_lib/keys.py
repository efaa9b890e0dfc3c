"""
Entity key predicate encoding for OData resource paths.
"""

import re
from typing import Any, Dict, List
from urllib.parse import quote

from .exceptions import ToolValidationError

_NUMBER = re.compile(r'^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$')


def format_key_text(value: Any) -> str:
    """Raw text of a key value; booleans use OData's lowercase literals."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def is_string_key(text: str) -> bool:
    """Whether a key value needs single quotes in a key predicate.

    Values that already start with a quote are left alone, as are integers,
    decimals and booleans. GUIDs and anything else are string literals.
    """
    if text.startswith("'") or text.startswith('"'):
        return False
    stripped = text.strip()
    if _NUMBER.match(stripped):
        return False
    if stripped.lower() in ("true", "false"):
        return False
    return True


def encode_key_value(value: Any) -> str:
    text = format_key_text(value)
    if not is_string_key(text):
        return text.strip()
    return "'" + text.replace("'", "''") + "'"


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def encode_key(key_properties: List[str], values: Dict[str, Any]) -> str:
    """Build the predicate that goes between the parentheses of ``Set(...)``.

    A single key gives a bare literal (``42`` or ``'ABC'``); a composite key gives
    ``A=1,B='x'`` in declared key order.
    """
    if not key_properties:
        raise ToolValidationError("Entity type has no key properties")

    missing = [name for name in key_properties if _is_missing(values.get(name))]
    if missing:
        raise ToolValidationError(f"Missing value(s) for key properties: {', '.join(missing)}")

    if len(key_properties) == 1:
        return encode_key_value(values[key_properties[0]])
    return ",".join(f"{name}={encode_key_value(values[name])}" for name in key_properties)


def key_path_segment(key_predicate: str) -> str:
    """Percent-encode a key predicate for use in a URL path."""
    return quote(key_predicate, safe="'=,:+-.@")
