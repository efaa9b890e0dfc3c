"""
Construction of OData system query options from tool parameters.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

from .constants import QUERY_OPTIONS
from .exceptions import ToolValidationError


def encode_query_params(params):
    """Encode query parameters properly for OData compatibility.

    OData servers (especially SAP CAP backends) don't accept '+' for spaces
    in URL parameters. They require '%20' according to RFC 3986.
    """
    encoded = urlencode(params, doseq=True, safe='$')
    return encoded.replace('+', '%20')


def get_option(parameters: Dict[str, Any], name: str) -> Any:
    """Read a query option given either as '$name' or 'name'."""
    value = parameters.get(f"${name}")
    if value is None:
        value = parameters.get(name)
    return value


def _as_text(name: str, value: Any) -> Optional[str]:
    if isinstance(value, (list, tuple)):
        items = [str(item).strip() for item in value if str(item).strip()]
        return ",".join(items) or None
    if not isinstance(value, str):
        raise ToolValidationError(f"${name} must be a string.")
    return value.strip() or None


def _as_non_negative_int(name: str, value: Any) -> Optional[int]:
    if isinstance(value, str):
        if not value.strip():
            return None
        value = value.strip()
    if isinstance(value, bool):
        raise ToolValidationError(f"${name} parameter must be an integer.")
    try:
        number = int(value)
    except (ValueError, TypeError):
        raise ToolValidationError(f"${name} parameter must be an integer.")
    if number < 0:
        raise ToolValidationError(f"${name} parameter cannot be negative.")
    return number


def _as_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _split_top_level(text: str, separator: str = ",") -> List[str]:
    parts, depth, current = [], 0, []
    for char in text:
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        if char == separator and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(char)
    parts.append("".join(current))
    return [part.strip() for part in parts if part.strip()]


def expand_depth(expand: str) -> int:
    """Deepest navigation path in an $expand value, counting '/' and nested $expand."""
    depth = 0
    for item in _split_top_level(expand):
        path, _, options = item.partition("(")
        item_depth = len([segment for segment in path.split("/") if segment.strip()])
        if options:
            options = options[:-1] if options.endswith(")") else options
            for option in _split_top_level(options, ";"):
                option_name, _, option_value = option.partition("=")
                if option_name.strip().lower() in ("$expand", "expand"):
                    item_depth += expand_depth(option_value)
        depth = max(depth, item_depth)
    return depth


def build_query_options(parameters: Dict[str, Any], max_expand_depth: Optional[int] = None) -> Dict[str, str]:
    """Turn recognized parameters into '$option' components; unrecognized ones are ignored."""
    options: Dict[str, str] = {}
    for name in QUERY_OPTIONS:
        value = get_option(parameters, name)
        if value is None:
            continue

        if name in ("top", "skip"):
            number = _as_non_negative_int(name, value)
            if number is not None:
                options[f"${name}"] = str(number)
        elif name == "count":
            if _as_flag(value):
                options["$count"] = "true"
        else:
            text = _as_text(name, value)
            if text is not None:
                options[f"${name}"] = text

    expand = options.get("$expand")
    if expand and max_expand_depth is not None:
        depth = expand_depth(expand)
        if depth > max_expand_depth:
            raise ToolValidationError(
                f"$expand depth {depth} exceeds the maximum navigation depth of {max_expand_depth}."
            )
    return options
