"""
Formatting utilities for ldapsession output.

This module renders LDAP entries and other dictionaries as indented,
human-readable text or as JSON.
"""

import datetime
import json
from typing import Any, Callable, Dict

# Type aliases for better readability
PrintFunc = Callable[..., Any]
JsonLike = Dict[str, Any]


def pretty_print(
    data: JsonLike, indent: int = 0, padding: int = 40, print_func: PrintFunc = print
) -> None:
    """
    Pretty print a dictionary with customizable indentation and padding.

    Args:
        data: Dictionary to print
        indent: Initial indentation level
        padding: Left padding for values
        print_func: Function to use for printing (default: built-in print)
    """
    indent_str = "  " * indent

    for key, value in data.items():
        key_str = f"{indent_str}{key}"
        padded_key = key_str.ljust(padding, " ")

        if isinstance(value, bytes):
            print_func(f"{padded_key}: {value.hex()}")

        elif isinstance(value, (str, int, float, bool)):
            print_func(f"{padded_key}: {value}")

        elif isinstance(value, datetime.datetime):
            print_func(f"{padded_key}: {value.isoformat()}")

        elif isinstance(value, dict):
            print_func(f"{key_str}")
            pretty_print(
                value, indent=indent + 1, padding=padding, print_func=print_func
            )

        elif isinstance(value, (list, tuple)):
            # Multi-valued attributes continue on aligned lines
            formatted_list = ("\n" + " " * padding + "  ").join(
                to_text(x) for x in value
            )
            print_func(f"{padded_key}: {formatted_list}")

        elif value is None:
            continue

        else:
            print_func(f"{padded_key}: {value}")


def to_text(value: Any) -> str:
    """Render a single attribute value as text."""
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, datetime.datetime):
        return value.isoformat()
    return str(value)


def _json_default(value: Any) -> Any:
    if isinstance(value, bytes):
        return value.hex()
    if isinstance(value, (datetime.datetime, datetime.date)):
        return value.isoformat()
    return str(value)


def to_json(data: JsonLike) -> str:
    """Serialize a dictionary to a single JSON line."""
    return json.dumps(data, default=_json_default, sort_keys=True)
