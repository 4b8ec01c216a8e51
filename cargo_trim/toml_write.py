from __future__ import annotations

"""Small TOML writer helpers.

The config file only holds string arrays, so this is the whole writer.
Parsing lives in config.py.
"""

import json
from typing import Iterable


def toml_basic_string(s: str) -> str:
    """Quote a string as a TOML basic string.

    JSON encoding gives predictable escaping + double quotes.
    """

    if not isinstance(s, str):
        raise TypeError("toml_basic_string: expected str")
    return json.dumps(s, ensure_ascii=False)


def toml_string_array(values: Iterable[str]) -> str:
    """Format a TOML array like `["a", "b"]`, keeping the given order."""

    return "[" + ", ".join(toml_basic_string(v) for v in values) + "]"
