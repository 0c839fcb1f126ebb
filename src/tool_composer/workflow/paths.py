"""Dotted/bracket path parsing and value extraction."""

import re
from functools import lru_cache
from typing import Any, List, Tuple, Union

PathPart = Union[str, int]

_PATH_PART_PATTERN = re.compile(r"\.?([^.\[\]]+)|\[(\d+)\]")

# Paths that address the whole value
_WHOLE_VALUE_PATHS = ("", ".", "input")


@lru_cache(maxsize=512)
def parse_path(path: str) -> Tuple[PathPart, ...]:
    """Split ``a.b[2].c`` into ``("a", "b", 2, "c")``."""
    parts: List[PathPart] = []
    for match in _PATH_PART_PATTERN.finditer(path):
        key, index = match.group(1), match.group(2)
        if key is not None:
            parts.append(key)
        elif index is not None:
            parts.append(int(index))
    return tuple(parts)


def extract_value(data: Any, path: str) -> Any:
    """Walk ``path`` into ``data``.

    Returns None as soon as traversal hits None, indexes a non-list, or
    reads a key from a non-mapping. Never raises.
    """
    if path in _WHOLE_VALUE_PATHS:
        return data

    current = data
    for part in parse_path(path.strip()):
        if current is None:
            return None
        if isinstance(part, int):
            if not isinstance(current, list) or part >= len(current):
                return None
            current = current[part]
        elif isinstance(current, dict):
            current = current.get(part)
        elif part == "length" and isinstance(current, (list, str)):
            current = len(current)
        else:
            return None
    return current


def is_truthy(value: Any) -> bool:
    """Condition truthiness: None, False, 0, "" and empty containers are falsy."""
    if value is None or value is False:
        return False
    if isinstance(value, bool):
        return True
    if isinstance(value, (int, float)):
        return value != 0 and value == value  # NaN is falsy
    if isinstance(value, (str, list, tuple, dict)):
        return len(value) > 0
    return True
