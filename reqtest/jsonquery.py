"""reqtest jsonquery - JSONPath lookups over parsed response bodies."""

import re
from typing import Any

import jsonpath

_ROOT_INDEX_RE = re.compile(r"^\$\[\d+\]")


def query(data: Any, path: str) -> list[Any]:
    """Return every match of a JSONPath expression (empty list when none)."""
    matches = jsonpath.jsonpath(data, path)
    if matches is False or matches is None:
        return []
    return list(matches)


def adjust_root(path: str, data: Any) -> str:
    """Best-effort fix for paths written against an array root.

    ``$[0].id`` queried against an object root is read as ``$.id``, i.e. the
    object stands in for a one-element array. Only a leading numeric index
    is rewritten; bracketed keys (``$['id']``) are valid on objects and are
    left alone. Deeper array/object mismatches are not adjusted.
    """
    if isinstance(data, dict) and _ROOT_INDEX_RE.match(path):
        rest = _ROOT_INDEX_RE.sub("", path, count=1)
        if rest and rest[0] not in ".[":
            rest = "." + rest
        return "$" + rest
    return path
