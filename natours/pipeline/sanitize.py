"""
Input sanitizers for query strings, bodies and path parameters.

- NoSQL injection: mapping keys starting with ``$`` or containing ``.``
  are dropped, recursively.
- XSS: ``<`` is escaped to ``&lt;`` in every string value so no tag
  survives into templates or stored documents.
- Parameter pollution: repeated query keys collapse to the last value
  unless whitelisted.
"""

import re
from typing import Any, Dict, Iterable, List

from fastapi import Request

# "price[$gte]" is checked segment by segment: "price", "$gte"
_KEY_SEGMENTS = re.compile(r"[^\[\]]+")


def _is_prohibited_key(key: Any) -> bool:
    if not isinstance(key, str):
        return False
    if "." in key:
        return True
    return any(segment.startswith("$") for segment in _KEY_SEGMENTS.findall(key))


def strip_operator_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: strip_operator_keys(item)
            for key, item in value.items()
            if not _is_prohibited_key(key)
        }
    if isinstance(value, list):
        return [strip_operator_keys(item) for item in value]
    return value


def escape_html(value: Any) -> Any:
    if isinstance(value, str):
        return value.replace("<", "&lt;")
    if isinstance(value, dict):
        return {key: escape_html(item) for key, item in value.items()}
    if isinstance(value, list):
        return [escape_html(item) for item in value]
    return value


def collapse_repeated(query: Dict[str, List[str]], whitelist: Iterable[str]) -> Dict[str, List[str]]:
    allowed = set(whitelist)
    return {
        key: list(values) if key in allowed else values[-1:]
        for key, values in query.items()
    }


async def clean_path_params(request: Request) -> None:
    """Router dependency: sanitize path params before handlers bind them."""
    params = request.scope.get("path_params")
    if params:
        request.scope["path_params"] = escape_html(strip_operator_keys(dict(params)))
