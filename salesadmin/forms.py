"""Decoding of bracketed form fields and query strings.

HTML forms on the admin pages post repeated structures as
``platforms[0][links][1][url]=...`` and the filter links use
``filters[platform][]=3``.  :func:`parse_nested` turns such flat pairs into
nested dicts and lists that pydantic models can validate.
"""
from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Tuple

_BRACKET_RE = re.compile(r"\[([^\[\]]*)\]")


def split_key(key: str) -> List[str]:
    head, bracket, rest = key.partition("[")
    if not bracket:
        return [key]
    return [head] + _BRACKET_RE.findall(bracket + rest)


def parse_nested(items: Iterable[Tuple[str, Any]]) -> Dict[str, Any]:
    root: Dict[str, Any] = {}
    for key, value in items:
        parts = split_key(key)
        append = len(parts) > 1 and parts[-1] == ""
        if append:
            parts = parts[:-1]

        node = root
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child

        leaf = parts[-1]
        if append:
            existing = node.get(leaf)
            if not isinstance(existing, list):
                existing = []
                node[leaf] = existing
            existing.append(value)
        else:
            node[leaf] = value
    return _listify(root)


def _listify(node: Any) -> Any:
    if isinstance(node, list):
        return [_listify(item) for item in node]
    if not isinstance(node, dict):
        return node
    converted = {key: _listify(value) for key, value in node.items()}
    if converted and all(key.isdigit() for key in converted):
        return [converted[key] for key in sorted(converted, key=int)]
    return converted


async def read_nested_form(request) -> Dict[str, Any]:
    form = await request.form()
    return parse_nested(form.multi_items())


def blank_to_none(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    value = value.strip()
    return value or None


def is_checked(value: Any) -> bool:
    return value is True or value == "on"
