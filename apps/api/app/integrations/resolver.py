"""Locate a named field inside an arbitrarily shaped inbound payload.

Payloads are JSON-like trees: scalars, string-keyed dicts and lists. Lookup
first walks the dotted path exactly; when that yields nothing, it falls back to
a depth-first search over nested dicts comparing canonicalized key names.
"""

from __future__ import annotations

import re
from typing import Any

Scalar = str | int | float | bool | None
PayloadValue = Scalar | dict[str, "PayloadValue"] | list["PayloadValue"]

_IGNORED_CHARS = re.compile(r"[\s_-]")


class _Absent:
    __slots__ = ()

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False


ABSENT: Any = _Absent()


def canonicalize(name: str) -> str:
    return _IGNORED_CHARS.sub("", name.lower())


def extract_path(payload: PayloadValue, path: str) -> Any:
    current: Any = payload
    for part in path.split("."):
        if isinstance(current, dict):
            if part not in current:
                return ABSENT
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return ABSENT
            current = current[index]
        else:
            return ABSENT
    if current is None:
        return ABSENT
    return current


def search_key(payload: PayloadValue, canonical_name: str) -> Any:
    if not isinstance(payload, dict):
        return ABSENT

    for key, value in payload.items():
        if canonicalize(key) == canonical_name and value is not None:
            return value
        if isinstance(value, dict):
            found = search_key(value, canonical_name)
            if found is not ABSENT:
                return found
    return ABSENT


def resolve(payload: PayloadValue, source_field: str) -> Any:
    """Return the value for ``source_field`` or ``ABSENT``."""
    if not source_field:
        return ABSENT

    value = extract_path(payload, source_field)
    if value is not ABSENT:
        return value

    return search_key(payload, canonicalize(source_field))
