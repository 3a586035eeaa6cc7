from __future__ import annotations

import re
from typing import Any

DEFAULT_COUNTRY_PREFIX = "55"

PHONE_NORMALIZE = "phone_normalize"
UPPERCASE = "uppercase"
LOWERCASE = "lowercase"
TRIM = "trim"

_NON_DIGITS = re.compile(r"\D")


def normalize_phone(value: str, country_prefix: str = DEFAULT_COUNTRY_PREFIX) -> str:
    if not value:
        return ""
    digits = _NON_DIGITS.sub("", value)

    if digits.startswith(country_prefix) and len(digits) >= 12:
        return digits

    # 10 or 11 digits is an area code plus a landline or mobile number
    if len(digits) in (10, 11):
        return f"{country_prefix}{digits}"

    return digits


def stringify(value: Any) -> str:
    """Render a scalar payload value as text. Containers render as empty."""
    if value is None or isinstance(value, (dict, list)):
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def apply_transform(value: Any, transform_type: str | None, *, country_prefix: str = DEFAULT_COUNTRY_PREFIX) -> str:
    text = stringify(value)
    if not text:
        return ""

    if transform_type == PHONE_NORMALIZE:
        return normalize_phone(text, country_prefix)
    if transform_type == UPPERCASE:
        return text.upper()
    if transform_type == LOWERCASE:
        return text.lower()
    return text
