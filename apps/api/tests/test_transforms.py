from __future__ import annotations

import pytest

from app.integrations.transforms import apply_transform, normalize_phone, stringify


@pytest.mark.parametrize(
    "digits",
    ["1199998888", "11999998888", "2133334444", "5512345678", "55123456789", "8599991234"],
)
def test_normalize_phone_prefixes_domestic_numbers_and_is_idempotent(digits: str) -> None:
    normalized = normalize_phone(digits)

    assert normalized.startswith("55")
    assert len(normalized) in (12, 13)
    assert normalize_phone(normalized) == normalized


def test_normalize_phone_strips_formatting() -> None:
    assert normalize_phone("(11) 99999-8888") == "5511999998888"
    assert normalize_phone("+55 11 99999-8888") == "5511999998888"


def test_normalize_phone_leaves_other_lengths_as_digits() -> None:
    assert normalize_phone("12345") == "12345"
    assert normalize_phone("") == ""


def test_normalize_phone_uses_configured_prefix() -> None:
    assert normalize_phone("2025550123", "1") == "12025550123"


def test_stringify_renders_scalars_and_blanks_containers() -> None:
    assert stringify("  Ana  ") == "Ana"
    assert stringify(42) == "42"
    assert stringify(10.0) == "10"
    assert stringify(10.5) == "10.5"
    assert stringify(True) == "true"
    assert stringify(None) == ""
    assert stringify({"a": 1}) == ""
    assert stringify([1, 2]) == ""


def test_apply_transform_variants() -> None:
    assert apply_transform(" Ana ", "uppercase") == "ANA"
    assert apply_transform(" ANA@Mail.COM ", "lowercase") == "ana@mail.com"
    assert apply_transform(" keep ", "trim") == "keep"
    assert apply_transform("11 99999-8888", "phone_normalize") == "5511999998888"
    assert apply_transform("x", "something_else") == "x"
    assert apply_transform(None, "uppercase") == ""
