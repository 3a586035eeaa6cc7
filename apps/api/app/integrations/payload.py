from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl

from app.integrations.errors import PayloadSyntaxError
from app.integrations.resolver import PayloadValue

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
_STRUCTURED_MARKERS = ("application/json", "text/json", "+json")
_STRUCTURED_OPENERS = ("{", "[")

INVALID_JSON_HINT = "Check that the provider sends valid JSON, or switch it to application/x-www-form-urlencoded."


@dataclass
class InboundBody:
    """The request body as received, kept for logging whatever the parse outcome."""

    raw_text: str | None
    content_type: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    query: dict[str, str] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return self.raw_text is None or not self.raw_text.strip()

    def snapshot(self) -> dict[str, Any]:
        return {"headers": self.headers, "query": self.query, "body_raw": self.raw_text}


def decode_body(raw: bytes | None) -> str | None:
    if raw is None:
        return None
    return raw.decode("utf-8", errors="replace")


def declares_form(content_type: str) -> bool:
    return FORM_CONTENT_TYPE in content_type.lower()


def looks_structured(content_type: str, raw_text: str) -> bool:
    lowered = content_type.lower()
    if any(marker in lowered for marker in _STRUCTURED_MARKERS):
        return True
    return raw_text.lstrip().startswith(_STRUCTURED_OPENERS)


def parse_form(raw_text: str) -> dict[str, str]:
    return dict(parse_qsl(raw_text, keep_blank_values=True))


def parse_payload(body: InboundBody) -> PayloadValue:
    """Turn the raw body into a payload tree.

    Returns ``None`` for an empty body or an unrecognised non-structured one.
    Raises ``PayloadSyntaxError`` when the body looks structured but does not parse.
    """
    if body.is_empty:
        return None
    raw_text = body.raw_text or ""

    if declares_form(body.content_type):
        return parse_form(raw_text)

    if looks_structured(body.content_type, raw_text):
        try:
            return json.loads(raw_text)
        except (ValueError, RecursionError) as exc:
            raise PayloadSyntaxError("invalid JSON payload", hint=INVALID_JSON_HINT) from exc

    try:
        return json.loads(raw_text)
    except (ValueError, RecursionError):
        return None
