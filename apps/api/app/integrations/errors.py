from __future__ import annotations

from typing import Any

from sqlalchemy.exc import DBAPIError, SQLAlchemyError


class IngestionError(Exception):
    """Base error for rejections detected while ingesting an inbound webhook call.

    Each subclass carries the HTTP status it maps to and how the call is recorded
    in the integration log.
    """

    status_code = 500
    audit_status = "error"
    event_type = "error"

    def __init__(self, message: str, *, hint: str | None = None, extra: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.hint = hint
        self.extra = extra or {}

    def to_response(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "error": self.message}
        if self.hint:
            body["hint"] = self.hint
        body.update(self.extra)
        return body


class AuthError(IngestionError):
    """Raised when the token is missing or matches no integration."""

    status_code = 401
    audit_status = "rejected"
    event_type = "unknown_token"


class ConfigInactive(IngestionError):
    status_code = 401
    audit_status = "rejected"
    event_type = "inactive_integration"


class PayloadSyntaxError(IngestionError):
    """Raised when a body that looks structured cannot be parsed."""

    status_code = 400
    event_type = "invalid_payload"


class IdentityMissingError(IngestionError):
    status_code = 400
    event_type = "missing_identity"

    def __init__(self, message: str, received_fields: list[str], *, hint: str | None = None) -> None:
        super().__init__(message, hint=hint, extra={"received_fields": received_fields})
        self.received_fields = received_fields


class DownstreamWriteError(IngestionError):
    event_type = "write_failed"


class RateLimitedError(IngestionError):
    status_code = 429
    audit_status = "rate_limited"
    event_type = "rate_limit"

    def __init__(self, message: str, retry_after_seconds: int) -> None:
        super().__init__(message, extra={"retry_after_seconds": retry_after_seconds})
        self.retry_after_seconds = retry_after_seconds


class UnexpectedError(IngestionError):
    """Wraps anything that escaped the explicit checks."""

    event_type = "unexpected_error"


def describe_error(exc: BaseException) -> str:
    """Short error text for logs and audit entries.

    Driver errors are reduced to the driver message so the statement and its bound
    parameters are not recorded.
    """
    if isinstance(exc, DBAPIError):
        return f"{type(exc).__name__}: {exc.orig}"[:500]
    if isinstance(exc, SQLAlchemyError):
        return type(exc).__name__
    return str(exc)[:500] or type(exc).__name__
