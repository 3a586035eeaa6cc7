from __future__ import annotations

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict


LogStatus = Literal["success", "partial", "test", "ping", "rejected", "error", "rate_limited"]


class IntegrationLogRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    integration_id: UUID | None
    tenant_id: str | None
    direction: str
    status: str
    event_type: str | None
    request_payload: Any = None
    response_payload: dict[str, Any] | None = None
    error_message: str | None
    lead_id: UUID | None
    processing_time_ms: int
    correlation_id: str | None
    created_at: datetime


class WebhookProbeRead(BaseModel):
    success: bool = True
    message: str
    integration: str | None = None
    status: str | None = None
