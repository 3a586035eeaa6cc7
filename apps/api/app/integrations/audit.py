from __future__ import annotations

import time
import uuid
from typing import Any

from sqlalchemy.orm import Session

from app.context import get_correlation_id
from app.integrations.models import Integration, IntegrationLog
from app.integrations.repository import IntegrationLogRepository


class IntegrationAuditLogger:
    """Writes the single integration-log row that traces one inbound call."""

    direction = "inbound"

    def __init__(self, repository: IntegrationLogRepository | None = None) -> None:
        self.repository = repository or IntegrationLogRepository()

    def write(
        self,
        session: Session,
        *,
        integration: Integration | None,
        status: str,
        event_type: str | None,
        request_payload: Any,
        started: float,
        response_payload: dict[str, Any] | None = None,
        error_message: str | None = None,
        lead_id: uuid.UUID | None = None,
    ) -> IntegrationLog:
        entry = IntegrationLog(
            integration_id=integration.id if integration is not None else None,
            tenant_id=integration.tenant_id if integration is not None else None,
            direction=self.direction,
            status=status,
            event_type=event_type,
            request_payload=request_payload,
            response_payload=response_payload,
            error_message=error_message[:2000] if error_message else None,
            lead_id=lead_id,
            processing_time_ms=elapsed_ms(started),
            correlation_id=get_correlation_id(),
        )
        return self.repository.add(session, entry)


def elapsed_ms(started: float) -> int:
    return max(0, int(round((time.perf_counter() - started) * 1000)))
