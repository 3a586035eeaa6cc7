from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any

from fastapi import HTTPException, status
from opentelemetry import trace
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.business.sales.service import SALE_EVENT_MODES, SaleDraft, SalesService, sales_service
from app.context import reset_integration_id, set_integration_id
from app.core.auth import AuthUser
from app.core.config import Settings, get_settings
from app.integrations.audit import IntegrationAuditLogger
from app.integrations.authenticator import RequestAuthenticator, detect_test_mode
from app.integrations.errors import (
    ConfigInactive,
    IngestionError,
    PayloadSyntaxError,
    RateLimitedError,
    UnexpectedError,
    describe_error,
)
from app.integrations.mapping import DraftRecord, resolve_draft
from app.integrations.models import Integration
from app.integrations.payload import InboundBody, parse_payload
from app.integrations.rate_limit import WebhookRateLimiter, get_rate_limiter
from app.integrations.reconciliation import ReconciliationEngine, ReconciliationResult, ensure_identity
from app.integrations.repository import IntegrationLogRepository, IntegrationRepository
from app.integrations.schemas import IntegrationLogRead, WebhookProbeRead
from app.metrics import observe_cascade_step_failure, observe_rate_limited, observe_webhook

logger = logging.getLogger("app.integrations.webhook")
tracer = trace.get_tracer("app.integrations.webhook")

LOGS_READ_ROLE = "integrations.logs.read"


@dataclass
class InboundRequest:
    method: str
    path: str
    token: str | None
    query: dict[str, str]
    body: InboundBody
    client_ip: str = "unknown"


@dataclass
class WebhookResponse:
    status_code: int
    body: dict[str, Any]
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class _Outcome:
    status_code: int
    body: dict[str, Any]
    audit_status: str
    event_type: str | None
    error_message: str | None = None
    lead_id: uuid.UUID | None = None
    audit_response: dict[str, Any] | None = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass
class _CallTrace:
    request_payload: Any
    integration: Integration | None = None


class WebhookIngestionService:
    def __init__(
        self,
        authenticator: RequestAuthenticator | None = None,
        engine: ReconciliationEngine | None = None,
        audit_logger: IntegrationAuditLogger | None = None,
        sales: SalesService | None = None,
        rate_limiter: WebhookRateLimiter | None = None,
    ) -> None:
        self.authenticator = authenticator or RequestAuthenticator()
        self.engine = engine or ReconciliationEngine()
        self.audit_logger = audit_logger or IntegrationAuditLogger()
        self.sales = sales or sales_service
        self.rate_limiter = rate_limiter or get_rate_limiter()
        self.integration_repository = IntegrationRepository()
        self.log_repository = IntegrationLogRepository()

    def handle(self, session: Session, request: InboundRequest) -> WebhookResponse:
        started = time.perf_counter()
        settings = get_settings()
        call = _CallTrace(request_payload=request.body.snapshot())
        token = set_integration_id(None)
        try:
            with tracer.start_as_current_span("integration.webhook") as span:
                try:
                    outcome = self._process(session, request, call, settings)
                except IngestionError as exc:
                    outcome = self._rejection(exc)
                except Exception as exc:
                    session.rollback()
                    span.record_exception(exc)
                    logger.exception("webhook.unexpected_error", extra={"error": describe_error(exc)})
                    outcome = self._rejection(UnexpectedError(describe_error(exc)))

                span.set_attribute("outcome", outcome.audit_status)
                if outcome.event_type:
                    span.set_attribute("event_type", outcome.event_type)
                self._record(session, call, outcome, started)
        finally:
            reset_integration_id(token)
        return WebhookResponse(status_code=outcome.status_code, body=outcome.body, headers=outcome.headers)

    def _process(self, session: Session, request: InboundRequest, call: _CallTrace, settings: Settings) -> _Outcome:
        is_test = detect_test_mode(request.path, request.query)
        integration = self.authenticator.authenticate(session, request.token)
        call.integration = integration
        set_integration_id(str(integration.id))
        logger.info(
            "webhook.received",
            extra={"integration_id": str(integration.id), "tenant_id": integration.tenant_id, "method": request.method},
        )

        if not is_test and not settings.rate_limit_disabled:
            self._enforce_rate_limit(integration, request.client_ip, settings)

        try:
            payload = parse_payload(request.body)
        except PayloadSyntaxError as exc:
            if not is_test:
                raise
            return self._test_outcome(error=exc.message)

        if payload is not None:
            call.request_payload = payload

        if settings.webhook_payload_test_flag and isinstance(payload, dict):
            is_test = is_test or payload.get("test") is True or payload.get("mode") == "test"

        if settings.webhook_empty_body_ping and request.body.is_empty:
            body = {"success": True, "mode": "validation"}
            return _Outcome(status_code=status.HTTP_200_OK, body=body, audit_status="ping", event_type="validation")

        if is_test:
            return self._test_outcome()

        if not integration.is_active:
            raise ConfigInactive("integration inactive")

        mappings = self.integration_repository.list_mappings(session, integration.id)
        draft = resolve_draft(
            payload,
            mappings,
            include_sale=integration.event_mode in SALE_EVENT_MODES,
            country_prefix=settings.phone_country_prefix,
        )
        ensure_identity(draft, payload, settings.webhook_received_fields_limit)

        result = self.engine.reconcile(session, integration, draft, payload)
        return self._reconciled_outcome(session, integration, draft, result)

    def _enforce_rate_limit(self, integration: Integration, client_ip: str, settings: Settings) -> None:
        decision = self.rate_limiter.check(
            str(integration.id),
            client_ip,
            per_ip_limit=settings.webhook_rate_limit_per_ip_per_minute,
            per_token_limit=settings.webhook_rate_limit_per_token_per_minute,
            daily_limit=settings.webhook_daily_limit_per_token,
        )
        if decision.limited:
            observe_rate_limited(decision.scope or "unknown")
            raise RateLimitedError(decision.reason or "rate limit exceeded", decision.retry_after_seconds)

    def _test_outcome(self, error: str | None = None) -> _Outcome:
        body: dict[str, Any] = {"success": True, "mode": "test"}
        if error:
            body["error"] = error
        return _Outcome(
            status_code=status.HTTP_200_OK,
            body=body,
            audit_status="test",
            event_type="test",
            error_message=error,
        )

    def _reconciled_outcome(
        self,
        session: Session,
        integration: Integration,
        draft: DraftRecord,
        result: ReconciliationResult,
    ) -> _Outcome:
        lead_id = result.lead.id
        sale_id: uuid.UUID | None = None
        sale_error: str | None = None
        if integration.event_mode in SALE_EVENT_MODES:
            sale_id, sale_error = self._create_sale(session, integration, draft, result)

        if sale_id is not None:
            event_type = "lead_and_sale_created" if result.action == "created" else "lead_updated_sale_created"
        else:
            event_type = f"lead_{result.action}"

        body: dict[str, Any] = {
            "success": True,
            "action": result.action,
            "lead_id": str(lead_id),
            "sale_id": str(sale_id) if sale_id else None,
            "message": f"lead {result.action}" + (" and sale created" if sale_id else ""),
        }
        audit_response = {
            "lead_id": str(lead_id),
            "sale_id": str(sale_id) if sale_id else None,
            "action": result.action,
            "cascade": [item.to_dict() for item in result.cascade],
        }
        logger.info(
            "webhook.reconciled",
            extra={
                "integration_id": str(integration.id),
                "tenant_id": integration.tenant_id,
                "action": result.action,
                "lead_id": str(lead_id),
                "sale_id": str(sale_id) if sale_id else None,
            },
        )
        return _Outcome(
            status_code=status.HTTP_200_OK,
            body=body,
            audit_status="partial" if sale_error else "success",
            event_type=event_type,
            error_message=f"lead {result.action}, but sale creation failed: {sale_error}" if sale_error else None,
            lead_id=lead_id,
            audit_response=audit_response,
        )

    def _create_sale(
        self,
        session: Session,
        integration: Integration,
        draft: DraftRecord,
        result: ReconciliationResult,
    ) -> tuple[uuid.UUID | None, str | None]:
        responsibles = integration.default_responsible_user_ids or []
        try:
            sale = self.sales.create_from_integration(
                session,
                tenant_id=integration.tenant_id,
                lead=result.lead,
                draft=SaleDraft.from_fields(draft.sale),
                source_name=integration.name,
                default_product_id=integration.default_product_id,
                seller_user_id=str(responsibles[0]) if responsibles else None,
                status=integration.sale_status_on_create,
                tag=integration.sale_tag,
            )
        except Exception as exc:
            session.rollback()
            observe_cascade_step_failure("sale")
            error = describe_error(exc)
            logger.exception("webhook.sale_failed", extra={"step": "sale", "error": error})
            return None, error
        return sale.id, None

    def _rejection(self, exc: IngestionError) -> _Outcome:
        headers: dict[str, str] = {}
        if isinstance(exc, RateLimitedError):
            headers["Retry-After"] = str(exc.retry_after_seconds or 60)
        logger.info(
            "webhook.rejected",
            extra={"outcome": exc.audit_status, "event_type": exc.event_type, "status_code": exc.status_code},
        )
        return _Outcome(
            status_code=exc.status_code,
            body=exc.to_response(),
            audit_status=exc.audit_status,
            event_type=exc.event_type,
            error_message=exc.message,
            headers=headers,
        )

    def _record(self, session: Session, call: _CallTrace, outcome: _Outcome, started: float) -> None:
        try:
            self.audit_logger.write(
                session,
                integration=call.integration,
                status=outcome.audit_status,
                event_type=outcome.event_type,
                request_payload=call.request_payload,
                started=started,
                response_payload=outcome.audit_response if outcome.audit_response is not None else outcome.body,
                error_message=outcome.error_message,
                lead_id=outcome.lead_id,
            )
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception(
                "webhook.audit_failed",
                extra={"outcome": outcome.audit_status, "error": describe_error(exc)},
            )
        observe_webhook(outcome=outcome.audit_status, duration=time.perf_counter() - started)

    def probe(self, session: Session, token: str | None) -> WebhookProbeRead | None:
        if not token:
            return WebhookProbeRead(message="webhook endpoint active")
        integration = self.integration_repository.get_by_token(session, token)
        if integration is None:
            return None
        message = "integration active and ready" if integration.is_active else "integration found (inactive)"
        return WebhookProbeRead(message=message, integration=integration.name, status=integration.status)

    def list_logs(
        self,
        session: Session,
        user: AuthUser,
        tenant_id: str | None,
        integration_id: uuid.UUID,
        *,
        status_filter: str | None = None,
        limit: int = 50,
    ) -> list[IntegrationLogRead]:
        if not user.has_role(LOGS_READ_ROLE):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Missing permission: {LOGS_READ_ROLE}")
        integration = self.integration_repository.get(session, integration_id)
        if integration is None or integration.tenant_id != tenant_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="integration not found")
        entries = self.log_repository.list_for_integration(session, integration_id, status=status_filter, limit=limit)
        return [IntegrationLogRead.model_validate(entry) for entry in entries]


webhook_ingestion_service = WebhookIngestionService()
