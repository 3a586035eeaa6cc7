from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Header, Query, Request, status
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from app.core.auth import AuthUser, get_current_user
from app.core.context import resolve_client_ip
from app.core.database import get_db
from app.integrations.errors import AuthError
from app.integrations.payload import InboundBody, decode_body
from app.integrations.schemas import IntegrationLogRead, LogStatus, WebhookProbeRead
from app.integrations.service import InboundRequest, webhook_ingestion_service

router = APIRouter(prefix="/api/integrations", tags=["integrations"])

_SNAPSHOT_HEADERS = ("content-type", "user-agent")
REDACTED = "[redacted]"


async def read_inbound_body(request: Request) -> InboundBody:
    raw = await request.body()
    query = {key: (REDACTED if key == "token" else value) for key, value in request.query_params.items()}
    headers = {name: request.headers[name] for name in _SNAPSHOT_HEADERS if name in request.headers}
    return InboundBody(
        raw_text=decode_body(raw) if raw else None,
        content_type=request.headers.get("content-type", ""),
        headers=headers,
        query=query,
    )


def _client_ip(request: Request) -> str:
    context = getattr(request.state, "context", None)
    if context is not None and context.client_ip:
        return context.client_ip
    return resolve_client_ip(request)


def _ingest(request: Request, body: InboundBody, session: Session) -> JSONResponse:
    inbound = InboundRequest(
        method=request.method,
        path=request.url.path,
        token=request.query_params.get("token"),
        query=dict(request.query_params),
        body=body,
        client_ip=_client_ip(request),
    )
    result = webhook_ingestion_service.handle(session, inbound)
    return JSONResponse(status_code=result.status_code, content=result.body, headers=result.headers)


@router.post("/webhook")
@router.put("/webhook")
def receive_webhook(
    request: Request,
    body: InboundBody = Depends(read_inbound_body),
    session: Session = Depends(get_db),
) -> JSONResponse:
    return _ingest(request, body, session)


@router.post("/webhook/test")
@router.put("/webhook/test")
def receive_test_webhook(
    request: Request,
    body: InboundBody = Depends(read_inbound_body),
    session: Session = Depends(get_db),
) -> JSONResponse:
    return _ingest(request, body, session)


@router.get("/webhook", response_model=WebhookProbeRead)
def probe_webhook(
    token: str | None = Query(default=None),
    session: Session = Depends(get_db),
) -> WebhookProbeRead | JSONResponse:
    probe = webhook_ingestion_service.probe(session, token)
    if probe is None:
        error = AuthError("integration not found")
        return JSONResponse(status_code=error.status_code, content=error.to_response())
    return probe


@router.head("/webhook")
def head_webhook() -> Response:
    return Response(status_code=status.HTTP_200_OK)


@router.get("/{integration_id}/logs", response_model=list[IntegrationLogRead])
def list_integration_logs(
    integration_id: uuid.UUID,
    status_filter: LogStatus | None = Query(default=None, alias="status"),
    limit: int = Query(default=50, ge=1, le=200),
    x_tenant_id: str | None = Header(default=None),
    session: Session = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> list[IntegrationLogRead]:
    return webhook_ingestion_service.list_logs(
        session,
        user,
        x_tenant_id,
        integration_id,
        status_filter=status_filter,
        limit=limit,
    )
