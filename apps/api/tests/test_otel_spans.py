from __future__ import annotations

import os
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("OTEL_ENABLED", "true")

from app.core.config import get_settings
from app.core.database import Base, get_db
from app.integrations.models import Integration
from app.integrations.rate_limit import reset_rate_limiter
from app.integrations.reconciliation import DEFAULT_CASCADE
from app.integrations.service import webhook_ingestion_service
from app.main import app
from app.otel import setup_inmemory_otel

WEBHOOK = "/api/integrations/webhook"


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "true")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()


@pytest.fixture()
def span_exporter() -> InMemorySpanExporter:
    exporter = setup_inmemory_otel("inbound-api")
    exporter.clear()
    return exporter


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture()
def integration(db_session: Session) -> Integration:
    row = Integration(tenant_id="tenant-1", name="Ads", auth_token="tok-otel", default_responsible_user_ids=["u-1"])
    db_session.add(row)
    db_session.commit()
    return row


def test_request_span_contains_correlation_id(
    client: TestClient,
    span_exporter: InMemorySpanExporter,
    integration: Integration,
) -> None:
    response = client.post(
        WEBHOOK,
        params={"token": "tok-otel"},
        json={"name": "Ana"},
        headers={"X-Correlation-Id": "otel-corr-1"},
    )
    assert response.status_code == 200

    spans = span_exporter.get_finished_spans()
    assert spans
    assert any(span.attributes.get("correlation_id") == "otel-corr-1" for span in spans)


def test_webhook_and_reconcile_spans_carry_outcome(
    client: TestClient,
    span_exporter: InMemorySpanExporter,
    integration: Integration,
) -> None:
    response = client.post(WEBHOOK, params={"token": "tok-otel"}, json={"name": "Ana"})
    assert response.status_code == 200

    spans = span_exporter.get_finished_spans()
    webhook_spans = [span for span in spans if span.name == "integration.webhook"]
    reconcile_spans = [span for span in spans if span.name == "integration.reconcile"]
    assert webhook_spans
    assert webhook_spans[-1].attributes.get("outcome") == "success"
    assert webhook_spans[-1].attributes.get("event_type") == "lead_created"
    assert reconcile_spans
    assert reconcile_spans[-1].attributes.get("action") == "created"
    assert reconcile_spans[-1].attributes.get("lead_id") == response.json()["lead_id"]


def test_failed_cascade_step_span_is_marked_error(
    client: TestClient,
    span_exporter: InMemorySpanExporter,
    integration: Integration,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def broken(session, ctx):  # type: ignore[no-untyped-def]
        raise RuntimeError("responsible store down")

    cascade = tuple((name, broken if name == "responsibles" else hook) for name, hook in DEFAULT_CASCADE)
    monkeypatch.setattr(webhook_ingestion_service.engine, "cascade", cascade)

    response = client.post(WEBHOOK, params={"token": "tok-otel"}, json={"name": "Ana"})
    assert response.status_code == 200
    assert response.json()["action"] == "created"

    step_spans = [span for span in span_exporter.get_finished_spans() if span.name == "integration.cascade.responsibles"]
    assert step_spans
    assert not step_spans[-1].status.is_ok
