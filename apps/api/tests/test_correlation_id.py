from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import get_settings
from app.core.database import Base, get_db
from app.integrations.models import Integration, IntegrationLog
from app.integrations.rate_limit import reset_rate_limiter
from app.main import app

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
def clear_state() -> Generator[None, None, None]:
    reset_rate_limiter()
    get_settings.cache_clear()
    yield
    reset_rate_limiter()
    get_settings.cache_clear()


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def test_generated_correlation_id_returned_in_header(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.headers.get("x-correlation-id")
    assert response.headers.get("x-request-id") == response.headers.get("x-correlation-id")


def test_correlation_id_respected_when_provided(client: TestClient) -> None:
    response = client.get("/health", headers={"X-Correlation-Id": "abc-123"})

    assert response.headers.get("x-correlation-id") == "abc-123"


def test_request_id_header_is_accepted_and_truncated(client: TestClient) -> None:
    response = client.get("/health", headers={"X-Request-Id": "r" * 300})

    assert response.headers.get("x-correlation-id") == "r" * 128


def test_audit_entry_uses_request_correlation_id(client: TestClient, db_session: Session) -> None:
    db_session.add(Integration(tenant_id="tenant-1", name="Ads", auth_token="tok-corr", default_responsible_user_ids=[]))
    db_session.commit()

    response = client.post(
        WEBHOOK,
        params={"token": "tok-corr"},
        json={"email": "ana@example.com"},
        headers={"X-Correlation-Id": "corr-audit-1"},
    )

    assert response.status_code == 200
    assert response.headers.get("x-correlation-id") == "corr-audit-1"
    entry = db_session.scalar(select(IntegrationLog))
    assert entry is not None
    assert entry.correlation_id == "corr-audit-1"


def test_rejected_call_keeps_correlation_id(client: TestClient, db_session: Session) -> None:
    response = client.post(WEBHOOK, params={"token": "unknown"}, json={}, headers={"X-Correlation-Id": "corr-401"})

    assert response.status_code == 401
    assert response.headers.get("x-correlation-id") == "corr-401"
    entry = db_session.scalar(select(IntegrationLog))
    assert entry is not None
    assert entry.correlation_id == "corr-401"
