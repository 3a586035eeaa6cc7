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
from app.integrations.rate_limit import WebhookRateLimiter, reset_rate_limiter
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
def setup_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("RATE_LIMIT_DISABLED", "false")
    monkeypatch.setenv("WEBHOOK_RATE_LIMIT_PER_TOKEN_PER_MINUTE", "2")
    get_settings.cache_clear()
    reset_rate_limiter()
    yield
    get_settings.cache_clear()
    reset_rate_limiter()


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
    row = Integration(tenant_id="tenant-1", name="Quiz", auth_token="tok-rate", default_responsible_user_ids=[])
    db_session.add(row)
    db_session.commit()
    return row


def test_ip_window_is_checked_first() -> None:
    limiter = WebhookRateLimiter()
    limits = {"per_ip_limit": 2, "per_token_limit": 100, "daily_limit": 1000}

    assert not limiter.check("int-1", "10.0.0.1", **limits).limited
    assert not limiter.check("int-2", "10.0.0.1", **limits).limited
    decision = limiter.check("int-3", "10.0.0.1", **limits)

    assert decision.limited
    assert decision.scope == "ip"
    assert 1 <= decision.retry_after_seconds <= 60
    assert not limiter.check("int-3", "10.0.0.2", **limits).limited


def test_token_and_daily_limits_are_per_integration() -> None:
    limiter = WebhookRateLimiter()

    assert not limiter.check("int-1", "a", per_ip_limit=100, per_token_limit=1, daily_limit=1000).limited
    assert limiter.check("int-1", "b", per_ip_limit=100, per_token_limit=1, daily_limit=1000).scope == "token"
    assert not limiter.check("int-2", "c", per_ip_limit=100, per_token_limit=1, daily_limit=1000).limited

    daily = WebhookRateLimiter()
    daily.check("int-1", "a", per_ip_limit=100, per_token_limit=100, daily_limit=1)
    decision = daily.check("int-1", "a", per_ip_limit=100, per_token_limit=100, daily_limit=1)
    assert decision.scope == "daily"
    assert decision.retry_after_seconds >= 1


def test_expired_windows_are_swept_once_tracking_grows() -> None:
    now = {"value": 1000.0}
    limiter = WebhookRateLimiter(sweep_threshold=10, clock=lambda: now["value"])
    limits = {"per_ip_limit": 1, "per_token_limit": 1000, "daily_limit": 10000}

    for index in range(50):
        assert not limiter.check("int-1", f"10.0.{index}.1", **limits).limited
    assert limiter.check("int-1", "10.0.0.1", **limits).scope == "ip"
    assert limiter.tracked_keys() == 52

    now["value"] += 61
    assert not limiter.check("int-1", "10.9.9.9", **limits).limited

    assert limiter.tracked_keys() == 3


def test_webhook_rate_limited_response_is_logged(
    client: TestClient,
    db_session: Session,
    integration: Integration,
) -> None:
    for _ in range(2):
        assert client.post(WEBHOOK, params={"token": "tok-rate"}, json={"name": "Ana"}).status_code == 200

    limited = client.post(WEBHOOK, params={"token": "tok-rate"}, json={"name": "Ana"})

    assert limited.status_code == 429
    assert limited.json()["success"] is False
    assert "2/minute" in limited.json()["error"]
    assert int(limited.headers["retry-after"]) >= 1
    last = db_session.scalar(select(IntegrationLog).order_by(IntegrationLog.created_at.desc()))
    assert last is not None
    assert (last.status, last.event_type) == ("rate_limited", "rate_limit")
    assert last.integration_id == integration.id


def test_inactive_integration_is_counted_before_the_inactive_check(
    client: TestClient,
    db_session: Session,
    integration: Integration,
) -> None:
    integration.status = "inactive"
    db_session.commit()

    codes = [client.post(WEBHOOK, params={"token": "tok-rate"}, json={"name": "Ana"}).status_code for _ in range(3)]

    assert codes == [401, 401, 429]
    statuses = [log.status for log in db_session.scalars(select(IntegrationLog)).all()]
    assert statuses.count("rejected") == 2
    assert statuses.count("rate_limited") == 1


def test_test_mode_is_not_rate_limited(client: TestClient, integration: Integration) -> None:
    for _ in range(4):
        response = client.post(f"{WEBHOOK}/test", params={"token": "tok-rate"}, json={"name": "Ana"})
        assert response.status_code == 200


def test_forwarded_for_first_hop_is_the_client_ip(
    client: TestClient,
    integration: Integration,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("WEBHOOK_RATE_LIMIT_PER_TOKEN_PER_MINUTE", "100")
    monkeypatch.setenv("WEBHOOK_RATE_LIMIT_PER_IP_PER_MINUTE", "1")
    get_settings.cache_clear()

    first = client.post(
        WEBHOOK,
        params={"token": "tok-rate"},
        json={"name": "Ana"},
        headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
    )
    other_ip = client.post(
        WEBHOOK,
        params={"token": "tok-rate"},
        json={"name": "Bia"},
        headers={"X-Forwarded-For": "203.0.113.8"},
    )
    same_ip = client.post(
        WEBHOOK,
        params={"token": "tok-rate"},
        json={"name": "Caio"},
        headers={"X-Forwarded-For": "203.0.113.7"},
    )

    assert first.status_code == 200
    assert other_ip.status_code == 200
    assert same_ip.status_code == 429
