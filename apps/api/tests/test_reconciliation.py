from __future__ import annotations

import logging
import uuid
from collections.abc import Generator
from datetime import datetime, timezone

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base
from app.crm.models import (
    CRMLead,
    CRMLeadAddress,
    CRMLeadFollowUp,
    CRMLeadNonPurchase,
    CRMLeadProductInterest,
    CRMLeadResponsible,
)
from app.integrations.errors import IdentityMissingError
from app.integrations.mapping import DraftRecord
from app.integrations.models import Integration
from app.integrations.reconciliation import DEFAULT_CASCADE, CascadeContext, ReconciliationEngine, ensure_identity

FIXED_NOW = datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc)


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


@pytest.fixture()
def integration(db_session: Session) -> Integration:
    row = Integration(
        tenant_id="tenant-1",
        name="Landing Page",
        auth_token="tok-recon",
        default_responsible_user_ids=["user-a", "user-b"],
    )
    db_session.add(row)
    db_session.commit()
    return row


def _engine() -> ReconciliationEngine:
    return ReconciliationEngine(clock=lambda: FIXED_NOW)


def _count(session: Session, model: type) -> int:
    return session.scalar(select(func.count()).select_from(model)) or 0


def test_existing_phone_appends_one_observation_block(db_session: Session, integration: Integration) -> None:
    lead = CRMLead(
        tenant_id="tenant-1",
        name="Existing",
        phone="5511999998888",
        email="old@example.com",
        observations="first contact",
        custom_fields={},
    )
    db_session.add(lead)
    db_session.commit()
    before = lead.observations

    payload = {"name": "Other Name", "phone": "11999998888"}
    draft = DraftRecord(fields={"name": "Other Name", "phone": "5511999998888"})
    result = _engine().reconcile(db_session, integration, draft, payload)

    assert result.action == "updated"
    assert result.lead.id == lead.id
    assert result.cascade == []
    refreshed = db_session.get(CRMLead, lead.id)
    assert refreshed is not None
    assert refreshed.name == "Existing"
    assert refreshed.email == "old@example.com"
    assert refreshed.observations.startswith(before)
    appended = refreshed.observations[len(before):]
    assert appended.count("[Integration Landing Page - ") == 1
    assert appended.startswith("\n\n[Integration Landing Page - 2026-03-01T12:30:00+00:00]\n")
    assert '"name": "Other Name"' in appended
    assert _count(db_session, CRMLead) == 1


def test_update_is_scoped_to_tenant(db_session: Session, integration: Integration) -> None:
    db_session.add(CRMLead(tenant_id="tenant-2", name="Elsewhere", phone="5511999998888", custom_fields={}))
    db_session.commit()

    draft = DraftRecord(fields={"phone": "5511999998888"})
    result = _engine().reconcile(db_session, integration, draft, {"phone": "5511999998888"})

    assert result.action == "created"
    assert _count(db_session, CRMLead) == 2


def test_create_links_exactly_one_address(db_session: Session, integration: Integration) -> None:
    payload = {"nome": "Ana", "whatsapp": "11999998888", "cidade": "Campinas"}
    draft = DraftRecord(
        fields={"name": "Ana", "phone": "5511999998888", "notes": "prefers mornings"},
        address={"city": "Campinas", "cep": "13000-000"},
    )

    result = _engine().reconcile(db_session, integration, draft, payload)

    assert result.action == "created"
    addresses = db_session.scalars(select(CRMLeadAddress).where(CRMLeadAddress.lead_id == result.lead.id)).all()
    assert len(addresses) == 1
    assert addresses[0].is_primary is True
    assert addresses[0].label == "Main"
    assert addresses[0].city == "Campinas"
    assert addresses[0].postal_code == "13000-000"

    lead = db_session.get(CRMLead, result.lead.id)
    assert lead is not None
    assert lead.stage == "cloud"
    assert lead.source == "integration"
    assert lead.source_integration_id == integration.id
    assert lead.owner_user_id == "user-a"
    assert lead.observations.startswith("[Source: integration Landing Page]\nprefers mornings\n{")
    assert _count(db_session, CRMLeadResponsible) == 2


def test_create_name_falls_back_to_phone_then_email_then_placeholder(
    db_session: Session,
    integration: Integration,
) -> None:
    engine = _engine()

    by_phone = engine.reconcile(db_session, integration, DraftRecord(fields={"phone": "5511911112222"}), {})
    by_email = engine.reconcile(db_session, integration, DraftRecord(fields={"email": "x@example.com"}), {})
    nothing = engine.reconcile(db_session, integration, DraftRecord(fields={"document": "1"}), {})

    assert by_phone.lead.name == "5511911112222"
    assert by_email.lead.name == "x@example.com"
    assert nothing.lead.name == "Unnamed lead"


def test_unknown_targets_are_kept_as_custom_fields(db_session: Session, integration: Integration) -> None:
    draft = DraftRecord(fields={"name": "Ana", "utm_source": "ads", "document": "123"})

    result = _engine().reconcile(db_session, integration, draft, {"name": "Ana"})

    lead = db_session.get(CRMLead, result.lead.id)
    assert lead is not None
    assert lead.custom_fields == {"utm_source": "ads"}
    assert lead.document == "123"


def test_cascade_skips_steps_without_configuration(db_session: Session, integration: Integration) -> None:
    integration.default_responsible_user_ids = []
    db_session.commit()

    result = _engine().reconcile(db_session, integration, DraftRecord(fields={"name": "Ana"}), {"name": "Ana"})

    assert {item.step: item.status for item in result.cascade} == {
        "address": "skipped",
        "responsibles": "skipped",
        "product_interest": "skipped",
        "followup": "skipped",
        "non_purchase_reason": "skipped",
    }


def test_full_cascade_writes_every_configured_entity(db_session: Session, integration: Integration) -> None:
    integration.default_product_id = uuid.uuid4()
    integration.auto_followup_days = 3
    integration.non_purchase_reason_id = uuid.uuid4()
    db_session.commit()

    result = _engine().reconcile(
        db_session,
        integration,
        DraftRecord(fields={"name": "Ana"}, address={"street": "Rua A"}),
        {"name": "Ana"},
    )

    assert result.failed_steps == []
    assert _count(db_session, CRMLeadProductInterest) == 1
    assert _count(db_session, CRMLeadNonPurchase) == 1
    followup = db_session.scalar(select(CRMLeadFollowUp))
    assert followup is not None
    assert followup.user_id == "user-a"
    assert followup.scheduled_at.day == 4


def test_failing_cascade_step_does_not_fail_create(
    db_session: Session,
    integration: Integration,
    caplog: pytest.LogCaptureFixture,
) -> None:
    def broken_step(session: Session, ctx) -> bool:  # type: ignore[no-untyped-def]
        raise RuntimeError("followup store unavailable")

    cascade = [
        (name, broken_step if name == "followup" else hook)
        for name, hook in DEFAULT_CASCADE
    ]
    engine = ReconciliationEngine(cascade=cascade, clock=lambda: FIXED_NOW)
    caplog.set_level(logging.ERROR)

    result = engine.reconcile(
        db_session,
        integration,
        DraftRecord(fields={"name": "Ana"}, address={"city": "Campinas"}),
        {"name": "Ana"},
    )

    assert result.action == "created"
    assert result.failed_steps == ["followup"]
    assert _count(db_session, CRMLead) == 1
    assert _count(db_session, CRMLeadAddress) == 1
    assert _count(db_session, CRMLeadResponsible) == 2
    records = [record for record in caplog.records if record.getMessage() == "webhook.cascade_step_failed"]
    assert records
    assert getattr(records[0], "step", None) == "followup"


def test_cascade_step_with_rejected_insert_is_rolled_back_alone(db_session: Session, integration: Integration) -> None:
    integration.default_product_id = uuid.uuid4()
    integration.non_purchase_reason_id = uuid.uuid4()
    db_session.commit()

    def incomplete_followup(session: Session, ctx: CascadeContext) -> bool:
        session.add(CRMLeadFollowUp(lead_id=ctx.lead.id, tenant_id=ctx.lead.tenant_id, user_id="user-a"))
        return True

    cascade = [
        (name, incomplete_followup if name == "followup" else hook)
        for name, hook in DEFAULT_CASCADE
    ]
    engine = ReconciliationEngine(cascade=cascade, clock=lambda: FIXED_NOW)

    result = engine.reconcile(
        db_session,
        integration,
        DraftRecord(fields={"name": "Ana", "phone": "5511999998888"}),
        {"name": "Ana", "phone": "5511999998888"},
    )

    statuses = {item.step: item.status for item in result.cascade}
    assert statuses["followup"] == "failed"
    assert statuses["product_interest"] == "created"
    assert statuses["non_purchase_reason"] == "created"
    failed = next(item for item in result.cascade if item.step == "followup")
    assert failed.error is not None
    assert failed.error.startswith("IntegrityError: NOT NULL constraint failed")
    assert "5511999998888" not in failed.error
    assert "INSERT" not in failed.error
    assert _count(db_session, CRMLead) == 1
    assert _count(db_session, CRMLeadFollowUp) == 0
    assert _count(db_session, CRMLeadProductInterest) == 1
    assert _count(db_session, CRMLeadNonPurchase) == 1


def test_ensure_identity_reports_received_fields() -> None:
    with pytest.raises(IdentityMissingError) as exc_info:
        ensure_identity(DraftRecord(), {"foo": "bar", "baz": 1}, limit=1)

    body = exc_info.value.to_response()
    assert body["success"] is False
    assert body["received_fields"] == ["foo"]
    assert body["hint"]
