"""Create-or-update decision for inbound leads and the post-create cascade.

Dedup is a read followed by a separate write, so two first-time deliveries of
the same new phone number that race each other can both create a lead. Callers
deliver at least once; duplicates from that window are accepted.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Literal

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.crm.models import (
    CRMLead,
    CRMLeadAddress,
    CRMLeadFollowUp,
    CRMLeadNonPurchase,
    CRMLeadProductInterest,
    CRMLeadResponsible,
)
from app.integrations.errors import DownstreamWriteError, IdentityMissingError, describe_error
from app.integrations.mapping import DraftRecord
from app.integrations.models import Integration
from app.integrations.repository import LeadRepository
from app.integrations.resolver import PayloadValue
from app.metrics import observe_cascade_step_failure

logger = logging.getLogger("app.integrations.webhook")
tracer = trace.get_tracer("app.integrations.webhook")

DEFAULT_STAGE = "cloud"
UNNAMED_LEAD = "Unnamed lead"
IDENTITY_HINT = "Configure field mappings or send standard fields (name, phone/whatsapp, email)."
LEAD_COLUMNS = frozenset({"name", "phone", "email", "document", "notes"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def received_fields(payload: PayloadValue, limit: int) -> list[str]:
    if isinstance(payload, dict):
        return [str(key) for key in list(payload.keys())[:limit]]
    if isinstance(payload, list):
        return [str(index) for index in range(min(len(payload), limit))]
    return []


def ensure_identity(draft: DraftRecord, payload: PayloadValue, limit: int = 20) -> None:
    if not draft.has_identity():
        raise IdentityMissingError(
            "no identifying data found (name, phone or email)",
            received_fields(payload, limit),
            hint=IDENTITY_HINT,
        )


def dump_payload(payload: PayloadValue) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


@dataclass
class CascadeContext:
    integration: Integration
    lead: CRMLead
    draft: DraftRecord
    now: datetime


CascadeHook = Callable[[Session, CascadeContext], bool]


@dataclass
class CascadeStepResult:
    step: str
    status: Literal["created", "skipped", "failed"]
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"step": self.step, "status": self.status}
        if self.error:
            data["error"] = self.error
        return data


@dataclass
class ReconciliationResult:
    action: Literal["created", "updated"]
    lead: CRMLead
    cascade: list[CascadeStepResult] = field(default_factory=list)

    @property
    def failed_steps(self) -> list[str]:
        return [item.step for item in self.cascade if item.status == "failed"]


def create_address(session: Session, ctx: CascadeContext) -> bool:
    address = ctx.draft.address
    if not address:
        return False
    session.add(
        CRMLeadAddress(
            lead_id=ctx.lead.id,
            tenant_id=ctx.lead.tenant_id,
            label="Main",
            is_primary=True,
            street=address.get("street"),
            street_number=address.get("number"),
            complement=address.get("complement"),
            neighborhood=address.get("neighborhood"),
            city=address.get("city"),
            state=address.get("state"),
            postal_code=address.get("cep"),
        )
    )
    return True


def assign_responsibles(session: Session, ctx: CascadeContext) -> bool:
    user_ids = list(ctx.integration.default_responsible_user_ids or [])
    if not user_ids:
        return False
    session.add_all(
        CRMLeadResponsible(lead_id=ctx.lead.id, tenant_id=ctx.lead.tenant_id, user_id=str(user_id))
        for user_id in user_ids
    )
    return True


def link_product_interest(session: Session, ctx: CascadeContext) -> bool:
    if ctx.integration.default_product_id is None:
        return False
    session.add(
        CRMLeadProductInterest(
            lead_id=ctx.lead.id,
            tenant_id=ctx.lead.tenant_id,
            product_id=ctx.integration.default_product_id,
        )
    )
    return True


def schedule_followup(session: Session, ctx: CascadeContext) -> bool:
    days = ctx.integration.auto_followup_days
    user_ids = ctx.integration.default_responsible_user_ids or []
    if not days or not user_ids:
        return False
    session.add(
        CRMLeadFollowUp(
            lead_id=ctx.lead.id,
            tenant_id=ctx.lead.tenant_id,
            user_id=str(user_ids[0]),
            scheduled_at=ctx.now + timedelta(days=days),
            source_type="integration",
            notes=f"Automatic follow-up from integration: {ctx.integration.name}",
        )
    )
    return True


def tag_non_purchase_reason(session: Session, ctx: CascadeContext) -> bool:
    if ctx.integration.non_purchase_reason_id is None:
        return False
    session.add(
        CRMLeadNonPurchase(
            lead_id=ctx.lead.id,
            tenant_id=ctx.lead.tenant_id,
            reason_id=ctx.integration.non_purchase_reason_id,
            notes=f"Via integration: {ctx.integration.name}",
        )
    )
    return True


DEFAULT_CASCADE: tuple[tuple[str, CascadeHook], ...] = (
    ("address", create_address),
    ("responsibles", assign_responsibles),
    ("product_interest", link_product_interest),
    ("followup", schedule_followup),
    ("non_purchase_reason", tag_non_purchase_reason),
)


class ReconciliationEngine:
    def __init__(
        self,
        lead_repository: LeadRepository | None = None,
        cascade: Sequence[tuple[str, CascadeHook]] = DEFAULT_CASCADE,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.lead_repository = lead_repository or LeadRepository()
        self.cascade = tuple(cascade)
        self.clock = clock

    def reconcile(
        self,
        session: Session,
        integration: Integration,
        draft: DraftRecord,
        payload: PayloadValue,
    ) -> ReconciliationResult:
        with tracer.start_as_current_span("integration.reconcile") as span:
            span.set_attribute("integration_id", str(integration.id))
            span.set_attribute("tenant_id", integration.tenant_id)

            existing = None
            if draft.phone:
                existing = self.lead_repository.find_by_phone(session, integration.tenant_id, draft.phone)

            if existing is not None:
                result = self._update(session, integration, existing, payload)
            else:
                result = self._create(session, integration, draft, payload)

            span.set_attribute("action", result.action)
            span.set_attribute("lead_id", str(result.lead.id))
            return result

    def _update(
        self,
        session: Session,
        integration: Integration,
        lead: CRMLead,
        payload: PayloadValue,
    ) -> ReconciliationResult:
        now = self.clock()
        block = f"[Integration {integration.name} - {now.isoformat(timespec='seconds')}]\n{dump_payload(payload)}"
        lead.observations = f"{lead.observations}\n\n{block}" if lead.observations else block
        lead.updated_at = now
        lead.row_version = lead.row_version + 1
        session.add(lead)
        try:
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise DownstreamWriteError("failed to update lead", extra={"details": type(exc).__name__}) from exc
        return ReconciliationResult(action="updated", lead=lead)

    def _create(
        self,
        session: Session,
        integration: Integration,
        draft: DraftRecord,
        payload: PayloadValue,
    ) -> ReconciliationResult:
        now = self.clock()
        fields = draft.fields
        responsibles = integration.default_responsible_user_ids or []

        seeded = [f"[Source: integration {integration.name}]"]
        if fields.get("notes"):
            seeded.append(fields["notes"])
        seeded.append(dump_payload(payload))

        lead = CRMLead(
            tenant_id=integration.tenant_id,
            name=fields.get("name") or fields.get("phone") or fields.get("email") or UNNAMED_LEAD,
            phone=fields.get("phone"),
            email=fields.get("email"),
            document=fields.get("document"),
            stage=integration.default_stage or DEFAULT_STAGE,
            source="integration",
            source_integration_id=integration.id,
            owner_user_id=str(responsibles[0]) if responsibles else None,
            observations="\n".join(seeded),
            custom_fields={key: value for key, value in fields.items() if key not in LEAD_COLUMNS},
            created_at=now,
            updated_at=now,
        )
        session.add(lead)
        try:
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            raise DownstreamWriteError("failed to create lead", extra={"details": type(exc).__name__}) from exc

        ctx = CascadeContext(integration=integration, lead=lead, draft=draft, now=now)
        cascade = [self._run_step(session, name, hook, ctx) for name, hook in self.cascade]
        return ReconciliationResult(action="created", lead=lead, cascade=cascade)

    def _run_step(self, session: Session, name: str, hook: CascadeHook, ctx: CascadeContext) -> CascadeStepResult:
        lead_id = str(ctx.lead.id)
        with tracer.start_as_current_span(f"integration.cascade.{name}") as span:
            span.set_attribute("lead_id", lead_id)
            try:
                wrote = hook(session, ctx)
                if not wrote:
                    return CascadeStepResult(step=name, status="skipped")
                session.commit()
            except Exception as exc:
                session.rollback()
                error = describe_error(exc)
                span.record_exception(exc)
                span.set_status(Status(StatusCode.ERROR, error))
                observe_cascade_step_failure(name)
                logger.exception(
                    "webhook.cascade_step_failed",
                    extra={"step": name, "lead_id": lead_id, "error": error},
                )
                return CascadeStepResult(step=name, status="failed", error=error)
            return CascadeStepResult(step=name, status="created")
