from __future__ import annotations

import uuid

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from app.crm.models import CRMLead
from app.integrations.models import Integration, IntegrationFieldMapping, IntegrationLog


class IntegrationRepository:
    resource = "integrations.integration"

    def get_by_token(self, session: Session, token: str) -> Integration | None:
        return session.scalar(select(Integration).where(Integration.auth_token == token))

    def get(self, session: Session, integration_id: uuid.UUID) -> Integration | None:
        return session.scalar(select(Integration).where(Integration.id == integration_id))

    def list_mappings(self, session: Session, integration_id: uuid.UUID) -> list[IntegrationFieldMapping]:
        stmt = (
            select(IntegrationFieldMapping)
            .where(IntegrationFieldMapping.integration_id == integration_id)
            .order_by(IntegrationFieldMapping.created_at, IntegrationFieldMapping.id)
        )
        return list(session.scalars(stmt).all())


class LeadRepository:
    resource = "crm.lead"

    def find_by_phone(self, session: Session, tenant_id: str, phone: str) -> CRMLead | None:
        # Oldest lead wins when hand-made duplicates share the number.
        stmt = (
            select(CRMLead)
            .where(CRMLead.tenant_id == tenant_id, CRMLead.phone == phone)
            .order_by(CRMLead.created_at, CRMLead.id)
            .limit(1)
        )
        return session.scalar(stmt)


class IntegrationLogRepository:
    resource = "integrations.log"

    def add(self, session: Session, entry: IntegrationLog) -> IntegrationLog:
        session.add(entry)
        session.commit()
        session.refresh(entry)
        return entry

    def list_for_integration(
        self,
        session: Session,
        integration_id: uuid.UUID,
        *,
        status: str | None = None,
        limit: int = 50,
    ) -> list[IntegrationLog]:
        stmt: Select[tuple[IntegrationLog]] = select(IntegrationLog).where(IntegrationLog.integration_id == integration_id)
        if status:
            stmt = stmt.where(IntegrationLog.status == status)
        stmt = stmt.order_by(IntegrationLog.created_at.desc()).limit(limit)
        return list(session.scalars(stmt).all())
