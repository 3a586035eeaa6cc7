from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Integration(Base):
    __tablename__ = "integrations_integration"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="active", server_default="active")
    auth_token: Mapped[str] = mapped_column(String(128), nullable=False)
    default_stage: Mapped[str | None] = mapped_column(String(64), nullable=True)
    default_responsible_user_ids: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    default_product_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    auto_followup_days: Mapped[int | None] = mapped_column(Integer, nullable=True)
    non_purchase_reason_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    event_mode: Mapped[str] = mapped_column(String(16), nullable=False, default="lead", server_default="lead")
    sale_status_on_create: Mapped[str | None] = mapped_column(String(32), nullable=True)
    sale_tag: Mapped[str | None] = mapped_column(String(64), nullable=True)
    settings: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    field_mappings: Mapped[list[IntegrationFieldMapping]] = relationship(
        "IntegrationFieldMapping",
        back_populates="integration",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="IntegrationFieldMapping.created_at",
    )

    __table_args__ = (
        UniqueConstraint("auth_token", name="uq_integrations_integration_auth_token"),
        Index("ix_integrations_integration_tenant", "tenant_id", "status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"


class IntegrationFieldMapping(Base):
    __tablename__ = "integrations_field_mapping"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    integration_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("integrations_integration.id", ondelete="CASCADE"),
        nullable=False,
    )
    tenant_id: Mapped[str] = mapped_column(String(128), nullable=False)
    source_field: Mapped[str] = mapped_column(String(255), nullable=False)
    target_field: Mapped[str] = mapped_column(String(64), nullable=False)
    transform_type: Mapped[str] = mapped_column(String(32), nullable=False, default="trim", server_default="trim")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    integration: Mapped[Integration] = relationship("Integration", back_populates="field_mappings")

    __table_args__ = (Index("ix_integrations_field_mapping_integration", "integration_id"),)


class IntegrationLog(Base):
    """One row per inbound webhook call. Rows are written once and never updated."""

    __tablename__ = "integrations_log"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    integration_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    tenant_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    direction: Mapped[str] = mapped_column(String(16), nullable=False, default="inbound")
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    event_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    request_payload: Mapped[Any] = mapped_column(JSON, nullable=True)
    response_payload: Mapped[Any] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    lead_id: Mapped[uuid.UUID | None] = mapped_column(Uuid(as_uuid=True), nullable=True)
    processing_time_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    correlation_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_integrations_log_integration_created", "integration_id", "created_at"),
        Index("ix_integrations_log_tenant_status", "tenant_id", "status"),
    )
