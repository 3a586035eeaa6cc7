from __future__ import annotations

import re
import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.business.catalog.repository import CatalogProductRepository
from app.business.sales.models import Sale, SaleItem
from app.crm.models import CRMLead, CRMLeadAddress

SALE_EVENT_MODES = frozenset({"sale", "both"})
DEFAULT_PRODUCT_NAME = "Product via integration"

_MONEY_CHARS = re.compile(r"[^\d,.]")


def parse_total_cents(raw: str | None) -> int:
    """Read a money amount sent as text.

    A decimal comma is accepted, with dots then read as thousands separators.
    Amounts with a fractional part are currency units. Whole numbers of 100 or
    more are taken to be cents already; smaller ones are currency units.
    """
    if not raw:
        return 0
    cleaned = _MONEY_CHARS.sub("", raw)
    if "," in cleaned:
        cleaned = cleaned.replace(".", "").replace(",", ".")
    try:
        amount = float(cleaned)
    except ValueError:
        return 0
    if "." in cleaned or amount < 100:
        return round(amount * 100)
    return round(amount)


def parse_quantity(raw: str | None) -> int:
    if not raw:
        return 1
    match = re.match(r"\s*(\d+)", raw)
    quantity = int(match.group(1)) if match else 0
    return quantity or 1


@dataclass(slots=True)
class SaleDraft:
    product_name: str | None = None
    product_sku: str | None = None
    quantity: str | None = None
    total_cents: str | None = None
    external_id: str | None = None
    external_url: str | None = None
    observation_1: str | None = None
    observation_2: str | None = None

    @classmethod
    def from_fields(cls, fields: dict[str, str]) -> SaleDraft:
        return cls(**{key: value for key, value in fields.items() if key in cls.__slots__})


@dataclass(slots=True)
class SalesService:
    product_repository: CatalogProductRepository = CatalogProductRepository()

    def create_from_integration(
        self,
        session: Session,
        *,
        tenant_id: str,
        lead: CRMLead,
        draft: SaleDraft,
        source_name: str,
        default_product_id: uuid.UUID | None,
        seller_user_id: str | None,
        status: str | None,
        tag: str | None,
    ) -> Sale:
        product_id = default_product_id
        product_name = draft.product_name or DEFAULT_PRODUCT_NAME
        if draft.product_sku:
            product = self.product_repository.find_by_sku(session, tenant_id, draft.product_sku)
            if product is not None:
                product_id = product.id
                product_name = product.name

        total_cents = parse_total_cents(draft.total_cents)
        quantity = parse_quantity(draft.quantity)
        shipping_address_id = session.scalar(
            select(CRMLeadAddress.id).where(CRMLeadAddress.lead_id == lead.id, CRMLeadAddress.is_primary.is_(True))
        )

        sale = Sale(
            tenant_id=tenant_id,
            lead_id=lead.id,
            seller_user_id=seller_user_id or lead.owner_user_id,
            status=status or "draft",
            subtotal_cents=total_cents,
            discount_cents=0,
            total_cents=total_cents,
            delivery_type="carrier",
            shipping_address_id=shipping_address_id,
            external_order_id=draft.external_id,
            external_order_url=draft.external_url,
            external_source=source_name,
            observation_1=draft.observation_1 or product_name,
            observation_2=draft.observation_2,
            payment_notes=f"[{tag}]" if tag else None,
        )
        session.add(sale)
        session.flush()

        if product_id is not None:
            session.add(
                SaleItem(
                    sale_id=sale.id,
                    product_id=product_id,
                    product_name=product_name,
                    quantity=quantity,
                    unit_price_cents=round(total_cents / quantity),
                    discount_cents=0,
                    total_cents=total_cents,
                    notes=f"SKU: {draft.product_sku}" if draft.product_sku else None,
                )
            )
        session.commit()
        session.refresh(sale)
        return sale


sales_service = SalesService()
