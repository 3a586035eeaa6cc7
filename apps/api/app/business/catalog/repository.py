from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.business.catalog.models import CatalogProduct


class CatalogProductRepository:
    resource = "catalog.product"

    def find_by_sku(self, session: Session, tenant_id: str, sku: str) -> CatalogProduct | None:
        return session.scalar(
            select(CatalogProduct).where(CatalogProduct.tenant_id == tenant_id, CatalogProduct.sku == sku)
        )
