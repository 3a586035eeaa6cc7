from app.business.sales.models import Sale, SaleItem
from app.business.sales.service import SaleDraft, SalesService, parse_total_cents, sales_service

__all__ = [
    "Sale",
    "SaleItem",
    "SaleDraft",
    "SalesService",
    "parse_total_cents",
    "sales_service",
]
