from app.business.catalog.models import CatalogProduct
from app.business.catalog.repository import CatalogProductRepository

__all__ = [
    "CatalogProduct",
    "CatalogProductRepository",
]
