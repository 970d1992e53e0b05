"""
Storage layer for CryptoStore.

- schema: SQLAlchemy declarative tables (products, variants, orders, ...)
- database: engine/session facade shared by all services
"""

from .schema import (
    Base,
    Product,
    ProductVariant,
    Order,
    OrderItem,
    InventoryShortfall,
)
from .database import Database

__all__ = [
    "Base",
    "Product",
    "ProductVariant",
    "Order",
    "OrderItem",
    "InventoryShortfall",
    "Database",
]
