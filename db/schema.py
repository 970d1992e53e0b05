"""
SQLAlchemy table definitions for CryptoStore.

Tables:
    products              - catalog (read-only for the core)
    product_variants      - sizes/colors with per-variant inventory counts
    orders                - order ledger, one row per order
    order_items           - order lines with unit price snapshots
    inventory_shortfalls  - oversold audit trail for fulfillment review

Amounts are integer satoshis everywhere, stored as BIGINT. Ids are uuid4
strings so the same schema runs on SQLite (tests, dev) and PostgreSQL (production).
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""

    pass


class Product(Base):
    """Catalog product."""

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    slug: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    price_sats: Mapped[int] = mapped_column(BigInteger, nullable=False)
    price_usd_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    image_url: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    category: Mapped[str] = mapped_column(String(60), nullable=False, default="general")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    variants: Mapped[list[ProductVariant]] = relationship(
        "ProductVariant", back_populates="product", cascade="all, delete-orphan"
    )

    __table_args__ = (
        CheckConstraint("price_sats >= 0", name="non_negative_price"),
        Index("idx_products_slug", "slug"),
    )

    def __repr__(self) -> str:
        return f"<Product(slug={self.slug}, price_sats={self.price_sats})>"


class ProductVariant(Base):
    """Size/color variant of a product, the unit of inventory."""

    __tablename__ = "product_variants"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=False
    )
    size: Mapped[str | None] = mapped_column(String(40), nullable=True)
    color: Mapped[str | None] = mapped_column(String(40), nullable=True)
    sku: Mapped[str] = mapped_column(String(80), nullable=False)
    inventory_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    product: Mapped[Product] = relationship("Product", back_populates="variants")

    __table_args__ = (
        CheckConstraint("inventory_count >= 0", name="non_negative_inventory"),
        Index("idx_product_variants_product_id", "product_id"),
    )

    def __repr__(self) -> str:
        return f"<ProductVariant(sku={self.sku}, inventory={self.inventory_count})>"


class Order(Base):
    """
    Order ledger row.

    Status only ever changes through conditional UPDATE statements issued
    by services.order_ledger; never assign ``status`` on a loaded instance.
    """

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    user_email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    total_sats: Mapped[int] = mapped_column(BigInteger, nullable=False)
    payment_request_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_request: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_tx_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    shipping_name: Mapped[str] = mapped_column(String(200), nullable=False)
    shipping_address: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    items: Mapped[list[OrderItem]] = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.created_at",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'paid', 'fulfilled', 'cancelled')",
            name="valid_order_status",
        ),
        CheckConstraint("total_sats >= 0", name="non_negative_total"),
        Index("idx_orders_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, status={self.status}, total_sats={self.total_sats})>"


class OrderItem(Base):
    """Order line. ``price_sats`` is the unit price captured at creation."""

    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("products.id"), nullable=False
    )
    variant_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("product_variants.id"), nullable=True
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price_sats: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    order: Mapped[Order] = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="positive_quantity"),
        Index("idx_order_items_order_id", "order_id"),
    )


class InventoryShortfall(Base):
    """Oversold record: a paid order line that stock could not fully cover."""

    __tablename__ = "inventory_shortfalls"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    order_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("orders.id"), nullable=False
    )
    variant_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("product_variants.id"), nullable=False
    )
    requested: Mapped[int] = mapped_column(Integer, nullable=False)
    decremented: Mapped[int] = mapped_column(Integer, nullable=False)
    shortfall: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (Index("idx_inventory_shortfalls_order_id", "order_id"),)
