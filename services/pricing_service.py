"""
Pricing resolver.

Turns a client cart into priced lines using catalog prices only. Whatever
price the client may have put in its payload never reaches this module:
LineRequest has no price field.

Validation order per line:
    1. quantity is an integer in 1..max     -> InvalidQuantityError
    2. product exists (by id or slug)      -> UnknownProductError
    3. product is active                   -> InactiveProductError
    4. variant exists on this product      -> UnknownVariantError
    5. variant is active                   -> InactiveProductError

Pure read: no rows are written and no locks are taken.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from core.exceptions import (
    EmptyOrderError,
    InactiveProductError,
    InvalidQuantityError,
    UnknownProductError,
    UnknownVariantError,
)
from db.database import Database
from db.schema import Product, ProductVariant
from models.order import LineRequest, PricedCart, PricedLine
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)


DEFAULT_MAX_LINE_QUANTITY = 10_000


def _is_valid_quantity(value, maximum: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value <= maximum


class PricingService:
    """Resolves authoritative prices and availability from the catalog."""

    def __init__(self, database: Database, max_line_quantity: int = DEFAULT_MAX_LINE_QUANTITY):
        """
        Args:
            database: Shared Database
            max_line_quantity: Largest quantity accepted on a single line
        """
        if max_line_quantity <= 0:
            raise ValueError("max_line_quantity must be positive")
        self._db = database
        self.max_line_quantity = max_line_quantity

    def resolve(self, items: Iterable[LineRequest]) -> PricedCart:
        """
        Price a cart.

        Args:
            items: Requested lines (product ref, optional variant, quantity)

        Returns:
            PricedCart with unit prices from the catalog and the summed total

        Raises:
            EmptyOrderError: If items is empty
            InvalidQuantityError, UnknownProductError, InactiveProductError,
            UnknownVariantError: On the first invalid line
        """
        requests = list(items)
        if not requests:
            raise EmptyOrderError()

        for request in requests:
            if not _is_valid_quantity(request.quantity, self.max_line_quantity):
                raise InvalidQuantityError(request.product_ref, request.quantity)

        with self._db.session() as session:
            products = self._load_products(session, {r.product_ref for r in requests})
            lines: List[PricedLine] = []

            for request in requests:
                product = products.get(request.product_ref)
                if product is None:
                    raise UnknownProductError(request.product_ref)
                if not product.is_active:
                    raise InactiveProductError(request.product_ref)

                variant_id = None
                if request.variant_id:
                    variant = self._find_variant(product, request.variant_id)
                    if variant is None:
                        raise UnknownVariantError(request.product_ref, request.variant_id)
                    if not variant.is_active:
                        raise InactiveProductError(request.product_ref, variant.id)
                    variant_id = variant.id

                lines.append(PricedLine(
                    product_id=product.id,
                    variant_id=variant_id,
                    quantity=request.quantity,
                    unit_price_sats=product.price_sats,
                ))

        cart = PricedCart.from_lines(lines)
        logger.debug(f"Resolved {len(cart.lines)} lines, total {cart.total_sats} sats")
        return cart

    @staticmethod
    def _load_products(session: Session, refs: set) -> Dict[str, Product]:
        """Fetch products matching any ref by id or slug, keyed by both."""
        rows = session.scalars(
            select(Product).where(or_(Product.id.in_(refs), Product.slug.in_(refs)))
        ).all()
        by_ref: Dict[str, Product] = {}
        for product in rows:
            by_ref[product.id] = product
            by_ref[product.slug] = product
        return by_ref

    @staticmethod
    def _find_variant(product: Product, variant_id: str) -> Optional[ProductVariant]:
        for variant in product.variants:
            if variant.id == variant_id:
                return variant
        return None
