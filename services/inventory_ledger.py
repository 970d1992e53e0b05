"""
Inventory ledger.

Per-variant stock counts, decremented once per paid order.

Decrement rules:
    - each order line with a variant takes ``quantity`` units
    - stock is clamped at zero; the missing units are recorded as an
      InventoryShortfall (oversold) and logged for fulfillment review
    - the payment is never rolled back because of a shortfall

Race safety:
    Counts are changed only by conditional UPDATEs. Lines are processed in
    variant id order so that concurrent orders touching the same variants
    always lock their rows in the same sequence. The common case is one
    statement (``SET count = count - q WHERE count >= q``). When stock is
    short, the ledger reads the count and compare-and-sets it to the clamped
    value, retrying if another order changed it in between.

Exactly-once is NOT enforced here. The reconciliation engine calls
decrement_for_order() only when OrderLedger.mark_paid() reported that the
current call performed the transition.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from core.exceptions import InventoryContentionError, UnknownOrderError
from db.database import Database
from db.schema import InventoryShortfall, Order, OrderItem, ProductVariant
from models.inventory import DecrementResult, Shortfall
from logging_config import get_logger, get_order_logger


# Module logger
logger = get_logger(__name__)

MAX_CAS_ATTEMPTS = 10


class InventoryLedger:
    """Tracks and decrements per-variant available counts."""

    def __init__(self, database: Database):
        self._db = database

    @contextmanager
    def _unit_of_work(self, session: Optional[Session]) -> Iterator[Session]:
        if session is not None:
            yield session
        else:
            with self._db.session() as own_session:
                yield own_session

    def decrement_for_order(self, order_id: str, session: Optional[Session] = None) -> DecrementResult:
        """
        Take stock for every variant line of an order.

        Args:
            order_id: Order whose lines are decremented
            session: Optional caller transaction (see module docstring)

        Returns:
            DecrementResult with units taken per variant and any shortfalls

        Raises:
            UnknownOrderError: If no such order exists
            InventoryContentionError: If a clamped decrement lost the race
                MAX_CAS_ATTEMPTS times (the caller's transaction rolls back)
        """
        order_logger = get_order_logger(order_id)
        decremented: Dict[str, int] = {}
        shortfalls: List[Shortfall] = []

        with self._unit_of_work(session) as s:
            if s.scalar(select(Order.id).where(Order.id == order_id)) is None:
                raise UnknownOrderError(order_id)

            items = s.execute(
                select(OrderItem.variant_id, OrderItem.quantity)
                .where(OrderItem.order_id == order_id, OrderItem.variant_id.is_not(None))
                .order_by(OrderItem.variant_id, OrderItem.id)
            ).all()

            for variant_id, quantity in items:
                taken = self._take(s, variant_id, quantity)
                decremented[variant_id] = decremented.get(variant_id, 0) + taken

                if taken < quantity:
                    shortfall = Shortfall(variant_id=variant_id, requested=quantity, decremented=taken)
                    shortfalls.append(shortfall)
                    s.add(InventoryShortfall(
                        order_id=order_id,
                        variant_id=variant_id,
                        requested=quantity,
                        decremented=taken,
                        shortfall=shortfall.shortfall,
                    ))
                    order_logger.warning(
                        f"Oversold variant {variant_id}: requested {quantity}, "
                        f"only {taken} in stock - flagged for fulfillment review"
                    )

        order_logger.info(
            f"Inventory decremented for {len(decremented)} variants"
            + (f" ({len(shortfalls)} oversold)" if shortfalls else "")
        )
        return DecrementResult(
            order_id=order_id,
            decremented=decremented,
            shortfalls=tuple(shortfalls),
        )

    def _take(self, session: Session, variant_id: str, quantity: int) -> int:
        """Subtract up to ``quantity`` from a variant, never below zero."""
        result = session.execute(
            update(ProductVariant)
            .where(ProductVariant.id == variant_id, ProductVariant.inventory_count >= quantity)
            .values(inventory_count=ProductVariant.inventory_count - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return quantity

        for _ in range(MAX_CAS_ATTEMPTS):
            available = session.scalar(
                select(ProductVariant.inventory_count).where(ProductVariant.id == variant_id)
            )
            if available is None:
                logger.error(f"Variant {variant_id} no longer exists; nothing decremented")
                return 0

            taken = min(available, quantity)
            result = session.execute(
                update(ProductVariant)
                .where(ProductVariant.id == variant_id, ProductVariant.inventory_count == available)
                .values(inventory_count=available - taken)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                return taken

        raise InventoryContentionError(variant_id, MAX_CAS_ATTEMPTS)

    def available(self, variant_id: str) -> Optional[int]:
        """Current count for a variant, or None if it does not exist."""
        with self._db.session() as s:
            return s.scalar(
                select(ProductVariant.inventory_count).where(ProductVariant.id == variant_id)
            )

    def shortfalls_for_order(self, order_id: str) -> List[Shortfall]:
        """Oversold records for an order."""
        with self._db.session() as s:
            rows = s.scalars(
                select(InventoryShortfall)
                .where(InventoryShortfall.order_id == order_id)
                .order_by(InventoryShortfall.created_at)
            ).all()
            return [
                Shortfall(variant_id=row.variant_id, requested=row.requested,
                          decremented=row.decremented)
                for row in rows
            ]
