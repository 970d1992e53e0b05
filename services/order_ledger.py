"""
Order ledger.

Durable record of orders and their lines, and sole owner of the order
state machine:

    pending -> paid -> fulfilled
    pending -> cancelled

Every status change is a single conditional UPDATE
(``... SET status = :target WHERE id = :id AND status = :source``). The
affected row count says whether THIS call performed the transition, so
concurrent callers never need a lock: exactly one of them sees a row
updated, the others see zero and report ``transitioned=False``.

Sessions:
    Every operation takes an optional ``session``. Without one the
    operation runs in its own transaction. The reconciliation engine
    passes its own session so that mark_paid and the inventory decrement
    commit (or roll back) together.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session

from core.exceptions import (
    EmptyOrderError,
    IllegalTransitionError,
    InvalidQuantityError,
    OrderNotPendingError,
    UnknownOrderError,
)
from db.database import Database
from db.schema import Order, OrderItem, utcnow
from models.order import (
    OrderLineRecord,
    OrderRecord,
    OrderStatus,
    PricedLine,
    ShippingInfo,
)
from models.settlement import MarkPaidResult, PaymentRequest
from logging_config import get_logger, get_order_logger


# Module logger
logger = get_logger(__name__)


class OrderLedger:
    """Persists orders and applies race-safe status transitions."""

    def __init__(self, database: Database):
        self._db = database

    @contextmanager
    def _unit_of_work(self, session: Optional[Session]) -> Iterator[Session]:
        if session is not None:
            yield session
        else:
            with self._db.session() as own_session:
                yield own_session

    # =========================================================================
    # CREATION
    # =========================================================================

    def create_order(
        self,
        lines: Sequence[PricedLine],
        shipping: ShippingInfo,
        total_sats: int,
        session: Optional[Session] = None
    ) -> OrderRecord:
        """
        Persist a new pending order and its lines in one transaction.

        Args:
            lines: Priced lines (unit prices already resolved from the catalog)
            shipping: Shipping destination, stored as-is
            total_sats: Order total; must equal the sum of the lines

        Returns:
            The stored order

        Raises:
            EmptyOrderError: If lines is empty (nothing is written)
            InvalidQuantityError: If a line has a non-positive quantity
            ValueError: If total_sats does not match the lines
        """
        if not lines:
            raise EmptyOrderError()

        for line in lines:
            if line.quantity <= 0:
                raise InvalidQuantityError(line.product_id, line.quantity)

        expected_total = sum(line.line_total_sats for line in lines)
        if total_sats != expected_total:
            raise ValueError(
                f"Order total {total_sats} does not match line total {expected_total}"
            )

        with self._unit_of_work(session) as s:
            order = Order(
                status=OrderStatus.PENDING.value,
                total_sats=total_sats,
                shipping_name=shipping.name,
                shipping_address=dict(shipping.address),
                user_email=shipping.email,
                items=[
                    OrderItem(
                        product_id=line.product_id,
                        variant_id=line.variant_id,
                        quantity=line.quantity,
                        price_sats=line.unit_price_sats,
                    )
                    for line in lines
                ],
            )
            s.add(order)
            s.flush()
            record = self._to_record(order)

        get_order_logger(record.id).info(
            f"Order created: {len(record.lines)} lines, total {record.total_sats} sats"
        )
        return record

    # =========================================================================
    # READS
    # =========================================================================

    def get_order(self, order_id: str, session: Optional[Session] = None) -> OrderRecord:
        """
        Load an order with its lines.

        Raises:
            UnknownOrderError: If no such order exists
        """
        with self._unit_of_work(session) as s:
            order = s.get(Order, order_id, populate_existing=True)
            if order is None:
                raise UnknownOrderError(order_id)
            return self._to_record(order)

    def list_pending(
        self,
        limit: int = 100,
        with_request_only: bool = True,
        after: Optional[Tuple[datetime, str]] = None
    ) -> List[OrderRecord]:
        """
        List pending orders, oldest first.

        Args:
            limit: Maximum number of orders to return
            with_request_only: Skip orders that have no payment request yet
            after: Keyset cursor ``(created_at, id)`` of the last order seen;
                only orders strictly after it are returned
        """
        stmt = select(Order).where(Order.status == OrderStatus.PENDING.value)
        if with_request_only:
            stmt = stmt.where(Order.payment_request_id.is_not(None))
        if after is not None:
            created_at, order_id = after
            stmt = stmt.where(or_(
                Order.created_at > created_at,
                and_(Order.created_at == created_at, Order.id > order_id),
            ))
        stmt = stmt.order_by(Order.created_at, Order.id).limit(limit)

        with self._db.session() as s:
            return [self._to_record(order) for order in s.scalars(stmt).all()]

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    def attach_payment_request(
        self,
        order_id: str,
        request: PaymentRequest,
        session: Optional[Session] = None
    ) -> OrderRecord:
        """
        Record the external payment request on a pending order.

        Only the first request sticks: if another caller attached one in the
        meantime, that one is kept and returned so every caller hands the
        payer the same request.

        Raises:
            UnknownOrderError: If no such order exists
            OrderNotPendingError: If the order is no longer pending
        """
        with self._unit_of_work(session) as s:
            result = s.execute(
                update(Order)
                .where(
                    Order.id == order_id,
                    Order.status == OrderStatus.PENDING.value,
                    Order.payment_request_id.is_(None),
                )
                .values(
                    payment_request_id=request.request_ref,
                    payment_request=request.encoded_request,
                )
                .execution_options(synchronize_session=False)
            )

            if result.rowcount != 1:
                current = self._current_status(s, order_id)
                if current is None:
                    raise UnknownOrderError(order_id)
                if current is not OrderStatus.PENDING:
                    raise OrderNotPendingError(order_id, current.value)
                get_order_logger(order_id).warning(
                    f"Payment request {request.request_ref} discarded; "
                    "order already has one attached"
                )
            else:
                get_order_logger(order_id).info(
                    f"Payment request attached: {request.request_ref}"
                )

            order = s.get(Order, order_id, populate_existing=True)
            return self._to_record(order)

    def mark_paid(
        self,
        order_id: str,
        settlement_ref: Optional[str],
        session: Optional[Session] = None
    ) -> MarkPaidResult:
        """
        Move a pending order to paid.

        Safe to call concurrently and repeatedly for the same order. Only
        the call whose conditional update hit the row gets
        ``transitioned=True``; gate one-shot side effects on it.

        Returns:
            MarkPaidResult (``transitioned=False`` if already paid/fulfilled)

        Raises:
            UnknownOrderError: If no such order exists
            IllegalTransitionError: If the order was cancelled
        """
        transitioned = self._transition(
            order_id,
            source=OrderStatus.PENDING,
            target=OrderStatus.PAID,
            values={"payment_tx_id": settlement_ref, "paid_at": utcnow()},
            already_done=(OrderStatus.PAID, OrderStatus.FULFILLED),
            session=session,
        )
        if transitioned:
            get_order_logger(order_id).info(f"Order marked paid (settlement {settlement_ref})")
        return MarkPaidResult(order_id=order_id, transitioned=transitioned)

    def mark_fulfilled(self, order_id: str, session: Optional[Session] = None) -> bool:
        """
        Move a paid order to fulfilled. Idempotent on fulfilled orders.

        Returns:
            True if this call performed the transition

        Raises:
            UnknownOrderError: If no such order exists
            IllegalTransitionError: If the order is pending or cancelled
        """
        transitioned = self._transition(
            order_id,
            source=OrderStatus.PAID,
            target=OrderStatus.FULFILLED,
            values={},
            already_done=(OrderStatus.FULFILLED,),
            session=session,
        )
        if transitioned:
            get_order_logger(order_id).info("Order fulfilled")
        return transitioned

    def cancel_order(self, order_id: str, session: Optional[Session] = None) -> bool:
        """
        Cancel a pending order. Idempotent on cancelled orders.

        Returns:
            True if this call performed the transition

        Raises:
            UnknownOrderError: If no such order exists
            IllegalTransitionError: If the order is paid or fulfilled
        """
        transitioned = self._transition(
            order_id,
            source=OrderStatus.PENDING,
            target=OrderStatus.CANCELLED,
            values={},
            already_done=(OrderStatus.CANCELLED,),
            session=session,
        )
        if transitioned:
            get_order_logger(order_id).info("Order cancelled")
        return transitioned

    def _transition(
        self,
        order_id: str,
        source: OrderStatus,
        target: OrderStatus,
        values: Dict[str, Any],
        already_done: Sequence[OrderStatus],
        session: Optional[Session]
    ) -> bool:
        """Compare-and-set ``source -> target``; True if this call won."""
        with self._unit_of_work(session) as s:
            result = s.execute(
                update(Order)
                .where(Order.id == order_id, Order.status == source.value)
                .values(status=target.value, **values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                return True

            current = self._current_status(s, order_id)
            if current is None:
                raise UnknownOrderError(order_id)
            if current in already_done:
                logger.debug(f"Order {order_id[:8]} already {current.value}, {target.value} is a no-op")
                return False
            raise IllegalTransitionError(order_id, current.value, target.value)

    # =========================================================================
    # HELPERS
    # =========================================================================

    @staticmethod
    def _current_status(session: Session, order_id: str) -> Optional[OrderStatus]:
        raw = session.scalar(select(Order.status).where(Order.id == order_id))
        return OrderStatus(raw) if raw is not None else None

    @staticmethod
    def _to_record(order: Order) -> OrderRecord:
        address = dict(order.shipping_address or {})
        return OrderRecord(
            id=order.id,
            status=OrderStatus(order.status),
            total_sats=order.total_sats,
            shipping=ShippingInfo(
                name=order.shipping_name,
                address=address,
                email=order.user_email,
            ),
            created_at=order.created_at,
            payment_request_id=order.payment_request_id,
            payment_request=order.payment_request,
            payment_tx_id=order.payment_tx_id,
            paid_at=order.paid_at,
            lines=tuple(
                OrderLineRecord(
                    id=item.id,
                    product_id=item.product_id,
                    variant_id=item.variant_id,
                    quantity=item.quantity,
                    unit_price_sats=item.price_sats,
                )
                for item in order.items
            ),
        )
