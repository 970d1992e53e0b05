"""
Reconciliation engine.

Drives the whole order/payment flow:

    create_order(items, shipping)
        1. PricingService resolves lines against the catalog
        2. OrderLedger persists a pending order (lines + total, one write)
        3. issue_payment_request(): gateway issues a request for the total,
           memo "<prefix> order <order_id>", reference attached to the order

    verify_payment(order_id)         (polled by clients and the sweep)
        1. paid/fulfilled order  -> "paid" without asking the gateway
        2. query the request status
        3. TRANSFER_COMPLETED or PAYMENT_RECEIVED -> confirmed
           anything else                          -> "pending"
        4. confirmed: in ONE transaction
               mark_paid()  ->  transitioned?  ->  decrement_for_order()
           so the decrement happens once, and only together with the
           transition that won

Retry semantics:
    The engine never retries the gateway itself. If issuing the request
    fails, the order stays pending with no request and the raised
    GatewayUnavailableError carries the order id; callers retry
    issue_payment_request(order_id), never create_order().

Thread model:
    One instance is shared by all Flask request threads and the sweep
    thread. It keeps no mutable state; no lock is held while calling the
    gateway or the database.
"""

from __future__ import annotations

from typing import Optional, Sequence

from core.exceptions import GatewayUnavailableError, OrderNotPendingError
from core.gateway_client import PaymentGateway
from db.database import Database
from models.order import LineRequest, OrderRecord, OrderStatus, ShippingInfo
from models.settlement import SettlementStatus, VerificationResult
from services.inventory_ledger import InventoryLedger
from services.order_ledger import OrderLedger
from services.pricing_service import PricingService
from logging_config import get_logger, get_order_logger


# Module logger
logger = get_logger(__name__)


class ReconciliationService:
    """
    Creates orders and reconciles their settlement with the payment network.

    Attributes:
        memo_prefix: Text prepended to every payment request memo
    """

    def __init__(
        self,
        database: Database,
        pricing: PricingService,
        orders: OrderLedger,
        inventory: InventoryLedger,
        gateway: PaymentGateway,
        memo_prefix: str = "CryptoStore"
    ):
        """
        Initialize the engine.

        Args:
            database: Shared Database (used for the paid+decrement transaction)
            pricing: Pricing resolver
            orders: Order ledger
            inventory: Inventory ledger
            gateway: Payment gateway capability (shared, read-only)
            memo_prefix: Memo prefix for payment requests
        """
        if gateway is None:
            raise ValueError("gateway is required")

        self._db = database
        self._pricing = pricing
        self._orders = orders
        self._inventory = inventory
        self._gateway = gateway
        self.memo_prefix = memo_prefix

        logger.info("ReconciliationService initialized")

    def memo_for(self, order_id: str) -> str:
        """Memo text for an order's payment request."""
        return f"{self.memo_prefix} order {order_id}".strip()

    # =========================================================================
    # CREATE
    # =========================================================================

    def create_order(self, items: Sequence[LineRequest], shipping: ShippingInfo) -> OrderRecord:
        """
        Price a cart, persist a pending order and issue its payment request.

        Returns:
            The order, with payment request attached

        Raises:
            ValidationError subclasses: Bad cart (nothing is persisted)
            GatewayUnavailableError: Order persisted but no request issued;
                ``error.order_id`` identifies the order to retry
        """
        cart = self._pricing.resolve(items)
        order = self._orders.create_order(cart.lines, shipping, cart.total_sats)
        return self.issue_payment_request(order.id)

    def issue_payment_request(self, order_id: str) -> OrderRecord:
        """
        Issue (or return the already issued) payment request for an order.

        Idempotent: an order that already carries a request is returned
        unchanged without contacting the gateway.

        Raises:
            UnknownOrderError: If no such order exists
            OrderNotPendingError: If the order is not pending
            GatewayUnavailableError: If the gateway call fails
        """
        order_logger = get_order_logger(order_id)
        order = self._orders.get_order(order_id)

        if order.status is not OrderStatus.PENDING:
            raise OrderNotPendingError(order_id, order.status.value)
        if order.has_payment_request:
            order_logger.debug("Payment request already issued, reusing it")
            return order

        try:
            request = self._gateway.create_payment_request(order.total_sats, self.memo_for(order_id))
        except GatewayUnavailableError as e:
            order_logger.warning(f"Payment request issuance failed, order left pending: {e.message}")
            raise e.for_order(order_id)

        return self._orders.attach_payment_request(order_id, request)

    # =========================================================================
    # VERIFY
    # =========================================================================

    def verify_payment(self, order_id: str) -> VerificationResult:
        """
        Reconcile one order with the payment network.

        Safe to call at any cadence, any number of times, from any number of
        threads. A pending answer is normal flow, not an error.

        Returns:
            VerificationResult with status "paid" or "pending"

        Raises:
            UnknownOrderError: If no such order exists
            GatewayUnavailableError: If the status query fails
        """
        order_logger = get_order_logger(order_id)
        order = self._orders.get_order(order_id)

        if order.status.is_settled:
            return VerificationResult(order_id=order_id, status=VerificationResult.PAID)

        if order.status is OrderStatus.CANCELLED:
            order_logger.debug("Verification requested for cancelled order")
            return VerificationResult(order_id=order_id, status=VerificationResult.PENDING)

        if not order.has_payment_request:
            order_logger.debug("No payment request issued yet")
            return VerificationResult(order_id=order_id, status=VerificationResult.PENDING)

        try:
            request_status = self._gateway.get_request_status(order.payment_request_id)
        except GatewayUnavailableError as e:
            raise e.for_order(order_id)

        if request_status.settlement is not SettlementStatus.CONFIRMED:
            order_logger.debug(f"Settlement pending (gateway status {request_status.status.value})")
            return VerificationResult(order_id=order_id, status=VerificationResult.PENDING)

        transitioned = self._commit_payment(order_id, request_status.settlement_ref)
        return VerificationResult(
            order_id=order_id,
            status=VerificationResult.PAID,
            transitioned=transitioned,
        )

    def _commit_payment(self, order_id: str, settlement_ref: Optional[str]) -> bool:
        """
        Mark the order paid and, if this call won, decrement inventory.

        Both happen in one transaction: a failed decrement rolls back the
        status change, and the next verification retries the whole commit.
        """
        with self._db.session() as session:
            result = self._orders.mark_paid(order_id, settlement_ref, session=session)
            if result.transitioned:
                self._inventory.decrement_for_order(order_id, session=session)

        if result.transitioned:
            get_order_logger(order_id).info("Settlement confirmed, order committed as paid")
        else:
            get_order_logger(order_id).debug("Settlement already committed by another verification")
        return result.transitioned
