"""
Data models for CryptoStore.

This module contains immutable dataclasses for:
- Order: order status machine, cart lines, persisted order snapshots
- Settlement: gateway statuses, payment requests, verification results
- Inventory: decrement results and oversold shortfalls

All snapshots are frozen so they can be handed between request threads
and the settlement sweep thread without copying.
"""

from .order import (
    OrderStatus,
    LineRequest,
    PricedLine,
    PricedCart,
    ShippingInfo,
    OrderLineRecord,
    OrderRecord,
)
from .settlement import (
    GatewayStatus,
    SettlementStatus,
    PaymentRequest,
    RequestStatus,
    MarkPaidResult,
    VerificationResult,
)
from .inventory import Shortfall, DecrementResult

__all__ = [
    # Order models
    "OrderStatus",
    "LineRequest",
    "PricedLine",
    "PricedCart",
    "ShippingInfo",
    "OrderLineRecord",
    "OrderRecord",
    # Settlement models
    "GatewayStatus",
    "SettlementStatus",
    "PaymentRequest",
    "RequestStatus",
    "MarkPaidResult",
    "VerificationResult",
    # Inventory models
    "Shortfall",
    "DecrementResult",
]
