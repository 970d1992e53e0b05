"""
Order data models.

These models represent an order as it flows through the store:
cart request -> priced cart -> pending order -> paid -> fulfilled.

Thread Safety:
    - LineRequest / PricedLine / PricedCart are frozen (safe to share)
    - OrderRecord and OrderLineRecord are frozen snapshots read from the
      ledger; mutate orders only through OrderLedger operations
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, List, Optional, Tuple


class OrderStatus(Enum):
    """
    Status of an order.

    Lifecycle:
        PENDING -> PAID -> FULFILLED
        PENDING -> CANCELLED
    """

    PENDING = "pending"
    """Created, awaiting settlement."""

    PAID = "paid"
    """Settlement confirmed and inventory decremented."""

    FULFILLED = "fulfilled"
    """Shipped (recorded only)."""

    CANCELLED = "cancelled"
    """Cancelled before payment."""

    @property
    def is_settled(self) -> bool:
        """True once the payment has been committed."""
        return self in (OrderStatus.PAID, OrderStatus.FULFILLED)

    def can_transition_to(self, target: "OrderStatus") -> bool:
        """Whether ``self -> target`` is an edge of the state machine."""
        return target in _TRANSITIONS[self]


_TRANSITIONS: Dict[OrderStatus, Tuple[OrderStatus, ...]] = {
    OrderStatus.PENDING: (OrderStatus.PAID, OrderStatus.CANCELLED),
    OrderStatus.PAID: (OrderStatus.FULFILLED,),
    OrderStatus.FULFILLED: (),
    OrderStatus.CANCELLED: (),
}


@dataclass(frozen=True)
class LineRequest:
    """
    One requested cart line, as sent by the client.

    Any price the client sends is dropped before this object is built.
    """

    product_ref: str
    """Product id or slug."""

    quantity: Any
    """Requested quantity (validated by the pricing resolver)."""

    variant_id: Optional[str] = None
    """Optional variant id."""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LineRequest":
        """Create from an API payload item (camelCase or snake_case keys)."""
        product_ref = data.get("productId", data.get("product_id", ""))
        variant_id = data.get("variantId", data.get("variant_id"))
        return cls(
            product_ref=str(product_ref) if product_ref is not None else "",
            quantity=data.get("quantity"),
            variant_id=str(variant_id) if variant_id else None,
        )


@dataclass(frozen=True)
class PricedLine:
    """A cart line resolved against the catalog."""

    product_id: str
    variant_id: Optional[str]
    quantity: int
    unit_price_sats: int

    @property
    def line_total_sats(self) -> int:
        return self.unit_price_sats * self.quantity


@dataclass(frozen=True)
class PricedCart:
    """Resolved lines plus the authoritative total."""

    lines: Tuple[PricedLine, ...]
    total_sats: int

    @classmethod
    def from_lines(cls, lines: List[PricedLine]) -> "PricedCart":
        """Build a cart, computing the total from the resolved lines."""
        return cls(
            lines=tuple(lines),
            total_sats=sum(line.line_total_sats for line in lines),
        )


@dataclass(frozen=True)
class ShippingInfo:
    """
    Shipping destination.

    Opaque to the reconciliation core; stored as-is on the order.
    """

    name: str
    """Recipient name."""

    address: Dict[str, Any] = field(default_factory=dict)
    """Structured address (street, city, postal code, country, ...)."""

    email: Optional[str] = None
    """Optional contact email."""

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "address": dict(self.address), "email": self.email}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShippingInfo":
        """Create from an API payload."""
        address = data.get("address") or {}
        if not isinstance(address, dict):
            address = {"line1": str(address)}
        return cls(
            name=str(data.get("name", "")),
            address=dict(address),
            email=data.get("email"),
        )


@dataclass(frozen=True)
class OrderLineRecord:
    """Persisted order line snapshot."""

    id: str
    product_id: str
    variant_id: Optional[str]
    quantity: int
    unit_price_sats: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "productId": self.product_id,
            "variantId": self.variant_id,
            "quantity": self.quantity,
            "unitPriceSats": self.unit_price_sats,
        }


@dataclass(frozen=True)
class OrderRecord:
    """
    Persisted order snapshot.

    Returned by OrderLedger.get_order(). Exposes ``age_seconds`` so a host
    can apply its own abandonment policy; the core never times orders out.
    """

    id: str
    status: OrderStatus
    total_sats: int
    shipping: ShippingInfo
    created_at: datetime
    payment_request_id: Optional[str] = None
    payment_request: Optional[str] = None
    payment_tx_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    lines: Tuple[OrderLineRecord, ...] = ()

    @property
    def age_seconds(self) -> float:
        """Seconds since the order was created."""
        created = self.created_at
        if created.tzinfo is None:
            # SQLite drops tzinfo; timestamps are always written in UTC
            created = created.replace(tzinfo=timezone.utc)
        return (datetime.now(timezone.utc) - created).total_seconds()

    @property
    def has_payment_request(self) -> bool:
        return bool(self.payment_request_id)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON responses."""
        return {
            "orderId": self.id,
            "status": self.status.value,
            "totalSats": self.total_sats,
            "paymentRequestId": self.payment_request_id,
            "encodedPaymentRequest": self.payment_request,
            "settlementRef": self.payment_tx_id,
            "shipping": self.shipping.to_dict(),
            "createdAt": self.created_at.isoformat(),
            "paidAt": self.paid_at.isoformat() if self.paid_at else None,
            "ageSeconds": round(self.age_seconds, 3),
            "lines": [line.to_dict() for line in self.lines],
        }
