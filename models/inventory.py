"""
Inventory data models.

Results of decrementing variant stock for a paid order. An oversold
variant is clamped to zero and reported as a Shortfall; the payment is
never rolled back for it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Any, Tuple


@dataclass(frozen=True)
class Shortfall:
    """
    An oversold condition for one variant of one order.

    Flagged for manual fulfillment review.
    """

    variant_id: str
    """Variant that ran out."""

    requested: int
    """Quantity the order line asked for."""

    decremented: int
    """Quantity actually taken from stock."""

    @property
    def shortfall(self) -> int:
        return self.requested - self.decremented

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variantId": self.variant_id,
            "requested": self.requested,
            "decremented": self.decremented,
            "shortfall": self.shortfall,
        }


@dataclass(frozen=True)
class DecrementResult:
    """Outcome of InventoryLedger.decrement_for_order()."""

    order_id: str
    decremented: Dict[str, int]
    """Units taken per variant id."""

    shortfalls: Tuple[Shortfall, ...] = ()

    @property
    def is_oversold(self) -> bool:
        return bool(self.shortfalls)
