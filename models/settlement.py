"""
Payment and settlement data models.

These models describe what the payment network tells us and what the
reconciliation engine tells its callers.

Status mapping:
    Gateway reports            Internal settlement
    -------------------------  -------------------
    TRANSFER_COMPLETED    ->   CONFIRMED
    PAYMENT_RECEIVED      ->   CONFIRMED
    anything else         ->   PENDING   (incl. FAILED, EXPIRED, UNKNOWN)
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Any, Optional


class GatewayStatus(Enum):
    """Raw status of a payment request as reported by the payment network."""

    PENDING = "PENDING"
    TRANSFER_COMPLETED = "TRANSFER_COMPLETED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "GatewayStatus":
        """
        Parse a wire status string.

        Accepts the SDK's prefixed spellings (``TRANSFER_STATUS_COMPLETED``,
        ``LIGHTNING_PAYMENT_RECEIVED``) as well as the short forms. Unknown
        values become UNKNOWN rather than raising.
        """
        if not raw:
            return cls.UNKNOWN
        value = str(raw).strip().upper().replace("-", "_")
        aliases = {
            "TRANSFER_STATUS_COMPLETED": cls.TRANSFER_COMPLETED,
            "COMPLETED": cls.TRANSFER_COMPLETED,
            "LIGHTNING_PAYMENT_RECEIVED": cls.PAYMENT_RECEIVED,
            "LIGHTNING_PAYMENT_SUCCEEDED": cls.PAYMENT_RECEIVED,
            "TRANSFER_STATUS_PENDING": cls.PENDING,
            "LIGHTNING_PAYMENT_INITIATED": cls.PENDING,
            "TRANSFER_STATUS_FAILED": cls.FAILED,
            "LIGHTNING_PAYMENT_FAILED": cls.FAILED,
            "TRANSFER_STATUS_EXPIRED": cls.EXPIRED,
        }
        if value in aliases:
            return aliases[value]
        try:
            return cls(value)
        except ValueError:
            return cls.UNKNOWN


class SettlementStatus(Enum):
    """Internal settlement result derived from GatewayStatus."""

    CONFIRMED = "confirmed"
    PENDING = "pending"

    @classmethod
    def from_gateway(cls, status: GatewayStatus) -> "SettlementStatus":
        if status in (GatewayStatus.TRANSFER_COMPLETED, GatewayStatus.PAYMENT_RECEIVED):
            return cls.CONFIRMED
        return cls.PENDING


@dataclass(frozen=True)
class PaymentRequest:
    """An issued payment request (invoice)."""

    encoded_request: str
    """Encoded request handed to the payer's wallet."""

    request_ref: str
    """Gateway reference used for status queries."""


@dataclass(frozen=True)
class RequestStatus:
    """Status of a payment request as reported by the gateway."""

    status: GatewayStatus
    settlement_ref: Optional[str] = None

    @property
    def settlement(self) -> SettlementStatus:
        return SettlementStatus.from_gateway(self.status)


@dataclass(frozen=True)
class MarkPaidResult:
    """
    Outcome of OrderLedger.mark_paid().

    ``transitioned`` is True only for the single call that moved the order
    from pending to paid. Callers gate side effects on it.
    """

    order_id: str
    transitioned: bool


@dataclass(frozen=True)
class VerificationResult:
    """Answer to a verify-payment call."""

    order_id: str
    status: str
    """Either ``"paid"`` or ``"pending"``."""

    transitioned: bool = False
    """True if this verification committed the payment."""

    PAID = "paid"
    PENDING = "pending"

    @property
    def is_paid(self) -> bool:
        return self.status == self.PAID

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status}
