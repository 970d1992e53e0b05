"""
Custom exceptions for CryptoStore.

Exception Hierarchy:
    CryptoStoreError (base)
    ├── ValidationError             - Bad caller input (never retried)
    │   ├── UnknownProductError
    │   ├── InactiveProductError
    │   ├── UnknownVariantError
    │   ├── InvalidQuantityError
    │   ├── EmptyOrderError
    │   └── InvalidRequestError
    ├── ConsistencyError           - Logic/usage fault (surfaced, never swallowed)
    │   ├── UnknownOrderError
    │   ├── IllegalTransitionError
    │   └── OrderNotPendingError
    ├── InventoryContentionError    - Decrement lost repeated races (retry-safe)
    ├── GatewayUnavailableError     - Payment network unreachable (retry-safe)
    │   └── PaymentRequestError     - Payment network rejected/garbled a call
    └── GatewayNotConfiguredError   - Startup failure (fail fast)

Usage:
    Every error carries a stable ``code`` used by the HTTP layer to build
    JSON error bodies. Oversold inventory is NOT an error - it is recorded
    by the inventory ledger after a payment has already succeeded.
"""

from typing import Optional, Dict, Any


class CryptoStoreError(Exception):
    """
    Base exception for all CryptoStore errors.

    All custom exceptions inherit from this class, allowing callers to catch
    all application-specific errors with a single except clause if needed.
    """

    code = "CryptoStoreError"
    """Stable error code surfaced to API callers."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional context for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly error body."""
        return {
            "error": self.code,
            "message": self.message,
            "details": dict(self.details),
        }


# =============================================================================
# VALIDATION ERRORS - Bad input, rejected synchronously
# =============================================================================

class ValidationError(CryptoStoreError):
    """Base class for rejected caller input."""

    code = "ValidationError"


class UnknownProductError(ValidationError):
    """The requested product does not exist in the catalog."""

    code = "UnknownProduct"

    def __init__(self, product_ref: str):
        super().__init__(
            f"Unknown product: {product_ref}",
            {"product": product_ref},
        )
        self.product_ref = product_ref


class InactiveProductError(ValidationError):
    """
    The requested product (or one of its variants) is not for sale.

    Raised for inactive products and for inactive variants alike; the
    ``variant`` detail is set when the variant was the inactive one.
    """

    code = "InactiveProduct"

    def __init__(self, product_ref: str, variant_id: Optional[str] = None):
        details: Dict[str, Any] = {"product": product_ref}
        if variant_id:
            details["variant"] = variant_id
            message = f"Variant {variant_id} of {product_ref} is not available"
        else:
            message = f"Product {product_ref} is not available"
        super().__init__(message, details)
        self.product_ref = product_ref
        self.variant_id = variant_id


class UnknownVariantError(ValidationError):
    """The variant does not exist or does not belong to the product."""

    code = "UnknownVariant"

    def __init__(self, product_ref: str, variant_id: str):
        super().__init__(
            f"Unknown variant {variant_id} for product {product_ref}",
            {"product": product_ref, "variant": variant_id},
        )
        self.product_ref = product_ref
        self.variant_id = variant_id


class InvalidQuantityError(ValidationError):
    """Quantity is not a positive integer."""

    code = "InvalidQuantity"

    def __init__(self, product_ref: str, quantity: Any):
        super().__init__(
            f"Invalid quantity {quantity!r} for product {product_ref}",
            {"product": product_ref, "quantity": quantity},
        )
        self.product_ref = product_ref
        self.quantity = quantity


class EmptyOrderError(ValidationError):
    """An order must contain at least one line."""

    code = "EmptyOrder"

    def __init__(self, message: str = "Order must contain at least one item"):
        super().__init__(message)


class InvalidRequestError(ValidationError):
    """The request body is malformed (wrong types, missing shipping name)."""

    code = "InvalidRequest"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, {"field": field} if field else None)
        self.field = field


# =============================================================================
# CONSISTENCY ERRORS - Logic or usage faults
# =============================================================================

class ConsistencyError(CryptoStoreError):
    """Base class for state and lookup faults."""

    code = "ConsistencyError"


class UnknownOrderError(ConsistencyError):
    """No order exists with the given id."""

    code = "UnknownOrder"

    def __init__(self, order_id: str):
        super().__init__(f"Unknown order: {order_id}", {"order_id": order_id})
        self.order_id = order_id


class IllegalTransitionError(ConsistencyError):
    """
    The requested status change is not allowed by the order state machine.

    Legal transitions:
        pending -> paid -> fulfilled
        pending -> cancelled
    """

    code = "IllegalTransition"

    def __init__(self, order_id: str, current: str, target: str):
        super().__init__(
            f"Order {order_id} cannot move from {current} to {target}",
            {"order_id": order_id, "current": current, "target": target},
        )
        self.order_id = order_id
        self.current = current
        self.target = target


class OrderNotPendingError(ConsistencyError):
    """The operation requires a pending order."""

    code = "OrderNotPending"

    def __init__(self, order_id: str, current: str):
        super().__init__(
            f"Order {order_id} is {current}, expected pending",
            {"order_id": order_id, "current": current},
        )
        self.order_id = order_id
        self.current = current


# =============================================================================
# TRANSIENT ERRORS - Contention inside the store, safe to retry
# =============================================================================

class InventoryContentionError(CryptoStoreError):
    """
    A variant count kept changing underneath a clamped decrement.

    Raised inside the paid-commit transaction, so the paid transition is
    rolled back with it and the next verification retries the commit.
    """

    code = "InventoryContention"

    def __init__(self, variant_id: str, attempts: int):
        super().__init__(
            f"Could not decrement variant {variant_id} after {attempts} attempts",
            {
                "variant": variant_id,
                "attempts": attempts,
                "resolution": "Retry verification; the payment is not lost",
            },
        )
        self.variant_id = variant_id
        self.attempts = attempts


# =============================================================================
# EXTERNAL-DEPENDENCY ERRORS - Transient, leave orders retry-safe
# =============================================================================

class GatewayUnavailableError(CryptoStoreError):
    """
    The payment network could not be reached or did not answer in time.

    The engine never retries internally. When raised during order creation
    the order is left pending with no payment request attached; the
    ``order_id`` detail tells the caller which order to retry issuance for.
    """

    code = "GatewayUnavailable"

    def __init__(
        self,
        message: str = "Payment gateway is unavailable",
        operation: Optional[str] = None,
        order_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        error_details = details or {}
        if operation:
            error_details["operation"] = operation
        if order_id:
            error_details["order_id"] = order_id
        error_details.setdefault(
            "resolution", "Retry later; the order is safe to retry"
        )
        super().__init__(message, error_details)
        self.operation = operation
        self.order_id = order_id

    def for_order(self, order_id: str) -> "GatewayUnavailableError":
        """Attach the affected order id and return self for re-raising."""
        self.order_id = order_id
        self.details["order_id"] = order_id
        return self


class PaymentRequestError(GatewayUnavailableError):
    """
    The payment network answered, but the answer was unusable.

    Covers rejected requests (4xx) and malformed response bodies.
    Treated like any gateway outage by callers.
    """


# =============================================================================
# STARTUP ERRORS - Application will not start if these occur
# =============================================================================

class GatewayNotConfiguredError(CryptoStoreError):
    """
    Payment gateway URL or API key is missing.

    This is a FATAL error - orders cannot be paid without a gateway session.
    """

    code = "GatewayNotConfigured"

    def __init__(self, missing: str):
        super().__init__(
            f"Payment gateway is not configured: {missing} is missing",
            {
                "missing": missing,
                "resolution": "Set PAYMENT_GATEWAY_URL and PAYMENT_GATEWAY_API_KEY in .env",
            },
        )
        self.missing = missing
