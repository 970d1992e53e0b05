"""
Core module for CryptoStore.

Contains fundamental infrastructure components:
- exceptions: Custom exception hierarchy
- gateway_manager: Payment gateway session lifecycle
- gateway_client: Payment gateway adapter (create request, query status)
"""

from .exceptions import (
    CryptoStoreError,
    ValidationError,
    UnknownProductError,
    InactiveProductError,
    UnknownVariantError,
    InvalidQuantityError,
    EmptyOrderError,
    InvalidRequestError,
    ConsistencyError,
    UnknownOrderError,
    IllegalTransitionError,
    OrderNotPendingError,
    InventoryContentionError,
    GatewayUnavailableError,
    PaymentRequestError,
    GatewayNotConfiguredError,
)
from .gateway_manager import GatewayManager
from .gateway_client import PaymentGateway, PaymentGatewayClient

__all__ = [
    "CryptoStoreError",
    "ValidationError",
    "UnknownProductError",
    "InactiveProductError",
    "UnknownVariantError",
    "InvalidQuantityError",
    "EmptyOrderError",
    "InvalidRequestError",
    "ConsistencyError",
    "UnknownOrderError",
    "IllegalTransitionError",
    "OrderNotPendingError",
    "InventoryContentionError",
    "GatewayUnavailableError",
    "PaymentRequestError",
    "GatewayNotConfiguredError",
    "GatewayManager",
    "PaymentGateway",
    "PaymentGatewayClient",
]
