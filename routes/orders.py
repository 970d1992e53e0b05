"""
Order API routes (JSON).

Handles:
- POST /api/orders                          - create-order
- POST /api/orders/<id>/verify              - verify-payment (client polling)
- POST /api/orders/<id>/payment-request     - retry payment request issuance
- GET  /api/orders/<id>                     - order snapshot (status, age)

Errors are raised as CryptoStoreError subclasses and turned into JSON
bodies by the error handlers registered in app.create_app().
"""

from flask import Blueprint, current_app, request

from core.exceptions import InvalidRequestError
from models.order import LineRequest, ShippingInfo
from logging_config import get_logger


# Module logger
logger = get_logger(__name__)

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _engine():
    return current_app.config["RECONCILIATION_SERVICE"]


def _parse_items(payload) -> list:
    items = payload.get("items")
    if items is None:
        items = []
    if not isinstance(items, list):
        raise InvalidRequestError("items must be a list", field="items")

    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise InvalidRequestError(f"items[{index}] must be an object", field=f"items[{index}]")
        # Client-supplied prices are dropped here: LineRequest has no price
        lines.append(LineRequest.from_dict(item))
    return lines


def _parse_shipping(payload) -> ShippingInfo:
    shipping = payload.get("shipping")
    if not isinstance(shipping, dict):
        raise InvalidRequestError("shipping must be an object", field="shipping")
    info = ShippingInfo.from_dict(shipping)
    if not info.name.strip():
        raise InvalidRequestError("shipping.name is required", field="shipping.name")
    return info


@orders_bp.route("", methods=["POST"])
def create_order():
    """
    Create an order and issue its payment request.

    Body:
        {"items": [{"productId": str, "variantId": str?, "quantity": int}],
         "shipping": {"name": str, "address": {...}, "email": str?}}

    Returns:
        201 {"orderId", "encodedPaymentRequest", "totalSats", "status"}
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise InvalidRequestError("Request body must be a JSON object")

    lines = _parse_items(payload)
    shipping = _parse_shipping(payload)

    order = _engine().create_order(lines, shipping)
    logger.info(f"Order {order.id[:8]} created for {order.total_sats} sats")

    return {
        "orderId": order.id,
        "encodedPaymentRequest": order.payment_request,
        "totalSats": order.total_sats,
        "status": order.status.value,
    }, 201


@orders_bp.route("/<order_id>/verify", methods=["POST"])
def verify_payment(order_id: str):
    """
    Reconcile an order with the payment network.

    Returns:
        200 {"status": "paid" | "pending"}
    """
    result = _engine().verify_payment(order_id)
    return result.to_dict(), 200


@orders_bp.route("/<order_id>/payment-request", methods=["POST"])
def issue_payment_request(order_id: str):
    """
    Retry payment request issuance after a gateway outage.

    Idempotent: returns the existing request if one was already issued.
    """
    order = _engine().issue_payment_request(order_id)
    return {
        "orderId": order.id,
        "encodedPaymentRequest": order.payment_request,
        "totalSats": order.total_sats,
        "status": order.status.value,
    }, 200


@orders_bp.route("/<order_id>", methods=["GET"])
def get_order(order_id: str):
    """Order snapshot including ``ageSeconds`` for host timeout policies."""
    order = current_app.config["ORDER_LEDGER"].get_order(order_id)
    return order.to_dict(), 200
