"""
Unit tests for the order and settlement value types.
"""

from datetime import datetime, timedelta, timezone

import pytest

from core.exceptions import GatewayUnavailableError, UnknownProductError
from models.order import LineRequest, OrderRecord, OrderStatus, ShippingInfo
from models.settlement import GatewayStatus, VerificationResult


class TestLineRequest:
    """Parsing cart lines from API payloads."""

    def test_camel_case(self):
        line = LineRequest.from_dict({"productId": "tee", "variantId": "v1", "quantity": 2})
        assert line == LineRequest(product_ref="tee", variant_id="v1", quantity=2)

    def test_snake_case(self):
        line = LineRequest.from_dict({"product_id": "tee", "quantity": 1})
        assert line.product_ref == "tee"
        assert line.variant_id is None

    def test_has_no_price(self):
        line = LineRequest.from_dict({"productId": "tee", "quantity": 1, "price": 1})
        assert not hasattr(line, "price")


class TestShippingInfo:

    def test_string_address(self):
        info = ShippingInfo.from_dict({"name": "A", "address": "1 Main St"})
        assert info.address == {"line1": "1 Main St"}

    def test_round_trip(self):
        info = ShippingInfo(name="A", address={"city": "Austin"}, email="a@example.com")
        assert ShippingInfo.from_dict(info.to_dict()) == info


class TestGatewayStatus:

    @pytest.mark.parametrize("raw", ["completed", "transfer-status-completed", " TRANSFER_COMPLETED "])
    def test_completion_aliases(self, raw):
        assert GatewayStatus.parse(raw) is GatewayStatus.TRANSFER_COMPLETED

    def test_empty(self):
        assert GatewayStatus.parse("") is GatewayStatus.UNKNOWN


class TestOrderRecord:

    def test_naive_created_at_is_utc(self):
        created = (datetime.now(timezone.utc) - timedelta(seconds=30)).replace(tzinfo=None)
        record = OrderRecord(
            id="o1", status=OrderStatus.PENDING, total_sats=1,
            shipping=ShippingInfo(name="A"), created_at=created,
        )

        assert 29 <= record.age_seconds < 60
        assert not record.has_payment_request


class TestErrors:

    def test_error_body(self):
        assert UnknownProductError("ghost").to_dict() == {
            "error": "UnknownProduct",
            "message": "Unknown product: ghost",
            "details": {"product": "ghost"},
        }

    def test_for_order(self):
        error = GatewayUnavailableError(operation="get_request_status")

        assert error.for_order("o1") is error
        assert error.order_id == "o1"
        assert error.details["order_id"] == "o1"
        assert error.details["operation"] == "get_request_status"

    def test_verification_result(self):
        result = VerificationResult(order_id="o1", status=VerificationResult.PAID)
        assert result.is_paid
        assert result.to_dict() == {"status": "paid"}
