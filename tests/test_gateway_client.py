"""
Unit tests for the payment gateway session and HTTP client.

The network is replaced with httpx.MockTransport handlers.
"""

import json
import logging

import httpx
import pytest

from core.exceptions import (
    GatewayNotConfiguredError,
    GatewayUnavailableError,
    PaymentRequestError,
)
from core.gateway_client import PaymentGateway, PaymentGatewayClient
from core.gateway_manager import GatewayManager
from models.settlement import GatewayStatus, SettlementStatus


BASE_URL = "https://gateway.test"


# Fixtures

@pytest.fixture
def logger():
    """Create a test logger."""
    return logging.getLogger("test")


@pytest.fixture
def recorded():
    """Requests seen by the mock transport."""
    return []


def _manager(handler, logger, recorded=None):
    def recording_handler(request):
        if recorded is not None:
            recorded.append(request)
        return handler(request)

    manager = GatewayManager(
        BASE_URL, "secret-key", timeout_seconds=2.0, logger=logger,
        transport=httpx.MockTransport(recording_handler),
    )
    manager.initialize()
    return manager


def _client(handler, logger, recorded=None):
    return PaymentGatewayClient(_manager(handler, logger, recorded), logger=logger)


# Tests for GatewayManager

class TestGatewayManager:
    """Session lifecycle."""

    def test_missing_url(self, logger):
        with pytest.raises(GatewayNotConfiguredError) as exc_info:
            GatewayManager("", "key", logger=logger).initialize()

        assert exc_info.value.missing == "PAYMENT_GATEWAY_URL"

    def test_missing_api_key(self, logger):
        with pytest.raises(GatewayNotConfiguredError) as exc_info:
            GatewayManager(BASE_URL, "", logger=logger).initialize()

        assert exc_info.value.missing == "PAYMENT_GATEWAY_API_KEY"

    def test_http_client_before_init(self, logger):
        manager = GatewayManager(BASE_URL, "key", logger=logger)

        assert manager.is_initialized is False
        with pytest.raises(RuntimeError):
            _ = manager.http_client

    def test_double_initialize(self, logger):
        manager = _manager(lambda r: httpx.Response(200, json={}), logger)

        with pytest.raises(RuntimeError):
            manager.initialize()

    def test_ensure_initialized_reuses_session(self, logger):
        manager = GatewayManager(
            BASE_URL, "key", logger=logger,
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})),
        )

        first = manager.ensure_initialized()
        second = manager.ensure_initialized()

        assert first is second
        assert manager.is_initialized

    def test_cleanup_is_idempotent(self, logger):
        manager = _manager(lambda r: httpx.Response(200, json={}), logger)

        manager.cleanup()
        manager.cleanup()

        assert manager.is_initialized is False

    def test_trailing_slash_stripped(self, logger):
        assert GatewayManager(BASE_URL + "/", "key", logger=logger).base_url == BASE_URL

    def test_ping(self, logger):
        manager = _manager(lambda r: httpx.Response(200, json={"ok": True}), logger)
        assert manager.ping() is True

    def test_ping_server_error(self, logger):
        manager = _manager(lambda r: httpx.Response(503), logger)
        assert manager.ping() is False

    def test_context_manager(self, logger):
        manager = GatewayManager(
            BASE_URL, "key", logger=logger,
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})),
        )

        with manager:
            assert manager.is_initialized

        assert not manager.is_initialized


# Tests for create_payment_request

class TestCreatePaymentRequest:
    """Issuing payment requests."""

    def test_success(self, logger, recorded):
        def handler(request):
            return httpx.Response(201, json={"id": "inv-42", "encoded_request": "lnbc55000n1xyz"})

        client = _client(handler, logger, recorded)

        result = client.create_payment_request(55000, "Store order abc")

        assert result.request_ref == "inv-42"
        assert result.encoded_request == "lnbc55000n1xyz"
        sent = recorded[0]
        assert sent.method == "POST"
        assert sent.url.path == "/v1/payment-requests"
        assert sent.headers["Authorization"] == "Bearer secret-key"
        assert json.loads(sent.content) == {"amount_sats": 55000, "memo": "Store order abc"}

    @pytest.mark.parametrize("amount", [0, -5, 1.5, True, "100"])
    def test_invalid_amount(self, logger, recorded, amount):
        client = _client(lambda r: httpx.Response(201, json={}), logger, recorded)

        with pytest.raises(ValueError):
            client.create_payment_request(amount, "memo")

        assert recorded == []

    def test_incomplete_response(self, logger):
        client = _client(lambda r: httpx.Response(201, json={"id": "inv-1"}), logger)

        with pytest.raises(PaymentRequestError):
            client.create_payment_request(1000, "memo")

    def test_server_error(self, logger):
        client = _client(lambda r: httpx.Response(502, text="bad gateway"), logger)

        with pytest.raises(GatewayUnavailableError) as exc_info:
            client.create_payment_request(1000, "memo")

        assert not isinstance(exc_info.value, PaymentRequestError)
        assert exc_info.value.details["status_code"] == 502
        assert exc_info.value.operation == "create_payment_request"

    def test_rejected(self, logger):
        client = _client(lambda r: httpx.Response(422, json={"error": "amount too small"}), logger)

        with pytest.raises(PaymentRequestError) as exc_info:
            client.create_payment_request(1, "memo")

        assert exc_info.value.details["status_code"] == 422

    def test_timeout(self, logger):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        client = _client(handler, logger)

        with pytest.raises(GatewayUnavailableError, match="timed out"):
            client.create_payment_request(1000, "memo")

    def test_connection_refused(self, logger):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = _client(handler, logger)

        with pytest.raises(GatewayUnavailableError, match="Cannot reach"):
            client.create_payment_request(1000, "memo")

    def test_invalid_json(self, logger):
        client = _client(lambda r: httpx.Response(200, text="<html>"), logger)

        with pytest.raises(PaymentRequestError, match="invalid JSON"):
            client.create_payment_request(1000, "memo")


# Tests for get_request_status

class TestGetRequestStatus:
    """Querying settlement status."""

    @pytest.mark.parametrize("raw,expected", [
        ("TRANSFER_COMPLETED", GatewayStatus.TRANSFER_COMPLETED),
        ("PAYMENT_RECEIVED", GatewayStatus.PAYMENT_RECEIVED),
        ("TRANSFER_STATUS_COMPLETED", GatewayStatus.TRANSFER_COMPLETED),
        ("LIGHTNING_PAYMENT_RECEIVED", GatewayStatus.PAYMENT_RECEIVED),
        ("pending", GatewayStatus.PENDING),
        ("EXPIRED", GatewayStatus.EXPIRED),
        ("SOMETHING_NEW", GatewayStatus.UNKNOWN),
        (None, GatewayStatus.UNKNOWN),
    ])
    def test_status_parsing(self, logger, raw, expected):
        client = _client(lambda r: httpx.Response(200, json={"status": raw}), logger)

        assert client.get_request_status("inv-1").status is expected

    def test_settlement_ref_and_path(self, logger, recorded):
        body = {"status": "TRANSFER_COMPLETED", "transfer_id": "tx-9"}
        client = _client(lambda r: httpx.Response(200, json=body), logger, recorded)

        status = client.get_request_status("inv-1")

        assert status.settlement_ref == "tx-9"
        assert status.settlement is SettlementStatus.CONFIRMED
        assert recorded[0].method == "GET"
        assert recorded[0].url.path == "/v1/payment-requests/inv-1"

    def test_non_object_body(self, logger):
        client = _client(lambda r: httpx.Response(200, json=["PENDING"]), logger)

        with pytest.raises(PaymentRequestError):
            client.get_request_status("inv-1")

    def test_server_error(self, logger):
        client = _client(lambda r: httpx.Response(500), logger)

        with pytest.raises(GatewayUnavailableError):
            client.get_request_status("inv-1")


class TestSettlementMapping:
    """Only the two completion statuses confirm a payment."""

    @pytest.mark.parametrize("status", list(GatewayStatus))
    def test_mapping(self, status):
        confirmed = status in (GatewayStatus.TRANSFER_COMPLETED, GatewayStatus.PAYMENT_RECEIVED)
        expected = SettlementStatus.CONFIRMED if confirmed else SettlementStatus.PENDING

        assert SettlementStatus.from_gateway(status) is expected


def test_client_satisfies_protocol(logger):
    client = _client(lambda r: httpx.Response(200, json={}), logger)
    assert isinstance(client, PaymentGateway)


def test_client_requires_manager():
    with pytest.raises(ValueError):
        PaymentGatewayClient(None)
