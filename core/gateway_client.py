"""
Payment gateway adapter.

Narrow capability wrapper around the external payment network:
    - create_payment_request(amount_sats, memo) -> PaymentRequest
    - get_request_status(request_ref)           -> RequestStatus

The reconciliation engine depends only on the PaymentGateway protocol, so
tests (and alternative networks) can inject any object with these two
methods. PaymentGatewayClient is the HTTP implementation.

Wire format:
    POST /v1/payment-requests       {"amount_sats": int, "memo": str}
        -> {"id": str, "encoded_request": str}
    GET  /v1/payment-requests/{id}
        -> {"status": str, "transfer_id": str | null}

Error mapping:
    connect error / timeout / 5xx  -> GatewayUnavailableError
    4xx / malformed body           -> PaymentRequestError
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import httpx

from models.settlement import GatewayStatus, PaymentRequest, RequestStatus
from .exceptions import GatewayUnavailableError, PaymentRequestError
from .gateway_manager import GatewayManager


PAYMENT_REQUESTS_PATH = "/v1/payment-requests"


@runtime_checkable
class PaymentGateway(Protocol):
    """Capability interface consumed by the reconciliation engine."""

    def create_payment_request(self, amount_sats: int, memo: str) -> PaymentRequest: ...

    def get_request_status(self, request_ref: str) -> RequestStatus: ...


class PaymentGatewayClient:
    """
    HTTP client for the payment network.

    Holds no per-call state; all calls go through the GatewayManager's
    shared session, so one instance can serve every request thread.
    """

    def __init__(self, manager: GatewayManager, logger: Optional[logging.Logger] = None):
        """
        Args:
            manager: GatewayManager owning the HTTP session
            logger: Logger instance (creates default if not provided)
        """
        if manager is None:
            raise ValueError("manager is required - gateway session must be configured")
        self._manager = manager
        self._logger = logger or logging.getLogger("crypto_store.core.gateway_client")

    def create_payment_request(self, amount_sats: int, memo: str) -> PaymentRequest:
        """
        Issue a payment request for ``amount_sats``.

        Args:
            amount_sats: Amount in satoshis (positive integer)
            memo: Memo shown to the payer (references the order id)

        Returns:
            PaymentRequest with the encoded request and its reference

        Raises:
            ValueError: If amount_sats is not a positive integer
            GatewayUnavailableError: If the gateway cannot be reached
            PaymentRequestError: If the gateway rejects the request
        """
        if isinstance(amount_sats, bool) or not isinstance(amount_sats, int) or amount_sats <= 0:
            raise ValueError(f"amount_sats must be a positive integer, got {amount_sats!r}")

        body = self._call(
            "POST",
            PAYMENT_REQUESTS_PATH,
            operation="create_payment_request",
            json={"amount_sats": amount_sats, "memo": memo},
        )

        encoded = body.get("encoded_request")
        request_ref = body.get("id")
        if not encoded or not request_ref:
            self._logger.error(f"Gateway returned incomplete payment request: {body}")
            raise PaymentRequestError(
                "Gateway response is missing the payment request",
                operation="create_payment_request",
            )

        self._logger.info(f"Payment request issued: ref={request_ref}, amount={amount_sats} sats")
        return PaymentRequest(encoded_request=str(encoded), request_ref=str(request_ref))

    def get_request_status(self, request_ref: str) -> RequestStatus:
        """
        Query the settlement status of a payment request.

        Returns:
            RequestStatus; unrecognized statuses parse to GatewayStatus.UNKNOWN

        Raises:
            GatewayUnavailableError: If the gateway cannot be reached
            PaymentRequestError: If the gateway rejects the query
        """
        body = self._call(
            "GET",
            f"{PAYMENT_REQUESTS_PATH}/{request_ref}",
            operation="get_request_status",
        )

        status = GatewayStatus.parse(body.get("status"))
        settlement_ref = body.get("transfer_id")
        self._logger.debug(f"Payment request {request_ref} status: {status.value}")
        return RequestStatus(
            status=status,
            settlement_ref=str(settlement_ref) if settlement_ref else None,
        )

    def _call(self, method: str, path: str, operation: str,
              json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Send one request and return the decoded JSON object."""
        client = self._manager.ensure_initialized()
        start_time = time.time()

        try:
            response = client.request(method, path, json=json)
            response.raise_for_status()

        except httpx.TimeoutException as e:
            elapsed = time.time() - start_time
            self._logger.error(f"Gateway {operation} timed out after {elapsed:.1f}s: {e}")
            raise GatewayUnavailableError(
                f"Payment gateway timed out after {elapsed:.1f}s",
                operation=operation,
            ) from e

        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            self._logger.error(f"Gateway {operation} failed: {status_code} - {e.response.text}")
            if status_code >= 500:
                raise GatewayUnavailableError(
                    f"Payment gateway error {status_code}",
                    operation=operation,
                    details={"status_code": status_code},
                ) from e
            raise PaymentRequestError(
                f"Payment gateway rejected {operation} ({status_code})",
                operation=operation,
                details={"status_code": status_code},
            ) from e

        except httpx.HTTPError as e:
            self._logger.error(f"Cannot reach payment gateway during {operation}: {e}")
            raise GatewayUnavailableError(
                f"Cannot reach payment gateway: {e}",
                operation=operation,
            ) from e

        try:
            body = response.json()
        except ValueError as e:
            self._logger.error(f"Invalid JSON from gateway during {operation}: {e}")
            raise PaymentRequestError(
                "Payment gateway returned invalid JSON",
                operation=operation,
            ) from e

        if not isinstance(body, dict):
            raise PaymentRequestError(
                "Payment gateway returned an unexpected response",
                operation=operation,
            )
        return body
