"""
Payment gateway session lifecycle management.

This module owns the single authenticated HTTP session to the payment
network. The session is opened once (at startup, or lazily on first use),
shared read-only by every request thread, and closed at shutdown.

THREAD SAFETY:
    - initialize() / ensure_initialized() are guarded by a lock, so two
      request threads racing on first use still open exactly one session
    - http_client is read-only after initialization; httpx.Client is safe
      to share between threads
    - cleanup() should be called once from the main thread at shutdown

FAIL FAST BEHAVIOR:
    - Missing URL or API key: raises GatewayNotConfiguredError
    - The network itself is NOT contacted at startup; an unreachable gateway
      surfaces later as GatewayUnavailableError on individual calls

Usage:
    gateway_manager = GatewayManager(url, api_key, timeout_seconds=10)
    gateway_manager.initialize()

    client = PaymentGatewayClient(gateway_manager)

    gateway_manager.cleanup()
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

import httpx

from .exceptions import GatewayNotConfiguredError


HEALTH_PATH = "/v1/health"


class GatewayManager:
    """
    Manages the payment network HTTP session.

    Attributes:
        base_url: Payment gateway base URL
        is_initialized: True if the session is open
        http_client: Shared httpx.Client (read-only after init)
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout_seconds: float = 10.0,
        logger: Optional[logging.Logger] = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        """
        Initialize gateway manager.

        Args:
            base_url: Payment gateway base URL
            api_key: API key sent as a bearer token
            timeout_seconds: Per-request timeout
            logger: Logger instance (optional, creates default if not provided)
            transport: Optional httpx transport (tests use httpx.MockTransport)

        Note:
            This does NOT open the session - call initialize() to do that.
        """
        self._base_url = (base_url or "").rstrip("/")
        self._api_key = api_key or ""
        self._timeout = timeout_seconds
        self._transport = transport
        self._logger = logger or logging.getLogger("crypto_store.core.gateway_manager")
        self._client: Optional[httpx.Client] = None
        self._lock = threading.Lock()

    @property
    def base_url(self) -> str:
        return self._base_url

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    @property
    def is_initialized(self) -> bool:
        """True if the HTTP session is open."""
        return self._client is not None

    @property
    def http_client(self) -> httpx.Client:
        """
        Shared HTTP session for gateway calls.

        Raises:
            RuntimeError: If the session has not been opened
        """
        if self._client is None:
            raise RuntimeError("Gateway session not initialized - call initialize() first")
        return self._client

    def initialize(self) -> httpx.Client:
        """
        Open the authenticated HTTP session.

        Returns:
            The shared httpx.Client

        Raises:
            GatewayNotConfiguredError: If URL or API key is missing
            RuntimeError: If called when already initialized
        """
        with self._lock:
            if self._client is not None:
                raise RuntimeError("Gateway session already initialized")
            return self._open()

    def ensure_initialized(self) -> httpx.Client:
        """Open the session on first use; return the existing one afterwards."""
        if self._client is not None:
            return self._client
        with self._lock:
            if self._client is None:
                self._open()
            return self._client

    def _open(self) -> httpx.Client:
        if not self._base_url:
            self._logger.critical("Payment gateway URL is not configured")
            raise GatewayNotConfiguredError("PAYMENT_GATEWAY_URL")
        if not self._api_key:
            self._logger.critical("Payment gateway API key is not configured")
            raise GatewayNotConfiguredError("PAYMENT_GATEWAY_API_KEY")

        client_kwargs = {
            "base_url": self._base_url,
            "headers": {
                "Authorization": f"Bearer {self._api_key}",
                "Accept": "application/json",
            },
            "timeout": self._timeout,
        }
        if self._transport is not None:
            client_kwargs["transport"] = self._transport

        self._client = httpx.Client(**client_kwargs)
        self._logger.info(f"Payment gateway session opened: {self._base_url}")
        return self._client

    def ping(self) -> bool:
        """Return True if the gateway answers its health endpoint."""
        try:
            response = self.ensure_initialized().get(HEALTH_PATH)
            return response.status_code < 500
        except httpx.HTTPError as e:
            self._logger.warning(f"Payment gateway ping failed: {e}")
            return False

    def cleanup(self) -> None:
        """
        Close the HTTP session.

        Safe to call multiple times (idempotent).
        """
        with self._lock:
            if self._client is None:
                self._logger.debug("Gateway session not open, nothing to clean up")
                return
            try:
                self._client.close()
                self._logger.info("Payment gateway session closed")
            except Exception as e:
                self._logger.error(f"Error closing gateway session: {e}")
            self._client = None

    def __enter__(self) -> "GatewayManager":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cleanup()
