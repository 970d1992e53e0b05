"""
Settlement sweep with background thread.

Clients normally poll verify-payment themselves. A client that pays and
then closes the page never polls again, so the host can run this sweep:
every ``interval_seconds`` it calls the SAME verify operation for each
pending order that has a payment request. Because verification is
idempotent, the sweep and client polls can overlap freely.

Abandonment (optional host policy):
    With ``abandon_after_seconds`` set, a pending order older than that
    which is still unpaid after its verification is cancelled. The
    reconciliation engine itself never cancels orders.

Usage:
    sweep = SettlementSweepService(engine, orders, interval_seconds=30)
    sweep.start()
    ...
    sweep.stop()
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from core.exceptions import CryptoStoreError, GatewayUnavailableError, PaymentRequestError
from services.order_ledger import OrderLedger
from services.reconciliation_service import ReconciliationService
from logging_config import get_logger, set_thread_name


# Module logger
logger = get_logger(__name__)


@dataclass
class SweepReport:
    """Counters for one sweep pass."""

    checked: int = 0
    paid: int = 0
    still_pending: int = 0
    abandoned: int = 0
    errors: int = 0


class SettlementSweepService:
    """
    Background service that re-verifies pending orders.

    Attributes:
        interval_seconds: Time between sweeps
        abandon_after_seconds: Cancel pending orders older than this (None = never)
        is_running: Whether the background thread is active
    """

    def __init__(
        self,
        engine: ReconciliationService,
        orders: OrderLedger,
        interval_seconds: float = 30.0,
        abandon_after_seconds: Optional[float] = None,
        batch_size: int = 100
    ):
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")

        self._engine = engine
        self._orders = orders
        self._interval = interval_seconds
        self._abandon_after = abandon_after_seconds
        self._batch_size = batch_size

        # Thread control
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._is_running = False

        # Track consecutive failures for logging
        self._consecutive_failures = 0
        self._last_report = SweepReport()
        self._cursor: Optional[Tuple[datetime, str]] = None

        logger.info(
            f"SettlementSweepService initialized (interval: {interval_seconds}s, "
            f"abandon after: {abandon_after_seconds or 'never'})"
        )

    @property
    def is_running(self) -> bool:
        return self._is_running

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def abandon_after_seconds(self) -> Optional[float]:
        return self._abandon_after

    @property
    def last_report(self) -> SweepReport:
        return self._last_report

    def start(self) -> None:
        """
        Start the background sweep thread.

        Safe to call multiple times - only starts if not already running.
        """
        if self._is_running:
            logger.warning("SettlementSweepService already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._sweep_loop,
            name="SettlementSweep",
            daemon=True
        )
        self._is_running = True
        self._thread.start()
        logger.info("Settlement sweep thread started")

    def stop(self) -> None:
        """
        Stop the background sweep thread and wait for it.

        Safe to call multiple times.
        """
        if not self._is_running:
            return

        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)
            if self._thread.is_alive():
                logger.warning("Settlement sweep thread did not stop cleanly")

        self._is_running = False
        self._thread = None
        logger.info("Settlement sweep thread stopped")

    def run_once(self) -> SweepReport:
        """
        Verify the next batch of pending orders with a payment request.

        Runs in the calling thread. Consecutive passes page through the
        pending orders with a ``(created_at, id)`` cursor, so orders that
        stay pending never starve newer ones; the cursor wraps to the
        oldest order once the end of the list is reached.

        Per-order failures are counted and logged; they do not stop the
        pass. A gateway outage does, and the next pass resumes at the
        order that hit it.
        """
        report = SweepReport()
        batch = self._orders.list_pending(limit=self._batch_size, after=self._cursor)
        interrupted = False

        for order in batch:
            report.checked += 1
            try:
                result = self._engine.verify_payment(order.id)
            except PaymentRequestError as e:
                # Gateway answered but rejected this order's request
                report.errors += 1
                logger.error(f"Sweep could not verify order {order.id[:8]}: {e}")
                self._cursor = (order.created_at, order.id)
                continue
            except GatewayUnavailableError as e:
                # Gateway outage: no point hammering it for every order
                report.errors += 1
                logger.warning(f"Sweep stopped early, gateway unavailable: {e.message}")
                interrupted = True
                break
            except CryptoStoreError as e:
                report.errors += 1
                logger.error(f"Sweep could not verify order {order.id[:8]}: {e}")
                self._cursor = (order.created_at, order.id)
                continue

            self._cursor = (order.created_at, order.id)
            if result.is_paid:
                report.paid += 1
            elif self._is_abandoned(order.age_seconds):
                if self._abandon(order.id):
                    report.abandoned += 1
            else:
                report.still_pending += 1

        if not interrupted and len(batch) < self._batch_size:
            self._cursor = None

        self._last_report = report
        if report.checked:
            logger.info(
                f"Sweep checked {report.checked} orders: {report.paid} paid, "
                f"{report.still_pending} pending, {report.abandoned} abandoned, "
                f"{report.errors} errors"
            )
        return report

    def _is_abandoned(self, age_seconds: float) -> bool:
        return self._abandon_after is not None and age_seconds > self._abandon_after

    def _abandon(self, order_id: str) -> bool:
        try:
            return self._orders.cancel_order(order_id)
        except CryptoStoreError as e:
            # Typically lost the race to a verification that just paid it
            logger.info(f"Order {order_id[:8]} not abandoned: {e.message}")
            return False

    def _sweep_loop(self) -> None:
        """Background thread main loop."""
        set_thread_name("SettlementSweep")
        logger.info("Settlement sweep loop starting")

        while not self._stop_event.wait(timeout=self._interval):
            self._do_sweep()

        logger.info("Settlement sweep loop exiting")

    def _do_sweep(self) -> bool:
        """Run one pass, logging failures with escalating severity."""
        try:
            self.run_once()
        except Exception as e:
            self._consecutive_failures += 1

            if self._consecutive_failures == 1:
                logger.warning(f"Settlement sweep failed: {e}")
            elif self._consecutive_failures <= 3:
                logger.error(f"Settlement sweep failed ({self._consecutive_failures} consecutive): {e}")
            elif self._consecutive_failures % 5 == 0:
                logger.error(
                    f"Settlement sweep still failing ({self._consecutive_failures} consecutive): {e}"
                )
            return False

        if self._consecutive_failures > 0:
            logger.info(f"Settlement sweep recovered after {self._consecutive_failures} failures")
        self._consecutive_failures = 0
        return True
