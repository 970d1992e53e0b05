"""
CryptoStore - Flask Application Entry Point.

This is a slim app factory that:
1. Loads configuration (.env + config classes)
2. Opens the database and ensures the schema
3. Opens the payment gateway session (fail-fast on missing config)
4. Wires the pricing, ledger and reconciliation services
5. Optionally starts the settlement sweep thread
6. Registers blueprints and JSON error handlers

ARCHITECTURE:
    Main Thread
    ├── Database engine + gateway session (created once, shared read-only)
    ├── Flask request handling (create-order, verify-payment)
    └── Cleanup on shutdown (sweep stop, gateway close, engine dispose)

    SettlementSweep Thread (optional)
    └── periodic verify-payment for pending orders

The only shared mutable state is the database; every status and stock
change there is a conditional update, so request threads need no locks.
"""

from __future__ import annotations

import atexit
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv
from flask import Flask
from werkzeug.exceptions import HTTPException

from logging_config import setup_logging, get_logger
from core.exceptions import (
    ConsistencyError,
    CryptoStoreError,
    GatewayNotConfiguredError,
    GatewayUnavailableError,
    InventoryContentionError,
    UnknownOrderError,
    ValidationError,
)
from core.gateway_client import PaymentGateway, PaymentGatewayClient
from core.gateway_manager import GatewayManager
from db.database import Database
from services.inventory_ledger import InventoryLedger
from services.order_ledger import OrderLedger
from services.pricing_service import DEFAULT_MAX_LINE_QUANTITY, PricingService
from services.reconciliation_service import ReconciliationService
from services.sweep_service import SettlementSweepService
from routes import register_blueprints


# Module logger (configured after setup_logging)
logger = get_logger(__name__)


def _get_base_path() -> Path:
    """Directory holding the .env file (next to the executable when frozen)."""
    if getattr(sys, 'frozen', False):
        return Path(sys.executable).parent
    return Path(__file__).parent


def error_status(error: CryptoStoreError) -> int:
    """HTTP status code for an application error."""
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, UnknownOrderError):
        return 404
    if isinstance(error, ConsistencyError):
        return 409
    if isinstance(error, (GatewayUnavailableError, InventoryContentionError)):
        return 503
    return 500


def create_app(
    config_object: str = "config.Config",
    gateway: Optional[PaymentGateway] = None,
    config_overrides: Optional[dict] = None
) -> Flask:
    """
    Application factory - creates and configures Flask app.

    Args:
        config_object: Import path of the config class
        gateway: Payment gateway to use instead of the HTTP client
            (tests and embedded hosts); skips the gateway session
        config_overrides: Values applied on top of the config class

    Returns:
        Configured Flask application

    Raises:
        GatewayNotConfiguredError: If no gateway is injected and the
            gateway URL or API key is missing
    """
    env_file = _get_base_path() / '.env'
    if env_file.exists():
        load_dotenv(env_file, override=True)
    else:
        load_dotenv(override=True)

    app = Flask(__name__)
    app.config.from_object(config_object)
    if config_overrides:
        app.config.update(config_overrides)

    # Configure logging
    log_level = logging.DEBUG if app.config.get("DEBUG") else logging.INFO
    enable_file_logging = app.config.get("ENVIRONMENT") == "production"

    root_logger = setup_logging(log_level=log_level, enable_file_logging=enable_file_logging)
    app.logger.handlers = root_logger.handlers
    app.logger.setLevel(log_level)

    logger.info(f"Starting CryptoStore in {app.config.get('ENVIRONMENT')} mode")

    # =========================================================================
    # STORAGE
    # =========================================================================

    database = Database(app.config["DATABASE_URL"], echo=app.config.get("DATABASE_ECHO", False))
    database.create_all()
    app.config["DATABASE"] = database

    # =========================================================================
    # PAYMENT GATEWAY (FAIL-FAST)
    # =========================================================================

    gateway_manager = None
    if gateway is None:
        gateway_manager = GatewayManager(
            base_url=app.config.get("PAYMENT_GATEWAY_URL", ""),
            api_key=app.config.get("PAYMENT_GATEWAY_API_KEY", ""),
            timeout_seconds=app.config.get("PAYMENT_GATEWAY_TIMEOUT_SECONDS", 10.0),
        )
        try:
            gateway_manager.initialize()
        except GatewayNotConfiguredError as e:
            logger.error(f"FATAL: Cannot start application - {e}")
            database.dispose()
            raise
        gateway = PaymentGatewayClient(gateway_manager)
    app.config["GATEWAY_MANAGER"] = gateway_manager

    # =========================================================================
    # SERVICES INITIALIZATION
    # =========================================================================

    pricing = PricingService(
        database,
        max_line_quantity=app.config.get("MAX_LINE_QUANTITY", DEFAULT_MAX_LINE_QUANTITY),
    )
    order_ledger = OrderLedger(database)
    inventory_ledger = InventoryLedger(database)
    engine = ReconciliationService(
        database=database,
        pricing=pricing,
        orders=order_ledger,
        inventory=inventory_ledger,
        gateway=gateway,
        memo_prefix=app.config.get("PAYMENT_MEMO_PREFIX", "CryptoStore"),
    )
    app.config["PRICING_SERVICE"] = pricing
    app.config["ORDER_LEDGER"] = order_ledger
    app.config["INVENTORY_LEDGER"] = inventory_ledger
    app.config["RECONCILIATION_SERVICE"] = engine

    sweep_service = None
    if app.config.get("SETTLEMENT_SWEEP_ENABLED"):
        sweep_service = SettlementSweepService(
            engine,
            order_ledger,
            interval_seconds=app.config.get("SETTLEMENT_SWEEP_INTERVAL_SECONDS", 30.0),
            abandon_after_seconds=app.config.get("ORDER_ABANDON_AFTER_SECONDS"),
        )
        sweep_service.start()
    app.config["SWEEP_SERVICE"] = sweep_service

    # =========================================================================
    # CLEANUP REGISTRATION
    # =========================================================================

    def cleanup():
        """Cleanup on application shutdown."""
        logger.info("Shutting down...")
        if sweep_service:
            sweep_service.stop()
        if gateway_manager:
            gateway_manager.cleanup()
        database.dispose()
        logger.info("Shutdown complete")

    app.config["CLEANUP"] = cleanup
    if not app.config.get("TESTING"):
        atexit.register(cleanup)

    # =========================================================================
    # REGISTER BLUEPRINTS
    # =========================================================================

    register_blueprints(app)

    # =========================================================================
    # ERROR HANDLERS
    # =========================================================================

    @app.errorhandler(CryptoStoreError)
    def handle_store_error(e: CryptoStoreError):
        status = error_status(e)
        if status >= 500:
            logger.warning(f"{e.code}: {e}")
        else:
            logger.info(f"Rejected request - {e.code}: {e.message}")
        return e.to_dict(), status

    @app.errorhandler(HTTPException)
    def handle_http_error(e: HTTPException):
        return {"error": e.name, "message": e.description, "details": {}}, e.code

    @app.errorhandler(Exception)
    def handle_server_error(e: Exception):
        logger.error(f"500 error: {e}", exc_info=True)
        return {
            "error": "InternalError",
            "message": "An unexpected error occurred. Please try again.",
            "details": {},
        }, 500

    # =========================================================================
    # CLI
    # =========================================================================

    @app.cli.command("init-db")
    def init_db_command():
        """Create database tables."""
        database.create_all()
        click.echo("Database schema created.")

    logger.info("Application initialized successfully")
    return app


if __name__ == "__main__":
    app = create_app()
    debug_mode = os.environ.get("FLASK_DEBUG", "1") == "1"
    app.run(debug=debug_mode)
