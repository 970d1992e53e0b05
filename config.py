"""
Configuration for CryptoStore.

Values come from the environment (and a .env file next to the app).
The payment gateway is required outside of testing: the app fails fast
at startup if PAYMENT_GATEWAY_URL or PAYMENT_GATEWAY_API_KEY is missing.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env file early so environment variables are available for Config class
load_dotenv(override=True)

# Base directory (where this file lives)
BASE_DIR = Path(__file__).resolve().parent


def _env_bool(name: str, default: str) -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_optional_float(name: str):
    value = os.environ.get(name, "").strip()
    return float(value) if value else None


class Config:
    """Default configuration for the Flask application."""

    # Flask settings
    SECRET_KEY = os.environ.get("FLASK_SECRET_KEY", "dev-secret-key")
    ENVIRONMENT = os.environ.get("FLASK_ENV", "development")
    DEBUG = os.environ.get("FLASK_DEBUG", "1") == "1"
    TESTING = False

    # ==========================================================================
    # Order ledger storage
    # ==========================================================================
    DATABASE_URL = os.environ.get(
        "DATABASE_URL", f"sqlite:///{BASE_DIR / 'crypto_store.db'}"
    )
    DATABASE_ECHO = _env_bool("DATABASE_ECHO", "0")

    # ==========================================================================
    # Payment gateway (external Lightning-style network)
    # ==========================================================================
    # One authenticated HTTP session is opened at startup and shared by all
    # request threads. The memo prefix is prepended to "order <id>" on every
    # payment request so payers can match invoices to orders.
    PAYMENT_GATEWAY_URL = os.environ.get("PAYMENT_GATEWAY_URL", "")
    PAYMENT_GATEWAY_API_KEY = os.environ.get("PAYMENT_GATEWAY_API_KEY", "")
    PAYMENT_GATEWAY_TIMEOUT_SECONDS = float(
        os.environ.get("PAYMENT_GATEWAY_TIMEOUT_SECONDS", "10")
    )
    PAYMENT_MEMO_PREFIX = os.environ.get("PAYMENT_MEMO_PREFIX", "CryptoStore")

    # Largest quantity accepted on one cart line
    MAX_LINE_QUANTITY = int(os.environ.get("MAX_LINE_QUANTITY", "10000"))

    # ==========================================================================
    # Settlement sweep (optional background verification)
    # ==========================================================================
    # Clients normally poll verify-payment themselves. The sweep is a safety
    # net for clients that close the tab after paying. Abandonment is a host
    # policy: leave ORDER_ABANDON_AFTER_SECONDS empty to never auto-cancel.
    SETTLEMENT_SWEEP_ENABLED = _env_bool("SETTLEMENT_SWEEP_ENABLED", "0")
    SETTLEMENT_SWEEP_INTERVAL_SECONDS = float(
        os.environ.get("SETTLEMENT_SWEEP_INTERVAL_SECONDS", "30")
    )
    ORDER_ABANDON_AFTER_SECONDS = _env_optional_float("ORDER_ABANDON_AFTER_SECONDS")


class ProductionConfig(Config):
    """Production configuration."""
    DEBUG = False
    TESTING = False
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'


class DevelopmentConfig(Config):
    """Development configuration."""
    DEBUG = True
    TESTING = False


class TestingConfig(Config):
    """Testing configuration."""
    DEBUG = False
    TESTING = True
    DATABASE_URL = "sqlite:///:memory:"
    SETTLEMENT_SWEEP_ENABLED = False
    ORDER_ABANDON_AFTER_SECONDS = None
