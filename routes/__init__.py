"""
Flask route blueprints for CryptoStore.

- orders: create-order, verify-payment, payment request retry, order lookup
- health: service health check

Each blueprint is registered with the Flask app in create_app().
"""

from .orders import orders_bp
from .health import health_bp

__all__ = [
    "orders_bp",
    "health_bp",
]


def register_blueprints(app):
    """
    Register all blueprints with the Flask app.

    Args:
        app: Flask application instance
    """
    app.register_blueprint(orders_bp)
    app.register_blueprint(health_bp)
