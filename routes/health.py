"""
Health check route.

Reports database reachability, gateway session state and whether the
settlement sweep is running.
"""

from flask import Blueprint, current_app


health_bp = Blueprint("health", __name__)


@health_bp.route("/health", methods=["GET"])
def health():
    """Health check endpoint with service status."""
    health_status = {
        "status": "ok",
        "environment": current_app.config.get("ENVIRONMENT", "unknown"),
        "checks": {}
    }

    database = current_app.config.get("DATABASE")
    if database and database.ping():
        health_status["checks"]["database"] = "ok"
    else:
        health_status["checks"]["database"] = "unavailable"
        health_status["status"] = "degraded"

    gateway_manager = current_app.config.get("GATEWAY_MANAGER")
    if gateway_manager is None:
        # Injected gateway (tests, embedded hosts); nothing to check
        health_status["checks"]["gateway"] = "external"
    elif gateway_manager.is_initialized and gateway_manager.ping():
        health_status["checks"]["gateway"] = "ok"
    else:
        health_status["checks"]["gateway"] = "unavailable"
        health_status["status"] = "degraded"

    sweep = current_app.config.get("SWEEP_SERVICE")
    if sweep is None:
        health_status["checks"]["sweep"] = "disabled"
    else:
        health_status["checks"]["sweep"] = "running" if sweep.is_running else "stopped"

    status_code = 200 if health_status["status"] == "ok" else 503
    return health_status, status_code
