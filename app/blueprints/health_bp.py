"""
Health check blueprint.

Endpoints:
    GET /api/health       — plain "OK" for load balancers
    GET /api/health/live  — store round-trip with latency
"""

import logging
import time

from flask import Blueprint, Response, current_app, jsonify

from app.core.exceptions import StorageUnavailableError
from app.store import get_store

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/health")


@health_bp.route("", methods=["GET"])
def ready():
    """Readiness probe — always 200 if the app is running."""
    return Response("OK", status=200, mimetype="text/plain")


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check including the key-value store."""
    checks = {}
    overall = True

    store = get_store()
    try:
        t0 = time.perf_counter()
        store.ping()
        store_ms = (time.perf_counter() - t0) * 1000
        checks["store"] = {
            "status": "ok",
            "backend": store.backend_name,
            "latency_ms": round(store_ms, 1),
        }
    except StorageUnavailableError:
        checks["store"] = {"status": "error", "backend": store.backend_name}
        overall = False
        logger.error("Health check — store unavailable")

    checks["app"] = {
        "name": "Ticketing API",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
