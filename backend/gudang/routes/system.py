# backend/gudang/routes/system.py
"""System health and version endpoints."""

import sys
import time
from flask import Blueprint, current_app

from ..errors import StoreUnavailable
from ..services.row_store import TABLE_PRODUCTS, get_row_store
from gudang.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_store_health() -> dict:
    """Round-trip a read through the RowStore."""
    start_time = time.time()
    try:
        product_count = len(get_row_store().list_rows(TABLE_PRODUCTS))
    except StoreUnavailable:
        current_app.logger.exception("Row store health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Backing store unavailable",
        }

    return {
        "status": "healthy",
        "latency_ms": round((time.time() - start_time) * 1000, 2),
        "details": {"products": product_count},
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: backing store reachable
    - 503: backing store unavailable
    """
    store_health = check_store_health()
    http_status = 200 if store_health["status"] == "healthy" else 503

    return {
        "status": store_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"row_store": store_health},
    }, http_status


@system_bp.get("/version")
def version():
    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "0.1.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
