# backend/balepos/routes/system.py
"""
System health, version and remote mirror endpoints.
"""

import sys
import time
from flask import Blueprint, current_app, request, jsonify
from ..extensions import db
from ..models import Bale, Order
from ..decorators import require_approved_device
from ..services import mirror_service, settings_service
from ..services.mirror_service import MirrorError
from balepos.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        bale_count = db.session.query(Bale).count()
        order_count = db.session.query(Order).count()
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"bales": bale_count, "orders": order_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_mirror_health() -> dict:
    """Outbox backlog; a growing pending count means the remote is unreachable."""
    if not mirror_service.mirror_enabled():
        return {"status": "disabled"}
    try:
        status = mirror_service.outbox_status()
    except Exception:
        current_app.logger.exception("Mirror health check failed")
        return {"status": "unhealthy", "error": "Mirror outbox error"}
    return {"status": "degraded" if status["failing"] else "healthy", "details": status}


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded (mirror backlog)
    - 503: database unreachable
    """
    start_time = time.time()
    database_health = check_database_health()
    mirror_health = check_mirror_health()

    if database_health["status"] == "unhealthy":
        overall_status, http_status = "unhealthy", 503
    elif mirror_health["status"] in ("degraded", "unhealthy"):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {"database": database_health, "mirror": mirror_health},
    }
    return response, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information."""
    env = "production" if not current_app.debug else "development"
    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": utcnow().isoformat() + "Z",
    }


@system_bp.get("/data-version")
def data_version():
    """Cheap poll target; clients re-read availability when it moves."""
    settings = settings_service.get_settings()
    db.session.commit()
    return {"data_version": settings.data_version}


@system_bp.get("/mirror/status")
@require_approved_device
def mirror_status():
    return mirror_service.outbox_status()


@system_bp.post("/mirror/flush")
@require_approved_device
def mirror_flush():
    limit = request.args.get("limit", default=200, type=int)
    try:
        result = mirror_service.flush_outbox(limit=limit)
        return jsonify(result), 200
    except MirrorError as e:
        return jsonify({"error": str(e)}), 503
    except Exception:
        current_app.logger.exception("Failed to flush mirror outbox")
        return jsonify({"error": "Internal server error"}), 500
