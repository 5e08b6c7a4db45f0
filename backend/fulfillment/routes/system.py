# backend/fulfillment/routes/system.py
"""
System health endpoint.

Reports database connectivity plus the core table counts, and whether the
audit and notification sinks are installed.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Request, UserWarehouse, Warehouse
from fulfillment.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        warehouse_count = db.session.query(Warehouse).count()
        assignment_count = db.session.query(UserWarehouse).count()
        request_count = db.session.query(Request).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "warehouses": warehouse_count,
                "assignments": assignment_count,
                "requests": request_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_sinks_health() -> dict:
    missing = [
        name for name in ("audit_sink", "notification_sink")
        if current_app.extensions.get(name) is None
    ]
    if missing:
        return {"status": "degraded", "warning": f"Missing sinks: {', '.join(missing)}"}
    return {"status": "healthy"}


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded (sinks missing; side effects are skipped)
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    sinks_health = check_sinks_health()

    all_checks = [database_health, sinks_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status = "unhealthy"
        http_status = 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status = "degraded"
        http_status = 200  # Degraded is still operational
    else:
        overall_status = "healthy"
        http_status = 200

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "sinks": sinks_health,
        }
    }

    return response, http_status
