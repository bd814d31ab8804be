# backend/storefront/routes/system.py
"""
System health endpoint.

Checks database connectivity and that the tier reference table is seeded;
order creation cannot price anything without it.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import UserTier
from ..services.tier_service import TIER_TABLE
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__, url_prefix="/api/system")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        tier_count = db.session.query(UserTier).count()
        elapsed_ms = (time.time() - start_time) * 1000

        if tier_count < len(TIER_TABLE):
            return {
                "status": "degraded",
                "latency_ms": round(elapsed_ms, 2),
                "warning": "Tier table not seeded; run `flask system init`",
                "details": {"tiers": tier_count},
            }
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"tiers": tier_count},
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    return {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database_health},
    }, http_status
