"""
System health endpoint.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import Organization, SessionToken
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """Check database connectivity with a couple of cheap counts."""
    start_time = time.time()
    try:
        org_count = db.session.query(Organization).count()
        active_sessions = db.session.query(SessionToken).filter(
            SessionToken.is_revoked.is_(False),
            SessionToken.expires_at >= utcnow(),
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "organizations": org_count,
                "active_sessions": active_sessions,
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


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    database_health = check_database_health()
    healthy = database_health["status"] == "healthy"

    return {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database_health},
    }, 200 if healthy else 503
