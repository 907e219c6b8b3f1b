# backend/fintab/routes/system.py
"""
System health, incident log and checkout recovery endpoints.

The incident log is written by the app-level error boundary (see
fintab.create_app); this blueprint reads it and offers the two recovery
choices: restart (clear cart and selections) or resume (keep them).
"""

import time
from flask import Blueprint, current_app, g, jsonify
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Business, SessionToken, User
from ..decorators import require_auth, require_business, require_owner_or_admin
from ..services import checkout_service
from ..services import incident_service
from ..services import tenant_service
from fintab.time_utils import utcnow
from .errors import json_body

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        business_count = db.session.query(Business).count()
        active_sessions = db.session.query(SessionToken).filter_by(is_revoked=False).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
                "businesses": business_count,
                "active_sessions": active_sessions,
            }
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 200 if database_health["status"] == "healthy" else 503

    return {
        "status": database_health["status"],
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {"database": database_health},
    }, http_status


@system_bp.get("/api/system/incidents")
@require_auth
@require_business
@require_owner_or_admin
def list_incidents_route():
    """Most recent unexpected failures in this business (newest first)."""
    incidents = incident_service.list_incidents(g.business_id)
    return jsonify({"items": [i.to_dict() for i in incidents]}), 200


@system_bp.post("/api/system/recover")
@require_auth
@require_business
def recover_route():
    """
    Recover the caller's checkout after a failure.

    Request body: {"mode": "restart" | "resume"}
    - restart: clear cart and selections, back to idle
    - resume: back to idle with cart and selections kept
    """
    mode = json_body().get("mode", "restart")
    if mode not in ("restart", "resume"):
        return jsonify({"error": "mode must be restart or resume"}), 400

    business = tenant_service.get_business(g.business_id)
    session = checkout_service.get_session(business, g.current_user.id)
    checkout_service.reset_session(session, business, clear_cart=(mode == "restart"))
    current_app.logger.info("checkout recovered mode=%s user=%s business=%s", mode, g.current_user.id, business.id)
    return jsonify({"mode": mode, "session": session.to_dict()}), 200
