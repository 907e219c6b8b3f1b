# Overview: Flask API routes for the signed-in user's in-app notifications.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_business
from ..services import notification_service
from .errors import DOMAIN_ERRORS, error_response


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
@require_business
def list_notifications_route():
    rows = notification_service.list_notifications(
        g.business_id,
        g.current_user.id,
        unread_only=request.args.get("unread", "false").lower() == "true",
        limit=min(request.args.get("limit", 50, type=int), 200),
    )
    return jsonify({"items": [n.to_dict() for n in rows]}), 200


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
@require_business
def mark_read_route(notification_id: int):
    try:
        row = notification_service.mark_read(g.business_id, g.current_user.id, notification_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(row.to_dict()), 200


@notifications_bp.post("/read-all")
@require_auth
@require_business
def mark_all_read_route():
    count = notification_service.mark_all_read(g.business_id, g.current_user.id)
    return jsonify({"updated": count}), 200
