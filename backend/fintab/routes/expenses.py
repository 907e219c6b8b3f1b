# Overview: Flask API routes for expense requests, reviews and booked expenses.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_business, require_permission
from ..services import expense_service
from ..services import permission_service
from .errors import DOMAIN_ERRORS, error_response, json_body


expenses_bp = Blueprint("expenses", __name__, url_prefix="/api/expenses")


@expenses_bp.get("")
@require_auth
@require_business
@require_permission("VIEW_EXPENSES")
def list_expenses_route():
    expenses = expense_service.list_expenses(g.business_id)
    return jsonify({"items": [e.to_dict() for e in expenses]}), 200


@expenses_bp.get("/requests")
@require_auth
@require_business
@require_permission("CREATE_EXPENSE_REQUEST")
def list_requests_route():
    """Reviewers see every request; everyone else sees their own."""
    user_id = None
    if not permission_service.has_access(g.current_user, g.membership, "APPROVE_EXPENSE"):
        user_id = g.current_user.id
    try:
        rows = expense_service.list_requests(g.business_id, status=request.args.get("status"), user_id=user_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify({"items": [r.to_dict() for r in rows]}), 200


@expenses_bp.post("/requests")
@require_auth
@require_business
@require_permission("CREATE_EXPENSE_REQUEST")
def create_request_route():
    """Request body: {"category", "description", "amount_cents", "payment_method"?, "merchant"?}"""
    try:
        row = expense_service.create_request(business_id=g.business_id, user=g.current_user, payload=json_body())
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(row.to_dict()), 201


@expenses_bp.post("/requests/<int:request_id>/review")
@require_auth
@require_business
def review_request_route(request_id: int):
    """Request body: {"approve": bool, "reason"?: str (required to reject)}"""
    data = json_body()
    if not isinstance(data.get("approve"), bool):
        return jsonify({"error": "approve must be true or false"}), 400
    try:
        row = expense_service.review(
            business_id=g.business_id,
            request_id=request_id,
            actor=g.current_user,
            membership=g.membership,
            approve=data["approve"],
            reason=data.get("reason"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(row.to_dict()), 200
