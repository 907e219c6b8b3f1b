# Overview: Flask API routes for receipts, bank-receipt verification and commission reports.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_business, require_permission
from ..services import permission_service
from ..services import sales_service
from ..validation import ValidationError
from fintab.time_utils import parse_iso_date
from .errors import DOMAIN_ERRORS, error_response, json_body


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _date_arg(name):
    try:
        return parse_iso_date(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be YYYY-MM-DD")


@sales_bp.get("")
@require_auth
@require_business
@require_permission("VIEW_RECEIPTS")
def list_sales_route():
    """
    Query params: status, customer_id, staff_user_id, from, to (YYYY-MM-DD),
    limit (default 100, max 500), offset
    """
    try:
        rows, total = sales_service.list_sales(
            g.business_id,
            status=request.args.get("status"),
            customer_id=request.args.get("customer_id", type=int),
            staff_user_id=request.args.get("staff_user_id", type=int),
            from_date=_date_arg("from"),
            to_date=_date_arg("to"),
            limit=request.args.get("limit", 100, type=int),
            offset=request.args.get("offset", 0, type=int),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify({"items": [s.to_dict(include_lines=False) for s in rows], "total": total}), 200


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_business
@require_permission("VIEW_RECEIPTS")
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(g.business_id, sale_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(sale.to_dict()), 200


@sales_bp.post("/<int:sale_id>/bank-verification")
@require_auth
@require_business
def verify_bank_sale_route(sale_id: int):
    """
    Request body: {"approve": bool, "note"?: str}

    Allowed for VERIFY_BANK_SALE holders and the bank_verifier workflow role.
    """
    data = json_body()
    if not isinstance(data.get("approve"), bool):
        return jsonify({"error": "approve must be true or false"}), 400
    try:
        sale = sales_service.verify_bank_sale(
            business_id=g.business_id,
            sale_id=sale_id,
            actor=g.current_user,
            membership=g.membership,
            approve=data["approve"],
            note=data.get("note"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    current_app.logger.info("bank sale %s -> %s by user=%s", sale.document_number, sale.status, g.current_user.id)
    return jsonify(sale.to_dict()), 200


@sales_bp.get("/commissions")
@require_auth
@require_business
@require_permission("VIEW_RECEIPTS")
def commissions_route():
    """
    Commission per staff member over finalized sales.

    Without VIEW_ALL_COMMISSIONS a user sees only their own row.
    """
    staff_user_id = request.args.get("staff_user_id", type=int)
    if not permission_service.has_access(g.current_user, g.membership, "VIEW_ALL_COMMISSIONS"):
        staff_user_id = g.current_user.id
    try:
        rows = sales_service.commission_summary(
            g.business_id,
            from_date=_date_arg("from"),
            to_date=_date_arg("to"),
            staff_user_id=staff_user_id,
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify({"items": rows}), 200
