# Overview: Flask API routes for audit records and their sign-off ladder.

# backend/fintab/routes/approvals.py
"""
Approval API routes

Every audit kind shares the same endpoints:

    GET  /api/approvals/<kind>                      list (status filter)
    POST /api/approvals/<kind>                      submit (first signature)
    GET  /api/approvals/<kind>/<id>                 record with signatures and audit log
    POST /api/approvals/<kind>/<id>/advance         next signature {"from_stage", "note"?}
    POST /api/approvals/<kind>/<id>/finalize        outcome {"outcome", "note"?}

kind: cash_count | goods_receiving | weekly_inventory_check | goods_costing
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_business, require_permission
from ..services import approval_kinds
from ..services import approval_service
from ..services import sales_service
from ..services import tenant_service
from ..validation import ValidationError
from fintab.time_utils import parse_iso_date, utcnow
from .errors import DOMAIN_ERRORS, error_response, json_body


approvals_bp = Blueprint("approvals", __name__, url_prefix="/api/approvals")


@approvals_bp.get("/kinds")
@require_auth
@require_business
@require_permission("VIEW_AUDITS")
def list_kinds_route():
    """Stage ladder per kind, for rendering the sign-off progress."""
    return jsonify({
        kind: {
            "label": workflow.label,
            "stages": [
                {"name": s.name, "status": s.status, "role_key": s.role_key}
                for s in workflow.stages
            ],
            "final_role": workflow.final_role,
            "outcomes": sorted(workflow.outcomes),
        }
        for kind, workflow in approval_kinds.WORKFLOWS.items()
    }), 200


@approvals_bp.get("/cash_count/expected")
@require_auth
@require_business
@require_permission("VIEW_AUDITS")
def cash_expected_route():
    """Completed cash sales total for ?date= (default today)."""
    try:
        day = parse_iso_date(request.args.get("date")) or utcnow().date()
    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400
    return jsonify({
        "date": day.isoformat(),
        "expected_amount_cents": sales_service.cash_sales_total(g.business_id, day),
    }), 200


@approvals_bp.get("/weekly_inventory_check/suggested-items")
@require_auth
@require_business
@require_permission("VIEW_AUDITS")
def suggested_items_route():
    """Products to count this week (?count= overrides the business setting)."""
    business = tenant_service.get_business(g.business_id)
    count = request.args.get("count", type=int)
    if count is not None and count < 0:
        return jsonify({"error": "count must be >= 0"}), 400
    products = approval_service.select_audit_items(business, count)
    return jsonify({
        "items": [
            {
                "product_id": p.id,
                "product_name": p.name,
                "product_number": p.sku,
                "expected_quantity": p.stock,
            }
            for p in products
        ]
    }), 200


@approvals_bp.get("/costing-preview")
@require_auth
@require_business
@require_permission("VIEW_AUDITS")
def costing_preview_route():
    """Landed cost figures without creating a record."""
    try:
        quantity = request.args.get("quantity", 0, type=int)
        buying = request.args.get("buying_unit_price_cents", 0, type=int)
        margin = request.args.get("margin_percentage", "0")
        costs = {key: request.args.get(key, 0, type=int) for key in approval_kinds.ADDITIONAL_COST_KEYS}
        figures = approval_kinds.costing_figures(quantity, buying, costs, margin)
    except ArithmeticError:
        return jsonify({"error": "margin_percentage must be a number"}), 400
    return jsonify(figures), 200


@approvals_bp.get("/<kind>")
@require_auth
@require_business
@require_permission("VIEW_AUDITS")
def list_records_route(kind: str):
    try:
        records = approval_service.list_records(g.business_id, kind=kind, status=request.args.get("status"))
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify({"items": [r.to_dict() for r in records]}), 200


@approvals_bp.post("/<kind>")
@require_auth
@require_business
def submit_record_route(kind: str):
    """Authorization is the first stage's workflow role, checked by the engine."""
    try:
        record = approval_service.submit(
            business=tenant_service.get_business(g.business_id),
            actor=g.current_user,
            membership=g.membership,
            kind=kind,
            payload=json_body(),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    current_app.logger.info("%s %s submitted by user=%s", kind, record.document_number, g.current_user.id)
    return jsonify(record.to_dict()), 201


@approvals_bp.get("/<kind>/<int:record_id>")
@require_auth
@require_business
@require_permission("VIEW_AUDITS")
def get_record_route(kind: str, record_id: int):
    try:
        record = approval_service.get_record(g.business_id, record_id, kind=kind)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(record.to_dict()), 200


@approvals_bp.post("/<kind>/<int:record_id>/advance")
@require_auth
@require_business
def advance_record_route(kind: str, record_id: int):
    data = json_body()
    try:
        if not data.get("from_stage"):
            raise ValidationError("from_stage is required")
        approval_service.get_record(g.business_id, record_id, kind=kind)
        record = approval_service.advance(
            business=tenant_service.get_business(g.business_id),
            record_id=record_id,
            actor=g.current_user,
            membership=g.membership,
            from_stage=data["from_stage"],
            note=data.get("note"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    current_app.logger.info("%s %s -> %s by user=%s", kind, record.document_number, record.status, g.current_user.id)
    return jsonify(record.to_dict()), 200


@approvals_bp.post("/<kind>/<int:record_id>/finalize")
@require_auth
@require_business
def finalize_record_route(kind: str, record_id: int):
    data = json_body()
    try:
        if not data.get("outcome"):
            raise ValidationError("outcome is required")
        approval_service.get_record(g.business_id, record_id, kind=kind)
        record = approval_service.finalize(
            business=tenant_service.get_business(g.business_id),
            record_id=record_id,
            actor=g.current_user,
            membership=g.membership,
            outcome=data["outcome"],
            note=data.get("note"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    current_app.logger.info("%s %s finalized as %s by user=%s", kind, record.document_number, record.status, g.current_user.id)
    return jsonify(record.to_dict()), 200
