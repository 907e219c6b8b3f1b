# Overview: Flask API routes for the counter: cart, selections and the checkout state machine.

# backend/fintab/routes/checkout.py
"""
Checkout API routes

One checkout session per operator per business. Flow:

    PUT  /cart, PATCH /selection     build the sale (idle)
    POST /begin                      validate + freeze snapshot
    POST /bank-details               bank receipt payments only
    POST /confirm                    emit the Sale
    POST /reset                      recover (restart or resume)
"""

from flask import Blueprint, current_app, g, jsonify

from ..decorators import require_auth, require_business, require_permission
from ..services import checkout_service
from ..services import tenant_service
from .errors import DOMAIN_ERRORS, error_response, json_body


checkout_bp = Blueprint("checkout", __name__, url_prefix="/api/checkout")

SELECTION_FIELDS = ("customer_id", "staff_user_id", "payment_method", "discount_cents", "tax_rate")


def _context():
    business = tenant_service.get_business(g.business_id)
    session = checkout_service.get_session(business, g.current_user.id)
    return business, session


def _state(session) -> dict:
    data = session.to_dict()
    data["quote"] = checkout_service.quote(session, g.current_user, g.membership)
    return data


@checkout_bp.get("")
@require_auth
@require_business
@require_permission("VIEW_COUNTER")
def get_checkout_route():
    _business, session = _context()
    return jsonify(_state(session)), 200


@checkout_bp.put("/cart")
@require_auth
@require_business
@require_permission("VIEW_COUNTER")
def update_cart_route():
    """Request body: {"product_id", "quantity", "variant_id"?}; quantity <= 0 removes."""
    data = json_body()
    _business, session = _context()
    try:
        checkout_service.update_cart_item(
            session,
            product_id=data.get("product_id"),
            quantity=data.get("quantity"),
            variant_id=data.get("variant_id"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(_state(session)), 200


@checkout_bp.delete("/cart")
@require_auth
@require_business
@require_permission("VIEW_COUNTER")
def clear_cart_route():
    _business, session = _context()
    try:
        checkout_service.clear_cart(session)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(_state(session)), 200


@checkout_bp.patch("/selection")
@require_auth
@require_business
@require_permission("VIEW_COUNTER")
def update_selection_route():
    """Any of customer_id, staff_user_id, payment_method, discount_cents, tax_rate."""
    data = json_body()
    business, session = _context()
    changes = {key: data[key] for key in SELECTION_FIELDS if key in data}
    try:
        checkout_service.update_selection(session, business, g.current_user, g.membership, **changes)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(_state(session)), 200


@checkout_bp.post("/begin")
@require_auth
@require_business
@require_permission("VIEW_COUNTER")
def begin_checkout_route():
    business, session = _context()
    try:
        result = checkout_service.begin_checkout(session, business, g.current_user, g.membership)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    if result is None:
        return jsonify({"message": "Checkout already processing", "status": session.status}), 202
    return jsonify(_state(session)), 200


@checkout_bp.post("/bank-details")
@require_auth
@require_business
@require_permission("VIEW_COUNTER")
def bank_details_route():
    """Request body: {"bank_account_id", "receipt_number"}"""
    data = json_body()
    _business, session = _context()
    try:
        checkout_service.provide_bank_details(
            session,
            bank_account_id=data.get("bank_account_id"),
            receipt_number=data.get("receipt_number"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(_state(session)), 200


@checkout_bp.post("/confirm")
@require_auth
@require_business
@require_permission("VIEW_COUNTER")
def confirm_checkout_route():
    """
    Request body: {"cash_received_cents"?: int}

    Returns:
        201: Sale created (cart cleared, selections reset)
        202: another confirm is already processing this session
        400/403/409: validation / authorization / state or stock conflict
    """
    data = json_body()
    business, session = _context()
    try:
        sale = checkout_service.confirm_checkout(
            session,
            business,
            g.current_user,
            cash_received_cents=data.get("cash_received_cents"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    if sale is None:
        return jsonify({"message": "Checkout already processing"}), 202

    current_app.logger.info(
        "sale completed business=%s sale=%s status=%s total=%s",
        business.id, sale.document_number, sale.status, sale.total_cents,
    )
    return jsonify({"sale": sale.to_dict(), "session": _state(session)}), 201


@checkout_bp.post("/reset")
@require_auth
@require_business
@require_permission("VIEW_COUNTER")
def reset_checkout_route():
    """Request body: {"mode": "restart" | "resume"} (default restart)."""
    mode = json_body().get("mode", "restart")
    if mode not in ("restart", "resume"):
        return jsonify({"error": "mode must be restart or resume"}), 400
    business, session = _context()
    checkout_service.reset_session(session, business, clear_cart=(mode == "restart"))
    return jsonify(_state(session)), 200
