# Overview: Flask API routes for product catalogue, tiers, variants and stock.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_business, require_permission
from ..services import permission_service
from ..services import products_service
from .errors import DOMAIN_ERRORS, error_response, json_body


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _can_see_cost() -> bool:
    return permission_service.has_access(g.current_user, g.membership, "VIEW_COST_PRICE")


@products_bp.get("")
@require_auth
@require_business
@require_permission("VIEW_INVENTORY")
def list_products_route():
    """
    Query params: search, category, include_inactive (true/false),
    sort (name | price | stock | category | created), desc (true/false)
    """
    products = products_service.list_products(
        g.business_id,
        search=request.args.get("search"),
        category=request.args.get("category"),
        include_inactive=request.args.get("include_inactive", "false").lower() == "true",
        sort=request.args.get("sort", "name"),
        descending=request.args.get("desc", "false").lower() == "true",
    )
    include_cost = _can_see_cost()
    return jsonify({"items": [p.to_dict(include_cost=include_cost) for p in products]}), 200


@products_bp.get("/categories")
@require_auth
@require_business
@require_permission("VIEW_INVENTORY")
def list_categories_route():
    return jsonify({"categories": products_service.list_categories(g.business_id)}), 200


@products_bp.post("")
@require_auth
@require_business
@require_permission("CREATE_PRODUCT")
def create_product_route():
    try:
        product = products_service.create_product(business_id=g.business_id, payload=json_body())
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(product.to_dict()), 201


@products_bp.get("/<int:product_id>")
@require_auth
@require_business
@require_permission("VIEW_INVENTORY")
def get_product_route(product_id: int):
    try:
        product = products_service.get_product(g.business_id, product_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(product.to_dict(include_cost=_can_see_cost())), 200


@products_bp.patch("/<int:product_id>")
@require_auth
@require_business
@require_permission("EDIT_PRODUCT")
def update_product_route(product_id: int):
    try:
        product = products_service.update_product(business_id=g.business_id, product_id=product_id, payload=json_body())
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(product.to_dict()), 200


@products_bp.put("/<int:product_id>/commission")
@require_auth
@require_business
@require_permission("EDIT_PRODUCT")
def set_commission_route(product_id: int):
    """Request body: {"commission_percentage": number}; clamped to 0..100."""
    data = json_body()
    if data.get("commission_percentage") is None:
        return jsonify({"error": "commission_percentage is required"}), 400
    try:
        product = products_service.set_commission(
            business_id=g.business_id,
            product_id=product_id,
            percentage=data["commission_percentage"],
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except ArithmeticError:
        return jsonify({"error": "commission_percentage must be a number"}), 400
    return jsonify(product.to_dict()), 200


@products_bp.post("/<int:product_id>/stock-adjustments")
@require_auth
@require_business
@require_permission("ADJUST_STOCK")
def adjust_stock_route(product_id: int):
    """Request body: {"delta": int (non-zero), "reason": str, "variant_id"?: int}"""
    data = json_body()
    try:
        entry = products_service.adjust_stock(
            business_id=g.business_id,
            product_id=product_id,
            delta=data.get("delta"),
            reason=data.get("reason"),
            user_id=g.current_user.id,
            variant_id=data.get("variant_id"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(entry.to_dict()), 201


@products_bp.get("/<int:product_id>/stock-history")
@require_auth
@require_business
@require_permission("VIEW_INVENTORY")
def stock_history_route(product_id: int):
    try:
        rows = products_service.stock_history(g.business_id, product_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify({"items": [row.to_dict() for row in rows]}), 200
