# Overview: Flask API routes for the customer registry.

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth, require_business, require_permission
from ..services import customer_service
from ..services.sales_service import FINALIZED_SALE_STATUSES
from .errors import DOMAIN_ERRORS, error_response, json_body


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_auth
@require_business
@require_permission("VIEW_CUSTOMERS")
def list_customers_route():
    customers = customer_service.list_customers(
        g.business_id,
        search=request.args.get("search"),
        sort=request.args.get("sort", "name"),
        descending=request.args.get("desc", "false").lower() == "true",
    )
    return jsonify({"items": [c.to_dict() for c in customers]}), 200


@customers_bp.post("")
@require_auth
@require_business
@require_permission("CREATE_CUSTOMER")
def create_customer_route():
    try:
        customer = customer_service.create_customer(business_id=g.business_id, payload=json_body())
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(customer.to_dict()), 201


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_business
@require_permission("VIEW_CUSTOMERS")
def get_customer_route(customer_id: int):
    """Customer with purchase history."""
    try:
        customer = customer_service.get_customer(g.business_id, customer_id)
        history = customer_service.purchase_history(g.business_id, customer_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    data = customer.to_dict()
    data["purchases"] = [sale.to_dict(include_lines=False) for sale in history]
    data["total_spent_cents"] = sum(sale.total_cents for sale in history if sale.status in FINALIZED_SALE_STATUSES)
    return jsonify(data), 200


@customers_bp.patch("/<int:customer_id>")
@require_auth
@require_business
@require_permission("EDIT_CUSTOMER")
def update_customer_route(customer_id: int):
    try:
        customer = customer_service.update_customer(business_id=g.business_id, customer_id=customer_id, payload=json_body())
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(customer.to_dict()), 200
