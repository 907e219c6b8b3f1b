# Overview: Flask API routes for bank accounts, deposits, transfers and ledger checks.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_business, require_permission
from ..services import bank_service
from .errors import DOMAIN_ERRORS, error_response, json_body


bank_bp = Blueprint("bank", __name__, url_prefix="/api/bank")


@bank_bp.get("/accounts")
@require_auth
@require_business
@require_permission("VIEW_BANK_ACCOUNTS")
def list_accounts_route():
    include_inactive = request.args.get("include_inactive", "true").lower() == "true"
    accounts = bank_service.list_accounts(g.business_id, include_inactive=include_inactive)
    return jsonify({"items": [a.to_dict() for a in accounts]}), 200


@bank_bp.post("/accounts")
@require_auth
@require_business
@require_permission("MANAGE_BANK_ACCOUNTS")
def create_account_route():
    """Request body: {"bank_name", "account_name", "account_number", "opening_balance_cents"?}"""
    data = json_body()
    try:
        account = bank_service.create_account(
            business_id=g.business_id,
            bank_name=data.get("bank_name"),
            account_name=data.get("account_name"),
            account_number=data.get("account_number"),
            opening_balance_cents=data.get("opening_balance_cents", 0),
            user_id=g.current_user.id,
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(account.to_dict()), 201


@bank_bp.get("/accounts/<int:account_id>")
@require_auth
@require_business
@require_permission("VIEW_BANK_ACCOUNTS")
def get_account_route(account_id: int):
    try:
        account = bank_service.get_account(g.business_id, account_id)
        transactions = bank_service.list_transactions(g.business_id, account_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    data = account.to_dict()
    data["transactions"] = [t.to_dict() for t in transactions]
    return jsonify(data), 200


@bank_bp.patch("/accounts/<int:account_id>")
@require_auth
@require_business
@require_permission("MANAGE_BANK_ACCOUNTS")
def set_status_route(account_id: int):
    """Request body: {"status": "Active" | "Inactive"}"""
    try:
        account = bank_service.set_account_status(
            business_id=g.business_id,
            account_id=account_id,
            status=json_body().get("status"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(account.to_dict()), 200


@bank_bp.post("/accounts/<int:account_id>/deposits")
@require_auth
@require_business
@require_permission("MANAGE_BANK_ACCOUNTS")
def deposit_route(account_id: int):
    """Request body: {"amount_cents": int > 0, "description"?}"""
    data = json_body()
    try:
        tx = bank_service.deposit(
            business_id=g.business_id,
            account_id=account_id,
            amount_cents=data.get("amount_cents"),
            user_id=g.current_user.id,
            description=data.get("description"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    current_app.logger.info("deposit account=%s amount=%s by user=%s", account_id, tx.amount_cents, g.current_user.id)
    return jsonify(tx.to_dict()), 201


@bank_bp.post("/accounts/<int:account_id>/withdrawals")
@require_auth
@require_business
@require_permission("MANAGE_BANK_ACCOUNTS")
def withdraw_route(account_id: int):
    data = json_body()
    try:
        tx = bank_service.withdraw(
            business_id=g.business_id,
            account_id=account_id,
            amount_cents=data.get("amount_cents"),
            user_id=g.current_user.id,
            description=data.get("description"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    current_app.logger.info("withdrawal account=%s amount=%s by user=%s", account_id, -tx.amount_cents, g.current_user.id)
    return jsonify(tx.to_dict()), 201


@bank_bp.post("/transfers")
@require_auth
@require_business
@require_permission("MANAGE_BANK_ACCOUNTS")
def transfer_route():
    """
    Request body: {"from_account_id", "to_account_id", "amount_cents", "description"?}

    Returns:
        201: both legs of the transfer
        400: amount <= 0, same account, inactive account
        409: insufficient funds
    """
    data = json_body()
    try:
        out_tx, in_tx = bank_service.transfer(
            business_id=g.business_id,
            from_account_id=data.get("from_account_id"),
            to_account_id=data.get("to_account_id"),
            amount_cents=data.get("amount_cents"),
            user_id=g.current_user.id,
            description=data.get("description"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    current_app.logger.info("transfer %s amount=%s by user=%s", out_tx.reference_id, in_tx.amount_cents, g.current_user.id)
    return jsonify({"transfer_out": out_tx.to_dict(), "transfer_in": in_tx.to_dict()}), 201


@bank_bp.get("/accounts/<int:account_id>/verify")
@require_auth
@require_business
@require_permission("VIEW_BANK_ACCOUNTS")
def verify_ledger_route(account_id: int):
    try:
        account = bank_service.get_account(g.business_id, account_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(bank_service.verify_ledger(account)), 200
