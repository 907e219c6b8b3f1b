# Overview: Flask API routes for sign-up, sign-in, sessions and invitation redemption.

# backend/fintab/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- Password strength validation on sign-up
- Failed sign-ins written to security_events
- Session management with hashed bearer tokens
- Business selection stored on the session, checked on every request
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..services import auth_service
from ..services import permission_service
from ..services import session_service
from ..services import tenant_service
from ..decorators import require_auth
from .errors import DOMAIN_ERRORS, error_response, json_body


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def _session_payload(user, session, token=None) -> dict:
    membership = permission_service.get_membership(user.id, session.business_id)
    data = {
        "user": user.to_dict(),
        "session": session.to_dict(),
        "business_id": session.business_id,
        "role": membership.role if membership else None,
        "permissions": sorted(permission_service.get_user_permissions(user, membership)),
        "businesses": tenant_service.list_user_businesses(user),
    }
    if token is not None:
        data["token"] = token
    return data


@auth_bp.post("/register")
def register_route():
    """
    Create an account and sign it in.

    Request body: {"email", "password", "display_name", "phone"?}
    """
    data = json_body()
    try:
        user = auth_service.sign_up(
            data.get("email"),
            data.get("password") or "",
            data.get("display_name"),
            phone=data.get("phone"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)

    session, token = session_service.create_session(
        user,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    current_app.logger.info("user registered id=%s", user.id)
    return jsonify(_session_payload(user, session, token)), 201


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    """
    data = json_body()
    email = data.get("email")
    password = data.get("password")

    if not all([email, password]):
        return jsonify({"error": "email and password required"}), 400

    user = auth_service.authenticate(email, password)
    if not user:
        permission_service.log_security_event(
            user_id=None,
            event_type="LOGIN_FAILED",
            success=False,
            resource="/api/auth/login",
            reason="Invalid credentials",
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        return jsonify({"error": "Invalid credentials"}), 401

    session, token = session_service.create_session(
        user,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    return jsonify(_session_payload(user, session, token)), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    token = request.headers["Authorization"].split(" ", 1)[1]
    session_service.revoke_session(token)
    return jsonify({"message": "Logged out"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify(_session_payload(g.current_user, g.session_context.session)), 200


@auth_bp.post("/switch-business")
@require_auth
def switch_business_route():
    """Select the active business for this session."""
    data = json_body()
    business_id = data.get("business_id")
    if not isinstance(business_id, int):
        return jsonify({"error": "business_id must be an integer"}), 400
    try:
        session = session_service.switch_business(g.session_context.session, business_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(_session_payload(g.current_user, session)), 200


@auth_bp.get("/invitations/<token>")
def invitation_preview_route(token: str):
    """Public preview so the invite page can show business and role."""
    try:
        invitation = tenant_service.get_invitation_by_token(token)
        business = tenant_service.get_business(invitation.business_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify({
        "invitation": invitation.to_dict(include_token=False),
        "business": {"id": business.id, "name": business.name},
    }), 200


@auth_bp.post("/invitations/<token>/redeem")
@require_auth
def redeem_invitation_route(token: str):
    """Join the invited business; the session switches to it."""
    try:
        membership = tenant_service.redeem_invitation(token=token, user=g.current_user)
        session = session_service.switch_business(g.session_context.session, membership.business_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    current_app.logger.info("invitation redeemed user=%s business=%s", g.current_user.id, membership.business_id)
    return jsonify(_session_payload(g.current_user, session)), 200
