# Overview: Flask API routes for business profile, settings, members, invitations and workflow roles.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_business, require_owner_or_admin, require_permission
from ..services import permission_service
from ..services import session_service
from ..services import tenant_service
from ..services import workflow_role_service
from .errors import DOMAIN_ERRORS, error_response, json_body


businesses_bp = Blueprint("businesses", __name__, url_prefix="/api/businesses")


@businesses_bp.get("")
@require_auth
def list_businesses_route():
    return jsonify({"businesses": tenant_service.list_user_businesses(g.current_user)}), 200


@businesses_bp.post("")
@require_auth
def register_business_route():
    """
    Register a new business; the caller becomes its Owner and the session
    switches to it.
    """
    data = json_body()
    try:
        business = tenant_service.register_business(
            owner=g.current_user,
            name=data.get("name"),
            business_type=data.get("business_type"),
            business_email=data.get("business_email"),
            business_phone=data.get("business_phone"),
            date_established=data.get("date_established"),
        )
        session_service.switch_business(g.session_context.session, business.id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    current_app.logger.info("business registered id=%s owner=%s", business.id, g.current_user.id)
    return jsonify(business.to_dict()), 201


@businesses_bp.get("/current")
@require_auth
@require_business
def current_business_route():
    business = tenant_service.get_business(g.business_id)
    return jsonify(business.to_dict()), 200


@businesses_bp.patch("/current/profile")
@require_auth
@require_business
@require_owner_or_admin
def update_profile_route():
    try:
        business = tenant_service.update_business_profile(tenant_service.get_business(g.business_id), json_body())
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(business.to_dict()), 200


@businesses_bp.patch("/current/settings")
@require_auth
@require_business
@require_owner_or_admin
def update_settings_route():
    """
    Patch business settings (default_tax_rate, payment_methods,
    enforce_unique_signers, allow_multiple_assignees, weekly_check_count,
    currency_symbol).
    """
    try:
        business = tenant_service.update_business_settings(tenant_service.get_business(g.business_id), json_body())
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(business.to_dict()), 200


# =============================================================================
# Members and permission overrides
# =============================================================================

@businesses_bp.get("/current/members")
@require_auth
@require_business
@require_permission("VIEW_USERS")
def list_members_route():
    members = tenant_service.list_members(g.business_id)
    return jsonify({"members": [m.to_dict() for m in members]}), 200


@businesses_bp.patch("/current/members/<int:user_id>")
@require_auth
@require_business
@require_owner_or_admin
def update_member_route(user_id: int):
    data = json_body()
    try:
        membership = tenant_service.update_member(
            business_id=g.business_id,
            user_id=user_id,
            role=data.get("role"),
            status=data.get("status"),
            custom_role_name=data.get("custom_role_name"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(membership.to_dict()), 200


@businesses_bp.put("/current/members/<int:user_id>/permissions/<code>")
@require_auth
@require_business
@require_owner_or_admin
def set_override_route(user_id: int, code: str):
    """Request body: {"override_type": "GRANT" | "DENY", "reason"?}"""
    data = json_body()
    try:
        override = permission_service.set_permission_override(
            business_id=g.business_id,
            user_id=user_id,
            permission_code=code,
            override_type=data.get("override_type"),
            granted_by_user_id=g.current_user.id,
            reason=data.get("reason"),
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(override.to_dict()), 200


@businesses_bp.delete("/current/members/<int:user_id>/permissions/<code>")
@require_auth
@require_business
@require_owner_or_admin
def clear_override_route(user_id: int, code: str):
    cleared = permission_service.clear_permission_override(
        business_id=g.business_id,
        user_id=user_id,
        permission_code=code,
    )
    if not cleared:
        return jsonify({"error": "Override not found"}), 404
    return jsonify({"message": "Override cleared"}), 200


# =============================================================================
# Invitations
# =============================================================================

@businesses_bp.get("/current/invitations")
@require_auth
@require_business
@require_permission("MANAGE_USERS")
def list_invitations_route():
    invitations = tenant_service.list_invitations(g.business_id, status=request.args.get("status"))
    return jsonify({"invitations": [i.to_dict(include_token=True) for i in invitations]}), 200


@businesses_bp.post("/current/invitations")
@require_auth
@require_business
@require_permission("MANAGE_USERS")
def create_invitation_route():
    """Request body: {"email", "role"}. The response carries the capability token."""
    data = json_body()
    try:
        invitation = tenant_service.create_invitation(
            business_id=g.business_id,
            email=data.get("email"),
            role=data.get("role"),
            invited_by_user_id=g.current_user.id,
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(invitation.to_dict(include_token=True)), 201


@businesses_bp.delete("/current/invitations/<int:invitation_id>")
@require_auth
@require_business
@require_permission("MANAGE_USERS")
def revoke_invitation_route(invitation_id: int):
    try:
        invitation = tenant_service.revoke_invitation(business_id=g.business_id, invitation_id=invitation_id)
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(invitation.to_dict()), 200


# =============================================================================
# Workflow roles
# =============================================================================

@businesses_bp.get("/current/workflow-roles")
@require_auth
@require_business
def list_workflow_roles_route():
    return jsonify({
        "labels": workflow_role_service.WORKFLOW_ROLES,
        "assignments": workflow_role_service.list_workflow_roles(g.business_id),
    }), 200


@businesses_bp.post("/current/workflow-roles/<role_key>")
@require_auth
@require_business
@require_owner_or_admin
def assign_workflow_role_route(role_key: str):
    """Request body: {"user_id"}"""
    data = json_body()
    try:
        assignment = workflow_role_service.assign_workflow_role(
            business=tenant_service.get_business(g.business_id),
            role_key=role_key,
            user_id=data.get("user_id"),
            assigned_by_user_id=g.current_user.id,
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    return jsonify(assignment.to_dict()), 201


@businesses_bp.delete("/current/workflow-roles/<role_key>/<int:user_id>")
@require_auth
@require_business
@require_owner_or_admin
def unassign_workflow_role_route(role_key: str, user_id: int):
    try:
        removed = workflow_role_service.unassign_workflow_role(
            business_id=g.business_id,
            role_key=role_key,
            user_id=user_id,
        )
    except DOMAIN_ERRORS as e:
        return error_response(e)
    if not removed:
        return jsonify({"error": "Assignment not found"}), 404
    return jsonify({"message": "Assignment removed"}), 200
