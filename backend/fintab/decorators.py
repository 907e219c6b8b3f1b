# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service, permission_service
from .services.permission_service import PermissionDeniedError


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'business_id')


def require_auth(f):
    """
    Require a valid bearer session.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.business_id: The selected business (None until one is selected)
    - g.membership: The user's active Membership in that business (or None)
    - g.session_context: The full SessionContext object

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, revoked or expired token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1]

        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.business_id = context.business_id
        g.membership = context.membership
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_business(f):
    """
    Require an active business selection. Apply after @require_auth.

    Super admins may operate without a membership row.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401

        if g.business_id is None or (g.membership is None and not g.current_user.is_super_admin):
            permission_service.log_security_event(
                user_id=g.current_user.id,
                event_type="BUSINESS_CONTEXT_MISSING",
                success=False,
                resource=request.path,
                action=request.method,
                reason="No active business selected",
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
            )
            return jsonify({"error": "Select a business first"}), 400

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """
    Require a specific permission in the active business.

    MULTI-TENANT: Security events carry business_id for tenant-scoped auditing.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            try:
                permission_service.require_permission(
                    g.current_user,
                    g.membership,
                    permission_code,
                    resource=request.path,
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                    business_id=g.business_id,
                )
            except PermissionDeniedError as e:
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": permission_code,
                    "message": str(e)
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_owner_or_admin(f):
    """Business settings, members and workflow roles are owner/admin only."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401
        if not permission_service.is_owner_or_admin(g.current_user, g.membership):
            permission_service.log_security_event(
                user_id=g.current_user.id,
                event_type="PERMISSION_DENIED",
                success=False,
                resource=request.path,
                action=request.method,
                reason="Owner or admin role required",
                ip_address=request.remote_addr,
                user_agent=request.headers.get("User-Agent"),
                business_id=g.business_id,
            )
            return jsonify({"error": "Owner or admin access required"}), 403
        return f(*args, **kwargs)
    return decorated_function
