# Overview: Capability checks per business and security event logging.

"""
Permission Checking and Security Event Logging

WHY: Enforce role-based access control and create audit trail.

Resolution order for has_access(user, membership, code):
1. Platform super admin -> allowed
2. No active membership -> denied
3. Owner / Admin role -> allowed
4. Active per-user override in this business (GRANT / DENY) -> its verdict
5. Role default permission set

DESIGN PRINCIPLES:
- Fail closed: unknown roles and unknown codes are denied
- Log denials only: grants are not logged
- Tenant isolation: overrides and events are scoped by business_id
"""

from ..extensions import db
from ..models import SecurityEvent, UserPermissionOverride, User, Membership
from ..permissions import UNRESTRICTED_ROLES, get_role_permission_codes, validate_permission_code
from fintab.time_utils import utcnow


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    business_id: int | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail with tenant context.

    event_type examples:
    - PERMISSION_DENIED
    - LOGIN_FAILED
    - BUSINESS_CONTEXT_MISSING
    """
    event = SecurityEvent(
        user_id=user_id,
        business_id=business_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def get_membership(user_id: int, business_id: int | None) -> Membership | None:
    if business_id is None:
        return None
    return db.session.query(Membership).filter_by(
        user_id=user_id,
        business_id=business_id,
        status="Active",
    ).first()


def _overrides(user_id: int, business_id: int) -> list[UserPermissionOverride]:
    return db.session.query(UserPermissionOverride).filter_by(
        user_id=user_id,
        business_id=business_id,
        is_active=True,
    ).all()


def get_user_permissions(user: User, membership: Membership | None) -> set[str]:
    """
    Effective permission codes for a user inside the membership's business.
    """
    if user.is_super_admin:
        return get_role_permission_codes("Owner")
    if membership is None or not membership.is_active:
        return set()
    if membership.role in UNRESTRICTED_ROLES:
        return get_role_permission_codes(membership.role)

    codes = get_role_permission_codes(membership.role)
    for override in _overrides(user.id, membership.business_id):
        if override.override_type == "GRANT":
            codes.add(override.permission_code)
        elif override.override_type == "DENY":
            codes.discard(override.permission_code)
    return codes


def has_access(user: User, membership: Membership | None, permission_code: str) -> bool:
    """Core capability check used by checkout, workflow and route decorators."""
    if user is None:
        return False
    if user.is_super_admin:
        return True
    if membership is None or not membership.is_active:
        return False
    if membership.role in UNRESTRICTED_ROLES:
        return True
    return permission_code in get_user_permissions(user, membership)


def is_owner_or_admin(user: User, membership: Membership | None) -> bool:
    if user is not None and user.is_super_admin:
        return True
    return membership is not None and membership.is_active and membership.role in UNRESTRICTED_ROLES


def require_permission(
    user: User,
    membership: Membership | None,
    permission_code: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    business_id: int | None = None,
    message: str | None = None,
) -> None:
    """
    Require user to hold permission_code, raise PermissionDeniedError if not.

    Denials are written to security_events.

    Usage:
        require_permission(g.current_user, g.membership, "CREATE_SALE", business_id=g.business_id)
    """
    if has_access(user, membership, permission_code):
        return

    if business_id is None and membership is not None:
        business_id = membership.business_id

    log_security_event(
        user_id=user.id if user else None,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource,
        action=permission_code,
        reason=f"Missing permission: {permission_code}",
        ip_address=ip_address,
        user_agent=user_agent,
        business_id=business_id,
    )
    raise PermissionDeniedError(message or f"Permission denied: {permission_code}")


def set_permission_override(
    *,
    business_id: int,
    user_id: int,
    permission_code: str,
    override_type: str,
    granted_by_user_id: int,
    reason: str | None = None,
) -> UserPermissionOverride:
    """
    Grant or deny a permission via per-user override.

    override_type must be "GRANT" or "DENY".
    """
    if not validate_permission_code(permission_code):
        raise ValueError(f"Permission '{permission_code}' not found")

    if override_type not in {"GRANT", "DENY"}:
        raise ValueError("override_type must be GRANT or DENY")

    override = db.session.query(UserPermissionOverride).filter_by(
        business_id=business_id,
        user_id=user_id,
        permission_code=permission_code,
    ).first()

    if override:
        override.override_type = override_type
        override.granted_by_user_id = granted_by_user_id
        override.granted_at = utcnow()
        override.reason = reason
        override.is_active = True
    else:
        override = UserPermissionOverride(
            business_id=business_id,
            user_id=user_id,
            permission_code=permission_code,
            override_type=override_type,
            granted_by_user_id=granted_by_user_id,
            granted_at=utcnow(),
            reason=reason,
            is_active=True,
        )
        db.session.add(override)

    db.session.commit()
    return override


def clear_permission_override(*, business_id: int, user_id: int, permission_code: str) -> bool:
    """Deactivate an override so the role default applies again."""
    override = db.session.query(UserPermissionOverride).filter_by(
        business_id=business_id,
        user_id=user_id,
        permission_code=permission_code,
        is_active=True,
    ).first()

    if not override:
        return False

    override.is_active = False
    db.session.commit()
    return True
