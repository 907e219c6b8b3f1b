# Overview: Businesses, memberships, settings and invitation tokens.

"""
Tenant Service

A Business is the tenant. Users join a business through a Membership,
either as the registering Owner or by redeeming an Invitation.

Invitation redemption is single use: the invitation moves from pending to
accepted in the same commit that inserts the membership.
"""

from __future__ import annotations

import secrets
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from flask import current_app

from ..extensions import db
from ..models import Business, Membership, Invitation, User
from ..permissions import BUSINESS_ROLES
from fintab.time_utils import utcnow, parse_iso_date
from .auth_service import normalize_email


class TenantError(Exception):
    """Raised for invalid business, membership or settings input."""
    pass


class InvitationError(Exception):
    """Raised when an invitation cannot be created or redeemed."""
    pass


class BusinessNotFoundError(Exception):
    pass


SETTINGS_FIELDS = {
    "currency_symbol",
    "default_tax_rate",
    "payment_methods",
    "enforce_unique_signers",
    "allow_multiple_assignees",
    "weekly_check_count",
}

PROFILE_FIELDS = {"name", "business_type", "business_email", "business_phone", "date_established"}


def get_business(business_id: int) -> Business:
    business = db.session.get(Business, business_id)
    if not business:
        raise BusinessNotFoundError("Business not found")
    return business


def register_business(
    *,
    owner: User,
    name: str,
    business_type: str | None = None,
    business_email: str | None = None,
    business_phone: str | None = None,
    date_established=None,
) -> Business:
    """Create a business and seat its creator as Owner."""
    name = (name or "").strip()
    if not name:
        raise TenantError("Business name is required")

    business = Business(
        name=name,
        business_type=business_type,
        business_email=business_email,
        business_phone=business_phone,
        date_established=parse_iso_date(date_established),
    )
    db.session.add(business)
    db.session.flush()

    db.session.add(Membership(business_id=business.id, user_id=owner.id, role="Owner", status="Active"))
    db.session.commit()
    return business


def list_user_businesses(user: User) -> list[dict]:
    rows = (
        db.session.query(Membership, Business)
        .join(Business, Business.id == Membership.business_id)
        .filter(Membership.user_id == user.id, Business.is_active.is_(True))
        .order_by(Business.name.asc())
        .all()
    )
    return [
        {"business": business.to_dict(), "role": membership.role, "status": membership.status}
        for membership, business in rows
    ]


def update_business_profile(business: Business, patch: dict) -> Business:
    unknown = set(patch) - PROFILE_FIELDS
    if unknown:
        raise TenantError(f"Field not allowed: {sorted(unknown)[0]}")
    if "name" in patch:
        name = (patch["name"] or "").strip()
        if not name:
            raise TenantError("Business name is required")
        business.name = name
    for key in ("business_type", "business_email", "business_phone"):
        if key in patch:
            setattr(business, key, patch[key])
    if "date_established" in patch:
        business.date_established = parse_iso_date(patch["date_established"])
    db.session.commit()
    return business


def update_business_settings(business: Business, patch: dict) -> Business:
    """
    Apply a partial settings update.

    Raises TenantError on unknown keys or out-of-range values.
    """
    unknown = set(patch) - SETTINGS_FIELDS
    if unknown:
        raise TenantError(f"Unknown setting: {sorted(unknown)[0]}")

    if "default_tax_rate" in patch:
        try:
            rate = Decimal(str(patch["default_tax_rate"]))
        except (InvalidOperation, ValueError):
            raise TenantError("default_tax_rate must be a number")
        if rate < 0:
            raise TenantError("default_tax_rate must be >= 0")
        business.default_tax_rate = rate

    if "payment_methods" in patch:
        methods = patch["payment_methods"]
        if not isinstance(methods, list) or not methods:
            raise TenantError("payment_methods must be a non-empty list")
        cleaned = []
        for method in methods:
            if not isinstance(method, str) or not method.strip():
                raise TenantError("payment_methods entries must be non-empty strings")
            if method.strip() not in cleaned:
                cleaned.append(method.strip())
        business.payment_methods = cleaned

    if "weekly_check_count" in patch:
        count = patch["weekly_check_count"]
        if not isinstance(count, int) or isinstance(count, bool) or count < 1:
            raise TenantError("weekly_check_count must be a positive integer")
        business.weekly_check_count = count

    for flag in ("enforce_unique_signers", "allow_multiple_assignees"):
        if flag in patch:
            business_value = patch[flag]
            if not isinstance(business_value, bool):
                raise TenantError(f"{flag} must be true or false")
            setattr(business, flag, business_value)

    if "currency_symbol" in patch:
        symbol = (patch["currency_symbol"] or "").strip()
        if not symbol:
            raise TenantError("currency_symbol cannot be blank")
        business.currency_symbol = symbol[:8]

    db.session.commit()
    return business


# =============================================================================
# Memberships
# =============================================================================

def list_members(business_id: int) -> list[Membership]:
    return (
        db.session.query(Membership)
        .filter_by(business_id=business_id)
        .order_by(Membership.id.asc())
        .all()
    )


def update_member(
    *,
    business_id: int,
    user_id: int,
    role: str | None = None,
    status: str | None = None,
    custom_role_name: str | None = None,
) -> Membership:
    membership = db.session.query(Membership).filter_by(business_id=business_id, user_id=user_id).first()
    if not membership:
        raise TenantError("Member not found")

    if role is not None:
        if role not in BUSINESS_ROLES:
            raise TenantError(f"Unknown role: {role}")
        if membership.role == "Owner" and role != "Owner" and _owner_count(business_id) <= 1:
            raise TenantError("A business must keep at least one owner")
        membership.role = role
        membership.custom_role_name = custom_role_name if role == "Custom" else None

    if status is not None:
        if status not in {"Active", "Suspended"}:
            raise TenantError("status must be Active or Suspended")
        if membership.role == "Owner" and status != "Active" and _owner_count(business_id) <= 1:
            raise TenantError("A business must keep at least one owner")
        membership.status = status

    db.session.commit()
    return membership


def _owner_count(business_id: int) -> int:
    return db.session.query(Membership).filter_by(business_id=business_id, role="Owner", status="Active").count()


# =============================================================================
# Invitations
# =============================================================================

def create_invitation(
    *,
    business_id: int,
    email: str,
    role: str,
    invited_by_user_id: int | None,
) -> Invitation:
    """
    Issue a single-use invitation token for email.

    Raises InvitationError for an invalid role, or when the email already
    belongs to a member of the business.
    """
    email = normalize_email(email)
    if not email or "@" not in email:
        raise InvitationError("A valid email is required")
    if role not in BUSINESS_ROLES or role == "Owner":
        raise InvitationError(f"Invalid role for invitation: {role}")

    already_member = (
        db.session.query(Membership)
        .join(User, User.id == Membership.user_id)
        .filter(Membership.business_id == business_id, db.func.lower(User.email) == email)
        .first()
    )
    if already_member:
        raise InvitationError("This email already belongs to a member of the business")

    ttl_days = current_app.config.get("INVITATION_TTL_DAYS", 7)
    invitation = Invitation(
        business_id=business_id,
        invited_email=email,
        role=role,
        token=secrets.token_urlsafe(32),
        status="pending",
        invited_by_user_id=invited_by_user_id,
        expires_at=utcnow() + timedelta(days=ttl_days),
    )
    db.session.add(invitation)
    db.session.commit()
    return invitation


def get_invitation_by_token(token: str) -> Invitation:
    invitation = db.session.query(Invitation).filter_by(token=token).first()
    if not invitation:
        raise InvitationError("Invitation not found")
    return invitation


def redeem_invitation(*, token: str, user: User) -> Membership:
    """
    Consume the invitation and seat the user in the business.

    The signed-in user's email must match the invited email
    (case-insensitive). A second redemption fails because the status is no
    longer pending.
    """
    invitation = get_invitation_by_token(token)

    if invitation.status != "pending":
        raise InvitationError(f"Invitation is {invitation.status}")

    if invitation.expires_at < utcnow():
        invitation.status = "expired"
        db.session.commit()
        raise InvitationError("Invitation has expired")

    if normalize_email(user.email) != normalize_email(invitation.invited_email):
        raise InvitationError("This invitation was issued to a different email address")

    existing = db.session.query(Membership).filter_by(
        business_id=invitation.business_id,
        user_id=user.id,
    ).first()
    if existing:
        raise InvitationError("You are already a member of this business")

    membership = Membership(
        business_id=invitation.business_id,
        user_id=user.id,
        role=invitation.role,
        status="Active",
    )
    db.session.add(membership)

    invitation.status = "accepted"
    invitation.accepted_by_user_id = user.id
    invitation.accepted_at = utcnow()

    db.session.commit()
    return membership


def revoke_invitation(*, business_id: int, invitation_id: int) -> Invitation:
    invitation = db.session.query(Invitation).filter_by(id=invitation_id, business_id=business_id).first()
    if not invitation:
        raise InvitationError("Invitation not found")
    if invitation.status != "pending":
        raise InvitationError(f"Invitation is {invitation.status}")
    invitation.status = "revoked"
    db.session.commit()
    return invitation


def list_invitations(business_id: int, status: str | None = None) -> list[Invitation]:
    query = db.session.query(Invitation).filter_by(business_id=business_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(Invitation.id.desc()).all()
