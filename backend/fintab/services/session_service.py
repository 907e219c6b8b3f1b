# Overview: Bearer session tokens carrying the active business selector.

"""
Session Token Management Service

WHY: Secure session management with automatic timeout and revocation.
Tokens are cryptographically secure, hashed in database, and time-limited.

The session also carries the active business. A user with several
memberships switches business by updating the session, never by sending a
business id on each request.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage
- 24-hour absolute timeout, 2-hour idle timeout
- Revocable on sign-out
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..extensions import db
from ..models import SessionToken, User, Business, Membership
from fintab.time_utils import utcnow


SESSION_ABSOLUTE_TIMEOUT = timedelta(hours=24)
SESSION_IDLE_TIMEOUT = timedelta(hours=2)


class SessionError(Exception):
    """Raised when a session cannot switch to the requested business."""
    pass


@dataclass
class SessionContext:
    """
    Everything an authenticated request needs.

    business_id and membership are None until a business is selected.
    """
    user: User
    session: SessionToken
    business_id: int | None
    membership: Membership | None


def generate_token() -> str:
    """64 hex chars (32 bytes of entropy) from the OS CSPRNG."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def _active_membership(user_id: int, business_id: int) -> Membership | None:
    return (
        db.session.query(Membership)
        .join(Business, Business.id == Membership.business_id)
        .filter(
            Membership.user_id == user_id,
            Membership.business_id == business_id,
            Membership.status == "Active",
            Business.is_active.is_(True),
        )
        .first()
    )


def _default_business_id(user: User) -> int | None:
    # Single active membership: select it straight away
    memberships = (
        db.session.query(Membership)
        .join(Business, Business.id == Membership.business_id)
        .filter(
            Membership.user_id == user.id,
            Membership.status == "Active",
            Business.is_active.is_(True),
        )
        .all()
    )
    if len(memberships) == 1:
        return memberships[0].business_id
    return None


def create_session(
    user: User,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """
    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    plaintext_token = generate_token()
    now = utcnow()

    session = SessionToken(
        user_id=user.id,
        business_id=_default_business_id(user),
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_used_at=now,
        expires_at=now + SESSION_ABSOLUTE_TIMEOUT,
        user_agent=user_agent,
        ip_address=ip_address,
        is_revoked=False,
    )

    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def _revoke(session: SessionToken, reason: str) -> None:
    session.is_revoked = True
    session.revoked_at = utcnow()
    session.revoked_reason = reason


def validate_session(token: str) -> SessionContext | None:
    """
    Validate session token and return SessionContext if valid.

    Returns None if the token is unknown, expired, idle too long, revoked,
    or the user was deactivated. A business selector that no longer maps to
    an active membership is cleared rather than failing the session.

    Updates last_used_at on successful validation.
    """
    now = utcnow()

    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        return None

    if now - session.last_used_at > SESSION_IDLE_TIMEOUT:
        _revoke(session, "Idle timeout")
        db.session.commit()
        return None

    user = session.user
    if not user or not user.is_active:
        _revoke(session, "User account deactivated")
        db.session.commit()
        return None

    membership = None
    if session.business_id is not None:
        membership = _active_membership(user.id, session.business_id)
        if membership is None and not user.is_super_admin:
            session.business_id = None

    session.last_used_at = now
    db.session.commit()

    return SessionContext(
        user=user,
        session=session,
        business_id=session.business_id,
        membership=membership,
    )


def switch_business(session: SessionToken, business_id: int) -> SessionToken:
    """
    Point the session at another business.

    Requires an active membership in an active business (super admins may
    enter any active business).
    """
    user = session.user
    business = db.session.get(Business, business_id)
    if not business or not business.is_active:
        raise SessionError("Business not found")

    if not user.is_super_admin and _active_membership(user.id, business_id) is None:
        raise SessionError("You are not a member of this business")

    session.business_id = business_id
    db.session.commit()
    return session


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Returns True if session was revoked, False if not found."""
    session = db.session.query(SessionToken).filter_by(
        token_hash=hash_token(token),
        is_revoked=False,
    ).first()

    if not session:
        return False

    _revoke(session, reason)
    db.session.commit()
    return True
