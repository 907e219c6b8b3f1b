# Overview: Account sign-up and credential checks.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

Users are global identities; what they may do inside a business comes from
their Membership (see tenant_service) and permission_service.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import User
from fintab.time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class AccountError(Exception):
    """Raised for sign-up problems (duplicate email, missing fields)."""
    pass


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Raises PasswordValidationError if requirements not met.
    """
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str, *, rounds: int = 12) -> str:
    """Hash password with bcrypt after the strength check."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    A malformed stored hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def find_user_by_email(email: str) -> User | None:
    return db.session.query(User).filter(func.lower(User.email) == normalize_email(email)).first()


def sign_up(email: str, password: str, display_name: str, phone: str | None = None) -> User:
    """
    Create a new global user.

    Raises:
        AccountError: missing email/name, or email already registered
        PasswordValidationError: weak password
    """
    email = normalize_email(email)
    display_name = (display_name or "").strip()
    if not email or "@" not in email:
        raise AccountError("A valid email is required")
    if not display_name:
        raise AccountError("Display name is required")

    if find_user_by_email(email):
        raise AccountError("An account with this email already exists")

    user = User(
        email=email,
        display_name=display_name,
        phone=phone,
        password_hash=hash_password(password, rounds=current_app.config.get("BCRYPT_ROUNDS", 12)),
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Returns User if credentials valid, None otherwise.
    Updates last_login_at timestamp on successful authentication.
    """
    user = find_user_by_email(email)
    if not user or not user.is_active:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None
