from __future__ import annotations

from ..extensions import db
from fintab.time_utils import to_utc_z


DEFAULT_PAYMENT_METHODS = ["Cash", "Card", "Bank Receipt"]


class Business(db.Model):
    """
    Multi-tenant root: every tenant is a Business.

    All products, customers, sales, audit records and bank accounts belong to
    exactly one business. Users reach a business through a Membership.

    Business-level settings live on the same row (tax default, accepted
    payment methods, sign-off enforcement) because they are read on nearly
    every checkout and workflow transition.
    """
    __tablename__ = "businesses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    business_type = db.Column(db.String(64), nullable=True)
    business_email = db.Column(db.String(255), nullable=True)
    business_phone = db.Column(db.String(64), nullable=True)
    date_established = db.Column(db.Date, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    # Settings
    currency_symbol = db.Column(db.String(8), nullable=False, default="$")
    default_tax_rate = db.Column(db.Numeric(6, 3), nullable=False, default=0)
    payment_methods = db.Column(db.JSON, nullable=False, default=lambda: list(DEFAULT_PAYMENT_METHODS))
    enforce_unique_signers = db.Column(db.Boolean, nullable=False, default=True)
    allow_multiple_assignees = db.Column(db.Boolean, nullable=False, default=True)
    weekly_check_count = db.Column(db.Integer, nullable=False, default=5)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Business id={self.id} name={self.name!r}>"

    def settings_dict(self) -> dict:
        return {
            "currency_symbol": self.currency_symbol,
            "default_tax_rate": str(self.default_tax_rate),
            "payment_methods": list(self.payment_methods or []),
            "enforce_unique_signers": self.enforce_unique_signers,
            "allow_multiple_assignees": self.allow_multiple_assignees,
            "weekly_check_count": self.weekly_check_count,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "business_type": self.business_type,
            "business_email": self.business_email,
            "business_phone": self.business_phone,
            "date_established": self.date_established.isoformat() if self.date_established else None,
            "is_active": self.is_active,
            "settings": self.settings_dict(),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Membership(db.Model):
    """
    A user's seat inside a business, carrying the business role.

    A user may belong to several businesses; the active one is chosen on the
    session (see SessionToken.business_id).
    """
    __tablename__ = "memberships"
    __table_args__ = (
        db.UniqueConstraint("business_id", "user_id", name="uq_memberships_business_user"),
        db.Index("ix_memberships_user", "user_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    # Owner, Admin, Manager, Staff, Cashier, SellerAgent, BankVerifier, Investor, Custom
    role = db.Column(db.String(32), nullable=False, default="Staff")
    custom_role_name = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="Active", index=True)

    joined_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    business = db.relationship("Business", backref=db.backref("memberships", lazy=True))
    user = db.relationship("User", backref=db.backref("memberships", lazy=True))

    @property
    def is_active(self) -> bool:
        return self.status == "Active"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "user_id": self.user_id,
            "user_name": self.user.display_name if self.user else None,
            "email": self.user.email if self.user else None,
            "role": self.role,
            "custom_role_name": self.custom_role_name,
            "status": self.status,
            "joined_at": to_utc_z(self.joined_at),
        }


class Invitation(db.Model):
    """
    Capability token that lets a specific email join a business.

    The token travels in a link's query string. Redemption is single use:
    status moves from pending to accepted and never back.
    """
    __tablename__ = "invitations"
    __table_args__ = (
        db.Index("ix_invitations_business_status", "business_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    invited_email = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(32), nullable=False, default="Staff")
    token = db.Column(db.String(128), nullable=False, unique=True, index=True)

    # pending, accepted, revoked, expired
    status = db.Column(db.String(16), nullable=False, default="pending")

    invited_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    accepted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    business = db.relationship("Business", backref=db.backref("invitations", lazy=True))

    def to_dict(self, include_token: bool = False) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "invited_email": self.invited_email,
            "role": self.role,
            "status": self.status,
            "invited_by_user_id": self.invited_by_user_id,
            "accepted_by_user_id": self.accepted_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
            "accepted_at": to_utc_z(self.accepted_at),
        }
        if include_token:
            data["token"] = self.token
        return data
