from __future__ import annotations

from ..extensions import db
from fintab.time_utils import to_utc_z


class User(db.Model):
    """
    User identity for authentication and attribution.

    Users are global; their access to a business comes from Membership rows.
    Email is the login name and is stored lower-cased.

    WHY: Every sale, signature and ledger row must be attributable.
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    display_name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(64), nullable=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    # Platform operator: passes every business permission check
    is_super_admin = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "phone": self.phone,
            "is_active": self.is_active,
            "is_super_admin": self.is_super_admin,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class SessionToken(db.Model):
    """
    Bearer session with the active business selector.

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - 24-hour absolute timeout, 2-hour idle timeout
    - Revocable on sign-out
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Active business; null until the user selects one
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=True, index=True)

    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)

    user = db.relationship("User", backref=db.backref("session_tokens", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "business_id": self.business_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
        }


class UserPermissionOverride(db.Model):
    """
    Per-user permission overrides (grant or deny) inside one business.

    DESIGN:
    - override_type: GRANT (add permission) or DENY (remove permission)
    - Overrides take precedence over role defaults
    - Owner/Admin roles are never narrowed by overrides
    """
    __tablename__ = "user_permission_overrides"
    __table_args__ = (
        db.UniqueConstraint("business_id", "user_id", "permission_code", name="uq_user_perm_override"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    permission_code = db.Column(db.String(64), nullable=False)
    override_type = db.Column(db.String(8), nullable=False)

    granted_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    granted_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    reason = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "user_id": self.user_id,
            "permission_code": self.permission_code,
            "override_type": self.override_type,
            "granted_by_user_id": self.granted_by_user_id,
            "granted_at": to_utc_z(self.granted_at),
            "reason": self.reason,
            "is_active": self.is_active,
        }


class WorkflowRoleAssignment(db.Model):
    """
    Named sign-off duty (cash_verifier, receiving_approver, ...) held by a user.

    Independent from the business role: a Staff member can be the cash
    counter, a Manager the stock verifier.
    """
    __tablename__ = "workflow_role_assignments"
    __table_args__ = (
        db.UniqueConstraint("business_id", "role_key", "user_id", name="uq_workflow_role_user"),
        db.Index("ix_workflow_roles_business_key", "business_id", "role_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False)
    role_key = db.Column(db.String(32), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    assigned_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", foreign_keys=[user_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "role_key": self.role_key,
            "user_id": self.user_id,
            "user_name": self.user.display_name if self.user else None,
            "assigned_by_user_id": self.assigned_by_user_id,
            "assigned_at": to_utc_z(self.assigned_at),
        }
