from __future__ import annotations

from ..extensions import db
from fintab.time_utils import to_utc_z


class SecurityEvent(db.Model):
    """
    Security event audit log with tenant context.

    WHY: Track permission checks, failed attempts, and security-relevant actions.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_user_type", "user_id", "event_type"),
        db.Index("ix_security_events_business_occurred", "business_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Nullable for pre-auth events
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    # PERMISSION_DENIED, LOGIN_FAILED, ...
    event_type = db.Column(db.String(64), nullable=False, index=True)
    resource = db.Column(db.String(128), nullable=True)
    action = db.Column(db.String(64), nullable=True)

    success = db.Column(db.Boolean, nullable=False)
    reason = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "user_id": self.user_id,
            "event_type": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }


class Incident(db.Model):
    """
    Unexpected failure captured at the request boundary.

    Only the most recent INCIDENT_LOG_LIMIT rows per business are kept;
    older rows are pruned on insert.
    """
    __tablename__ = "incidents"
    __table_args__ = (
        db.Index("ix_incidents_business_occurred", "business_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    error_type = db.Column(db.String(128), nullable=False)
    message = db.Column(db.Text, nullable=False)
    stack = db.Column(db.Text, nullable=True)
    path = db.Column(db.String(255), nullable=True)

    # Checkout session state at failure time
    context = db.Column(db.JSON, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "user_id": self.user_id,
            "error_type": self.error_type,
            "message": self.message,
            "stack": self.stack,
            "path": self.path,
            "context": self.context,
            "occurred_at": to_utc_z(self.occurred_at),
        }
