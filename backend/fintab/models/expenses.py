from __future__ import annotations

from ..extensions import db
from fintab.time_utils import to_utc_z, to_iso_date


class ExpenseRequest(db.Model):
    """
    Staff spend request awaiting review.

    LIFECYCLE: pending -> approved (creates an Expense) | rejected (reason required)
    """
    __tablename__ = "expense_requests"
    __table_args__ = (
        db.Index("ix_expense_requests_business_status", "business_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    category = db.Column(db.String(64), nullable=False)
    description = db.Column(db.Text, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method = db.Column(db.String(32), nullable=False)
    merchant = db.Column(db.String(128), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="pending")
    rejection_reason = db.Column(db.Text, nullable=True)

    reviewed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "user_id": self.user_id,
            "category": self.category,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "payment_method": self.payment_method,
            "merchant": self.merchant,
            "status": self.status,
            "rejection_reason": self.rejection_reason,
            "reviewed_by_user_id": self.reviewed_by_user_id,
            "reviewed_at": to_utc_z(self.reviewed_at) if self.reviewed_at else None,
            "created_at": to_utc_z(self.created_at),
        }


class Expense(db.Model):
    __tablename__ = "expenses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    category = db.Column(db.String(64), nullable=False)
    description = db.Column(db.Text, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    expense_date = db.Column(db.Date, nullable=False)

    # active / deleted
    status = db.Column(db.String(16), nullable=False, default="active")

    expense_request_id = db.Column(db.Integer, db.ForeignKey("expense_requests.id"), nullable=True, unique=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "category": self.category,
            "description": self.description,
            "amount_cents": self.amount_cents,
            "date": to_iso_date(self.expense_date),
            "status": self.status,
            "expense_request_id": self.expense_request_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
