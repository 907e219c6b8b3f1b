from __future__ import annotations

from ..extensions import db
from fintab.time_utils import to_utc_z


class Customer(db.Model):
    """Customer registry entry; purchase history is derived from sales."""
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_business_name", "business_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    joined_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "is_active": self.is_active,
            "joined_at": to_utc_z(self.joined_at),
        }
