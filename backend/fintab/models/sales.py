from __future__ import annotations

from ..extensions import db
from fintab.time_utils import to_utc_z


class Sale(db.Model):
    """
    Finalized sale document.

    IMMUTABLE: amounts and lines never change after creation. Only the
    status moves (bank verification) and the verification fields are set.

    Commission is credited to the selling staff member (user_id); the
    operator who rang the sale is created_by_user_id.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("business_id", "document_number", name="uq_sales_business_docnum"),
        db.Index("ix_sales_business_status_created", "business_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    # Human-readable document number (e.g., "S-000123")
    document_number = db.Column(db.String(64), nullable=False)

    status = db.Column(db.String(32), nullable=False, index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    # Amounts in cents
    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(6, 3), nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)
    commission_cents = db.Column(db.Integer, nullable=False, default=0)

    payment_method = db.Column(db.String(32), nullable=False)
    cash_received_cents = db.Column(db.Integer, nullable=True)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    # Bank receipt settlement
    bank_account_id = db.Column(db.Integer, db.ForeignKey("bank_accounts.id"), nullable=True)
    bank_name = db.Column(db.String(128), nullable=True)
    bank_receipt_number = db.Column(db.String(128), nullable=True)
    verification_note = db.Column(db.Text, nullable=True)
    verified_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    verified_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    lines = db.relationship("SaleLine", backref="sale", lazy=True, order_by="SaleLine.id")
    customer = db.relationship("Customer", backref=db.backref("sales", lazy=True))

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "document_number": self.document_number,
            "status": self.status,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "created_by_user_id": self.created_by_user_id,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "tax_rate": str(self.tax_rate),
            "tax_cents": self.tax_cents,
            "total_cents": self.total_cents,
            "commission_cents": self.commission_cents,
            "payment_method": self.payment_method,
            "cash_received_cents": self.cash_received_cents,
            "change_cents": self.change_cents,
            "bank_account_id": self.bank_account_id,
            "bank_name": self.bank_name,
            "bank_receipt_number": self.bank_receipt_number,
            "verification_note": self.verification_note,
            "verified_by_user_id": self.verified_by_user_id,
            "verified_at": to_utc_z(self.verified_at) if self.verified_at else None,
            "created_at": to_utc_z(self.created_at),
        }
        if include_lines:
            data["items"] = [line.to_dict() for line in self.lines]
        return data


class SaleLine(db.Model):
    """Snapshot of one cart line at the moment of sale."""
    __tablename__ = "sale_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)

    product_name = db.Column(db.String(255), nullable=False)
    variant_label = db.Column(db.String(255), nullable=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    line_total_cents = db.Column(db.Integer, nullable=False)
    commission_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "product_name": self.product_name,
            "variant_label": self.variant_label,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "line_total_cents": self.line_total_cents,
            "commission_percentage": str(self.commission_percentage),
        }


class CheckoutSession(db.Model):
    """
    Counter state for one operator in one business.

    STATES: idle, pending_bank_details, pending_confirmation, processing,
    completed, error.

    snapshot holds the priced cart and selections frozen by begin_checkout;
    confirm_checkout reads only the snapshot, so later cart edits cannot
    change an in-flight checkout.
    """
    __tablename__ = "checkout_sessions"
    __table_args__ = (
        db.UniqueConstraint("business_id", "operator_user_id", name="uq_checkout_business_operator"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    operator_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    status = db.Column(db.String(32), nullable=False, default="idle")

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    staff_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(6, 3), nullable=False, default=0)

    bank_account_id = db.Column(db.Integer, db.ForeignKey("bank_accounts.id"), nullable=True)
    bank_receipt_number = db.Column(db.String(128), nullable=True)

    snapshot = db.Column(db.JSON, nullable=True)
    last_sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    last_error = db.Column(db.Text, nullable=True)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    cart_lines = db.relationship(
        "CartLine",
        backref="session",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="CartLine.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "operator_user_id": self.operator_user_id,
            "status": self.status,
            "customer_id": self.customer_id,
            "staff_user_id": self.staff_user_id,
            "payment_method": self.payment_method,
            "discount_cents": self.discount_cents,
            "tax_rate": str(self.tax_rate),
            "bank_account_id": self.bank_account_id,
            "bank_receipt_number": self.bank_receipt_number,
            "cart": [line.to_dict() for line in self.cart_lines],
            "snapshot": self.snapshot,
            "last_sale_id": self.last_sale_id,
            "last_error": self.last_error,
            "updated_at": to_utc_z(self.updated_at),
        }


class CartLine(db.Model):
    __tablename__ = "cart_lines"
    __table_args__ = (
        db.UniqueConstraint("session_id", "product_id", "variant_id", name="uq_cart_lines_item"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey("checkout_sessions.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)
    quantity = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")
    variant = db.relationship("ProductVariant")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "product_name": self.product.name if self.product else None,
            "variant_label": self.variant.label if self.variant else None,
            "quantity": self.quantity,
        }
