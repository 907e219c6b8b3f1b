from __future__ import annotations

from ..extensions import db
from fintab.time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data.

    MULTI-TENANT: Products are scoped to a business via business_id.

    PRICING:
    - price_cents is the base unit price
    - price_tiers hold quantity breaks (highest qualifying threshold wins)
    - variants carry their own price and stock; a variant line never falls
      back to the parent price or tiers

    Stock on a variable product is the sum of its variants' stock; simple
    products keep it on the product row.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_business_name", "business_id", "name"),
        db.Index("ix_products_business_category", "business_id", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    category = db.Column(db.String(64), nullable=False, default="General")

    # Authoritative storage in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)

    stock = db.Column(db.Integer, nullable=False, default=0)
    commission_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    price_tiers = db.relationship(
        "ProductPriceTier",
        backref="product",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="ProductPriceTier.min_quantity",
    )
    variants = db.relationship(
        "ProductVariant",
        backref="product",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="ProductVariant.id",
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def product_type(self) -> str:
        return "variable" if self.variants else "simple"

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} business_id={self.business_id}>"

    def to_dict(self, include_cost: bool = True) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "sku": self.sku,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "price_cents": self.price_cents,
            "stock": self.stock,
            "commission_percentage": str(self.commission_percentage),
            "product_type": self.product_type,
            "tiered_pricing": [t.to_dict() for t in self.price_tiers],
            "variants": [v.to_dict(include_cost=include_cost) for v in self.variants],
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_cost:
            data["cost_price_cents"] = self.cost_price_cents
        return data


class ProductPriceTier(db.Model):
    """Bulk price break: buying min_quantity or more costs price_cents each."""
    __tablename__ = "product_price_tiers"
    __table_args__ = (
        db.UniqueConstraint("product_id", "min_quantity", name="uq_price_tiers_product_qty"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    min_quantity = db.Column(db.Integer, nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {"quantity": self.min_quantity, "price_cents": self.price_cents}


class ProductVariant(db.Model):
    __tablename__ = "product_variants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # [{"name": "Size", "value": "L"}, ...]
    attributes = db.Column(db.JSON, nullable=False, default=list)

    sku = db.Column(db.String(64), nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    stock = db.Column(db.Integer, nullable=False, default=0)

    @property
    def label(self) -> str:
        return " / ".join(str(a.get("value")) for a in (self.attributes or []))

    def to_dict(self, include_cost: bool = True) -> dict:
        data = {
            "id": self.id,
            "product_id": self.product_id,
            "attributes": list(self.attributes or []),
            "label": self.label,
            "sku": self.sku,
            "price_cents": self.price_cents,
            "stock": self.stock,
        }
        if include_cost:
            data["cost_price_cents"] = self.cost_price_cents
        return data


class StockAdjustment(db.Model):
    """
    Stock history row. Append-only.

    Written by manual adjustments, completed sales and accepted goods
    receiving records.
    """
    __tablename__ = "stock_adjustments"
    __table_args__ = (
        db.Index("ix_stock_adjustments_product_occurred", "product_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    variant_id = db.Column(db.Integer, db.ForeignKey("product_variants.id"), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # add / remove
    type = db.Column(db.String(8), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)
    new_stock_level = db.Column(db.Integer, nullable=False)

    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    approval_record_id = db.Column(db.Integer, db.ForeignKey("approval_records.id"), nullable=True, index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "variant_id": self.variant_id,
            "user_id": self.user_id,
            "type": self.type,
            "quantity": self.quantity,
            "reason": self.reason,
            "new_stock_level": self.new_stock_level,
            "sale_id": self.sale_id,
            "approval_record_id": self.approval_record_id,
            "occurred_at": to_utc_z(self.occurred_at),
        }
