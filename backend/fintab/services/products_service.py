# backend/fintab/services/products_service.py
"""
Products Service

All product operations are business-scoped: a product id from another
business behaves exactly like a missing product.

Stock only moves through apply_stock_change, which writes the matching
StockAdjustment row in the same transaction.
"""
from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Product, ProductPriceTier, ProductVariant, StockAdjustment
from ..validation import (
    ValidationError,
    ConflictError,
    PRODUCT_POLICY,
    MAX_PRICE_CENTS,
    validate_payload,
    enforce_rules_product,
)
from .concurrency import lock_for_update, run_with_retry


class ProductNotFoundError(LookupError):
    pass


class InsufficientStockError(ConflictError):
    """Raised when a stock change would take a level below zero."""
    pass


PRODUCT_MUTABLE_FIELDS = PRODUCT_POLICY.writable_fields

SORT_KEYS = {
    "name": Product.name,
    "price": Product.price_cents,
    "stock": Product.stock,
    "category": Product.category,
    "created": Product.created_at,
}


def get_product(business_id: int, product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id, business_id=business_id).first()
    if not product:
        raise ProductNotFoundError("Product not found")
    return product


def get_variant(product: Product, variant_id: int | None) -> ProductVariant | None:
    if variant_id is None:
        return None
    for variant in product.variants:
        if variant.id == variant_id:
            return variant
    raise ProductNotFoundError("Variant not found")


def list_products(
    business_id: int,
    *,
    search: str | None = None,
    category: str | None = None,
    include_inactive: bool = False,
    sort: str = "name",
    descending: bool = False,
) -> list[Product]:
    query = db.session.query(Product).filter(Product.business_id == business_id)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if category:
        query = query.filter(Product.category == category)
    if search:
        like = f"%{search.strip().lower()}%"
        query = query.filter(or_(func.lower(Product.name).like(like), func.lower(Product.sku).like(like)))

    column = SORT_KEYS.get(sort, Product.name)
    query = query.order_by(column.desc() if descending else column.asc(), Product.id.asc())
    return query.all()


def list_categories(business_id: int) -> list[str]:
    rows = (
        db.session.query(Product.category)
        .filter(Product.business_id == business_id)
        .distinct()
        .order_by(Product.category.asc())
        .all()
    )
    return [row[0] for row in rows]


def _clean_tiers(raw) -> list[ProductPriceTier]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("tiered_pricing must be a list")
    tiers = []
    seen = set()
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError("tiered_pricing entries must be objects")
        qty = entry.get("quantity")
        price = entry.get("price_cents")
        if not isinstance(qty, int) or isinstance(qty, bool) or qty < 1:
            raise ValidationError("Tier quantity must be an integer >= 1")
        if not isinstance(price, int) or isinstance(price, bool) or price < 0 or price > MAX_PRICE_CENTS:
            raise ValidationError("Tier price_cents must be a non-negative integer")
        if qty in seen:
            raise ValidationError(f"Duplicate tier threshold: {qty}")
        seen.add(qty)
        tiers.append(ProductPriceTier(min_quantity=qty, price_cents=price))
    return tiers


def _clean_variants(raw) -> list[ProductVariant]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("variants must be a list")
    variants = []
    for entry in raw:
        if not isinstance(entry, dict):
            raise ValidationError("variants entries must be objects")
        attributes = entry.get("attributes") or []
        if not isinstance(attributes, list) or not attributes:
            raise ValidationError("Each variant needs at least one attribute")
        for attr in attributes:
            if not isinstance(attr, dict) or not attr.get("name") or attr.get("value") in (None, ""):
                raise ValidationError("Variant attributes need a name and a value")
        values = {}
        for key in ("price_cents", "cost_price_cents", "stock"):
            value = entry.get(key, 0)
            if not isinstance(value, int) or isinstance(value, bool) or value < 0:
                raise ValidationError(f"Variant {key} must be a non-negative integer")
            values[key] = value
        variants.append(ProductVariant(
            attributes=[{"name": str(a["name"]), "value": str(a["value"])} for a in attributes],
            sku=entry.get("sku"),
            **values,
        ))
    return variants


def _sync_variant_stock(product: Product) -> None:
    if product.variants:
        product.stock = sum(v.stock for v in product.variants)


def _check_sku(business_id: int, sku: str | None, exclude_id: int | None = None) -> None:
    if not sku:
        return
    query = db.session.query(Product).filter(Product.business_id == business_id, Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError("SKU already exists for this business.")


def create_product(*, business_id: int, payload: dict) -> Product:
    """
    Create a product with optional tiered_pricing and variants.

    Raises:
        ValidationError: bad field values
        ConflictError: duplicate SKU in the business
    """
    payload = dict(payload or {})
    tiers = _clean_tiers(payload.pop("tiered_pricing", None))
    variants = _clean_variants(payload.pop("variants", None))

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)
    _check_sku(business_id, patch.get("sku"))

    product = Product(business_id=business_id)
    for key, value in patch.items():
        setattr(product, key, value)
    if product.category is None:
        product.category = "General"
    product.price_tiers = tiers
    product.variants = variants
    _sync_variant_stock(product)

    db.session.add(product)
    db.session.commit()
    return product


def update_product(*, business_id: int, product_id: int, payload: dict) -> Product:
    """
    Patch a product. tiered_pricing / variants, when present, replace the
    existing lists wholesale.
    """
    payload = dict(payload or {})
    tiers = _clean_tiers(payload.pop("tiered_pricing")) if "tiered_pricing" in payload else None
    variants = _clean_variants(payload.pop("variants")) if "variants" in payload else None

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    def _op():
        product = lock_for_update(
            db.session.query(Product).filter_by(id=product_id, business_id=business_id)
        ).first()
        if not product:
            raise ProductNotFoundError("Product not found")

        if "sku" in patch:
            _check_sku(business_id, patch["sku"], exclude_id=product.id)
        for key, value in patch.items():
            setattr(product, key, value)
        if tiers is not None:
            product.price_tiers = tiers
        if variants is not None:
            product.variants = variants
        _sync_variant_stock(product)

        db.session.commit()
        return product

    return run_with_retry(_op)


def set_commission(*, business_id: int, product_id: int, percentage) -> Product:
    """Commission percentage, clamped to [0, 100]."""
    pct = Decimal(str(percentage))
    pct = max(Decimal("0"), min(Decimal("100"), pct))

    def _op():
        product = lock_for_update(
            db.session.query(Product).filter_by(id=product_id, business_id=business_id)
        ).first()
        if not product:
            raise ProductNotFoundError("Product not found")
        product.commission_percentage = pct
        db.session.commit()
        return product

    return run_with_retry(_op)


def apply_stock_change(
    product: Product,
    delta: int,
    *,
    reason: str,
    user_id: int | None,
    variant: ProductVariant | None = None,
    sale_id: int | None = None,
    approval_record_id: int | None = None,
) -> StockAdjustment:
    """
    Move stock by delta and append the history row. Does not commit.

    Raises InsufficientStockError if the level would drop below zero.
    """
    target = variant if variant is not None else product
    new_level = target.stock + delta
    if new_level < 0:
        label = product.name if variant is None else f"{product.name} ({variant.label})"
        raise InsufficientStockError(
            f"Insufficient stock for {label}: have {target.stock}, need {-delta}"
        )

    target.stock = new_level
    if variant is not None:
        _sync_variant_stock(product)

    entry = StockAdjustment(
        business_id=product.business_id,
        product_id=product.id,
        variant_id=variant.id if variant is not None else None,
        user_id=user_id,
        type="add" if delta >= 0 else "remove",
        quantity=abs(delta),
        reason=reason,
        new_stock_level=new_level,
        sale_id=sale_id,
        approval_record_id=approval_record_id,
    )
    db.session.add(entry)
    return entry


def adjust_stock(
    *,
    business_id: int,
    product_id: int,
    delta: int,
    reason: str,
    user_id: int,
    variant_id: int | None = None,
) -> StockAdjustment:
    """Manual stock adjustment with a mandatory reason."""
    if not isinstance(delta, int) or isinstance(delta, bool) or delta == 0:
        raise ValidationError("delta must be a non-zero integer")
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("reason is required")

    def _op():
        product = lock_for_update(
            db.session.query(Product).filter_by(id=product_id, business_id=business_id)
        ).first()
        if not product:
            raise ProductNotFoundError("Product not found")
        variant = get_variant(product, variant_id)
        if variant is None and product.variants:
            raise ValidationError("Choose a variant to adjust stock on a variable product")

        entry = apply_stock_change(product, delta, reason=reason, user_id=user_id, variant=variant)
        db.session.commit()
        return entry

    return run_with_retry(_op)


def stock_history(business_id: int, product_id: int, limit: int = 200) -> list[StockAdjustment]:
    get_product(business_id, product_id)
    return (
        db.session.query(StockAdjustment)
        .filter_by(business_id=business_id, product_id=product_id)
        .order_by(StockAdjustment.id.desc())
        .limit(limit)
        .all()
    )
