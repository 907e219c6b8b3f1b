# Overview: Pure price, discount, tax, commission and change arithmetic for checkout.

"""
Pricing Engine

No I/O: every function takes plain values (or model instances read through
their attributes) and returns new values, so the same code prices the live
cart quote, the frozen checkout snapshot and the tests.

MONEY: integer cents end to end. Percentages are Decimal. A derived amount
(tax, commission) is rounded to whole cents once, half-up, at the end of its
own computation; intermediate per-line commission values stay unrounded.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Sequence

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_cents(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class PricedLine:
    product_id: int
    variant_id: int | None
    product_name: str
    variant_label: str | None
    quantity: int
    unit_price_cents: int
    commission_percentage: Decimal

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        data = asdict(self)
        data["commission_percentage"] = str(self.commission_percentage)
        data["line_total_cents"] = self.line_total_cents
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "PricedLine":
        return cls(
            product_id=data["product_id"],
            variant_id=data.get("variant_id"),
            product_name=data["product_name"],
            variant_label=data.get("variant_label"),
            quantity=int(data["quantity"]),
            unit_price_cents=int(data["unit_price_cents"]),
            commission_percentage=to_decimal(data.get("commission_percentage")),
        )


@dataclass(frozen=True)
class Totals:
    subtotal_cents: int
    discount_cents: int
    tax_rate: Decimal
    after_discount_cents: int
    tax_cents: int
    total_cents: int

    def to_dict(self) -> dict:
        data = asdict(self)
        data["tax_rate"] = str(self.tax_rate)
        return data


@dataclass(frozen=True)
class LineCommission:
    product_id: int
    variant_id: int | None
    apportioned_discount: Decimal
    commissionable: Decimal
    commission: Decimal


def effective_price_cents(product, quantity: int, variant=None) -> int:
    """
    Unit price for quantity units.

    A variant always sells at its own price; tiers apply to the parent only.
    With tiers, the highest threshold <= quantity wins; below every
    threshold the base price applies.
    """
    if variant is not None:
        return variant.price_cents

    tiers = list(getattr(product, "price_tiers", None) or [])
    if not tiers:
        return product.price_cents

    for tier in sorted(tiers, key=lambda t: t.min_quantity, reverse=True):
        if quantity >= tier.min_quantity:
            return tier.price_cents
    return product.price_cents


def price_line(product, quantity: int, variant=None) -> PricedLine:
    return PricedLine(
        product_id=product.id,
        variant_id=variant.id if variant is not None else None,
        product_name=product.name,
        variant_label=variant.label if variant is not None else None,
        quantity=quantity,
        unit_price_cents=effective_price_cents(product, quantity, variant),
        commission_percentage=to_decimal(product.commission_percentage),
    )


def cart_subtotal_cents(lines: Iterable[PricedLine]) -> int:
    return sum(line.line_total_cents for line in lines)


def compute_totals(subtotal_cents: int, discount_cents: int, tax_rate, *, can_discount: bool = True) -> Totals:
    """
    subtotal -> discount -> tax -> total.

    Negative discount or tax rate is treated as zero; without the discount
    capability the discount is forced to zero. The discount can take the
    taxable amount to zero but never below.
    """
    discount = max(0, int(discount_cents or 0)) if can_discount else 0
    rate = max(ZERO, to_decimal(tax_rate))

    after_discount = max(0, subtotal_cents - discount)
    tax = round_cents(Decimal(after_discount) * rate / HUNDRED)

    return Totals(
        subtotal_cents=subtotal_cents,
        discount_cents=discount,
        tax_rate=rate,
        after_discount_cents=after_discount,
        tax_cents=tax,
        total_cents=after_discount + tax,
    )


def commission_breakdown(
    lines: Sequence[PricedLine],
    subtotal_cents: int,
    discount_cents: int,
) -> list[LineCommission]:
    """
    Spread the discount across lines in proportion to their totals, then
    apply each line's commission percentage to what is left.
    """
    discount = Decimal(max(0, discount_cents))
    subtotal = Decimal(subtotal_cents)
    result = []
    for line in lines:
        line_total = Decimal(line.line_total_cents)
        apportioned = (line_total / subtotal * discount) if subtotal > 0 else ZERO
        commissionable = max(ZERO, line_total - apportioned)
        commission = commissionable * line.commission_percentage / HUNDRED
        result.append(LineCommission(
            product_id=line.product_id,
            variant_id=line.variant_id,
            apportioned_discount=apportioned,
            commissionable=commissionable,
            commission=commission,
        ))
    return result


def total_commission_cents(lines: Sequence[PricedLine], subtotal_cents: int, discount_cents: int) -> int:
    breakdown = commission_breakdown(lines, subtotal_cents, discount_cents)
    return round_cents(sum((entry.commission for entry in breakdown), ZERO))


def change_due_cents(received_cents: int | None, total_cents: int) -> int:
    if received_cents is None or received_cents < total_cents:
        return 0
    return received_cents - total_cents
