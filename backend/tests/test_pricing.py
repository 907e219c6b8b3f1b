# Overview: Pytest coverage for pricing engine arithmetic.

"""
Pricing Engine Tests

Pure functions only: products, tiers and variants are plain namespaces, so
nothing here touches the database.
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from fintab.services import pricing


def make_product(price_cents=100, tiers=(), commission="0", product_id=1, name="Widget"):
    return SimpleNamespace(
        id=product_id,
        name=name,
        price_cents=price_cents,
        commission_percentage=Decimal(commission),
        price_tiers=[SimpleNamespace(min_quantity=q, price_cents=p) for q, p in tiers],
    )


def make_line(product_id, quantity, unit_price_cents, commission="0"):
    return pricing.PricedLine(
        product_id=product_id,
        variant_id=None,
        product_name=f"P{product_id}",
        variant_label=None,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        commission_percentage=Decimal(commission),
    )


class TestEffectivePrice:

    def test_base_price_without_tiers(self):
        product = make_product(price_cents=250)
        assert pricing.effective_price_cents(product, 1) == 250
        assert pricing.effective_price_cents(product, 40) == 250

    def test_highest_qualifying_tier_wins(self):
        product = make_product(price_cents=100, tiers=[(10, 80), (5, 90)])
        assert pricing.effective_price_cents(product, 4) == 100
        assert pricing.effective_price_cents(product, 5) == 90
        assert pricing.effective_price_cents(product, 9) == 90
        assert pricing.effective_price_cents(product, 10) == 80
        assert pricing.effective_price_cents(product, 500) == 80

    def test_unit_price_never_increases_with_quantity(self):
        product = make_product(price_cents=100, tiers=[(3, 95), (5, 90), (12, 70)])
        prices = [pricing.effective_price_cents(product, q) for q in range(1, 30)]
        assert all(later <= earlier for earlier, later in zip(prices, prices[1:]))

    def test_variant_uses_own_price_and_ignores_tiers(self):
        product = make_product(price_cents=100, tiers=[(2, 50)])
        variant = SimpleNamespace(id=7, price_cents=130, label="L")
        assert pricing.effective_price_cents(product, 10, variant) == 130

        line = pricing.price_line(product, 10, variant)
        assert line.variant_id == 7
        assert line.variant_label == "L"
        assert line.line_total_cents == 1300


class TestTotals:

    def test_tiered_line_with_tax(self):
        """5 units at tier price 90, 10% tax -> 450 + 45 = 495."""
        product = make_product(price_cents=100, tiers=[(5, 90)])
        line = pricing.price_line(product, 5)
        subtotal = pricing.cart_subtotal_cents([line])

        totals = pricing.compute_totals(subtotal, 0, Decimal("10"))

        assert line.unit_price_cents == 90
        assert totals.subtotal_cents == 450
        assert totals.tax_cents == 45
        assert totals.total_cents == 495

    def test_discount_is_taken_before_tax(self):
        totals = pricing.compute_totals(1000, 200, Decimal("10"))
        assert totals.after_discount_cents == 800
        assert totals.tax_cents == 80
        assert totals.total_cents == 880

    @pytest.mark.parametrize("discount", [1000, 1500])
    def test_discount_at_or_above_subtotal_gives_zero(self, discount):
        totals = pricing.compute_totals(1000, discount, Decimal("15"))
        assert totals.after_discount_cents == 0
        assert totals.tax_cents == 0
        assert totals.total_cents == 0

    def test_discount_ignored_without_capability(self):
        totals = pricing.compute_totals(1000, 300, Decimal("0"), can_discount=False)
        assert totals.discount_cents == 0
        assert totals.total_cents == 1000

    def test_negative_inputs_are_treated_as_zero(self):
        totals = pricing.compute_totals(1000, -50, Decimal("-5"))
        assert totals.discount_cents == 0
        assert totals.tax_rate == Decimal("0")
        assert totals.total_cents == 1000

    def test_tax_rounds_half_up(self):
        # 105 * 10% = 10.5
        assert pricing.compute_totals(105, 0, Decimal("10")).tax_cents == 11
        # 104 * 10% = 10.4
        assert pricing.compute_totals(104, 0, Decimal("10")).tax_cents == 10

    def test_tax_rate_accepts_strings(self):
        assert pricing.compute_totals(2000, 0, "7.5").tax_cents == 150


class TestCommission:

    def test_discount_is_apportioned_by_line_total(self):
        lines = [make_line(1, 1, 1000, "10"), make_line(2, 1, 1000, "0")]
        breakdown = pricing.commission_breakdown(lines, 2000, 200)

        assert breakdown[0].apportioned_discount == Decimal("100")
        assert breakdown[0].commissionable == Decimal("900")
        assert breakdown[0].commission == Decimal("90")
        assert breakdown[1].commission == Decimal("0")
        assert pricing.total_commission_cents(lines, 2000, 200) == 90

    def test_single_line_takes_full_discount(self):
        lines = [make_line(1, 3, 250, "10")]
        entry = pricing.commission_breakdown(lines, 750, 120)[0]

        assert entry.apportioned_discount == Decimal("120")
        assert entry.commissionable == Decimal("630")
        assert entry.commission == Decimal("63")

    def test_discount_above_subtotal_leaves_nothing_commissionable(self):
        lines = [make_line(1, 1, 500, "10")]
        entry = pricing.commission_breakdown(lines, 500, 800)[0]

        assert entry.apportioned_discount == Decimal("800")
        assert entry.commissionable == Decimal("0")
        assert pricing.total_commission_cents(lines, 500, 800) == 0

    def test_total_is_rounded_once(self):
        # each line earns 0.5 cent; per-line rounding would give 3
        lines = [make_line(i, 1, 5, "10") for i in range(1, 4)]
        assert pricing.total_commission_cents(lines, 15, 0) == 2

    def test_empty_cart_has_no_commission(self):
        assert pricing.total_commission_cents([], 0, 100) == 0


class TestChange:

    def test_change_due(self):
        assert pricing.change_due_cents(1000, 495) == 505
        assert pricing.change_due_cents(495, 495) == 0

    def test_short_or_missing_cash_gives_no_change(self):
        assert pricing.change_due_cents(400, 495) == 0
        assert pricing.change_due_cents(None, 495) == 0


def test_snapshot_line_survives_serialization():
    line = make_line(3, 4, 250, "12.5")
    restored = pricing.PricedLine.from_dict(line.to_dict())
    assert restored == line
    assert line.to_dict()["line_total_cents"] == 1000
