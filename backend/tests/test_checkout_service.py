# Overview: Pytest coverage for the checkout session state machine.

"""
Checkout Service Tests

Covers:
- begin_checkout validation order (first failure wins, session stays idle)
- snapshot freeze: cart edits after begin do not change the sale
- cash sale: stock deducted with history, change computed, session reset
- bank receipt: pending verification, no stock movement yet
- duplicate confirm while processing is a no-op
- failed confirm: full rollback, error state, restart / resume recovery
"""

import warnings
from decimal import Decimal
from pathlib import Path

import pytest

from fintab.models import Sale, StockAdjustment
from fintab.services import checkout_service
from fintab.services.checkout_service import (
    CheckoutAuthorizationError,
    CheckoutStateError,
    CheckoutValidationError,
)
from fintab.services.products_service import InsufficientStockError


@pytest.fixture
def session(db_session, business, owner):
    return checkout_service.get_session(business, owner.id)


def _ready(session, business, owner, owner_membership, product, customer, staff, *, quantity=5, method="Cash", tax="10"):
    checkout_service.update_cart_item(session, product_id=product.id, quantity=quantity)
    checkout_service.update_selection(
        session, business, owner, owner_membership,
        customer_id=customer.id,
        staff_user_id=staff.id,
        payment_method=method,
        tax_rate=tax,
    )
    return session


class TestCart:

    def test_quantity_is_clamped_to_stock(self, session, product):
        checkout_service.update_cart_item(session, product_id=product.id, quantity=50)
        assert session.cart_lines[0].quantity == 20

    def test_zero_quantity_removes_line(self, session, product):
        checkout_service.update_cart_item(session, product_id=product.id, quantity=3)
        checkout_service.update_cart_item(session, product_id=product.id, quantity=0)
        assert session.cart_lines == []

    def test_deactivated_product_can_still_be_removed(self, session, product, db_session):
        checkout_service.update_cart_item(session, product_id=product.id, quantity=3)
        product.is_active = False
        db_session.commit()

        checkout_service.update_cart_item(session, product_id=product.id, quantity=0)
        assert session.cart_lines == []

    def test_deactivated_product_cannot_be_added(self, session, product, db_session):
        product.is_active = False
        db_session.commit()

        with pytest.raises(CheckoutValidationError, match="not available"):
            checkout_service.update_cart_item(session, product_id=product.id, quantity=1)
        assert session.cart_lines == []

    def test_quote_uses_tier_price_and_tax(self, session, business, owner, owner_membership, product, customer, staff, staff_membership):
        _ready(session, business, owner, owner_membership, product, customer, staff)
        quote = checkout_service.quote(session, owner, owner_membership)

        assert quote["totals"]["subtotal_cents"] == 450
        assert quote["totals"]["tax_cents"] == 45
        assert quote["totals"]["total_cents"] == 495
        assert quote["commission_cents"] == 45

    def test_quote_ignores_discount_without_capability(self, db_session, business, staff, staff_membership, product):
        session = checkout_service.get_session(business, staff.id)
        checkout_service.update_cart_item(session, product_id=product.id, quantity=2)
        checkout_service.update_selection(session, business, staff, staff_membership, discount_cents=50)

        quote = checkout_service.quote(session, staff, staff_membership)
        assert quote["totals"]["discount_cents"] == 0
        assert quote["totals"]["total_cents"] == 200

    def test_tax_change_requires_capability(self, db_session, business, staff, staff_membership):
        session = checkout_service.get_session(business, staff.id)
        with pytest.raises(CheckoutAuthorizationError):
            checkout_service.update_selection(session, business, staff, staff_membership, tax_rate="5")


class TestBeginCheckout:

    def test_empty_cart_is_rejected_first(self, session, business, owner, owner_membership):
        with pytest.raises(CheckoutValidationError, match="Cart is empty"):
            checkout_service.begin_checkout(session, business, owner, owner_membership)
        assert session.status == "idle"

    def test_missing_customer_before_staff(self, session, business, owner, owner_membership, product):
        checkout_service.update_cart_item(session, product_id=product.id, quantity=1)
        with pytest.raises(CheckoutValidationError, match="Select a customer"):
            checkout_service.begin_checkout(session, business, owner, owner_membership)

    def test_missing_staff_before_payment_method(self, session, business, owner, owner_membership, product, customer):
        checkout_service.update_cart_item(session, product_id=product.id, quantity=1)
        checkout_service.update_selection(session, business, owner, owner_membership, customer_id=customer.id)
        with pytest.raises(CheckoutValidationError, match="Select a staff member"):
            checkout_service.begin_checkout(session, business, owner, owner_membership)

    def test_missing_payment_method(self, session, business, owner, owner_membership, product, customer, staff, staff_membership):
        checkout_service.update_cart_item(session, product_id=product.id, quantity=1)
        checkout_service.update_selection(
            session, business, owner, owner_membership,
            customer_id=customer.id, staff_user_id=staff.id,
        )
        with pytest.raises(CheckoutValidationError, match="Select a payment method"):
            checkout_service.begin_checkout(session, business, owner, owner_membership)
        assert session.status == "idle"
        assert session.snapshot is None

    def test_discount_without_capability_aborts(self, db_session, business, staff, staff_membership, product, customer):
        session = checkout_service.get_session(business, staff.id)
        checkout_service.update_cart_item(session, product_id=product.id, quantity=1)
        checkout_service.update_selection(
            session, business, staff, staff_membership,
            customer_id=customer.id, staff_user_id=staff.id, payment_method="Cash", discount_cents=10,
        )
        with pytest.raises(CheckoutAuthorizationError, match="discounts"):
            checkout_service.begin_checkout(session, business, staff, staff_membership)
        assert session.status == "idle"

    def test_deactivated_product_in_cart_blocks_begin(self, session, business, owner, owner_membership, product, customer, staff, staff_membership, db_session):
        _ready(session, business, owner, owner_membership, product, customer, staff, quantity=3)
        product.is_active = False
        db_session.commit()

        with pytest.raises(CheckoutValidationError, match="Widget is no longer available"):
            checkout_service.begin_checkout(session, business, owner, owner_membership)
        assert session.status == "idle"
        assert session.snapshot is None

    def test_cash_moves_to_pending_confirmation_with_snapshot(self, session, business, owner, owner_membership, product, customer, staff, staff_membership):
        _ready(session, business, owner, owner_membership, product, customer, staff)
        result = checkout_service.begin_checkout(session, business, owner, owner_membership)

        assert result is session
        assert session.status == "pending_confirmation"
        assert session.snapshot["totals"]["total_cents"] == 495
        assert session.snapshot["lines"][0]["unit_price_cents"] == 90

    def test_bank_receipt_needs_bank_details(self, session, business, owner, owner_membership, product, customer, staff, staff_membership):
        _ready(session, business, owner, owner_membership, product, customer, staff, method="Bank Receipt")
        checkout_service.begin_checkout(session, business, owner, owner_membership)
        assert session.status == "pending_bank_details"

    def test_begin_while_processing_is_noop(self, session, business, owner, owner_membership, db_session):
        session.status = "processing"
        db_session.commit()
        assert checkout_service.begin_checkout(session, business, owner, owner_membership) is None


class TestConfirmCheckout:

    def test_cash_sale_completes_and_deducts_stock(self, session, business, owner, owner_membership, product, customer, staff, staff_membership, db_session):
        _ready(session, business, owner, owner_membership, product, customer, staff)
        checkout_service.begin_checkout(session, business, owner, owner_membership)

        sale = checkout_service.confirm_checkout(session, business, owner, cash_received_cents=1000)

        assert sale.status == "completed"
        assert sale.document_number == "S-000001"
        assert sale.total_cents == 495
        assert sale.change_cents == 505
        assert sale.commission_cents == 45
        assert sale.user_id == staff.id
        assert sale.created_by_user_id == owner.id
        assert sale.tax_rate == Decimal("10")

        db_session.refresh(product)
        assert product.stock == 15
        history = db_session.query(StockAdjustment).filter_by(sale_id=sale.id).all()
        assert len(history) == 1
        assert history[0].type == "remove"
        assert history[0].quantity == 5
        assert history[0].new_stock_level == 15

        assert session.status == "completed"
        assert session.cart_lines == []
        assert session.customer_id is None
        assert session.last_sale_id == sale.id

    def test_snapshot_is_frozen_against_cart_edits(self, session, business, owner, owner_membership, product, customer, staff, staff_membership):
        _ready(session, business, owner, owner_membership, product, customer, staff)
        checkout_service.begin_checkout(session, business, owner, owner_membership)

        checkout_service.update_cart_item(session, product_id=product.id, quantity=1)
        sale = checkout_service.confirm_checkout(session, business, owner, cash_received_cents=500)

        assert sale.total_cents == 495
        assert sale.lines[0].quantity == 5

    def test_bank_sale_waits_for_verification(self, session, business, owner, owner_membership, product, customer, staff, staff_membership, bank_account, db_session):
        _ready(session, business, owner, owner_membership, product, customer, staff, method="Bank Receipt")
        checkout_service.begin_checkout(session, business, owner, owner_membership)
        checkout_service.provide_bank_details(session, bank_account_id=bank_account.id, receipt_number="RCPT-77")

        sale = checkout_service.confirm_checkout(session, business, owner)

        assert sale.status == "pending_bank_verification"
        assert sale.bank_receipt_number == "RCPT-77"
        assert sale.bank_name == "First Bank"
        db_session.refresh(product)
        assert product.stock == 20

    def test_bank_details_require_receipt_number(self, session, business, owner, owner_membership, product, customer, staff, staff_membership, bank_account):
        _ready(session, business, owner, owner_membership, product, customer, staff, method="Bank Receipt")
        checkout_service.begin_checkout(session, business, owner, owner_membership)
        with pytest.raises(CheckoutValidationError):
            checkout_service.provide_bank_details(session, bank_account_id=bank_account.id, receipt_number="  ")

    def test_confirm_while_processing_returns_none(self, session, business, owner, owner_membership, product, customer, staff, staff_membership, db_session):
        _ready(session, business, owner, owner_membership, product, customer, staff)
        checkout_service.begin_checkout(session, business, owner, owner_membership)
        session.status = "processing"
        db_session.commit()

        assert checkout_service.confirm_checkout(session, business, owner) is None
        assert db_session.query(Sale).count() == 0

    def test_confirm_after_completion_is_rejected(self, session, business, owner, owner_membership, product, customer, staff, staff_membership, db_session):
        _ready(session, business, owner, owner_membership, product, customer, staff)
        checkout_service.begin_checkout(session, business, owner, owner_membership)
        checkout_service.confirm_checkout(session, business, owner, cash_received_cents=495)

        with pytest.raises(CheckoutStateError):
            checkout_service.confirm_checkout(session, business, owner, cash_received_cents=495)
        assert db_session.query(Sale).count() == 1

    def test_product_deactivated_after_begin_is_not_sold(self, session, business, owner, owner_membership, product, customer, staff, staff_membership, db_session):
        _ready(session, business, owner, owner_membership, product, customer, staff, quantity=3)
        checkout_service.begin_checkout(session, business, owner, owner_membership)
        product.is_active = False
        db_session.commit()

        with pytest.raises(CheckoutValidationError, match="Widget is no longer available"):
            checkout_service.confirm_checkout(session, business, owner, cash_received_cents=1000)

        assert db_session.query(Sale).count() == 0
        db_session.refresh(product)
        assert product.stock == 20
        db_session.refresh(session)
        assert session.status == "error"

    def test_stock_shortage_rolls_back_and_enters_error(self, session, business, owner, owner_membership, product, customer, staff, staff_membership, db_session):
        _ready(session, business, owner, owner_membership, product, customer, staff)
        checkout_service.begin_checkout(session, business, owner, owner_membership)
        product.stock = 2
        db_session.commit()

        with pytest.raises(InsufficientStockError):
            checkout_service.confirm_checkout(session, business, owner, cash_received_cents=1000)

        assert db_session.query(Sale).count() == 0
        assert db_session.query(StockAdjustment).count() == 0
        db_session.refresh(session)
        assert session.status == "error"
        assert "Insufficient stock" in session.last_error

        with pytest.raises(CheckoutStateError):
            checkout_service.begin_checkout(session, business, owner, owner_membership)

    def test_resume_keeps_cart_and_restart_clears_it(self, session, business, owner, owner_membership, product, customer, staff, staff_membership, db_session):
        _ready(session, business, owner, owner_membership, product, customer, staff)
        session.status = "error"
        db_session.commit()

        checkout_service.reset_session(session, business, clear_cart=False)
        assert session.status == "idle"
        assert len(session.cart_lines) == 1
        assert session.customer_id == customer.id

        checkout_service.reset_session(session, business, clear_cart=True)
        assert session.cart_lines == []
        assert session.customer_id is None
        assert session.payment_method is None


def test_module_source_compiles_without_warnings():
    source_path = Path(checkout_service.__file__)
    with warnings.catch_warnings():
        warnings.simplefilter('error')
        compile(source_path.read_text(encoding='utf-8'), str(source_path), 'exec')
