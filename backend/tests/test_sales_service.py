# Overview: Pytest coverage for bank-receipt verification and sales reporting.

import pytest

from fintab.models import BankAccount, BankTransaction, StockAdjustment
from fintab.services import approval_service, checkout_service, sales_service, workflow_role_service
from fintab.services.permission_service import PermissionDeniedError
from fintab.services.sales_service import SaleStateError
from fintab.time_utils import utcnow


def _ring_sale(business, owner, owner_membership, product, customer, staff, *, method, bank_account=None, quantity=5):
    session = checkout_service.get_session(business, owner.id)
    checkout_service.update_cart_item(session, product_id=product.id, quantity=quantity)
    checkout_service.update_selection(
        session, business, owner, owner_membership,
        customer_id=customer.id, staff_user_id=staff.id, payment_method=method, tax_rate="10",
    )
    checkout_service.begin_checkout(session, business, owner, owner_membership)
    if bank_account is not None:
        checkout_service.provide_bank_details(session, bank_account_id=bank_account.id, receipt_number="BR-1001")
    return checkout_service.confirm_checkout(
        session, business, owner,
        cash_received_cents=500 if method == "Cash" else None,
    )


@pytest.fixture
def bank_sale(business, owner, owner_membership, product, customer, staff, staff_membership, bank_account):
    return _ring_sale(business, owner, owner_membership, product, customer, staff, method="Bank Receipt", bank_account=bank_account)


class TestBankVerification:

    def test_verifier_needs_permission_or_role(self, business, manager, manager_membership, bank_sale):
        with pytest.raises(PermissionDeniedError):
            sales_service.verify_bank_sale(
                business_id=business.id, sale_id=bank_sale.id,
                actor=manager, membership=manager_membership, approve=True,
            )

    def test_approval_credits_account_and_deducts_stock(self, db_session, business, owner, manager, manager_membership, product, bank_account, bank_sale):
        workflow_role_service.assign_workflow_role(
            business=business, role_key="bank_verifier", user_id=manager.id, assigned_by_user_id=owner.id,
        )

        sale = sales_service.verify_bank_sale(
            business_id=business.id, sale_id=bank_sale.id,
            actor=manager, membership=manager_membership, approve=True, note="Seen on statement",
        )

        assert sale.status == "completed_bank_verified"
        assert sale.verified_by_user_id == manager.id
        assert db_session.get(BankAccount, bank_account.id).balance_cents == 20000 + 495

        credit = db_session.query(BankTransaction).filter_by(type="sale_credit").one()
        assert credit.amount_cents == 495
        assert credit.reference_id == sale.document_number

        db_session.refresh(product)
        assert product.stock == 15
        assert db_session.query(StockAdjustment).filter_by(sale_id=sale.id).count() == 1

    def test_rejection_moves_nothing(self, db_session, business, owner, owner_membership, product, bank_account, bank_sale):
        sale = sales_service.verify_bank_sale(
            business_id=business.id, sale_id=bank_sale.id,
            actor=owner, membership=owner_membership, approve=False, note="No such receipt",
        )

        assert sale.status == "rejected_bank_not_verified"
        assert db_session.get(BankAccount, bank_account.id).balance_cents == 20000
        db_session.refresh(product)
        assert product.stock == 20

    def test_sale_can_only_be_verified_once(self, business, owner, owner_membership, bank_sale):
        sales_service.verify_bank_sale(
            business_id=business.id, sale_id=bank_sale.id,
            actor=owner, membership=owner_membership, approve=True,
        )
        with pytest.raises(SaleStateError):
            sales_service.verify_bank_sale(
                business_id=business.id, sale_id=bank_sale.id,
                actor=owner, membership=owner_membership, approve=False,
            )


class TestReporting:

    def test_cash_total_feeds_cash_count(self, business, owner, owner_membership, product, customer, staff, staff_membership):
        _ring_sale(business, owner, owner_membership, product, customer, staff, method="Cash")

        assert sales_service.cash_sales_total(business.id, utcnow().date()) == 495

        record = approval_service.submit(
            business=business, actor=owner, membership=owner_membership,
            kind="cash_count", payload={"counted_amount_cents": 480},
        )
        assert record.expected_amount_cents == 495
        assert record.difference_cents == -15

    def test_commission_summary(self, business, owner, owner_membership, product, customer, staff, staff_membership):
        _ring_sale(business, owner, owner_membership, product, customer, staff, method="Cash")

        rows = sales_service.commission_summary(business.id)

        assert rows == [{
            "user_id": staff.id,
            "user_name": "Sam Staff",
            "sale_count": 1,
            "sales_total_cents": 495,
            "commission_cents": 45,
        }]

    def test_pending_bank_sale_is_not_finalized(self, business, bank_sale):
        assert sales_service.commission_summary(business.id) == []
        rows, total = sales_service.list_sales(business.id, status="pending_bank_verification")
        assert total == 1
        assert rows[0].id == bank_sale.id
